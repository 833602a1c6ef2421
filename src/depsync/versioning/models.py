"""Data models for versions, version requirements and target platforms."""

from __future__ import annotations

import functools
import re
from dataclasses import dataclass, field
from enum import Enum
from typing import Any, Optional, Tuple

from depsync.errors import InvalidVersionError

_VERSION_RE = re.compile(r"^\d+(?:[.-]\d+)*$")
_SEPARATOR_RE = re.compile(r"[.-]")


@functools.total_ordering
class Version:
    """A dotted numeric version such as ``1.2``, ``4.3.1`` or R's ``1.2-3``.

    ``.`` and ``-`` are both component separators. Comparison is component-wise
    with missing trailing components treated as zero, so ``1.0 == 1.0.0``.
    The original text is kept for display and serialization.
    """

    __slots__ = ("original", "components", "_key")

    def __init__(self, text: Any):
        if isinstance(text, Version):
            text = text.original
        raw = str(text).strip()
        if not _VERSION_RE.match(raw):
            raise InvalidVersionError(raw)
        self.original = raw
        self.components: Tuple[int, ...] = tuple(int(p) for p in _SEPARATOR_RE.split(raw))
        key = list(self.components)
        while len(key) > 1 and key[-1] == 0:
            key.pop()
        self._key: Tuple[int, ...] = tuple(key)

    @classmethod
    def parse(cls, text: Any) -> "Version":
        """Parse ``text``; equivalent to the constructor."""
        return cls(text)

    def component(self, index: int) -> int:
        """Return a component, zero when the version is shorter."""
        return self.components[index] if index < len(self.components) else 0

    def next_major(self) -> "Version":
        """First version of the next major series (``1.4.2`` -> ``2``)."""
        return Version(str(self.component(0) + 1))

    def next_minor(self) -> "Version":
        """First version of the next minor series (``1.4.2`` -> ``1.5``)."""
        return Version(f"{self.component(0)}.{self.component(1) + 1}")

    def __eq__(self, other: object) -> bool:
        if not isinstance(other, Version):
            return NotImplemented
        return self._key == other._key

    def __lt__(self, other: "Version") -> bool:
        if not isinstance(other, Version):
            return NotImplemented
        width = max(len(self._key), len(other._key))
        left = self._key + (0,) * (width - len(self._key))
        right = other._key + (0,) * (width - len(other._key))
        return left < right

    def __hash__(self) -> int:
        return hash(self._key)

    def __str__(self) -> str:
        return self.original

    def __repr__(self) -> str:
        return f"Version({self.original!r})"


class RequirementKind(Enum):
    """The shapes a version requirement can take."""
    EXACT = "exact"
    AT_LEAST = "at_least"
    RANGE = "range"
    ANY = "any"
    PINNED_REF = "pinned_ref"


@dataclass(frozen=True)
class VersionRequirement:
    """A predicate over versions contributed by one requirer.

    RANGE bounds are optional; a missing bound is unbounded on that side.
    PINNED_REF only matches version-control sources pinned to the same ref.
    """
    kind: RequirementKind
    version: Optional[Version] = None
    minimum: Optional[Version] = None
    maximum: Optional[Version] = None
    min_inclusive: bool = True
    max_inclusive: bool = True
    ref: Optional[str] = None
    raw: str = field(default="", compare=False)

    @classmethod
    def any(cls) -> "VersionRequirement":
        return cls(RequirementKind.ANY, raw="*")

    @classmethod
    def exact(cls, version: Any) -> "VersionRequirement":
        return cls(RequirementKind.EXACT, version=Version(version))

    @classmethod
    def at_least(cls, version: Any) -> "VersionRequirement":
        return cls(RequirementKind.AT_LEAST, version=Version(version))

    @classmethod
    def between(
        cls,
        minimum: Any = None,
        maximum: Any = None,
        *,
        min_inclusive: bool = True,
        max_inclusive: bool = True,
    ) -> "VersionRequirement":
        return cls(
            RequirementKind.RANGE,
            minimum=Version(minimum) if minimum is not None else None,
            maximum=Version(maximum) if maximum is not None else None,
            min_inclusive=min_inclusive,
            max_inclusive=max_inclusive,
        )

    @classmethod
    def pinned(cls, ref: str) -> "VersionRequirement":
        return cls(RequirementKind.PINNED_REF, ref=ref)

    def satisfies(self, version: Version, source: Any = None) -> bool:
        """Return True when ``version`` (published by ``source``) meets this requirement."""
        if self.kind is RequirementKind.ANY:
            return True
        if self.kind is RequirementKind.EXACT:
            return version == self.version
        if self.kind is RequirementKind.AT_LEAST:
            return version >= self.version
        if self.kind is RequirementKind.RANGE:
            if self.minimum is not None:
                if version < self.minimum or (version == self.minimum and not self.min_inclusive):
                    return False
            if self.maximum is not None:
                if version > self.maximum or (version == self.maximum and not self.max_inclusive):
                    return False
            return True
        if self.kind is RequirementKind.PINNED_REF:
            ref = getattr(source, "ref", None)
            sha = getattr(source, "resolved_sha", None) or ""
            return bool(self.ref) and (ref == self.ref or sha.startswith(self.ref))
        raise TypeError(f"Unhandled requirement kind: {self.kind!r}")

    def __str__(self) -> str:
        if self.kind is RequirementKind.ANY:
            return "*"
        if self.kind is RequirementKind.EXACT:
            return f"== {self.version}"
        if self.kind is RequirementKind.AT_LEAST:
            return f">= {self.version}"
        if self.kind is RequirementKind.PINNED_REF:
            return f"@{self.ref}"
        parts = []
        if self.minimum is not None:
            parts.append(f"{'>=' if self.min_inclusive else '>'} {self.minimum}")
        if self.maximum is not None:
            parts.append(f"{'<=' if self.max_inclusive else '<'} {self.maximum}")
        return ", ".join(parts) if parts else "*"


def satisfies(requirement: VersionRequirement, version: Version, source: Any = None) -> bool:
    """Functional form of ``VersionRequirement.satisfies``."""
    return requirement.satisfies(version, source)


@dataclass(frozen=True)
class Platform:
    """Target platform a resolution is computed for."""
    os: str
    arch: str
    toolchain_version: str

    @property
    def toolchain_series(self) -> Tuple[int, int]:
        """Major and minor toolchain version; binaries are compatible within a series."""
        parsed = Version(self.toolchain_version)
        return parsed.component(0), parsed.component(1)

    def is_compatible_with(self, other: Optional["Platform"]) -> bool:
        """True when binaries built for ``other`` run on this platform."""
        if other is None:
            return False
        return (
            self.os == other.os
            and self.arch == other.arch
            and self.toolchain_series == other.toolchain_series
        )
