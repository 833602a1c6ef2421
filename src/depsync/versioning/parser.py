"""Token parsing utilities for version requirements and dependency entries."""

import re
from typing import List, Optional, Tuple

from depsync.errors import InvalidRequirementError, InvalidVersionError
from .models import RequirementKind, Version, VersionRequirement

_NAME_RE = re.compile(r"^([A-Za-z][A-Za-z0-9._]*)\s*(.*)$", re.DOTALL)
_HYPHEN_RANGE_RE = re.compile(r"^(\S+)\s+-\s+(\S+)$")
_COMPARATOR_RE = re.compile(r"^(==|>=|<=|!=|=|>|<)?\s*(\S+)$")


def tokenize_rightmost_colon(s: str) -> Tuple[str, Optional[str]]:
    """Return (identifier, spec or None) using the rightmost-colon rule."""
    s = s.strip()
    if ':' not in s:
        return s, None
    parts = s.rsplit(':', 1)
    identifier = parts[0].strip()
    spec_part = parts[1].strip() if len(parts) > 1 else ''
    spec = spec_part if spec_part else None
    return identifier, spec


def _version(token: str, raw: str) -> Version:
    try:
        return Version(token)
    except InvalidVersionError as exc:
        raise InvalidRequirementError(raw, f"bad version {token!r}") from exc


def _fold_bounds(comparators: List[Tuple[str, Version]], raw: str) -> VersionRequirement:
    """Intersect several comparators into a single RANGE requirement."""
    minimum: Optional[Version] = None
    maximum: Optional[Version] = None
    min_inclusive = True
    max_inclusive = True

    def tighten_lower(v: Version, inclusive: bool) -> None:
        nonlocal minimum, min_inclusive
        if minimum is None or v > minimum:
            minimum, min_inclusive = v, inclusive
        elif v == minimum:
            min_inclusive = min_inclusive and inclusive

    def tighten_upper(v: Version, inclusive: bool) -> None:
        nonlocal maximum, max_inclusive
        if maximum is None or v < maximum:
            maximum, max_inclusive = v, inclusive
        elif v == maximum:
            max_inclusive = max_inclusive and inclusive

    for op, v in comparators:
        if op in ("==", "="):
            tighten_lower(v, True)
            tighten_upper(v, True)
        elif op == ">=":
            tighten_lower(v, True)
        elif op == ">":
            tighten_lower(v, False)
        elif op == "<=":
            tighten_upper(v, True)
        elif op == "<":
            tighten_upper(v, False)
        else:
            raise InvalidRequirementError(raw, f"unsupported operator {op!r}")

    return VersionRequirement(
        RequirementKind.RANGE,
        minimum=minimum,
        maximum=maximum,
        min_inclusive=min_inclusive,
        max_inclusive=max_inclusive,
        raw=raw,
    )


def parse_requirement(text: Optional[str]) -> VersionRequirement:
    """Parse a requirement such as ``>= 1.0``, ``^2``, ``(>= 1.0, < 2)`` or ``@main``.

    Empty text, ``*`` and ``latest`` mean any version. A bare version means an
    exact pin. Raises InvalidRequirementError on malformed input.
    """
    raw = (text or "").strip()
    body = raw
    if body.startswith("(") and body.endswith(")"):
        body = body[1:-1].strip()

    if body in ("", "*") or body.lower() == "latest":
        return VersionRequirement(RequirementKind.ANY, raw=raw or "*")

    if body.startswith("@"):
        ref = body[1:].strip()
        if not ref:
            raise InvalidRequirementError(raw, "empty ref")
        return VersionRequirement(RequirementKind.PINNED_REF, ref=ref, raw=raw)

    m = _HYPHEN_RANGE_RE.match(body)
    if m:
        low, high = _version(m.group(1), raw), _version(m.group(2), raw)
        if high < low:
            raise InvalidRequirementError(raw, "empty range")
        return VersionRequirement(RequirementKind.RANGE, minimum=low, maximum=high, raw=raw)

    if body.startswith("^") or (body.startswith("~") and not body.startswith("~=")):
        v = _version(body[1:].strip(), raw)
        upper = v.next_major() if body[0] == "^" else v.next_minor()
        return VersionRequirement(
            RequirementKind.RANGE, minimum=v, maximum=upper, max_inclusive=False, raw=raw
        )

    comparators: List[Tuple[str, Version]] = []
    for part in body.split(","):
        part = part.strip()
        m = _COMPARATOR_RE.match(part)
        if not part or not m:
            raise InvalidRequirementError(raw, f"cannot parse {part!r}")
        comparators.append((m.group(1) or "==", _version(m.group(2), raw)))

    if len(comparators) == 1:
        op, v = comparators[0]
        if op in ("==", "="):
            return VersionRequirement(RequirementKind.EXACT, version=v, raw=raw)
        if op == ">=":
            return VersionRequirement(RequirementKind.AT_LEAST, version=v, raw=raw)
    requirement = _fold_bounds(comparators, raw)
    if requirement.minimum is not None and requirement.maximum is not None:
        if requirement.maximum < requirement.minimum:
            raise InvalidRequirementError(raw, "empty range")
    return requirement


def parse_dependency(text: str) -> Tuple[str, VersionRequirement]:
    """Parse ``name (req)``, ``name: req`` or ``name req`` into its parts."""
    token = text.strip()
    if ":" in token and "(" not in token:
        name, spec = tokenize_rightmost_colon(token)
        if not name:
            raise InvalidRequirementError(text, "missing package name")
        return name, parse_requirement(spec)

    m = _NAME_RE.match(token)
    if not m:
        raise InvalidRequirementError(text, "missing package name")
    return m.group(1), parse_requirement(m.group(2))


def split_dependency_field(value: str) -> List[str]:
    """Split a comma-separated dependency field, ignoring commas inside parentheses."""
    entries: List[str] = []
    depth = 0
    current: List[str] = []
    for ch in value:
        if ch == "(":
            depth += 1
        elif ch == ")":
            depth = max(0, depth - 1)
        if ch == "," and depth == 0:
            entries.append("".join(current).strip())
            current = []
        else:
            current.append(ch)
    entries.append("".join(current).strip())
    return [e for e in entries if e]


def parse_dependency_field(value: Optional[str]) -> List[Tuple[str, VersionRequirement]]:
    """Parse a DESCRIPTION-style field such as ``Rcpp (>= 1.0), methods``."""
    if not value:
        return []
    return [parse_dependency(" ".join(entry.split())) for entry in split_dependency_field(value)]
