"""Read-only snapshot of the packages installed in a library directory."""

from __future__ import annotations

import logging
from dataclasses import dataclass, field
from pathlib import Path
from typing import Dict, Iterator, Mapping, Optional, Tuple, Union

from depsync.constants import Constants
from depsync.dcf import parse_dcf_record
from depsync.errors import InvalidRequirementError, InvalidVersionError
from depsync.versioning.models import Version
from depsync.versioning.parser import parse_dependency_field

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class InstalledPackage:
    """One package present in the library."""
    name: str
    version: Version
    content_hash: str = ""
    path: str = ""
    dependencies: Tuple[str, ...] = ()


@dataclass(frozen=True)
class Library:
    """Snapshot of a library: package name -> installed package."""
    installed: Mapping[str, InstalledPackage] = field(default_factory=dict)
    path: Optional[str] = None

    def snapshot(self) -> Mapping[str, InstalledPackage]:
        return dict(self.installed)

    def get(self, name: str) -> Optional[InstalledPackage]:
        return self.installed.get(name)

    def __contains__(self, name: object) -> bool:
        return name in self.installed

    def __iter__(self) -> Iterator[InstalledPackage]:
        for name in sorted(self.installed):
            yield self.installed[name]

    def __len__(self) -> int:
        return len(self.installed)

    @classmethod
    def from_directory(cls, path: Union[str, Path]) -> "Library":
        """Build a snapshot from ``<path>/<package>/DESCRIPTION`` files.

        A missing directory is an empty library. Package directories without
        a readable DESCRIPTION (e.g. an interrupted install) are skipped.
        """
        root = Path(path)
        installed: Dict[str, InstalledPackage] = {}
        if not root.is_dir():
            return cls(installed, str(root))

        for entry in sorted(root.iterdir()):
            if not entry.is_dir() or entry.name.startswith("."):
                continue
            package = _read_installed(entry)
            if package is not None:
                installed[package.name] = package
        logger.debug("Library %s holds %d packages", root, len(installed))
        return cls(installed, str(root))


def _read_installed(directory: Path) -> Optional[InstalledPackage]:
    description = directory / "DESCRIPTION"
    try:
        record = parse_dcf_record(description.read_text(encoding="utf-8"))
    except (OSError, UnicodeDecodeError) as exc:
        logger.warning("Skipping %s: cannot read DESCRIPTION (%s)", directory.name, exc)
        return None

    name = record.get("Package") or directory.name
    try:
        version = Version(record.get("Version", ""))
        dependencies = set()
        for field_name in Constants.DEPENDENCY_FIELDS:
            for dep, _ in parse_dependency_field(record.get(field_name)):
                if dep not in Constants.BASE_PACKAGES:
                    dependencies.add(dep)
    except (InvalidVersionError, InvalidRequirementError) as exc:
        logger.warning("Skipping %s: %s", directory.name, exc)
        return None

    return InstalledPackage(
        name=name,
        version=version,
        content_hash=record.get(Constants.CONTENT_HASH_FIELD, ""),
        path=str(directory),
        dependencies=tuple(sorted(dependencies)),
    )
