"""Package sources, repositories and repository candidates."""

from __future__ import annotations

from dataclasses import dataclass
from typing import Optional, Tuple, Union

from depsync.versioning.models import Platform, Version, VersionRequirement


@dataclass(frozen=True)
class RepositorySource:
    """A package published in a configured repository."""
    repo_id: str
    version: Version


@dataclass(frozen=True)
class VersionControlSource:
    """A package taken from a version-control checkout."""
    url: str
    ref: str
    resolved_sha: str


@dataclass(frozen=True)
class LocalSource:
    """A package taken from a local directory or archive."""
    path: str


Source = Union[RepositorySource, VersionControlSource, LocalSource]


def describe_source(source: Source) -> str:
    """Short human-readable description used in logs and error messages."""
    if isinstance(source, RepositorySource):
        return f"repository {source.repo_id}"
    if isinstance(source, VersionControlSource):
        return f"git {source.url}@{source.resolved_sha[:12]}"
    if isinstance(source, LocalSource):
        return f"path {source.path}"
    raise TypeError(f"Unknown source variant: {type(source).__name__}")


def source_repository(source: Source) -> Optional[str]:
    """Repository name for repository sources, None for the other variants."""
    if isinstance(source, RepositorySource):
        return source.repo_id
    if isinstance(source, (VersionControlSource, LocalSource)):
        return None
    raise TypeError(f"Unknown source variant: {type(source).__name__}")


@dataclass(frozen=True)
class Repository:
    """A configured package repository; list order is priority order."""
    name: str
    url: str


@dataclass(frozen=True)
class Candidate:
    """One installable version of a package offered by a repository."""
    name: str
    version: Version
    source: Source
    content_hash: str
    dependencies: Tuple[Tuple[str, VersionRequirement], ...] = ()
    is_binary: bool = False
    built_for: Optional[Platform] = None

    @property
    def dependency_names(self) -> Tuple[str, ...]:
        return tuple(sorted({name for name, _ in self.dependencies}))


def is_binary_package(candidate: Candidate, platform: Platform) -> bool:
    """True when ``candidate`` is a precompiled binary usable on ``platform``.

    Source packages, and binaries built for another os, arch or toolchain
    series, return False.
    """
    return candidate.is_binary and platform.is_compatible_with(candidate.built_for)


def is_eligible(candidate: Candidate, platform: Optional[Platform]) -> bool:
    """Source packages are always eligible; binaries only for their own platform."""
    if not candidate.is_binary:
        return True
    if platform is None:
        return False
    return is_binary_package(candidate, platform)
