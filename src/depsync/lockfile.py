"""Lockfile: a durable, order-stable snapshot of a Resolution.

The lockfile is TOML with a fixed key order: format version, root set,
platform, repositories (in priority order) and packages sorted by name.
Loading validates every entry and reports the first invalid field through
LockfileCorruptError.
"""

from __future__ import annotations

import logging
import os
import re
import tempfile
from dataclasses import dataclass, field
from pathlib import Path
from typing import Any, Dict, List, Optional, Sequence, Tuple, Union

try:
    import tomllib  # type: ignore
except ImportError:  # Python < 3.11
    import tomli as tomllib  # type: ignore

import tomli_w

from depsync.constants import Constants
from depsync.errors import InvalidVersionError, LockfileCorruptError
from depsync.package import (
    LocalSource,
    Repository,
    RepositorySource,
    Source,
    VersionControlSource,
)
from depsync.resolver.graph import find_cycle
from depsync.resolver.models import Resolution, ResolvedDependency
from depsync.versioning.models import Platform, Version

logger = logging.getLogger(__name__)

_CONTENT_HASH_RE = re.compile(r"^[0-9a-f]{64}$")
_SHA_RE = re.compile(r"^[0-9a-f]{7,64}$")


@dataclass
class Lockfile:
    """Serialized resolution plus the provenance needed to reproduce it."""
    repositories: List[Repository]
    platform: Platform
    packages: List[ResolvedDependency]
    root: Tuple[str, ...] = ()
    version: int = Constants.LOCKFILE_VERSION
    _index: Dict[str, ResolvedDependency] = field(default_factory=dict, init=False, repr=False, compare=False)

    def __post_init__(self) -> None:
        self.packages = sorted(self.packages, key=lambda dep: dep.name)
        self.root = tuple(sorted(set(self.root)))
        self._index = {dep.name: dep for dep in self.packages}

    def get(self, name: str) -> Optional[ResolvedDependency]:
        return self._index.get(name)

    def __contains__(self, name: object) -> bool:
        return name in self._index

    def is_reusable_for(self, platform: Platform) -> bool:
        """True when entries locked here may be reused when resolving for ``platform``."""
        return (
            self.platform.os == platform.os
            and self.platform.arch == platform.arch
            and self.platform.toolchain_series == platform.toolchain_series
        )

    def to_resolution(self) -> Resolution:
        return Resolution(root=frozenset(self.root), graph=dict(self._index))

    def to_dict(self) -> Dict[str, Any]:
        """Plain-data form with stable key and element ordering."""
        return {
            "version": self.version,
            "root": list(self.root),
            "platform": {
                "os": self.platform.os,
                "arch": self.platform.arch,
                "toolchain_version": self.platform.toolchain_version,
            },
            "repositories": [{"name": repo.name, "url": repo.url} for repo in self.repositories],
            "packages": [_package_to_dict(dep) for dep in self.packages],
        }

    def dumps(self) -> str:
        return tomli_w.dumps(self.to_dict())

    @classmethod
    def loads(cls, data: Union[bytes, str]) -> "Lockfile":
        """Parse and validate serialized lockfile content."""
        if isinstance(data, bytes):
            try:
                data = data.decode("utf-8")
            except UnicodeDecodeError as exc:
                raise LockfileCorruptError("<document>", f"not UTF-8: {exc}") from exc
        try:
            document = tomllib.loads(data)
        except tomllib.TOMLDecodeError as exc:
            raise LockfileCorruptError("<document>", f"invalid TOML: {exc}") from exc
        return _validate_document(document)


def _source_to_dict(source: Source) -> Dict[str, str]:
    if isinstance(source, RepositorySource):
        return {"repository": source.repo_id}
    if isinstance(source, VersionControlSource):
        return {"git": source.url, "ref": source.ref, "sha": source.resolved_sha}
    if isinstance(source, LocalSource):
        return {"path": source.path}
    raise TypeError(f"Unknown source variant: {type(source).__name__}")


def _package_to_dict(dep: ResolvedDependency) -> Dict[str, Any]:
    return {
        "name": dep.name,
        "version": str(dep.version),
        "content_hash": dep.content_hash,
        "binary": dep.is_binary,
        "dependencies": sorted(set(dep.direct_dependencies)),
        "source": _source_to_dict(dep.source),
    }


# -- validation -----------------------------------------------------------------


def _require_str(value: Any, field_name: str, allow_empty: bool = False) -> str:
    if not isinstance(value, str):
        raise LockfileCorruptError(field_name, "expected a string")
    if not allow_empty and not value.strip():
        raise LockfileCorruptError(field_name, "must not be empty")
    return value


def _require_table(value: Any, field_name: str) -> Dict[str, Any]:
    if not isinstance(value, dict):
        raise LockfileCorruptError(field_name, "expected a table")
    return value


def _require_list(value: Any, field_name: str) -> List[Any]:
    if not isinstance(value, list):
        raise LockfileCorruptError(field_name, "expected an array")
    return value


def _parse_version(value: Any, field_name: str) -> Version:
    try:
        return Version(_require_str(value, field_name))
    except InvalidVersionError as exc:
        raise LockfileCorruptError(field_name, f"invalid version {value!r}") from exc


def _parse_source(value: Any, field_name: str, version: Version, repo_names: Sequence[str]) -> Source:
    table = _require_table(value, field_name)
    kinds = [key for key in ("repository", "git", "path") if key in table]
    if len(kinds) != 1:
        raise LockfileCorruptError(field_name, "expected exactly one of repository, git or path")
    kind = kinds[0]
    if kind == "repository":
        repo_id = _require_str(table["repository"], f"{field_name}.repository")
        if repo_id not in repo_names:
            raise LockfileCorruptError(f"{field_name}.repository", f"unknown repository {repo_id!r}")
        return RepositorySource(repo_id, version)
    if kind == "git":
        url = _require_str(table["git"], f"{field_name}.git")
        ref = _require_str(table.get("ref", ""), f"{field_name}.ref", allow_empty=True)
        sha = _require_str(table.get("sha"), f"{field_name}.sha")
        if not _SHA_RE.match(sha):
            raise LockfileCorruptError(f"{field_name}.sha", f"invalid commit sha {sha!r}")
        return VersionControlSource(url, ref, sha)
    return LocalSource(_require_str(table["path"], f"{field_name}.path"))


def _validate_document(document: Dict[str, Any]) -> Lockfile:
    version = document.get("version")
    if version != Constants.LOCKFILE_VERSION:
        raise LockfileCorruptError("version", f"unsupported lockfile version {version!r}")

    platform_table = _require_table(document.get("platform"), "platform")
    platform = Platform(
        os=_require_str(platform_table.get("os"), "platform.os"),
        arch=_require_str(platform_table.get("arch"), "platform.arch"),
        toolchain_version=str(
            _parse_version(platform_table.get("toolchain_version"), "platform.toolchain_version")
        ),
    )

    repositories: List[Repository] = []
    for index, entry in enumerate(_require_list(document.get("repositories", []), "repositories")):
        prefix = f"repositories[{index}]"
        table = _require_table(entry, prefix)
        name = _require_str(table.get("name"), f"{prefix}.name")
        if any(repo.name == name for repo in repositories):
            raise LockfileCorruptError(f"{prefix}.name", f"duplicate repository {name!r}")
        repositories.append(Repository(name, _require_str(table.get("url"), f"{prefix}.url")))
    repo_names = [repo.name for repo in repositories]

    packages: List[ResolvedDependency] = []
    seen = set()
    for index, entry in enumerate(_require_list(document.get("packages", []), "packages")):
        prefix = f"packages[{index}]"
        table = _require_table(entry, prefix)
        name = _require_str(table.get("name"), f"{prefix}.name")
        if name in seen:
            raise LockfileCorruptError(f"{prefix}.name", f"duplicate package {name!r}")
        seen.add(name)
        pkg_version = _parse_version(table.get("version"), f"{prefix}.version")
        content_hash = _require_str(table.get("content_hash"), f"{prefix}.content_hash")
        if not _CONTENT_HASH_RE.match(content_hash):
            raise LockfileCorruptError(f"{prefix}.content_hash", "expected 64 lowercase hex characters")
        is_binary = table.get("binary", False)
        if not isinstance(is_binary, bool):
            raise LockfileCorruptError(f"{prefix}.binary", "expected a boolean")
        dependencies = [
            _require_str(dep, f"{prefix}.dependencies[{i}]")
            for i, dep in enumerate(_require_list(table.get("dependencies", []), f"{prefix}.dependencies"))
        ]
        packages.append(
            ResolvedDependency(
                name=name,
                version=pkg_version,
                source=_parse_source(table.get("source"), f"{prefix}.source", pkg_version, repo_names),
                content_hash=content_hash,
                direct_dependencies=tuple(sorted(set(dependencies))),
                is_binary=is_binary,
            )
        )

    for index, dep in enumerate(packages):
        for dep_name in dep.direct_dependencies:
            if dep_name not in seen:
                raise LockfileCorruptError(
                    f"packages[{index}].dependencies", f"{dep_name!r} is not a locked package"
                )

    root = [
        _require_str(name, f"root[{i}]")
        for i, name in enumerate(_require_list(document.get("root", []), "root"))
    ]
    for i, name in enumerate(root):
        if name not in seen:
            raise LockfileCorruptError(f"root[{i}]", f"{name!r} is not a locked package")

    cycle = find_cycle({dep.name: dep.direct_dependencies for dep in packages})
    if cycle:
        raise LockfileCorruptError("packages", "dependency cycle " + " -> ".join(cycle))

    return Lockfile(repositories=repositories, platform=platform, packages=packages, root=tuple(root))


# -- public helpers ---------------------------------------------------------------


def save(resolution: Resolution, repositories: Sequence[Repository], platform: Platform) -> Lockfile:
    """Build the lockfile for ``resolution``.

    Raises ValueError when a package comes from a repository that is not in
    ``repositories`` or carries a content hash other than a SHA-256 hex
    digest, since such a lockfile could not be loaded back.
    """
    names = {repo.name for repo in repositories}
    for dep in resolution:
        if not _CONTENT_HASH_RE.match(dep.content_hash):
            raise ValueError(
                f"{dep.name} has content hash {dep.content_hash!r}, expected 64 lowercase hex characters"
            )
        if isinstance(dep.source, RepositorySource) and dep.source.repo_id not in names:
            raise ValueError(f"{dep.name} comes from unlisted repository {dep.source.repo_id!r}")
    return Lockfile(
        repositories=list(repositories),
        platform=platform,
        packages=list(resolution),
        root=tuple(resolution.root),
    )


def load(data: Union[bytes, str]) -> Resolution:
    """Parse serialized lockfile content straight into a Resolution."""
    return Lockfile.loads(data).to_resolution()


def read_lockfile(path: Union[str, Path]) -> Optional[Lockfile]:
    """Read the lockfile at ``path``; None when it does not exist."""
    path = Path(path)
    if not path.exists():
        logger.debug("No lockfile at %s", path)
        return None
    return Lockfile.loads(path.read_bytes())


def write_lockfile(lockfile: Lockfile, path: Union[str, Path]) -> None:
    """Write ``lockfile`` to ``path`` atomically."""
    path = Path(path)
    path.parent.mkdir(parents=True, exist_ok=True)
    fd, tmp_name = tempfile.mkstemp(prefix=f".{path.name}.", dir=str(path.parent))
    try:
        with os.fdopen(fd, "w", encoding="utf-8", newline="\n") as handle:
            handle.write(lockfile.dumps())
        os.replace(tmp_name, path)
    except BaseException:
        if os.path.exists(tmp_name):
            os.unlink(tmp_name)
        raise
    logger.info("Wrote lockfile with %d packages to %s", len(lockfile.packages), path)
