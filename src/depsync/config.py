"""Project configuration: root dependencies and the ordered repository list.

The input is the already-parsed ``[project]`` table of the project file::

    name = "analysis"
    repositories = [
        {alias = "CRAN", url = "https://cran.example.org"},
    ]
    dependencies = [
        "dplyr",
        "ggplot2 (>= 3.4)",
        {name = "data.table", version = "^1.14", repository = "CRAN"},
        {name = "mypkg", git = "https://example.org/mypkg.git", ref = "v1.0"},
    ]
"""

from __future__ import annotations

import logging
from dataclasses import dataclass, field
from typing import Any, Dict, List, Mapping, Optional, Tuple

from depsync.constants import Constants
from depsync.errors import ConfigError, InvalidRequirementError
from depsync.package import Repository
from depsync.resolver.models import UnresolvedDependency
from depsync.versioning.models import VersionRequirement
from depsync.versioning.parser import parse_dependency, parse_requirement

logger = logging.getLogger(__name__)

_ROOT = frozenset([Constants.ROOT_REQUIRER])


@dataclass(frozen=True)
class ProjectConfig:
    """Root dependencies plus repositories in priority order."""
    name: str
    repositories: Tuple[Repository, ...] = ()
    dependencies: Tuple[UnresolvedDependency, ...] = ()
    toolchain_version: Optional[str] = None
    extra: Mapping[str, Any] = field(default_factory=dict, compare=False)

    def dependency_names(self) -> List[str]:
        return [dep.name for dep in self.dependencies]

    def repository(self, name: str) -> Optional[Repository]:
        for repo in self.repositories:
            if repo.name == name:
                return repo
        return None

    @classmethod
    def from_dict(cls, data: Mapping[str, Any]) -> "ProjectConfig":
        """Build and validate a config from a parsed ``[project]`` table.

        Raises:
            ConfigError: On missing fields, duplicates, unparseable
                requirements or references to unknown repositories.
        """
        if not isinstance(data, Mapping):
            raise ConfigError("project", "expected a table")
        name = data.get("name")
        if not isinstance(name, str) or not name.strip():
            raise ConfigError("project.name", "must be a non-empty string")

        repositories = _parse_repositories(data.get("repositories", []))
        repo_names = {repo.name for repo in repositories}
        dependencies = _parse_dependencies(data.get("dependencies", []), repo_names)

        toolchain = data.get("r_version")
        if toolchain is not None and not isinstance(toolchain, str):
            raise ConfigError("project.r_version", "expected a string")

        known = {"name", "repositories", "dependencies", "r_version"}
        extra = {key: value for key, value in data.items() if key not in known}
        if extra:
            logger.debug("Ignoring project keys: %s", ", ".join(sorted(extra)))
        return cls(
            name=name,
            repositories=tuple(repositories),
            dependencies=tuple(dependencies),
            toolchain_version=toolchain,
            extra=extra,
        )


def _parse_repositories(value: Any) -> List[Repository]:
    if not isinstance(value, list):
        raise ConfigError("project.repositories", "expected an array")
    repositories: List[Repository] = []
    for index, entry in enumerate(value):
        where = f"project.repositories[{index}]"
        if not isinstance(entry, Mapping):
            raise ConfigError(where, "expected a table")
        alias = entry.get("alias", entry.get("name"))
        url = entry.get("url")
        if not isinstance(alias, str) or not alias:
            raise ConfigError(f"{where}.alias", "must be a non-empty string")
        if not isinstance(url, str) or not url:
            raise ConfigError(f"{where}.url", "must be a non-empty string")
        if any(repo.name == alias for repo in repositories):
            raise ConfigError(f"{where}.alias", f"duplicate repository {alias!r}")
        repositories.append(Repository(alias, url.rstrip("/")))
    return repositories


def _parse_dependency_entry(entry: Any, where: str, repo_names) -> UnresolvedDependency:
    if isinstance(entry, str):
        try:
            name, requirement = parse_dependency(entry)
        except InvalidRequirementError as exc:
            raise ConfigError(where, str(exc)) from exc
        return UnresolvedDependency(name, requirement, _ROOT)

    if not isinstance(entry, Mapping):
        raise ConfigError(where, "expected a string or a table")
    name = entry.get("name")
    if not isinstance(name, str) or not name:
        raise ConfigError(f"{where}.name", "must be a non-empty string")

    repository = entry.get("repository")
    if repository is not None and repository not in repo_names:
        raise ConfigError(f"{where}.repository", f"unknown repository {repository!r}")

    git = entry.get("git")
    if git is not None:
        if not isinstance(git, str) or not git:
            raise ConfigError(f"{where}.git", "must be a non-empty string")
        if repository is not None:
            raise ConfigError(where, "cannot combine a git source with a repository")

    ref = entry.get("ref") or entry.get("tag") or entry.get("branch") or entry.get("commit")
    if ref is not None:
        if "version" in entry:
            raise ConfigError(where, "cannot combine a version with a git reference")
        requirement = VersionRequirement.pinned(str(ref))
    else:
        version = entry.get("version")
        try:
            requirement = parse_requirement(None if version is None else str(version))
        except InvalidRequirementError as exc:
            raise ConfigError(f"{where}.version", str(exc)) from exc
    return UnresolvedDependency(name, requirement, _ROOT, repository, git)


def _parse_dependencies(value: Any, repo_names) -> List[UnresolvedDependency]:
    if not isinstance(value, list):
        raise ConfigError("project.dependencies", "expected an array")
    dependencies: List[UnresolvedDependency] = []
    seen: Dict[str, int] = {}
    for index, entry in enumerate(value):
        where = f"project.dependencies[{index}]"
        dep = _parse_dependency_entry(entry, where, repo_names)
        if dep.name in seen:
            raise ConfigError(where, f"{dep.name!r} already listed at index {seen[dep.name]}")
        seen[dep.name] = index
        dependencies.append(dep)
    return dependencies
