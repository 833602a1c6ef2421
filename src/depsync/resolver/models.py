"""Data models for dependency resolution."""

from __future__ import annotations

from dataclasses import dataclass, field
from typing import Dict, FrozenSet, Iterable, Iterator, List, Mapping, Optional, Tuple

from depsync.package import Candidate, Source
from depsync.versioning.models import Version, VersionRequirement

from .graph import find_cycle, topological_order


@dataclass(frozen=True)
class UnresolvedDependency:
    """A package name plus a constraint, from the project root or a dependency."""
    name: str
    requirement: VersionRequirement = field(default_factory=VersionRequirement.any)
    requested_by: FrozenSet[str] = frozenset()
    repository: Optional[str] = None  # restrict selection to one configured repository
    git: Optional[str] = None  # restrict selection to checkouts of this URL


@dataclass(frozen=True)
class ResolvedDependency:
    """One exact package version selected by the resolver."""
    name: str
    version: Version
    source: Source
    content_hash: str
    direct_dependencies: Tuple[str, ...] = ()
    is_binary: bool = False

    @classmethod
    def from_candidate(cls, candidate: Candidate) -> "ResolvedDependency":
        return cls(
            name=candidate.name,
            version=candidate.version,
            source=candidate.source,
            content_hash=candidate.content_hash,
            direct_dependencies=candidate.dependency_names,
            is_binary=candidate.is_binary,
        )


@dataclass
class Resolution:
    """Acyclic graph of exact package versions satisfying every constraint."""
    root: FrozenSet[str]
    graph: Dict[str, ResolvedDependency]

    def __contains__(self, name: object) -> bool:
        return name in self.graph

    def __len__(self) -> int:
        return len(self.graph)

    def __iter__(self) -> Iterator[ResolvedDependency]:
        for name in sorted(self.graph):
            yield self.graph[name]

    def get(self, name: str) -> Optional[ResolvedDependency]:
        return self.graph.get(name)

    def edges(self) -> Dict[str, Tuple[str, ...]]:
        """Adjacency view: package name -> direct dependency names."""
        return {name: dep.direct_dependencies for name, dep in self.graph.items()}

    def topological_order(self) -> List[str]:
        """Package names with every dependency before its dependents."""
        return topological_order(self.edges())

    def find_cycle(self) -> Optional[List[str]]:
        return find_cycle(self.edges())

    def versions(self) -> Mapping[str, Version]:
        return {name: dep.version for name, dep in self.graph.items()}


class ConstraintSet:
    """Accumulated requirements on one package, keyed by requirer name.

    A requirer contributes any number of requirements; the set is satisfied
    only when all of them are.
    """

    def __init__(self) -> None:
        self._by_requirer: Dict[str, Tuple[VersionRequirement, ...]] = {}

    def add(self, requirer: str, requirement: VersionRequirement) -> bool:
        """Add a requirement; returns True when the set changed."""
        existing = self._by_requirer.get(requirer, ())
        if requirement in existing:
            return False
        self._by_requirer[requirer] = existing + (requirement,)
        return True

    def replace(self, requirer: str, requirements: Iterable[VersionRequirement]) -> bool:
        """Set everything ``requirer`` contributes; returns True when the set changed."""
        new = tuple(sorted(dict.fromkeys(requirements), key=str))
        if self._by_requirer.get(requirer) == new:
            return False
        self._by_requirer[requirer] = new
        return True

    def retract(self, requirer: str) -> bool:
        """Drop everything ``requirer`` contributed; returns True when the set changed."""
        return self._by_requirer.pop(requirer, None) is not None

    @property
    def requirers(self) -> FrozenSet[str]:
        return frozenset(self._by_requirer)

    def items(self) -> List[Tuple[str, VersionRequirement]]:
        """Requirements in canonical order (requirer name, then text)."""
        return [
            (requirer, requirement)
            for requirer in sorted(self._by_requirer)
            for requirement in sorted(self._by_requirer[requirer], key=str)
        ]

    def satisfied_by(self, version: Version, source: Optional[Source] = None) -> bool:
        return all(req.satisfies(version, source) for _, req in self.items())

    def describe(self) -> List[str]:
        return [f"{requirer} requires {requirement}" for requirer, requirement in self.items()]

    def __bool__(self) -> bool:
        return bool(self._by_requirer)

    def __len__(self) -> int:
        return len(self._by_requirer)
