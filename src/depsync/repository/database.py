"""Read-only lookup of package candidates offered by one repository."""

from __future__ import annotations

from abc import ABC, abstractmethod
from collections import defaultdict
from typing import Dict, Iterable, List, Tuple

from depsync.package import Candidate, Repository


class RepositoryDatabase(ABC):
    """Candidates published by one configured repository.

    Implementations must be safe to query from several threads at once.
    """

    def __init__(self, name: str, url: str):
        self.name = name
        self.url = url

    @property
    def repository(self) -> Repository:
        return Repository(self.name, self.url)

    @abstractmethod
    def candidates(self, name: str) -> Tuple[Candidate, ...]:
        """Return candidates for ``name`` in descending version order.

        Unknown names yield an empty tuple rather than an error.
        """

    def package_names(self) -> Tuple[str, ...]:
        """Names this database knows about; empty when it cannot enumerate."""
        return ()


class InMemoryRepositoryDatabase(RepositoryDatabase):
    """Repository database backed by an in-memory candidate list."""

    def __init__(self, name: str, url: str, candidates: Iterable[Candidate] = ()):
        super().__init__(name, url)
        grouped: Dict[str, List[Candidate]] = defaultdict(list)
        for candidate in candidates:
            grouped[candidate.name].append(candidate)
        # Binary builds sort ahead of source builds of the same version.
        self._by_name: Dict[str, Tuple[Candidate, ...]] = {
            pkg: tuple(sorted(items, key=lambda c: (c.version, c.is_binary), reverse=True))
            for pkg, items in grouped.items()
        }

    def candidates(self, name: str) -> Tuple[Candidate, ...]:
        return self._by_name.get(name, ())

    def package_names(self) -> Tuple[str, ...]:
        return tuple(sorted(self._by_name))

    def __len__(self) -> int:
        return sum(len(items) for items in self._by_name.values())

    def __repr__(self) -> str:
        return f"InMemoryRepositoryDatabase(name={self.name!r}, packages={len(self._by_name)})"
