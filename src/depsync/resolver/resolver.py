"""Fixed-point dependency resolver.

The resolver keeps, per package, the conjunction of every requirement
contributed so far and greedily selects the best candidate satisfying it:
the highest eligible version from the first repository (in configured
priority order) that offers any satisfying version. Repository priority
always dominates version recency. Selections are revisited when a new
constraint invalidates them; there is no backtracking beyond that, so an
unsatisfiable constraint set is reported as a conflict.
"""

from __future__ import annotations

import logging
from collections import defaultdict, deque
from concurrent.futures import ThreadPoolExecutor
from dataclasses import dataclass, replace
from typing import (
    TYPE_CHECKING, Deque, Dict, FrozenSet, Iterable, List, Optional, Sequence, Set, Tuple,
)

from depsync.common.logging_utils import Timer, extra_context, is_debug_enabled
from depsync.constants import Constants
from depsync.errors import ConflictError, CycleError, DivergenceError, NotFoundError
from depsync.package import (
    Candidate, Source, VersionControlSource, describe_source, is_eligible, source_repository,
)
from depsync.repository.database import RepositoryDatabase
from depsync.settings import Settings
from depsync.versioning.models import Platform, VersionRequirement

from .graph import find_cycle, reachable
from .models import ConstraintSet, Resolution, ResolvedDependency, UnresolvedDependency

if TYPE_CHECKING:
    from depsync.lockfile import Lockfile

logger = logging.getLogger(__name__)

Requirements = Tuple[Tuple[str, VersionRequirement], ...]


@dataclass(frozen=True)
class _Selection:
    """The current choice for one package and the requirements it imposes."""
    resolved: ResolvedDependency
    dependencies: Requirements
    from_lock: bool = False

    def grouped_dependencies(self) -> Dict[str, Tuple[VersionRequirement, ...]]:
        grouped: Dict[str, List[VersionRequirement]] = defaultdict(list)
        for name, requirement in self.dependencies:
            grouped[name].append(requirement)
        return {name: tuple(reqs) for name, reqs in grouped.items()}


def _candidate_sort_key(candidate: Candidate):
    return (candidate.version, candidate.is_binary, candidate.content_hash)


class Resolver:
    """Resolve root dependencies against an ordered list of repositories."""

    def __init__(
        self,
        repositories: Sequence[RepositoryDatabase],
        platform: Optional[Platform] = None,
        *,
        lockfile: Optional["Lockfile"] = None,
        force_update: Iterable[str] = (),
        max_workers: int = Constants.DEFAULT_FETCH_WORKERS,
    ):
        """Initialize the resolver.

        Args:
            repositories: Repository databases in priority order.
            platform: Target platform; binaries for other platforms are ignored.
            lockfile: Optional previous lockfile whose entries are reused when
                they still satisfy the constraints.
            force_update: Package names never taken from the lockfile.
            max_workers: Thread count for concurrent candidate lookups.
        """
        self.repositories = list(repositories)
        self.platform = platform
        self.force_update: FrozenSet[str] = frozenset(force_update)
        self.max_workers = max(1, int(max_workers))
        self.locked_packages: Dict[str, ResolvedDependency] = {}
        if lockfile is not None:
            if platform is None or lockfile.is_reusable_for(platform):
                self.locked_packages = {dep.name: dep for dep in lockfile.packages}
            else:
                logger.info(
                    "Lockfile was produced for %s/%s R %s; resolving from scratch",
                    lockfile.platform.os,
                    lockfile.platform.arch,
                    lockfile.platform.toolchain_version,
                )

    @classmethod
    def from_settings(
        cls,
        repositories: Sequence[RepositoryDatabase],
        settings: Settings,
        platform: Optional[Platform] = None,
        **kwargs,
    ) -> "Resolver":
        """Build a resolver whose lookup thread count comes from ``settings``."""
        return cls(repositories, platform, max_workers=settings.fetch_workers, **kwargs)

    def resolve(self, dependencies: Sequence[UnresolvedDependency]) -> Resolution:
        """Compute a Resolution for ``dependencies``.

        Raises:
            NotFoundError: a required package is offered by no repository.
            ConflictError: no candidate satisfies a package's constraints.
            DivergenceError: the iteration exceeded its attempt bound.
            CycleError: the selected graph contains a cycle.
        """
        with Timer() as t:
            with ThreadPoolExecutor(max_workers=self.max_workers) as pool:
                run = _ResolutionRun(self, pool)
                resolution = run.execute(dependencies)
        logger.info(
            "Resolved %d packages in %d selection attempts",
            len(resolution),
            run.attempts,
            extra=extra_context(
                event="resolution_complete",
                component="resolver",
                outcome="success",
                duration_ms=t.duration_ms(),
            ),
        )
        return resolution


class _ResolutionRun:
    """Mutable state of a single ``Resolver.resolve`` call."""

    def __init__(self, resolver: Resolver, pool: ThreadPoolExecutor):
        self.resolver = resolver
        self.pool = pool
        self.repo_names = [db.name for db in resolver.repositories]
        self.constraints: Dict[str, ConstraintSet] = {}
        self.restrictions: Dict[str, str] = {}
        self.git_urls: Dict[str, str] = {}
        self.selected: Dict[str, _Selection] = {}
        self.candidates: Dict[str, Tuple[Tuple[Candidate, ...], ...]] = {}
        self.seen: Set[str] = set()
        self.queue: Deque[str] = deque()
        self.attempts = 0

    # -- worklist -------------------------------------------------------------

    def enqueue(self, name: str) -> None:
        self.seen.add(name)
        self.queue.append(name)

    def execute(self, dependencies: Sequence[UnresolvedDependency]) -> Resolution:
        roots = sorted({dep.name for dep in dependencies})
        for dep in sorted(dependencies, key=lambda d: (d.name, str(d.requirement))):
            requirers = sorted(dep.requested_by) or [Constants.ROOT_REQUIRER]
            constraint_set = self.constraints.setdefault(dep.name, ConstraintSet())
            for requirer in requirers:
                constraint_set.add(requirer, dep.requirement)
            if dep.repository:
                if dep.repository not in self.repo_names:
                    logger.error(
                        "%s is pinned to repository %s which is not configured",
                        dep.name,
                        dep.repository,
                    )
                    raise NotFoundError(dep.name, requirers)
                self.restrictions[dep.name] = dep.repository
            if dep.git:
                self.git_urls[dep.name] = dep.git
        for name in roots:
            self.enqueue(name)

        while True:
            while self.queue:
                batch = list(dict.fromkeys(self.queue))
                self.queue.clear()
                self.prefetch(batch)
                for name in batch:
                    self.visit(name)
            if self.prune_unreachable(roots):
                continue
            stale = [name for name in sorted(self.selected) if not self.is_satisfied(name)]
            if not stale:
                break
            for name in stale:
                self.enqueue(name)

        graph: Dict[str, ResolvedDependency] = {}
        for name in sorted(self.selected):
            selection = self.selected[name]
            names = tuple(sorted({dep for dep, _ in selection.dependencies}))
            graph[name] = replace(selection.resolved, direct_dependencies=names)

        cycle = find_cycle({name: dep.direct_dependencies for name, dep in graph.items()})
        if cycle:
            raise CycleError(cycle)
        return Resolution(root=frozenset(roots), graph=graph)

    # -- candidate lookup -------------------------------------------------------

    def prefetch(self, names: Sequence[str]) -> None:
        """Fetch candidates for unseen names from every repository concurrently.

        All lookups complete before any selection uses them, so the thread
        scheduling cannot influence the outcome.
        """
        missing = sorted({name for name in names if name not in self.candidates})
        if not missing:
            return
        repositories = self.resolver.repositories
        futures = {
            (name, index): self.pool.submit(db.candidates, name)
            for name in missing
            for index, db in enumerate(repositories)
        }
        for name in missing:
            self.candidates[name] = tuple(
                tuple(sorted(futures[(name, index)].result(), key=_candidate_sort_key, reverse=True))
                for index in range(len(repositories))
            )

    def attempt_limit(self) -> int:
        widest = max(
            (sum(len(offered) for offered in per_repo) for per_repo in self.candidates.values()),
            default=1,
        )
        return max(1, len(self.seen)) * max(1, widest)

    # -- selection --------------------------------------------------------------

    def allowed_source(self, name: str, source: Source) -> bool:
        """Whether ``source`` honours the repository or git URL ``name`` is pinned to."""
        restriction = self.restrictions.get(name)
        if restriction and source_repository(source) != restriction:
            return False
        git_url = self.git_urls.get(name)
        if git_url and not (isinstance(source, VersionControlSource) and source.url == git_url):
            return False
        return True

    def is_satisfied(self, name: str) -> bool:
        selection = self.selected.get(name)
        constraint_set = self.constraints.get(name)
        if selection is None or constraint_set is None:
            return False
        if not self.allowed_source(name, selection.resolved.source):
            return False
        return constraint_set.satisfied_by(selection.resolved.version, selection.resolved.source)

    def visit(self, name: str) -> None:
        if not self.constraints.get(name):
            return
        if self.is_satisfied(name):
            return
        self.select(name)

    def select(self, name: str) -> None:
        self.attempts += 1
        limit = self.attempt_limit()
        if self.attempts > limit:
            raise DivergenceError(self.attempts, limit)

        constraint_set = self.constraints[name]
        choice = self.reuse_locked(name, constraint_set) or self.best_candidate(name, constraint_set)
        previous = self.selected.get(name)
        self.selected[name] = choice

        if is_debug_enabled(logger):
            logger.debug(
                "Selected %s %s",
                name,
                choice.resolved.version,
                extra=extra_context(
                    event="selection",
                    component="resolver",
                    package=name,
                    outcome="locked" if choice.from_lock else "selected",
                    previous=str(previous.resolved.version) if previous else None,
                    source=describe_source(choice.resolved.source),
                    attempt=self.attempts,
                ),
            )

        new_deps = choice.grouped_dependencies()
        old_deps = previous.grouped_dependencies() if previous else {}
        for dep in sorted(set(old_deps) - set(new_deps)):
            self.drop_requirer(dep, name)
        for dep in sorted(new_deps):
            constraint_set = self.constraints.setdefault(dep, ConstraintSet())
            changed = constraint_set.replace(name, new_deps[dep])
            if changed or dep not in self.selected:
                self.enqueue(dep)

    def reuse_locked(self, name: str, constraint_set: ConstraintSet) -> Optional[_Selection]:
        """Return the locked entry for ``name`` when it may be kept unchanged."""
        entry = self.resolver.locked_packages.get(name)
        if entry is None or name in self.resolver.force_update:
            return None
        repo = source_repository(entry.source)
        if repo is not None and repo not in self.repo_names:
            return None
        if not self.allowed_source(name, entry.source):
            return None
        if not constraint_set.satisfied_by(entry.version, entry.source):
            return None
        return _Selection(entry, self.locked_requirements(entry), from_lock=True)

    def locked_requirements(self, entry: ResolvedDependency) -> Requirements:
        """Requirements of a locked entry, taken from the matching candidate when offered."""
        for per_repo in self.candidates.get(entry.name, ()):
            for candidate in per_repo:
                if candidate.version == entry.version and candidate.source == entry.source:
                    return candidate.dependencies
        return tuple((dep, VersionRequirement.any()) for dep in entry.direct_dependencies)

    def best_candidate(self, name: str, constraint_set: ConstraintSet) -> _Selection:
        """Highest satisfying candidate from the first repository that has one."""
        restriction = self.restrictions.get(name)
        per_repo = self.candidates.get(name, ())
        offered = False
        for repo_name, candidates in zip(self.repo_names, per_repo):
            if restriction and repo_name != restriction:
                continue
            offered = offered or bool(candidates)
            for candidate in candidates:
                if not is_eligible(candidate, self.resolver.platform):
                    continue
                if not self.allowed_source(name, candidate.source):
                    continue
                if constraint_set.satisfied_by(candidate.version, candidate.source):
                    return _Selection(ResolvedDependency.from_candidate(candidate), candidate.dependencies)
        if not offered:
            raise NotFoundError(name, constraint_set.requirers)
        raise ConflictError(name, constraint_set.requirers, constraint_set.describe())

    # -- retraction -------------------------------------------------------------

    def drop_requirer(self, name: str, requirer: str) -> None:
        """Retract ``requirer``'s constraints on ``name``, cascading through orphans."""
        stack = [(name, requirer)]
        while stack:
            target, who = stack.pop()
            constraint_set = self.constraints.get(target)
            if constraint_set is None or not constraint_set.retract(who) or constraint_set:
                continue
            del self.constraints[target]
            orphan = self.selected.pop(target, None)
            if orphan is not None:
                for dep in sorted(orphan.grouped_dependencies(), reverse=True):
                    stack.append((dep, target))

    def prune_unreachable(self, roots: Sequence[str]) -> bool:
        """Drop selections kept alive only by cycles among orphans."""
        edges = {
            name: tuple(dep for dep, _ in selection.dependencies)
            for name, selection in self.selected.items()
        }
        keep = reachable(edges, roots)
        orphans = sorted(set(self.selected) - keep)
        if not orphans:
            return False
        for orphan in orphans:
            del self.selected[orphan]
            self.constraints.pop(orphan, None)
        for constraint_set in self.constraints.values():
            for orphan in orphans:
                constraint_set.retract(orphan)
        return True
