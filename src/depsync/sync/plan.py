"""Diff a Resolution against a Library snapshot into an ordered BuildPlan.

Install/Update steps follow the resolution's topological order, so every
package comes after the packages it depends on. Remove steps come first and
follow the reverse order of the library's own dependency graph, so dependents
are removed before the packages they used. The plan is pure data; running it
is the executor's job.
"""

from __future__ import annotations

import heapq
import logging
from dataclasses import dataclass, field
from typing import Dict, List, Mapping, Set, Tuple, Union

from depsync.constants import StepKind
from depsync.library import InstalledPackage, Library
from depsync.package import Source, describe_source
from depsync.resolver.models import Resolution
from depsync.versioning.models import Version

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class Install:
    """Install a package that is not in the library yet."""
    name: str
    version: Version
    source: Source


@dataclass(frozen=True)
class Update:
    """Replace an installed package with a different version or build."""
    name: str
    from_version: Version
    to_version: Version
    source: Source


@dataclass(frozen=True)
class Remove:
    """Remove a package the resolution no longer contains."""
    name: str


BuildStep = Union[Install, Update, Remove]


def step_kind(step: BuildStep) -> StepKind:
    if isinstance(step, Install):
        return StepKind.INSTALL
    if isinstance(step, Update):
        return StepKind.UPDATE
    if isinstance(step, Remove):
        return StepKind.REMOVE
    raise TypeError(f"Unknown build step: {type(step).__name__}")


def describe_step(step: BuildStep) -> str:
    if isinstance(step, Install):
        return f"install {step.name} {step.version} from {describe_source(step.source)}"
    if isinstance(step, Update):
        return f"update {step.name} {step.from_version} -> {step.to_version}"
    if isinstance(step, Remove):
        return f"remove {step.name}"
    raise TypeError(f"Unknown build step: {type(step).__name__}")


@dataclass(frozen=True)
class BuildPlan:
    """Ordered build steps plus, per step, the steps that must finish first."""
    steps: Tuple[BuildStep, ...] = ()
    prerequisites: Mapping[str, Tuple[str, ...]] = field(default_factory=dict)

    def __iter__(self):
        return iter(self.steps)

    def __len__(self) -> int:
        return len(self.steps)

    @property
    def is_empty(self) -> bool:
        return not self.steps

    def names(self) -> List[str]:
        return [step.name for step in self.steps]

    def step_for(self, name: str) -> BuildStep:
        for step in self.steps:
            if step.name == name:
                return step
        raise KeyError(name)

    def dependents(self) -> Dict[str, Tuple[str, ...]]:
        """Inverse of ``prerequisites``: step name -> steps waiting on it."""
        inverse: Dict[str, List[str]] = {step.name: [] for step in self.steps}
        for name, prereqs in self.prerequisites.items():
            for prereq in prereqs:
                inverse[prereq].append(name)
        return {name: tuple(sorted(waiting)) for name, waiting in inverse.items()}

    def summary(self) -> Dict[str, int]:
        counts = {kind.value: 0 for kind in StepKind}
        for step in self.steps:
            counts[step_kind(step).value] += 1
        return counts

    def validate(self) -> None:
        """Check that names are unique and every prerequisite precedes its step."""
        position: Dict[str, int] = {}
        for index, step in enumerate(self.steps):
            if step.name in position:
                raise ValueError(f"Plan has more than one step for {step.name!r}")
            position[step.name] = index
        for name, prereqs in self.prerequisites.items():
            if name not in position:
                raise ValueError(f"Prerequisites listed for unknown step {name!r}")
            for prereq in prereqs:
                if prereq not in position:
                    raise ValueError(f"{name!r} waits on unknown step {prereq!r}")
                if position[prereq] >= position[name]:
                    raise ValueError(f"{prereq!r} must run before {name!r}")


def _removal_order(edges: Mapping[str, Tuple[str, ...]]) -> List[str]:
    """Dependents before dependencies; cyclic leftovers are appended by name."""
    waiting = {name: 0 for name in edges}
    for name, deps in edges.items():
        for dep in deps:
            if dep != name:
                waiting[dep] += 1
    ready = [name for name, count in waiting.items() if count == 0]
    heapq.heapify(ready)
    order: List[str] = []
    while ready:
        name = heapq.heappop(ready)
        order.append(name)
        for dep in edges[name]:
            if dep == name:
                continue
            waiting[dep] -= 1
            if waiting[dep] == 0:
                heapq.heappush(ready, dep)
    leftovers = sorted(set(edges) - set(order))
    if leftovers:
        logger.warning("Installed packages %s depend on each other; removing by name", ", ".join(leftovers))
    return order + leftovers


def build_plan(
    resolution: Resolution,
    library: Union[Library, Mapping[str, InstalledPackage]],
    prune: bool = False,
) -> BuildPlan:
    """Compute the steps turning ``library`` into ``resolution``.

    Args:
        resolution: Target set of packages.
        library: Library snapshot (or its ``snapshot()`` mapping); never mutated.
        prune: Remove installed packages the resolution does not contain.
    """
    installed = library.snapshot() if isinstance(library, Library) else dict(library)
    graph = resolution.graph

    forward: List[BuildStep] = []
    for name in resolution.topological_order():
        dep = graph[name]
        current = installed.get(name)
        if current is None:
            forward.append(Install(name, dep.version, dep.source))
        elif current.version != dep.version or current.content_hash != dep.content_hash:
            forward.append(Update(name, current.version, dep.version, dep.source))

    prerequisites: Dict[str, Tuple[str, ...]] = {}
    stepped = {step.name for step in forward}
    for name in stepped:
        found: Set[str] = set()
        visited: Set[str] = set()
        stack = list(graph[name].direct_dependencies)
        while stack:
            dep = stack.pop()
            if dep in visited or dep not in graph:
                continue
            visited.add(dep)
            if dep in stepped:
                found.add(dep)
            else:
                stack.extend(graph[dep].direct_dependencies)
        prerequisites[name] = tuple(sorted(found))

    removals: List[BuildStep] = []
    if prune:
        removed = sorted(name for name in installed if name not in graph)
        removed_set = set(removed)
        edges = {
            name: tuple(sorted(d for d in installed[name].dependencies if d in removed_set))
            for name in removed
        }
        order = _removal_order(edges)
        position = {name: index for index, name in enumerate(order)}
        removals = [Remove(name) for name in order]
        waiting_on: Dict[str, Set[str]] = {name: set() for name in removed}
        for name, deps in edges.items():
            for dep in deps:
                # Edges inside a cycle that the order cannot honour are dropped.
                if position[name] < position[dep]:
                    waiting_on[dep].add(name)
        for name in removed:
            prerequisites[name] = tuple(sorted(waiting_on[name]))

    plan = BuildPlan(steps=tuple(removals + forward), prerequisites=prerequisites)
    logger.debug("Build plan: %s", plan.summary())
    return plan
