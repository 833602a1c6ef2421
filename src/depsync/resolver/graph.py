"""Graph algorithms over name-keyed adjacency maps.

All traversals are iterative so deep dependency chains cannot hit the
interpreter recursion limit. Edges pointing at names that are not keys of
the map are ignored.
"""

from __future__ import annotations

import heapq
from collections import deque
from typing import Dict, Iterable, List, Mapping, Optional, Sequence, Set

from depsync.errors import CycleError

_WHITE, _GRAY, _BLACK = 0, 1, 2


def find_cycle(edges: Mapping[str, Sequence[str]]) -> Optional[List[str]]:
    """Return one cycle as a closed path (``[a, b, a]``) or None.

    Depth-first search with three-color marking, visiting nodes and children
    in sorted order so the reported cycle is deterministic.
    """
    color: Dict[str, int] = {name: _WHITE for name in edges}
    for start in sorted(edges):
        if color[start] != _WHITE:
            continue
        color[start] = _GRAY
        path = [start]
        stack = [iter(sorted(edges[start]))]
        while stack:
            advanced = False
            for child in stack[-1]:
                state = color.get(child)
                if state is None or state == _BLACK:
                    continue
                if state == _GRAY:
                    return path[path.index(child):] + [child]
                color[child] = _GRAY
                path.append(child)
                stack.append(iter(sorted(edges[child])))
                advanced = True
                break
            if not advanced:
                color[path.pop()] = _BLACK
                stack.pop()
    return None


def topological_order(edges: Mapping[str, Sequence[str]]) -> List[str]:
    """Order names so that every dependency precedes its dependents.

    Ties are broken by name. Raises CycleError when the graph is cyclic.
    """
    pending: Dict[str, int] = {}
    dependents: Dict[str, List[str]] = {name: [] for name in edges}
    for name, deps in edges.items():
        known = {dep for dep in deps if dep in edges and dep != name}
        pending[name] = len(known)
        for dep in known:
            dependents[dep].append(name)
        if name in deps:
            raise CycleError([name, name])

    ready = [name for name, count in pending.items() if count == 0]
    heapq.heapify(ready)
    order: List[str] = []
    while ready:
        name = heapq.heappop(ready)
        order.append(name)
        for dependent in dependents[name]:
            pending[dependent] -= 1
            if pending[dependent] == 0:
                heapq.heappush(ready, dependent)

    if len(order) != len(edges):
        raise CycleError(find_cycle(edges) or sorted(set(edges) - set(order)))
    return order


def reachable(edges: Mapping[str, Sequence[str]], roots: Iterable[str]) -> Set[str]:
    """Names reachable from ``roots`` (roots included when present in ``edges``)."""
    seen: Set[str] = set()
    queue = deque(root for root in roots if root in edges)
    while queue:
        name = queue.popleft()
        if name in seen:
            continue
        seen.add(name)
        queue.extend(dep for dep in edges[name] if dep in edges and dep not in seen)
    return seen
