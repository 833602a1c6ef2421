"""Dependency resolution: constraint accumulation, selection and graph checks."""

from .graph import find_cycle, reachable, topological_order
from .models import ConstraintSet, Resolution, ResolvedDependency, UnresolvedDependency
from .resolver import Resolver

__all__ = [
    "ConstraintSet",
    "Resolution",
    "ResolvedDependency",
    "Resolver",
    "UnresolvedDependency",
    "find_cycle",
    "reachable",
    "topological_order",
]
