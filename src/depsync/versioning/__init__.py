"""Versions, version requirements and requirement parsing."""

from .models import Platform, RequirementKind, Version, VersionRequirement, satisfies
from .parser import parse_dependency, parse_dependency_field, parse_requirement

__all__ = [
    "Platform",
    "RequirementKind",
    "Version",
    "VersionRequirement",
    "parse_dependency",
    "parse_dependency_field",
    "parse_requirement",
    "satisfies",
]
