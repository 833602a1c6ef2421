"""depsync: resolve, lock and synchronize R package dependencies."""

from depsync.cache import CacheKey, ContentCache
from depsync.cancellation import Cancellation
from depsync.config import ProjectConfig
from depsync.errors import (
    ConfigError,
    ConflictError,
    CycleError,
    DepsyncError,
    DivergenceError,
    InvalidRequirementError,
    InvalidVersionError,
    LockfileCorruptError,
    NotFoundError,
    PlanAbortedError,
    ResolutionError,
    StepExecutionError,
    TransportError,
)
from depsync.library import InstalledPackage, Library
from depsync.lockfile import Lockfile, load, read_lockfile, save, write_lockfile
from depsync.package import Candidate, LocalSource, Repository, RepositorySource, VersionControlSource
from depsync.resolver import Resolution, ResolvedDependency, Resolver, UnresolvedDependency
from depsync.settings import Settings, load_settings
from depsync.sync import BuildPlan, PlanExecutor, PlanResult, StepExecutor, build_plan
from depsync.versioning import Platform, Version, VersionRequirement, parse_requirement

__version__ = "0.1.0"

__all__ = [
    "BuildPlan",
    "CacheKey",
    "Cancellation",
    "Candidate",
    "ConfigError",
    "ConflictError",
    "ContentCache",
    "CycleError",
    "DepsyncError",
    "DivergenceError",
    "InstalledPackage",
    "InvalidRequirementError",
    "InvalidVersionError",
    "Library",
    "LocalSource",
    "Lockfile",
    "LockfileCorruptError",
    "NotFoundError",
    "PlanAbortedError",
    "PlanExecutor",
    "PlanResult",
    "Platform",
    "ProjectConfig",
    "Repository",
    "RepositorySource",
    "Resolution",
    "ResolutionError",
    "ResolvedDependency",
    "Resolver",
    "Settings",
    "StepExecutionError",
    "StepExecutor",
    "TransportError",
    "UnresolvedDependency",
    "Version",
    "VersionControlSource",
    "VersionRequirement",
    "build_plan",
    "load",
    "load_settings",
    "parse_requirement",
    "read_lockfile",
    "save",
    "write_lockfile",
]
