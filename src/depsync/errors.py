"""Exception taxonomy for resolution, lockfiles and plan execution.

Resolver errors are fatal to a resolution as a whole. Transport and step
execution errors are scoped to a single build step and are collected by the
plan executor instead of aborting the plan.
"""

from __future__ import annotations

from typing import Any, Iterable, Optional, Sequence


class DepsyncError(Exception):
    """Base class for all depsync errors."""


class InvalidVersionError(DepsyncError, ValueError):
    """Raised when a version string cannot be parsed."""

    def __init__(self, text: str):
        self.text = text
        super().__init__(f"Invalid version: {text!r}")


class InvalidRequirementError(DepsyncError, ValueError):
    """Raised when a requirement string cannot be parsed."""

    def __init__(self, text: str, reason: str = ""):
        self.text = text
        self.reason = reason
        message = f"Invalid requirement: {text!r}"
        if reason:
            message = f"{message} ({reason})"
        super().__init__(message)


class ResolutionError(DepsyncError):
    """Base class for errors that abort a resolution."""


class NotFoundError(ResolutionError):
    """No configured repository offers any version of a required package."""

    def __init__(self, package: str, requirers: Iterable[str] = ()):
        self.package = package
        self.requirers = frozenset(requirers)
        message = f"Package {package!r} was not found in any configured repository"
        if self.requirers:
            message += f" (required by {', '.join(sorted(self.requirers))})"
        super().__init__(message)


class ConflictError(ResolutionError):
    """No candidate satisfies the accumulated constraints of a package."""

    def __init__(self, package: str, requirers: Iterable[str], constraints: Sequence[str] = ()):
        self.package = package
        self.requirers = frozenset(requirers)
        self.constraints = tuple(constraints)
        message = (
            f"No version of {package!r} satisfies the requirements of "
            f"{', '.join(sorted(self.requirers))}"
        )
        if self.constraints:
            message += ": " + "; ".join(self.constraints)
        super().__init__(message)


class CycleError(ResolutionError):
    """The resolved dependency graph contains a cycle."""

    def __init__(self, path: Sequence[str]):
        self.path = tuple(path)
        super().__init__("Dependency cycle detected: " + " -> ".join(self.path))


class DivergenceError(ResolutionError):
    """The fixed-point iteration did not converge within its attempt bound."""

    def __init__(self, attempts: int, limit: int):
        self.attempts = attempts
        self.limit = limit
        super().__init__(
            f"Resolution did not converge after {attempts} selection attempts (limit {limit})"
        )


class LockfileCorruptError(DepsyncError):
    """Persisted lockfile content failed validation."""

    def __init__(self, field: str, reason: str):
        self.field = field
        self.reason = reason
        super().__init__(f"Corrupt lockfile at {field}: {reason}")


class TransportError(DepsyncError):
    """A network fetch failed after retries."""

    def __init__(self, url: str, reason: str):
        self.url = url
        self.reason = reason
        super().__init__(f"Failed to fetch {url}: {reason}")


class StepExecutionError(DepsyncError):
    """A single build step failed in the external executor."""

    def __init__(self, step_name: str, detail: str, cause: Optional[BaseException] = None):
        self.step_name = step_name
        self.detail = detail
        self.cause = cause
        super().__init__(f"Step for {step_name!r} failed: {detail}")


class PlanAbortedError(DepsyncError):
    """A step raised an unexpected exception, so the plan stopped early.

    ``result`` holds the outcome of every step as of the abort; the original
    exception is chained as ``__cause__``.
    """

    def __init__(self, step_name: str, result: Any):
        self.step_name = step_name
        self.result = result
        super().__init__(f"Plan aborted by an unexpected error in the step for {step_name!r}")


class ConfigError(DepsyncError, ValueError):
    """The project configuration is malformed."""

    def __init__(self, field: str, reason: str):
        self.field = field
        self.reason = reason
        super().__init__(f"Invalid configuration at {field}: {reason}")
