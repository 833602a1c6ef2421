"""Turning a Resolution into library changes: plan construction and execution."""

from .executor import PlanExecutor, PlanResult, StepExecutor, StepOutcome, StepStatus
from .plan import BuildPlan, BuildStep, Install, Remove, Update, build_plan, describe_step, step_kind

__all__ = [
    "BuildPlan",
    "BuildStep",
    "Install",
    "PlanExecutor",
    "PlanResult",
    "Remove",
    "StepExecutor",
    "StepOutcome",
    "StepStatus",
    "Update",
    "build_plan",
    "describe_step",
    "step_kind",
]
