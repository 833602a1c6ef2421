"""Bounded-parallel execution of a BuildPlan.

Steps are submitted to a thread pool as soon as every prerequisite step has
completed (the ready frontier). A failed step marks every step that depends
on it, directly or transitively, as skipped while independent branches keep
going. Cancellation is checked before each submission: steps already running
finish, steps never submitted are reported as not started. Any other
exception from a step stops new submissions the same way and is re-raised
as PlanAbortedError carrying the partial result.
"""

from __future__ import annotations

import heapq
import logging
from abc import ABC, abstractmethod
from collections import deque
from concurrent.futures import FIRST_COMPLETED, Future, ThreadPoolExecutor, wait
from dataclasses import dataclass, field
from enum import Enum
from typing import Dict, List, Optional, Set, Tuple

from depsync.cancellation import Cancellation
from depsync.common.logging_utils import Timer, extra_context, is_debug_enabled
from depsync.constants import Constants
from depsync.errors import PlanAbortedError, StepExecutionError, TransportError
from depsync.settings import Settings

from .plan import BuildPlan, BuildStep, describe_step, step_kind

logger = logging.getLogger(__name__)


class StepStatus(Enum):
    """Final status of one plan step."""
    COMPLETED = "completed"
    FAILED = "failed"
    SKIPPED = "skipped"
    NOT_STARTED = "not_started"


@dataclass(frozen=True)
class StepOutcome:
    """What happened to one step."""
    step: BuildStep
    status: StepStatus
    error: Optional[str] = None
    duration_ms: float = 0.0
    blocked_by: Optional[str] = None

    @property
    def name(self) -> str:
        return self.step.name


@dataclass
class PlanResult:
    """Per-step outcomes of a plan run, in plan order."""
    outcomes: List[StepOutcome] = field(default_factory=list)
    cancelled: bool = False

    def _with(self, status: StepStatus) -> List[StepOutcome]:
        return [o for o in self.outcomes if o.status is status]

    def completed(self) -> List[StepOutcome]:
        return self._with(StepStatus.COMPLETED)

    def failed(self) -> List[StepOutcome]:
        return self._with(StepStatus.FAILED)

    def skipped(self) -> List[StepOutcome]:
        return self._with(StepStatus.SKIPPED)

    def not_started(self) -> List[StepOutcome]:
        return self._with(StepStatus.NOT_STARTED)

    @property
    def partially_failed(self) -> bool:
        return bool(self.failed())

    @property
    def succeeded(self) -> bool:
        return all(o.status is StepStatus.COMPLETED for o in self.outcomes)

    def outcome_for(self, name: str) -> StepOutcome:
        for outcome in self.outcomes:
            if outcome.name == name:
                return outcome
        raise KeyError(name)

    def summary(self) -> Dict[str, int]:
        counts = {status.value: 0 for status in StepStatus}
        for outcome in self.outcomes:
            counts[outcome.status.value] += 1
        return counts


class StepExecutor(ABC):
    """Performs the real download/clone/build/remove work for one step."""

    @abstractmethod
    def execute(self, step: BuildStep) -> None:
        """Run ``step``; raise StepExecutionError or TransportError on failure."""


class PlanExecutor:
    """Run plans against a StepExecutor with bounded parallelism."""

    def __init__(
        self,
        step_executor: StepExecutor,
        max_workers: int = Constants.DEFAULT_MAX_WORKERS,
        cancellation: Optional[Cancellation] = None,
    ):
        self.step_executor = step_executor
        self.max_workers = max(1, int(max_workers))
        self.cancellation = cancellation or Cancellation()

    @classmethod
    def from_settings(
        cls,
        step_executor: StepExecutor,
        settings: Settings,
        cancellation: Optional[Cancellation] = None,
    ) -> "PlanExecutor":
        return cls(step_executor, max_workers=settings.max_workers, cancellation=cancellation)

    def _run_step(self, step: BuildStep) -> StepOutcome:
        with Timer() as t:
            try:
                self.step_executor.execute(step)
            except (StepExecutionError, TransportError) as exc:
                logger.error("Failed to %s: %s", describe_step(step), exc)
                return StepOutcome(step, StepStatus.FAILED, str(exc), t.duration_ms())
        if is_debug_enabled(logger):
            logger.debug(
                "Step finished",
                extra=extra_context(
                    event="step_complete",
                    component="executor",
                    action=step_kind(step).value,
                    package=step.name,
                    outcome="success",
                    duration_ms=t.duration_ms(),
                ),
            )
        return StepOutcome(step, StepStatus.COMPLETED, None, t.duration_ms())

    def run(self, plan: BuildPlan) -> PlanResult:
        """Execute ``plan`` and report every step's final status."""
        plan.validate()
        position = {step.name: index for index, step in enumerate(plan.steps)}
        steps = {step.name: step for step in plan.steps}
        waiting: Dict[str, Set[str]] = {
            name: set(plan.prerequisites.get(name, ())) for name in steps
        }
        dependents = plan.dependents()
        outcomes: Dict[str, StepOutcome] = {}

        ready: List[tuple] = [(position[name], name) for name, prereqs in waiting.items() if not prereqs]
        heapq.heapify(ready)
        in_flight: Dict[Future, str] = {}
        aborted: Optional[Tuple[str, Exception]] = None

        with ThreadPoolExecutor(max_workers=self.max_workers) as pool:
            while ready or in_flight:
                while (
                    ready
                    and len(in_flight) < self.max_workers
                    and aborted is None
                    and not self.cancellation.is_cancelled()
                ):
                    _, name = heapq.heappop(ready)
                    logger.info("Starting: %s", describe_step(steps[name]))
                    in_flight[pool.submit(self._run_step, steps[name])] = name
                if not in_flight:
                    break

                done, _ = wait(list(in_flight), return_when=FIRST_COMPLETED)
                for future in sorted(done, key=lambda f: position[in_flight[f]]):
                    name = in_flight.pop(future)
                    try:
                        outcome = future.result()
                    except Exception as exc:
                        # Raised again as the cause of PlanAbortedError once running steps finish.
                        logger.error("Unexpected error while trying to %s: %r", describe_step(steps[name]), exc)
                        outcome = StepOutcome(steps[name], StepStatus.FAILED, repr(exc))
                        if aborted is None:
                            aborted = (name, exc)
                    outcomes[name] = outcome
                    if outcome.status is StepStatus.COMPLETED:
                        for dependent in dependents[name]:
                            waiting[dependent].discard(name)
                            if not waiting[dependent] and dependent not in outcomes:
                                heapq.heappush(ready, (position[dependent], dependent))
                    else:
                        self._skip_dependents(name, dependents, steps, outcomes)

        cancelled = self.cancellation.is_cancelled()
        for name in steps:
            if name not in outcomes:
                outcomes[name] = StepOutcome(steps[name], StepStatus.NOT_STARTED)

        result = PlanResult(
            outcomes=[outcomes[step.name] for step in plan.steps],
            cancelled=cancelled,
        )
        log = logger.warning if result.partially_failed or cancelled else logger.info
        log("Plan finished: %s%s", result.summary(), " (cancelled)" if cancelled else "")
        if aborted is not None:
            raise PlanAbortedError(aborted[0], result) from aborted[1]
        return result

    @staticmethod
    def _skip_dependents(failed, dependents, steps, outcomes) -> None:
        queue = deque(dependents[failed])
        while queue:
            name = queue.popleft()
            if name in outcomes:
                continue
            outcomes[name] = StepOutcome(
                steps[name],
                StepStatus.SKIPPED,
                f"dependency {failed!r} failed",
                blocked_by=failed,
            )
            logger.warning("Skipping %s: dependency %s failed", describe_step(steps[name]), failed)
            queue.extend(dependents[name])
