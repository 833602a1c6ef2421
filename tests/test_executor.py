"""Tests for bounded-parallel plan execution."""

import threading
import time

import pytest

from depsync.cancellation import Cancellation
from depsync.errors import PlanAbortedError, StepExecutionError, TransportError
from depsync.package import RepositorySource
from depsync.sync import BuildPlan, Install, PlanExecutor, StepExecutor, StepStatus
from depsync.versioning import Version


def install(name):
    """Helper to build an install step."""
    return Install(name, Version("1.0"), RepositorySource("CRAN", Version("1.0")))


class RecordingExecutor(StepExecutor):
    """Step executor recording start/finish events, failing on request."""

    def __init__(self, failures=None, delay=0.0, on_start=None):
        self.failures = failures or {}
        self.delay = delay
        self.on_start = on_start
        self.events = []
        self.running = 0
        self.max_running = 0
        self._lock = threading.Lock()

    def execute(self, step):
        with self._lock:
            self.events.append(("start", step.name))
            self.running += 1
            self.max_running = max(self.max_running, self.running)
        try:
            if self.on_start:
                self.on_start(step)
            if self.delay:
                time.sleep(self.delay)
            error = self.failures.get(step.name)
            if error is not None:
                raise error
        finally:
            with self._lock:
                self.running -= 1
                self.events.append(("finish", step.name))

    def index(self, event, name):
        return self.events.index((event, name))


class TestPlanExecutor:
    """Test PlanExecutor scheduling and outcomes."""

    def test_dependencies_finish_before_dependents_start(self):
        """B must complete before A starts; C is independent."""
        plan = BuildPlan(
            steps=(install("B"), install("C"), install("A")),
            prerequisites={"A": ("B",), "B": (), "C": ()},
        )
        executor = RecordingExecutor(delay=0.01)
        result = PlanExecutor(executor, max_workers=3).run(plan)

        assert result.succeeded
        assert not result.partially_failed
        assert [o.name for o in result.completed()] == ["B", "C", "A"]
        assert executor.index("finish", "B") < executor.index("start", "A")
        assert all(o.duration_ms >= 0 for o in result.outcomes)

    def test_failure_skips_dependents_only(self):
        """A failed step skips what depends on it; independent steps still run."""
        plan = BuildPlan(
            steps=(install("B"), install("C"), install("A"), install("Top")),
            prerequisites={"A": ("B",), "Top": ("A",), "B": (), "C": ()},
        )
        executor = RecordingExecutor(failures={"B": StepExecutionError("B", "compiler error")})
        result = PlanExecutor(executor, max_workers=2).run(plan)

        assert result.partially_failed
        assert not result.cancelled
        assert result.outcome_for("B").status is StepStatus.FAILED
        assert "compiler error" in result.outcome_for("B").error
        assert result.outcome_for("C").status is StepStatus.COMPLETED
        assert [o.name for o in result.skipped()] == ["A", "Top"]
        assert result.outcome_for("Top").blocked_by == "B"
        assert ("start", "A") not in executor.events

    def test_transport_error_is_step_failure(self):
        """Network failures are isolated to their step."""
        plan = BuildPlan(steps=(install("A"), install("B")), prerequisites={"A": (), "B": ()})
        executor = RecordingExecutor(failures={"A": TransportError("https://cran.example.org", "timeout")})
        result = PlanExecutor(executor).run(plan)
        assert [o.name for o in result.failed()] == ["A"]
        assert [o.name for o in result.completed()] == ["B"]
        assert result.summary() == {"completed": 1, "failed": 1, "skipped": 0, "not_started": 0}

    def test_unexpected_errors_abort_with_partial_result(self):
        """Programming errors stop the plan but keep every step's outcome."""
        plan = BuildPlan(
            steps=(install("B"), install("C"), install("A")),
            prerequisites={"B": (), "C": (), "A": ("B",)},
        )
        executor = RecordingExecutor(failures={"B": RuntimeError("bug")})
        with pytest.raises(PlanAbortedError) as excinfo:
            PlanExecutor(executor, max_workers=1).run(plan)

        assert isinstance(excinfo.value.__cause__, RuntimeError)
        assert excinfo.value.step_name == "B"
        result = excinfo.value.result
        assert result.outcome_for("B").status is StepStatus.FAILED
        assert "bug" in result.outcome_for("B").error
        assert result.outcome_for("A").status is StepStatus.SKIPPED
        assert result.outcome_for("C").status is StepStatus.NOT_STARTED

    def test_parallelism_is_bounded(self):
        """No more than max_workers steps run at once."""
        names = [f"P{i}" for i in range(6)]
        plan = BuildPlan(steps=tuple(install(n) for n in names), prerequisites={n: () for n in names})
        executor = RecordingExecutor(delay=0.02)
        result = PlanExecutor(executor, max_workers=2).run(plan)
        assert len(result.completed()) == 6
        assert executor.max_running <= 2

    def test_cancellation_stops_new_steps(self):
        """In-flight steps finish; steps never started are reported as such."""
        cancellation = Cancellation()
        plan = BuildPlan(
            steps=(install("A"), install("B"), install("C")),
            prerequisites={"A": (), "B": (), "C": ()},
        )
        executor = RecordingExecutor(on_start=lambda step: cancellation.cancel("user interrupt"))
        result = PlanExecutor(executor, max_workers=1, cancellation=cancellation).run(plan)

        assert result.cancelled
        assert cancellation.reason == "user interrupt"
        assert result.outcome_for("A").status is StepStatus.COMPLETED
        assert [o.name for o in result.not_started()] == ["B", "C"]

    def test_empty_plan(self):
        """Running an empty plan does nothing."""
        result = PlanExecutor(RecordingExecutor()).run(BuildPlan())
        assert result.outcomes == []
        assert result.succeeded


class TestCancellation:
    """Test the cancellation token."""

    def test_first_reason_wins(self):
        """Cancelling twice keeps the original reason."""
        token = Cancellation()
        assert not token.is_cancelled()
        token.cancel("first")
        token.cancel("second")
        assert token.is_cancelled()
        assert token.reason == "first"
        assert token.wait(0)
