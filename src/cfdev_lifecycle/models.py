"""Data models for cfdev-lifecycle."""

from __future__ import annotations

from enum import Enum

from pydantic import BaseModel, ConfigDict, Field, model_validator

from cfdev_lifecycle import constants
from cfdev_lifecycle.exceptions import LifecycleError, ProbeTimeoutError


class ProcessRecord(BaseModel):
    """One row of a process-table snapshot.

    Produced fresh by each scan and never mutated. The process it names may
    have exited (or its pid been reused) by the time the record is read.
    """

    model_config = ConfigDict(frozen=True)

    pid: int = Field(gt=0, description="OS process id")
    command_line: str = Field(description="Full command line, arguments joined by spaces")


class PollPolicy(BaseModel):
    """Fixed-interval, bounded-timeout polling policy."""

    model_config = ConfigDict(frozen=True, extra="forbid")

    timeout: float = Field(gt=0, description="Deadline in seconds")
    interval: float = Field(
        default=constants.DEFAULT_POLL_INTERVAL_SECONDS,
        gt=0,
        description="Constant sleep between checks in seconds",
    )

    @model_validator(mode="after")
    def _interval_within_timeout(self) -> PollPolicy:
        if self.timeout < self.interval:
            raise ValueError(f"timeout ({self.timeout}s) must be >= interval ({self.interval}s)")
        return self


class WaitOutcome(str, Enum):
    """Result of polling a probe."""

    READY = "ready"
    TIMED_OUT = "timed_out"


class WaitResult(BaseModel):
    """Outcome of one PollWaiter.wait() call."""

    outcome: WaitOutcome
    elapsed: float = Field(description="Seconds spent waiting")
    attempts: int = Field(ge=0, description="Number of probe checks performed")

    @property
    def ready(self) -> bool:
        return self.outcome == WaitOutcome.READY


class ReapOutcome(str, Enum):
    """Result of a reap."""

    CLEAN = "clean"
    LEAK_DETECTED = "leak_detected"


class ReapResult(BaseModel):
    """Outcome of ProcessReaper.reap()."""

    outcome: ReapOutcome
    killed: list[ProcessRecord] = Field(default_factory=list, description="Processes signalled in the kill pass")
    survivors: list[ProcessRecord] = Field(default_factory=list, description="Matches found by the verify pass")

    @property
    def clean(self) -> bool:
        return self.outcome == ReapOutcome.CLEAN


class ScenarioStatus(str, Enum):
    """Terminal state of a scenario run."""

    COMPLETED = "completed"
    FAILED_AT_PHASE = "failed_at_phase"


class PhaseTiming(BaseModel):
    """How long one phase took to become ready."""

    name: str
    elapsed: float
    attempts: int


class ScenarioResult(BaseModel):
    """Outcome of LifecycleSequencer.run()."""

    scenario: str
    status: ScenarioStatus
    failed_phase: str | None = Field(default=None, description="Phase that failed (None when completed)")
    reason: str | None = Field(default=None, description="Why the phase failed")
    phase_timeout: float | None = Field(default=None, description="Deadline of the failed phase, if it timed out")
    phase_elapsed: float | None = Field(default=None, description="Time spent in the failed phase")
    elapsed: float = Field(default=0.0, description="Total scenario wall time in seconds")
    phases: list[PhaseTiming] = Field(default_factory=list, description="Phases that became ready, in order")
    tracked_pids: dict[str, int] = Field(default_factory=dict, description="Component pids captured before stop")

    @property
    def completed(self) -> bool:
        return self.status == ScenarioStatus.COMPLETED

    def raise_for_status(self) -> None:
        """Raise if the scenario did not complete.

        Raises:
            ProbeTimeoutError: The failed phase ran out of time
            LifecycleError: The failed phase failed for another reason
        """
        if self.completed:
            return
        message = f"Scenario {self.scenario!r} failed at phase {self.failed_phase!r}: {self.reason}"
        if self.phase_timeout is not None:
            raise ProbeTimeoutError(
                message,
                phase=self.failed_phase or "",
                timeout=self.phase_timeout,
                elapsed=self.phase_elapsed or 0.0,
                context={"scenario": self.scenario},
            )
        raise LifecycleError(message, {"scenario": self.scenario, "phase": self.failed_phase})
