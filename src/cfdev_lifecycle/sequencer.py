"""Ordered, fail-fast execution of one lifecycle scenario.

State machine:
    start → start-announced → phase 1 … phase N → workload-completion
          → (capture pids) → teardown → teardown-verification → completed

Each step either advances or ends the run with FAILED_AT_PHASE; nothing
after a failed step is evaluated. Phases run one at a time on the caller's
event loop because each readiness signal depends on the previous one.
"""

from __future__ import annotations

import time
from pathlib import Path

import aiofiles

from cfdev_lifecycle import constants
from cfdev_lifecycle._logging import get_logger
from cfdev_lifecycle.control_surface import ControlSession, ControlSurface
from cfdev_lifecycle.exceptions import ControlSurfaceError
from cfdev_lifecycle.models import PhaseTiming, PollPolicy, ScenarioResult, ScenarioStatus
from cfdev_lifecycle.poll import PollWaiter
from cfdev_lifecycle.probes import OutputContains, Probe, ProcessExited
from cfdev_lifecycle.resource_cleanup import cleanup_session
from cfdev_lifecycle.scenarios import Scenario

logger = get_logger(__name__)


async def read_pid_file(path: Path) -> int:
    """Read a component pid file.

    Raises:
        ControlSurfaceError: File missing, unreadable, or not a positive integer
    """
    try:
        async with aiofiles.open(path) as f:
            content = await f.read()
    except OSError as e:
        raise ControlSurfaceError(f"Cannot read pid file {path}: {e}", context={"path": str(path)}) from e

    try:
        pid = int(content.strip())
    except ValueError:
        raise ControlSurfaceError(
            f"Pid file {path} does not contain a pid: {content[:64]!r}",
            context={"path": str(path)},
        ) from None
    if pid <= 0:
        raise ControlSurfaceError(f"Pid file {path} contains invalid pid {pid}", context={"path": str(path)})
    return pid


class _PhaseFailed(Exception):
    """Internal: ends the run at a phase."""

    def __init__(self, phase: str, reason: str, timeout: float | None = None, elapsed: float | None = None):
        super().__init__(reason)
        self.phase = phase
        self.reason = reason
        self.timeout = timeout
        self.elapsed = elapsed


class LifecycleSequencer:
    """Drives a Scenario against the control surface.

    The sequencer owns the start session for the duration of run() and
    leaves it in ``self.session`` so a surrounding harness can clean it up
    whatever the verdict.

    Args:
        control: Control surface to start and stop the environment
        waiter: Probe poller (fixed-interval)
    """

    def __init__(self, control: ControlSurface, waiter: PollWaiter | None = None) -> None:
        self.control = control
        self.waiter = waiter or PollWaiter()
        self.session: ControlSession | None = None

    async def run(self, scenario: Scenario) -> ScenarioResult:
        """Execute the scenario once.

        Returns:
            ScenarioResult COMPLETED, or FAILED_AT_PHASE with the phase name,
            reason and (for timeouts) deadline and elapsed time.
        """
        started = time.monotonic()
        timings: list[PhaseTiming] = []
        tracked: dict[str, int] = {}
        logger.info("Scenario starting", extra={"scenario": scenario.name, "phases": len(scenario.phases)})

        try:
            session = await self._start(scenario)
            for phase in scenario.phases:
                timings.append(await self._await_ready(phase.name, phase.probe, phase.policy))
            await self._finish_workload(session, scenario)
            tracked = await self._capture_pids(scenario)
            await self._teardown(scenario)
            await self._verify_teardown(scenario, tracked)
        except _PhaseFailed as failure:
            logger.error(
                "Scenario failed",
                extra={
                    "scenario": scenario.name,
                    "phase": failure.phase,
                    "reason": failure.reason,
                    "timeout": failure.timeout,
                    "elapsed": failure.elapsed,
                },
            )
            return ScenarioResult(
                scenario=scenario.name,
                status=ScenarioStatus.FAILED_AT_PHASE,
                failed_phase=failure.phase,
                reason=failure.reason,
                phase_timeout=failure.timeout,
                phase_elapsed=failure.elapsed,
                elapsed=time.monotonic() - started,
                phases=timings,
                tracked_pids=tracked,
            )

        elapsed = time.monotonic() - started
        logger.info("Scenario completed", extra={"scenario": scenario.name, "elapsed": elapsed})
        return ScenarioResult(
            scenario=scenario.name,
            status=ScenarioStatus.COMPLETED,
            elapsed=elapsed,
            phases=timings,
            tracked_pids=tracked,
        )

    async def _start(self, scenario: Scenario) -> ControlSession:
        try:
            session = await self.control.start(scenario.image_path)
        except ControlSurfaceError as e:
            raise _PhaseFailed("start", e.message) from e
        self.session = session

        if scenario.start_marker:
            await self._await_ready(
                constants.PHASE_START_ANNOUNCED,
                OutputContains(session, scenario.start_marker),
                scenario.start_marker_policy,
            )
        return session

    async def _await_ready(self, name: str, probe: Probe, policy: PollPolicy) -> PhaseTiming:
        logger.info(f"Waiting for {name}", extra={"phase": name, "probe": str(probe), "timeout": policy.timeout})
        result = await self.waiter.wait(probe, policy)
        if not result.ready:
            raise _PhaseFailed(
                name,
                f"timeout: {probe} not ready after {result.elapsed:.1f}s (limit {policy.timeout}s)",
                timeout=policy.timeout,
                elapsed=result.elapsed,
            )
        logger.info(f"{name} ready", extra={"phase": name, "elapsed": result.elapsed, "attempts": result.attempts})
        return PhaseTiming(name=name, elapsed=result.elapsed, attempts=result.attempts)

    async def _finish_workload(self, session: ControlSession, scenario: Scenario) -> None:
        if not scenario.await_workload:
            await cleanup_session(session)
            return

        try:
            returncode = await session.wait_with_timeout(scenario.workload_timeout)
        except TimeoutError:
            raise _PhaseFailed(
                constants.PHASE_WORKLOAD_COMPLETION,
                f"timeout: {session.name} still running after {scenario.workload_timeout}s",
                timeout=scenario.workload_timeout,
                elapsed=scenario.workload_timeout,
            ) from None
        if returncode != 0:
            raise _PhaseFailed(
                constants.PHASE_WORKLOAD_COMPLETION,
                f"{session.name} exited with status {returncode}: {session.output_tail(500)}",
            )

    async def _capture_pids(self, scenario: Scenario) -> dict[str, int]:
        tracked: dict[str, int] = {}
        for label, path in scenario.tracked.items():
            try:
                tracked[label] = await read_pid_file(path)
            except ControlSurfaceError as e:
                raise _PhaseFailed(constants.PHASE_TEARDOWN, e.message) from e
        logger.debug("Captured component pids", extra={"pids": tracked})
        return tracked

    async def _teardown(self, scenario: Scenario) -> None:
        try:
            await self.control.stop(timeout=scenario.stop_timeout)
        except ControlSurfaceError as e:
            raise _PhaseFailed(constants.PHASE_TEARDOWN, e.message) from e

    async def _verify_teardown(self, scenario: Scenario, tracked: dict[str, int]) -> None:
        policy = scenario.teardown_policy
        for label, pid in tracked.items():
            result = await self.waiter.wait(ProcessExited(pid), policy)
            if not result.ready:
                raise _PhaseFailed(
                    constants.PHASE_TEARDOWN_VERIFICATION,
                    f"{label} pid {pid} still running {result.elapsed:.1f}s after stop",
                    timeout=policy.timeout,
                    elapsed=result.elapsed,
                )
