"""Reaper-bracketed scenario execution.

LifecycleHarness is the entry point for running scenarios. It treats the
environment (its files, ports and process names) as a singleton resource:

    async with LifecycleHarness(config) as harness:   # reap → must be CLEAN
        result = await harness.run(scenario)          # one scenario
    # exit: stop leftovers, `cf dev stop`, reap → must be CLEAN

A leak found on either side raises ProcessLeakError, which blocks any
further scenario against the same environment.
"""

from __future__ import annotations

from types import TracebackType

from cfdev_lifecycle._logging import get_logger
from cfdev_lifecycle.config import EnvironmentConfig
from cfdev_lifecycle.control_surface import ControlSurface
from cfdev_lifecycle.exceptions import ControlSurfaceError
from cfdev_lifecycle.models import ReapResult, ScenarioResult
from cfdev_lifecycle.poll import PollWaiter
from cfdev_lifecycle.process_table import ProcessScanner
from cfdev_lifecycle.reaper import ProcessReaper
from cfdev_lifecycle.resource_cleanup import cleanup_file, cleanup_session
from cfdev_lifecycle.scenarios import Scenario
from cfdev_lifecycle.sequencer import LifecycleSequencer

logger = get_logger(__name__)


class LifecycleHarness:
    """Run scenarios between two clean reaps.

    Args:
        config: Environment configuration
        control: Control surface (built from config.control_command if None)
        reaper: Process reaper (psutil-backed if None)
        waiter: Probe poller shared by every scenario
    """

    def __init__(
        self,
        config: EnvironmentConfig,
        *,
        control: ControlSurface | None = None,
        reaper: ProcessReaper | None = None,
        waiter: PollWaiter | None = None,
    ) -> None:
        self.config = config
        self.control = control or ControlSurface(config.control_command)
        self.reaper = reaper or ProcessReaper(ProcessScanner(), verify_policy=config.reap_verify_policy())
        self.waiter = waiter or PollWaiter()
        self._sequencers: list[LifecycleSequencer] = []
        self._entered = False

    async def __aenter__(self) -> LifecycleHarness:
        await self.prepare()
        self._entered = True
        return self

    async def __aexit__(
        self,
        exc_type: type[BaseException] | None,
        exc_val: BaseException | None,
        exc_tb: TracebackType | None,
    ) -> None:
        self._entered = False
        await self.cleanup()

    async def prepare(self) -> ReapResult:
        """Guarantee a clean start.

        Raises:
            ProcessLeakError: Stale component processes survived SIGKILL
        """
        if self.config.home_is_default:
            await cleanup_file(self.config.http_proxy_file, description="stale proxy settings")
        result = await self.reaper.ensure_clean(self.config.process_patterns)
        if result.killed:
            logger.warning(
                "Reaped stale processes before scenario",
                extra={"pids": [r.pid for r in result.killed]},
            )
        return result

    async def run(self, scenario: Scenario) -> ScenarioResult:
        """Run one scenario. Must be called inside ``async with``.

        Each bracket runs a single scenario, so every scenario starts and
        ends with a clean reap.
        """
        if not self._entered:
            raise RuntimeError("LifecycleHarness.run() requires 'async with LifecycleHarness(...)'")
        if self._sequencers:
            raise RuntimeError("LifecycleHarness runs one scenario per 'async with' bracket")
        sequencer = LifecycleSequencer(self.control, self.waiter)
        self._sequencers.append(sequencer)
        return await sequencer.run(scenario)

    async def cleanup(self) -> ReapResult:
        """Guarantee a clean end, whatever the scenarios' verdicts.

        Raises:
            ProcessLeakError: Component processes survived SIGKILL
        """
        for sequencer in self._sequencers:
            await cleanup_session(sequencer.session)
        ran_scenarios = bool(self._sequencers)
        self._sequencers.clear()

        if ran_scenarios:
            try:
                await self.control.stop()
            except ControlSurfaceError as e:
                # The reap below is the authoritative check
                logger.warning(
                    "Post-scenario stop failed",
                    extra={"error": e.message, "returncode": e.returncode},
                )

        return await self.reaper.ensure_clean(self.config.process_patterns)
