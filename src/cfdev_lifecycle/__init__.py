"""cfdev-lifecycle: end-to-end lifecycle verification for cf dev environments.

Starts a hyperkit/linuxkit/vpnkit developer environment through `cf dev`,
waits for its readiness signals in order (pid files, listeners, exit
codes), stops it, and proves that no component process survives.

Quick Start:
    ```python
    from cfdev_lifecycle import EnvironmentConfig, LifecycleHarness, reference_scenario

    config = EnvironmentConfig.from_settings()  # CFDEV_HOME, CFDEV_CLI, ...
    async with LifecycleHarness(config) as harness:
        result = await harness.run(reference_scenario(config))
        result.raise_for_status()
    ```

Engine pieces can be used on their own:
    ```python
    from cfdev_lifecycle import FileExists, PollPolicy, PollWaiter, ProcessReaper

    ready = await PollWaiter().wait(FileExists(path), PollPolicy(timeout=10, interval=1))
    reaped = await ProcessReaper().reap(["hyperkit", "linuxkit", "vpnkit"])
    ```
"""

from cfdev_lifecycle.config import EnvironmentConfig
from cfdev_lifecycle.control_surface import ControlSession, ControlSurface
from cfdev_lifecycle.exceptions import (
    ControlSurfaceError,
    LifecycleError,
    ProbeTimeoutError,
    ProcessError,
    ProcessLeakError,
    ProcessTableUnavailableError,
    TerminationSignalError,
)
from cfdev_lifecycle.harness import LifecycleHarness
from cfdev_lifecycle.models import (
    PhaseTiming,
    PollPolicy,
    ProcessRecord,
    ReapOutcome,
    ReapResult,
    ScenarioResult,
    ScenarioStatus,
    WaitOutcome,
    WaitResult,
)
from cfdev_lifecycle.poll import PollWaiter
from cfdev_lifecycle.probes import CommandSucceeds, FileExists, NetworkListening, OutputContains, Probe, ProcessExited
from cfdev_lifecycle.process_table import ProcessScanner, ProcessTable, PsutilProcessTable
from cfdev_lifecycle.reaper import ProcessReaper
from cfdev_lifecycle.scenarios import Phase, Scenario, custom_image_scenario, reference_scenario
from cfdev_lifecycle.sequencer import LifecycleSequencer

__all__ = [
    "CommandSucceeds",
    "ControlSession",
    "ControlSurface",
    "ControlSurfaceError",
    "EnvironmentConfig",
    "FileExists",
    "LifecycleError",
    "LifecycleHarness",
    "LifecycleSequencer",
    "NetworkListening",
    "OutputContains",
    "Phase",
    "PhaseTiming",
    "PollPolicy",
    "PollWaiter",
    "Probe",
    "ProbeTimeoutError",
    "ProcessError",
    "ProcessExited",
    "ProcessLeakError",
    "ProcessReaper",
    "ProcessRecord",
    "ProcessScanner",
    "ProcessTable",
    "ProcessTableUnavailableError",
    "PsutilProcessTable",
    "ReapOutcome",
    "ReapResult",
    "Scenario",
    "ScenarioResult",
    "ScenarioStatus",
    "TerminationSignalError",
    "WaitOutcome",
    "WaitResult",
    "custom_image_scenario",
    "reference_scenario",
]

from importlib.metadata import PackageNotFoundError, version

try:
    __version__ = version("cfdev-lifecycle")
except PackageNotFoundError:
    __version__ = "0.0.0.dev0"
