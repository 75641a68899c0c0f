"""Exception hierarchy for cfdev-lifecycle.

All exceptions inherit from LifecycleError.

Hierarchy:
    LifecycleError (base)
    ├── ProbeTimeoutError              ← phase never became ready
    ├── ControlSurfaceError            ← `cf dev` action failed / bad pid file
    └── ProcessError
        ├── ProcessTableUnavailableError ← process enumeration failed
        ├── TerminationSignalError       ← kill failed (not "already gone")
        └── ProcessLeakError             ← processes survived the reaper

Every exception carries a ``context`` dict with the values needed to
diagnose the failure without re-running it (phase name, pid, command
line, elapsed/timeout seconds).
"""

from __future__ import annotations

from typing import TYPE_CHECKING, Any

if TYPE_CHECKING:
    from cfdev_lifecycle.models import ProcessRecord


class LifecycleError(Exception):
    """Base exception for all lifecycle verification errors.

    Attributes:
        message: Human-readable error message
        context: Dictionary of structured error context for logging/debugging
    """

    def __init__(self, message: str, context: dict[str, Any] | None = None):
        super().__init__(message)
        self.message = message
        self.context = context or {}


class ProbeTimeoutError(LifecycleError):
    """A phase's probe never succeeded within its deadline.

    Attributes:
        phase: Name of the phase that timed out
        timeout: Configured deadline in seconds
        elapsed: Seconds actually spent waiting
    """

    def __init__(
        self,
        message: str,
        phase: str,
        timeout: float,
        elapsed: float,
        context: dict[str, Any] | None = None,
    ):
        ctx = context or {}
        ctx.update({"phase": phase, "timeout": timeout, "elapsed": round(elapsed, 3)})
        super().__init__(message, ctx)
        self.phase = phase
        self.timeout = timeout
        self.elapsed = elapsed


class ControlSurfaceError(LifecycleError):
    """The external control surface misbehaved.

    Raised when a `cf dev` action cannot be launched, exits non-zero, or
    leaves behind a pid file that cannot be parsed.

    Attributes:
        returncode: Exit status of the action (None if it never ran)
        output: Captured output tail for diagnosis
    """

    def __init__(
        self,
        message: str,
        returncode: int | None = None,
        output: str = "",
        context: dict[str, Any] | None = None,
    ):
        ctx = context or {}
        ctx.update({"returncode": returncode})
        super().__init__(message, ctx)
        self.returncode = returncode
        self.output = output


class ProcessError(LifecycleError):
    """Base for failures of the process scanner and reaper."""


class ProcessTableUnavailableError(ProcessError):
    """The OS process table could not be enumerated.

    Never treated as "zero processes": an unreadable table could hide
    leaked hypervisor processes.
    """


class TerminationSignalError(ProcessError):
    """Sending SIGKILL failed for a reason other than "no such process".

    Attributes:
        pid: Target process id
        command_line: Command line recorded by the scan that found it
    """

    def __init__(self, message: str, pid: int, command_line: str = ""):
        super().__init__(message, {"pid": pid, "command_line": command_line})
        self.pid = pid
        self.command_line = command_line


class ProcessLeakError(ProcessError):
    """Matching processes are still running after the kill pass.

    Blocks progression to any subsequent scenario.

    Attributes:
        records: Surviving processes with their full command lines
    """

    def __init__(self, message: str, records: list[ProcessRecord]):
        super().__init__(
            message,
            {"survivors": [{"pid": r.pid, "command_line": r.command_line} for r in records]},
        )
        self.records = records
