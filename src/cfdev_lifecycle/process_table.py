"""OS process table access and pattern scanning.

ProcessTable is the capability the scanner and reaper depend on: enumerate
live processes and deliver SIGKILL by pid. PsutilProcessTable implements it
with psutil's native process-listing APIs instead of parsing `ps aux`.
"""

from __future__ import annotations

import asyncio
import os
import signal
from collections.abc import Iterable
from typing import Protocol

import psutil

from cfdev_lifecycle._logging import get_logger
from cfdev_lifecycle.exceptions import ProcessTableUnavailableError, TerminationSignalError
from cfdev_lifecycle.models import ProcessRecord

logger = get_logger(__name__)


class ProcessTable(Protocol):
    """Enumerate and force-terminate OS processes."""

    def enumerate(self) -> list[ProcessRecord]:
        """Snapshot every process visible to the current user.

        Raises:
            ProcessTableUnavailableError: The table could not be read at all
        """
        ...

    def kill(self, pid: int) -> bool:
        """Send SIGKILL to ``pid``.

        Returns:
            True if the signal was delivered, False if the process was
            already gone.

        Raises:
            TerminationSignalError: Delivery failed for any other reason
        """
        ...


class PsutilProcessTable:
    """ProcessTable backed by psutil."""

    _ATTRS = ("pid", "name", "cmdline", "status")

    def enumerate(self) -> list[ProcessRecord]:
        try:
            procs = list(psutil.process_iter(self._ATTRS, ad_value=None))
        except (OSError, psutil.Error) as e:
            raise ProcessTableUnavailableError(
                f"Cannot enumerate processes: {e}",
                {"error": str(e), "error_type": type(e).__name__},
            ) from e

        records: list[ProcessRecord] = []
        for proc in procs:
            info = proc.info
            pid = info.get("pid")
            # pid 0 is the kernel swapper/idle task on Linux and macOS
            if not pid or pid <= 0:
                continue
            # Zombies are already dead; only their exit status remains
            if info.get("status") == psutil.STATUS_ZOMBIE:
                continue
            cmdline = info.get("cmdline")
            # Kernel threads and processes we may not inspect have no argv;
            # fall back to the executable name as `ps` does
            command_line = " ".join(cmdline) if cmdline else (info.get("name") or "")
            if not command_line:
                continue
            records.append(ProcessRecord(pid=pid, command_line=command_line))
        return records

    def kill(self, pid: int) -> bool:
        try:
            os.kill(pid, signal.SIGKILL)
        except ProcessLookupError:
            return False
        except OSError as e:
            raise TerminationSignalError(f"Failed to SIGKILL pid {pid}: {e}", pid=pid) from e
        return True


def matches(record: ProcessRecord, patterns: Iterable[str]) -> bool:
    """Case-sensitive substring match of any pattern against a command line."""
    return any(pattern in record.command_line for pattern in patterns)


def own_lineage() -> frozenset[int]:
    """Pids of this process and its ancestors.

    `cfdev-lifecycle reap --pattern hyperkit` carries the pattern in its own
    argv (and so may the shell that launched it); those must never match.
    """
    me = psutil.Process()
    try:
        ancestors = me.parents()
    except psutil.Error:
        ancestors = []
    return frozenset([me.pid, *(p.pid for p in ancestors)])


class ProcessScanner:
    """Find live processes whose command line contains any of a set of patterns.

    A scan is a point-in-time snapshot: a returned process may exit (or a
    new match may start) before the caller acts on the result.

    Args:
        table: Process table capability (psutil-backed by default)
        exclude_pids: Pids never reported; defaults to own_lineage()
    """

    def __init__(self, table: ProcessTable | None = None, exclude_pids: frozenset[int] | None = None) -> None:
        self.table: ProcessTable = table or PsutilProcessTable()
        self.exclude_pids = own_lineage() if exclude_pids is None else exclude_pids

    async def scan(self, patterns: Iterable[str]) -> list[ProcessRecord]:
        """Return every process whose command line contains a pattern.

        Args:
            patterns: Case-sensitive substrings (empty strings are ignored)

        Returns:
            Matching records in enumeration order

        Raises:
            ProcessTableUnavailableError: Enumeration failed
        """
        wanted = [p for p in patterns if p]
        if not wanted:
            return []

        # psutil reads /proc (or sysctl) synchronously
        snapshot = await asyncio.to_thread(self.table.enumerate)
        found = [r for r in snapshot if r.pid not in self.exclude_pids and matches(r, wanted)]
        logger.debug(
            "Process scan complete",
            extra={"patterns": wanted, "scanned": len(snapshot), "matched": [r.pid for r in found]},
        )
        return found
