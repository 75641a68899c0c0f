"""Forced termination of leaked component processes.

The reaper brackets every scenario: before it, to guarantee no hyperkit,
linuxkit or vpnkit survived a previous run; after it, to prove the scenario
left nothing behind.

Two passes:
1. Kill pass: scan, then SIGKILL every match. A process that is already
   gone counts as killed.
2. Verify pass: scan again. Any match is a leak and is reported with its
   full command line.

The verify pass is a single scan unless a ``verify_policy`` is given, in
which case it re-scans at a fixed interval until the table is clean or the
policy deadline passes.
"""

from __future__ import annotations

import asyncio
from collections.abc import Iterable

from tenacity import AsyncRetrying, retry_if_result, stop_after_delay, wait_fixed

from cfdev_lifecycle._logging import get_logger
from cfdev_lifecycle.exceptions import ProcessLeakError, TerminationSignalError
from cfdev_lifecycle.models import PollPolicy, ProcessRecord, ReapOutcome, ReapResult
from cfdev_lifecycle.process_table import ProcessScanner

logger = get_logger(__name__)


class ProcessReaper:
    """Kill every process matching a set of patterns and verify none remain.

    Holds no state between calls; reaping an already clean table is a no-op
    apart from the two scans.

    Args:
        scanner: Process scanner (psutil-backed by default)
        verify_policy: Optional bounded re-scan for the verify pass.
            None means a single verification scan.
    """

    def __init__(
        self,
        scanner: ProcessScanner | None = None,
        verify_policy: PollPolicy | None = None,
    ) -> None:
        self.scanner = scanner or ProcessScanner()
        self.verify_policy = verify_policy

    async def reap(self, patterns: Iterable[str]) -> ReapResult:
        """Run the kill pass then the verify pass.

        Args:
            patterns: Case-sensitive command-line substrings

        Returns:
            ReapResult CLEAN, or LEAK_DETECTED listing the survivors

        Raises:
            ProcessTableUnavailableError: Either scan failed
            TerminationSignalError: A kill failed other than "no such process"
        """
        patterns = list(patterns)
        targets = await self.scanner.scan(patterns)

        killed: list[ProcessRecord] = []
        for record in targets:
            try:
                delivered = await asyncio.to_thread(self.scanner.table.kill, record.pid)
            except TerminationSignalError as e:
                raise TerminationSignalError(
                    f"Failed to kill pid {record.pid} ({record.command_line}): {e.message}",
                    pid=record.pid,
                    command_line=record.command_line,
                ) from e
            if delivered:
                logger.warning(
                    "Killed leftover process (SIGKILL)",
                    extra={"pid": record.pid, "command_line": record.command_line},
                )
            else:
                logger.debug("Process already gone before SIGKILL", extra={"pid": record.pid})
            killed.append(record)

        survivors = await self._verify(patterns)
        if survivors:
            for record in survivors:
                logger.error(
                    "Process still running after reap",
                    extra={"pid": record.pid, "command_line": record.command_line},
                )
            return ReapResult(outcome=ReapOutcome.LEAK_DETECTED, killed=killed, survivors=survivors)

        logger.info("Process table clean", extra={"patterns": patterns, "killed": len(killed)})
        return ReapResult(outcome=ReapOutcome.CLEAN, killed=killed)

    async def ensure_clean(self, patterns: Iterable[str]) -> ReapResult:
        """Reap and raise if anything survived.

        Raises:
            ProcessLeakError: The verify pass still found matching processes
        """
        result = await self.reap(patterns)
        if not result.clean:
            lines = "\n".join(f"  {r.pid}: {r.command_line}" for r in result.survivors)
            raise ProcessLeakError(
                f"{len(result.survivors)} process(es) still running after SIGKILL:\n{lines}",
                records=result.survivors,
            )
        return result

    async def _verify(self, patterns: list[str]) -> list[ProcessRecord]:
        if self.verify_policy is None:
            return await self.scanner.scan(patterns)

        retrying = AsyncRetrying(
            stop=stop_after_delay(self.verify_policy.timeout),
            wait=wait_fixed(self.verify_policy.interval),
            retry=retry_if_result(bool),
            # Deadline passed: report whoever is still there
            retry_error_callback=lambda state: state.outcome.result(),
        )
        return await retrying(self.scanner.scan, patterns)
