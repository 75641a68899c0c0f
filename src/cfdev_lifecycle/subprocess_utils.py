"""Subprocess output utilities.

- iter_output_lines: chunked line reader tolerant of overlong lines
- drain_subprocess_output: concurrent stdout/stderr draining (prevents 64KB pipe deadlock)
- log_task_exception: done-callback that surfaces background task failures
"""

from __future__ import annotations

import asyncio
from typing import TYPE_CHECKING

from cfdev_lifecycle import constants
from cfdev_lifecycle._logging import get_logger

if TYPE_CHECKING:
    from collections.abc import AsyncIterator, Callable

logger = get_logger(__name__)


async def iter_output_lines(
    stream: asyncio.StreamReader,
    *,
    max_line_bytes: int = constants.OUTPUT_MAX_LINE_BYTES,
) -> AsyncIterator[str]:
    """Yield decoded, non-blank lines from ``stream`` until EOF.

    Reads fixed-size chunks instead of StreamReader.readline(), which raises
    ValueError on a line longer than the reader's 64KB limit and leaves the
    rest of the stream unread. A line longer than ``max_line_bytes`` is
    yielded as consecutive fragments.
    """
    pending = b""
    while chunk := await stream.read(constants.OUTPUT_READ_CHUNK_BYTES):
        pending += chunk
        *complete, pending = pending.split(b"\n")
        # Emit the complete part of an unterminated overlong line now
        keep = len(pending) % max_line_bytes
        if len(pending) >= max_line_bytes:
            complete.append(pending[: len(pending) - keep])
            pending = pending[len(pending) - keep :]
        for raw in complete:
            for start in range(0, len(raw), max_line_bytes):
                if line := raw[start : start + max_line_bytes].decode(errors="replace").rstrip():
                    yield line
    if line := pending.decode(errors="replace").rstrip():
        yield line


async def drain_subprocess_output(
    process: asyncio.subprocess.Process,
    *,
    process_name: str,
    stdout_handler: Callable[[str], None] | None = None,
    stderr_handler: Callable[[str], None] | None = None,
) -> None:
    """Drain subprocess stdout/stderr concurrently until both reach EOF.

    `cf dev start` streams deploy output for up to twenty minutes. Reading
    one pipe at a time would let the other fill its 64KB buffer and block
    the child, stalling the very readiness signals being polled.

    Args:
        process: Subprocess with stdout/stderr pipes
        process_name: Identifier for logging (e.g., "cf dev start")
        stdout_handler: Optional callback for stdout lines (default: debug log)
        stderr_handler: Optional callback for stderr lines (default: warning log)
    """
    if stdout_handler is None:

        def default_stdout_handler(line: str) -> None:
            logger.debug(f"[{process_name} stdout] {line}", extra={"output": line})

        stdout_handler = default_stdout_handler

    if stderr_handler is None:

        def default_stderr_handler(line: str) -> None:
            logger.warning(f"[{process_name} stderr] {line}", extra={"output": line})

        stderr_handler = default_stderr_handler

    async def read_stream(stream: asyncio.StreamReader, handler: Callable[[str], None]) -> None:
        async for line in iter_output_lines(stream):
            handler(line)

    async with asyncio.TaskGroup() as tg:
        if process.stdout:
            tg.create_task(read_stream(process.stdout, stdout_handler))
        if process.stderr:
            tg.create_task(read_stream(process.stderr, stderr_handler))


def log_task_exception(task: asyncio.Task[None]) -> None:
    """Log exceptions from background tasks.

    Usage:
        task = asyncio.create_task(some_coroutine())
        task.add_done_callback(log_task_exception)
    """
    if task.cancelled():
        return
    exc = task.exception()
    if exc is not None:
        logger.error(
            "Background task failed",
            extra={"task_name": task.get_name()},
            exc_info=exc,
        )
