"""The `cf dev` control surface.

ControlSurface launches control actions (`start`, `stop`, `bosh env`) as
subprocesses. `start` is long-running: it deploys the environment and exits
when the deploy finishes, so it is returned as a ControlSession whose
output is drained in the background and kept for marker checks and
diagnostics.
"""

from __future__ import annotations

import asyncio
import contextlib
from collections import deque
from collections.abc import Sequence
from dataclasses import dataclass
from pathlib import Path

from cfdev_lifecycle import constants
from cfdev_lifecycle._logging import get_logger
from cfdev_lifecycle.exceptions import ControlSurfaceError
from cfdev_lifecycle.subprocess_utils import drain_subprocess_output, log_task_exception

logger = get_logger(__name__)


class ControlSession:
    """Handle on a running control action.

    Wraps asyncio.subprocess.Process and keeps the most recent output lines
    (stdout and stderr interleaved) in arrival order. Markers are matched as
    lines arrive, so a marker seen early is still reported after its line
    has rotated out of the kept tail.
    """

    def __init__(
        self,
        async_proc: asyncio.subprocess.Process,
        name: str,
        max_lines: int = constants.OUTPUT_MAX_LINES,
    ) -> None:
        self.async_proc = async_proc
        self.name = name
        self.lines: deque[str] = deque(maxlen=max_lines)
        self._watched: dict[str, bool] = {}

        self._drain_task = asyncio.create_task(
            drain_subprocess_output(
                async_proc,
                process_name=name,
                stdout_handler=self._on_stdout,
                stderr_handler=self._on_stderr,
            ),
            name=f"drain:{name}",
        )
        self._drain_task.add_done_callback(log_task_exception)

    def _record(self, line: str) -> None:
        self.lines.append(line)
        for marker, seen in self._watched.items():
            if not seen and marker in line:
                self._watched[marker] = True

    def _on_stdout(self, line: str) -> None:
        self._record(line)
        logger.debug(f"[{self.name}] {line}")

    def _on_stderr(self, line: str) -> None:
        self._record(line)
        logger.warning(f"[{self.name} stderr] {line}")

    @property
    def pid(self) -> int | None:
        """Process ID."""
        return self.async_proc.pid

    @property
    def returncode(self) -> int | None:
        """Exit status (None while running)."""
        return self.async_proc.returncode

    def output(self) -> str:
        return "\n".join(self.lines)

    def output_tail(self, chars: int = constants.OUTPUT_TAIL_CHARS) -> str:
        return self.output()[-chars:]

    def output_contains(self, marker: str) -> bool:
        """Whether any output line so far contained ``marker``.

        The first call starts watching ``marker``; later lines are matched
        on arrival regardless of how many lines are kept.
        """
        if marker not in self._watched:
            self._watched[marker] = any(marker in line for line in self.lines)
        return self._watched[marker]

    async def terminate(self) -> None:
        """Send SIGTERM."""
        with contextlib.suppress(ProcessLookupError):
            self.async_proc.terminate()

    async def kill(self) -> None:
        """Send SIGKILL."""
        with contextlib.suppress(ProcessLookupError):
            self.async_proc.kill()

    async def wait(self) -> int:
        """Wait for exit and for the output drain to reach EOF.

        A failed drain is logged by its done-callback and never raised here:
        the exit status is the verdict.
        """
        returncode = await self.async_proc.wait()
        # Children that inherited the pipes can hold them open after exit
        await asyncio.wait({self._drain_task}, timeout=1.0)
        return returncode

    async def wait_with_timeout(self, timeout: float) -> int:
        """Wait for exit.

        Raises:
            TimeoutError: Process still running after ``timeout`` seconds
        """
        return await asyncio.wait_for(self.wait(), timeout=timeout)

    async def close(self) -> None:
        """Stop the output drain (after the process has been reaped)."""
        if not self._drain_task.done():
            self._drain_task.cancel()
            with contextlib.suppress(asyncio.CancelledError):
                await self._drain_task


@dataclass(frozen=True)
class ActionResult:
    """Outcome of a short control action."""

    argv: tuple[str, ...]
    returncode: int
    output: str


class ControlSurface:
    """Launch `cf dev` actions.

    Args:
        command: argv prefix, e.g. ("cf", "dev")
        env: Environment for the child processes (None inherits)
    """

    def __init__(
        self,
        command: Sequence[str] = constants.DEFAULT_CONTROL_COMMAND,
        env: dict[str, str] | None = None,
    ) -> None:
        if not command:
            raise ValueError("Control command must not be empty")
        self.command = tuple(command)
        self.env = env

    def argv(self, *args: str) -> tuple[str, ...]:
        return (*self.command, *args)

    async def _spawn(self, argv: tuple[str, ...]) -> asyncio.subprocess.Process:
        try:
            return await asyncio.create_subprocess_exec(
                *argv,
                stdin=asyncio.subprocess.DEVNULL,
                stdout=asyncio.subprocess.PIPE,
                stderr=asyncio.subprocess.PIPE,
                env=self.env,
            )
        except OSError as e:
            raise ControlSurfaceError(
                f"Cannot launch {' '.join(argv)}: {e}",
                context={"argv": list(argv), "error": str(e)},
            ) from e

    async def start(self, image_path: Path | None = None) -> ControlSession:
        """Launch `start` (optionally with a custom environment image).

        Returns:
            Running session; the caller owns it and must clean it up
        """
        args = ["start"]
        if image_path is not None:
            args += ["-f", str(image_path)]
        argv = self.argv(*args)
        proc = await self._spawn(argv)
        logger.info("Control surface started", extra={"argv": list(argv), "pid": proc.pid})
        return ControlSession(proc, name=" ".join(argv))

    async def run(self, *args: str, timeout: float = constants.CONTROL_ACTION_TIMEOUT_SECONDS) -> ActionResult:
        """Run a short action to completion.

        Raises:
            ControlSurfaceError: Launch failed or the action outlived ``timeout``
        """
        argv = self.argv(*args)
        session = ControlSession(await self._spawn(argv), name=" ".join(argv))
        try:
            returncode = await session.wait_with_timeout(timeout)
        except TimeoutError:
            await session.kill()
            await session.wait()
            raise ControlSurfaceError(
                f"{' '.join(argv)} did not finish within {timeout}s",
                output=session.output_tail(),
                context={"argv": list(argv), "timeout": timeout},
            ) from None
        finally:
            await session.close()
        return ActionResult(argv=argv, returncode=returncode, output=session.output())

    async def stop(self, timeout: float = constants.CONTROL_ACTION_TIMEOUT_SECONDS) -> ActionResult:
        """Run `stop` and require exit status 0.

        Raises:
            ControlSurfaceError: Launch failed, timed out, or exited non-zero
        """
        result = await self.run("stop", timeout=timeout)
        if result.returncode != 0:
            raise ControlSurfaceError(
                f"{' '.join(result.argv)} exited with status {result.returncode}",
                returncode=result.returncode,
                output=result.output[-constants.OUTPUT_TAIL_CHARS :],
                context={"argv": list(result.argv)},
            )
        logger.info("Control surface stopped", extra={"argv": list(result.argv)})
        return result
