"""Readiness probes.

A probe is a single externally observable condition. Each variant is a
frozen dataclass exposing ``async check() -> bool``; the variants share no
base class and are grouped by the ``Probe`` union type.

Checks are pure observations. Transient failures (I/O errors, refused
connections, a missing binary) mean "not ready yet" and return False.
"""

from __future__ import annotations

import asyncio
import contextlib
from dataclasses import dataclass, field
from pathlib import Path
from typing import TYPE_CHECKING
from urllib.parse import urlsplit

import aiofiles.os
import psutil

from cfdev_lifecycle import constants
from cfdev_lifecycle._logging import get_logger

if TYPE_CHECKING:
    from cfdev_lifecycle.control_surface import ControlSession

logger = get_logger(__name__)

_DEFAULT_PORTS = {"http": 80, "https": 443}


@dataclass(frozen=True, slots=True)
class FileExists:
    """Ready once ``path`` exists (pid files, proxy settings)."""

    path: Path

    async def check(self) -> bool:
        return await aiofiles.os.path.exists(self.path)

    def __str__(self) -> str:
        return f"file {self.path}"


@dataclass(frozen=True, slots=True)
class NetworkListening:
    """Ready once a TCP connection to ``address`` succeeds.

    ``address`` is a URL such as ``https://10.245.0.2:25555``. The port
    defaults from the scheme when omitted. Only the TCP handshake is
    checked; no request is sent, so TLS endpoints need no certificate.
    """

    address: str
    connect_timeout: float = constants.LISTENER_CONNECT_TIMEOUT_SECONDS

    def __post_init__(self) -> None:
        # Parse eagerly so a malformed address fails at declaration time
        self.host_port()

    def host_port(self) -> tuple[str, int]:
        parts = urlsplit(self.address)
        if not parts.hostname:
            raise ValueError(f"Listener address has no host: {self.address!r}")
        port = parts.port or _DEFAULT_PORTS.get(parts.scheme)
        if port is None:
            raise ValueError(f"Listener address has no port and unknown scheme: {self.address!r}")
        return parts.hostname, port

    async def check(self) -> bool:
        host, port = self.host_port()
        try:
            async with asyncio.timeout(self.connect_timeout):
                _reader, writer = await asyncio.open_connection(host, port)
        except (OSError, TimeoutError) as e:
            logger.debug("Listener not reachable", extra={"address": self.address, "error": str(e)})
            return False
        writer.close()
        with contextlib.suppress(OSError):
            await writer.wait_closed()
        return True

    def __str__(self) -> str:
        return f"listener {self.address}"


@dataclass(frozen=True, slots=True)
class ProcessExited:
    """Ready once ``pid`` no longer names a live process.

    Zombies count as exited: they hold a pid table slot but run nothing.
    """

    pid: int

    def __post_init__(self) -> None:
        if self.pid <= 0:
            raise ValueError(f"pid must be positive, got {self.pid}")

    async def check(self) -> bool:
        return await asyncio.to_thread(_process_gone, self.pid)

    def __str__(self) -> str:
        return f"exit of pid {self.pid}"


@dataclass(frozen=True, slots=True)
class CommandSucceeds:
    """Ready once ``argv`` runs to completion with exit status 0.

    The command is killed if it outlives ``timeout``; that attempt counts
    as not ready.
    """

    argv: tuple[str, ...]
    timeout: float = constants.CONTROL_ACTION_TIMEOUT_SECONDS
    env: dict[str, str] | None = field(default=None, hash=False)

    async def check(self) -> bool:
        try:
            proc = await asyncio.create_subprocess_exec(
                *self.argv,
                stdout=asyncio.subprocess.DEVNULL,
                stderr=asyncio.subprocess.DEVNULL,
                env=self.env,
            )
        except OSError as e:
            logger.debug("Command could not be started", extra={"argv": list(self.argv), "error": str(e)})
            return False

        try:
            returncode = await asyncio.wait_for(proc.wait(), timeout=self.timeout)
        except TimeoutError:
            with contextlib.suppress(ProcessLookupError):
                proc.kill()
            await proc.wait()
            logger.debug("Command timed out", extra={"argv": list(self.argv), "timeout": self.timeout})
            return False

        if returncode != 0:
            logger.debug("Command failed", extra={"argv": list(self.argv), "returncode": returncode})
        return returncode == 0

    def __str__(self) -> str:
        return f"command {' '.join(self.argv)}"


@dataclass(frozen=True, slots=True)
class OutputContains:
    """Ready once a control session has printed a line containing ``marker``."""

    session: ControlSession = field(compare=False)
    marker: str

    async def check(self) -> bool:
        return self.session.output_contains(self.marker)

    def __str__(self) -> str:
        return f"output {self.marker!r} from {self.session.name}"


Probe = FileExists | NetworkListening | ProcessExited | CommandSucceeds | OutputContains


def _process_gone(pid: int) -> bool:
    try:
        return psutil.Process(pid).status() == psutil.STATUS_ZOMBIE
    except psutil.NoSuchProcess:
        return True
    except psutil.AccessDenied:
        # Visible but owned by someone else: still alive
        return False
