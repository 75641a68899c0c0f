"""Shared pytest fixtures for cfdev-lifecycle tests."""

import asyncio
import contextlib
import logging
import sys
from collections.abc import AsyncGenerator, Generator
from pathlib import Path

import psutil
import pytest

from cfdev_lifecycle.config import EnvironmentConfig
from cfdev_lifecycle.control_surface import ControlSurface
from cfdev_lifecycle.models import PollPolicy
from tests.process_helpers import FAKE_CFDEV, unique_marker

logger = logging.getLogger(__name__)

# ============================================================================
# Process hygiene
# ============================================================================


def _kill_marked(marker: str) -> None:
    for proc in psutil.process_iter(["cmdline"], ad_value=None):
        cmdline = proc.info.get("cmdline") or []
        if any(marker in arg for arg in cmdline):
            with contextlib.suppress(psutil.Error):
                proc.kill()
                logger.warning("Killed process left by test: %s", proc.pid)


@pytest.fixture
def marker() -> Generator[str, None, None]:
    """Unique command-line marker; anything carrying it is killed at teardown."""
    value = unique_marker()
    yield value
    _kill_marked(value)


# ============================================================================
# Fake environment
# ============================================================================


@pytest.fixture
def env_home(tmp_path: Path) -> Path:
    home = tmp_path / "cfdev-home"
    home.mkdir()
    return home


@pytest.fixture
def fake_command(env_home: Path, marker: str) -> tuple[str, ...]:
    """argv prefix that runs tests/fake_cfdev.py in place of `cf dev`."""
    return (sys.executable, FAKE_CFDEV, "--home", str(env_home), "--marker", marker)


@pytest.fixture
def fake_control(fake_command: tuple[str, ...]) -> ControlSurface:
    return ControlSurface(fake_command)


@pytest.fixture
def config(env_home: Path, fake_command: tuple[str, ...], marker: str) -> EnvironmentConfig:
    """Config for the fake environment; its components carry ``marker``."""
    return EnvironmentConfig(
        home_dir=env_home,
        control_command=fake_command,
        garden_ip="127.0.0.1",
        process_patterns=(f"{marker}-",),
        reap_verify_timeout=5,
    )


@pytest.fixture
def fast_policy() -> PollPolicy:
    return PollPolicy(timeout=10, interval=0.05)


@pytest.fixture
async def listener() -> AsyncGenerator[str, None]:
    """Local TCP listener; yields its http:// address."""

    async def on_connect(_reader: asyncio.StreamReader, writer: asyncio.StreamWriter) -> None:
        writer.close()

    server = await asyncio.start_server(on_connect, "127.0.0.1", 0)
    port = server.sockets[0].getsockname()[1]
    try:
        yield f"http://127.0.0.1:{port}"
    finally:
        server.close()
        await server.wait_closed()
