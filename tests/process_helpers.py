"""Shared helpers for process-level tests.

FakeProcessTable stands in for the OS process table in unit tests.
spawn_sleeper() starts a real, harmless process whose argv carries a
unique marker so that integration tests can scan and reap it without
touching anything else on the machine.
"""

from __future__ import annotations

import subprocess
import sys
import uuid
from collections.abc import Iterable
from pathlib import Path

import pytest

from cfdev_lifecycle.exceptions import ProcessTableUnavailableError
from cfdev_lifecycle.models import ProcessRecord

FAKE_CFDEV = str(Path(__file__).with_name("fake_cfdev.py"))

skip_on_windows = pytest.mark.skipif(
    sys.platform == "win32",
    reason="SIGKILL and pid files require a POSIX host",
)


def unique_marker(label: str = "proc") -> str:
    """Command-line marker no unrelated process will contain."""
    return f"cfdev-lifecycle-test-{label}-{uuid.uuid4().hex[:12]}"


def spawn_sleeper(marker: str, seconds: int = 120) -> subprocess.Popen[bytes]:
    """Start a Python sleeper whose command line contains ``marker``."""
    return subprocess.Popen(
        [sys.executable, "-c", f"import time; time.sleep({seconds})", marker],
        stdout=subprocess.DEVNULL,
        stderr=subprocess.DEVNULL,
    )


class FakeProcessTable:
    """In-memory ProcessTable.

    Args:
        records: Initial process snapshot
        respawn: Pids that come straight back after SIGKILL
        kill_errors: Pid → exception raised by kill()
        unavailable: Make every enumerate() fail
    """

    def __init__(
        self,
        records: Iterable[ProcessRecord] = (),
        respawn: Iterable[int] = (),
        kill_errors: dict[int, Exception] | None = None,
        unavailable: bool = False,
    ) -> None:
        self.records = list(records)
        self.respawn = set(respawn)
        self.kill_errors = kill_errors or {}
        self.unavailable = unavailable
        self.kills: list[int] = []
        self.enumerations = 0

    def enumerate(self) -> list[ProcessRecord]:
        self.enumerations += 1
        if self.unavailable:
            raise ProcessTableUnavailableError("Cannot enumerate processes: fake table offline")
        return list(self.records)

    def kill(self, pid: int) -> bool:
        self.kills.append(pid)
        if pid in self.kill_errors:
            raise self.kill_errors[pid]
        alive = any(r.pid == pid for r in self.records)
        if pid not in self.respawn:
            self.records = [r for r in self.records if r.pid != pid]
        return alive


def record(pid: int, command_line: str) -> ProcessRecord:
    return ProcessRecord(pid=pid, command_line=command_line)
