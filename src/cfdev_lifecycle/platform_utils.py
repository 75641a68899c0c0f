"""Host OS detection.

Uses psutil's built-in OS detection constants. The hyperkit-based
environment only exists on macOS; the engine itself (probes, scanner,
reaper) is portable and is exercised on Linux CI as well.
"""

from enum import Enum, auto
from functools import cache

import psutil


class HostOS(Enum):
    """Supported host operating systems."""

    LINUX = auto()
    """Linux (engine tests only; no hyperkit)."""

    MACOS = auto()
    """macOS (hyperkit, linuxkit and vpnkit available)."""

    UNKNOWN = auto()
    """Unsupported or unrecognized OS."""


@cache
def detect_host_os() -> HostOS:
    """Detect current host operating system using psutil constants."""
    if psutil.LINUX:
        return HostOS.LINUX
    if psutil.MACOS:
        return HostOS.MACOS
    return HostOS.UNKNOWN


def supports_environment() -> bool:
    """Whether the full cf dev environment can run on this host."""
    return detect_host_os() == HostOS.MACOS
