"""Constants for cfdev-lifecycle phases, endpoints and limits."""

from typing import Final

# ============================================================================
# Component Processes
# ============================================================================

HYPERVISOR_PATTERN: Final[str] = "hyperkit"
"""Command-line substring identifying the hypervisor process."""

GUEST_INIT_PATTERN: Final[str] = "linuxkit"
"""Command-line substring identifying the guest-init process."""

NETWORK_PATTERN: Final[str] = "vpnkit"
"""Command-line substring identifying the network-virtualization process."""

COMPONENT_PATTERNS: Final[tuple[str, ...]] = (GUEST_INIT_PATTERN, HYPERVISOR_PATTERN, NETWORK_PATTERN)
"""Patterns reaped before and after every scenario."""

# ============================================================================
# State Files (relative to <home>/state unless noted)
# ============================================================================

HYPERVISOR_PID_FILE: Final[str] = "hyperkit.pid"
GUEST_INIT_PID_FILE: Final[str] = "linuxkit.pid"
NETWORK_PID_FILE: Final[str] = "vpnkit.pid"

HTTP_PROXY_FILE: Final[str] = "http_proxy.json"
"""Proxy settings written to <home> while network virtualization is set up."""

DEFAULT_HOME_DIRNAME: Final[str] = ".cfdev"
"""Home directory name under $HOME when CFDEV_HOME is unset."""

# ============================================================================
# Endpoints
# ============================================================================

DEFAULT_GARDEN_IP: Final[str] = "localhost"
DEFAULT_BOSH_DIRECTOR_IP: Final[str] = "10.245.0.2"
DEFAULT_ROUTER_IP: Final[str] = "10.144.0.34"

GARDEN_PORT: Final[int] = 8888
BOSH_DIRECTOR_PORT: Final[int] = 25555
ROUTER_PORT: Final[int] = 80

LISTENER_CONNECT_TIMEOUT_SECONDS: Final[float] = 1.0
"""Per-check TCP connect timeout for network listener probes."""

# ============================================================================
# Control Surface
# ============================================================================

DEFAULT_CONTROL_COMMAND: Final[tuple[str, ...]] = ("cf", "dev")
"""argv prefix of the control surface; actions are appended."""

START_MARKER: Final[str] = "Starting VPNKit"
"""Output line announcing that the start action reached network setup."""

CONTROL_ACTION_TIMEOUT_SECONDS: Final[float] = 120.0
"""Timeout for short control actions (stop, bosh env)."""

SESSION_TERM_TIMEOUT_SECONDS: Final[float] = 3.0
SESSION_KILL_TIMEOUT_SECONDS: Final[float] = 2.0

OUTPUT_TAIL_CHARS: Final[int] = 4000
"""Captured output kept in error messages."""

OUTPUT_MAX_LINES: Final[int] = 2000
"""Most recent control-session output lines kept in memory."""

OUTPUT_READ_CHUNK_BYTES: Final[int] = 64 * 1024
OUTPUT_MAX_LINE_BYTES: Final[int] = 64 * 1024
"""Longer output lines are split into fragments of this size."""

# ============================================================================
# Phase Timeouts (seconds)
# ============================================================================

DEFAULT_POLL_INTERVAL_SECONDS: Final[float] = 1.0

START_MARKER_TIMEOUT_SECONDS: Final[float] = 20 * 60
PROXY_CONFIG_TIMEOUT_SECONDS: Final[float] = 10
NETWORK_READY_TIMEOUT_SECONDS: Final[float] = 10
GUEST_INIT_READY_TIMEOUT_SECONDS: Final[float] = 10
HYPERVISOR_READY_TIMEOUT_SECONDS: Final[float] = 120
"""Larger than the other pid files: disk provisioning happens first."""
CONTAINER_RUNTIME_READY_TIMEOUT_SECONDS: Final[float] = 360
CONTROL_PLANE_READY_TIMEOUT_SECONDS: Final[float] = 480
CONTROL_PLANE_ENV_TIMEOUT_SECONDS: Final[float] = 30
INGRESS_READY_TIMEOUT_SECONDS: Final[float] = 1200
WORKLOAD_COMPLETION_TIMEOUT_SECONDS: Final[float] = 300
TEARDOWN_VERIFICATION_TIMEOUT_SECONDS: Final[float] = 5

# ============================================================================
# Phase Names
# ============================================================================

PHASE_START_ANNOUNCED: Final[str] = "start-announced"
PHASE_WORKLOAD_COMPLETION: Final[str] = "workload-completion"
PHASE_TEARDOWN: Final[str] = "teardown"
PHASE_TEARDOWN_VERIFICATION: Final[str] = "teardown-verification"
