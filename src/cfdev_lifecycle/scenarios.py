"""Phase and scenario declarations, plus the reference cf dev scenarios."""

from __future__ import annotations

import shlex
from dataclasses import dataclass, field
from pathlib import Path

from cfdev_lifecycle import constants
from cfdev_lifecycle.config import EnvironmentConfig
from cfdev_lifecycle.models import PollPolicy
from cfdev_lifecycle.probes import CommandSucceeds, FileExists, NetworkListening, Probe


@dataclass(frozen=True)
class Phase:
    """One named readiness check.

    Attributes:
        name: Phase name reported on failure
        probe: Condition to wait for
        policy: Deadline and polling interval
        track_pid: Component label. When set, the probe must be a FileExists
            on a pid file; its pid is captured before teardown and must exit
            afterwards.
    """

    name: str
    probe: Probe
    policy: PollPolicy
    track_pid: str | None = None

    def __post_init__(self) -> None:
        if not self.name:
            raise ValueError("Phase name must not be empty")
        if self.track_pid is not None and not isinstance(self.probe, FileExists):
            raise ValueError(f"Phase {self.name!r}: only pid-file phases can track a pid")


@dataclass(frozen=True)
class Scenario:
    """One end-to-end lifecycle run, declared ahead of execution.

    Attributes:
        name: Scenario name for logs and results
        phases: Readiness phases, evaluated strictly in order
        start_marker: Output line the start action must print before any
            phase is checked (None skips the check)
        start_marker_policy: Deadline for the start marker
        image_path: Custom environment image passed to `start -f`
        await_workload: Require the start action to exit 0 after the
            phases. When False the start action is terminated instead.
        workload_timeout: Deadline for the start action to exit
        stop_timeout: Deadline for the stop action
        teardown_policy: Per-pid deadline for component exit after stop
    """

    name: str
    phases: tuple[Phase, ...]
    start_marker: str | None = constants.START_MARKER
    start_marker_policy: PollPolicy = field(
        default_factory=lambda: PollPolicy(timeout=constants.START_MARKER_TIMEOUT_SECONDS)
    )
    image_path: Path | None = None
    await_workload: bool = True
    workload_timeout: float = constants.WORKLOAD_COMPLETION_TIMEOUT_SECONDS
    stop_timeout: float = constants.CONTROL_ACTION_TIMEOUT_SECONDS
    teardown_policy: PollPolicy = field(
        default_factory=lambda: PollPolicy(timeout=constants.TEARDOWN_VERIFICATION_TIMEOUT_SECONDS)
    )

    def __post_init__(self) -> None:
        names = [phase.name for phase in self.phases]
        duplicates = sorted({n for n in names if names.count(n) > 1})
        if duplicates:
            raise ValueError(f"Duplicate phase names: {duplicates}")

    @property
    def tracked(self) -> dict[str, Path]:
        """Component label → pid file, in phase order."""
        return {p.track_pid: p.probe.path for p in self.phases if p.track_pid is not None}


def _policy(timeout: float) -> PollPolicy:
    return PollPolicy(timeout=timeout, interval=constants.DEFAULT_POLL_INTERVAL_SECONDS)


def startup_phases(config: EnvironmentConfig) -> list[Phase]:
    """Phases up to the container runtime listening."""
    return [
        Phase(
            "network-virtualization-configured",
            FileExists(config.http_proxy_file),
            _policy(constants.PROXY_CONFIG_TIMEOUT_SECONDS),
        ),
        Phase(
            "network-virtualization-ready",
            FileExists(config.network_pid_file),
            _policy(constants.NETWORK_READY_TIMEOUT_SECONDS),
            track_pid=constants.NETWORK_PATTERN,
        ),
        Phase(
            "guest-init-ready",
            FileExists(config.guest_init_pid_file),
            _policy(constants.GUEST_INIT_READY_TIMEOUT_SECONDS),
            track_pid=constants.GUEST_INIT_PATTERN,
        ),
        Phase(
            "hypervisor-ready",
            FileExists(config.hypervisor_pid_file),
            _policy(constants.HYPERVISOR_READY_TIMEOUT_SECONDS),
            track_pid=constants.HYPERVISOR_PATTERN,
        ),
        Phase(
            "container-runtime-ready",
            NetworkListening(config.garden_url),
            _policy(constants.CONTAINER_RUNTIME_READY_TIMEOUT_SECONDS),
        ),
    ]


def reference_scenario(config: EnvironmentConfig) -> Scenario:
    """Full deploy: start, every readiness signal, workload exit, stop."""
    cli = shlex.join(config.control_command)
    # A failing `bosh env` action must fail the phase, not eval to nothing
    bosh_env = ("/bin/sh", "-e", "-c", f'env=$({cli} bosh env) && eval "$env" && bosh env')
    phases = [
        *startup_phases(config),
        Phase(
            "control-plane-ready",
            NetworkListening(config.bosh_director_url),
            _policy(constants.CONTROL_PLANE_READY_TIMEOUT_SECONDS),
        ),
        Phase(
            "control-plane-env",
            CommandSucceeds(bosh_env, timeout=constants.CONTROL_PLANE_ENV_TIMEOUT_SECONDS),
            _policy(constants.CONTROL_PLANE_ENV_TIMEOUT_SECONDS),
        ),
        Phase(
            "ingress-ready",
            NetworkListening(config.router_url),
            _policy(constants.INGRESS_READY_TIMEOUT_SECONDS),
        ),
    ]
    return Scenario(name="vm-lifecycle", phases=tuple(phases))


def custom_image_scenario(config: EnvironmentConfig, image_path: Path) -> Scenario:
    """Start from a custom environment image and stop once garden listens."""
    return Scenario(
        name="custom-image",
        phases=tuple(startup_phases(config)),
        image_path=image_path,
        await_workload=False,
    )
