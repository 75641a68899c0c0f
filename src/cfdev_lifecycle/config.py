"""Environment configuration for cfdev-lifecycle.

EnvironmentConfig is the explicit value handed to the harness, sequencer
and reaper: where the environment keeps its state, how to reach its
endpoints, and which processes belong to it. Nothing in the engine reads
ambient globals such as $HOME directly.

Example:
    ```python
    from cfdev_lifecycle import EnvironmentConfig, LifecycleHarness, reference_scenario

    config = EnvironmentConfig.from_settings()
    async with LifecycleHarness(config) as harness:
        result = await harness.run(reference_scenario(config))
    ```
"""

from __future__ import annotations

from pathlib import Path

from pydantic import BaseModel, ConfigDict, Field

from cfdev_lifecycle import constants
from cfdev_lifecycle.models import PollPolicy
from cfdev_lifecycle.settings import Settings

_REAP_VERIFY_INTERVAL_SECONDS = 0.1


class EnvironmentConfig(BaseModel):
    """Configuration for one cf dev environment.

    Attributes:
        home_dir: Environment root; cache and state directories live below it.
        home_is_default: True when home_dir was derived from $HOME rather than
            configured. Only then is a stale http_proxy.json removed before a run.
        control_command: argv prefix of the control surface.
        garden_ip: Address of the container runtime (garden) listener.
        bosh_director_ip: Address of the control plane (BOSH director).
        router_ip: Address of the ingress (CF router).
        process_patterns: Command-line substrings of the component processes.
        reap_verify_timeout: Seconds the reaper's verify pass may re-scan.
            0 keeps the verify pass a single scan.
    """

    model_config = ConfigDict(
        frozen=True,  # Immutable after creation
        extra="forbid",  # Reject unknown fields
    )

    home_dir: Path = Field(description="Environment root directory")
    home_is_default: bool = Field(default=False, description="home_dir derived from $HOME")
    control_command: tuple[str, ...] = Field(
        default=constants.DEFAULT_CONTROL_COMMAND,
        min_length=1,
        description="Control surface argv prefix",
    )
    garden_ip: str = Field(default=constants.DEFAULT_GARDEN_IP)
    bosh_director_ip: str = Field(default=constants.DEFAULT_BOSH_DIRECTOR_IP)
    router_ip: str = Field(default=constants.DEFAULT_ROUTER_IP)
    process_patterns: tuple[str, ...] = Field(
        default=constants.COMPONENT_PATTERNS,
        min_length=1,
        description="Component process command-line substrings",
    )
    reap_verify_timeout: float = Field(default=0.0, ge=0)

    @classmethod
    def from_settings(cls, settings: Settings | None = None) -> EnvironmentConfig:
        """Build from CFDEV_* environment variables.

        Home resolution order:
        1. CFDEV_HOME
        2. ~/.cfdev
        """
        settings = settings or Settings()
        if settings.home is not None:
            home, is_default = settings.home, False
        else:
            home, is_default = Path.home() / constants.DEFAULT_HOME_DIRNAME, True
        return cls(
            home_dir=home,
            home_is_default=is_default,
            control_command=settings.control_command(),
            garden_ip=settings.garden_ip,
            bosh_director_ip=settings.bosh_director_ip,
            router_ip=settings.router_ip,
            reap_verify_timeout=settings.reap_verify_timeout,
        )

    # Derived paths

    @property
    def cache_dir(self) -> Path:
        return self.home_dir / "cache"

    @property
    def state_dir(self) -> Path:
        return self.home_dir / "state"

    @property
    def http_proxy_file(self) -> Path:
        return self.home_dir / constants.HTTP_PROXY_FILE

    @property
    def hypervisor_pid_file(self) -> Path:
        return self.state_dir / constants.HYPERVISOR_PID_FILE

    @property
    def guest_init_pid_file(self) -> Path:
        return self.state_dir / constants.GUEST_INIT_PID_FILE

    @property
    def network_pid_file(self) -> Path:
        return self.state_dir / constants.NETWORK_PID_FILE

    # Endpoints

    @property
    def garden_url(self) -> str:
        return f"http://{self.garden_ip}:{constants.GARDEN_PORT}"

    @property
    def bosh_director_url(self) -> str:
        return f"https://{self.bosh_director_ip}:{constants.BOSH_DIRECTOR_PORT}"

    @property
    def router_url(self) -> str:
        return f"http://{self.router_ip}:{constants.ROUTER_PORT}"

    def reap_verify_policy(self) -> PollPolicy | None:
        """Verify-pass polling policy, or None for a single scan."""
        if self.reap_verify_timeout <= 0:
            return None
        interval = min(_REAP_VERIFY_INTERVAL_SECONDS, self.reap_verify_timeout)
        return PollPolicy(timeout=self.reap_verify_timeout, interval=interval)
