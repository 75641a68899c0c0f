"""Runtime configuration from environment variables."""

import shlex
from pathlib import Path

from pydantic import Field, field_validator
from pydantic_settings import BaseSettings, SettingsConfigDict

from cfdev_lifecycle import constants


class Settings(BaseSettings):
    """Runtime configuration from environment variables.

    All settings can be overridden via environment variables with CFDEV_ prefix.
    Example: CFDEV_HOME=/tmp/cfdev-home CFDEV_CLI="cf dev"
    """

    model_config = SettingsConfigDict(
        env_prefix="CFDEV_",
        extra="ignore",
    )

    # Environment home; None means ~/.cfdev
    home: Path | None = None

    # Control surface argv prefix, shell-quoted
    cli: str = " ".join(constants.DEFAULT_CONTROL_COMMAND)

    # Endpoints
    garden_ip: str = constants.DEFAULT_GARDEN_IP
    bosh_director_ip: str = constants.DEFAULT_BOSH_DIRECTOR_IP
    router_ip: str = constants.DEFAULT_ROUTER_IP

    # Verify-pass grace for the reaper; 0 keeps it a single scan
    reap_verify_timeout: float = Field(default=0.0, ge=0)

    @field_validator("home", mode="before")
    @classmethod
    def _blank_home_is_unset(cls, value: object) -> object:
        if isinstance(value, str) and not value.strip():
            return None
        return value

    def control_command(self) -> tuple[str, ...]:
        return tuple(shlex.split(self.cli))
