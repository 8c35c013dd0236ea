from __future__ import annotations

from typing import Optional

from pydantic import BaseModel, Field, field_validator

from wlanpi_dhcp_agent import constants
from wlanpi_dhcp_agent.lib.logging_utils import LEVELS


class AgentGeneral(BaseModel):
    socket_path: str = Field(default=constants.CONTROL_SOCKET)
    log_level: str = Field(default="info")
    shutdown_timeout: float = Field(default=10.0, gt=0)

    @field_validator("log_level")
    def known_level(cls, v):  # noqa: N805
        if v.strip().lower() not in LEVELS:
            raise ValueError(f"unknown log level {v}")
        return v.strip().lower()


class AgentDHCP(BaseModel):
    dhclient: str = Field(default="dhclient")
    lease_dir: str = Field(default=constants.LEASE_DIR)
    acquire_timeout: int = Field(default=30, gt=0)
    retry_min: int = Field(default=4, gt=0)
    retry_max: int = Field(default=64, gt=0)
    command_timeout: int = Field(default=10, gt=0)
    hostname: Optional[str] = Field(default=None)

    @field_validator("hostname", mode="before")
    def empty_to_none(cls, v):  # noqa: N805
        if v == "":
            return None
        return v


class AgentConfig(BaseModel):
    General: AgentGeneral = Field(default_factory=AgentGeneral)
    DHCP: AgentDHCP = Field(default_factory=AgentDHCP)
