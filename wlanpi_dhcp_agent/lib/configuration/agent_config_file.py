import os
from typing import Optional

from pydantic import ValidationError

from wlanpi_dhcp_agent import constants
from wlanpi_dhcp_agent.lib.configuration.config_file import ConfigFile
from wlanpi_dhcp_agent.lib.configuration.schemas import AgentConfig

AGENT_CONFIG_DIR = constants.CONFIG_DIR


class AgentConfigFile(ConfigFile):
    def __init__(self, config_file: Optional[str] = None):
        super().__init__(
            config_file or os.path.join(AGENT_CONFIG_DIR, "config.toml"),
            defaults=AgentConfig().model_dump(exclude_none=True),
        )
        self.config: AgentConfig = AgentConfig()

    def load_or_create_defaults(self, allow_empty: bool = False):  # type: ignore[override]
        super().load_or_create_defaults(allow_empty=allow_empty)
        # Validate and normalize with schema; fall back to defaults on error
        try:
            self.config = AgentConfig(**self.data)
            self.data = self.config.model_dump(exclude_none=True)
        except ValidationError as e:
            self.logger.warning(f"Invalid config in {self.config_file}, using defaults: {e}")
            self.create_defaults()
            self.config = AgentConfig(**self.data)
            try:
                self.save()
            except OSError as save_error:
                self.logger.error(f"Unable to rewrite config with defaults: {save_error}")
        return self.config
