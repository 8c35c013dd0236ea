import logging
import os

from pymessagebus import MessageBus
from pymessagebus.middleware.logger import (
    LoggingMiddlewareConfig,
    get_logger_middleware,
)

from wlanpi_dhcp_agent.lib.logging_utils import level_from_name


def _env_on(name: str, default: str = "on") -> bool:
    return os.environ.get(name, default).strip().lower() in {"1", "true", "yes", "on"}


BUS_LOG_ENABLED = _env_on("DHCP_AGENT_BUS_LOG", "on")
BUS_LOG_LEVEL = level_from_name(os.environ.get("DHCP_AGENT_BUS_LOG_LEVEL", "DEBUG"))
BUS_LOG_PAYLOAD = _env_on("DHCP_AGENT_BUS_LOG_PAYLOAD", "off")


def get_payload_middleware(logger: logging.Logger, level: int):
    """Log the full message before passing it down the chain"""

    def payload_middleware(message, next_):
        logger.log(level, f"Message payload: {message!r}")
        return next_(message)

    return payload_middleware


def build_middlewares(
    enabled: bool = BUS_LOG_ENABLED,
    level: int = BUS_LOG_LEVEL,
    payload: bool = BUS_LOG_PAYLOAD,
) -> list:
    """Build bus middlewares based on env configuration"""
    middlewares = []
    if enabled:
        bus_logger = logging.getLogger("wlanpi_dhcp_agent.event_bus")
        logging_config = LoggingMiddlewareConfig(
            mgs_received_level=level,
            mgs_succeeded_level=level,
            mgs_failed_level=logging.ERROR,
        )
        middlewares.append(get_logger_middleware(bus_logger, logging_config))
        if payload:
            middlewares.append(get_payload_middleware(bus_logger, level))
    return middlewares


message_bus = MessageBus(middlewares=build_middlewares())
