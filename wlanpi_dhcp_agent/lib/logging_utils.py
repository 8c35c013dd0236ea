import logging
import os
import sys

from wlanpi_dhcp_agent.constants import IS_DEV


def supports_color():
    """
    Returns True if the running system's terminal supports color, and False otherwise.
    """
    # Check for explicit override
    if os.environ.get("FORCE_COLOR", "").lower() in ("1", "true", "yes"):
        return True
    if os.environ.get("NO_COLOR", "").lower() in ("1", "true", "yes"):
        return False

    plat = sys.platform
    supported_platform = plat != "Pocket PC" and (
        plat != "win32" or "ANSICON" in os.environ
    )

    # isatty is not always implemented
    is_a_tty = hasattr(sys.stderr, "isatty") and sys.stderr.isatty()

    # PyCharm and other IDEs often support color even when not a TTY
    ide_support = any(
        env in os.environ for env in ["PYCHARM_HOSTED", "VSCODE_PID", "TERM_PROGRAM"]
    )

    return supported_platform and (is_a_tty or ide_support)


USE_COLOR = supports_color()


# https://talyian.github.io/ansicolors/
class CustomFormatter(logging.Formatter):
    """Custom colored logging formatter with support for terminal colors"""

    red = "\x1b[31;20m"
    white = "\x1b[38;5;255m"
    dark_grey = "\x1b[38;5;244m"
    orange = "\x1b[38;5;208m"
    bold_red = "\x1b[31;1m"
    reset = "\x1b[0m"
    fmt = (
        "%(asctime)s | %(levelname)8s | %(name)s: %(message)s (%(filename)s:%(lineno)d)"
    )

    USE_COLOR = USE_COLOR

    FORMATS = {
        logging.DEBUG: dark_grey + fmt + reset,
        logging.INFO: white + fmt + reset,
        logging.WARNING: orange + fmt + reset,
        logging.ERROR: red + fmt + reset,
        logging.CRITICAL: bold_red + fmt + reset,
    }

    def format(self, record):
        log_fmt = self.FORMATS.get(record.levelno) if self.USE_COLOR else self.fmt
        formatter = logging.Formatter(log_fmt)
        return formatter.format(record)


def create_console_handler(level=logging.DEBUG):
    """Create a console handler with the CustomFormatter"""
    handler = logging.StreamHandler()
    handler.setLevel(level)
    handler.setFormatter(CustomFormatter())
    return handler


LEVELS = {
    "debug": logging.DEBUG,
    "info": logging.INFO,
    "warn": logging.WARN,
    "warning": logging.WARN,
    "error": logging.ERROR,
    "critical": logging.CRITICAL,
}


def level_from_name(name, default: int = logging.INFO) -> int:
    if isinstance(name, int):
        return name
    return LEVELS.get(str(name).strip().lower(), default)


def _env_level(name: str, default: int = logging.INFO) -> int:
    value = os.environ.get(name)
    if value is None:
        return default
    return level_from_name(value, default)


def setup_logging(level=logging.INFO, handlers=None):
    """Setup logging with custom formatter"""

    level = level_from_name(level)

    if IS_DEV:
        # Default to DEBUG for dev mode.
        level = logging.DEBUG

    # Allow env override for global app log level
    level = _env_level("DHCP_AGENT_LOG_LEVEL", level)

    if handlers is None:
        handlers = [create_console_handler(level)]

    logging.basicConfig(encoding="utf-8", level=level, handlers=handlers, force=True)

    # Bus logger level can be overridden via DHCP_AGENT_BUS_LOG_LEVEL
    bus_level = _env_level("DHCP_AGENT_BUS_LOG_LEVEL", level)
    logging.getLogger("wlanpi_dhcp_agent.event_bus").setLevel(bus_level)

    if IS_DEV:
        logging.getLogger("wlanpi_dhcp_agent.lib.control.control_socket").setLevel(
            logging.INFO
        )
        logging.getLogger("wlanpi_dhcp_agent.lib.dhcp.fsm").setLevel(logging.DEBUG)
    else:
        logging.getLogger("wlanpi_dhcp_agent.lib.control.control_socket").setLevel(level)
        logging.getLogger("wlanpi_dhcp_agent.lib.dhcp.fsm").setLevel(level)
