import os

RUNTIME_ENV = os.environ.get("RUNTIME_ENV", "production")
IS_DEV = RUNTIME_ENV == "development"

CONFIG_DIR = "/etc/wlanpi-dhcp-agent"
CONFIG_FILE = os.path.join(CONFIG_DIR, "config.toml")
RUN_DIR = "/run/wlanpi-dhcp-agent"
CONTROL_SOCKET = os.path.join(RUN_DIR, "control.sock")
LEASE_DIR = "/var/lib/dhcp"

EVENT_PATH_PREFIX = "/system/event"
MAX_MESSAGE_SIZE = 65536
