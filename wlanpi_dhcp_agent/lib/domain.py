import typing as t
from enum import Enum


class DhcpAgentEvents(Enum):
    STARTUP_COMPLETE = "STARTUP_COMPLETE"  # The control socket is connected and the loop is about to run.
    SHUTDOWN_STARTED = "SHUTDOWN_STARTED"  # Leases are about to be released
    SHUTDOWN_COMPLETE = "SHUTDOWN_COMPLETE"


class Messages:
    class StartupComplete(t.NamedTuple):
        pass

    class ShutdownStarted(t.NamedTuple):
        signum: t.Optional[int] = None

    class ShutdownComplete(t.NamedTuple):
        pass

    class DeviceEventSent(t.NamedTuple):
        ifname: str

    class LeaseAcquired(t.NamedTuple):
        ifname: str
        address: str

    class LeaseLost(t.NamedTuple):
        ifname: str

    class AcquisitionFailed(t.NamedTuple):
        ifname: str

    class LeaseReleaseFailed(t.NamedTuple):
        ifname: str
        error: str
