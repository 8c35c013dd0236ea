class AgentError(Exception):
    """Base class for errors raised by the DHCP agent."""


class DeviceExistsError(AgentError):
    """A device was created for an interface name that is already managed."""

    def __init__(self, ifname: str):
        super().__init__(f"device {ifname} already exists")
        self.ifname = ifname


class ProtocolError(AgentError):
    """A control message could not be framed or parsed."""


class ControlSocketClosed(AgentError):
    """The supervisor closed its end of the control socket."""


class FatalLoopError(AgentError):
    """Waiting for activity failed; the event loop cannot continue."""


class InterfaceParseError(AgentError):
    """An interface description could not be parsed."""
