from typing import Optional

from .device import Device
from .domain import Lease, LeaseState
from .syntax import XmlSyntax


class LeaseRenderer:
    """Produces the wire representation of a device's lease state"""

    def __init__(self, syntax: Optional[XmlSyntax] = None):
        self.syntax = syntax or XmlSyntax()

    @staticmethod
    def lease_for(device: Device) -> Lease:
        """Failure wins over a stale lease; no lease renders as released."""
        if device.failed:
            return Lease.placeholder(LeaseState.FAILED)
        if device.lease is not None:
            return device.lease
        return Lease.placeholder(LeaseState.RELEASED)

    def render(self, device: Device) -> Optional[str]:
        return self.syntax.lease_to_xml(self.lease_for(device))
