from datetime import datetime
from enum import Enum
from ipaddress import IPv4Address, IPv4Interface
from typing import Optional

from pydantic import BaseModel, ConfigDict, Field


class DeviceState(Enum):
    """Protocol states of a managed device"""

    INIT = "init"
    SELECTING = "selecting"
    REQUESTING = "requesting"
    RENEWING = "renewing"
    REBINDING = "rebinding"
    BOUND = "bound"
    RELEASING = "releasing"
    FAILED = "failed"


# States in which a held lease must be handed back before the device goes away.
RELEASABLE_STATES = frozenset(
    {
        DeviceState.REQUESTING,
        DeviceState.RENEWING,
        DeviceState.REBINDING,
        DeviceState.BOUND,
    }
)


class LeaseState(Enum):
    GRANTED = "granted"
    RELEASED = "released"
    FAILED = "failed"


class AddrconfType(Enum):
    DHCP = "dhcp"


class AddressFamily(Enum):
    IPV4 = "ipv4"


class LinkType(Enum):
    """Network interface types"""

    ETHERNET = "ethernet"
    WIRELESS = "wireless"
    BRIDGE = "bridge"
    VLAN = "vlan"
    LOOPBACK = "loopback"
    OTHER = "other"

    @classmethod
    def parse(cls, value: Optional[str]) -> "LinkType":
        if not value:
            return cls.OTHER
        try:
            return cls(value.strip().lower())
        except ValueError:
            return cls.OTHER


class Lease(BaseModel):
    """An address assignment, either granted by a server or synthesized for rendering"""

    type: AddrconfType = Field(AddrconfType.DHCP)
    family: AddressFamily = Field(AddressFamily.IPV4)
    state: LeaseState = Field(LeaseState.GRANTED)
    address: Optional[IPv4Interface] = Field(None, description="Address with netmask")
    gateway: Optional[IPv4Address] = Field(None)
    dns_servers: list[IPv4Address] = Field(default_factory=list)
    server_id: Optional[IPv4Address] = Field(None)
    hostname: Optional[str] = Field(None)
    domain: Optional[str] = Field(None)
    lease_time: Optional[int] = Field(None, description="Lease time in seconds")
    acquired: Optional[datetime] = Field(None)
    renew: Optional[datetime] = Field(None)
    rebind: Optional[datetime] = Field(None)
    expire: Optional[datetime] = Field(None)

    @classmethod
    def placeholder(cls, state: LeaseState) -> "Lease":
        """A lease with no addresses, used only to render a device with no real lease"""
        return cls(type=AddrconfType.DHCP, family=AddressFamily.IPV4, state=state)

    @property
    def is_placeholder(self) -> bool:
        return self.address is None


class DhcpRequest(BaseModel):
    """DHCP parameters requested for an interface"""

    enabled: bool = Field(True)
    hostname: Optional[str] = Field(None)
    client_id: Optional[str] = Field(None)
    vendor_class: Optional[str] = Field(None)
    lease_time: Optional[int] = Field(None)
    acquire_timeout: Optional[int] = Field(None)


class InterfaceConfig(BaseModel):
    """An interface as described by the supervisor"""

    name: str = Field(..., description="Interface name (e.g., eth0)")
    link_type: LinkType = Field(LinkType.OTHER)
    ifindex: Optional[int] = Field(None)
    hwaddr: Optional[str] = Field(None)
    up: bool = Field(False, description="Administratively up")
    lower_up: bool = Field(False, description="Carrier present")
    dhcp: Optional[DhcpRequest] = Field(None)


class DhcpConfig(BaseModel):
    """Effective acquisition config of a device. Compared by value to detect changes."""

    model_config = ConfigDict(frozen=True)

    ifindex: Optional[int] = None
    hwaddr: Optional[str] = None
    hostname: Optional[str] = None
    client_id: Optional[str] = None
    vendor_class: Optional[str] = None
    lease_time: Optional[int] = None
    acquire_timeout: Optional[int] = None

    @classmethod
    def from_interface(cls, ifconfig: InterfaceConfig) -> Optional["DhcpConfig"]:
        request = ifconfig.dhcp
        if request is None or not request.enabled:
            return None
        return cls(
            ifindex=ifconfig.ifindex,
            hwaddr=ifconfig.hwaddr.lower() if ifconfig.hwaddr else None,
            hostname=request.hostname,
            client_id=request.client_id,
            vendor_class=request.vendor_class,
            lease_time=request.lease_time,
            acquire_timeout=request.acquire_timeout,
        )
