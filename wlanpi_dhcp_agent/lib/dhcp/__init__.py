"""
DHCP Module

This module tracks the interfaces the agent acquires DHCPv4 leases for.
It handles:
- Device bookkeeping and the queue of devices owing an event
- Rendering a device's lease state as XML
- Parsing the interface descriptions sent by the supervisor
- Driving dhclient through acquisition, renewal and release

Main components:
- DeviceRegistry: Owns devices and the changed-device queue
- LeaseRenderer: Device lease state to XML
- XmlSyntax: Interface description parser and lease serializer
- DhclientStateMachine: Timer driven protocol engine on top of dhclient
- DHCPClient: dhclient operations
- DHCPLeaseParser: dhclient lease file parsing

Usage:
    from wlanpi_dhcp_agent.lib.dhcp import DeviceRegistry, DhclientStateMachine, DHCPClient

    fsm = DhclientStateMachine(DHCPClient())
    registry = DeviceRegistry(fsm)
"""

from .device import Device, DeviceRegistry
from .dhcp_client import DHCPClient
from .dhcp_lease_parser import DHCPLeaseParser
from .domain import (
    DeviceState,
    DhcpConfig,
    InterfaceConfig,
    Lease,
    LeaseState,
    LinkType,
)
from .fsm import DhclientStateMachine, StateMachine
from .renderer import LeaseRenderer
from .syntax import InterfaceHandle, XmlSyntax

__all__ = [
    "Device",
    "DeviceRegistry",
    "DeviceState",
    "DhcpConfig",
    "DHCPClient",
    "DHCPLeaseParser",
    "DhclientStateMachine",
    "InterfaceConfig",
    "InterfaceHandle",
    "Lease",
    "LeaseRenderer",
    "LeaseState",
    "LinkType",
    "StateMachine",
    "XmlSyntax",
]
