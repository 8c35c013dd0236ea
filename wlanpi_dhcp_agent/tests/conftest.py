"""
Pytest configuration and shared fixtures for wlanpi-dhcp-agent tests
"""
import logging
from typing import Optional

import pytest
from pymessagebus import MessageBus

from wlanpi_dhcp_agent.lib.control import DhcpRestApi, RequestRouter, build_route_tree
from wlanpi_dhcp_agent.lib.dhcp import (
    Device,
    DeviceRegistry,
    DeviceState,
    Lease,
    LeaseRenderer,
    StateMachine,
    XmlSyntax,
)
from wlanpi_dhcp_agent.lib.logging_utils import setup_logging


class FakeStateMachine(StateMachine):
    """Records what the agent asks of the protocol engine"""

    def __init__(self):
        self.calls: list[tuple[str, str]] = []
        self.timeout: Optional[float] = None
        self.expirations = 0
        self.idle_waits: list[float] = []

    def names(self, what: str) -> list[str]:
        return [ifname for call, ifname in self.calls if call == what]

    def next_timeout(self) -> Optional[float]:
        return self.timeout

    def process_expirations(self) -> None:
        self.expirations += 1

    def start(self, device: Device) -> None:
        self.calls.append(("start", device.ifname))
        device.lease = None
        device.failed = False
        device.set_state(DeviceState.SELECTING)

    def stop(self, device: Device) -> None:
        self.calls.append(("stop", device.ifname))
        device.lease = None
        device.failed = False
        device.set_state(DeviceState.INIT)

    def release(self, device: Device) -> None:
        self.calls.append(("release", device.ifname))
        device.set_state(DeviceState.RELEASING)
        device.lease = None
        device.mark_changed()

    def link_event(self, device: Device, link_up: bool) -> None:
        self.calls.append(("link", device.ifname))

    async def wait_idle(self, timeout: float) -> None:
        self.idle_waits.append(timeout)


def interface_xml(
    name: str = "eth0",
    up: bool = True,
    lower_up: bool = True,
    dhcp: bool = True,
    hostname: Optional[str] = None,
) -> str:
    dhcp_section = ""
    if dhcp:
        host = f"<hostname>{hostname}</hostname>" if hostname else ""
        dhcp_section = f'<ipv4><dhcp enabled="true">{host}</dhcp></ipv4>'
    return (
        f'<interface name="{name}" type="ethernet" index="2">'
        f'<status up="{str(up).lower()}" lower-up="{str(lower_up).lower()}"/>'
        f"<hwaddr>02:00:00:00:00:01</hwaddr>"
        f"{dhcp_section}"
        f"</interface>"
    )


def bound_lease(address: str = "192.0.2.10/24") -> Lease:
    return Lease(address=address, gateway="192.0.2.1", dns_servers=["192.0.2.53"])


@pytest.fixture(autouse=True)
def setup_test_logging():
    """Setup logging for tests with appropriate levels"""
    setup_logging(level=logging.INFO)


@pytest.fixture
def bus() -> MessageBus:
    return MessageBus()


@pytest.fixture
def fsm() -> FakeStateMachine:
    return FakeStateMachine()


@pytest.fixture
def registry(fsm) -> DeviceRegistry:
    return DeviceRegistry(fsm)


@pytest.fixture
def syntax() -> XmlSyntax:
    return XmlSyntax()


@pytest.fixture
def renderer(syntax) -> LeaseRenderer:
    return LeaseRenderer(syntax)


@pytest.fixture
def api(registry, fsm, renderer, syntax) -> DhcpRestApi:
    return DhcpRestApi(registry, fsm, renderer, syntax)


@pytest.fixture
def router(api) -> RequestRouter:
    return RequestRouter(build_route_tree(api))
