import logging
from typing import Optional

from wlanpi_dhcp_agent.lib.dhcp.device import Device, DeviceRegistry
from wlanpi_dhcp_agent.lib.dhcp.domain import DeviceState
from wlanpi_dhcp_agent.lib.dhcp.fsm import StateMachine
from wlanpi_dhcp_agent.lib.dhcp.renderer import LeaseRenderer
from wlanpi_dhcp_agent.lib.dhcp.syntax import XmlSyntax
from wlanpi_dhcp_agent.lib.errors import InterfaceParseError

from .protocol import Method, Request
from .router import RouteNode


class DhcpRestApi:
    """Request handlers for the agent's control surface"""

    def __init__(
        self,
        registry: DeviceRegistry,
        fsm: StateMachine,
        renderer: LeaseRenderer,
        syntax: Optional[XmlSyntax] = None,
    ):
        self.logger = logging.getLogger(__name__)
        self.logger.info(f"Initializing {__name__}")

        self.registry = registry
        self.fsm = fsm
        self.renderer = renderer
        self.syntax = syntax or renderer.syntax

    def _respond_with_device(self, device: Device, request: Request) -> int:
        body = self.renderer.render(device)
        if body is None:
            return request.fail("cannot render interface information")
        request.response_body = body
        return 0

    def device_get(self, ifname: Optional[str], request: Request) -> int:
        """GET /device/<ifname>"""
        if not ifname:
            return request.fail("need to specify interface")

        device = self.registry.find(ifname)
        if device is None:
            return request.fail(f"interface {ifname} not known")

        return self._respond_with_device(device, request)

    def interface_put(self, ifname: Optional[str], request: Request) -> int:
        """PUT /interface/<ifname>, body is an interface description"""
        if not ifname:
            return request.fail("no interface name given")

        try:
            handle = self.syntax.open_handle()
        except Exception as e:
            self.logger.error(f"Unable to open interface parsing handle: {e}")
            return request.fail("unable to create interface parsing handle")

        with handle:
            try:
                handle.load(request.body)
            except InterfaceParseError as e:
                self.logger.debug(f"{ifname}: {e}")
                return request.fail("unable to parse interface configuration")

            ifconfig = handle.by_name(ifname)
            if ifconfig is None:
                return request.fail(f"cannot find configuration for interface {ifname}")

            reacquire = False
            device = self.registry.find(ifconfig.name)
            if ifconfig.up:
                self.logger.debug(f"{ifname}: received request to acquire lease")
                if device is not None:
                    if self.registry.reconfigure(device, ifconfig):
                        reacquire = True
                    if device.state != DeviceState.BOUND:
                        reacquire = True
                else:
                    device = self.registry.create(ifconfig.name, ifconfig.link_type)
                    self.registry.reconfigure(device, ifconfig)
                    reacquire = True
            else:
                self.logger.debug(f"{ifname}: received request to release lease")
                if device is None:
                    return 0
                self.registry.stop(device)

            # Carrier only tunes retry timing
            device.link_up = ifconfig.lower_up
            self.fsm.link_event(device, ifconfig.lower_up)

            # If nothing changed, still tell the supervisor the current lease state
            if not reacquire:
                self.registry.notify(device)
            elif device.config is not None:
                self.registry.start(device)
            return 0

    def interface_delete(self, ifname: Optional[str], request: Request) -> int:
        """DELETE /interface/<ifname>"""
        if not ifname:
            return request.fail("no interface name given")

        device = self.registry.find(ifname)
        if device is not None:
            self.registry.stop(device)
        return 0


def build_route_tree(api: DhcpRestApi) -> RouteNode:
    """The fixed route table: /interface/<name> and /device/<name>"""
    return RouteNode(
        name="/",
        children=(
            RouteNode(
                name="interface",
                handlers={
                    Method.PUT: api.interface_put,
                    Method.DELETE: api.interface_delete,
                },
            ),
            RouteNode(
                name="device",
                handlers={Method.GET: api.device_get},
            ),
        ),
    )
