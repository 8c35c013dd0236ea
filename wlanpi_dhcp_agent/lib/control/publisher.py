import logging

from pymessagebus import MessageBus

import wlanpi_dhcp_agent.lib.domain as agent_domain
from wlanpi_dhcp_agent.busses import message_bus
from wlanpi_dhcp_agent.lib.dhcp.device import Device
from wlanpi_dhcp_agent.lib.dhcp.renderer import LeaseRenderer

from .control_socket import ControlSocket
from .protocol import encode_event


class EventPublisher:
    """Pushes unsolicited device events to the supervisor"""

    def __init__(
        self,
        sock: ControlSocket,
        renderer: LeaseRenderer,
        bus: MessageBus = message_bus,
    ):
        self.logger = logging.getLogger(__name__)
        self.sock = sock
        self.renderer = renderer
        self.bus = bus

    async def publish(self, device: Device) -> bool:
        """
        Send one event for a device.
        :return: False if the device could not be rendered and nothing was sent.
        :raises ControlSocketClosed: The event could not be written.
        """
        self.logger.debug(f"sending device event for {device.ifname}")
        body = self.renderer.render(device)
        if body is None:
            self.logger.error(f"{device.ifname}: cannot render interface information")
            return False

        await self.sock.send(encode_event(device.ifname, body))
        self.bus.handle(agent_domain.Messages.DeviceEventSent(ifname=device.ifname))
        return True
