import asyncio
import logging
import socket
from typing import Optional

from pymessagebus import MessageBus

import wlanpi_dhcp_agent.lib.domain as agent_domain
from wlanpi_dhcp_agent import constants
from wlanpi_dhcp_agent.busses import message_bus
from wlanpi_dhcp_agent.lib.configuration.schemas import AgentConfig
from wlanpi_dhcp_agent.lib.control import (
    AgentLoop,
    ControlSocket,
    DhcpRestApi,
    EventPublisher,
    RequestRouter,
    ShutdownCoordinator,
    TerminationFlag,
    build_route_tree,
)
from wlanpi_dhcp_agent.lib.dhcp import (
    DeviceRegistry,
    DHCPClient,
    DhclientStateMachine,
    LeaseRenderer,
    StateMachine,
    XmlSyntax,
)
from wlanpi_dhcp_agent.utils import seed_random


class DhcpAgent:
    """Wires the DHCP engine to the supervisor's control socket"""

    def __init__(
        self,
        config: Optional[AgentConfig] = None,
        fsm: Optional[StateMachine] = None,
        bus: MessageBus = message_bus,
    ):
        self.logger = logging.getLogger(__name__)
        self.logger.info(f"Initializing {__name__}")

        self.config = config or AgentConfig()
        self.bus = bus

        dhcp = self.config.DHCP
        self.fsm = fsm or DhclientStateMachine(
            DHCPClient(
                dhclient=dhcp.dhclient,
                lease_dir=dhcp.lease_dir,
                run_dir=constants.RUN_DIR,
                command_timeout=dhcp.command_timeout,
                hostname=dhcp.hostname,
            ),
            acquire_timeout=dhcp.acquire_timeout,
            retry_min=dhcp.retry_min,
            retry_max=dhcp.retry_max,
            bus=bus,
        )
        self.syntax = XmlSyntax()
        self.renderer = LeaseRenderer(self.syntax)
        self.registry = DeviceRegistry(self.fsm)
        self.api = DhcpRestApi(self.registry, self.fsm, self.renderer, self.syntax)
        self.router = RequestRouter(build_route_tree(self.api))
        self.shutdown = ShutdownCoordinator(
            self.registry,
            self.fsm,
            timeout=self.config.General.shutdown_timeout,
            bus=bus,
        )
        self.flag = TerminationFlag()

    async def run(self, sock: ControlSocket) -> int:
        """
        Serve the supervisor on an already connected control socket.
        :return: The process exit status.
        """
        seed = seed_random()
        self.logger.debug(f"Random number generator seeded with {seed}")

        loop = AgentLoop(
            sock,
            self.router,
            self.registry,
            self.fsm,
            EventPublisher(sock, self.renderer, self.bus),
            self.shutdown,
            self.flag,
        )
        self.shutdown.install(asyncio.get_running_loop(), self.flag)
        self.bus.handle(agent_domain.Messages.StartupComplete())
        try:
            return await loop.run()
        finally:
            self.shutdown.uninstall()
            await sock.close()

    async def serve(self, path: Optional[str] = None) -> int:
        path = path or self.config.General.socket_path
        self.logger.info(f"Connecting to supervisor at {path}")
        sock = await ControlSocket.connect(path)
        return await self.run(sock)

    async def serve_fd(self, fd: int) -> int:
        """Serve on a control socket inherited from the supervisor"""
        self.logger.info(f"Using inherited control socket fd {fd}")
        raw = socket.socket(socket.AF_UNIX, socket.SOCK_STREAM, fileno=fd)
        sock = await ControlSocket.from_socket(raw)
        return await self.run(sock)
