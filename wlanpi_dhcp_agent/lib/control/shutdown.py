import asyncio
import logging
import signal
from typing import Callable, Optional

from pymessagebus import MessageBus

import wlanpi_dhcp_agent.lib.domain as agent_domain
from wlanpi_dhcp_agent.busses import message_bus
from wlanpi_dhcp_agent.lib.dhcp.device import DeviceRegistry
from wlanpi_dhcp_agent.lib.dhcp.domain import RELEASABLE_STATES
from wlanpi_dhcp_agent.lib.dhcp.fsm import StateMachine

TERMINATION_SIGNALS = (signal.SIGTERM, signal.SIGINT)


class TerminationFlag:
    """
    Set from signal context, read by the event loop. Recording only stores the
    signal number and wakes the loop; nothing else happens in the handler.
    """

    def __init__(self, waker: Optional[Callable[[], None]] = None):
        self.signum: Optional[int] = None
        self.hangup = False
        self.waker = waker

    @property
    def requested(self) -> bool:
        return self.signum is not None or self.hangup

    def record(self, signum: int):
        if self.signum is None:
            self.signum = signum
        if self.waker is not None:
            self.waker()

    def record_hangup(self):
        self.hangup = True
        if self.waker is not None:
            self.waker()


class ShutdownCoordinator:
    """Gives back every active lease and stops every device on the way out"""

    def __init__(
        self,
        registry: DeviceRegistry,
        fsm: StateMachine,
        timeout: float = 10,
        bus: MessageBus = message_bus,
    ):
        self.logger = logging.getLogger(__name__)
        self.logger.info(f"Initializing {__name__}")

        self.registry = registry
        self.fsm = fsm
        self.timeout = timeout
        self.bus = bus
        self._loop: Optional[asyncio.AbstractEventLoop] = None

    def install(self, loop: asyncio.AbstractEventLoop, flag: TerminationFlag):
        for signum in TERMINATION_SIGNALS:
            loop.add_signal_handler(signum, flag.record, signum)
        self._loop = loop
        self.logger.debug("Termination handlers installed")

    def uninstall(self):
        if self._loop is None:
            return
        for signum in TERMINATION_SIGNALS:
            self._loop.remove_signal_handler(signum)
        self._loop = None

    async def run(self, signum: Optional[int] = None) -> int:
        """
        Release every bound lease, then stop every device. Errors on one device
        are logged and do not keep the others from being stopped.
        :return: The process exit status, always 0.
        """
        reason = signal.Signals(signum).name if signum else "hangup"
        self.logger.info(f"Shutting down ({reason})")
        self.bus.handle(agent_domain.Messages.ShutdownStarted(signum=signum))

        for device in self.registry.devices():
            try:
                if device.lease is not None and device.state in RELEASABLE_STATES:
                    self.fsm.release(device)
            except Exception as e:
                self.logger.error(f"{device.ifname}: unable to release lease: {e}")
            try:
                self.registry.stop(device, release=False)
            except Exception as e:
                self.logger.error(f"{device.ifname}: unable to stop: {e}")

        await self.fsm.wait_idle(self.timeout)
        self.bus.handle(agent_domain.Messages.ShutdownComplete())
        self.logger.info("Shutdown complete")
        return 0
