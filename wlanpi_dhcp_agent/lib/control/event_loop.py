import asyncio
import logging
from enum import Enum
from typing import Optional

from wlanpi_dhcp_agent.lib.dhcp.device import DeviceRegistry
from wlanpi_dhcp_agent.lib.dhcp.fsm import StateMachine
from wlanpi_dhcp_agent.lib.errors import (
    ControlSocketClosed,
    FatalLoopError,
    ProtocolError,
)

from .control_socket import ControlSocket
from .publisher import EventPublisher
from .router import RequestRouter
from .shutdown import ShutdownCoordinator, TerminationFlag


class LoopState(Enum):
    RUNNING = "running"
    STOPPING = "stopping"
    TERMINATED = "terminated"


class AgentLoop:
    """
    Single-threaded driver for the agent.

    Each pass runs due timers, then sends one event per changed device, then
    sleeps until the next timer, an incoming request, or a termination request.
    Requests are answered by a reader task in the order they arrive; device
    state is only touched from this loop's thread.
    """

    def __init__(
        self,
        sock: ControlSocket,
        router: RequestRouter,
        registry: DeviceRegistry,
        fsm: StateMachine,
        publisher: EventPublisher,
        shutdown: ShutdownCoordinator,
        flag: Optional[TerminationFlag] = None,
    ):
        self.logger = logging.getLogger(__name__)
        self.logger.info(f"Initializing {__name__}")

        self.sock = sock
        self.router = router
        self.registry = registry
        self.fsm = fsm
        self.publisher = publisher
        self.shutdown = shutdown
        self.flag = flag or TerminationFlag()

        self.state = LoopState.RUNNING
        self._activity = asyncio.Event()
        self._reader: Optional[asyncio.Task] = None

        self.fsm.waker = self.wakeup
        self.flag.waker = self.wakeup

    def wakeup(self):
        self._activity.set()

    async def _serve_requests(self):
        while True:
            try:
                request = await self.sock.receive()
            except ProtocolError as e:
                self.logger.error(f"Dropping unusable message: {e}")
                continue
            except ControlSocketClosed as e:
                self.logger.info(f"Control socket closed: {e}")
                self.flag.record_hangup()
                return

            self.logger.debug(f"Handling {request.method.value} {request.path}")
            response = self.router.dispatch(request)
            try:
                await self.sock.send(response.encode())
            except ControlSocketClosed as e:
                self.logger.info(f"Unable to send response: {e}")
                self.flag.record_hangup()
                return
            self.wakeup()

    def _check_reader(self):
        if self._reader is None or not self._reader.done():
            return
        if self._reader.cancelled():
            return
        exc = self._reader.exception()
        if exc is not None:
            self.logger.critical(f"Request reader failed: {exc}")
            raise FatalLoopError(f"request reader failed: {exc}") from exc

    async def _wait(self, timeout: Optional[float]):
        try:
            await asyncio.wait_for(self._activity.wait(), timeout)
        except asyncio.TimeoutError:
            pass
        finally:
            self._activity.clear()

    async def _publish_changed(self):
        for device in self.registry.drain_changed():
            try:
                await self.publisher.publish(device)
            except ControlSocketClosed as e:
                self.logger.info(f"{device.ifname}: unable to send event: {e}")
                self.flag.record_hangup()
                return

    async def run(self) -> int:
        """
        Serve until termination is requested or the supervisor hangs up.
        :return: The process exit status.
        :raises FatalLoopError: Waiting for activity failed. No shutdown is attempted.
        """
        self.state = LoopState.RUNNING
        self._reader = asyncio.get_running_loop().create_task(
            self._serve_requests(), name="control-reader"
        )
        self._reader.add_done_callback(lambda _: self.wakeup())

        try:
            while not self.flag.requested:
                self._check_reader()
                self.fsm.process_expirations()
                await self._publish_changed()
                if self.flag.requested:
                    break

                timeout = self.fsm.next_timeout()
                try:
                    await self._wait(timeout)
                except Exception as e:
                    self.logger.critical(f"Waiting for activity failed: {e}")
                    raise FatalLoopError(str(e)) from e

            self.state = LoopState.STOPPING
            status = await self.shutdown.run(self.flag.signum)
            if not self.flag.hangup:
                await self._publish_changed()
            return status
        finally:
            if not self._reader.done():
                self._reader.cancel()
            await asyncio.gather(self._reader, return_exceptions=True)
            self.state = LoopState.TERMINATED
