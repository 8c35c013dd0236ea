import asyncio
import logging
import random
import time
from abc import ABC, abstractmethod
from datetime import datetime, timezone
from typing import Callable, Optional

from pymessagebus import MessageBus

import wlanpi_dhcp_agent.lib.domain as agent_domain
from wlanpi_dhcp_agent.busses import message_bus
from wlanpi_dhcp_agent.models.command_result import CommandResult

from .device import Device
from .dhcp_client import DHCPClient
from .domain import DeviceState, Lease


class StateMachine(ABC):
    """
    Protocol engine driving devices through acquisition, renewal and release.

    All methods are called from the event loop thread and must not block. Work
    that takes time happens elsewhere; its results are applied to devices only
    from process_expirations(). When such a result arrives, the engine calls
    waker so the event loop stops waiting.
    """

    waker: Optional[Callable[[], None]] = None

    @abstractmethod
    def next_timeout(self) -> Optional[float]:
        """Seconds until the earliest pending deadline, or None if there is none"""

    @abstractmethod
    def process_expirations(self) -> None:
        """Act on every deadline that has passed"""

    @abstractmethod
    def start(self, device: Device) -> None:
        """Begin (or restart) acquisition for a configured device"""

    @abstractmethod
    def stop(self, device: Device) -> None:
        """Abandon all protocol activity for a device"""

    @abstractmethod
    def release(self, device: Device) -> None:
        """Hand the device's lease back to the server"""

    def link_event(self, device: Device, link_up: bool) -> None:
        """Carrier changed. Only affects timing."""

    async def wait_idle(self, timeout: float) -> None:
        """Wait for outstanding background work, up to timeout seconds"""

    def _wake(self):
        if self.waker is not None:
            self.waker()


def _seconds_until(moment: Optional[datetime]) -> Optional[float]:
    if moment is None:
        return None
    return (moment - datetime.now(timezone.utc)).total_seconds()


class DhclientStateMachine(StateMachine):
    """
    Runs dhclient for the wire exchange and tracks the lease it records.

    Acquisition is one `dhclient -1` run per attempt. Once bound, dhclient keeps
    maintaining the lease in the background; this class wakes at the lease's
    renew, rebind and expiry times and re-reads the lease file to follow it.
    """

    def __init__(
        self,
        client: DHCPClient,
        acquire_timeout: float = 30,
        retry_min: float = 4,
        retry_max: float = 64,
        bus: MessageBus = message_bus,
        clock: Callable[[], float] = time.monotonic,
    ):
        self.logger = logging.getLogger(__name__)
        self.logger.info(f"Initializing {__name__}")

        self.client = client
        self.acquire_timeout = acquire_timeout
        self.retry_min = retry_min
        self.retry_max = retry_max
        self.bus = bus
        self.clock = clock

        self.devices: dict[str, Device] = {}
        self.timers: dict[str, float] = {}
        self.acquisitions: dict[str, asyncio.Task] = {}
        self.outcomes: dict[str, CommandResult] = {}
        self.releasing: dict[str, asyncio.Task] = {}
        self.backoff: dict[str, float] = {}
        self.background: set[asyncio.Task] = set()

    # Timers

    def next_timeout(self) -> Optional[float]:
        if not self.timers:
            return None
        return max(0.0, min(self.timers.values()) - self.clock())

    def _arm(self, device: Device, delay: Optional[float]):
        if delay is None:
            self.timers.pop(device.ifname, None)
            return
        self.timers[device.ifname] = self.clock() + max(0.0, delay)

    def process_expirations(self) -> None:
        now = self.clock()
        expired = [name for name, deadline in self.timers.items() if deadline <= now]
        for ifname in expired:
            del self.timers[ifname]
            device = self.devices.get(ifname)
            if device is not None:
                self._expired(device)

    def _expired(self, device: Device):
        outcome = self.outcomes.pop(device.ifname, None)
        if outcome is not None:
            self._acquisition_done(device, outcome)
        elif device.state == DeviceState.SELECTING:
            self.logger.warning(f"{device.ifname}: acquisition timed out")
            self._cancel_acquisition(device.ifname)
            self._fail(device)
        elif device.state in (DeviceState.FAILED, DeviceState.INIT):
            self.logger.info(f"{device.ifname}: retrying acquisition")
            self.start(device)
        elif device.state in (
            DeviceState.BOUND,
            DeviceState.RENEWING,
            DeviceState.REBINDING,
        ):
            self._follow_lease(device)

    # Acquisition

    def start(self, device: Device) -> None:
        ifname = device.ifname
        self.devices[ifname] = device
        self._cancel_acquisition(ifname)
        device.lease = None
        device.failed = False
        device.set_state(DeviceState.SELECTING)

        timeout = self.acquire_timeout
        if device.config is not None and device.config.acquire_timeout:
            timeout = device.config.acquire_timeout
        self._arm(device, timeout)

        loop = asyncio.get_running_loop()
        self.acquisitions[ifname] = loop.create_task(
            self._acquire(device, timeout), name=f"dhclient-{ifname}"
        )

    async def _acquire(self, device: Device, timeout: float):
        result = await self.client.acquire(device.ifname, device.config, timeout)
        self.outcomes[device.ifname] = result
        self.timers[device.ifname] = self.clock()
        self._wake()

    def _cancel_acquisition(self, ifname: str):
        task = self.acquisitions.pop(ifname, None)
        if task is not None and not task.done():
            task.cancel()
        self.outcomes.pop(ifname, None)

    def _acquisition_done(self, device: Device, result: CommandResult):
        self.acquisitions.pop(device.ifname, None)
        if result.success:
            lease = self.client.read_lease(device.ifname)
            if lease is not None:
                self._bind(device, lease)
                return
            self.logger.error(f"{device.ifname}: dhclient succeeded but left no lease")
        else:
            self.logger.warning(f"{device.ifname}: acquisition failed: {result.error}")
        self._fail(device)

    def _bind(self, device: Device, lease: Lease):
        self.logger.info(f"{device.ifname}: bound to {lease.address}")
        device.lease = lease
        device.failed = False
        device.set_state(DeviceState.BOUND)
        device.mark_changed()
        self.backoff.pop(device.ifname, None)
        self.bus.handle(
            agent_domain.Messages.LeaseAcquired(
                ifname=device.ifname, address=str(lease.address)
            )
        )
        self._arm(device, _seconds_until(lease.renew or lease.expire))

    def _fail(self, device: Device):
        device.failed = True
        device.set_state(DeviceState.FAILED)
        device.mark_changed()
        self.bus.handle(agent_domain.Messages.AcquisitionFailed(ifname=device.ifname))

        delay = self.backoff.get(device.ifname, self.retry_min / 2) * 2
        delay = min(delay, self.retry_max)
        self.backoff[device.ifname] = delay
        # Jitter keeps a fleet of agents from retrying in lockstep
        self._arm(device, delay + random.uniform(-1, 1))
        self.logger.info(f"{device.ifname}: next attempt in about {delay:.0f}s")

    # Renewal, as observed through the lease file

    def _follow_lease(self, device: Device):
        current = device.lease
        lease = self.client.read_lease(device.ifname)
        remaining = _seconds_until(lease.expire) if lease is not None else 0
        if lease is None or (remaining is not None and remaining <= 0):
            self._lose(device)
            return

        if current is None or lease.address != current.address:
            device.mark_changed()
        device.lease = lease

        to_renew = _seconds_until(lease.renew)
        to_rebind = _seconds_until(lease.rebind)
        if to_renew is None or to_renew > 0:
            device.set_state(DeviceState.BOUND)
            self._arm(device, to_renew if to_renew is not None else remaining)
        elif to_rebind is not None and to_rebind > 0:
            device.set_state(DeviceState.RENEWING)
            self._arm(device, to_rebind)
        else:
            device.set_state(DeviceState.REBINDING)
            self._arm(device, remaining)
        self.logger.debug(f"{device.ifname}: lease followed, now {device.state.name}")

    def _lose(self, device: Device):
        self.logger.warning(f"{device.ifname}: lease expired")
        device.lease = None
        device.set_state(DeviceState.INIT)
        device.mark_changed()
        self.bus.handle(agent_domain.Messages.LeaseLost(ifname=device.ifname))
        if device.config is not None:
            self.start(device)

    # Teardown

    def _spawn(self, coro, name: str) -> asyncio.Task:
        task = asyncio.get_running_loop().create_task(coro, name=name)
        self.background.add(task)
        task.add_done_callback(self.background.discard)
        return task

    def stop(self, device: Device) -> None:
        ifname = device.ifname
        self._cancel_acquisition(ifname)
        self.timers.pop(ifname, None)
        self.backoff.pop(ifname, None)
        self.devices.pop(ifname, None)

        device.lease = None
        device.failed = False
        device.set_state(DeviceState.INIT)
        # dhclient -r also stops the running client
        if ifname not in self.releasing:
            self._spawn(self.client.stop(ifname), name=f"dhclient-stop-{ifname}")

    def release(self, device: Device) -> None:
        ifname = device.ifname
        held = device.lease.address if device.lease else "lease"
        self.logger.info(f"{ifname}: releasing {held}")
        device.set_state(DeviceState.RELEASING)
        device.lease = None
        device.mark_changed()
        task = self._spawn(self._release(ifname), name=f"dhclient-release-{ifname}")
        self.releasing[ifname] = task

    async def _release(self, ifname: str):
        try:
            result = await self.client.release(ifname)
            if not result.success:
                self.bus.handle(
                    agent_domain.Messages.LeaseReleaseFailed(
                        ifname=ifname, error=result.error
                    )
                )
        finally:
            self.releasing.pop(ifname, None)

    def link_event(self, device: Device, link_up: bool) -> None:
        if not link_up:
            self.logger.debug(f"{device.ifname}: link down, waiting for carrier")
            return
        if device.state == DeviceState.FAILED and device.ifname in self.timers:
            self.logger.debug(f"{device.ifname}: link up, retrying right away")
            self.timers[device.ifname] = self.clock()
            self._wake()

    async def wait_idle(self, timeout: float) -> None:
        pending = set(self.background)
        if not pending:
            return
        done, not_done = await asyncio.wait(pending, timeout=timeout)
        for task in done:
            if not task.cancelled() and task.exception() is not None:
                self.logger.error(
                    f"{task.get_name()} failed: {task.exception()}",
                )
        if not_done:
            self.logger.warning(
                f"Timeout waiting for {', '.join(t.get_name() for t in not_done)}"
            )
