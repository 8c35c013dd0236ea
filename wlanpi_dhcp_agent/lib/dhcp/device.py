import logging
from typing import TYPE_CHECKING, Callable, Optional

from wlanpi_dhcp_agent.lib.errors import DeviceExistsError

from .domain import (
    RELEASABLE_STATES,
    DeviceState,
    DhcpConfig,
    InterfaceConfig,
    Lease,
    LinkType,
)

if TYPE_CHECKING:
    from .fsm import StateMachine


class Device:
    """Tracks the configuration attempt for one interface"""

    def __init__(
        self,
        ifname: str,
        iftype: LinkType = LinkType.OTHER,
        on_change: Optional[Callable[["Device"], None]] = None,
    ):
        self.ifname = ifname
        self.iftype = iftype
        self.state = DeviceState.INIT
        self.lease: Optional[Lease] = None
        self.config: Optional[DhcpConfig] = None
        self.failed = False
        self.notify = False
        self.changed = False
        self.link_up = False
        self.ifindex: Optional[int] = None
        self.hwaddr: Optional[str] = None
        self._on_change = on_change

    @property
    def is_bound(self) -> bool:
        return self.state == DeviceState.BOUND

    def mark_changed(self):
        """Queue this device for the next event drain"""
        self.changed = True
        if self._on_change is not None:
            self._on_change(self)

    def set_state(self, state: DeviceState):
        self.state = state

    def __repr__(self):
        return (
            f"Device(ifname={self.ifname!r}, state={self.state.name}, "
            f"lease={'yes' if self.lease else 'no'}, failed={self.failed})"
        )


class DeviceRegistry:
    """Owns the managed devices and the set of devices owing an event"""

    def __init__(self, fsm: "StateMachine"):
        self.logger = logging.getLogger(__name__)
        self.logger.info(f"Initializing {__name__}")

        self.fsm = fsm
        self._devices: dict[str, Device] = {}
        # Insertion ordered; a device appears at most once until drained.
        self._changed: dict[str, Device] = {}

    def __len__(self):
        return len(self._devices)

    def __contains__(self, ifname: str) -> bool:
        return ifname in self._devices

    def find(self, ifname: str) -> Optional[Device]:
        return self._devices.get(ifname)

    def devices(self) -> list[Device]:
        return list(self._devices.values())

    def create(self, ifname: str, iftype: LinkType = LinkType.OTHER) -> Device:
        if ifname in self._devices:
            raise DeviceExistsError(ifname)
        device = Device(ifname, iftype, on_change=self.mark_changed)
        self._devices[ifname] = device
        self.logger.debug(f"{ifname}: created {iftype.value} device")
        return device

    def reconfigure(self, device: Device, ifconfig: InterfaceConfig) -> bool:
        """
        Replace the device's acquisition config with the one described by ifconfig.
        :return: True if the effective config differs from the previous one.
        """
        config = DhcpConfig.from_interface(ifconfig)
        if config is None:
            self.logger.error(f"{device.ifname}: no DHCP config")

        device.ifindex = ifconfig.ifindex
        device.hwaddr = ifconfig.hwaddr
        changed = config != device.config
        device.config = config
        if changed:
            self.logger.debug(f"{device.ifname}: config changed to {config}")
        return changed

    def start(self, device: Device):
        self.logger.info(f"{device.ifname}: starting acquisition")
        self.fsm.start(device)

    def stop(self, device: Device, release: bool = True):
        """Halt protocol activity, handing back an active lease first if asked to."""
        if release and device.lease is not None and device.state in RELEASABLE_STATES:
            self.logger.info(f"{device.ifname}: releasing lease before stop")
            self.fsm.release(device)
        self.logger.info(f"{device.ifname}: stopping")
        self.fsm.stop(device)

    def notify(self, device: Device):
        """Owe an event for this device even though its state did not change"""
        device.notify = True
        self.mark_changed(device)

    def mark_changed(self, device: Device):
        device.changed = True
        self._changed.setdefault(device.ifname, device)

    def drain_changed(self) -> list[Device]:
        """Take and clear the pending set, in the order devices first changed"""
        drained = list(self._changed.values())
        self._changed = {}
        for device in drained:
            device.changed = False
            device.notify = False
        return drained
