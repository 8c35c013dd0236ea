import logging
import xml.etree.ElementTree as ET
from datetime import datetime
from typing import Optional

from wlanpi_dhcp_agent.lib.errors import InterfaceParseError

from .domain import DhcpRequest, InterfaceConfig, Lease, LinkType

logger = logging.getLogger(__name__)

TRUE_VALUES = {"1", "true", "yes", "on"}


def _flag(value: Optional[str]) -> bool:
    return value is not None and value.strip().lower() in TRUE_VALUES


def _text(parent: ET.Element, tag: str) -> Optional[str]:
    child = parent.find(tag)
    if child is None or child.text is None:
        return None
    text = child.text.strip()
    return text or None


def _int(value: Optional[str], what: str) -> Optional[int]:
    if value is None:
        return None
    try:
        return int(value)
    except ValueError:
        raise InterfaceParseError(f"bad {what} value {value!r}")


class InterfaceHandle:
    """
    Holds the interfaces parsed from one request body. Always closed by the
    caller, usually through a with block.
    """

    def __init__(self, syntax: "XmlSyntax"):
        self.syntax = syntax
        self.interfaces: dict[str, InterfaceConfig] = {}
        self.closed = False

    def __enter__(self):
        return self

    def __exit__(self, exc_type, exc_val, exc_tb):
        self.close()
        return False

    def load(self, text: Optional[str]):
        self.interfaces = self.syntax.parse_interfaces(text)

    def by_name(self, ifname: str) -> Optional[InterfaceConfig]:
        return self.interfaces.get(ifname)

    def close(self):
        self.interfaces = {}
        self.closed = True


class XmlSyntax:
    """Reads interface descriptions and writes lease documents as XML"""

    def open_handle(self) -> InterfaceHandle:
        return InterfaceHandle(self)

    def parse_interfaces(self, text: Optional[str]) -> dict[str, InterfaceConfig]:
        if text is None or not text.strip():
            raise InterfaceParseError("empty interface description")
        try:
            root = ET.fromstring(text)
        except ET.ParseError as e:
            raise InterfaceParseError(f"malformed XML: {e}")

        if root.tag == "interface":
            nodes = [root]
        elif root.tag == "interfaces":
            nodes = root.findall("interface")
        else:
            raise InterfaceParseError(f"unexpected root element <{root.tag}>")

        interfaces = {}
        for node in nodes:
            ifconfig = self._interface_from_xml(node)
            interfaces[ifconfig.name] = ifconfig
        return interfaces

    def _interface_from_xml(self, node: ET.Element) -> InterfaceConfig:
        name = node.get("name")
        if not name:
            raise InterfaceParseError("interface without a name")

        status = node.find("status")
        up = lower_up = False
        if status is not None:
            up = _flag(status.get("up"))
            lower_up = _flag(status.get("lower-up"))

        dhcp = None
        dhcp_node = node.find("ipv4/dhcp")
        if dhcp_node is not None:
            dhcp = DhcpRequest(
                enabled=_flag(dhcp_node.get("enabled", "true")),
                hostname=_text(dhcp_node, "hostname"),
                client_id=_text(dhcp_node, "client-id"),
                vendor_class=_text(dhcp_node, "vendor-class"),
                lease_time=_int(_text(dhcp_node, "lease-time"), "lease-time"),
                acquire_timeout=_int(
                    _text(dhcp_node, "acquire-timeout"), "acquire-timeout"
                ),
            )

        return InterfaceConfig(
            name=name,
            link_type=LinkType.parse(node.get("type")),
            ifindex=_int(node.get("index"), "index"),
            hwaddr=_text(node, "hwaddr"),
            up=up,
            lower_up=lower_up,
            dhcp=dhcp,
        )

    def lease_to_xml(self, lease: Lease) -> Optional[str]:
        """Serialize a lease. Returns None if the lease cannot be rendered."""
        try:
            root = ET.Element(
                "lease",
                type=lease.type.value,
                family=lease.family.value,
                state=lease.state.value,
            )
            if lease.address is not None:
                ET.SubElement(root, "address").text = str(lease.address)
            if lease.gateway is not None:
                ET.SubElement(root, "gateway").text = str(lease.gateway)
            if lease.dns_servers:
                dns = ET.SubElement(root, "dns")
                for server in lease.dns_servers:
                    ET.SubElement(dns, "server").text = str(server)
            if lease.server_id is not None:
                ET.SubElement(root, "server-id").text = str(lease.server_id)
            if lease.hostname:
                ET.SubElement(root, "hostname").text = lease.hostname
            if lease.domain:
                ET.SubElement(root, "domain").text = lease.domain
            if lease.lease_time is not None:
                ET.SubElement(root, "lease-time").text = str(lease.lease_time)
            for tag in ("acquired", "renew", "rebind", "expire"):
                value: Optional[datetime] = getattr(lease, tag)
                if value is not None:
                    ET.SubElement(root, tag).text = value.isoformat()
            return ET.tostring(root, encoding="unicode")
        except (TypeError, ValueError, AttributeError) as e:
            logger.error(f"Unable to serialize lease: {e}")
            return None
