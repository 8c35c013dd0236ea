import logging
import re
from datetime import datetime, timezone
from ipaddress import IPv4Address, IPv4Interface
from pathlib import Path
from typing import Optional, Union

from pydantic import ValidationError

from .domain import Lease, LeaseState
from .models import DHCPLease, DHCPLeaseDate, DHCPOption

KEY_PATTERNS = {
    "fixed-address": r"fixed-address\s+([\d\.]+);",
    "interface": r"interface\s+\"([^\"]+)\";",
    "renew": r"renew\s+((?:epoch\s+)?[\d\/\s:]+);",
    "rebind": r"rebind\s+((?:epoch\s+)?[\d\/\s:]+);",
    "expire": r"expire\s+((?:epoch\s+)?[\d\/\s:]+|never);",
}
OPTION_PATTERN = r"option ([\w-]+)\s+(.+?);"


class DHCPLeaseParser:
    def __init__(self, iface: str, lease_dir: Union[str, Path] = "/var/lib/dhcp"):
        self.logger = logging.getLogger(__name__)
        self.lease_path = Path(lease_dir) / f"dhclient.{iface}.leases"

    def latest_lease(self) -> Optional[DHCPLease]:
        if not self.lease_path.exists():
            return None
        return self.parse(self.lease_path.read_text())

    def parse(self, text: str) -> Optional[DHCPLease]:
        """Parse the last lease block of a dhclient lease file"""
        leases = text.split("lease {")
        if len(leases) < 2:
            return None
        last = leases[-1]
        data: dict[str, Union[str, DHCPLeaseDate]] = {}
        options: dict[str, DHCPOption] = {}

        for key, pattern in KEY_PATTERNS.items():
            match = re.search(pattern, last)
            if match:
                data[key.replace("-", "_")] = match.group(1).strip()

        for line in last.split("\n"):
            match = re.search(OPTION_PATTERN, line.strip())
            if match:
                keyword = match.group(1).strip().replace("-", "_")
                options[keyword] = DHCPOption(
                    keyword=keyword, data=match.group(2).strip().strip('"')
                )

        try:
            for date_key in ("renew", "rebind", "expire"):
                if date_key in data:
                    data[date_key] = DHCPLeaseDate.from_dhcp_date(data[date_key])
            return DHCPLease(**data, options=options)
        except (ValueError, ValidationError) as e:
            self.logger.warning(f"Unable to parse lease in {self.lease_path}: {e}")
            return None

    @staticmethod
    def to_lease(record: DHCPLease, acquired: Optional[datetime] = None) -> Lease:
        """Convert a dhclient lease record into a granted Lease"""

        def option(name: str) -> list[str]:
            opt = record.options.get(name)
            return opt.values if opt else []

        mask = option("subnet_mask")
        address = IPv4Interface(
            f"{record.fixed_address}/{mask[0]}" if mask else record.fixed_address
        )
        routers = option("routers")
        server_id = option("dhcp_server_identifier")
        lease_time = option("dhcp_lease_time")
        hostname = option("host_name")
        domain = option("domain_name")

        return Lease(
            state=LeaseState.GRANTED,
            address=address,
            gateway=IPv4Address(routers[0]) if routers else None,
            dns_servers=[IPv4Address(a) for a in option("domain_name_servers")],
            server_id=IPv4Address(server_id[0]) if server_id else None,
            hostname=hostname[0] if hostname else None,
            domain=domain[0] if domain else None,
            lease_time=int(lease_time[0]) if lease_time else None,
            acquired=acquired or datetime.now(timezone.utc),
            renew=None if record.renew.is_never else record.renew.value,
            rebind=None if record.rebind.is_never else record.rebind.value,
            expire=None if record.expire.is_never else record.expire.value,
        )

    # Example lease
    # lease {
    #   interface "wlan1";
    #   fixed-address 192.168.6.47;
    #   option subnet-mask 255.255.255.0;
    #   option routers 192.168.6.1;
    #   option dhcp-lease-time 86400;
    #   option dhcp-message-type 5;
    #   option domain-name-servers 192.168.6.1;
    #   option dhcp-server-identifier 192.168.6.1;
    #   option dhcp-renewal-time 39703;
    #   option broadcast-address 192.168.6.255;
    #   option dhcp-rebinding-time 72103;
    #   option host-name "wlanpi-c8b";
    #   option domain-name "gen.internal";
    #   renew 2 2025/07/15 23:12:28;
    #   rebind 3 2025/07/16 10:37:10;
    #   expire 3 2025/07/16 14:35:27;
    # }
