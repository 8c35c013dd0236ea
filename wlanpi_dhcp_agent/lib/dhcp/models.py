import re
from datetime import datetime, timezone

from pydantic import BaseModel, Field


class DHCPLeaseDate(BaseModel):
    value: datetime = Field()
    is_never: bool = Field(default=False)

    @classmethod
    def from_dhcp_date(cls, date_string: str) -> "DHCPLeaseDate":
        """
        Creates a DHCPLeaseDate instance from a date string from a dhclient lease file.
        dhclient writes these in UTC.
        """
        date_string = date_string.strip()

        # The date is "never"
        if date_string.startswith("never"):
            return cls(is_never=True, value=datetime.now(timezone.utc))

        # The date is an epoch timestamp.
        if date_string.startswith("epoch"):
            match = re.match(r"epoch\s+(\d+)", date_string)
            if not match:
                raise ValueError(
                    f"Date appears to be epoch but couldn't be parsed: {date_string}"
                )
            return cls(value=datetime.fromtimestamp(int(match.group(1)), timezone.utc))

        # The common date format is 'W YYYY/MM/DD HH:MM:SS', where W is the day of the week.
        # For example: '3 2024/07/17 10:30:00'
        return cls(
            value=datetime.strptime(date_string, "%w %Y/%m/%d %H:%M:%S").replace(
                tzinfo=timezone.utc
            )
        )


class DHCPOption(BaseModel):
    keyword: str = Field()
    data: str = Field()

    @property
    def values(self) -> list[str]:
        return [part.strip() for part in self.data.split(",") if part.strip()]


class DHCPLease(BaseModel):
    fixed_address: str = Field()
    interface: str = Field()
    options: dict[str, DHCPOption] = Field(default_factory=dict)
    renew: DHCPLeaseDate = Field()
    rebind: DHCPLeaseDate = Field()
    expire: DHCPLeaseDate = Field()
