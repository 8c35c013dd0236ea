"""
Test package for wlanpi-dhcp-agent

This package contains:
- Unit tests: Device bookkeeping, rendering, parsing, routing and handlers
- Loop tests: The event loop and shutdown driven over a socketpair

No test here runs dhclient; the protocol engine is replaced by a fake or by a
fake DHCPClient.
"""
