#           _                   _            _ _                                        _
#          | |                 (_)          | | |                                      | |
# __      _| | __ _ _ __  _ __  _ ______  __| | |__   ___ _ __ ______ __ _  __ _  ___ _ __ | |_
# \ \ /\ / / |/ _` | '_ \| '_ \| |______|/ _` | '_ \ / __| '_ \______/ _` |/ _` |/ _ \ '_ \| __|
#  \ V  V /| | (_| | | | | |_) | |      | (_| | | | | (__| |_) |    | (_| | (_| |  __/ | | | |_
#   \_/\_/ |_|\__,_|_| |_| .__/|_|       \__,_|_| |_|\___| .__/      \__,_|\__, |\___|_| |_|\__|
#                        | |                             | |                __/ |
#                        |_|                             |_|               |___/

__title__ = "wlanpi_dhcp_agent"
__description__ = (
    "The DHCP Agent acquires and maintains DHCPv4 leases for the interfaces a supervising "
    "process hands it, and reports lease changes back over a local control socket."
)
__url__ = "https://github.com/rgnets/wlanpi-dhcp-agent"
__author__ = "Michael Ketchel"
__author_email__ = "mdk@rgnets.com"
__version__ = "1.0.0-1"
__status__ = "alpha"
__license__ = "BSD-3-Clause"
__license_url__ = "https://opensource.org/licenses/BSD-3-Clause"
