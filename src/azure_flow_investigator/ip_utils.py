"""
IP address classification utilities.
"""

import ipaddress
from typing import TYPE_CHECKING, Any, Optional

from .config import PRIVATE_RANGES

if TYPE_CHECKING:
    from .exclusion_filter import ExclusionSet


def _build_range_table(cidrs: tuple[str, ...]) -> list[tuple[int, int]]:
    """Precompute (network, mask) integer pairs for the reserved ranges."""
    table = []
    for cidr in cidrs:
        network = ipaddress.IPv4Network(cidr)
        table.append((int(network.network_address), int(network.netmask)))
    return table


_PRIVATE_TABLE = _build_range_table(PRIVATE_RANGES)


def ipv4_to_int(ip: Any) -> Optional[int]:
    """Convert a dotted-quad IPv4 string to its 32-bit integer, or None."""
    if not isinstance(ip, str):
        return None
    try:
        return int(ipaddress.IPv4Address(ip.strip()))
    except ValueError:
        return None


def is_private_ip(ip: Any) -> bool:
    """
    Check whether an address falls in a private or reserved range.

    Never raises: anything that is not an IP address is reported as public.
    IPv6 addresses are public except the loopback address.
    """
    if (value := ipv4_to_int(ip)) is not None:
        return any(value & mask == network for network, mask in _PRIVATE_TABLE)

    if not isinstance(ip, str):
        return False
    try:
        address = ipaddress.IPv6Address(ip.strip())
    except ValueError:
        return False
    return address.is_loopback


def is_external_ip(ip: Any) -> bool:
    """Check if a well-formed address is public."""
    return ipv4_to_int(ip) is not None and not is_private_ip(ip)


def is_excluded(ip: Any, exclusion_set: "ExclusionSet") -> bool:
    """Check an address against the exact-match list, then the CIDR index."""
    if not isinstance(ip, str):
        return False
    if ip.strip() in exclusion_set.ips:
        return True
    return exclusion_set.index.contains(ip)
