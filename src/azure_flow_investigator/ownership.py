"""
IP ownership lookups with a caller-owned cache.
"""

import logging
import socket
from collections import OrderedDict
from typing import Callable, Iterable, Optional

from .ip_utils import is_private_ip

logger = logging.getLogger(__name__)

PRIVATE_OWNER = "Private/Reserved"
UNKNOWN_OWNER = "Unknown"

OwnerResolver = Callable[[str], str]


class ReverseDNSResolver:
    """Resolves an owner name from the PTR record of an address."""

    CLOUD_PROVIDERS = {
        "cloudapp.azure.com": "Microsoft Azure",
        "cloudapp.net": "Microsoft Azure",
        "msedge.net": "Microsoft",
        "microsoft.com": "Microsoft",
        "windows.net": "Microsoft Azure",
        "amazonaws.com": "Amazon AWS",
        "googleusercontent.com": "Google Cloud",
        "1e100.net": "Google",
        "cloudflare.com": "Cloudflare",
        "akamaitechnologies.com": "Akamai",
        "fastly.net": "Fastly",
    }

    def __call__(self, ip_address: str) -> str:
        try:
            hostname = socket.gethostbyaddr(ip_address)[0]
        except (socket.herror, socket.gaierror, OSError):
            return UNKNOWN_OWNER
        return self.owner_from_hostname(hostname)

    def owner_from_hostname(self, hostname: str) -> str:
        """Map a hostname to a provider name, or fall back to its registered domain."""
        hostname_lower = hostname.lower().rstrip(".")
        for domain, owner in self.CLOUD_PROVIDERS.items():
            if hostname_lower == domain or hostname_lower.endswith("." + domain):
                return owner

        if (parts := hostname_lower.split(".")) and len(parts) >= 2:
            return f"{parts[-2]}.{parts[-1]}"
        return hostname or UNKNOWN_OWNER


class IPOwnershipCache:
    """
    Bounded cache of address owners.

    Callers create and hold their own instance and pass it where lookups are
    needed; entries are evicted least-recently-used once max_entries is hit.
    """

    def __init__(
        self, resolver: Optional[OwnerResolver] = None, max_entries: int = 1000
    ):
        self.resolver = resolver or ReverseDNSResolver()
        self.max_entries = max_entries
        self._entries: OrderedDict[str, str] = OrderedDict()

    def __len__(self) -> int:
        return len(self._entries)

    def __contains__(self, ip_address: object) -> bool:
        return ip_address in self._entries

    def lookup(self, ip_address: str) -> str:
        """Return the owner of an address, resolving it on a cache miss."""
        if is_private_ip(ip_address):
            return PRIVATE_OWNER

        if ip_address in self._entries:
            self._entries.move_to_end(ip_address)
            return self._entries[ip_address]

        try:
            owner = self.resolver(ip_address) or UNKNOWN_OWNER
        except Exception as e:
            logger.warning(f"Owner lookup failed for {ip_address}: {e}")
            owner = UNKNOWN_OWNER

        self._entries[ip_address] = owner
        if len(self._entries) > self.max_entries:
            self._entries.popitem(last=False)
        return owner

    def lookup_many(self, ip_addresses: Iterable[str]) -> dict[str, str]:
        """Resolve a batch of addresses, each distinct address once."""
        return {ip: self.lookup(ip) for ip in dict.fromkeys(ip_addresses)}

    def clear(self) -> None:
        self._entries.clear()
