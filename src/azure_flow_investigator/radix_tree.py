"""
Binary radix tree over IPv4 CIDR ranges.

Nodes live in an arena of parallel lists indexed by node handle, with the
root at handle 0 and -1 marking an absent child. The tree is built once per
exclusion list and answers membership queries in at most 32 steps no matter
how many ranges it holds.
"""

import logging
from typing import Iterable, Optional

from .ip_utils import ipv4_to_int

logger = logging.getLogger(__name__)

ADDRESS_BITS = 32
NO_CHILD = -1


def parse_cidr(cidr: str) -> Optional[tuple[int, int]]:
    """Parse 'a.b.c.d/n' into (address, prefix length), or None if malformed."""
    if not isinstance(cidr, str):
        return None

    address, sep, prefix = cidr.strip().partition("/")
    if not sep or not prefix.isdigit():
        return None

    prefix_length = int(prefix)
    if prefix_length > ADDRESS_BITS:
        return None

    if (value := ipv4_to_int(address)) is None:
        return None
    return value, prefix_length


class RadixTree:
    """CIDR membership index."""

    def __init__(self) -> None:
        self._left: list[int] = [NO_CHILD]
        self._right: list[int] = [NO_CHILD]
        self._terminal: list[bool] = [False]
        self._ranges = 0

    @classmethod
    def from_cidrs(cls, cidrs: Iterable[str]) -> "RadixTree":
        """Build a tree from CIDR strings, skipping malformed entries."""
        tree = cls()
        skipped = [cidr for cidr in cidrs if not tree.insert(cidr)]
        if skipped:
            logger.debug(f"Skipped {len(skipped)} malformed CIDR entries: {skipped}")
        return tree

    def __len__(self) -> int:
        return self._ranges

    @property
    def node_count(self) -> int:
        return len(self._terminal)

    def _new_node(self) -> int:
        self._left.append(NO_CHILD)
        self._right.append(NO_CHILD)
        self._terminal.append(False)
        return len(self._terminal) - 1

    def insert(self, cidr: str) -> bool:
        """Add a range. Returns False if the entry was malformed and skipped."""
        if (parsed := parse_cidr(cidr)) is None:
            return False

        value, prefix_length = parsed
        node = 0
        for depth in range(prefix_length):
            if self._terminal[node]:
                # A broader range already covers this one
                self._ranges += 1
                return True

            shift = ADDRESS_BITS - 1 - depth
            children = self._right if (value >> shift) & 1 else self._left
            if children[node] == NO_CHILD:
                children[node] = self._new_node()
            node = children[node]

        self._terminal[node] = True
        self._ranges += 1
        return True

    def contains(self, ip: str) -> bool:
        """Check whether an address falls inside any inserted range."""
        if (value := ipv4_to_int(ip)) is None:
            return False

        left, right, terminal = self._left, self._right, self._terminal
        node = 0
        for shift in range(ADDRESS_BITS - 1, -1, -1):
            if terminal[node]:
                return True
            node = right[node] if (value >> shift) & 1 else left[node]
            if node == NO_CHILD:
                return False
        return terminal[node]
