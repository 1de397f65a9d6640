"""
Configuration module for Azure Flow Log Investigator.
"""

import ipaddress
import json
from dataclasses import dataclass, field
from pathlib import Path
from typing import Any, Final, Optional


class DefaultConfiguration:
    """Provides default configuration values."""

    DEFAULT_LIMIT: Final[int] = 100  # Display limit, not a parse limit
    DEFAULT_PROGRESS_INTERVAL: Final[int] = 5000  # Records between progress reports
    DEFAULT_WORKERS: Final[int] = 2  # Background filter jobs run in parallel
    DEFAULT_MAX_FINISHED_JOBS: Final[int] = 100  # Finished jobs kept for status polls

    @classmethod
    def get_default_config(cls) -> dict[str, Any]:
        """Get default configuration dictionary."""
        return {
            "log_files": [],
            "exclude_ips": [],
            "exclude_cidrs": [],
            "exclusions_file": None,
            "start_time": None,
            "end_time": None,
            "external_only": False,
            "resolve_owners": False,
            "limit": cls.DEFAULT_LIMIT,
            "progress_interval": cls.DEFAULT_PROGRESS_INTERVAL,
            "debug": False,
        }


class TupleCodes:
    """Single-character and numeric codes found in flow tuples."""

    # Legacy tuples carry a letter, newer ones the IANA protocol number
    PROTOCOLS: Final[dict[str, str]] = {
        "T": "TCP",
        "U": "UDP",
        "6": "TCP",
        "17": "UDP",
        "1": "ICMP",
    }

    DIRECTIONS: Final[dict[str, str]] = {
        "I": "Inbound",
        "O": "Outbound",
    }

    # A/D are security decisions, B/C/E are connection lifecycle markers
    ACTIONS: Final[dict[str, str]] = {
        "A": "Allowed",
        "D": "Denied",
        "B": "Begin",
        "C": "Continuing",
        "E": "End",
    }

    FLOW_STATES: Final[dict[str, str]] = {
        "B": "Begin",
        "C": "Continuing",
        "E": "End",
        "NX": "No Encryption",
        "X": "Encrypted",
    }


class ReservedRanges:
    """Address ranges treated as private or reserved."""

    PRIVATE_RANGES: Final[tuple[str, ...]] = (
        "10.0.0.0/8",
        "172.16.0.0/12",
        "192.168.0.0/16",
        "127.0.0.0/8",
        "169.254.0.0/16",
        "0.0.0.0/8",
        "100.64.0.0/10",  # Carrier-grade NAT
        "192.0.0.0/24",
        "192.0.2.0/24",  # Documentation
        "198.51.100.0/24",  # Documentation
        "203.0.113.0/24",  # Documentation
        "224.0.0.0/4",  # Multicast
        "240.0.0.0/4",  # Reserved
        "168.63.129.16/32",  # Azure platform endpoint
    )


class LogFormatVersions:
    """Format version hints used when a record does not declare one."""

    VNET_DEFAULT: Final[int] = 4
    NSG_DEFAULT: Final[int] = 2


@dataclass
class ExclusionConfig:
    """Exact IPs and CIDR ranges to drop from a flow-log view."""

    ips: list[str] = field(default_factory=list)
    cidrs: list[str] = field(default_factory=list)

    @classmethod
    def from_file(cls, file_path: str) -> "ExclusionConfig":
        """Load exclusions from a JSON file shaped like {"ips": [...], "cidrs": [...]}."""
        with open(Path(file_path), "r") as f:
            data = json.load(f)

        if not isinstance(data, dict):
            raise ValueError(f"Exclusions file must contain a JSON object: {file_path}")

        ips = data.get("ips", [])
        cidrs = data.get("cidrs", [])
        if not isinstance(ips, list) or not isinstance(cidrs, list):
            raise ValueError("Exclusions file 'ips' and 'cidrs' must be lists")

        return cls(ips=[str(ip) for ip in ips], cidrs=[str(cidr) for cidr in cidrs])

    def merge(self, other: "ExclusionConfig") -> "ExclusionConfig":
        """Return a new config holding the entries of both, order preserved."""
        return ExclusionConfig(
            ips=list(dict.fromkeys(self.ips + other.ips)),
            cidrs=list(dict.fromkeys(self.cidrs + other.cidrs)),
        )

    def is_empty(self) -> bool:
        return not self.ips and not self.cidrs

    def validate(self) -> None:
        """Validate every entry, raising ValueError listing the bad ones."""
        invalid = ConfigurationValidator.find_invalid_ips(
            self.ips
        ) + ConfigurationValidator.find_invalid_cidrs(self.cidrs)
        if invalid:
            raise ValueError(f"Invalid exclusion entries: {', '.join(invalid)}")


class ConfigurationValidator:
    """Validates configuration parameters."""

    @staticmethod
    def find_invalid_ips(ips: list[str]) -> list[str]:
        """Return the entries that are not IP addresses."""
        invalid = []
        for ip in ips:
            try:
                ipaddress.ip_address(ip.strip())
            except ValueError:
                invalid.append(ip)
        return invalid

    @staticmethod
    def find_invalid_cidrs(cidrs: list[str]) -> list[str]:
        """Return the entries that are not IPv4 a.b.c.d/n ranges."""
        invalid = []
        for cidr in cidrs:
            address, sep, prefix = cidr.strip().partition("/")
            try:
                ipaddress.IPv4Address(address)
                if not sep or not prefix.isdigit() or int(prefix) > 32:
                    raise ValueError(cidr)
            except ValueError:
                invalid.append(cidr)
        return invalid

    @staticmethod
    def validate_time_range(start_time: Optional[int], end_time: Optional[int]) -> None:
        """Validate time range parameters."""
        if start_time is not None and end_time is not None and start_time >= end_time:
            raise ValueError("Start time must be before end time")


# Public API
DEFAULT_CONFIG = DefaultConfiguration.get_default_config()
DEFAULT_PROGRESS_INTERVAL = DefaultConfiguration.DEFAULT_PROGRESS_INTERVAL
PROTOCOL_CODES = TupleCodes.PROTOCOLS
DIRECTION_CODES = TupleCodes.DIRECTIONS
ACTION_CODES = TupleCodes.ACTIONS
FLOW_STATE_CODES = TupleCodes.FLOW_STATES
PRIVATE_RANGES = ReservedRanges.PRIVATE_RANGES
