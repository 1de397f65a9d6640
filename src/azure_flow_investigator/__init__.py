"""
Azure Flow Log Investigator package.

Parses Azure NSG (v2) and VNET (v4) flow-log blobs into typed records and
filters them against exact-IP and CIDR exclusion lists.
"""

from typing import Final

# Package metadata
__version__: Final[str] = "1.0.0"
__author__: Final[str] = "Azure Flow Log Investigator Team"
__description__: Final[str] = "Azure NSG and VNET flow log parsing and filtering tool"

# Public API exports
from .config import DEFAULT_CONFIG, PRIVATE_RANGES, ExclusionConfig
from .exclusion_filter import (
    ExclusionFilter,
    ExclusionSet,
    FilterCancelledError,
    FilterProgress,
    FilterResult,
    filter_records,
)
from .ip_utils import ipv4_to_int, is_excluded, is_external_ip, is_private_ip
from .models import FlowRecord
from .ownership import IPOwnershipCache
from .parser import (
    parse_flow_tuple,
    parse_log_document,
    parse_log_documents,
    read_log_files,
)
from .radix_tree import RadixTree
from .time_utils import parse_time_duration, parse_time_input, resolve_epoch_timestamp

__all__ = [
    # Configuration
    "DEFAULT_CONFIG",
    "PRIVATE_RANGES",
    "ExclusionConfig",
    # Models
    "FlowRecord",
    # Parser
    "parse_flow_tuple",
    "parse_log_document",
    "parse_log_documents",
    "read_log_files",
    # IP classification
    "ipv4_to_int",
    "is_excluded",
    "is_external_ip",
    "is_private_ip",
    "RadixTree",
    # Filtering
    "ExclusionFilter",
    "ExclusionSet",
    "FilterCancelledError",
    "FilterProgress",
    "FilterResult",
    "filter_records",
    # Ownership lookups
    "IPOwnershipCache",
    # Time utilities
    "parse_time_duration",
    "parse_time_input",
    "resolve_epoch_timestamp",
]
