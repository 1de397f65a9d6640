"""
Data models for parsed flow-log records.
"""

from dataclasses import dataclass
from datetime import datetime
from typing import Any, Optional


@dataclass(frozen=True)
class FlowRecord:
    """One parsed network flow event."""

    timestamp: datetime
    source_ip: str
    destination_ip: str
    source_port: int
    destination_port: int
    protocol: str
    direction: str
    action: str
    flow_state: Optional[str] = None
    packets_source_to_dest: int = 0
    bytes_source_to_dest: int = 0
    packets_dest_to_source: int = 0
    bytes_dest_to_source: int = 0
    rule_name: Optional[str] = None
    mac_address: Optional[str] = None
    resource_id: Optional[str] = None
    flow_log_version: Optional[int] = None

    @property
    def total_bytes(self) -> int:
        return self.bytes_source_to_dest + self.bytes_dest_to_source

    @property
    def total_packets(self) -> int:
        return self.packets_source_to_dest + self.packets_dest_to_source

    def to_dict(self) -> dict[str, Any]:
        """Return a JSON-friendly representation including the derived totals."""
        return {
            "timestamp": self.timestamp.isoformat(),
            "source_ip": self.source_ip,
            "destination_ip": self.destination_ip,
            "source_port": self.source_port,
            "destination_port": self.destination_port,
            "protocol": self.protocol,
            "direction": self.direction,
            "action": self.action,
            "flow_state": self.flow_state,
            "packets_source_to_dest": self.packets_source_to_dest,
            "bytes_source_to_dest": self.bytes_source_to_dest,
            "packets_dest_to_source": self.packets_dest_to_source,
            "bytes_dest_to_source": self.bytes_dest_to_source,
            "total_bytes": self.total_bytes,
            "total_packets": self.total_packets,
            "rule_name": self.rule_name,
            "mac_address": self.mac_address,
            "resource_id": self.resource_id,
            "flow_log_version": self.flow_log_version,
        }
