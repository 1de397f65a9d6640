"""
Parser module for Azure Flow Log Investigator.

Handles both generations of the flow-log blob format:
- NSG flow logs (v2): records[].properties.flows[].flows[].flowTuples
- VNET flow logs (v4): records[].flowRecords.flows[].flowGroups[].flowTuples
"""

import gzip
import json
import logging
import zlib
from dataclasses import dataclass
from datetime import datetime
from enum import Enum
from pathlib import Path
from typing import Any, Generator, Iterable, Optional

from .config import LogFormatVersions
from .models import FlowRecord
from .performance_utils import timed
from .protocol_utils import (
    get_action_label,
    get_direction_label,
    get_flow_state_label,
    get_protocol_label,
)
from .time_utils import resolve_epoch_timestamp

logger = logging.getLogger(__name__)

MAX_PORT = 65535


class LogShape(Enum):
    """Recognised record layouts."""

    VNET_V4 = "vnet"
    NSG_V2 = "nsg"


@dataclass(frozen=True)
class TupleContext:
    """Metadata from the enclosing log entry that every tuple inherits."""

    rule_name: Optional[str] = None
    mac_address: Optional[str] = None
    resource_id: Optional[str] = None
    version: Optional[int] = None


@dataclass(frozen=True)
class FlowGroup:
    """A batch of raw tuples sharing one context, tagged with its layout."""

    shape: LogShape
    context: TupleContext
    tuples: tuple[str, ...]


class FlowTupleParser:
    """Handles parsing of individual comma-separated flow tuples."""

    MIN_FIELDS = 8

    def parse(
        self, tuple_text: str, context: Optional[TupleContext] = None
    ) -> Optional[FlowRecord]:
        """Parse one tuple into a FlowRecord, or None if it is malformed."""
        try:
            return self._parse_fields(tuple_text.split(","), context or TupleContext())
        except Exception as e:
            logger.warning(f"Skipping malformed flow tuple {tuple_text!r}: {e}")
            return None

    def _parse_fields(
        self, fields: list[str], context: TupleContext
    ) -> Optional[FlowRecord]:
        if len(fields) < self.MIN_FIELDS:
            logger.warning(
                f"Skipping flow tuple with {len(fields)} fields "
                f"(at least {self.MIN_FIELDS} required): {','.join(fields)!r}"
            )
            return None

        return FlowRecord(
            timestamp=self._parse_timestamp(fields[0]),
            source_ip=fields[1],
            destination_ip=fields[2],
            source_port=self._parse_port(fields[3]),
            destination_port=self._parse_port(fields[4]),
            protocol=get_protocol_label(fields[5]),
            direction=get_direction_label(fields[6]),
            action=get_action_label(fields[7]),
            flow_state=get_flow_state_label(self._optional_field(fields, 8)),
            packets_source_to_dest=self._parse_counter(fields, 9),
            bytes_source_to_dest=self._parse_counter(fields, 10),
            packets_dest_to_source=self._parse_counter(fields, 11),
            bytes_dest_to_source=self._parse_counter(fields, 12),
            rule_name=context.rule_name,
            mac_address=context.mac_address,
            resource_id=context.resource_id,
            flow_log_version=context.version,
        )

    @staticmethod
    def _parse_timestamp(value: str) -> datetime:
        return resolve_epoch_timestamp(int(value.strip()))

    @staticmethod
    def _parse_port(value: str) -> int:
        if not value:
            return 0
        port = int(value)
        if not 0 <= port <= MAX_PORT:
            raise ValueError(f"Port out of range: {port}")
        return port

    @staticmethod
    def _optional_field(fields: list[str], index: int) -> Optional[str]:
        return fields[index] if index < len(fields) else None

    @classmethod
    def _parse_counter(cls, fields: list[str], index: int) -> int:
        if not (value := cls._optional_field(fields, index)):
            return 0
        counter = int(value)
        if counter < 0:
            raise ValueError(f"Negative counter: {counter}")
        return counter


class FlowLogDocumentReader:
    """Walks a parsed log blob and turns its flow groups into FlowRecords."""

    def __init__(self, tuple_parser: Optional[FlowTupleParser] = None):
        self.tuple_parser = tuple_parser or FlowTupleParser()

    @staticmethod
    def detect_shape(record: Any) -> Optional[LogShape]:
        """Decide the layout of one entry of the records array."""
        if not isinstance(record, dict):
            return None

        flow_records = record.get("flowRecords")
        if isinstance(flow_records, dict) and "flows" in flow_records:
            return LogShape.VNET_V4

        properties = record.get("properties")
        if isinstance(properties, dict) and "flows" in properties:
            return LogShape.NSG_V2

        return None

    def extract_flow_groups(self, document: Any, source: str) -> list[FlowGroup]:
        """Collect every flow group of a document. Raises if the document is unusable."""
        records = document.get("records") if isinstance(document, dict) else None
        if not isinstance(records, list):
            raise ValueError("document has no 'records' array")

        groups: list[FlowGroup] = []
        for index, record in enumerate(records):
            match self.detect_shape(record):
                case LogShape.VNET_V4:
                    groups.extend(self._vnet_groups(record, source))
                case LogShape.NSG_V2:
                    groups.extend(self._nsg_groups(record, source))
                case _:
                    logger.warning(
                        f"{source}: record {index} matches no known flow-log layout, skipping"
                    )
        return groups

    def extract_tuples(
        self, document: Any, source: str
    ) -> list[tuple[str, TupleContext]]:
        """Flatten a document into (raw tuple, context) pairs."""
        return [
            (tuple_text, group.context)
            for group in self.extract_flow_groups(document, source)
            for tuple_text in group.tuples
        ]

    @timed
    def parse_document(self, document: Any, source: str) -> list[FlowRecord]:
        """Parse one document; a broken document yields no records."""
        try:
            pairs = self.extract_tuples(document, source)
        except Exception as e:
            logger.warning(f"Skipping flow-log document {source}: {e}")
            return []

        records = []
        for tuple_text, context in pairs:
            if (record := self.tuple_parser.parse(tuple_text, context)) is not None:
                records.append(record)

        dropped = len(pairs) - len(records)
        logger.info(
            f"Parsed {len(records)} flow records from {source}"
            + (f" ({dropped} malformed tuples dropped)" if dropped else "")
        )
        return records

    def parse_documents(self, documents: Iterable[tuple[str, Any]]) -> list[FlowRecord]:
        """Parse a batch of (source, document) pairs."""
        records: list[FlowRecord] = []
        for source, document in documents:
            records.extend(self.parse_document(document, source))
        return records

    def _vnet_groups(
        self, record: dict[str, Any], source: str
    ) -> Generator[FlowGroup, None, None]:
        version = self._resolve_version(record, LogFormatVersions.VNET_DEFAULT)
        resource_id = self._resolve_resource_id(record, source)
        mac_address = record.get("macAddress")

        for flow in record["flowRecords"].get("flows") or []:
            for group in flow.get("flowGroups") or []:
                context = TupleContext(
                    rule_name=group.get("rule"),
                    mac_address=mac_address,
                    resource_id=resource_id,
                    version=version,
                )
                yield FlowGroup(
                    LogShape.VNET_V4, context, self._split_tuples(group.get("flowTuples"))
                )

    def _nsg_groups(
        self, record: dict[str, Any], source: str
    ) -> Generator[FlowGroup, None, None]:
        version = self._resolve_version(record, LogFormatVersions.NSG_DEFAULT)
        resource_id = self._resolve_resource_id(record, source)

        for rule_flow in record["properties"].get("flows") or []:
            for group in rule_flow.get("flows") or []:
                context = TupleContext(
                    rule_name=rule_flow.get("rule"),
                    mac_address=group.get("mac"),
                    resource_id=resource_id,
                    version=version,
                )
                yield FlowGroup(
                    LogShape.NSG_V2, context, self._split_tuples(group.get("flowTuples"))
                )

    @staticmethod
    def _split_tuples(value: Any) -> tuple[str, ...]:
        """Accept a whitespace-separated string or a list of tuple strings."""
        if value is None:
            return ()
        if isinstance(value, str):
            return tuple(value.split())
        return tuple(token for item in value for token in str(item).split())

    @staticmethod
    def _resolve_version(record: dict[str, Any], default: int) -> int:
        properties = record.get("properties")
        declared = record.get("flowLogVersion")
        if declared is None and isinstance(properties, dict):
            declared = properties.get("Version")
        try:
            return int(declared) if declared is not None else default
        except (TypeError, ValueError):
            return default

    @staticmethod
    def _resolve_resource_id(record: dict[str, Any], source: str) -> str:
        return record.get("resourceId") or record.get("targetResourceID") or source


class LogFileReader:
    """Handles reading downloaded log blobs with support for compressed files."""

    def read_file(self, file_path: str) -> Any:
        """Read one JSON document from disk."""
        path = Path(file_path)

        # Storage blobs are sometimes written with a byte order mark
        if path.suffix == ".gz":
            with gzip.open(path, "rt", encoding="utf-8-sig") as f:
                return json.load(f)
        with open(path, "r", encoding="utf-8-sig") as f:
            return json.load(f)

    def read_files(
        self, file_paths: Iterable[str]
    ) -> Generator[tuple[str, Any], None, None]:
        """Yield (path, document) pairs, skipping unreadable files."""
        for file_path in file_paths:
            try:
                yield str(file_path), self.read_file(file_path)
            except (OSError, ValueError, EOFError, zlib.error) as e:
                logger.warning(f"Skipping unreadable log file {file_path}: {e}")


class RecordTimeFilter:
    """Keeps records whose timestamp lies within an optional window."""

    def __init__(self, start: Optional[datetime] = None, end: Optional[datetime] = None):
        self.start = start
        self.end = end

    def filter_records(
        self, records: Iterable[FlowRecord]
    ) -> Generator[FlowRecord, None, None]:
        for record in records:
            if self._within_time_range(record):
                yield record

    def _within_time_range(self, record: FlowRecord) -> bool:
        if self.start is not None and record.timestamp < self.start:
            return False
        if self.end is not None and record.timestamp > self.end:
            return False
        return True


class FlowLogProcessor:
    """Main processor combining file reading and document parsing."""

    def __init__(self):
        self.reader = LogFileReader()
        self.document_reader = FlowLogDocumentReader()

    def process_files(self, file_paths: Iterable[str]) -> list[FlowRecord]:
        return self.document_reader.parse_documents(self.reader.read_files(file_paths))


# Public API functions
def parse_flow_tuple(
    tuple_text: str,
    rule_name: Optional[str] = None,
    mac_address: Optional[str] = None,
    resource_id: Optional[str] = None,
    version: Optional[int] = None,
) -> Optional[FlowRecord]:
    """Parse one flow tuple into a FlowRecord."""
    context = TupleContext(rule_name, mac_address, resource_id, version)
    return FlowTupleParser().parse(tuple_text, context)


def parse_log_document(document: Any, source: str = "<document>") -> list[FlowRecord]:
    """Parse an already-decoded flow-log JSON document."""
    return FlowLogDocumentReader().parse_document(document, source)


def parse_log_documents(documents: Iterable[tuple[str, Any]]) -> list[FlowRecord]:
    """Parse a batch of (source, document) pairs."""
    return FlowLogDocumentReader().parse_documents(documents)


def read_log_files(file_paths: Iterable[str]) -> list[FlowRecord]:
    """Read and parse flow-log files from disk."""
    return FlowLogProcessor().process_files(file_paths)
