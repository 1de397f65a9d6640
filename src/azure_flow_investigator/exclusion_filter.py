"""
Exclusion filtering for parsed flow records.

Each filter pass builds its own exact-IP set and CIDR radix tree from the
exclusion lists it is given; nothing is shared between passes.
"""

import ipaddress
import logging
from dataclasses import dataclass, field
from typing import Callable, Generator, Iterable, Optional, Protocol

from .config import DEFAULT_PROGRESS_INTERVAL
from .models import FlowRecord
from .performance_utils import timed
from .radix_tree import RadixTree

logger = logging.getLogger(__name__)


class CancelSignal(Protocol):
    """Anything with an is_set() method, such as threading.Event."""

    def is_set(self) -> bool: ...


@dataclass(frozen=True)
class FilterProgress:
    """Snapshot passed to progress callbacks."""

    processed: int
    total: int
    excluded: int
    message: str

    def __str__(self) -> str:
        return self.message


ProgressCallback = Callable[[FilterProgress], None]


class FilterCancelledError(RuntimeError):
    """Raised when a filter pass is aborted through its cancel signal."""

    def __init__(self, processed: int, excluded: int):
        super().__init__(
            f"Filtering cancelled after {processed} records ({excluded} excluded)"
        )
        self.processed = processed
        self.excluded = excluded


class ExclusionSet:
    """Immutable exclusion configuration with its prebuilt CIDR index.

    Replace the whole set to change exclusions; the tree has no delete.
    """

    def __init__(self, ips: Iterable[str] = (), cidrs: Iterable[str] = ()):
        self.ips = frozenset(self._normalize_ips(ips))
        self.cidrs = tuple(cidrs)
        self.index = RadixTree.from_cidrs(self.cidrs)

    @staticmethod
    def _normalize_ips(ips: Iterable[str]) -> Generator[str, None, None]:
        for ip in ips:
            if not isinstance(ip, str):
                continue
            candidate = ip.strip()
            try:
                address = ipaddress.ip_address(candidate)
            except ValueError:
                logger.debug(f"Ignoring malformed exclusion IP {ip!r}")
                continue
            yield str(address)

    def is_empty(self) -> bool:
        return not self.ips and len(self.index) == 0

    def __repr__(self) -> str:
        return f"<ExclusionSet ips={len(self.ips)} cidrs={len(self.index)}>"


@dataclass
class FilterResult:
    """Records partitioned by a filter pass."""

    kept: list[FlowRecord] = field(default_factory=list)
    excluded: list[FlowRecord] = field(default_factory=list)

    @property
    def total(self) -> int:
        return len(self.kept) + len(self.excluded)


class ExclusionFilter:
    """Drops records whose source or destination address is excluded."""

    def __init__(
        self,
        exclude_ips: Iterable[str] = (),
        exclude_cidrs: Iterable[str] = (),
        progress_callback: Optional[ProgressCallback] = None,
        cancel_event: Optional[CancelSignal] = None,
        progress_interval: int = DEFAULT_PROGRESS_INTERVAL,
    ):
        self.exclude_ips = list(exclude_ips)
        self.exclude_cidrs = list(exclude_cidrs)
        self.progress_callback = progress_callback
        self.cancel_event = cancel_event
        self.progress_interval = max(1, progress_interval)

    @timed
    def partition(self, records: Iterable[FlowRecord]) -> FilterResult:
        """Split records into kept and excluded."""
        records = list(records)
        total = len(records)

        if not self.exclude_ips and not self.exclude_cidrs:
            self._report(total, total, 0, f"No exclusions configured, {total} records kept")
            return FilterResult(kept=records)

        exclusions = ExclusionSet(self.exclude_ips, self.exclude_cidrs)
        self._report(
            0,
            total,
            0,
            f"Exclusion index built: {len(exclusions.ips)} IPs, "
            f"{len(exclusions.index)} CIDR ranges",
        )
        self._check_cancelled(0, 0)

        exact_ips = exclusions.ips
        index = exclusions.index
        result = FilterResult()

        for processed, record in enumerate(records, start=1):
            excluded = (
                record.source_ip in exact_ips
                or record.destination_ip in exact_ips
                or index.contains(record.source_ip)
                or index.contains(record.destination_ip)
            )
            (result.excluded if excluded else result.kept).append(record)

            if processed % self.progress_interval == 0 and processed < total:
                self._check_cancelled(processed, len(result.excluded))
                percent = processed * 100 // total
                self._report(
                    processed,
                    total,
                    len(result.excluded),
                    f"Filtering: {percent}% ({processed}/{total}), "
                    f"{len(result.excluded)} excluded so far",
                )

        self._report(
            total,
            total,
            len(result.excluded),
            f"Filtering complete: {len(result.kept)} kept, "
            f"{len(result.excluded)} excluded",
        )
        logger.info(
            f"Exclusion filter kept {len(result.kept)} of {total} records "
            f"({len(result.excluded)} excluded)"
        )
        return result

    def filter(self, records: Iterable[FlowRecord]) -> list[FlowRecord]:
        return self.partition(records).kept

    def _check_cancelled(self, processed: int, excluded: int) -> None:
        if self.cancel_event is not None and self.cancel_event.is_set():
            logger.info(f"Exclusion filter cancelled after {processed} records")
            raise FilterCancelledError(processed, excluded)

    def _report(self, processed: int, total: int, excluded: int, message: str) -> None:
        if self.progress_callback is not None:
            self.progress_callback(FilterProgress(processed, total, excluded, message))


def filter_records(
    records: Iterable[FlowRecord],
    exclude_ips: Iterable[str] = (),
    exclude_cidrs: Iterable[str] = (),
    progress_callback: Optional[ProgressCallback] = None,
    cancel_event: Optional[CancelSignal] = None,
    progress_interval: int = DEFAULT_PROGRESS_INTERVAL,
) -> list[FlowRecord]:
    """Return the records where neither address is excluded."""
    return ExclusionFilter(
        exclude_ips, exclude_cidrs, progress_callback, cancel_event, progress_interval
    ).filter(records)
