"""
Command-line interface for Azure Flow Log Investigator.
"""

import argparse
import os
from typing import Any, Optional

from .config import DEFAULT_CONFIG, ConfigurationValidator, ExclusionConfig
from .exclusion_filter import ExclusionFilter, FilterProgress
from .ip_utils import is_external_ip
from .logging_utils import (
    generate_query_id,
    log_query_end,
    log_query_start,
    setup_logger,
)
from .models import FlowRecord
from .ownership import IPOwnershipCache
from .parser import RecordTimeFilter, read_log_files
from .time_utils import parse_time_input, to_datetime


class ArgumentParser:
    """Handles command-line argument parsing."""

    @classmethod
    def parse_args(cls, argv: Optional[list[str]] = None) -> argparse.Namespace:
        """Parse and return command-line arguments."""
        parser = argparse.ArgumentParser(description="Azure Flow Log Investigator")

        cls._add_log_args(parser)
        cls._add_exclusion_args(parser)
        cls._add_time_args(parser)
        cls._add_output_args(parser)

        return parser.parse_args(argv)

    @staticmethod
    def _add_log_args(parser: argparse.ArgumentParser) -> None:
        """Add log-related arguments."""
        parser.add_argument(
            "--log-file",
            action="append",
            required=True,
            help="Downloaded NSG or VNET flow-log blob (.json or .json.gz); repeatable",
        )

    @staticmethod
    def _add_exclusion_args(parser: argparse.ArgumentParser) -> None:
        """Add exclusion arguments."""
        parser.add_argument(
            "--exclude-ip",
            action="append",
            default=[],
            help="Drop records to or from this address; repeatable",
        )
        parser.add_argument(
            "--exclude-cidr",
            action="append",
            default=[],
            help="Drop records to or from this IPv4 range (a.b.c.d/n); repeatable",
        )
        parser.add_argument(
            "--exclusions-file",
            help='JSON file shaped like {"ips": [...], "cidrs": [...]}',
        )

    @staticmethod
    def _add_time_args(parser: argparse.ArgumentParser) -> None:
        """Add time-related arguments."""
        parser.add_argument(
            "--start-time",
            help="Start time (Unix timestamp, duration like '1h', '3d', '2W', or ISO datetime)",
        )
        parser.add_argument(
            "--end-time",
            help="End time (Unix timestamp, 'now', or ISO datetime)",
        )

    @staticmethod
    def _add_output_args(parser: argparse.ArgumentParser) -> None:
        """Add output-related arguments."""
        parser.add_argument(
            "--limit",
            type=int,
            default=DEFAULT_CONFIG["limit"],
            help="Limit number of records printed",
        )
        parser.add_argument(
            "--external-only",
            action="store_true",
            help="Only show flows with at least one public address",
        )
        parser.add_argument(
            "--resolve-owners",
            action="store_true",
            help="Look up the owner of public addresses via reverse DNS",
        )
        parser.add_argument(
            "--debug",
            action="store_true",
            help="Enable debug output to see detailed processing information",
        )


class ConfigurationBuilder:
    """Builds configuration from arguments."""

    def __init__(self, args: argparse.Namespace):
        self.args = args
        self.config = DEFAULT_CONFIG.copy()

    def build_configuration(self) -> dict[str, Any]:
        """Build complete configuration from arguments."""
        self._set_basic_config()
        self._parse_time_config()
        self._set_exclusions()
        return self.config

    def _set_basic_config(self) -> None:
        missing = [path for path in self.args.log_file if not os.path.exists(path)]
        if missing:
            raise FileNotFoundError(missing[0])

        self.config.update(
            {
                "log_files": list(self.args.log_file),
                "limit": self.args.limit,
                "external_only": self.args.external_only,
                "resolve_owners": self.args.resolve_owners,
                "debug": self.args.debug,
            }
        )

    def _parse_time_config(self) -> None:
        try:
            start_time = (
                parse_time_input(self.args.start_time) if self.args.start_time else None
            )
            end_time = parse_time_input(self.args.end_time) if self.args.end_time else None
        except ValueError as e:
            raise ValueError(f"Error parsing time: {e}")

        ConfigurationValidator.validate_time_range(start_time, end_time)
        self.config["start_time"] = start_time
        self.config["end_time"] = end_time

    def _set_exclusions(self) -> None:
        exclusions = ExclusionConfig(
            ips=list(self.args.exclude_ip), cidrs=list(self.args.exclude_cidr)
        )
        if self.args.exclusions_file:
            self.config["exclusions_file"] = self.args.exclusions_file
            exclusions = exclusions.merge(
                ExclusionConfig.from_file(self.args.exclusions_file)
            )

        self.config["exclude_ips"] = exclusions.ips
        self.config["exclude_cidrs"] = exclusions.cidrs


class ConfigurationPrinter:
    """Handles printing configuration information."""

    @staticmethod
    def print_configuration(config: dict[str, Any]) -> None:
        """Print configuration summary."""
        print("\n=== Azure Flow Log Investigator ===")
        print(f"Log files: {len(config['log_files'])}")
        for log_file in config["log_files"]:
            print(f"  - {log_file}")

        print(f"Excluded IPs: {len(config['exclude_ips'])}")
        print(f"Excluded CIDR ranges: {len(config['exclude_cidrs'])}")

        invalid = ConfigurationValidator.find_invalid_ips(
            config["exclude_ips"]
        ) + ConfigurationValidator.find_invalid_cidrs(config["exclude_cidrs"])
        if invalid:
            print(f"Warning: ignoring invalid exclusions: {', '.join(invalid)}")

        if config.get("exclusions_file"):
            print(f"Exclusions file: {config['exclusions_file']}")

        if config["start_time"] is not None or config["end_time"] is not None:
            start = to_datetime(config["start_time"]) if config["start_time"] is not None else "-"
            end = to_datetime(config["end_time"]) if config["end_time"] is not None else "-"
            print(f"Time range: {start} to {end}")

        print(f"Result limit: {config['limit']}")

        if config.get("debug"):
            print("[DEBUG] Debug mode enabled")
            print(f"[DEBUG] Full config: {config}")


class RecordPrinter:
    """Prints filtered flow records as a table."""

    HEADER = (
        f"{'Time (UTC)':<20} {'Source':<22} {'Destination':<22} {'Proto':<6} "
        f"{'Dir':<9} {'Action':<11} {'Bytes':>10} {'Packets':>8}"
    )

    def __init__(self, ownership_cache: Optional[IPOwnershipCache] = None):
        self.ownership_cache = ownership_cache

    def print_records(self, records: list[FlowRecord], limit: int) -> None:
        header = self.HEADER + (f" {'Owner':<25}" if self.ownership_cache else "")
        print("\n=== Flow Records ===")
        print(header)
        print("-" * len(header))

        for record in records[:limit]:
            line = (
                f"{record.timestamp:%Y-%m-%d %H:%M:%S}  "
                f"{record.source_ip + ':' + str(record.source_port):<22} "
                f"{record.destination_ip + ':' + str(record.destination_port):<22} "
                f"{record.protocol:<6} {record.direction:<9} {record.action:<11} "
                f"{record.total_bytes:>10} {record.total_packets:>8}"
            )
            if self.ownership_cache:
                line += f" {self._owner(record):<25}"
            print(line)

        if len(records) > limit:
            print(f"... {len(records) - limit} more records not shown")

    def _owner(self, record: FlowRecord) -> str:
        for ip in (record.destination_ip, record.source_ip):
            if is_external_ip(ip):
                return self.ownership_cache.lookup(ip)  # type: ignore[union-attr]
        return "Internal"


class FlowRecordPipeline:
    """Reads, filters and narrows records according to the configuration."""

    def __init__(self, config: dict[str, Any]):
        self.config = config

    def run(self) -> tuple[list[FlowRecord], int]:
        """Return the kept records and the count excluded by the exclusion lists."""
        records = read_log_files(self.config["log_files"])
        print(f"Parsed flow records: {len(records)}")

        if self.config["start_time"] is not None or self.config["end_time"] is not None:
            time_filter = RecordTimeFilter(
                to_datetime(self.config["start_time"])
                if self.config["start_time"] is not None
                else None,
                to_datetime(self.config["end_time"])
                if self.config["end_time"] is not None
                else None,
            )
            records = list(time_filter.filter_records(records))
            print(f"Records in time range: {len(records)}")

        result = ExclusionFilter(
            self.config["exclude_ips"],
            self.config["exclude_cidrs"],
            progress_callback=self._print_progress,
            progress_interval=self.config["progress_interval"],
        ).partition(records)

        kept = result.kept
        if self.config["external_only"]:
            kept = [
                record
                for record in kept
                if is_external_ip(record.source_ip) or is_external_ip(record.destination_ip)
            ]
        return kept, len(result.excluded)

    @staticmethod
    def _print_progress(progress: FilterProgress) -> None:
        print(progress.message)


def main(argv: Optional[list[str]] = None) -> int:
    """Main entry point for the CLI."""
    query_id = generate_query_id()
    config: Optional[dict[str, Any]] = None

    try:
        args = ArgumentParser.parse_args(argv)
        logger = setup_logger(debug=args.debug)
        log_query_start(
            logger,
            query_id,
            log_files=args.log_file,
            exclude_ips=len(args.exclude_ip),
            exclude_cidrs=len(args.exclude_cidr),
        )
    except SystemExit as e:
        return int(e.code or 0)

    try:
        config = ConfigurationBuilder(args).build_configuration()
        ConfigurationPrinter.print_configuration(config)

        records, excluded = FlowRecordPipeline(config).run()
        print(f"Records shown after filtering: {len(records)} ({excluded} excluded)")

        ownership_cache = IPOwnershipCache() if config["resolve_owners"] else None
        RecordPrinter(ownership_cache).print_records(records, config["limit"])

        log_query_end(
            logger, query_id, True, total_records=len(records), excluded=excluded
        )
        return 0

    except (ValueError, RuntimeError) as e:
        log_query_end(logger, query_id, False, error=str(e))
        print(f"Error: {e}")
        return 1
    except FileNotFoundError as e:
        missing = e.filename or str(e)
        log_query_end(logger, query_id, False, error=f"File not found: {missing}")
        print(f"Error: File '{missing}' not found.")
        return 1
    except Exception as e:
        log_query_end(logger, query_id, False, error=str(e))
        print(f"Unexpected error: {e}")
        return 1


if __name__ == "__main__":
    raise SystemExit(main())
