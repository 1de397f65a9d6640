"""
Basic functionality tests for Azure Flow Log Investigator.
"""

import json
import logging
import time
from datetime import datetime, timezone

import pytest

from azure_flow_investigator.config import (
    DEFAULT_CONFIG,
    PRIVATE_RANGES,
    ConfigurationValidator,
    ExclusionConfig,
)
from azure_flow_investigator.logging_utils import (
    generate_query_id,
    get_query_result,
    log_query_end,
    setup_logger,
    store_query_result,
)
from azure_flow_investigator.models import FlowRecord
from azure_flow_investigator.time_utils import (
    classify_epoch_unit,
    parse_time_duration,
    parse_time_input,
    resolve_epoch_timestamp,
)


class TestConfiguration:
    """Test configuration functionality."""

    def test_default_config_structure(self):
        required_keys = [
            "log_files",
            "exclude_ips",
            "exclude_cidrs",
            "start_time",
            "end_time",
            "limit",
            "progress_interval",
        ]
        for key in required_keys:
            assert key in DEFAULT_CONFIG

    def test_private_ranges_include_platform_endpoint(self):
        assert "168.63.129.16/32" in PRIVATE_RANGES
        assert PRIVATE_RANGES[0] == "10.0.0.0/8"

    def test_exclusion_config_from_file(self, tmp_path):
        path = tmp_path / "exclusions.json"
        path.write_text(json.dumps({"ips": ["8.8.8.8"], "cidrs": ["10.0.0.0/8"]}))

        config = ExclusionConfig.from_file(str(path))

        assert config.ips == ["8.8.8.8"]
        assert config.cidrs == ["10.0.0.0/8"]

    def test_exclusion_config_from_file_rejects_bad_shape(self, tmp_path):
        path = tmp_path / "exclusions.json"
        path.write_text(json.dumps({"ips": "8.8.8.8"}))

        with pytest.raises(ValueError, match="must be lists"):
            ExclusionConfig.from_file(str(path))

    def test_exclusion_config_merge_deduplicates(self):
        merged = ExclusionConfig(ips=["1.1.1.1"], cidrs=["10.0.0.0/8"]).merge(
            ExclusionConfig(ips=["1.1.1.1", "8.8.8.8"], cidrs=[])
        )
        assert merged.ips == ["1.1.1.1", "8.8.8.8"]
        assert merged.cidrs == ["10.0.0.0/8"]
        assert not merged.is_empty()
        assert ExclusionConfig().is_empty()

    def test_exclusion_config_validation(self):
        ExclusionConfig(ips=["8.8.8.8", "::1"], cidrs=["10.0.0.0/8"]).validate()

        with pytest.raises(ValueError, match="bogus, 10.0.0.0/33"):
            ExclusionConfig(ips=["bogus"], cidrs=["10.0.0.0/33"]).validate()

    def test_find_invalid_cidrs(self):
        invalid = ConfigurationValidator.find_invalid_cidrs(
            ["10.0.0.0/8", "10.0.0.0", "fe80::/10", "1.2.3.4/x", "0.0.0.0/0"]
        )
        assert invalid == ["10.0.0.0", "fe80::/10", "1.2.3.4/x"]

    def test_configuration_validator_time_range(self):
        start_time = int(time.time()) - 3600
        end_time = int(time.time())
        ConfigurationValidator.validate_time_range(start_time, end_time)
        ConfigurationValidator.validate_time_range(None, end_time)

        with pytest.raises(ValueError, match="Start time must be before end time"):
            ConfigurationValidator.validate_time_range(end_time, start_time)


class TestTimeUtils:
    """Test time utility functions."""

    def test_epoch_unit_thresholds(self):
        assert classify_epoch_unit(1705312800) == "seconds"
        assert classify_epoch_unit(1770152393932) == "milliseconds"
        assert classify_epoch_unit(1770152393932123) == "microseconds"
        assert classify_epoch_unit(999999999999) == "seconds"

    def test_resolve_seconds_epoch(self):
        assert resolve_epoch_timestamp(1705312800) == datetime(
            2024, 1, 15, 10, 0, 0, tzinfo=timezone.utc
        )

    def test_resolve_milliseconds_epoch(self):
        resolved = resolve_epoch_timestamp(1705312800123)
        assert resolved == datetime(2024, 1, 15, 10, 0, 0, 123000, tzinfo=timezone.utc)

    def test_parse_time_input_relative(self):
        current_time = int(time.time())

        assert parse_time_input(str(current_time)) == current_time
        assert abs(parse_time_input("1h") - (current_time - 3600)) < 5
        assert abs(parse_time_input("now") - current_time) < 5

    def test_parse_time_input_iso(self):
        assert parse_time_input("2024-01-15T10:00:00Z") == 1705312800
        assert parse_time_input("2024-01-15T10:00:00") == 1705312800

    def test_parse_time_input_invalid(self):
        with pytest.raises(ValueError, match="Invalid time format"):
            parse_time_input("yesterday-ish")

    def test_parse_time_duration(self):
        assert parse_time_duration("1h") == 3600
        assert parse_time_duration("30m") == 1800
        assert parse_time_duration("2d") == 172800
        assert parse_time_duration("1W") == 604800

    def test_parse_time_duration_invalid(self):
        with pytest.raises(ValueError):
            parse_time_duration("invalid")
        with pytest.raises(ValueError):
            parse_time_duration("")


class TestFlowRecord:
    """Test the record model."""

    def test_to_dict_includes_totals(self):
        record = FlowRecord(
            timestamp=datetime(2024, 1, 15, 10, tzinfo=timezone.utc),
            source_ip="10.0.0.4",
            destination_ip="13.107.42.14",
            source_port=49152,
            destination_port=443,
            protocol="TCP",
            direction="Outbound",
            action="Allowed",
            packets_source_to_dest=1,
            bytes_source_to_dest=100,
            packets_dest_to_source=1,
            bytes_dest_to_source=200,
        )

        data = record.to_dict()

        assert data["timestamp"] == "2024-01-15T10:00:00+00:00"
        assert data["total_bytes"] == 300
        assert data["total_packets"] == 2
        json.dumps(data)


class TestLoggingUtils:
    """Test query tracking helpers."""

    def test_setup_logger_writes_to_app_home(self, isolated_home):
        logger = setup_logger("azure_flow_investigator.test_setup")
        assert len(logger.handlers) == 2
        assert (isolated_home / "azure-flow-investigator.log").exists()

        assert setup_logger("azure_flow_investigator.test_setup") is logger
        assert len(logger.handlers) == 2

        for handler in list(logger.handlers):
            handler.close()
            logger.removeHandler(handler)

    def test_query_ids_are_short_and_unique(self):
        ids = {generate_query_id() for _ in range(50)}
        assert len(ids) == 50
        assert all(len(query_id) == 8 for query_id in ids)

    def test_store_and_get_query_result(self):
        store_query_result("abc12345", {"kept": 3})
        assert get_query_result("abc12345") == {"kept": 3}
        assert get_query_result("missing0") is None
        assert get_query_result("../../etc/passwd") is None

    def test_log_query_end_stores_result(self, caplog):
        logger = logging.getLogger("azure_flow_investigator.test_end")
        with caplog.at_level(logging.INFO, logger="azure_flow_investigator.test_end"):
            log_query_end(logger, "def67890", True, result_data={"kept": 1}, kept=1)

        assert "Query def67890 SUCCESS" in caplog.text
        assert get_query_result("def67890") == {"kept": 1}
