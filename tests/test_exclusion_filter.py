"""
Tests for the exclusion filter pipeline.
"""

import threading

import pytest

from azure_flow_investigator.exclusion_filter import (
    ExclusionFilter,
    ExclusionSet,
    FilterCancelledError,
    filter_records,
)
from azure_flow_investigator.radix_tree import RadixTree


class TestExclusionSet:
    def test_builds_index_from_cidrs(self):
        exclusions = ExclusionSet(ips=["8.8.8.8"], cidrs=["10.0.0.0/8", "junk"])

        assert exclusions.ips == frozenset({"8.8.8.8"})
        assert exclusions.cidrs == ("10.0.0.0/8", "junk")
        assert len(exclusions.index) == 1
        assert not exclusions.is_empty()

    def test_empty(self):
        assert ExclusionSet().is_empty()

    def test_exact_ips_are_stored_in_canonical_form(self):
        exclusions = ExclusionSet(ips=[" 2001:DB8:0::1 ", "8.8.8.8"])

        assert exclusions.ips == frozenset({"2001:db8::1", "8.8.8.8"})


class TestExclusionFilter:
    """Test record partitioning."""

    def test_no_exclusions_returns_input(self, sample_records):
        assert filter_records(sample_records) == sample_records

    def test_no_exclusions_skips_index_build(self, sample_records, monkeypatch):
        def fail(*args, **kwargs):
            raise AssertionError("index should not be built")

        monkeypatch.setattr(RadixTree, "from_cidrs", fail)
        assert filter_records(sample_records, [], []) == sample_records

    def test_exact_ip_exclusion(self, sample_records):
        kept = filter_records(sample_records, exclude_ips=["168.63.129.16", "8.8.8.8"])

        assert len(kept) == 3
        assert all(r.destination_ip not in ("168.63.129.16", "8.8.8.8") for r in kept)

    def test_ipv6_exclusion_matches_regardless_of_spelling(self, record_factory):
        records = [
            record_factory("2001:db8::1", "2001:db8::2"),
            record_factory("2001:db8::3", "2001:db8::4"),
        ]

        kept = filter_records(records, exclude_ips=["2001:DB8::1"])

        assert kept == [records[1]]

    def test_cidr_exclusion_matches_source_or_destination(self, sample_records):
        kept = filter_records(sample_records, exclude_cidrs=["52.239.0.0/16", "13.104.0.0/14"])

        assert [(r.source_ip, r.destination_ip) for r in kept] == [
            ("10.0.0.4", "168.63.129.16"),
            ("10.0.0.5", "8.8.8.8"),
            ("192.168.1.10", "10.0.0.4"),
        ]

    def test_private_range_excludes_everything_internal(self, sample_records):
        kept = filter_records(sample_records, exclude_cidrs=["10.0.0.0/8"])
        assert kept == []

    def test_partition_keeps_order_and_counts(self, sample_records):
        result = ExclusionFilter(
            exclude_ips=["8.8.8.8"], exclude_cidrs=["192.168.0.0/16"]
        ).partition(sample_records)

        assert result.total == len(sample_records)
        assert result.kept == sample_records[:3]
        assert result.excluded == sample_records[3:]

    def test_exact_match_short_circuits_tree_lookup(self, record_factory, monkeypatch):
        calls = []
        original = RadixTree.contains

        def tracking_contains(self, ip):
            calls.append(ip)
            return original(self, ip)

        monkeypatch.setattr(RadixTree, "contains", tracking_contains)
        records = [record_factory("10.0.0.4", "8.8.8.8"), record_factory("10.0.0.4", "1.1.1.1")]

        kept = filter_records(records, exclude_ips=["8.8.8.8"], exclude_cidrs=["20.0.0.0/8"])

        assert kept == records[1:]
        assert calls == ["10.0.0.4", "1.1.1.1"]

    def test_invalid_exclusions_are_ignored(self, sample_records):
        kept = filter_records(sample_records, exclude_ips=["nope"], exclude_cidrs=["bad/99"])
        assert kept == sample_records

    def test_filter_is_idempotent(self, sample_records):
        ips = ["168.63.129.16"]
        cidrs = ["52.239.0.0/16"]

        once = filter_records(sample_records, ips, cidrs)
        twice = filter_records(once, ips, cidrs)

        assert twice == once

    def test_accepts_generators(self, sample_records):
        kept = filter_records((r for r in sample_records), exclude_ips=["8.8.8.8"])
        assert len(kept) == 4


class TestProgressAndCancellation:
    """Test the progress callback and cancel signal."""

    @pytest.fixture
    def many_records(self, record_factory):
        return [
            record_factory(f"10.0.{i // 256}.{i % 256}", "8.8.8.8" if i % 5 == 0 else "1.1.1.1")
            for i in range(1000)
        ]

    def test_progress_milestones(self, many_records):
        updates = []

        kept = filter_records(
            many_records,
            exclude_ips=["8.8.8.8"],
            progress_callback=updates.append,
            progress_interval=250,
        )

        assert len(kept) == 800
        assert updates[0].message.startswith("Exclusion index built")
        assert [u.processed for u in updates[1:-1]] == [250, 500, 750]
        assert updates[1].message == "Filtering: 25% (250/1000), 50 excluded so far"
        assert updates[-1].message == "Filtering complete: 800 kept, 200 excluded"
        assert updates[-1].excluded == 200
        assert str(updates[-1]) == updates[-1].message

    def test_fast_path_reports_completion(self, sample_records):
        updates = []
        filter_records(sample_records, progress_callback=updates.append)

        assert len(updates) == 1
        assert updates[0].processed == updates[0].total == len(sample_records)

    def test_cancellation(self, many_records):
        cancel = threading.Event()

        def cancel_after_first_report(progress):
            if progress.processed >= 250:
                cancel.set()

        with pytest.raises(FilterCancelledError) as exc_info:
            filter_records(
                many_records,
                exclude_ips=["8.8.8.8"],
                progress_callback=cancel_after_first_report,
                cancel_event=cancel,
                progress_interval=250,
            )

        assert exc_info.value.processed == 500
        assert exc_info.value.excluded == 100

    def test_cancel_before_start(self, many_records):
        cancel = threading.Event()
        cancel.set()

        with pytest.raises(FilterCancelledError) as exc_info:
            filter_records(many_records, exclude_ips=["8.8.8.8"], cancel_event=cancel)

        assert exc_info.value.processed == 0
