"""
Unit tests for parallel comparison module.

Tests parallel table processing, error handling, cancellation, and metrics.
"""

import threading
import time
from unittest.mock import patch

import pytest

from dbcompare.errors import ConfigurationError, DiffWriteError, TableComparisonError
from dbcompare.model import ColumnMapping, TablePairing
from dbcompare.parallel import (
    CancellationError,
    ParallelComparer,
    estimate_optimal_workers,
    get_parallel_comparison_stats,
)
from dbcompare.report import RunReport, TableReport
from fakes import make_table


def make_pairings(*names):
    pairings = []
    for name in names:
        table = make_table(name, {"id": "numeric"})
        pairings.append(TablePairing(table, table, ColumnMapping.by_name(table, table)))
    return pairings


def report_for(pairing, matched=1):
    return TableReport(source_table=pairing.name, target_table=pairing.name, matched=matched)


class TestParallelComparer:
    """Test ParallelComparer functionality."""

    def test_initialization(self):
        """Test comparer initialization."""
        comparer = ParallelComparer(max_workers=4)

        assert comparer.max_workers == 4
        assert comparer.fail_fast is False

    def test_initialization_with_fail_fast(self):
        """Test initialization with fail_fast enabled."""
        comparer = ParallelComparer(max_workers=2, fail_fast=True)

        assert comparer.fail_fast is True

    @pytest.mark.parametrize("workers", [0, -1])
    def test_invalid_worker_count(self, workers):
        with pytest.raises(ConfigurationError):
            ParallelComparer(max_workers=workers)

    def test_compare_empty_pairings_list(self):
        """Test comparing empty pairing list."""
        run = RunReport()

        result = ParallelComparer().compare_tables([], report_for, run)

        assert result is run
        assert len(run) == 0

    def test_compare_multiple_tables_success(self):
        """Test successfully comparing multiple tables."""
        pairings = make_pairings("users", "orders", "products")
        run = RunReport()

        ParallelComparer(max_workers=2).compare_tables(pairings, report_for, run)

        assert len(run) == 3
        assert run.failures == ()

    def test_reports_follow_pairing_order(self):
        """Test that reports keep resolution order whatever the finish order."""
        pairings = make_pairings("slow", "medium", "fast")
        delays = {"slow": 0.2, "medium": 0.1, "fast": 0.0}

        def compare(pairing):
            time.sleep(delays[pairing.name])
            return report_for(pairing)

        run = RunReport()
        ParallelComparer(max_workers=3).compare_tables(pairings, compare, run)

        assert [r.source_table for r in run] == ["slow", "medium", "fast"]

    def test_failure_recorded_and_run_continues(self):
        """Test handling of a failed table without fail_fast."""
        pairings = make_pairings("users", "orders", "products")

        def compare(pairing):
            if pairing.name == "orders":
                raise TableComparisonError("orders", "connection reset")
            return report_for(pairing)

        run = RunReport()
        ParallelComparer(max_workers=2).compare_tables(pairings, compare, run)

        assert [r.source_table for r in run] == ["users", "products"]
        assert len(run.failures) == 1
        assert run.failures[0].table == "orders"
        assert run.failures[0].error_type == "TableComparisonError"

    def test_fail_fast_raises_first_error(self):
        """Test fail_fast stops the run and re-raises."""
        pairings = make_pairings(*[f"t{i}" for i in range(6)])
        started = []

        def compare(pairing):
            started.append(pairing.name)
            if pairing.name == "t0":
                raise TableComparisonError("t0", "boom")
            time.sleep(0.05)
            return report_for(pairing)

        run = RunReport()
        with pytest.raises(TableComparisonError, match="boom"):
            ParallelComparer(max_workers=1, fail_fast=True).compare_tables(pairings, compare, run)

        # At most the table picked up while t0 was failing gets to run
        assert len(started) <= 2
        assert run.failures == ()

    @pytest.mark.parametrize("error", [
        DiffWriteError("disk full"),
        ConfigurationError("bad settings"),
    ])
    def test_run_fatal_errors_stop_without_fail_fast(self, error):
        pairings = make_pairings("a", "b", "c")

        def compare(pairing):
            if pairing.name == "a":
                raise error
            time.sleep(0.05)
            return report_for(pairing)

        run = RunReport()
        with pytest.raises(type(error)):
            ParallelComparer(max_workers=1).compare_tables(pairings, compare, run)

        assert len(run) < 2
        assert run.failures == ()

    def test_cancel_event_skips_pending_tables(self):
        """Test that a set cancel event skips tables not yet started."""
        pairings = make_pairings("a", "b", "c", "d")
        cancel = threading.Event()

        def compare(pairing):
            cancel.set()
            return report_for(pairing)

        run = RunReport()
        ParallelComparer(max_workers=1).compare_tables(pairings, compare, run, cancel_event=cancel)

        assert [r.source_table for r in run] == ["a"]
        assert run.failures == ()

    def test_cancelled_before_start(self):
        cancel = threading.Event()
        cancel.set()
        run = RunReport()

        ParallelComparer(max_workers=2).compare_tables(
            make_pairings("a", "b"), report_for, run, cancel_event=cancel
        )

        assert len(run) == 0

    def test_wrapper_raises_cancellation(self):
        stop = threading.Event()
        stop.set()
        (pairing,) = make_pairings("a")

        with pytest.raises(CancellationError):
            ParallelComparer()._compare_wrapper(pairing, report_for, (stop,))

    def test_workers_run_concurrently(self):
        """Test that tables are compared on several threads."""
        pairings = make_pairings("a", "b", "c", "d")
        barrier = threading.Barrier(4, timeout=5)
        threads = set()

        def compare(pairing):
            threads.add(threading.current_thread().name)
            barrier.wait()
            return report_for(pairing)

        run = RunReport()
        ParallelComparer(max_workers=4).compare_tables(pairings, compare, run)

        assert len(run) == 4
        assert len(threads) == 4
        assert all(name.startswith("dbcompare") for name in threads)

    def test_gauges_reset_after_run(self):
        ParallelComparer(max_workers=2).compare_tables(make_pairings("a", "b"), report_for, RunReport())

        stats = get_parallel_comparison_stats()

        assert stats["active_workers"] == 0
        assert stats["queue_size"] == 0


class TestEstimateOptimalWorkers:
    """Test worker count estimation."""

    def test_zero_tables(self):
        assert estimate_optimal_workers(0) == 1

    def test_budget_based_estimate(self):
        assert estimate_optimal_workers(20, 60, 300, 10) == 5

    def test_capped_by_table_count(self):
        assert estimate_optimal_workers(2, 600, 60, 10) == 2

    def test_capped_by_max_workers(self):
        assert estimate_optimal_workers(100, 600, 60, 8) == 8

    def test_minimum_one_worker(self):
        assert estimate_optimal_workers(1, 1, 300) == 1


class TestParallelComparisonStats:
    """Test statistics gathering."""

    def test_stats_structure(self):
        stats = get_parallel_comparison_stats()

        assert set(stats) == {"active_workers", "queue_size", "total_processed"}
        assert set(stats["total_processed"]) == {"success", "failed", "cancelled"}

    def test_successful_tables_counted(self):
        before = get_parallel_comparison_stats()["total_processed"]["success"]

        ParallelComparer(max_workers=2).compare_tables(make_pairings("a", "b"), report_for, RunReport())

        after = get_parallel_comparison_stats()["total_processed"]["success"]
        assert after - before == 2

    @patch("dbcompare.parallel.helpers.REGISTRY")
    def test_missing_samples_default_to_zero(self, mock_registry):
        mock_registry.get_sample_value.return_value = None

        stats = get_parallel_comparison_stats()

        assert stats["active_workers"] == 0
        assert stats["total_processed"]["failed"] == 0
