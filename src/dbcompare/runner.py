"""
Comparison run orchestration.

DbCompare resolves the table pairings of a run and compares them one after
another, or on a worker pool, collecting a RunReport.
"""

import logging
import threading
from collections.abc import Callable, Sequence
from typing import BinaryIO

from opentelemetry import trace

from utils.retry import is_retryable_db_exception, retry_with_backoff
from utils.tracing import add_span_attributes, trace_operation

from .comparator import ValueComparator
from .config import CompareSettings
from .cursor import DEFAULT_PROGRESS_INTERVAL
from .dialect import Dialect
from .emitter import DiffEmitter
from .engine import TableComparer
from .errors import ConfigurationError
from .metrics import TABLES_PROCESSED
from .model import TablePairing
from .parallel import ParallelComparer, estimate_optimal_workers
from .report import RunReport, TableReport
from .resolver import TableMappingResolver, TransformLookup

logger = logging.getLogger(__name__)


class DbCompare:
    """
    Compares tables between a source and a target data source.

    Usage:
        db_compare = DbCompare(source, target, include=["customers"], diff_sink=out)
        report = db_compare.compare()

    The report of the latest run stays available as ``db_compare.report``,
    also when compare() raised.
    """

    def __init__(
        self,
        source_dialect: Dialect,
        target_dialect: Dialect,
        include: Sequence[str] | None = None,
        exclude: Sequence[str] | None = None,
        diff_sink: BinaryIO | None = None,
        transform_lookup: TransformLookup | None = None,
        source_node_group: str | None = None,
        target_node_group: str | None = None,
        comparator: ValueComparator | None = None,
        parallel: bool = False,
        max_workers: int | None = 4,
        fail_fast: bool = False,
        table_retries: int = 0,
        retry_base_delay: float = 1.0,
        progress_interval: int = DEFAULT_PROGRESS_INTERVAL,
    ):
        """
        Args:
            source_dialect: Dialect of the data source holding the reference rows
            target_dialect: Dialect of the data source being checked
            include: Table names to compare (all candidates when empty)
            exclude: Table names never compared
            diff_sink: Binary stream receiving the reconciliation SQL
            transform_lookup: Optional table transform lookup for the resolver
            source_node_group: Node group identity passed to ``transform_lookup``
            target_node_group: Node group identity passed to ``transform_lookup``
            comparator: Value comparator (built from the dialects by default)
            parallel: Compare tables on a worker pool
            max_workers: Worker pool size; None estimates it from the table count
            fail_fast: In parallel mode, stop at the first failed table
            table_retries: Retries of a table after a transient database error
            retry_base_delay: Initial backoff delay between retries, in seconds
            progress_interval: Rows between progress log lines

        Raises:
            ConfigurationError: if retries are combined with a diff sink
        """
        if table_retries < 0:
            raise ConfigurationError(f"table_retries must not be negative, got {table_retries}")
        if table_retries and diff_sink is not None:
            # A retried table would write its statements twice
            raise ConfigurationError("Table retries cannot be combined with a diff output")

        self.include = list(include or [])
        self.exclude = list(exclude or [])
        self.parallel = parallel
        self.max_workers = max_workers
        self.fail_fast = fail_fast
        self.table_retries = table_retries
        self.retry_base_delay = retry_base_delay

        self.resolver = TableMappingResolver(
            source_dialect,
            target_dialect,
            transform_lookup=transform_lookup,
            source_node_group=source_node_group,
            target_node_group=target_node_group,
        )
        self.emitter = DiffEmitter(target_dialect, diff_sink)
        self.comparer = TableComparer(
            source_dialect,
            target_dialect,
            comparator=comparator,
            emitter=self.emitter,
            progress_interval=progress_interval,
        )
        self.report: RunReport | None = None
        self._cancelled = threading.Event()

    @classmethod
    def from_settings(
        cls,
        source_dialect: Dialect,
        target_dialect: Dialect,
        settings: CompareSettings,
        **kwargs,
    ) -> "DbCompare":
        """Build a DbCompare from CompareSettings; ``kwargs`` are passed through."""
        comparator = ValueComparator(
            source_dialect.database_type,
            target_dialect.database_type,
            numeric_tolerance=settings.numeric_tolerance,
            temporal_tolerance=settings.temporal_tolerance,
            text_tolerance=settings.text_tolerance,
            binary_tolerance=settings.binary_tolerance,
        )
        return cls(
            source_dialect,
            target_dialect,
            include=settings.include,
            exclude=settings.exclude,
            comparator=comparator,
            parallel=settings.parallel,
            max_workers=settings.max_workers,
            fail_fast=settings.fail_fast,
            table_retries=settings.table_retries,
            progress_interval=settings.progress_interval,
            **kwargs,
        )

    def cancel(self) -> None:
        """Stop the current run before its next table; the table in flight finishes."""
        logger.info("Cancellation requested")
        self._cancelled.set()

    @property
    def cancelled(self) -> bool:
        return self._cancelled.is_set()

    def compare(self, candidate_table_names: Sequence[str] | None = None) -> RunReport:
        """
        Compare the candidate tables that survive the include/exclude filters.

        Args:
            candidate_table_names: Tables known to the caller. None selects
                tables manually from the include list.

        Returns:
            RunReport with one TableReport per compared pairing, in
            resolution order

        Raises:
            ConfigurationError: in manual mode without included tables
            TableComparisonError: when a table fails (sequential mode, or
                parallel mode with fail_fast)
            DiffWriteError: when the diff output cannot be written
        """
        self._cancelled.clear()
        report = RunReport()
        self.report = report

        with trace_operation(
            "dbcompare_run",
            kind=trace.SpanKind.INTERNAL,
            parallel=self.parallel,
            diff_output=self.emitter.enabled,
        ):
            try:
                pairings = self.resolver.resolve_pairings(
                    candidate_table_names, self.include, self.exclude
                )
                compare_table = self._compare_function()

                if self.parallel and len(pairings) > 1:
                    self._compare_parallel(pairings, compare_table, report)
                else:
                    self._compare_sequential(pairings, compare_table, report)

                self.emitter.flush()
            finally:
                report.cancelled = self.cancelled
                report.finish()

            add_span_attributes(
                tables_compared=len(report),
                tables_failed=len(report.failures),
                cancelled=report.cancelled,
            )

        totals = report.totals()
        logger.info(
            f"Comparison run complete: {len(report)} tables, "
            f"{totals['matched']} matched, {totals['changed']} changed, "
            f"{totals['missing']} missing, {totals['extra']} extra rows"
            + (" (cancelled)" if report.cancelled else "")
        )
        return report

    def _compare_function(self) -> Callable[[TablePairing], TableReport]:
        if not self.table_retries:
            return self.comparer.compare_table

        return retry_with_backoff(
            max_retries=self.table_retries,
            base_delay=self.retry_base_delay,
            retry_if=is_retryable_db_exception,
        )(self.comparer.compare_table)

    def _compare_sequential(
        self,
        pairings: Sequence[TablePairing],
        compare_table: Callable[[TablePairing], TableReport],
        report: RunReport,
    ) -> None:
        for index, pairing in enumerate(pairings, 1):
            if self.cancelled:
                logger.warning(
                    f"Run cancelled, {len(pairings) - index + 1} tables not compared"
                )
                TABLES_PROCESSED.labels(status="cancelled").inc(len(pairings) - index + 1)
                return
            try:
                table_report = compare_table(pairing)
            except Exception:
                TABLES_PROCESSED.labels(status="failed").inc()
                raise
            report.add_table_report(table_report)
            TABLES_PROCESSED.labels(status="success").inc()
            logger.debug(f"Table {pairing.name} compared ({index}/{len(pairings)})")

    def _compare_parallel(
        self,
        pairings: Sequence[TablePairing],
        compare_table: Callable[[TablePairing], TableReport],
        report: RunReport,
    ) -> None:
        max_workers = self.max_workers or estimate_optimal_workers(len(pairings))
        pool = ParallelComparer(max_workers=max_workers, fail_fast=self.fail_fast)
        pool.compare_tables(pairings, compare_table, report, cancel_event=self._cancelled)
