"""
Merge-join reconciliation of one table pairing.

Both sides are streamed in primary-key order and walked in lock-step, so
memory use is one buffered row per side whatever the table size. Every key
present on either side is classified exactly once:

- equal keys, equivalent values: MATCHED
- equal keys, differing values: CHANGED (UPDATE)
- key only in the source: SOURCE_ONLY, counted as missing (INSERT)
- key only in the target: TARGET_ONLY, counted as extra (DELETE)
"""

import logging
import time
from opentelemetry import trace

from utils.logging import ContextLogger
from utils.tracing import add_span_attributes, add_span_event, trace_operation

from .comparator import ValueComparator
from .cursor import DEFAULT_PROGRESS_INTERVAL, OrderedRowCursor, ProgressCallback, log_progress
from .dialect import Dialect
from .emitter import Delta, DiffEmitter
from .errors import DiffWriteError, TableComparisonError
from .metrics import ROWS_CLASSIFIED, TABLE_COMPARISON_TIME
from .model import Classification, Row, TablePairing
from .report import TableReport

logger = logging.getLogger(__name__)


class TableComparer:
    """
    Compares table pairings between a source and a target data source.

    One instance may compare several tables concurrently: all per-table
    state lives in compare_table's frame.
    """

    def __init__(
        self,
        source_dialect: Dialect,
        target_dialect: Dialect,
        comparator: ValueComparator | None = None,
        emitter: DiffEmitter | None = None,
        progress: ProgressCallback | None = log_progress,
        progress_interval: int = DEFAULT_PROGRESS_INTERVAL,
    ):
        self.source_dialect = source_dialect
        self.target_dialect = target_dialect
        self.comparator = comparator or ValueComparator(
            source_dialect.database_type, target_dialect.database_type
        )
        self.emitter = emitter or DiffEmitter(target_dialect)
        self.progress = progress
        self.progress_interval = progress_interval

    def compare_table(self, pairing: TablePairing) -> TableReport:
        """
        Compare one pairing and return its report.

        Raises:
            TableComparisonError: if a cursor cannot be opened or read, after
                both cursors have been closed
            DiffWriteError: if a statement cannot be written to the sink
        """
        report = TableReport(
            source_table=str(pairing.source),
            target_table=str(pairing.target),
        )
        table_logger = ContextLogger(
            __name__,
            source_table=report.source_table,
            target_table=report.target_table,
        )
        started = time.monotonic()

        with trace_operation(
            "compare_table",
            kind=trace.SpanKind.INTERNAL,
            source_table=report.source_table,
            target_table=report.target_table,
        ):
            with TABLE_COMPARISON_TIME.labels(table=pairing.name).time():
                table_logger.info(f"Comparing {report.source_table} to {report.target_table}")
                try:
                    pairing.check_primary_key_order()
                except ValueError as e:
                    table_logger.error(f"Cannot compare {pairing.name}: {e}")
                    raise TableComparisonError(pairing.name, str(e)) from e

                try:
                    with (
                        self._open_cursor(pairing, "source") as source_cursor,
                        self._open_cursor(pairing, "target") as target_cursor,
                    ):
                        self._merge(pairing, source_cursor, target_cursor, report)
                        report.source_rows = source_cursor.count
                        report.target_rows = target_cursor.count
                except (DiffWriteError, TableComparisonError):
                    raise
                except Exception as e:
                    table_logger.error(f"Comparison of {pairing.name} failed: {e}")
                    raise TableComparisonError(pairing.name, str(e)) from e

                report.duration_seconds = time.monotonic() - started
                self._record(pairing, report)

        table_logger.info(
            f"Compared {report.source_table}: {report.matched} matched, "
            f"{report.changed} changed, {report.missing} missing, "
            f"{report.extra} extra in {report.duration_seconds:.2f}s",
            **report.to_dict(),
        )
        return report

    def _open_cursor(self, pairing: TablePairing, side: str) -> OrderedRowCursor:
        if side == "source":
            dialect, table = self.source_dialect, pairing.source
        else:
            dialect, table = self.target_dialect, pairing.target
        return OrderedRowCursor(
            dialect,
            table,
            side=side,
            progress=self.progress if side == "source" else None,
            progress_interval=self.progress_interval,
        )

    def _merge(
        self,
        pairing: TablePairing,
        source_cursor: OrderedRowCursor,
        target_cursor: OrderedRowCursor,
        report: TableReport,
    ) -> None:
        add_span_event("merge_started")
        source_row = source_cursor.next()
        target_row = target_cursor.next()

        while source_row is not None or target_row is not None:
            if source_row is None:
                order = 1
            elif target_row is None:
                order = -1
            else:
                order = self.comparator.compare_primary_keys(pairing, source_row, target_row)

            if order < 0:
                self.emitter.write_insert(pairing, source_row)
                report.count(Classification.SOURCE_ONLY)
                source_row = source_cursor.next()
            elif order > 0:
                self.emitter.write_delete(pairing, target_row)
                report.count(Classification.TARGET_ONLY)
                target_row = target_cursor.next()
            else:
                delta = self.delta(pairing, source_row, target_row)
                if delta:
                    self.emitter.write_update(pairing, delta, target_row)
                    report.count(Classification.CHANGED)
                else:
                    report.count(Classification.MATCHED)
                source_row = source_cursor.next()
                target_row = target_cursor.next()

        add_span_event("merge_completed", matched=report.matched)

    def delta(self, pairing: TablePairing, source_row: Row, target_row: Row) -> Delta:
        """Target columns whose value differs from the source, with the source value."""
        changed: Delta = {}
        for source_column, target_column in pairing.compared_pairs():
            source_value = source_row.get(source_column.name)
            target_value = target_row.get(target_column.name)
            if not self.comparator.equivalent(
                pairing, source_column, source_value, target_column, target_value
            ):
                changed[target_column] = source_value
        return changed

    def _record(self, pairing: TablePairing, report: TableReport) -> None:
        add_span_attributes(
            matched=report.matched,
            changed=report.changed,
            missing=report.missing,
            extra=report.extra,
            source_rows=report.source_rows,
            target_rows=report.target_rows,
        )
        for outcome in ("matched", "changed", "missing", "extra"):
            count = getattr(report, outcome)
            if count:
                ROWS_CLASSIFIED.labels(table=pairing.name, outcome=outcome).inc(count)
