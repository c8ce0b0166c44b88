"""
Parallel table comparison.

This module provides the ParallelComparer class for comparing multiple table
pairings concurrently using ThreadPoolExecutor.
"""

import logging
import threading
from collections.abc import Callable, Sequence
from concurrent.futures import CancelledError, Future, ThreadPoolExecutor, as_completed
from datetime import UTC, datetime

from opentelemetry import trace

from utils.tracing import trace_operation

from ..errors import ConfigurationError, DbCompareError, DiffWriteError
from ..metrics import ACTIVE_WORKERS, QUEUE_SIZE, TABLES_PROCESSED
from ..model import TablePairing
from ..report import RunReport, TableReport

logger = logging.getLogger(__name__)

# Errors that abort the whole run even when fail_fast is off
RUN_FATAL_ERRORS = (ConfigurationError, DiffWriteError)


class CancellationError(DbCompareError):
    """Raised when a pairing is skipped because the run was cancelled."""


class ParallelComparer:
    """
    Compares table pairings on a bounded pool of worker threads.

    Each worker opens its own pair of cursors; the only shared state is the
    RunReport, which receives the table reports in pairing order once the
    pool has drained.
    """

    def __init__(
        self,
        max_workers: int = 4,
        fail_fast: bool = False,
    ):
        """
        Initialize parallel comparer.

        Args:
            max_workers: Maximum concurrent workers (default: 4)
            fail_fast: If True, stop on first table failure (default: False)
        """
        if max_workers < 1:
            raise ConfigurationError(f"max_workers must be at least 1, got {max_workers}")

        self.max_workers = max_workers
        self.fail_fast = fail_fast
        self._metrics_lock = threading.Lock()

        logger.info(
            f"ParallelComparer initialized: "
            f"max_workers={max_workers}, "
            f"fail_fast={fail_fast}"
        )

    def compare_tables(
        self,
        pairings: Sequence[TablePairing],
        compare_func: Callable[[TablePairing], TableReport],
        run_report: RunReport,
        cancel_event: threading.Event | None = None,
    ) -> RunReport:
        """
        Compare pairings concurrently and append their reports to ``run_report``.

        With ``fail_fast`` off, a failed table is recorded in
        ``run_report.failures`` and the others carry on. A ConfigurationError
        or DiffWriteError always stops the run and is re-raised once the
        running workers have finished; reports completed until then are
        still appended.

        Args:
            pairings: Pairings in resolution order
            compare_func: Function comparing one pairing
            run_report: Report receiving one TableReport per completed pairing
            cancel_event: When set, pairings that have not started are skipped

        Returns:
            ``run_report``
        """
        with trace_operation(
            "parallel_compare_tables",
            kind=trace.SpanKind.INTERNAL,
            table_count=len(pairings),
            max_workers=self.max_workers,
        ):
            if not pairings:
                logger.warning("No table pairings to compare")
                return run_report

            start_time = datetime.now(UTC)
            total = len(pairings)
            stop = threading.Event()
            tokens = (stop,) if cancel_event is None else (stop, cancel_event)
            completed: dict[int, TableReport] = {}
            fatal: BaseException | None = None
            failed = 0
            cancelled = 0

            logger.info(
                f"Starting parallel comparison of {total} tables "
                f"with {self.max_workers} workers"
            )

            with self._metrics_lock:
                QUEUE_SIZE.set(total)

            with ThreadPoolExecutor(
                max_workers=self.max_workers, thread_name_prefix="dbcompare"
            ) as executor:
                future_to_index: dict[Future, int] = {
                    executor.submit(self._compare_wrapper, pairing, compare_func, tokens): index
                    for index, pairing in enumerate(pairings)
                }

                with self._metrics_lock:
                    ACTIVE_WORKERS.set(min(self.max_workers, total))

                completed_count = 0
                for future in as_completed(future_to_index):
                    pairing = pairings[future_to_index[future]]
                    completed_count += 1

                    with self._metrics_lock:
                        QUEUE_SIZE.set(total - completed_count)
                        ACTIVE_WORKERS.set(min(self.max_workers, total - completed_count))

                    try:
                        completed[future_to_index[future]] = future.result()
                        TABLES_PROCESSED.labels(status="success").inc()
                        logger.info(
                            f"✓ Table {pairing.name} compared "
                            f"({completed_count}/{total})"
                        )

                    except (CancellationError, CancelledError):
                        cancelled += 1
                        TABLES_PROCESSED.labels(status="cancelled").inc()
                        logger.debug(f"Table {pairing.name} not compared: run stopped")

                    except Exception as e:
                        failed += 1
                        TABLES_PROCESSED.labels(status="failed").inc()
                        logger.error(
                            f"✗ Table {pairing.name} comparison failed: {e} "
                            f"({completed_count}/{total})",
                            exc_info=True,
                        )

                        if self.fail_fast or isinstance(e, RUN_FATAL_ERRORS):
                            if fatal is None:
                                fatal = e
                                logger.warning("Stopping run, canceling remaining tables")
                            stop.set()
                            for pending in future_to_index:
                                pending.cancel()
                        else:
                            run_report.add_failure(pairing.name, e)

            with self._metrics_lock:
                ACTIVE_WORKERS.set(0)
                QUEUE_SIZE.set(0)

            for index in sorted(completed):
                run_report.add_table_report(completed[index])

            duration = (datetime.now(UTC) - start_time).total_seconds()
            logger.info(
                f"Parallel comparison complete: "
                f"{len(completed)} successful, "
                f"{failed} failed, "
                f"{cancelled} cancelled "
                f"out of {total} tables "
                f"in {duration:.2f}s"
            )

            if fatal is not None:
                raise fatal
            return run_report

    def _compare_wrapper(
        self,
        pairing: TablePairing,
        compare_func: Callable[[TablePairing], TableReport],
        tokens: Sequence[threading.Event],
    ) -> TableReport:
        """Check for cancellation, then compare one pairing."""
        with trace_operation(
            "parallel_compare_single_table",
            kind=trace.SpanKind.INTERNAL,
            table=pairing.name,
        ):
            if any(token.is_set() for token in tokens):
                raise CancellationError(f"Run stopped before comparing {pairing.name}")

            logger.debug(f"Starting comparison for table: {pairing.name}")
            return compare_func(pairing)
