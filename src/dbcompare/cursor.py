"""
Ordered row cursor.

Streams one side of a table comparison in primary-key order. The cursor is
forward-only and single-pass; its ``count`` is the number of rows read so
far and, once exhausted, the total row count for that side.
"""

import logging
import time
from collections.abc import Callable, Iterator

from opentelemetry import trace

from utils.tracing import trace_operation

from .dialect import Dialect, ResultCursor
from .metrics import ROWS_READ
from .model import Row, Table

logger = logging.getLogger(__name__)

DEFAULT_PROGRESS_INTERVAL = 10_000

# (table name, rows processed, elapsed seconds)
ProgressCallback = Callable[[str, int, float], None]


def log_progress(table_name: str, rows: int, elapsed_seconds: float) -> None:
    """Default progress observer."""
    logger.info(
        f"Compared {rows} rows of {table_name} in {elapsed_seconds:.1f}s"
    )


class OrderedRowCursor:
    """
    Rows of one table in ascending primary-key order.

    Usage:
        with OrderedRowCursor(dialect, table, side="source") as cursor:
            while (row := cursor.next()) is not None:
                ...
    """

    def __init__(
        self,
        dialect: Dialect,
        table: Table,
        side: str = "source",
        progress: ProgressCallback | None = log_progress,
        progress_interval: int = DEFAULT_PROGRESS_INTERVAL,
    ):
        self.dialect = dialect
        self.table = table
        self.side = side
        self.progress = progress
        self.progress_interval = progress_interval
        self.count = 0
        self._result: ResultCursor | None = None
        self._exhausted = False
        self._started_at = 0.0

    def open(self) -> "OrderedRowCursor":
        """Execute the ordered SELECT. Calling open() on an open cursor is a no-op."""
        if self._result is not None:
            return self

        sql = self.dialect.build_ordered_select(self.table)
        logger.debug(f"Opening {self.side} cursor on {self.table}: {sql}")
        with trace_operation(
            "open_ordered_cursor",
            kind=trace.SpanKind.CLIENT,
            table=str(self.table),
            side=self.side,
            database=self.dialect.database_type.value,
        ):
            self._result = self.dialect.execute_query(sql)
        self._started_at = time.monotonic()
        return self

    def next(self) -> Row | None:
        """Return the next row, or None once the result is exhausted."""
        if self._exhausted:
            return None
        if self._result is None:
            self.open()

        row = self._result.fetch()
        if row is None:
            self._exhausted = True
            return None

        self.count += 1
        if self.count % self.progress_interval == 0:
            ROWS_READ.labels(side=self.side).inc(self.progress_interval)
            if self.progress is not None:
                self.progress(
                    str(self.table), self.count, time.monotonic() - self._started_at
                )
        return row

    @property
    def exhausted(self) -> bool:
        return self._exhausted

    def __iter__(self) -> Iterator[Row]:
        while (row := self.next()) is not None:
            yield row

    def close(self) -> None:
        """Release the result set and its connection. Safe to call repeatedly."""
        if self._result is None:
            return
        result, self._result = self._result, None
        self._exhausted = True
        ROWS_READ.labels(side=self.side).inc(self.count % self.progress_interval)
        result.close()

    def __enter__(self) -> "OrderedRowCursor":
        return self.open()

    def __exit__(self, exc_type, exc, tb) -> None:
        self.close()
