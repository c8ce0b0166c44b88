"""
Reconciliation statement output.

DiffEmitter renders the INSERT/UPDATE/DELETE that brings a target row in
line with its source through the target dialect and appends it to a binary
sink. Without a sink every call is a no-op.
"""

import logging
import threading
from collections.abc import Mapping
from typing import Any, BinaryIO

from .dialect import Dialect
from .errors import DiffWriteError
from .metrics import STATEMENTS_EMITTED
from .model import Column, Row, TablePairing

logger = logging.getLogger(__name__)

LINE_TERMINATOR = "\r\n"

# Changed target column -> new source-derived value
Delta = dict[Column, Any]


class DiffEmitter:
    """
    Writes reconciliation statements for the target data source.

    Statements are UTF-8 encoded and terminated with CRLF. Writes are
    serialized, so tables compared on different threads may share one sink.
    """

    def __init__(
        self,
        dialect: Dialect,
        sink: BinaryIO | None = None,
        encoding: str = "utf-8",
    ):
        self.dialect = dialect
        self.sink = sink
        self.encoding = encoding
        self.statements_written = 0
        self._lock = threading.Lock()

    @property
    def enabled(self) -> bool:
        return self.sink is not None

    def write_insert(self, pairing: TablePairing, source_row: Row) -> None:
        """INSERT of every mapped source column, under its target column name."""
        if not self.enabled:
            return
        values = {
            target_column.name: source_row.get(source_column.name)
            for source_column, target_column in pairing.mapping
        }
        self._write("insert", self.dialect.build_insert(pairing.target, values))

    def write_update(self, pairing: TablePairing, delta: Mapping[Column, Any], target_row: Row) -> None:
        """UPDATE of the delta's columns, keyed by the target row's primary key."""
        if not self.enabled:
            return
        target = pairing.target
        values = {c.name: target_row.get(c.name) for c in target.primary_key_columns}
        values.update((column.name, value) for column, value in delta.items())
        statement = self.dialect.build_update(
            target, target.primary_key_columns, list(delta), values
        )
        self._write("update", statement)

    def write_delete(self, pairing: TablePairing, target_row: Row) -> None:
        """DELETE of the target row, keyed by its primary key."""
        if not self.enabled:
            return
        target = pairing.target
        statement = self.dialect.build_delete(target, target.primary_key_columns, target_row)
        self._write("delete", statement)

    def _write(self, kind: str, statement: str) -> None:
        payload = (statement + LINE_TERMINATOR).encode(self.encoding)
        with self._lock:
            try:
                self.sink.write(payload)
            except (OSError, ValueError) as e:
                raise DiffWriteError(f"Failed to write {kind} statement: {e}") from e
            self.statements_written += 1
        STATEMENTS_EMITTED.labels(kind=kind).inc()

    def flush(self) -> None:
        if not self.enabled:
            return
        with self._lock:
            try:
                self.sink.flush()
            except (OSError, ValueError) as e:
                raise DiffWriteError(f"Failed to flush diff output: {e}") from e
