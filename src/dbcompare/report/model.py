"""
Comparison reports.

A TableReport accumulates the outcome counts of one table pairing; the
RunReport collects them in pairing order. Only the RunReport is shared
between threads.
"""

import threading
from collections.abc import Iterator
from dataclasses import dataclass, field
from datetime import UTC, datetime
from typing import Any

from dbcompare.model import Classification


@dataclass
class TableReport:
    """Per-table counts, finalized when the merge-join terminates."""

    source_table: str
    target_table: str
    matched: int = 0
    changed: int = 0
    missing: int = 0  # source-only
    extra: int = 0  # target-only
    source_rows: int = 0
    target_rows: int = 0
    duration_seconds: float = 0.0

    def count(self, classification: Classification) -> None:
        if classification is Classification.MATCHED:
            self.matched += 1
        elif classification is Classification.CHANGED:
            self.changed += 1
        elif classification is Classification.SOURCE_ONLY:
            self.missing += 1
        elif classification is Classification.TARGET_ONLY:
            self.extra += 1

    @property
    def differences(self) -> int:
        return self.changed + self.missing + self.extra

    @property
    def is_in_sync(self) -> bool:
        return self.differences == 0

    def to_dict(self) -> dict[str, Any]:
        return {
            "source_table": self.source_table,
            "target_table": self.target_table,
            "matched": self.matched,
            "changed": self.changed,
            "missing": self.missing,
            "extra": self.extra,
            "source_rows": self.source_rows,
            "target_rows": self.target_rows,
            "duration_seconds": round(self.duration_seconds, 3),
            "in_sync": self.is_in_sync,
        }


@dataclass(frozen=True)
class TableFailure:
    """A table whose comparison failed while the run carried on."""

    table: str
    error: str
    error_type: str

    def to_dict(self) -> dict[str, Any]:
        return {"table": self.table, "error": self.error, "type": self.error_type}


class RunReport:
    """
    Ordered, append-only sequence of TableReports.

    ``add_table_report`` may be called from several worker threads.
    """

    def __init__(self):
        self._tables: list[TableReport] = []
        self._failures: list[TableFailure] = []
        self._lock = threading.Lock()
        self.started_at = datetime.now(UTC)
        self.finished_at: datetime | None = None
        self.cancelled = False

    def add_table_report(self, report: TableReport) -> None:
        with self._lock:
            if self.finished_at is not None:
                raise RuntimeError("Cannot add a table report to a finished run")
            self._tables.append(report)

    def add_failure(self, table: str, error: BaseException) -> None:
        with self._lock:
            self._failures.append(
                TableFailure(table=table, error=str(error), error_type=type(error).__name__)
            )

    def finish(self) -> None:
        with self._lock:
            if self.finished_at is None:
                self.finished_at = datetime.now(UTC)

    @property
    def tables(self) -> tuple[TableReport, ...]:
        with self._lock:
            return tuple(self._tables)

    @property
    def failures(self) -> tuple[TableFailure, ...]:
        with self._lock:
            return tuple(self._failures)

    def __iter__(self) -> Iterator[TableReport]:
        return iter(self.tables)

    def __len__(self) -> int:
        with self._lock:
            return len(self._tables)

    def get(self, source_table: str) -> TableReport | None:
        for report in self.tables:
            if report.source_table.lower() == source_table.lower():
                return report
        return None

    def totals(self) -> dict[str, int]:
        totals = dict.fromkeys(
            ("matched", "changed", "missing", "extra", "source_rows", "target_rows"), 0
        )
        for report in self.tables:
            for key in totals:
                totals[key] += getattr(report, key)
        return totals

    @property
    def is_in_sync(self) -> bool:
        return not self.failures and all(r.is_in_sync for r in self.tables)

    @property
    def duration_seconds(self) -> float:
        end = self.finished_at or datetime.now(UTC)
        return (end - self.started_at).total_seconds()

    def to_dict(self) -> dict[str, Any]:
        tables = self.tables
        return {
            "status": "PASS" if self.is_in_sync else "FAIL",
            "started_at": self.started_at.isoformat(),
            "finished_at": self.finished_at.isoformat() if self.finished_at else None,
            "duration_seconds": round(self.duration_seconds, 3),
            "cancelled": self.cancelled,
            "total_tables": len(tables),
            "tables_in_sync": sum(1 for r in tables if r.is_in_sync),
            "totals": self.totals(),
            "tables": [r.to_dict() for r in tables],
            "failures": [f.to_dict() for f in self.failures],
        }
