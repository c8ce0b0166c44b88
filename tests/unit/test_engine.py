"""
Unit tests for the merge-join table comparer.

Rows are served by in-memory dialects; reconciliation statements are
captured in a BytesIO sink.
"""

import io
from datetime import datetime
from decimal import Decimal
from unittest.mock import Mock

import pytest

from dbcompare.dialect import DatabaseType
from dbcompare.emitter import DiffEmitter
from dbcompare.engine import TableComparer
from dbcompare.errors import DiffWriteError, TableComparisonError
from dbcompare.model import ColumnMapping, TablePairing
from fakes import FakeDialect, OperationalError, make_table


def make_pairing(source_table, target_table):
    return TablePairing(
        source=source_table,
        target=target_table,
        mapping=ColumnMapping.by_name(source_table, target_table),
    )


def statements(sink: io.BytesIO) -> list[str]:
    text = sink.getvalue().decode("utf-8")
    return [line for line in text.split("\r\n") if line]


@pytest.fixture
def comparer(source_dialect, target_dialect, diff_sink):
    return TableComparer(
        source_dialect,
        target_dialect,
        emitter=DiffEmitter(target_dialect, diff_sink),
        progress=None,
    )


class TestMergeJoin:
    """Test row classification"""

    def test_mixed_outcomes(self, comparer, source_dialect, target_dialect, diff_sink, table_t):
        source_dialect.add_table(table_t, [(1, "a"), (2, "b"), (3, "c")])
        target_dialect.add_table(table_t, [(1, "a"), (2, "x"), (4, "d")])

        report = comparer.compare_table(make_pairing(table_t, table_t))

        assert (report.matched, report.changed, report.missing, report.extra) == (1, 1, 1, 1)
        assert statements(diff_sink) == [
            "UPDATE \"T\" SET \"col\" = 'b' WHERE \"id\" = 2;",
            "INSERT INTO \"T\" (\"id\", \"col\") VALUES (3, 'c');",
            "DELETE FROM \"T\" WHERE \"id\" = 4;",
        ]

    def test_empty_source(self, comparer, source_dialect, target_dialect, diff_sink, table_t):
        source_dialect.add_table(table_t, [])
        target_dialect.add_table(table_t, [(3, "c"), (1, "a"), (2, "b")])

        report = comparer.compare_table(make_pairing(table_t, table_t))

        assert (report.matched, report.changed, report.missing, report.extra) == (0, 0, 0, 3)
        assert statements(diff_sink) == [
            "DELETE FROM \"T\" WHERE \"id\" = 1;",
            "DELETE FROM \"T\" WHERE \"id\" = 2;",
            "DELETE FROM \"T\" WHERE \"id\" = 3;",
        ]

    def test_empty_target(self, comparer, source_dialect, target_dialect, diff_sink, table_t):
        source_dialect.add_table(table_t, [(1, "a"), (2, "b")])
        target_dialect.add_table(table_t, [])

        report = comparer.compare_table(make_pairing(table_t, table_t))

        assert report.missing == 2
        assert len(statements(diff_sink)) == 2
        assert all(s.startswith("INSERT INTO") for s in statements(diff_sink))

    def test_both_empty(self, comparer, source_dialect, target_dialect, diff_sink, table_t):
        source_dialect.add_table(table_t, [])
        target_dialect.add_table(table_t, [])

        report = comparer.compare_table(make_pairing(table_t, table_t))

        assert report.is_in_sync
        assert report.source_rows == report.target_rows == 0
        assert diff_sink.getvalue() == b""

    def test_numeric_scale_is_equivalent(self, comparer, source_dialect, target_dialect, diff_sink):
        table = make_table("prices", {"id": "numeric", "amount": "numeric"})
        source_dialect.add_table(table, [(1, Decimal("10.00"))])
        target_dialect.add_table(table, [(1, 10)])

        report = comparer.compare_table(make_pairing(table, table))

        assert report.matched == 1
        assert report.changed == 0
        assert diff_sink.getvalue() == b""

    def test_temporal_precision_between_engines(self, comparer, source_dialect, target_dialect):
        table = make_table("events", {"id": "numeric", "at": "temporal"})
        source_dialect.add_table(table, [(1, datetime(2024, 1, 1, 10, 0, 0, 123456))])
        target_dialect.add_table(table, [(1, datetime(2024, 1, 1, 10, 0, 0, 123000))])

        report = comparer.compare_table(make_pairing(table, table))

        assert report.matched == 1

    def test_text_trailing_spaces(self, comparer, source_dialect, target_dialect, table_t):
        source_dialect.add_table(table_t, [(1, "abc")])
        target_dialect.add_table(table_t, [(1, "abc   ")])

        report = comparer.compare_table(make_pairing(table_t, table_t))

        assert report.matched == 1

    def test_composite_primary_key(self, comparer, source_dialect, target_dialect):
        table = make_table(
            "lines", {"order_id": "numeric", "line": "numeric", "qty": "numeric"},
            primary_key=("order_id", "line"),
        )
        source_dialect.add_table(table, [(1, 1, 5), (1, 2, 6), (2, 1, 7)])
        target_dialect.add_table(table, [(1, 2, 6), (2, 1, 8), (2, 2, 1)])

        report = comparer.compare_table(make_pairing(table, table))

        assert (report.matched, report.changed, report.missing, report.extra) == (1, 1, 1, 1)

    def test_identical_composite_key_tables_in_sync(self, comparer, source_dialect, target_dialect, diff_sink):
        columns = {"a": "numeric", "b": "numeric", "v": "text"}
        table = make_table("T", columns, primary_key=("a", "b"))
        source_dialect.add_table(table, [(1, 2, "x"), (2, 1, "y")])
        target_dialect.add_table(table, [(1, 2, "x"), (2, 1, "y")])

        report = comparer.compare_table(make_pairing(table, table))

        assert (report.matched, report.missing, report.extra) == (2, 0, 0)
        assert diff_sink.getvalue() == b""

    def test_target_is_not_modified(self, comparer, source_dialect, target_dialect, table_t):
        source_dialect.add_table(table_t, [(1, "a")])
        target_dialect.add_table(table_t, [(2, "b")])

        comparer.compare_table(make_pairing(table_t, table_t))

        assert all(sql.startswith("SELECT") for sql in target_dialect.executed_sql)

    def test_row_counts(self, comparer, source_dialect, target_dialect, table_t):
        source_dialect.add_table(table_t, [(i, "v") for i in range(1, 6)])
        target_dialect.add_table(table_t, [(i, "v") for i in range(3, 10)])

        report = comparer.compare_table(make_pairing(table_t, table_t))

        assert report.source_rows == 5
        assert report.target_rows == 7
        assert report.matched + report.changed + report.missing == report.source_rows
        assert report.matched + report.changed + report.extra == report.target_rows

    def test_idempotent(self, comparer, source_dialect, target_dialect, diff_sink, table_t):
        source_dialect.add_table(table_t, [(1, "a"), (2, "b"), (3, "c")])
        target_dialect.add_table(table_t, [(1, "a"), (2, "x"), (4, "d")])
        pairing = make_pairing(table_t, table_t)

        first = comparer.compare_table(pairing)
        first_output = diff_sink.getvalue()
        diff_sink.seek(0)
        diff_sink.truncate()
        second = comparer.compare_table(pairing)

        assert first.to_dict() | {"duration_seconds": 0} == second.to_dict() | {"duration_seconds": 0}
        assert diff_sink.getvalue() == first_output


class TestColumnMapping:
    """Test statements against differently named target columns"""

    def test_insert_and_update_use_target_names(self, source_dialect, target_dialect, diff_sink):
        source = make_table("customer", {"id": "numeric", "fname": "text", "unmapped": "text"})
        target = make_table(
            "client", {"client_id": "numeric", "first_name": "text"}, primary_key=("client_id",)
        )
        source_dialect.add_table(source, [(1, "Ann", "x"), (2, "Bob", "y")])
        target_dialect.add_table(target, [(1, "Anne")])
        pairing = TablePairing(
            source=source,
            target=target,
            mapping=ColumnMapping.by_name(
                source, target, {"id": "client_id", "fname": "first_name"}
            ),
        )
        comparer = TableComparer(
            source_dialect, target_dialect,
            emitter=DiffEmitter(target_dialect, diff_sink), progress=None,
        )

        report = comparer.compare_table(pairing)

        assert (report.changed, report.missing) == (1, 1)
        assert statements(diff_sink) == [
            "UPDATE \"client\" SET \"first_name\" = 'Ann' WHERE \"client_id\" = 1;",
            "INSERT INTO \"client\" (\"client_id\", \"first_name\") VALUES (2, 'Bob');",
        ]

    def test_unmapped_target_columns_ignored(self, source_dialect, target_dialect):
        source = make_table("t", {"id": "numeric", "a": "text"})
        target = make_table("t", {"id": "numeric", "a": "text", "audit": "text"})
        source_dialect.add_table(source, [(1, "x")])
        target_dialect.add_table(target, [(1, "x", "changed by trigger")])
        comparer = TableComparer(source_dialect, target_dialect, progress=None)

        report = comparer.compare_table(make_pairing(source, target))

        assert report.matched == 1


class TestDelta:
    """Test TableComparer.delta"""

    def test_delta_holds_changed_target_columns(self, source_dialect, target_dialect):
        source = make_table("t", {"id": "numeric", "a": "text", "b": "numeric"})
        target = make_table("t", {"id": "numeric", "a": "text", "b": "numeric"})
        pairing = make_pairing(source, target)
        comparer = TableComparer(source_dialect, target_dialect)

        delta = comparer.delta(
            pairing, {"id": 1, "a": "x", "b": 2}, {"id": 1, "a": "x", "b": 3}
        )

        assert {column.name: value for column, value in delta.items()} == {"b": 2}
        assert all(column in target.columns for column in delta)

    def test_null_against_value_is_a_change(self, source_dialect, target_dialect):
        table = make_table("t", {"id": "numeric", "a": "text"})
        comparer = TableComparer(source_dialect, target_dialect)

        delta = comparer.delta(make_pairing(table, table), {"id": 1, "a": None}, {"id": 1, "a": ""})

        assert list(delta.values()) == [None]


class TestFailures:
    """Test failure handling and resource release"""

    def test_open_failure_wrapped(self, comparer, source_dialect, target_dialect, table_t):
        source_dialect.add_table(table_t, [(1, "a")])
        target_dialect.add_table(table_t, [(1, "a")])
        target_dialect.fail_on_open.add("T")

        with pytest.raises(TableComparisonError) as exc_info:
            comparer.compare_table(make_pairing(table_t, table_t))

        assert exc_info.value.table == "T"
        assert isinstance(exc_info.value.__cause__, OperationalError)
        assert source_dialect.all_closed

    def test_mismatched_key_order_refused(self, comparer, source_dialect, target_dialect, diff_sink):
        columns = {"a": "numeric", "b": "numeric", "v": "text"}
        source = make_table("T", columns, primary_key=("a", "b"))
        target = make_table("T", columns, primary_key=("b", "a"))
        source_dialect.add_table(source, [(1, 2, "x"), (2, 1, "y")])
        target_dialect.add_table(target, [(1, 2, "x"), (2, 1, "y")])

        with pytest.raises(TableComparisonError, match="primary key"):
            comparer.compare_table(make_pairing(source, target))

        assert source_dialect.executed_sql == []
        assert target_dialect.executed_sql == []
        assert diff_sink.getvalue() == b""

    def test_read_failure_closes_both_cursors(self, comparer, source_dialect, target_dialect, table_t):
        source_dialect.add_table(table_t, [(i, "a") for i in range(1, 10)])
        target_dialect.add_table(table_t, [(i, "a") for i in range(1, 10)])
        source_dialect.fail_after["T"] = 4

        with pytest.raises(TableComparisonError, match="server closed the connection"):
            comparer.compare_table(make_pairing(table_t, table_t))

        assert source_dialect.all_closed
        assert target_dialect.all_closed

    def test_cursors_closed_after_success(self, comparer, source_dialect, target_dialect, table_t):
        source_dialect.add_table(table_t, [(1, "a")])
        target_dialect.add_table(table_t, [(2, "b")])

        comparer.compare_table(make_pairing(table_t, table_t))

        assert source_dialect.all_closed
        assert target_dialect.all_closed
        assert len(source_dialect.connections) == len(target_dialect.connections) == 1

    def test_diff_write_error_propagates(self, source_dialect, target_dialect, table_t):
        source_dialect.add_table(table_t, [(1, "a")])
        target_dialect.add_table(table_t, [])
        sink = Mock()
        sink.write.side_effect = OSError("disk full")
        comparer = TableComparer(
            source_dialect, target_dialect,
            emitter=DiffEmitter(target_dialect, sink), progress=None,
        )

        with pytest.raises(DiffWriteError, match="disk full"):
            comparer.compare_table(make_pairing(table_t, table_t))

        assert source_dialect.all_closed


class TestProgress:
    """Test progress reporting"""

    def test_progress_reported_for_source_side(self, source_dialect, target_dialect, table_t):
        source_dialect.add_table(table_t, [(i, "a") for i in range(1, 8)])
        target_dialect.add_table(table_t, [(i, "a") for i in range(1, 8)])
        progress = Mock()
        comparer = TableComparer(
            source_dialect, target_dialect, progress=progress, progress_interval=3
        )

        comparer.compare_table(make_pairing(table_t, table_t))

        assert [c.args[1] for c in progress.call_args_list] == [3, 6]
        assert all(c.args[0] == "T" for c in progress.call_args_list)


def test_default_comparator_uses_dialect_types():
    comparer = TableComparer(
        FakeDialect(DatabaseType.DB2), FakeDialect(DatabaseType.SQLSERVER)
    )

    assert comparer.comparator.timestamp_precision == 3
    assert not comparer.emitter.enabled
