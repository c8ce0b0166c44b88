"""
Dialect capability interface.

A Dialect knows how to read table metadata from one data source, how to
quote identifiers, and how to render SELECT/INSERT/UPDATE/DELETE text for
its engine. Comparison code depends only on this interface; one subclass
exists per supported engine.
"""

import logging
from abc import ABC, abstractmethod
from collections.abc import Callable, Iterable, Iterator, Mapping, Sequence
from contextlib import contextmanager
from datetime import date, datetime, time
from decimal import Decimal, InvalidOperation
from typing import Any

from dbcompare.errors import MetadataError
from dbcompare.model import Column, Row, Table, TypeCategory
from utils.tracing import trace_database_query

from .types import DatabaseType

logger = logging.getLogger(__name__)

# Zero-argument callable returning a new DB-API 2.0 connection
ConnectionFactory = Callable[[], Any]


class ResultCursor:
    """
    Forward-only cursor over the result of one query.

    Owns the DB-API cursor and the connection it was opened on; both are
    released by close(), which is safe to call more than once.
    """

    def __init__(self, connection: Any, db_cursor: Any, fetch_size: int = 1000):
        self._connection = connection
        self._db_cursor = db_cursor
        self.fetch_size = fetch_size
        self._columns: list[str] | None = None
        self._buffer: list[Sequence[Any]] = []
        self._position = 0
        self._exhausted = False
        self._closed = False

    def fetch(self) -> Row | None:
        """Return the next row, or None once the result is exhausted."""
        if self._exhausted or self._closed:
            return None

        if self._position >= len(self._buffer):
            self._buffer = self._db_cursor.fetchmany(self.fetch_size)
            self._position = 0
            if not self._buffer:
                self._exhausted = True
                return None

        if self._columns is None:
            # Server-side cursors only describe themselves after the first fetch
            self._columns = [desc[0] for desc in self._db_cursor.description]

        values = self._buffer[self._position]
        self._position += 1
        return dict(zip(self._columns, values))

    def __iter__(self) -> Iterator[Row]:
        while (row := self.fetch()) is not None:
            yield row

    def close(self) -> None:
        if self._closed:
            return
        self._closed = True
        try:
            self._db_cursor.close()
        except Exception as e:
            logger.warning(f"Error closing result cursor: {e}")
        finally:
            self._connection.close()

    def __enter__(self) -> "ResultCursor":
        return self

    def __exit__(self, exc_type, exc, tb) -> None:
        self.close()


class Dialect(ABC):
    """
    Base class for engine dialects.

    Subclasses set ``database_type``, ``param_marker`` and
    ``default_schema``, and override the literal/quoting hooks where the
    engine deviates from ANSI SQL.
    """

    database_type: DatabaseType = DatabaseType.UNKNOWN
    identifier_quote: str = '"'
    param_marker: str = "?"
    default_schema: str | None = None

    COLUMNS_QUERY = (
        "SELECT c.table_catalog, c.table_schema, c.table_name, c.column_name, "
        "c.data_type, c.is_nullable "
        "FROM information_schema.columns c "
        "WHERE UPPER(c.table_name) = UPPER({p}) AND UPPER(c.table_schema) = UPPER({p}) "
        "ORDER BY c.ordinal_position"
    )

    PRIMARY_KEY_QUERY = (
        "SELECT kcu.column_name "
        "FROM information_schema.table_constraints tc "
        "JOIN information_schema.key_column_usage kcu "
        "ON tc.constraint_name = kcu.constraint_name "
        "AND tc.table_schema = kcu.table_schema "
        "AND tc.table_name = kcu.table_name "
        "WHERE tc.constraint_type = 'PRIMARY KEY' "
        "AND tc.table_schema = {p} AND tc.table_name = {p} "
        "ORDER BY kcu.ordinal_position"
    )

    def __init__(
        self,
        connect: ConnectionFactory,
        fetch_size: int = 1000,
        default_schema: str | None = None,
    ):
        """
        Args:
            connect: Factory returning a new DB-API connection. Every result
                cursor gets its own connection, so one dialect can serve
                several worker threads.
            fetch_size: Rows fetched per round trip when streaming results
            default_schema: Schema used for unqualified table names
        """
        self.connect = connect
        self.fetch_size = fetch_size
        if default_schema is not None:
            self.default_schema = default_schema

    @property
    def timestamp_precision(self) -> int:
        return self.database_type.timestamp_precision

    @contextmanager
    def connection(self) -> Iterator[Any]:
        """Open a short-lived connection, closed on exit."""
        conn = self.connect()
        try:
            yield conn
        finally:
            conn.close()

    # ------------------------------------------------------------------
    # Metadata
    # ------------------------------------------------------------------

    def table_metadata(
        self,
        catalog: str | None,
        schema: str | None,
        name: str,
    ) -> Table | None:
        """
        Look up a table by (case-insensitive) name.

        Returns:
            Table descriptor, or None when the table does not exist

        Raises:
            MetadataError: if the catalog query itself fails
        """
        schema = schema or self.default_schema
        with trace_database_query("METADATA", name, self.database_type.value):
            try:
                with self.connection() as conn:
                    db_cursor = conn.cursor()
                    try:
                        return self._read_table(db_cursor, catalog, schema, name)
                    finally:
                        db_cursor.close()
            except MetadataError:
                raise
            except Exception as e:
                raise MetadataError(
                    f"Failed to read metadata for {name} from "
                    f"{self.database_type.value}: {e}"
                ) from e

    def _read_table(
        self,
        db_cursor: Any,
        catalog: str | None,
        schema: str | None,
        name: str,
    ) -> Table | None:
        db_cursor.execute(self.COLUMNS_QUERY.format(p=self.param_marker), (name, schema))
        column_rows = db_cursor.fetchall()
        if not column_rows:
            return None

        actual_catalog, actual_schema, actual_name = column_rows[0][:3]
        if catalog and str(actual_catalog).lower() != catalog.lower():
            return None

        db_cursor.execute(
            self.PRIMARY_KEY_QUERY.format(p=self.param_marker),
            (actual_schema, actual_name),
        )
        pk_names = [row[0] for row in db_cursor.fetchall()]

        columns = [
            Column(
                name=column_name,
                category=self.category_for(type_name),
                nullable=str(is_nullable).upper() in ("YES", "Y"),
                type_name=type_name,
            )
            for _, _, _, column_name, type_name, is_nullable in column_rows
        ]
        return Table.build(
            actual_name,
            columns,
            primary_key=pk_names,
            catalog=actual_catalog if catalog else None,
            schema=actual_schema,
        )

    def category_for(self, type_name: str | None) -> TypeCategory:
        """Map a catalog type name to a comparison category."""
        return TypeCategory.from_type_name(type_name)

    # ------------------------------------------------------------------
    # Identifiers and SELECT
    # ------------------------------------------------------------------

    def quote_identifier(self, name: str) -> str:
        q = self.identifier_quote
        return f"{q}{name.replace(q, q + q)}{q}"

    def qualified_name(self, table: Table) -> str:
        parts = (table.catalog, table.schema, table.name)
        return ".".join(self.quote_identifier(p) for p in parts if p)

    def order_by_expression(self, column: Column) -> str:
        """ORDER BY term for one primary-key column."""
        return self.quote_identifier(column.name)

    def build_ordered_select(self, table: Table) -> str:
        """
        SELECT every column ordered by the primary key, ascending.

        Raises:
            ValueError: if the table has no primary key
        """
        if not table.has_primary_key:
            raise ValueError(f"Table {table} has no primary key to order by")

        columns = ", ".join(self.quote_identifier(c.name) for c in table.columns)
        order_by = ", ".join(
            self.order_by_expression(c) for c in table.primary_key_columns
        )
        return (
            f"SELECT {columns} FROM {self.qualified_name(table)} "
            f"WHERE 1=1 ORDER BY {order_by}"
        )

    def execute_query(self, sql: str) -> ResultCursor:
        """
        Execute a query on a dedicated connection and return a forward cursor.

        The connection is closed when the returned cursor is closed, or
        immediately if execution fails.
        """
        conn = self.connect()
        try:
            db_cursor = self._open_cursor(conn)
            db_cursor.execute(sql)
        except Exception:
            conn.close()
            raise
        return ResultCursor(conn, db_cursor, fetch_size=self.fetch_size)

    def _open_cursor(self, conn: Any) -> Any:
        return conn.cursor()

    # ------------------------------------------------------------------
    # DML
    # ------------------------------------------------------------------

    def build_insert(self, table: Table, row: Mapping[str, Any]) -> str:
        """INSERT of the table's columns present in ``row``, in table order."""
        columns = [c for c in table.columns if c.name in row]
        if not columns:
            raise ValueError(f"No values to insert into {table}")

        names = ", ".join(self.quote_identifier(c.name) for c in columns)
        values = ", ".join(self.format_value(c, row[c.name]) for c in columns)
        return f"INSERT INTO {self.qualified_name(table)} ({names}) VALUES ({values});"

    def build_update(
        self,
        table: Table,
        pk_columns: Sequence[Column],
        changed_columns: Sequence[Column],
        row: Mapping[str, Any],
    ) -> str:
        """UPDATE setting ``changed_columns`` for the row identified by ``pk_columns``."""
        if not changed_columns:
            raise ValueError(f"No changed columns to update in {table}")

        assignments = ", ".join(
            f"{self.quote_identifier(c.name)} = {self.format_value(c, row.get(c.name))}"
            for c in changed_columns
        )
        return (
            f"UPDATE {self.qualified_name(table)} SET {assignments} "
            f"WHERE {self._key_predicate(pk_columns, row)};"
        )

    def build_delete(
        self,
        table: Table,
        pk_columns: Sequence[Column],
        row: Mapping[str, Any],
    ) -> str:
        """DELETE of the row identified by ``pk_columns``."""
        return (
            f"DELETE FROM {self.qualified_name(table)} "
            f"WHERE {self._key_predicate(pk_columns, row)};"
        )

    def _key_predicate(self, pk_columns: Iterable[Column], row: Mapping[str, Any]) -> str:
        terms = []
        for column in pk_columns:
            value = row.get(column.name)
            if value is None:
                terms.append(f"{self.quote_identifier(column.name)} IS NULL")
            else:
                terms.append(
                    f"{self.quote_identifier(column.name)} = {self.format_value(column, value)}"
                )
        if not terms:
            raise ValueError("A key predicate needs at least one primary key column")
        return " AND ".join(terms)

    # ------------------------------------------------------------------
    # Literals
    # ------------------------------------------------------------------

    def format_value(self, column: Column, value: Any) -> str:
        """Render ``value`` as a SQL literal for ``column``; binary payloads as hex."""
        if value is None:
            return "NULL"

        if column.is_binary or isinstance(value, (bytes, bytearray, memoryview)):
            return self.format_binary(to_hex(value))

        if isinstance(value, bool):
            return self.format_boolean(value)

        if isinstance(value, (int, Decimal)):
            return str(value)

        if isinstance(value, float):
            return repr(value)

        if isinstance(value, datetime):
            return self.format_timestamp(value)

        if isinstance(value, (date, time)):
            return self.format_string(value.isoformat())

        if column.category is TypeCategory.NUMERIC and isinstance(value, str):
            try:
                return str(Decimal(value.strip()))
            except InvalidOperation:
                pass

        return self.format_string(str(value))

    def format_string(self, value: str) -> str:
        escaped = value.replace("'", "''")
        return f"'{escaped}'"

    @abstractmethod
    def format_binary(self, hex_digits: str) -> str:
        """Literal for a binary payload given as upper-case hex digits."""

    def format_boolean(self, value: bool) -> str:
        return "1" if value else "0"

    def format_timestamp(self, value: datetime) -> str:
        return self.format_string(value.isoformat(sep=" "))

    def __repr__(self) -> str:
        return f"{self.__class__.__name__}({self.database_type.value})"


def to_hex(value: Any) -> str:
    """Upper-case hex digits for a binary value; text is assumed to be hex already."""
    if isinstance(value, (bytes, bytearray, memoryview)):
        return bytes(value).hex().upper()
    text = str(value).strip()
    if text[:2].lower() == "0x":
        text = text[2:]
    return text.upper()
