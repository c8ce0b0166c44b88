"""DB2 dialect (pyodbc over the IBM DB2 ODBC driver)."""

from typing import Any

from dbcompare.model import Column, Table, TypeCategory

from .base import Dialect
from .types import DatabaseType

DEFAULT_DRIVER = "IBM DB2 ODBC DRIVER"

# DB2 collates lower case before upper case before digits. Mapping each
# character onto the alphabet position of its code-point rank makes the
# database order text keys the way every other engine (and Python) does.
CODE_POINT_ORDER = "0123456789ABCDEFGHIJKLMNOPQRSTUVWXYZabcdefghijklmnopqrstuvwxyz"
DB2_COLLATION_ORDER = "abcdefghijklmnopqrstuvwxyzABCDEFGHIJKLMNOPQRSTUVWXYZ0123456789"


class Db2Dialect(Dialect):
    """DB2 LUW dialect; metadata comes from SYSCAT instead of INFORMATION_SCHEMA."""

    database_type = DatabaseType.DB2

    COLUMNS_QUERY = (
        "SELECT c.TABSCHEMA, c.TABNAME, c.COLNAME, c.TYPENAME, c.NULLS, "
        "c.KEYSEQ, c.CODEPAGE "
        "FROM SYSCAT.COLUMNS c "
        "WHERE UPPER(c.TABNAME) = UPPER(?) AND {schema_filter} "
        "ORDER BY c.COLNO"
    )

    @classmethod
    def from_params(
        cls,
        host: str,
        port: int,
        database: str,
        user: str,
        password: str,
        driver: str = DEFAULT_DRIVER,
        **kwargs: Any,
    ) -> "Db2Dialect":
        """Build a dialect whose connections are opened with pyodbc.connect."""
        connection_string = (
            f"DRIVER={{{driver}}};"
            f"DATABASE={database};"
            f"HOSTNAME={host};"
            f"PORT={port};"
            f"PROTOCOL=TCPIP;"
            f"UID={user};"
            f"PWD={password};"
        )

        def connect() -> Any:
            # Imported lazily: pyodbc needs the unixODBC runtime at import time
            import pyodbc

            return pyodbc.connect(connection_string)

        return cls(connect, **kwargs)

    def _read_table(
        self,
        db_cursor: Any,
        catalog: str | None,
        schema: str | None,
        name: str,
    ) -> Table | None:
        if schema:
            sql = self.COLUMNS_QUERY.format(schema_filter="UPPER(c.TABSCHEMA) = UPPER(?)")
            db_cursor.execute(sql, (name, schema))
        else:
            sql = self.COLUMNS_QUERY.format(schema_filter="c.TABSCHEMA = CURRENT SCHEMA")
            db_cursor.execute(sql, (name,))
        rows = db_cursor.fetchall()
        if not rows:
            return None

        actual_schema = rows[0][0].rstrip()
        actual_name = rows[0][1]
        columns = []
        keyed = []
        for _, _, column_name, type_name, nulls, key_seq, code_page in rows:
            category = self.category_for(type_name)
            # Character data stored FOR BIT DATA has code page 0
            if category is TypeCategory.TEXT and code_page == 0:
                category = TypeCategory.BINARY
            columns.append(
                Column(
                    name=column_name,
                    category=category,
                    nullable=str(nulls).upper() == "Y",
                    type_name=type_name,
                )
            )
            if key_seq:
                keyed.append((key_seq, column_name))

        return Table.build(
            actual_name,
            columns,
            primary_key=[column_name for _, column_name in sorted(keyed)],
            schema=actual_schema,
        )

    def order_by_expression(self, column: Column) -> str:
        quoted = self.quote_identifier(column.name)
        if column.is_text:
            return (
                f"TRANSLATE({quoted}, '{DB2_COLLATION_ORDER}', '{CODE_POINT_ORDER}')"
            )
        return quoted

    def format_binary(self, hex_digits: str) -> str:
        return f"X'{hex_digits}'"
