"""SQL Server dialect (pyodbc)."""

from datetime import datetime
from typing import Any

from dbcompare.model import TypeCategory

from .base import Dialect
from .types import DatabaseType

DEFAULT_DRIVER = "ODBC Driver 18 for SQL Server"


class SqlServerDialect(Dialect):
    """SQL Server dialect: bracket quoting, 0x binary literals, N'' unicode strings."""

    database_type = DatabaseType.SQLSERVER
    default_schema = "dbo"

    @classmethod
    def from_params(
        cls,
        server: str,
        database: str,
        user: str,
        password: str,
        driver: str = DEFAULT_DRIVER,
        trust_server_certificate: bool = True,
        **kwargs: Any,
    ) -> "SqlServerDialect":
        """Build a dialect whose connections are opened with pyodbc.connect."""
        connection_string = (
            f"DRIVER={{{driver}}};"
            f"SERVER={server};"
            f"DATABASE={database};"
            f"UID={user};"
            f"PWD={password};"
        )
        if trust_server_certificate:
            connection_string += "TrustServerCertificate=yes;"

        def connect() -> Any:
            # Imported lazily: pyodbc needs the unixODBC runtime at import time
            import pyodbc

            return pyodbc.connect(connection_string)

        return cls(connect, **kwargs)

    def quote_identifier(self, name: str) -> str:
        return f"[{name.replace(']', ']]')}]"

    def category_for(self, type_name: str | None) -> TypeCategory:
        # TIMESTAMP is a synonym for ROWVERSION here, not a temporal type
        if type_name and type_name.lower() in ("timestamp", "rowversion"):
            return TypeCategory.BINARY
        return super().category_for(type_name)

    def format_binary(self, hex_digits: str) -> str:
        return f"0x{hex_digits}"

    def format_string(self, value: str) -> str:
        literal = super().format_string(value)
        return f"N{literal}" if not value.isascii() else literal

    def format_timestamp(self, value: datetime) -> str:
        # DATETIME rejects literals with more than three fractional digits
        return self.format_string(value.isoformat(sep=" ", timespec="milliseconds"))
