"""PostgreSQL dialect (psycopg2)."""

import uuid
from typing import Any

import psycopg2

from .base import Dialect
from .types import DatabaseType


class PostgresDialect(Dialect):
    """
    PostgreSQL dialect.

    Result sets are streamed through named (server-side) cursors so a
    comparison never materializes a whole table on the client.
    """

    database_type = DatabaseType.POSTGRESQL
    param_marker = "%s"
    default_schema = "public"

    @classmethod
    def from_params(
        cls,
        host: str,
        port: int,
        database: str,
        user: str,
        password: str,
        connect_timeout: int = 10,
        **kwargs: Any,
    ) -> "PostgresDialect":
        """Build a dialect whose connections are opened with psycopg2.connect."""

        def connect() -> Any:
            return psycopg2.connect(
                host=host,
                port=port,
                database=database,
                user=user,
                password=password,
                connect_timeout=connect_timeout,
            )

        return cls(connect, **kwargs)

    def _open_cursor(self, conn: Any) -> Any:
        db_cursor = conn.cursor(name=f"dbcompare_{uuid.uuid4().hex}")
        db_cursor.itersize = self.fetch_size
        return db_cursor

    def format_binary(self, hex_digits: str) -> str:
        return f"decode('{hex_digits}', 'hex')"

    def format_boolean(self, value: bool) -> str:
        return "TRUE" if value else "FALSE"
