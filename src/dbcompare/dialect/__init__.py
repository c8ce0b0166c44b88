"""
Engine dialects.

Each dialect reads table metadata and renders SQL for one engine:
- PostgresDialect (psycopg2, server-side cursors)
- SqlServerDialect (pyodbc)
- Db2Dialect (pyodbc; primary-key collation normalized in ORDER BY)
"""

from .base import ConnectionFactory, Dialect, ResultCursor, to_hex
from .db2 import Db2Dialect
from .postgres import PostgresDialect
from .sqlserver import SqlServerDialect
from .types import DatabaseType

DIALECTS: dict[DatabaseType, type[Dialect]] = {
    DatabaseType.POSTGRESQL: PostgresDialect,
    DatabaseType.SQLSERVER: SqlServerDialect,
    DatabaseType.DB2: Db2Dialect,
}

__all__ = [
    "ConnectionFactory",
    "DIALECTS",
    "DatabaseType",
    "Db2Dialect",
    "Dialect",
    "PostgresDialect",
    "ResultCursor",
    "SqlServerDialect",
    "to_hex",
]
