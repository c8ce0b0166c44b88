"""
Database type enumeration for type-safe engine identification.

Engine-level properties that the value comparator needs (fractional-second
precision of the default timestamp type) live here so that tolerance rules
can be derived from the (source, target) pair alone.
"""

from enum import Enum


class DatabaseType(str, Enum):
    """
    Enumeration of supported database engines.

    Inherits from str for JSON serialization compatibility and
    easy comparison with string values.
    """

    POSTGRESQL = "postgresql"
    SQLSERVER = "sqlserver"
    DB2 = "db2"
    UNKNOWN = "unknown"

    @classmethod
    def from_name(cls, name: str) -> "DatabaseType":
        """
        Resolve an engine name or common alias.

        >>> DatabaseType.from_name("mssql")
        <DatabaseType.SQLSERVER: 'sqlserver'>
        """
        normalized = name.strip().lower()
        for member in cls:
            if normalized == member.value:
                return member
        return _ALIASES.get(normalized, cls.UNKNOWN)

    @property
    def timestamp_precision(self) -> int:
        """Fractional-second digits kept by the engine's default timestamp type."""
        return _TIMESTAMP_PRECISION[self]

    @property
    def timestamp_ticks_per_second(self) -> int | None:
        """
        Fixed sub-second grid the engine rounds timestamps onto, if any.

        SQL Server DATETIME stores 1/300 s ticks, so milliseconds come back
        as .000, .003 or .007.
        """
        return _TIMESTAMP_TICKS.get(self)


_ALIASES = {
    "postgres": DatabaseType.POSTGRESQL,
    "pg": DatabaseType.POSTGRESQL,
    "psql": DatabaseType.POSTGRESQL,
    "mssql": DatabaseType.SQLSERVER,
    "sql_server": DatabaseType.SQLSERVER,
    "tsql": DatabaseType.SQLSERVER,
    "ibm_db2": DatabaseType.DB2,
    "db2luw": DatabaseType.DB2,
}

# DATETIME2 is rarely the replication target, so SQL Server tolerance
# follows DATETIME.
_TIMESTAMP_PRECISION = {
    DatabaseType.POSTGRESQL: 6,
    DatabaseType.SQLSERVER: 3,
    DatabaseType.DB2: 6,
    DatabaseType.UNKNOWN: 6,
}

_TIMESTAMP_TICKS = {
    DatabaseType.SQLSERVER: 300,
}
