"""
Database query tracing utilities.

Provides a context manager for tracing queries issued against a data
source with the OpenTelemetry database semantic attributes.
"""

from typing import Any

from opentelemetry import trace

from .context import trace_operation


def trace_database_query(
    query_type: str,
    table: str,
    database: str = "unknown"
) -> Any:
    """
    Context manager for tracing database queries.

    Args:
        query_type: Type of query (SELECT, METADATA, ...)
        table: Table name
        database: Database system name (postgresql, sqlserver, db2)

    Example:
        >>> with trace_database_query("SELECT", "customers", "postgresql"):
        ...     cursor.execute(ordered_select)
    """
    return trace_operation(
        f"db.{query_type.lower()}",
        kind=trace.SpanKind.CLIENT,
        **{
            "db.operation": query_type,
            "db.table": table,
            "db.system": database,
            "component": "database",
        }
    )
