"""
dbcompare - row-level comparison of tables across database engines.

Streams a table from a source and a target data source in primary-key
order, classifies every row as matched, changed, missing or extra, and
optionally writes the SQL that brings the target in line with the source.

Usage:
    from dbcompare import DbCompare
    from dbcompare.config import DatabaseConfig, create_dialect
    from utils.logging import setup_logging
    from utils.metrics import initialize_metrics
    from utils.tracing import initialize_tracing

    setup_logging(level="INFO")
    initialize_tracing(service_name="dbcompare")
    initialize_metrics(version="0.1.0")

    source = create_dialect(DatabaseConfig.from_env("SOURCE"))
    target = create_dialect(DatabaseConfig.from_env("TARGET"))

    with open("reconcile.sql", "wb") as diff:
        report = DbCompare(source, target, include=["customers"], diff_sink=diff).compare()
"""

from .comparator import ValueComparator
from .cursor import OrderedRowCursor
from .emitter import DiffEmitter
from .engine import TableComparer
from .errors import (
    ConfigurationError,
    DbCompareError,
    DiffWriteError,
    MetadataError,
    TableComparisonError,
)
from .model import Classification, Column, ColumnMapping, Table, TablePairing, TypeCategory
from .report import RunReport, TableReport
from .resolver import TableMappingResolver, TableTransform, filter_tables
from .runner import DbCompare

__version__ = "0.1.0"

__all__ = [
    "Classification",
    "Column",
    "ColumnMapping",
    "ConfigurationError",
    "DbCompare",
    "DbCompareError",
    "DiffEmitter",
    "DiffWriteError",
    "MetadataError",
    "OrderedRowCursor",
    "RunReport",
    "Table",
    "TableComparer",
    "TableComparisonError",
    "TableMappingResolver",
    "TablePairing",
    "TableReport",
    "TableTransform",
    "TypeCategory",
    "ValueComparator",
    "filter_tables",
]
