"""
Exception hierarchy for table comparison.

ConfigurationError and DiffWriteError abort a whole run;
TableComparisonError aborts a single table.
"""


class DbCompareError(Exception):
    """Base class for all comparison errors."""


class ConfigurationError(DbCompareError):
    """Raised for settings that make the run impossible (fatal for the run)."""


class MetadataError(DbCompareError):
    """Raised when table metadata cannot be read from a data source."""


class TableComparisonError(DbCompareError):
    """Raised when the comparison of one table fails after it started."""

    def __init__(self, table: str, message: str):
        super().__init__(f"Comparison of {table} failed: {message}")
        self.table = table


class DiffWriteError(DbCompareError):
    """Raised when a reconciliation statement cannot be written to the sink."""
