"""
Comparison reports and their formatting.
"""

from .formatters import (
    calculate_severity,
    export_report_csv,
    export_report_json,
    format_report_console,
)
from .model import RunReport, TableFailure, TableReport

__all__ = [
    'RunReport',
    'TableFailure',
    'TableReport',
    'calculate_severity',
    'export_report_csv',
    'export_report_json',
    'format_report_console',
]
