"""
Report formatting and export utilities.

This module renders a RunReport for the terminal and exports it as JSON or
CSV.
"""

import csv
import json

from .model import RunReport, TableReport


def calculate_severity(report: TableReport) -> str:
    """
    Severity of a table's differences relative to its source size.

    Returns:
        Severity level: NONE, LOW, MEDIUM, HIGH, or CRITICAL
    """
    differences = report.differences
    if differences == 0:
        return "NONE"
    if report.source_rows == 0:
        return "CRITICAL"

    percentage_diff = (differences / report.source_rows) * 100

    if percentage_diff < 0.1:  # Less than 0.1%
        return "LOW"
    elif percentage_diff < 1.0:  # Less than 1%
        return "MEDIUM"
    elif percentage_diff < 10.0:  # Less than 10%
        return "HIGH"
    else:
        return "CRITICAL"


def export_report_json(report: RunReport, output_path: str) -> None:
    """
    Export report to JSON file

    Args:
        report: Finished run report
        output_path: Path to output file
    """
    payload = report.to_dict()
    for entry, table in zip(payload["tables"], report.tables):
        entry["severity"] = calculate_severity(table)
    with open(output_path, 'w') as f:
        json.dump(payload, f, indent=2)


def export_report_csv(report: RunReport, output_path: str) -> None:
    """
    Export report to CSV file, one row per compared table

    Args:
        report: Finished run report
        output_path: Path to output file
    """
    with open(output_path, 'w', newline='') as f:
        writer = csv.writer(f)

        writer.writerow([
            "Source Table",
            "Target Table",
            "Status",
            "Source Rows",
            "Target Rows",
            "Matched",
            "Changed",
            "Missing",
            "Extra",
            "Severity",
        ])

        for table in report:
            writer.writerow([
                table.source_table,
                table.target_table,
                "PASS" if table.is_in_sync else "FAIL",
                table.source_rows,
                table.target_rows,
                table.matched,
                table.changed,
                table.missing,
                table.extra,
                calculate_severity(table),
            ])


def format_report_console(report: RunReport) -> str:
    """
    Format report for console output

    Args:
        report: Run report

    Returns:
        Formatted string for console display
    """
    summary = report.to_dict()
    totals = summary["totals"]
    lines = []

    lines.append("=" * 80)
    lines.append("TABLE COMPARISON REPORT")
    lines.append("=" * 80)
    lines.append(f"Status: {summary['status']}")
    lines.append(f"Started: {summary['started_at']}")
    lines.append(f"Duration: {summary['duration_seconds']:.2f}s")
    lines.append(f"Tables Compared: {summary['total_tables']}")
    lines.append(f"Tables In Sync: {summary['tables_in_sync']}")
    lines.append(f"Source Total Rows: {totals['source_rows']:,}")
    lines.append(f"Target Total Rows: {totals['target_rows']:,}")
    if report.cancelled:
        lines.append("Run was cancelled before all tables were compared")
    lines.append("")

    if report.tables:
        lines.append("TABLES")
        lines.append("-" * 80)
        for table in report:
            lines.append(f"Table: {table.source_table} -> {table.target_table}")
            lines.append(
                f"  Matched: {table.matched:,}  Changed: {table.changed:,}  "
                f"Missing: {table.missing:,}  Extra: {table.extra:,}"
            )
            lines.append(
                f"  Rows: {table.source_rows:,} source / {table.target_rows:,} target"
            )
            lines.append(f"  Severity: {calculate_severity(table)}")
            lines.append("")

    if report.failures:
        lines.append("FAILURES")
        lines.append("-" * 80)
        for i, failure in enumerate(report.failures, 1):
            lines.append(f"{i}. {failure.table}: {failure.error_type}: {failure.error}")
        lines.append("")

    lines.append("=" * 80)

    return "\n".join(lines)
