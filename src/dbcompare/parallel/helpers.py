"""
Helper functions for parallel comparison.

This module provides worker estimation and statistics gathering for
parallel comparison runs.
"""

import logging
from typing import Any

from prometheus_client import REGISTRY

logger = logging.getLogger(__name__)


def estimate_optimal_workers(
    table_count: int,
    avg_table_time_seconds: float = 60.0,
    total_time_budget_seconds: float = 300.0,
    max_workers: int = 10,
) -> int:
    """
    Estimate optimal number of workers based on workload.

    Args:
        table_count: Number of tables to compare
        avg_table_time_seconds: Average time per table
        total_time_budget_seconds: Desired total completion time
        max_workers: Maximum workers allowed

    Returns:
        Recommended worker count

    Example:
        >>> # 20 tables, 60s each, want done in 5 minutes
        >>> estimate_optimal_workers(20, 60, 300, 10)
        5
    """
    if table_count == 0:
        return 1

    total_work_seconds = table_count * avg_table_time_seconds
    workers_needed = int(total_work_seconds / total_time_budget_seconds) + 1

    workers = min(workers_needed, max_workers, table_count)
    workers = max(workers, 1)

    logger.info(
        f"Estimated optimal workers: {workers} "
        f"(tables={table_count}, avg_time={avg_table_time_seconds}s, "
        f"budget={total_time_budget_seconds}s)"
    )

    return workers


def get_parallel_comparison_stats() -> dict[str, Any]:
    """
    Get current parallel comparison statistics.

    Returns:
        Dictionary with current metrics
    """
    return {
        "active_workers": REGISTRY.get_sample_value("dbcompare_active_workers") or 0,
        "queue_size": REGISTRY.get_sample_value("dbcompare_queue_size") or 0,
        "total_processed": {
            status: REGISTRY.get_sample_value(
                "dbcompare_tables_processed_total", {"status": status}
            )
            or 0
            for status in ("success", "failed", "cancelled")
        },
    }
