"""
Prometheus metrics helpers.

Usage:
    from utils.metrics import MetricsPublisher, get_or_create_metric

    ROWS_READ = get_or_create_metric(
        lambda: Counter("dbcompare_rows_read_total", "Rows read", ["table", "side"]),
        "dbcompare_rows_read_total",
    )

    publisher = MetricsPublisher(port=9091)
    publisher.start()
"""

import logging
from typing import Any, Callable, TypeVar

from prometheus_client import REGISTRY, CollectorRegistry

from .publisher import ApplicationInfo, MetricsPublisher

logger = logging.getLogger(__name__)

T = TypeVar("T")


def get_or_create_metric(
    metric_factory: Callable[[], T],
    metric_name: str,
    registry: CollectorRegistry = REGISTRY,
) -> T:
    """
    Create a metric or return the one already registered under that name.

    Module reloads (and test collection) re-execute metric definitions;
    prometheus_client rejects duplicate registration with ValueError.

    Args:
        metric_factory: Callable that creates the metric (e.g., lambda: Counter(...))
        metric_name: Name of the metric for lookup if already registered
        registry: Prometheus registry to use (default: global REGISTRY)

    Returns:
        The metric instance (either newly created or existing)
    """
    try:
        return metric_factory()
    except ValueError:
        existing = registry._names_to_collectors.get(metric_name)
        if existing is not None:
            return existing
        raise


def initialize_metrics(
    port: int = 9091,
    registry: CollectorRegistry | None = None,
    version: str = "0.1.0",
) -> dict[str, Any]:
    """
    Start the metrics HTTP server and publish application info.

    Returns:
        Dictionary with ``publisher`` and ``app_info`` entries
    """
    logger.info(f"Initializing metrics on port {port}")

    publisher = MetricsPublisher(port=port, registry=registry)
    publisher.start()

    return {
        "publisher": publisher,
        "app_info": ApplicationInfo(version=version, registry=registry),
    }


__all__ = [
    "MetricsPublisher",
    "ApplicationInfo",
    "initialize_metrics",
    "get_or_create_metric",
]
