"""
Metrics publisher for the Prometheus HTTP endpoint.

Long comparison runs can be scraped while they progress; the publisher
starts the /metrics server and the application info gauge.
"""

import logging
import time

from prometheus_client import (
    REGISTRY,
    CollectorRegistry,
    Gauge,
    Info,
    start_http_server,
)

logger = logging.getLogger(__name__)


class MetricsPublisher:
    """Starts an HTTP server that exposes metrics on /metrics."""

    def __init__(
        self,
        port: int = 9091,
        registry: CollectorRegistry | None = None,
    ):
        self.port = port
        self.registry = registry or REGISTRY
        self._server_started = False

    def start(self) -> None:
        """Start the metrics HTTP server"""
        if self._server_started:
            logger.warning(f"Metrics server already running on port {self.port}")
            return

        try:
            start_http_server(self.port, registry=self.registry)
        except OSError as e:
            raise RuntimeError(
                f"Metrics server could not bind port {self.port}: {e}"
            ) from e

        self._server_started = True
        logger.info(f"Metrics server started on port {self.port}")

    def is_started(self) -> bool:
        """Check if metrics server is running"""
        return self._server_started


class ApplicationInfo:
    """
    Application metadata and uptime.

    Exposes ``dbcompare_info`` and ``dbcompare_uptime_seconds``.
    """

    def __init__(
        self,
        app_name: str = "dbcompare",
        version: str = "0.1.0",
        registry: CollectorRegistry | None = None,
    ):
        self.registry = registry or REGISTRY

        self.info = Info(
            "dbcompare",
            "Application metadata",
            registry=self.registry,
        )
        self.info.info({
            "name": app_name,
            "version": version,
        })

        self._start_time = time.time()

        self.uptime_seconds = Gauge(
            "dbcompare_uptime_seconds",
            "Application uptime in seconds",
            registry=self.registry,
        )

    def update_uptime(self) -> None:
        """Update the uptime metric"""
        self.uptime_seconds.set(self.get_uptime())

    def get_uptime(self) -> float:
        """Get current uptime in seconds"""
        return time.time() - self._start_time
