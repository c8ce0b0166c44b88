"""
Shared infrastructure for dbcompare

Provides:
- logging: console/JSON log configuration
- tracing: OpenTelemetry spans
- metrics: Prometheus metric helpers and HTTP publisher
- retry: exponential backoff for transient database failures
"""

__all__ = ["logging", "tracing", "metrics", "retry"]
