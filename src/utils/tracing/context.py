"""
Context managers and utilities for span management.

Provides a context manager for creating spans and helpers for adding
attributes/events to the current span without explicit span references.
"""

from contextlib import contextmanager
from typing import Any

from opentelemetry import trace

from .tracer import get_tracer


def _attribute_value(value: Any) -> Any:
    # OTel accepts str/bool/int/float natively; everything else is stringified.
    if isinstance(value, (str, bool, int, float)):
        return value
    return str(value)


@contextmanager
def trace_operation(
    operation_name: str,
    kind: trace.SpanKind = trace.SpanKind.INTERNAL,
    **attributes
):
    """
    Context manager for tracing operations.

    Creates a span, adds attributes, records any exception raised inside
    the block and re-raises it.

    Args:
        operation_name: Name of the operation being traced
        kind: Span kind (INTERNAL, CLIENT, SERVER, etc.)
        **attributes: Custom attributes to add to the span

    Yields:
        Span instance for adding custom events/attributes

    Example:
        >>> with trace_operation("compare_table", table="customers") as span:
        ...     report = comparer.compare_table(pairing)
        ...     span.set_attribute("rows_matched", report.matched)
    """
    tracer = get_tracer()

    with tracer.start_as_current_span(
        operation_name,
        kind=kind,
        record_exception=False,
    ) as span:
        for key, value in attributes.items():
            span.set_attribute(key, _attribute_value(value))

        try:
            yield span
        except Exception as e:
            span.set_attribute("error", True)
            span.set_attribute("error.type", type(e).__name__)
            span.set_attribute("error.message", str(e))
            span.record_exception(e)
            raise


def add_span_attributes(**attributes) -> None:
    """
    Add attributes to the current span.

    Example:
        >>> with trace_operation("resolve_pairings"):
        ...     pairings = resolver.resolve_pairings(names)
        ...     add_span_attributes(pairing_count=len(pairings))
    """
    current_span = trace.get_current_span()
    if current_span.is_recording():
        for key, value in attributes.items():
            current_span.set_attribute(key, _attribute_value(value))


def add_span_event(name: str, **attributes) -> None:
    """
    Add an event to the current span.

    Example:
        >>> with trace_operation("compare_table"):
        ...     add_span_event("merge_started")
        ...     report = comparer.compare_table(pairing)
        ...     add_span_event("merge_completed", matched=report.matched)
    """
    current_span = trace.get_current_span()
    if current_span.is_recording():
        attrs = {k: _attribute_value(v) for k, v in attributes.items()}
        current_span.add_event(name, attributes=attrs)
