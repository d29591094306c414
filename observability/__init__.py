"""Observability for the Dailies pipeline.

Logging (observability.logging):
    Console + rotating file handlers, text or JSON, with run_id and item_id
    context on every record.

Tracing (observability.tracing):
    Optional Logfire spans with PydanticAI instrumentation.

Enable tracing via configuration:
    ENABLE_LOGFIRE=true
    LOGFIRE_TOKEN=your-token  # Optional

Example:
    >>> from observability import setup_tracing, trace_operation
    >>> setup_tracing(enabled=True, service_name="dailies")
    >>> with trace_operation("generate_digest", {"date": "2024-05-01"}):
    ...     pass
"""

from observability.tracing import setup_tracing, trace_operation, TracingContext

__all__ = [
    "setup_tracing",
    "trace_operation",
    "TracingContext",
]
