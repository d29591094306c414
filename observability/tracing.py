"""Optional tracing with Logfire/OpenTelemetry.

When enabled, Logfire instruments every PydanticAI agent call, and
`trace_operation` opens spans around pipeline stages (item processing,
digest generation). When disabled, `trace_operation` only times the block.

Requirements:
    pip install logfire

Enable via configuration:
    ENABLE_LOGFIRE=true
    LOGFIRE_TOKEN=your-token  # Optional for cloud dashboard
"""

import logging
import time
from contextlib import contextmanager
from dataclasses import dataclass, field
from typing import Any, Iterator

logger = logging.getLogger(__name__)


@dataclass
class TracingContext:
    """Tracing state for the process."""

    enabled: bool = False
    service_name: str = "dailies"
    token: str = ""
    _logfire_configured: bool = field(default=False, init=False)


_context = TracingContext()


def setup_tracing(enabled: bool = False, service_name: str = "dailies", token: str = "") -> TracingContext:
    """Configure Logfire and instrument PydanticAI.

    Failures are logged and leave tracing disabled; the pipeline runs the
    same either way.
    """
    _context.enabled = enabled
    _context.service_name = service_name
    _context.token = token

    if not enabled:
        logger.debug("Tracing disabled")
        return _context

    try:
        import logfire

        logfire.configure(service_name=service_name, token=token or None)
        logfire.instrument_pydantic_ai()
        _context._logfire_configured = True
        logger.info("Logfire tracing enabled | service=%s", service_name)
    except ImportError:
        logger.warning("Logfire not installed. Tracing disabled.")
        _context.enabled = False
    except Exception as e:
        logger.error("Failed to configure Logfire: %s", e)
        _context.enabled = False

    return _context


@contextmanager
def trace_operation(name: str, attributes: dict[str, Any] | None = None) -> Iterator[dict[str, Any]]:
    """Span around an operation.

    Yields a dict; keys added to it during the block become span attributes.
    """
    start = time.monotonic()
    result_attrs: dict[str, Any] = {}
    try:
        if _context.enabled and _context._logfire_configured:
            import logfire

            with logfire.span(name, **(attributes or {})) as span:
                yield result_attrs
                for key, value in result_attrs.items():
                    span.set_attribute(key, value)
        else:
            yield result_attrs
    finally:
        logger.debug("Operation finished | name=%s duration=%.2fs", name, time.monotonic() - start)
