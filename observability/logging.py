"""Logging setup with structured output and context propagation.

Every record carries two context fields:
    - run_id: set once per pipeline run or digest run
    - item_id: set while a single content item is being processed

Both live in context variables, so concurrent item tasks each log their own
item id without passing it around.

Usage:
    >>> from observability.logging import setup_logging, set_run_context, item_context
    >>> setup_logging(config)
    >>> set_run_context(run_id="abc123")
    >>> with item_context(42):
    ...     logger.info("Classified")  # [abc123/42]
"""

import contextvars
import json
import logging
import sys
from contextlib import contextmanager
from datetime import datetime, timezone
from logging.handlers import RotatingFileHandler, TimedRotatingFileHandler
from typing import Any, Iterator

LOG_FILE_NAME = "dailies.log"

run_id_var: contextvars.ContextVar[str] = contextvars.ContextVar("run_id", default="-")
item_id_var: contextvars.ContextVar[str] = contextvars.ContextVar("item_id", default="-")

_STANDARD_ATTRS = frozenset(logging.LogRecord(
    "", logging.INFO, "", 0, "", None, None
).__dict__) | {"message", "asctime", "run_id", "item_id"}


def set_run_context(run_id: str) -> None:
    """Set the current run ID for log context propagation."""
    run_id_var.set(run_id)


def clear_context() -> None:
    """Clear all logging context variables."""
    run_id_var.set("-")
    item_id_var.set("-")


@contextmanager
def item_context(content_id: int | None) -> Iterator[None]:
    """Tag log records with a content item id for the duration of the block."""
    token = item_id_var.set(str(content_id) if content_id is not None else "-")
    try:
        yield
    finally:
        item_id_var.reset(token)


class ContextFilter(logging.Filter):
    """Injects run_id and item_id into every record."""

    def filter(self, record: logging.LogRecord) -> bool:
        record.run_id = run_id_var.get()
        record.item_id = item_id_var.get()
        return True


class JsonFormatter(logging.Formatter):
    """Single-line JSON records for log aggregation.

    Output format:
        {"timestamp": "...", "level": "INFO", "logger": "...", "message": "...", "run_id": "...", ...}
    """

    def format(self, record: logging.LogRecord) -> str:
        log_data: dict[str, Any] = {
            "timestamp": datetime.fromtimestamp(record.created, timezone.utc).isoformat(),
            "level": record.levelname,
            "logger": record.name,
            "message": record.getMessage(),
            "run_id": getattr(record, "run_id", "-"),
        }
        item_id = getattr(record, "item_id", "-")
        if item_id != "-":
            log_data["item_id"] = item_id

        if record.levelno >= logging.WARNING:
            log_data["source"] = {
                "file": record.filename,
                "line": record.lineno,
                "function": record.funcName,
            }
        if record.exc_info:
            log_data["exception"] = self.formatException(record.exc_info)

        # Fields passed through `extra=`
        for key, value in record.__dict__.items():
            if key in _STANDARD_ATTRS:
                continue
            try:
                json.dumps(value)
                log_data[key] = value
            except (TypeError, ValueError):
                log_data[key] = str(value)

        return json.dumps(log_data, ensure_ascii=False)


class TextFormatter(logging.Formatter):
    """Format: TIMESTAMP [LEVEL] [run_id/item_id] logger: message"""

    def __init__(self, include_date: bool = False):
        super().__init__(
            fmt="%(asctime)s [%(levelname)s] [%(run_id)s/%(item_id)s] %(name)s: %(message)s",
            datefmt="%Y-%m-%d %H:%M:%S" if include_date else "%H:%M:%S",
        )


def _file_handler(config: Any) -> logging.Handler:
    log_file = config.log_dir / LOG_FILE_NAME
    if config.log_max_bytes > 0:
        return RotatingFileHandler(
            log_file,
            maxBytes=config.log_max_bytes,
            backupCount=config.log_backup_count,
            encoding="utf-8",
        )
    return TimedRotatingFileHandler(
        log_file,
        when="midnight",
        interval=1,
        backupCount=config.log_backup_count,
        encoding="utf-8",
    )


def setup_logging(config: Any, verbose: bool = False) -> bool:
    """Configure console and rotating file logging.

    Falls back to console-only logging when the log directory is not
    writable.

    Args:
        config: Application configuration with logging settings
        verbose: Use DEBUG on the console regardless of LOG_LEVEL

    Returns:
        True if file logging is enabled, False if console-only (fallback)
    """
    console_level = logging.DEBUG if verbose else getattr(logging, config.log_level, logging.INFO)
    context_filter = ContextFilter()
    json_format = config.log_format == "json"

    console = logging.StreamHandler(sys.stdout)
    console.setLevel(console_level)
    console.setFormatter(JsonFormatter() if json_format else TextFormatter())
    console.addFilter(context_filter)

    root = logging.getLogger()
    root.setLevel(logging.DEBUG)
    for handler in root.handlers[:]:
        root.removeHandler(handler)
    root.addHandler(console)

    file_logging_enabled = False
    try:
        config.log_dir.mkdir(parents=True, exist_ok=True)
        file_handler = _file_handler(config)
        file_handler.setLevel(logging.DEBUG)  # File always captures everything
        file_handler.setFormatter(JsonFormatter() if json_format else TextFormatter(include_date=True))
        file_handler.addFilter(context_filter)
        root.addHandler(file_handler)
        file_logging_enabled = True
    except OSError as e:
        print(
            f"Warning: Cannot write to log directory '{config.log_dir}': {e}. "
            "Falling back to console-only logging.",
            file=sys.stderr,
        )

    # Reduce noise from third-party libraries
    for lib in ("aiohttp", "httpx", "httpcore", "openai", "anthropic", "google_genai", "asyncio", "sentence_transformers"):
        logging.getLogger(lib).setLevel(logging.WARNING)

    return file_logging_enabled
