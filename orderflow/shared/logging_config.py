# orderflow/shared/logging_config.py
import logging
import sys

import structlog
from opentelemetry import trace

from orderflow.shared.config import settings

# Chatty third-party loggers, capped regardless of LOG_LEVEL.
_NOISY_LOGGERS = {
    "botocore": logging.WARNING,
    "boto3": logging.WARNING,
    "urllib3": logging.WARNING,
    "uvicorn.access": logging.WARNING,
}


def inject_trace_context(_, __, event_dict):
    """
    Stamps each entry with the active trace/span ids so a log line can be
    matched to the request or sweep tick that produced it.
    """
    ctx = trace.get_current_span().get_span_context()
    if ctx.is_valid:
        event_dict["trace_id"] = format(ctx.trace_id, "032x")
        event_dict["span_id"] = format(ctx.span_id, "016x")
    return event_dict


def configure_logging():
    """
    Sets up structlog for the API and the worker.

    LOG_FORMAT=json emits one JSON object per line (production);
    LOG_FORMAT=console renders colored key/value output for development.
    """
    level = logging.getLevelName(settings.LOG_LEVEL.upper())
    if not isinstance(level, int):
        level = logging.INFO

    shared = [
        structlog.contextvars.merge_contextvars,
        inject_trace_context,
        structlog.processors.add_log_level,
        structlog.processors.TimeStamper(fmt="iso", utc=True),
        structlog.processors.StackInfoRenderer(),
        structlog.processors.format_exc_info,
    ]
    renderer = (
        structlog.processors.JSONRenderer()
        if settings.LOG_FORMAT.lower() == "json"
        else structlog.dev.ConsoleRenderer()
    )

    structlog.configure(
        processors=[*shared, renderer],
        wrapper_class=structlog.make_filtering_bound_logger(level),
        logger_factory=structlog.PrintLoggerFactory(),
        cache_logger_on_first_use=True,
    )

    # Uvicorn, SQLAlchemy and botocore log through the stdlib
    logging.basicConfig(format="%(message)s", stream=sys.stdout, level=level)
    for name, floor in _NOISY_LOGGERS.items():
        logging.getLogger(name).setLevel(max(level, floor))
    if not settings.DATABASE_ECHO:
        logging.getLogger("sqlalchemy.engine").setLevel(logging.WARNING)
