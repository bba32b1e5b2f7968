"""
Structured logging configuration using structlog.
"""
import logging
import structlog
from pythonjsonlogger.json import JsonFormatter
from typing import Any
import sys

# Event keys whose values must never reach the log output in full
SECRET_KEYS = ("token", "access_token", "refresh_token", "session_token", "encryption_key")


def mask_secret(value: Any) -> str:
    """Reduce a secret to a short preview such as 'abcd...wxyz'."""
    text = str(value)
    if len(text) <= 12:
        return "***"
    return f"{text[:4]}...{text[-4:]}"


def redact_secrets(logger: Any, method_name: str, event_dict: dict) -> dict:
    """structlog processor that masks token values in the event dict."""
    for key in SECRET_KEYS:
        if event_dict.get(key) is not None:
            event_dict[key] = mask_secret(event_dict[key])
    return event_dict


def _json_handler(stream=None) -> logging.Handler:
    """Stdout handler writing one JSON object per record."""
    handler = logging.StreamHandler(stream or sys.stdout)
    handler.setFormatter(JsonFormatter(
        "%(asctime)s %(name)s %(levelname)s %(message)s",
        rename_fields={"asctime": "timestamp", "levelname": "level", "name": "logger", "message": "event"},
    ))
    return handler


def setup_logging(debug: bool = False, stream=None) -> None:
    """
    Route structlog events through stdlib logging as flat JSON records.

    Event keyword arguments become top-level JSON fields; token values are
    masked before they reach the handler.

    Args:
        debug: Enable debug level logging and SQL statement logging
        stream: Output stream (default stdout)
    """
    root_logger = logging.getLogger()
    root_logger.handlers = [_json_handler(stream)]
    root_logger.setLevel(logging.DEBUG if debug else logging.INFO)
    logging.getLogger("sqlalchemy.engine").setLevel(logging.INFO if debug else logging.WARNING)

    structlog.configure(
        processors=[
            structlog.contextvars.merge_contextvars,
            structlog.stdlib.filter_by_level,
            structlog.stdlib.PositionalArgumentsFormatter(),
            redact_secrets,
            structlog.processors.StackInfoRenderer(),
            structlog.processors.format_exc_info,
            structlog.stdlib.render_to_log_kwargs,
        ],
        wrapper_class=structlog.stdlib.BoundLogger,
        context_class=dict,
        logger_factory=structlog.stdlib.LoggerFactory(),
        cache_logger_on_first_use=False,
    )


def get_logger(name: str) -> Any:
    """
    Get a structured logger instance.

    Args:
        name: Logger name (typically __name__)

    Returns:
        Structured logger instance
    """
    return structlog.get_logger(name)


class LogContext:
    """Context manager for adding structured context to logs."""

    def __init__(self, **kwargs):
        self.context = kwargs

    def __enter__(self):
        structlog.contextvars.bind_contextvars(**self.context)
        return self

    def __exit__(self, exc_type, exc_val, exc_tb):
        structlog.contextvars.unbind_contextvars(*self.context.keys())
