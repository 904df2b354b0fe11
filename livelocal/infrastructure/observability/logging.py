"""
Structured logging setup for the Live Local sync layer.
Provides JSON-formatted logs with consistent fields for remote calls and store events.
"""

import logging
import sys
from typing import Any

import structlog
from structlog.stdlib import LoggerFactory


def setup_logging(log_level: str = "INFO") -> None:
    """
    Configure structured logging with JSON output.

    Args:
        log_level: Logging level (DEBUG, INFO, WARNING, ERROR, CRITICAL)
    """

    structlog.configure(
        processors=[
            # Pulls in user_id bound by the auth session
            structlog.contextvars.merge_contextvars,
            structlog.stdlib.add_log_level,
            structlog.stdlib.add_logger_name,
            structlog.processors.TimeStamper(fmt="iso"),
            _drop_empty_context,
            structlog.processors.JSONRenderer(),
        ],
        wrapper_class=structlog.stdlib.BoundLogger,
        logger_factory=LoggerFactory(),
        context_class=dict,
        cache_logger_on_first_use=True,
    )

    logging.basicConfig(
        format="%(message)s",
        stream=sys.stdout,
        level=getattr(logging, log_level.upper()),
    )

    # Suppress noisy third-party loggers
    logging.getLogger("httpx").setLevel(logging.WARNING)
    logging.getLogger("httpcore").setLevel(logging.WARNING)
    logging.getLogger("psycopg").setLevel(logging.WARNING)


def _drop_empty_context(logger, method_name: str, event_dict: dict[str, Any]) -> dict[str, Any]:
    """Remove context keys that were bound as None (e.g. after sign-out)."""
    return {key: value for key, value in event_dict.items() if value is not None}


def get_logger(name: str = None) -> structlog.stdlib.BoundLogger:
    """
    Get a structured logger instance.

    Args:
        name: Logger name (usually __name__)

    Returns:
        Configured structlog logger
    """
    return structlog.get_logger(name)


def bind_user_context(user_id: str | None) -> None:
    """Attach (or clear) the authenticated user id on every subsequent log line."""
    if user_id:
        structlog.contextvars.bind_contextvars(user_id=user_id)
    else:
        structlog.contextvars.unbind_contextvars("user_id")


def log_remote_call(
    operation: str,
    target: str,
    ok: bool,
    duration_ms: float,
    error: str = None,
    rows: int = None,
):
    """Log remote data service calls with consistent fields."""
    logger = get_logger("remote")

    log_data = {
        "operation": operation,
        "target": target,
        "ok": ok,
        "duration_ms": round(duration_ms, 2),
        "kind": "remote_call",
    }

    if rows is not None:
        log_data["rows"] = rows
    if error:
        log_data["error"] = error

    if ok:
        logger.debug("Remote call completed", **log_data)
    else:
        logger.warning("Remote call failed", **log_data)
