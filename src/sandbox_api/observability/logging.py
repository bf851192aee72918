"""Structured logging configuration for the sandbox API.

structlog renders every entry (its own and those of stdlib loggers such as
uvicorn, botocore and httpx) through one ``ProcessorFormatter``, so each
line has the same shape and carries the current request ID.

Account records hold cloud credentials and the stores are reached with a
service key, so a redaction processor masks known secret fields before
anything is rendered.

Usage::

    from sandbox_api.observability.logging import configure_logging, get_logger

    configure_logging()  # once, at startup
    logger = get_logger(__name__)
    logger.info("account_marked_for_cleanup", name="acct-042", kind="aws")
"""

from __future__ import annotations

import logging
import os
import sys
from contextvars import ContextVar
from typing import Any

import structlog

SERVICE_NAME = "sandbox-api"
REDACTED = "[REDACTED]"

SECRET_FIELDS: frozenset[str] = frozenset({
    "aws_secret_access_key",
    "aws_access_key_id",
    "credentials",
    "service_role_key",
    "supabase_service_role_key",
    "jwt_auth_secret",
    "authorization",
    "token",
})

# Request-scoped correlation ID, set by RequestIdMiddleware.
request_id_ctx: ContextVar[str | None] = ContextVar("request_id", default=None)

_configured = False


def _add_service_context(
    logger: logging.Logger,
    method_name: str,
    event_dict: dict[str, Any],
) -> dict[str, Any]:
    event_dict.setdefault("service", SERVICE_NAME)
    rid = request_id_ctx.get()
    if rid is not None:
        event_dict.setdefault("request_id", rid)
    return event_dict


def redact_secrets(
    logger: logging.Logger,
    method_name: str,
    event_dict: dict[str, Any],
) -> dict[str, Any]:
    """Mask secret fields, including one level down in dict values."""
    for key, value in event_dict.items():
        if key.lower() in SECRET_FIELDS:
            event_dict[key] = REDACTED
        elif isinstance(value, dict):
            event_dict[key] = {
                k: REDACTED if str(k).lower() in SECRET_FIELDS else v
                for k, v in value.items()
            }
    return event_dict


def configure_logging(
    *,
    level: str | None = None,
    json_output: bool | None = None,
) -> None:
    """Configure structlog and route stdlib logging through it.

    Args:
        level: Log level name. Defaults to ``LOG_LEVEL`` or INFO.
        json_output: JSON lines when True, console rendering when False.
            Defaults to ``LOG_FORMAT`` (``json`` unless set otherwise).
    """
    global _configured
    if _configured:
        return
    _configured = True

    level = level or os.environ.get("LOG_LEVEL", "INFO")
    if json_output is None:
        json_output = os.environ.get("LOG_FORMAT", "json") == "json"

    shared_processors: list = [
        structlog.contextvars.merge_contextvars,
        _add_service_context,
        structlog.stdlib.add_log_level,
        structlog.stdlib.add_logger_name,
        structlog.processors.TimeStamper(fmt="iso"),
        structlog.processors.format_exc_info,
        redact_secrets,
    ]

    structlog.configure(
        processors=[
            *shared_processors,
            structlog.stdlib.ProcessorFormatter.wrap_for_formatter,
        ],
        logger_factory=structlog.stdlib.LoggerFactory(),
        wrapper_class=structlog.stdlib.BoundLogger,
        cache_logger_on_first_use=True,
    )

    renderer = (
        structlog.processors.JSONRenderer()
        if json_output
        else structlog.dev.ConsoleRenderer()
    )
    formatter = structlog.stdlib.ProcessorFormatter(
        foreign_pre_chain=shared_processors,
        processors=[
            structlog.stdlib.ProcessorFormatter.remove_processors_meta,
            renderer,
        ],
    )

    handler = logging.StreamHandler(sys.stdout)
    handler.setFormatter(formatter)

    root = logging.getLogger()
    root.handlers.clear()
    root.addHandler(handler)
    root.setLevel(getattr(logging, level.upper(), logging.INFO))

    # Request lines come from RequestTelemetryMiddleware; boto and httpx are chatty.
    for noisy in ("uvicorn.access", "botocore", "boto3", "urllib3", "httpx"):
        logging.getLogger(noisy).setLevel(logging.WARNING)


def get_logger(name: str | None = None) -> structlog.stdlib.BoundLogger:
    return structlog.get_logger(name)
