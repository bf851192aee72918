"""Logging, metrics and request correlation for the sandbox API.

Wiring (done by ``create_app``)::

    configure_logging()
    app.add_middleware(RequestTelemetryMiddleware)
    app.add_middleware(RequestIdMiddleware)
"""

from .logging import configure_logging, get_logger, request_id_ctx
from .metrics import metrics_text

__all__ = [
    "configure_logging",
    "get_logger",
    "metrics_text",
    "request_id_ctx",
]
