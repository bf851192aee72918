"""Shared backend fault reporting for the store adapters."""

from __future__ import annotations

from sandbox_api.app.errors import StoreError
from sandbox_api.observability.logging import get_logger
from sandbox_api.observability.metrics import STORE_ERRORS_TOTAL

logger = get_logger(__name__)


def store_fault(backend: str, operation: str, exc: BaseException) -> StoreError:
    """Log and count a backend failure, and wrap it as ``StoreError``.

    The returned error is meant to be raised ``from exc`` by the caller.
    """
    detail = str(exc) or type(exc).__name__
    STORE_ERRORS_TOTAL.labels(backend=backend, operation=operation).inc()
    logger.error(
        "store_operation_failed",
        backend=backend,
        operation=operation,
        error_type=type(exc).__name__,
        error=detail,
    )
    return StoreError(backend, operation, detail)
