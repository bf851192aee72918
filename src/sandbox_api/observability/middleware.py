"""Request correlation and telemetry middleware for the sandbox API.

- ``RequestIdMiddleware`` accepts a well-formed ``X-Request-ID`` or mints
  one, binds it to ``request_id_ctx`` for the duration of the request and
  echoes it on the response. Lifecycle jobs created during the request
  record the same ID, which is what callers compare when polling status.
- ``RequestTelemetryMiddleware`` records the Prometheus HTTP metrics and
  writes one access log line per request, tagged with the account kind and
  name or the job id when the path carries them. Paths outside the known
  routes share the ``unmatched`` metric label.

Add ``RequestIdMiddleware`` last so it wraps everything else.
"""

from __future__ import annotations

import re
import time
import uuid
from typing import Iterable

from starlette.middleware.base import BaseHTTPMiddleware, RequestResponseEndpoint
from starlette.requests import Request
from starlette.responses import Response

from .logging import get_logger, request_id_ctx
from .metrics import (
    HTTP_REQUEST_DURATION_SECONDS,
    HTTP_REQUESTS_IN_FLIGHT,
    HTTP_REQUESTS_TOTAL,
)

logger = get_logger(__name__)

_VALID_REQUEST_ID = re.compile(r"^[a-zA-Z0-9\-]{8,128}$")

UNMATCHED_PATH = "unmatched"

_STATIC_PATHS = frozenset({
    "/health",
    "/ping",
    "/metrics",
    "/docs",
    "/openapi.json",
    "/api/v1/health",
    "/api/v1/jobs",
})
_ACCOUNT_PATH = re.compile(
    r"^/api/v1/accounts/(?P<kind>[^/]+)(?:/(?P<name>[^/]+)(?:/(?P<suffix>[^/]+))?)?$"
)
_JOB_PATH = re.compile(r"^/api/v1/jobs/(?P<job_id>[^/]+)$")


def current_request_id() -> str:
    """The request ID of the current request, or a fresh UUID outside one."""
    return request_id_ctx.get() or str(uuid.uuid4())


def _route_context(
    path: str,
    account_kinds: frozenset[str] = frozenset(),
    account_suffixes: frozenset[str] = frozenset(),
) -> tuple[str, dict[str, str]]:
    """Metric label for ``path`` plus the identifiers it carries.

    Account names and job ids are replaced in the label and go to the log
    line instead. Only known kinds and suffixes reach the label; any other
    path is labelled ``UNMATCHED_PATH``, authenticated or not.
    """
    if path in _STATIC_PATHS:
        return path, {}
    match = _ACCOUNT_PATH.match(path)
    if match and match["kind"] in account_kinds:
        kind, name, suffix = match["kind"], match["name"], match["suffix"]
        if name is None:
            return f"/api/v1/accounts/{kind}", {"account_kind": kind}
        context = {"account_kind": kind, "account_name": name}
        if suffix is None:
            return f"/api/v1/accounts/{kind}/{{name}}", context
        if suffix in account_suffixes:
            return f"/api/v1/accounts/{kind}/{{name}}/{suffix}", context
        return UNMATCHED_PATH, {}
    match = _JOB_PATH.match(path)
    if match:
        return "/api/v1/jobs/{id}", {"job_id": match["job_id"]}
    return UNMATCHED_PATH, {}


class RequestIdMiddleware(BaseHTTPMiddleware):
    async def dispatch(
        self, request: Request, call_next: RequestResponseEndpoint,
    ) -> Response:
        incoming = request.headers.get("x-request-id", "")
        rid = incoming if _VALID_REQUEST_ID.match(incoming) else str(uuid.uuid4())

        request.state.request_id = rid
        token = request_id_ctx.set(rid)
        try:
            response = await call_next(request)
        finally:
            request_id_ctx.reset(token)

        response.headers["X-Request-ID"] = rid
        return response


class RequestTelemetryMiddleware(BaseHTTPMiddleware):
    """HTTP metrics and one access log line per request.

    ``account_kinds`` and ``account_suffixes`` list the path segments that
    may appear in the ``path`` label.
    """

    def __init__(
        self,
        app,
        account_kinds: Iterable[str] = (),
        account_suffixes: Iterable[str] = (),
    ) -> None:
        super().__init__(app)
        self._kinds = frozenset(account_kinds)
        self._suffixes = frozenset(account_suffixes)

    async def dispatch(
        self, request: Request, call_next: RequestResponseEndpoint,
    ) -> Response:
        label, context = _route_context(request.url.path, self._kinds, self._suffixes)
        method = request.method

        HTTP_REQUESTS_IN_FLIGHT.inc()
        start = time.perf_counter()
        status = 500
        try:
            response = await call_next(request)
            status = response.status_code
        finally:
            elapsed = time.perf_counter() - start
            HTTP_REQUESTS_IN_FLIGHT.dec()
            HTTP_REQUEST_DURATION_SECONDS.labels(method=method, path=label).observe(elapsed)
            HTTP_REQUESTS_TOTAL.labels(method=method, path=label, status=str(status)).inc()

        log = logger.warning if status >= 500 else logger.info
        log(
            "request_completed",
            method=method,
            path=request.url.path,
            status=status,
            duration_ms=round(elapsed * 1000, 2),
            **context,
        )
        return response
