"""Bearer-token gate for the sandbox API.

``AuthGuardMiddleware`` verifies the token once per request and leaves the
resulting ``AuthIdentity`` on ``request.state.auth_identity``. Routes then
declare what they need:

- ``Depends(get_auth_identity)``: any valid access token (401 otherwise)
- ``Depends(require_admin)``: an admin token (403 for other callers)

Probes, the metrics scrape and the OpenAPI pages are exempt, matched on the
exact path.
"""

from __future__ import annotations

from fastapi import Depends, HTTPException
from starlette.middleware.base import BaseHTTPMiddleware, RequestResponseEndpoint
from starlette.requests import Request
from starlette.responses import JSONResponse, Response

from sandbox_api.observability.logging import get_logger

from .token_verify import (
    AuthIdentity,
    TokenVerificationError,
    TokenVerifier,
    extract_bearer_token,
)

logger = get_logger(__name__)

DEFAULT_EXEMPT_PATHS: tuple[str, ...] = (
    '/health',
    '/ping',
    '/metrics',
    '/docs',
    '/openapi.json',
)

_CHALLENGE = {'WWW-Authenticate': 'Bearer'}
_NO_CREDENTIALS = ('no_credentials', 'Authentication required')


def _error_body(error: str, code: str, detail: str) -> dict[str, str]:
    return {'error': error, 'code': code, 'detail': detail}


class AuthGuardMiddleware(BaseHTTPMiddleware):
    def __init__(
        self,
        app,
        token_verifier: TokenVerifier,
        exempt_paths: tuple[str, ...] = DEFAULT_EXEMPT_PATHS,
    ) -> None:
        super().__init__(app)
        self._verifier = token_verifier
        self._exempt_paths = frozenset(exempt_paths)

    def _authenticate(self, request: Request) -> AuthIdentity:
        token = extract_bearer_token(request)
        if not token:
            raise TokenVerificationError(*_NO_CREDENTIALS)
        return self._verifier.verify(token)

    async def dispatch(
        self, request: Request, call_next: RequestResponseEndpoint,
    ) -> Response:
        request.state.auth_identity = None
        if request.url.path in self._exempt_paths:
            return await call_next(request)

        try:
            request.state.auth_identity = self._authenticate(request)
        except TokenVerificationError as exc:
            logger.info('auth_rejected', code=exc.code, path=request.url.path)
            return JSONResponse(
                status_code=401,
                content=_error_body('unauthorized', exc.code, exc.detail),
                headers=_CHALLENGE,
            )
        return await call_next(request)


def get_auth_identity(request: Request) -> AuthIdentity:
    """Identity attached by the guard; 401 on routes reached without one."""
    identity: AuthIdentity | None = getattr(request.state, 'auth_identity', None)
    if identity is None:
        raise HTTPException(
            status_code=401,
            detail=_error_body('unauthorized', *_NO_CREDENTIALS),
            headers=_CHALLENGE,
        )
    return identity


def require_admin(
    identity: AuthIdentity = Depends(get_auth_identity),
) -> AuthIdentity:
    if not identity.is_admin:
        raise HTTPException(
            status_code=403,
            detail=_error_body('forbidden', 'admin_required', 'Admin role required'),
        )
    return identity
