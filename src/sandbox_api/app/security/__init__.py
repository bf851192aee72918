"""Bearer-token authorization for the sandbox API."""

from .auth_guard import (
    DEFAULT_EXEMPT_PATHS,
    AuthGuardMiddleware,
    get_auth_identity,
    require_admin,
)
from .token_verify import (
    AuthIdentity,
    TokenVerificationError,
    TokenVerifier,
    extract_bearer_token,
)

__all__ = [
    'AuthGuardMiddleware',
    'AuthIdentity',
    'DEFAULT_EXEMPT_PATHS',
    'TokenVerificationError',
    'TokenVerifier',
    'extract_bearer_token',
    'get_auth_identity',
    'require_admin',
]
