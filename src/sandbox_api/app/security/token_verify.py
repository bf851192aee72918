"""Bearer JWT verification for the sandbox API.

Validates HS256 tokens signed with ``JWT_AUTH_SECRET`` and extracts the
caller identity.

Claims:
  - ``sub``: required, the caller name.
  - ``exp``: required.
  - ``kind``: ``access`` (default) or ``login``. Login tokens only serve
    to obtain access tokens and are refused on API routes.
  - ``role``: ``admin`` grants the admin-only routes; ``admin: true`` is
    accepted as well.
"""

from __future__ import annotations

from dataclasses import dataclass, field
from typing import Any

import jwt
from starlette.requests import Request

# ── Constants ─────────────────────────────────────────────────────────

DEFAULT_ALGORITHMS = ['HS256']
BEARER_PREFIX = 'Bearer '
ACCESS_TOKEN_KIND = 'access'
LOGIN_TOKEN_KIND = 'login'
ADMIN_ROLE = 'admin'

# ── Types ─────────────────────────────────────────────────────────────


@dataclass(frozen=True, slots=True)
class AuthIdentity:
    """Verified identity extracted from a valid JWT.

    Attributes:
        subject: The ``sub`` claim.
        role: ``admin`` or ``user``.
        kind: Token kind (``access`` or ``login``).
        raw_claims: Full decoded JWT payload for downstream use.
    """

    subject: str
    role: str = 'user'
    kind: str = ACCESS_TOKEN_KIND
    raw_claims: dict[str, Any] = field(default_factory=dict)

    @property
    def is_admin(self) -> bool:
        return self.role == ADMIN_ROLE


class TokenVerificationError(Exception):
    """Raised when token verification fails."""

    def __init__(self, code: str, detail: str = '') -> None:
        self.code = code
        self.detail = detail
        super().__init__(f'{code}: {detail}' if detail else code)


# ── Token Verifier ───────────────────────────────────────────────────


class TokenVerifier:
    """Verifies shared-secret JWTs and extracts identity claims.

    Args:
        secret: The HMAC secret.
        algorithms: Accepted JWT algorithms.
    """

    def __init__(
        self,
        secret: str,
        algorithms: list[str] | None = None,
    ) -> None:
        if not secret:
            raise ValueError('secret is required')
        self._secret = secret
        self._algorithms = algorithms or DEFAULT_ALGORITHMS

    def verify(self, token: str) -> AuthIdentity:
        """Verify a JWT and return the authenticated identity.

        Args:
            token: The raw JWT string (without ``Bearer `` prefix).

        Raises:
            TokenVerificationError: On any verification failure.
        """
        if not token or not token.strip():
            raise TokenVerificationError('empty_token')

        try:
            claims = jwt.decode(
                token,
                self._secret,
                algorithms=self._algorithms,
                options={
                    'require': ['sub', 'exp'],
                    'verify_exp': True,
                },
            )
        except jwt.ExpiredSignatureError:
            raise TokenVerificationError('token_expired')
        except jwt.DecodeError as exc:
            raise TokenVerificationError(
                'decode_error',
                str(exc),
            )
        except jwt.InvalidTokenError as exc:
            raise TokenVerificationError(
                'invalid_token',
                str(exc),
            )

        subject = claims.get('sub')
        if not subject:
            raise TokenVerificationError('missing_sub_claim')

        kind = claims.get('kind', ACCESS_TOKEN_KIND)
        if kind != ACCESS_TOKEN_KIND:
            raise TokenVerificationError(
                'wrong_token_kind',
                f'{kind} tokens cannot be used on API routes',
            )

        if claims.get('role') == ADMIN_ROLE or claims.get('admin') is True:
            role = ADMIN_ROLE
        else:
            role = 'user'

        return AuthIdentity(
            subject=str(subject),
            role=role,
            kind=kind,
            raw_claims=claims,
        )


# ── Request helpers ──────────────────────────────────────────────────


def extract_bearer_token(request: Request) -> str | None:
    """Extract a Bearer token from the Authorization header.

    Returns None if no Authorization header or non-Bearer scheme.
    """
    auth_header = request.headers.get('authorization', '')
    if auth_header.startswith(BEARER_PREFIX):
        return auth_header[len(BEARER_PREFIX):].strip()
    return None
