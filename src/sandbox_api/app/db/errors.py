"""PostgREST error types raised by ``SupabaseClient``.

The store adapters turn these into ``StoreError`` before anything reaches
the domain layer, so nothing above ``db/`` ever holds an
``httpx.Response`` or the service key.
"""

from __future__ import annotations

from dataclasses import dataclass

import httpx


@dataclass(frozen=True, slots=True)
class SupabaseError(Exception):
    """A non-2xx PostgREST answer, or a body of the wrong shape."""

    status_code: int
    message: str
    code: str | None = None
    details: str | None = None
    hint: str | None = None

    def __str__(self) -> str:
        text = f"PostgREST {self.status_code}: {self.message}"
        if self.code:
            text += f" [{self.code}]"
        if self.hint:
            text += f" (hint: {self.hint})"
        return text


class SupabaseAuthError(SupabaseError):
    """Service key rejected (401/403)."""


class SupabaseNotFoundError(SupabaseError):
    """Table missing or schema not exposed to PostgREST (404)."""


class SupabaseConflictError(SupabaseError):
    """Constraint violation (409), e.g. the job status check."""


_ERRORS_BY_STATUS: dict[int, type[SupabaseError]] = {
    401: SupabaseAuthError,
    403: SupabaseAuthError,
    404: SupabaseNotFoundError,
    409: SupabaseConflictError,
}


def error_from_response(resp: httpx.Response) -> SupabaseError:
    """Build the matching error from a failed PostgREST response.

    Only the body is read; request headers (and the key in them) are not.
    """
    fields: dict[str, str | None] = {"message": resp.text or resp.reason_phrase}
    try:
        body = resp.json()
    except ValueError:
        body = None
    if isinstance(body, dict):
        fields["message"] = body.get("message") or fields["message"]
        for key in ("code", "details", "hint"):
            fields[key] = body.get(key)

    err_cls = _ERRORS_BY_STATUS.get(resp.status_code, SupabaseError)
    return err_cls(status_code=resp.status_code, **fields)
