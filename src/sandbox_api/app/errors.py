"""Domain error taxonomy for the sandbox API.

Every error raised by the account providers, the job ledger and the status
resolver derives from ``SandboxApiError``. Each class carries the error
code and HTTP status that the application exception handler uses, so the
transport layer never has to inspect messages.

  NotFoundError     -> 404
  ConflictError     -> 409
  ValidationFailed  -> 422
  InternalError     -> 500 (generic public message, details only in logs)
"""

from __future__ import annotations


class SandboxApiError(Exception):
    """Base class for all domain errors."""

    code = "internal_error"
    status_code = 500

    @property
    def public_message(self) -> str:
        return str(self)


# ── 404 ──────────────────────────────────────────────────────────────


class NotFoundError(SandboxApiError):
    code = "not_found"
    status_code = 404


class AccountNotFound(NotFoundError):
    """Raised when no account record matches a name."""

    def __init__(self, name: str, kind: str | None = None) -> None:
        self.name = name
        self.kind = kind
        super().__init__(f"account {name!r} not found")

    @property
    def public_message(self) -> str:
        return "Account not found"


class AccountKindNotConfigured(NotFoundError):
    """Raised when no provider is registered for an account kind."""

    def __init__(self, kind: str) -> None:
        self.kind = kind
        super().__init__(f"no account provider configured for kind {kind!r}")


class JobNotFound(NotFoundError):
    """Raised when a job id or an account job history does not exist."""

    def __init__(
        self,
        *,
        job_id: int | None = None,
        resource_name: str | None = None,
    ) -> None:
        self.job_id = job_id
        self.resource_name = resource_name
        if job_id is not None:
            message = f"lifecycle job {job_id} not found"
        else:
            message = f"no lifecycle job found for {resource_name!r}"
        super().__init__(message)

    @property
    def public_message(self) -> str:
        if self.job_id is not None:
            return "Job not found"
        return "Account status not found"


# ── 409 ──────────────────────────────────────────────────────────────


class ConflictError(SandboxApiError):
    code = "conflict"
    status_code = 409


# ── 422 ──────────────────────────────────────────────────────────────


class ValidationFailed(SandboxApiError):
    code = "validation_failed"
    status_code = 422


class AccountNameError(ValidationFailed):
    """Raised when a numeric sort key cannot be derived from a name."""

    def __init__(self, name: str) -> None:
        self.name = name
        super().__init__(f"account name {name!r} contains no digits")


class AccountFilterError(ValidationFailed):
    """Raised for a malformed account query filter."""


# ── 500 ──────────────────────────────────────────────────────────────


class InternalError(SandboxApiError):
    code = "internal_error"
    status_code = 500

    @property
    def public_message(self) -> str:
        return "Internal error"


# Public messages per store operation. Internal error text is never sent
# to callers.
_STORE_OPERATION_MESSAGES = {
    "scan": "Error reading accounts",
    "get_account": "Error reading account",
    "mark_for_cleanup": "Error marking account for cleanup",
    "insert_job": "Error creating lifecycle resource job",
    "get_job": "Error reading lifecycle resource job",
    "update_job": "Error updating lifecycle resource job",
    "latest_job": "Error getting account status",
    "list_jobs": "Error listing lifecycle resource jobs",
}


class StoreError(InternalError):
    """A backend fault (network, throttling, auth, timeout) in a store call."""

    def __init__(self, backend: str, operation: str, detail: str = "") -> None:
        self.backend = backend
        self.operation = operation
        self.detail = detail
        message = f"{backend} {operation} failed"
        if detail:
            message = f"{message}: {detail}"
        super().__init__(message)

    @property
    def public_message(self) -> str:
        return _STORE_OPERATION_MESSAGES.get(self.operation, "Internal error")
