"""Lifecycle job status machine.

A lifecycle job records one requested action on a sandbox account:

  new -> running -> success
                 -> error

``new`` is only ever the initial status. ``success`` and ``error`` are
terminal. A write that moves a job backward, repeats its current status,
skips ``running`` or touches a terminal job is a conflict.
"""

from __future__ import annotations

import enum
from types import MappingProxyType

from sandbox_api.app.errors import ConflictError


class JobStatus(str, enum.Enum):
    NEW = "new"
    RUNNING = "running"
    SUCCESS = "success"
    ERROR = "error"

    @property
    def is_terminal(self) -> bool:
        return self in TERMINAL_STATUSES


class LifecycleAction(str, enum.Enum):
    START = "start"
    STOP = "stop"
    DESTROY = "destroy"
    PROVISION = "provision"
    CLEANUP = "cleanup"


TERMINAL_STATUSES = frozenset({JobStatus.SUCCESS, JobStatus.ERROR})

ALLOWED_TRANSITIONS = MappingProxyType(
    {
        JobStatus.NEW: frozenset({JobStatus.RUNNING}),
        JobStatus.RUNNING: frozenset({JobStatus.SUCCESS, JobStatus.ERROR}),
        JobStatus.SUCCESS: frozenset(),
        JobStatus.ERROR: frozenset(),
    }
)


class InvalidJobTransition(ConflictError):
    """Raised for an illegal lifecycle job status write."""

    def __init__(self, from_status: str, to_status: str) -> None:
        self.from_status = from_status
        self.to_status = to_status
        super().__init__(
            f"invalid status transition: {from_status!r} -> {to_status!r}"
        )


def can_transition(from_status: JobStatus | str, to_status: JobStatus | str) -> bool:
    try:
        current = JobStatus(from_status)
        target = JobStatus(to_status)
    except ValueError:
        return False
    return target in ALLOWED_TRANSITIONS[current]


def ensure_transition(
    from_status: JobStatus | str,
    to_status: JobStatus | str,
) -> JobStatus:
    """Validate a status write and return the target status.

    Raises:
        InvalidJobTransition: If the write is not a legal forward step.
    """
    if not can_transition(from_status, to_status):
        raise InvalidJobTransition(_value(from_status), _value(to_status))
    return JobStatus(to_status)


def _value(status: JobStatus | str) -> str:
    return status.value if isinstance(status, JobStatus) else str(status)
