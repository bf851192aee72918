"""Lifecycle job ledger, status machine and status resolution."""

from .ledger import LifecycleJobLedger, LifecycleResourceJob
from .state_machine import (
    ALLOWED_TRANSITIONS,
    TERMINAL_STATUSES,
    InvalidJobTransition,
    JobStatus,
    LifecycleAction,
    can_transition,
    ensure_transition,
)
from .status import AccountStatus, StatusResolver

__all__ = [
    "ALLOWED_TRANSITIONS",
    "AccountStatus",
    "InvalidJobTransition",
    "JobStatus",
    "LifecycleAction",
    "LifecycleJobLedger",
    "LifecycleResourceJob",
    "StatusResolver",
    "TERMINAL_STATUSES",
    "can_transition",
    "ensure_transition",
]
