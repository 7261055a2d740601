"""Human-in-the-loop decision storage and accessors."""

from .facade import approve, get_pending_task, reject, skip, submit
from .store import PendingDecisionStore, default_store

__all__ = [
    "PendingDecisionStore",
    "approve",
    "default_store",
    "get_pending_task",
    "reject",
    "skip",
    "submit",
]
