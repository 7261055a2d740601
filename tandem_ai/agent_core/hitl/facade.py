from __future__ import annotations

"""Accessors for a human-facing approval surface.

These helpers never run anything: they read the pending task of a session and
write decisions that the next ``run(session)`` call consumes. Submitting twice
for the same tool keeps the last decision.
"""

from typing import Any, Dict, Optional

from ..schemas.domain import HITLDecision, HITLTask
from ..schemas.session import Session
from .store import PendingDecisionStore, default_store


def get_pending_task(session: Session) -> Optional[HITLTask]:
    """Return the task a paused run of ``session`` waits on, if any."""
    for trace in session.traces.values():
        if trace.is_pending and trace.pending_task is not None:
            return trace.pending_task
    return None


def submit(
    session: Session,
    tool_name: str,
    decision: HITLDecision,
    *,
    store: Optional[PendingDecisionStore] = None,
) -> HITLDecision:
    return (store or default_store).put(session, tool_name, decision)


def approve(
    session: Session,
    tool_name: str,
    modified_args: Optional[Dict[str, Any]] = None,
    comment: Optional[str] = None,
    *,
    decided_by: Optional[str] = None,
    store: Optional[PendingDecisionStore] = None,
) -> HITLDecision:
    decision = HITLDecision.approve(modified_args, comment=comment, decided_by=decided_by)
    return submit(session, tool_name, decision, store=store)


def reject(
    session: Session,
    tool_name: str,
    comment: Optional[str] = None,
    *,
    decided_by: Optional[str] = None,
    store: Optional[PendingDecisionStore] = None,
) -> HITLDecision:
    decision = HITLDecision.reject(comment, decided_by=decided_by)
    return submit(session, tool_name, decision, store=store)


def skip(
    session: Session,
    tool_name: str,
    comment: Optional[str] = None,
    *,
    decided_by: Optional[str] = None,
    store: Optional[PendingDecisionStore] = None,
) -> HITLDecision:
    decision = HITLDecision.skip(comment, decided_by=decided_by)
    return submit(session, tool_name, decision, store=store)
