from __future__ import annotations

"""Keyed storage of human decisions.

Decisions live inside ``Session.decisions`` (keyed by tool name) so they are
persisted with the session. The store only adds a lock so that a write and a
read-and-clear of the same key never interleave.

A decision written while a run waits on that tool is bound to the waiting
task's id, so it can never answer a later task for the same tool.
"""

import logging
import threading
from typing import Optional

from ..schemas.domain import HITLDecision, HITLTask
from ..schemas.session import Session

logger = logging.getLogger(__name__)


def awaited_task(session: Session, tool_name: str) -> Optional[HITLTask]:
    for trace in session.traces.values():
        task = trace.pending_task
        if trace.is_pending and task is not None and task.tool_name == tool_name:
            return task
    return None


class PendingDecisionStore:
    def __init__(self) -> None:
        self._lock = threading.RLock()

    def put(self, session: Session, tool_name: str, decision: HITLDecision) -> HITLDecision:
        """Store ``decision`` for ``tool_name``; a later put replaces it.

        Returns the stored decision, bound to the awaited task when there is one.
        """
        with self._lock:
            if decision.task_id is None:
                task = awaited_task(session, tool_name)
                if task is not None:
                    decision = decision.model_copy(update={"task_id": task.id})
            if tool_name in session.decisions:
                logger.debug("Replacing decision for tool [%s] in session %s", tool_name, session.id)
            session.decisions[tool_name] = decision
            session.touch()
            return decision

    def take(self, session: Session, tool_name: str) -> Optional[HITLDecision]:
        """Atomically read and remove the decision for ``tool_name``."""
        with self._lock:
            decision = session.decisions.pop(tool_name, None)
            if decision is not None:
                session.touch()
            return decision

    def peek(self, session: Session, tool_name: str) -> Optional[HITLDecision]:
        with self._lock:
            return session.decisions.get(tool_name)

    def clear(self, session: Session, tool_name: str) -> None:
        with self._lock:
            session.decisions.pop(tool_name, None)

    def clear_all(self, session: Session) -> None:
        with self._lock:
            session.decisions.clear()


default_store = PendingDecisionStore()
