from __future__ import annotations

"""High-level service API for running agents against persisted sessions.

``AgentService`` is the recommended entrypoint for applications. Every call
loads the session from a ``SessionStore``, runs the agent or team, and saves
the session back, so a paused run can be resumed by another process:

1. ``run_agent(loop, session_id, prompt)`` starts a run; it may come back
   ``pending``.
2. A human reviewer calls ``submit_decision`` (or writes through the
   ``hitl`` helpers on a loaded session and saves it).
3. ``run_agent(loop, session_id)`` without a prompt resumes the run.
"""

import logging
from typing import Optional, Tuple

from .errors import SessionNotFoundError
from .hitl.facade import get_pending_task
from .hitl.store import PendingDecisionStore, default_store
from .runtime.loop import ReasonActLoop
from .schemas.domain import HITLDecision, HITLTask
from .schemas.session import Session
from .schemas.trace import ExecutionTrace, TeamTrace
from .session.store import SessionStore
from .team.coordinator import TeamCoordinator

logger = logging.getLogger(__name__)


class AgentService:
    def __init__(self, store: SessionStore, *, decision_store: Optional[PendingDecisionStore] = None) -> None:
        self._store = store
        self._decisions = decision_store or default_store

    async def load_or_create(self, session_id: str) -> Session:
        session = await self._store.load(session_id)
        if session is None:
            logger.debug("Creating session %s", session_id)
            session = Session(id=session_id)
        return session

    async def _load_existing(self, session_id: str) -> Session:
        session = await self._store.load(session_id)
        if session is None:
            raise SessionNotFoundError(session_id)
        return session

    async def run_agent(
        self, loop: ReasonActLoop, session_id: str, prompt: Optional[str] = None
    ) -> Tuple[Session, ExecutionTrace]:
        """Run or resume ``loop`` in the stored session and persist the result."""
        session = await self.load_or_create(session_id) if prompt is not None else await self._load_existing(session_id)
        trace = await loop.run(session, prompt)
        await self._store.save(session)
        return session, trace

    async def run_team(
        self, team: TeamCoordinator, session_id: str, prompt: Optional[str] = None
    ) -> Tuple[Session, TeamTrace]:
        """Run or resume ``team`` in the stored session and persist the result."""
        session = await self.load_or_create(session_id) if prompt is not None else await self._load_existing(session_id)
        trace = await team.run(session, prompt)
        await self._store.save(session)
        return session, trace

    async def pending_task(self, session_id: str) -> Optional[HITLTask]:
        session = await self._load_existing(session_id)
        return get_pending_task(session)

    async def submit_decision(self, session_id: str, tool_name: str, decision: HITLDecision) -> Session:
        session = await self._load_existing(session_id)
        self._decisions.put(session, tool_name, decision)
        await self._store.save(session)
        return session
