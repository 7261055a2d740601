from __future__ import annotations

"""LangGraph team coordinator.

``TeamCoordinator`` runs several ``ReasonActLoop`` agents as one task.

Graph layout
------------

- ``supervisor``: checks the iteration budget and the ``LoopDetector``, then
  asks the ``TeamProtocol`` who acts next.
- ``member_<name>``: one node per member; runs (or resumes) that member.
- ``parallel``: fans out to several members with ``asyncio.gather``. Their
  results are appended to the shared ``TeamTrace`` under an ``asyncio.Lock``.
- ``finish``: settles the final answer and writes it to the session.

Pause/resume
------------

When a member suspends for human approval the team trace becomes ``pending``
with ``pending_agent`` set and the graph stops. ``run(session)`` without a
prompt re-enters at the recorded node and resumes that member instead of
restarting the team.
"""

import asyncio
import logging
import re
import time
from typing import Any, Dict, Iterable, List, NotRequired, Optional, Required, Sequence, TypedDict

from langgraph.graph import END, START, StateGraph
from pydantic import Field

from ...core.config import settings
from ..errors import InvalidTraceStateError
from ..runtime.loop import ReasonActLoop
from ..schemas.base import BaseSchema
from ..schemas.domain import ChatMessage, ChatRole, RunStatus
from ..schemas.session import Session
from ..schemas.trace import ExecutionTrace, TeamStep, TeamTrace
from .loop_detector import LoopDetector
from .protocols import SequentialProtocol, TeamProtocol
from .router import MemberInfo

logger = logging.getLogger(__name__)

_PENDING_MEMBERS_KEY = "pending_members"
_NODE_NAME_UNSAFE = re.compile(r"[^\w\-]")


class TeamOptions(BaseSchema):
    max_total_iterations: int = Field(default=8, ge=1)
    finish_marker: str = "FINISH"
    history_window: int = Field(default=5, ge=0)
    output_key: Optional[str] = None

    @classmethod
    def from_settings(cls, **overrides) -> TeamOptions:
        team = settings.team
        values = {
            "max_total_iterations": team.max_total_iterations,
            "finish_marker": team.finish_marker,
            "history_window": team.history_window,
        }
        values.update(overrides)
        return cls(**values)


class _TeamState(TypedDict):
    """Mutable LangGraph state for one team invocation.

    Required keys:

    - ``trace`` / ``session``: the team log and its owning session.
    - ``lock``: serializes appends to ``trace`` during fan-out.

    Optional keys:

    - ``dispatch``: member names chosen by the last supervisor round.
    """

    trace: Required[TeamTrace]
    session: Required[Session]
    lock: Required[asyncio.Lock]
    dispatch: NotRequired[List[str]]


class TeamCoordinator:
    """Run a team of agents under a ``TeamProtocol``."""

    def __init__(
        self,
        name: str,
        members: Iterable[ReasonActLoop],
        protocol: Optional[TeamProtocol] = None,
        options: Optional[TeamOptions] = None,
        loop_detector: Optional[LoopDetector] = None,
    ) -> None:
        self.name = name
        self._members: Dict[str, ReasonActLoop] = {}
        for member in members:
            if member.name in self._members:
                raise ValueError(f"Duplicate team member name: {member.name}")
            self._members[member.name] = member
        if not self._members:
            raise ValueError("A team needs at least one member")
        self._protocol = protocol or SequentialProtocol()
        infos = self.members
        for member in self._members.values():
            for extra in self._protocol.member_tools(member.name, infos):
                member.tools.register(extra)
        self._options = options or TeamOptions.from_settings()
        self._detector = loop_detector or LoopDetector.from_settings()
        self._node_ids = {n: f"member_{_NODE_NAME_UNSAFE.sub('_', n)}" for n in self._members}
        self._graph = self._build_graph()

    @property
    def members(self) -> List[MemberInfo]:
        return [MemberInfo(name=m.name, description=m.description) for m in self._members.values()]

    @property
    def options(self) -> TeamOptions:
        return self._options

    def _build_graph(self):
        g: StateGraph = StateGraph(_TeamState)
        g.add_node("supervisor", self._node_supervisor)
        g.add_node("parallel", self._node_parallel)
        g.add_node("finish", self._node_finish)
        for member_name, node_id in self._node_ids.items():
            g.add_node(node_id, self._member_node(member_name))

        member_targets = {node_id: node_id for node_id in self._node_ids.values()}
        g.add_conditional_edges(
            START,
            self._route_entry,
            {**member_targets, "supervisor": "supervisor", "end": END},
        )
        g.add_conditional_edges(
            "supervisor",
            self._route_after_supervisor,
            {**member_targets, "parallel": "parallel", "finish": "finish"},
        )
        for node_id in [*self._node_ids.values(), "parallel"]:
            g.add_conditional_edges(
                node_id,
                self._route_after_members,
                {"supervisor": "supervisor", "finish": "finish", "end": END},
            )
        g.add_edge("finish", END)
        return g.compile()

    # ------------------------------------------------------------------
    # Public API
    # ------------------------------------------------------------------

    async def run(self, session: Session, prompt: Optional[str] = None) -> TeamTrace:
        """Start the team on ``prompt``, or resume a pending team run when ``prompt`` is ``None``."""
        trace = session.team_traces.get(self.name)
        if prompt is None:
            if trace is None:
                raise InvalidTraceStateError(f"Team [{self.name}] has no run to resume in session {session.id}.")
            if trace.status != RunStatus.pending:
                logger.debug("Team [%s] is not pending; nothing to resume", self.name)
                return trace
        else:
            text = session.render(prompt)
            if trace is None:
                trace = TeamTrace(team_name=self.name)
                session.team_traces[self.name] = trace
            trace.reset(text)
            session.add_message(ChatRole.user, text)

        state: _TeamState = {"trace": trace, "session": session, "lock": asyncio.Lock(), "dispatch": []}
        limit = 4 * (self._options.max_total_iterations + 2) + 10
        await self._graph.ainvoke(state, config={"recursion_limit": limit})
        session.touch()
        return trace

    # ------------------------------------------------------------------
    # Routing
    # ------------------------------------------------------------------

    def _route_entry(self, state: _TeamState) -> str:
        trace = state["trace"]
        if trace.status == RunStatus.pending:
            if trace.pending_agent in self._node_ids:
                return self._node_ids[trace.pending_agent]
            if trace.last_node_id in self._node_ids.values():
                return trace.last_node_id
            return "end"
        if trace.status == RunStatus.running:
            return "supervisor"
        return "end"

    def _route_after_supervisor(self, state: _TeamState) -> str:
        trace = state["trace"]
        dispatch = state.get("dispatch") or []
        if trace.status != RunStatus.running or not dispatch:
            return "finish"
        if len(dispatch) == 1:
            return self._node_ids[dispatch[0]]
        return "parallel"

    def _route_after_members(self, state: _TeamState) -> str:
        trace = state["trace"]
        if trace.status == RunStatus.pending:
            return "end"
        if trace.status == RunStatus.failed:
            return "finish"
        return "supervisor"

    # ------------------------------------------------------------------
    # Nodes
    # ------------------------------------------------------------------

    async def _node_supervisor(self, state: _TeamState) -> Dict[str, Any]:
        trace = state["trace"]
        dispatch: List[str] = []

        if trace.iterations >= self._options.max_total_iterations:
            self._halt(trace, "Maximum iterations reached")
        elif self._detector.is_looping(trace):
            self._halt(trace, "Loop detected")
        else:
            try:
                decision = await self._protocol.next_members(trace, self.members)
            except Exception as exc:
                logger.error("Team [%s] routing failed", self.name, exc_info=True)
                trace.add_system_step(f"Execution halted: routing failed: {exc}")
                trace.stop_reason = f"Routing failed: {exc}"
                trace.status = RunStatus.failed
            else:
                if decision.finish:
                    trace.stop_reason = decision.reason
                else:
                    dispatch = [n for n in decision.members if n in self._members]
                    unknown = [n for n in decision.members if n not in self._members]
                    if unknown:
                        logger.warning("Team [%s] protocol chose unknown members %s", self.name, unknown)
                    if not dispatch:
                        trace.stop_reason = "No valid member selected"
                    remaining = self._options.max_total_iterations - trace.iterations
                    if len(dispatch) > remaining:
                        logger.warning(
                            "Team [%s] has %s iterations left; dropping %s from the fan-out",
                            self.name,
                            remaining,
                            dispatch[remaining:],
                        )
                        dispatch = dispatch[:remaining]

        trace.last_node_id = "supervisor"
        return {"trace": trace, "dispatch": dispatch}

    def _member_node(self, member_name: str):
        async def _node(state: _TeamState) -> Dict[str, Any]:
            trace, session = state["trace"], state["session"]
            resume = trace.status == RunStatus.pending and member_name in self._pending_members(trace)
            member_trace = await self._run_member(state, member_name, resume=resume)
            self._settle(trace, {member_name: member_trace})
            trace.last_node_id = self._node_ids[member_name]
            return {"trace": trace}

        _node.__name__ = f"_node_{self._node_ids[member_name]}"
        return _node

    async def _node_parallel(self, state: _TeamState) -> Dict[str, Any]:
        trace = state["trace"]
        names = state.get("dispatch") or []
        logger.debug("Team [%s] fanning out to %s", self.name, names)
        results = await asyncio.gather(*(self._run_member(state, name, resume=False) for name in names))
        self._settle(trace, dict(zip(names, results)))
        trace.last_node_id = "parallel"
        return {"trace": trace}

    async def _node_finish(self, state: _TeamState) -> Dict[str, Any]:
        trace, session = state["trace"], state["session"]
        if trace.final_answer is None:
            trace.final_answer = trace.last_agent_content()
        if trace.status == RunStatus.running:
            trace.status = RunStatus.done
        trace.pending_agent = None
        trace.last_node_id = "finish"

        if trace.status == RunStatus.done and trace.final_answer is not None:
            session.messages.append(ChatMessage(role=ChatRole.assistant, content=trace.final_answer, name=self.name))
            if self._options.output_key:
                session.variables[self._options.output_key] = trace.final_answer
        logger.info(
            "Team [%s] finished with status=%s after %s iterations (%s)",
            self.name,
            trace.status.value,
            trace.iterations,
            trace.stop_reason,
        )
        return {"trace": trace}

    # ------------------------------------------------------------------
    # Helpers
    # ------------------------------------------------------------------

    async def _run_member(self, state: _TeamState, member_name: str, *, resume: bool) -> ExecutionTrace:
        trace, session, lock = state["trace"], state["session"], state["lock"]
        member = self._members[member_name]
        started = time.perf_counter()
        if resume:
            member_trace = await member.run(session)
        else:
            trace.iterations += 1
            member_trace = await member.run(session, self._member_prompt(trace, member_name), record_history=False)
        duration_ms = int((time.perf_counter() - started) * 1000)

        async with lock:
            if member_trace.status == RunStatus.done:
                trace.add_step(
                    TeamStep(agent_name=member_name, content=member_trace.final_answer or "", duration_ms=duration_ms)
                )
        return member_trace

    def _settle(self, trace: TeamTrace, results: Dict[str, ExecutionTrace]) -> None:
        pending = [n for n in self._pending_members(trace) if n not in results]
        failed: Optional[str] = None
        for name, member_trace in results.items():
            if member_trace.status == RunStatus.pending:
                pending.append(name)
            elif member_trace.status == RunStatus.failed and failed is None:
                failed = name
                trace.add_system_step(f"Member [{name}] failed: {member_trace.error}")
                trace.stop_reason = f"Member [{name}] failed: {member_trace.error}"

        trace.protocol_state[_PENDING_MEMBERS_KEY] = pending
        if failed is not None:
            trace.status = RunStatus.failed
            trace.pending_agent = None
        elif pending:
            trace.status = RunStatus.pending
            trace.pending_agent = pending[0]
            logger.info("Team [%s] waiting on member [%s]", self.name, pending[0])
        else:
            trace.status = RunStatus.running
            trace.pending_agent = None

    @staticmethod
    def _pending_members(trace: TeamTrace) -> List[str]:
        return list(trace.protocol_state.get(_PENDING_MEMBERS_KEY) or [])

    def _halt(self, trace: TeamTrace, reason: str) -> None:
        logger.warning("Team [%s] halted: %s", self.name, reason)
        trace.add_system_step(f"Execution halted: {reason}")
        trace.stop_reason = reason
        trace.final_answer = trace.last_agent_content()

    def _member_prompt(self, trace: TeamTrace, member_name: str) -> str:
        prompt = trace.prompt or ""
        history = trace.formatted_history(self._options.history_window)
        if history:
            prompt = f"{prompt}\n\n## Team progress\n{history}"
        hint = self._protocol.member_hint(trace, member_name)
        if hint:
            prompt = f"{prompt}\n\n{hint}"
        return prompt

    def member(self, name: str) -> ReasonActLoop:
        return self._members[name]

    def member_names(self) -> Sequence[str]:
        return list(self._members)
