from __future__ import annotations

"""Team protocols: who acts next.

A protocol is consulted by the coordinator's ``supervisor`` node before every
round. It returns a ``Dispatch``: the members to run this round (more than one
means fan-out) or a finish signal. Any state a protocol needs between rounds
lives in ``TeamTrace.protocol_state`` so it survives serialization.
"""

import logging
import re
from abc import ABC, abstractmethod
from dataclasses import dataclass, field
from typing import Callable, List, Optional, Sequence, Tuple

from ..schemas.trace import TeamTrace
from ..tools.base import FunctionTool, Tool
from .router import MemberInfo, Router

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class Dispatch:
    members: List[str] = field(default_factory=list)
    finish: bool = False
    reason: Optional[str] = None

    @classmethod
    def to(cls, *members: str) -> Dispatch:
        return cls(members=list(members))

    @classmethod
    def done(cls, reason: Optional[str] = None) -> Dispatch:
        return cls(finish=True, reason=reason)


class TeamProtocol(ABC):
    name: str = "base"

    @abstractmethod
    async def next_members(self, trace: TeamTrace, members: Sequence[MemberInfo]) -> Dispatch: ...

    def member_tools(self, member_name: str, members: Sequence[MemberInfo]) -> List[Tool]:
        """Extra tools the coordinator registers on a member when the team is built."""
        return []

    def member_hint(self, trace: TeamTrace, member_name: str) -> Optional[str]:
        """Note appended to the prompt of the member about to run."""
        return None


class RouterProtocol(TeamProtocol):
    """Ask a ``Router`` for the next member each round."""

    name = "router"

    def __init__(self, router: Router) -> None:
        self.router = router

    async def next_members(self, trace: TeamTrace, members: Sequence[MemberInfo]) -> Dispatch:
        decision = await self.router.decide(trace, members)
        if decision.is_finish:
            return Dispatch.done("Router finished the task")
        return Dispatch.to(decision.member)


QualityGate = Callable[[str], bool]


def default_quality_gate(content: str) -> bool:
    """Reject empty, very short or error-reporting stage output."""
    text = (content or "").strip()
    if not text or len(text) <= 20:
        return False
    return "ERROR" not in text


class SequentialProtocol(TeamProtocol):
    """
    Walk the members in a fixed order, one stage per member.

    After each stage the latest output passes through ``quality_gate``; a
    failing stage is re-run up to ``max_retries_per_stage`` times before the
    pipeline moves on anyway.
    """

    name = "sequential"

    def __init__(
        self,
        order: Optional[Sequence[str]] = None,
        *,
        max_retries_per_stage: int = 1,
        quality_gate: QualityGate = default_quality_gate,
    ) -> None:
        self.order = list(order) if order is not None else None
        self.max_retries_per_stage = max_retries_per_stage
        self.quality_gate = quality_gate

    async def next_members(self, trace: TeamTrace, members: Sequence[MemberInfo]) -> Dispatch:
        order = self.order or [m.name for m in members]
        state = trace.protocol_state
        stage = int(state.get("stage", 0))
        retries = int(state.get("retries", 0))

        if state.get("dispatched"):
            output = trace.last_agent_content() or ""
            if self.quality_gate(output):
                stage, retries = stage + 1, 0
            elif retries < self.max_retries_per_stage:
                retries += 1
                logger.info("Team [%s] stage %s failed the quality gate; retrying", trace.team_name, order[stage])
                trace.add_system_step(f"Stage [{order[stage]}] output rejected by the quality gate; retrying.")
            else:
                logger.warning("Team [%s] stage %s kept failing; moving on", trace.team_name, order[stage])
                stage, retries = stage + 1, 0

        state["stage"] = stage
        state["retries"] = retries
        if stage >= len(order):
            state["dispatched"] = False
            return Dispatch.done("Pipeline complete")
        state["dispatched"] = True
        return Dispatch.to(order[stage])


class ParallelProtocol(TeamProtocol):
    """Fan out to every member once, then finish after the join."""

    name = "parallel"

    async def next_members(self, trace: TeamTrace, members: Sequence[MemberInfo]) -> Dispatch:
        if trace.protocol_state.get("fanned_out"):
            outputs = [f"[{s.agent_name}]: {s.content}" for s in trace.agent_steps()]
            if outputs:
                trace.final_answer = "\n\n".join(outputs)
            return Dispatch.done("All members reported")
        trace.protocol_state["fanned_out"] = True
        return Dispatch.to(*[m.name for m in members])


TRANSFER_TOOL_NAME = "transfer_to"
_TRANSFER = re.compile(r"^Transferring to \[(?P<target>[^\]]+)\](?::\s*(?P<memo>.*))?$", re.DOTALL)


def parse_transfer(content: str) -> Optional[Tuple[str, str]]:
    """Return ``(target, memo)`` when ``content`` is a transfer tool result."""
    match = _TRANSFER.match((content or "").strip())
    if match is None:
        return None
    return match.group("target").strip(), (match.group("memo") or "").strip()


class HandoffProtocol(TeamProtocol):
    """
    Agent-to-agent hand-off.

    The entry member runs first. Every member gets a ``transfer_to`` tool; calling
    it ends the member's run and hands control to ``target``. The ``memo`` travels
    to the receiving member once, as a hint appended to its prompt. A member that
    answers without transferring ends the team run.
    """

    name = "handoff"

    def __init__(self, entry: Optional[str] = None) -> None:
        self.entry = entry

    def member_tools(self, member_name: str, members: Sequence[MemberInfo]) -> List[Tool]:
        experts = ", ".join(
            f"{m.name} ({m.description})" if m.description else m.name for m in members if m.name != member_name
        )

        def transfer_to(target: str, memo: str = "") -> str:
            return f"Transferring to [{target}]: {memo}" if memo else f"Transferring to [{target}]"

        return [
            FunctionTool(
                transfer_to,
                name=TRANSFER_TOOL_NAME,
                description=(
                    "Hand the task to another team member when you cannot finish it yourself. "
                    f"target must be one of: [{experts}]. "
                    "memo explains the progress so far and what the next member should focus on."
                ),
                return_direct=True,
            )
        ]

    async def next_members(self, trace: TeamTrace, members: Sequence[MemberInfo]) -> Dispatch:
        names = [m.name for m in members]
        state = trace.protocol_state
        current = state.get("current")
        if current is None:
            entry = self.entry if self.entry in names else names[0]
            state["current"] = entry
            return Dispatch.to(entry)

        transfer = parse_transfer(trace.last_agent_content() or "")
        if transfer is None:
            return Dispatch.done("Hand-off chain complete")
        target, memo = transfer
        if target not in names or target == current:
            logger.warning("Team [%s] member [%s] handed off to invalid target [%s]", trace.team_name, current, target)
            trace.add_system_step(f"Hand-off from [{current}] to [{target}] rejected: not another team member.")
            return Dispatch.done(f"Invalid hand-off target: {target}")

        logger.info("Team [%s] hand-off: %s -> %s", trace.team_name, current, target)
        trace.add_system_step(f"[{current}] handed the task to [{target}].")
        state["current"] = target
        if memo:
            state["handoff_memo"] = memo
        return Dispatch.to(target)

    def member_hint(self, trace: TeamTrace, member_name: str) -> Optional[str]:
        memo = trace.protocol_state.pop("handoff_memo", None)
        if not memo:
            return None
        return f"[Handover Hint]: {memo}"
