from __future__ import annotations

from datetime import datetime
from enum import Enum
from typing import Any, Dict, Optional
from uuid import uuid4

from pydantic import Field

from .base import BaseSchema, _utc_now

# Reserved tool name of the step-limit sentinel task.
FEEDBACK_TOOL_NAME = "__ask_for_feedback__"


class StepKind(str, Enum):
    reason = "reason"
    act = "act"
    observe = "observe"


class RunStatus(str, Enum):
    running = "running"
    pending = "pending"
    done = "done"
    failed = "failed"


class LoopPhase(str, Enum):
    planning = "planning"
    reasoning = "reasoning"
    acting = "acting"
    observing = "observing"
    finished = "finished"


class ChatRole(str, Enum):
    system = "system"
    user = "user"
    assistant = "assistant"
    tool = "tool"


class HITLOutcome(str, Enum):
    approve = "approve"
    reject = "reject"
    skip = "skip"


class AutonomyProfile(str, Enum):
    unrestricted = "unrestricted"
    balanced = "balanced"
    strict = "strict"


class RiskLevel(str, Enum):
    low = "low"
    medium = "medium"
    high = "high"


class TraceStep(BaseSchema):
    kind: StepKind
    content: str
    timestamp: datetime = Field(default_factory=_utc_now)


class ChatMessage(BaseSchema):
    """
    One role-tagged message.

    ``name`` identifies the speaking agent in shared histories. ``tool_name`` and
    ``tool_args`` are set on assistant messages that requested a tool and on the
    tool messages carrying the observation.
    """

    role: ChatRole
    content: str = ""
    name: Optional[str] = None
    tool_name: Optional[str] = None
    tool_args: Optional[Dict[str, Any]] = None


class ToolCall(BaseSchema):
    name: str
    args: Dict[str, Any] = Field(default_factory=dict)


class HITLTask(BaseSchema):
    """
    A tool call held back for human review.

    A task created by the loop itself rather than by an interceptor uses
    ``FEEDBACK_TOOL_NAME`` and asks whether the run may exceed its step limit.
    """

    id: str = Field(default_factory=lambda: str(uuid4()))
    tool_name: str
    args: Dict[str, Any] = Field(default_factory=dict)
    comment: Optional[str] = None
    created_at: datetime = Field(default_factory=_utc_now)
    agent_name: Optional[str] = None

    @property
    def is_sentinel(self) -> bool:
        return self.tool_name == FEEDBACK_TOOL_NAME


class HITLDecision(BaseSchema):
    """
    The human resolution of a ``HITLTask``.

    ``modified_args`` only matters for ``approve``; keys given there override the
    original arguments of the held call. ``task_id`` binds the decision to the
    task it answers; a decision bound to another task is never used.
    """

    outcome: HITLOutcome
    modified_args: Optional[Dict[str, Any]] = None
    comment: Optional[str] = None
    decided_by: Optional[str] = None
    decided_at: datetime = Field(default_factory=_utc_now)
    task_id: Optional[str] = None

    @classmethod
    def approve(
        cls,
        modified_args: Optional[Dict[str, Any]] = None,
        *,
        comment: Optional[str] = None,
        decided_by: Optional[str] = None,
    ) -> HITLDecision:
        return cls(outcome=HITLOutcome.approve, modified_args=modified_args, comment=comment, decided_by=decided_by)

    @classmethod
    def reject(cls, comment: Optional[str] = None, *, decided_by: Optional[str] = None) -> HITLDecision:
        return cls(outcome=HITLOutcome.reject, comment=comment, decided_by=decided_by)

    @classmethod
    def skip(cls, comment: Optional[str] = None, *, decided_by: Optional[str] = None) -> HITLDecision:
        return cls(outcome=HITLOutcome.skip, comment=comment, decided_by=decided_by)
