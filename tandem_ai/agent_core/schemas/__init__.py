"""Pydantic data model of the agent execution core.

Everything here is JSON-serializable; a ``Session`` snapshot carries the
traces and pending decisions needed to resume a suspended run.
"""

from .base import BaseSchema
from .domain import (
    FEEDBACK_TOOL_NAME,
    AutonomyProfile,
    ChatMessage,
    ChatRole,
    HITLDecision,
    HITLOutcome,
    HITLTask,
    LoopPhase,
    RiskLevel,
    RunStatus,
    StepKind,
    ToolCall,
    TraceStep,
)
from .session import Session
from .trace import ExecutionTrace, TeamStep, TeamTrace

__all__ = [
    "BaseSchema",
    "FEEDBACK_TOOL_NAME",
    "AutonomyProfile",
    "ChatMessage",
    "ChatRole",
    "ExecutionTrace",
    "HITLDecision",
    "HITLOutcome",
    "HITLTask",
    "LoopPhase",
    "RiskLevel",
    "RunStatus",
    "Session",
    "StepKind",
    "TeamStep",
    "TeamTrace",
    "ToolCall",
    "TraceStep",
]
