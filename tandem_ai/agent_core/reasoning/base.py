from __future__ import annotations

"""Model boundary of the ReAct loop.

A ``Reasoner`` receives the role-tagged messages of the run and the schemas of
the tools it may call, and returns one ``Reasoning``: either a finish signal
carrying the answer text or a single tool call. Provider specific request and
response translation lives behind this protocol.
"""

from enum import Enum
from typing import Any, Dict, List, Optional, Protocol

from ..schemas.base import BaseSchema
from ..schemas.domain import ChatMessage, ToolCall


class ReasoningKind(str, Enum):
    finish = "finish"
    tool_call = "tool_call"


class Reasoning(BaseSchema):
    kind: ReasoningKind
    content: str = ""
    tool_call: Optional[ToolCall] = None

    @classmethod
    def finish(cls, content: str) -> Reasoning:
        return cls(kind=ReasoningKind.finish, content=content)

    @classmethod
    def call(cls, name: str, args: Optional[Dict[str, Any]] = None, *, thought: str = "") -> Reasoning:
        return cls(kind=ReasoningKind.tool_call, content=thought, tool_call=ToolCall(name=name, args=args or {}))

    @property
    def is_finish(self) -> bool:
        return self.kind == ReasoningKind.finish


class Reasoner(Protocol):
    async def reason(self, messages: List[ChatMessage], tools: List[Dict[str, Any]]) -> Reasoning: ...
