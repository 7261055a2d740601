from __future__ import annotations

import re
from datetime import datetime
from typing import Any, Dict, List, Optional
from uuid import uuid4

from pydantic import Field

from .base import BaseSchema, _utc_now
from .domain import ChatMessage, ChatRole, HITLDecision
from .trace import ExecutionTrace, TeamTrace

_PLACEHOLDER = re.compile(r"#\{\s*([A-Za-z_][\w.]*)\s*\}|\{\{\s*([A-Za-z_][\w.]*)\s*\}\}")


class Session(BaseSchema):
    """
    Durable unit of persistence and resumption.

    Holds the conversation history, the named variables agents share, the
    per-agent ``ExecutionTrace`` (keyed by agent name), the per-team
    ``TeamTrace`` (keyed by team name) and outstanding human decisions (keyed by
    tool name). The JSON produced by ``to_json`` is enough to resume a paused
    run in another process.
    """

    id: str = Field(default_factory=lambda: str(uuid4()))
    messages: List[ChatMessage] = Field(default_factory=list)
    variables: Dict[str, Any] = Field(default_factory=dict)
    traces: Dict[str, ExecutionTrace] = Field(default_factory=dict)
    team_traces: Dict[str, TeamTrace] = Field(default_factory=dict)
    decisions: Dict[str, HITLDecision] = Field(default_factory=dict)
    created_at: datetime = Field(default_factory=_utc_now)
    updated_at: datetime = Field(default_factory=_utc_now)

    def to_json(self) -> str:
        return self.model_dump_json()

    @classmethod
    def from_json(cls, raw: str) -> Session:
        return cls.model_validate_json(raw)

    def add_message(
        self,
        role: ChatRole,
        content: str,
        *,
        name: Optional[str] = None,
    ) -> ChatMessage:
        message = ChatMessage(role=role, content=content, name=name)
        self.messages.append(message)
        self.touch()
        return message

    def history(self, window: int = 0) -> List[ChatMessage]:
        if window <= 0:
            return list(self.messages)
        return list(self.messages[-window:])

    def render(self, template: str) -> str:
        """Replace ``#{name}`` and ``{{name}}`` placeholders with session variables.

        Unknown names are left untouched so a template can be rendered again once
        the variable is written.
        """

        def _sub(match: re.Match[str]) -> str:
            key = match.group(1) or match.group(2)
            if key not in self.variables:
                return match.group(0)
            return str(self.variables[key])

        return _PLACEHOLDER.sub(_sub, template)

    def touch(self) -> None:
        self.updated_at = _utc_now()
