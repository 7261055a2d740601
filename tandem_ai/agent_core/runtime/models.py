from __future__ import annotations

"""Runtime options and LangGraph state types for the ReAct loop.

- ``ReActOptions`` configures one ``ReasonActLoop``.
- ``LoopChunk`` is what ``ReasonActLoop.stream`` yields while a run proceeds.
- ``_LoopState`` is the state passed between LangGraph nodes. It only carries
  references to the session and its trace; all durable state lives on the
  ``ExecutionTrace``.
"""

from enum import Enum
from typing import Callable, NotRequired, Optional, Required, TypedDict

from pydantic import Field

from ...core.config import settings
from ..schemas.base import BaseSchema
from ..schemas.session import Session
from ..schemas.trace import ExecutionTrace


class ReActOptions(BaseSchema):
    """Behaviour switches of a ``ReasonActLoop``.

    The step-limit sentinel fires once ``iteration >= max_steps -
    feedback_threshold_offset`` while ``feedback_mode`` is on. An approval
    raises ``max_steps`` by ``step_extension``, never beyond
    ``max_steps_limit``.

    Working memory is trimmed to the last ``context_max_messages`` messages
    once it outgrows that count or ``context_max_tokens``.
    """

    max_steps: int = Field(default=10, ge=1)
    max_steps_limit: int = Field(default=100, ge=1)
    step_extension: int = Field(default=10, ge=1)
    feedback_mode: bool = False
    feedback_threshold_offset: int = Field(default=1, ge=0)
    planning_mode: bool = False
    history_window: int = Field(default=6, ge=0, description="Prior session messages copied into working memory.")
    finish_marker: str = "FINISH"
    system_prompt: Optional[str] = None
    context_max_messages: int = Field(
        default=24, ge=4, description="Working-memory messages kept once trimming starts."
    )
    context_max_tokens: int = Field(default=8000, ge=1000, description="Estimated token budget of working memory.")

    @classmethod
    def from_settings(cls, **overrides) -> ReActOptions:
        loop = settings.loop
        values = {
            "max_steps": loop.max_steps,
            "max_steps_limit": loop.max_steps_limit,
            "step_extension": loop.step_extension,
            "feedback_mode": loop.feedback_mode,
            "feedback_threshold_offset": loop.feedback_threshold_offset,
            "planning_mode": loop.planning_mode,
            "context_max_messages": loop.context_max_messages,
            "context_max_tokens": loop.context_max_tokens,
        }
        values.update(overrides)
        return cls(**values)

    def feedback_threshold(self, max_steps: int) -> int:
        return max(1, max_steps - self.feedback_threshold_offset)


class ChunkKind(str, Enum):
    plan = "plan"
    reason = "reason"
    action = "action"
    observation = "observation"
    status = "status"


class LoopChunk(BaseSchema):
    kind: ChunkKind
    agent_name: str
    content: str = ""


ChunkSink = Callable[[LoopChunk], None]


class _LoopState(TypedDict):
    """Mutable LangGraph state for one ``ReasonActLoop`` invocation.

    Required keys:

    - ``trace``: the agent's trace, mutated in place by every node.
    - ``session``: the owning session.

    Optional keys:

    - ``sink``: receives ``LoopChunk`` events when the run is streamed.
    """

    trace: Required[ExecutionTrace]
    session: Required[Session]
    sink: NotRequired[Optional[ChunkSink]]
