from __future__ import annotations

"""Execution records for single agent runs and team runs.

``ExecutionTrace`` is the whole state of a ReAct run. The runtime loop keeps no
other state between invocations: a trace deserialized from JSON resumes exactly
like the in-memory object it was dumped from.

``TeamTrace`` is the append-only log a team coordinator writes. The loop
detector reads it; the coordinator's scheduler position is kept in
``last_node_id``.
"""

from typing import Any, Dict, List, Optional

from pydantic import ConfigDict, Field, model_validator

from .base import BaseSchema
from .domain import (
    ChatMessage,
    HITLTask,
    LoopPhase,
    RunStatus,
    StepKind,
    ToolCall,
    TraceStep,
)


class ExecutionTrace(BaseSchema):
    """Mutable record of one agent's current run.

    Invariant: ``pending_task`` is set if and only if ``status`` is
    ``pending``. The validator enforces it whenever a trace is built or
    deserialized; the mutating helpers below preserve it.
    """

    agent_name: str
    prompt: Optional[str] = None
    steps: List[TraceStep] = Field(default_factory=list)
    iteration: int = 0
    max_steps: int = 10
    status: RunStatus = RunStatus.running
    phase: LoopPhase = LoopPhase.reasoning

    pending_task: Optional[HITLTask] = None
    interrupt_reason: Optional[str] = None
    pending_call: Optional[ToolCall] = None

    plans: List[str] = Field(default_factory=list)
    plan_index: int = 0

    working_memory: List[ChatMessage] = Field(default_factory=list)
    last_observation: Optional[str] = None
    final_answer: Optional[str] = None
    error: Optional[str] = None
    tool_call_count: int = 0

    action_fingerprints: List[str] = Field(default_factory=list)
    resolved_task_ids: List[str] = Field(default_factory=list)

    @model_validator(mode="after")
    def _check_pending(self) -> ExecutionTrace:
        if (self.pending_task is not None) != (self.status == RunStatus.pending):
            raise ValueError("pending_task must be set exactly when status is 'pending'")
        return self

    @property
    def is_pending(self) -> bool:
        return self.status == RunStatus.pending

    @property
    def is_finished(self) -> bool:
        return self.status in (RunStatus.done, RunStatus.failed)

    def add_step(self, kind: StepKind, content: str) -> TraceStep:
        step = TraceStep(kind=kind, content=content)
        self.steps.append(step)
        return step

    def suspend(self, task: HITLTask, reason: Optional[str] = None) -> None:
        """Park the run until a human decision for ``task`` arrives."""
        self.pending_task = task
        self.interrupt_reason = reason or task.comment or f"Tool [{task.tool_name}] requires approval."
        self.status = RunStatus.pending

    def clear_pending(self) -> None:
        self.pending_task = None
        self.interrupt_reason = None
        self.status = RunStatus.running

    def finish(self, answer: str) -> None:
        self.pending_task = None
        self.interrupt_reason = None
        self.pending_call = None
        self.final_answer = answer
        self.status = RunStatus.done
        self.phase = LoopPhase.finished

    def fail(self, error: str) -> None:
        self.pending_task = None
        self.interrupt_reason = None
        self.pending_call = None
        self.error = error
        self.status = RunStatus.failed
        self.phase = LoopPhase.finished

    def reset(self, prompt: str, max_steps: int) -> None:
        """Start a new top-level run; resumes never call this."""
        self.prompt = prompt
        self.steps = []
        self.iteration = 0
        self.max_steps = max_steps
        self.status = RunStatus.running
        self.phase = LoopPhase.reasoning
        self.pending_task = None
        self.interrupt_reason = None
        self.pending_call = None
        self.plans = []
        self.plan_index = 0
        self.working_memory = []
        self.last_observation = None
        self.final_answer = None
        self.error = None
        self.tool_call_count = 0
        self.action_fingerprints = []
        self.resolved_task_ids = []


class TeamStep(BaseSchema):
    """One entry of a team log. Agent output when ``is_agent``, else orchestration overhead."""

    model_config = ConfigDict(populate_by_name=True, extra="forbid", frozen=True)

    agent_name: str
    content: str
    duration_ms: int = 0
    is_agent: bool = True


class TeamTrace(BaseSchema):
    team_name: str
    prompt: Optional[str] = None
    steps: List[TeamStep] = Field(default_factory=list)
    final_answer: Optional[str] = None
    last_node_id: Optional[str] = None
    iterations: int = 0
    status: RunStatus = RunStatus.running
    pending_agent: Optional[str] = None
    stop_reason: Optional[str] = None
    protocol_state: Dict[str, Any] = Field(default_factory=dict)

    def add_step(self, step: TeamStep) -> None:
        self.steps.append(step)

    def add_system_step(self, content: str) -> None:
        self.steps.append(TeamStep(agent_name="system", content=content, is_agent=False))

    def agent_steps(self) -> List[TeamStep]:
        return [s for s in self.steps if s.is_agent]

    def last_agent_content(self) -> Optional[str]:
        agent_steps = self.agent_steps()
        if not agent_steps:
            return None
        return agent_steps[-1].content

    def formatted_history(self, window: int = 5, *, include_system: bool = False) -> str:
        """
        Render the most recent steps as context for the next member.

        Args:
            window: Number of trailing steps to include.
            include_system: Whether orchestration steps are shown too.

        Returns:
            Markdown sections, one per step, or an empty string.
        """
        steps = self.steps if include_system else self.agent_steps()
        if window > 0:
            steps = steps[-window:]
        sections = []
        for step in steps:
            if step.is_agent:
                sections.append(f"### Expert Output from [{step.agent_name}]:\n{step.content}")
            else:
                sections.append(f"### System Instruction:\n{step.content}")
        return "\n\n".join(sections)

    def reset(self, prompt: str) -> None:
        self.prompt = prompt
        self.steps = []
        self.final_answer = None
        self.last_node_id = None
        self.iterations = 0
        self.status = RunStatus.running
        self.pending_agent = None
        self.stop_reason = None
        self.protocol_state = {}
