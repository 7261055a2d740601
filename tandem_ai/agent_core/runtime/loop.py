from __future__ import annotations

"""LangGraph ReAct loop.

``ReasonActLoop`` drives one agent through reason -> act -> observe cycles
until it produces an answer, fails, or is suspended for a human decision.

Execution model
---------------

- The loop is a compiled LangGraph state machine whose nodes are transitions
  over the agent's ``ExecutionTrace``: ``plan``, ``reason``, ``act``,
  ``observe`` and ``finalize``.
- A conditional entry picks the first node from the trace itself. A fresh
  prompt enters at ``plan`` (planning mode) or ``reason``; a suspended trace
  enters at ``act``, which consumes the human decision.
- Every tool call runs inside an ``InterceptorChain``. An interceptor that
  suspends the trace stops the graph before the tool executes.

Pause/resume
------------

A suspended run returns control to the caller with ``status == pending``.
Resuming is a second ``run(session)`` call without a prompt, possibly on a
session deserialized in another process. Without a stored decision the call
is a no-op.

Failure semantics
-----------------

- Tool errors (unknown tool, bad arguments, exceptions) become observations.
- Model errors are retried by ``RetryPolicy`` and then fail the run.
"""

import asyncio
import json
import logging
from typing import Any, AsyncIterator, Dict, Iterable, List, Optional, Tuple, Union

from langgraph.graph import END, START, StateGraph
from pydantic import BaseModel

from ..errors import InvalidToolArgumentsError, InvalidTraceStateError, ToolNotFoundError
from ..hitl.store import PendingDecisionStore, default_store
from ..interceptors.base import Interceptor, InvocationContext
from ..interceptors.chain import InterceptorChain
from ..interceptors.registry import InterceptorRegistry, global_interceptors
from ..planning.plans import PLAN_TOOL_NAMES, Planner, apply_plan, plan_context, plan_tool_schemas, run_plan_action
from ..reasoning.base import Reasoner
from ..reasoning.parsing import clean_final_answer
from ..reasoning.retry import RetryPolicy
from ..schemas.domain import (
    FEEDBACK_TOOL_NAME,
    ChatMessage,
    ChatRole,
    HITLDecision,
    HITLOutcome,
    HITLTask,
    LoopPhase,
    RunStatus,
    StepKind,
    ToolCall,
)
from ..schemas.session import Session
from ..schemas.trace import ExecutionTrace
from ..tools.base import Tool
from ..tools.registry import ToolRegistry
from .context import trim_working_memory
from .models import ChunkKind, ChunkSink, LoopChunk, ReActOptions, _LoopState

logger = logging.getLogger(__name__)

EMPTY_REPLY_NUDGE = (
    "Your last response was empty. Either call one of the available tools or give the final answer."
)
DEFAULT_REJECT_COMMENT = "approval was not granted"
DEFAULT_SKIP_COMMENT = "continue with the next step"

_PHASE_NODES = {
    LoopPhase.planning: "plan",
    LoopPhase.reasoning: "reason",
    LoopPhase.acting: "act",
    LoopPhase.observing: "observe",
}


def _to_text(result: Any) -> str:
    if result is None:
        return ""
    if isinstance(result, str):
        return result
    if isinstance(result, BaseModel):
        return result.model_dump_json()
    if isinstance(result, (dict, list, tuple)):
        return json.dumps(result, default=str, ensure_ascii=False)
    return str(result)


def describe_tool_failure(tool_name: str, error: BaseException) -> str:
    if isinstance(error, InvalidToolArgumentsError):
        return f"Invalid arguments for [{tool_name}]: {error}"
    return f"Execution error in tool [{tool_name}]: {error}"


class ReasonActLoop:
    """Run one agent as a resumable ReAct state machine.

    The loop keeps no per-run state of its own; instances can be shared between
    sessions and reused across process restarts.
    """

    def __init__(
        self,
        name: str,
        reasoner: Reasoner,
        tools: Union[ToolRegistry, Iterable[Tool], None] = None,
        interceptors: Iterable[Interceptor] = (),
        options: Optional[ReActOptions] = None,
        decision_store: Optional[PendingDecisionStore] = None,
        retry_policy: Optional[RetryPolicy] = None,
        output_key: Optional[str] = None,
        description: str = "",
        registry: Optional[InterceptorRegistry] = None,
    ) -> None:
        """
        Initialize the loop.

        Args:
            name: Agent name; also the key of its trace in ``Session.traces``.
            reasoner: Model boundary producing one ``Reasoning`` per turn.
            tools: Tools the agent may call.
            interceptors: Interceptors wrapped around every tool call of this agent.
            options: Step limits, feedback and planning switches.
            decision_store: Where human decisions are read from on resume.
            retry_policy: Retry policy for model calls.
            output_key: Session variable receiving the final answer.
            description: Short role description, used in prompts and by team routers.
            registry: Process-wide interceptors prepended to ``interceptors``.
        """
        self.name = name
        self.description = description
        self.output_key = output_key
        self._reasoner = reasoner
        self._tools = tools if isinstance(tools, ToolRegistry) else ToolRegistry(tools or ())
        self._interceptors: List[Interceptor] = list(interceptors)
        self._options = options or ReActOptions.from_settings()
        self._decisions = decision_store or default_store
        self._retry = retry_policy or RetryPolicy.from_settings()
        self._registry = registry if registry is not None else global_interceptors
        self._planner = Planner(reasoner, retry_policy=self._retry)
        self._graph = self._build_graph()

    @property
    def options(self) -> ReActOptions:
        return self._options

    @property
    def tools(self) -> ToolRegistry:
        return self._tools

    def _build_graph(self):
        """Build and compile the LangGraph state machine."""
        g: StateGraph = StateGraph(_LoopState)
        g.add_node("plan", self._node_plan)
        g.add_node("reason", self._node_reason)
        g.add_node("act", self._node_act)
        g.add_node("observe", self._node_observe)
        g.add_node("finalize", self._node_finalize)

        targets = {"plan": "plan", "reason": "reason", "act": "act", "observe": "observe", "end": END}
        g.add_conditional_edges(START, self._route_entry, targets)
        after = {**targets, "finalize": "finalize"}
        for node in ("plan", "reason", "act", "observe"):
            g.add_conditional_edges(node, self._route_next, after)
        g.add_edge("finalize", END)
        return g.compile()

    # ------------------------------------------------------------------
    # Public API
    # ------------------------------------------------------------------

    async def run(self, session: Session, prompt: Optional[str] = None, *, record_history: bool = True) -> ExecutionTrace:
        """Start a new run with ``prompt`` or resume a suspended one when ``prompt`` is ``None``.

        Args:
            session: The session holding this agent's trace.
            prompt: New task text. ``#{var}`` and ``{{var}}`` are rendered from session variables.
            record_history: Append the prompt to ``session.messages``. Team members pass ``False``.

        Returns:
            The agent's trace after the run reached ``done``, ``failed`` or ``pending``.

        Raises:
            InvalidTraceStateError: Resuming an agent that never ran in this session.
        """
        return await self._invoke(session, prompt, record_history=record_history, sink=None)

    async def stream(
        self, session: Session, prompt: Optional[str] = None, *, record_history: bool = True
    ) -> AsyncIterator[LoopChunk]:
        """Same as ``run`` but yields ``LoopChunk`` events while the run proceeds."""
        queue: asyncio.Queue = asyncio.Queue()
        finished = object()

        async def _drive() -> ExecutionTrace:
            try:
                return await self._invoke(session, prompt, record_history=record_history, sink=queue.put_nowait)
            finally:
                queue.put_nowait(finished)

        task = asyncio.ensure_future(_drive())
        try:
            while True:
                item = await queue.get()
                if item is finished:
                    break
                yield item
            await task
        finally:
            if not task.done():
                task.cancel()

    async def _invoke(
        self,
        session: Session,
        prompt: Optional[str],
        *,
        record_history: bool,
        sink: Optional[ChunkSink],
    ) -> ExecutionTrace:
        trace = session.traces.get(self.name)
        if prompt is None:
            if trace is None:
                raise InvalidTraceStateError(f"Agent [{self.name}] has no run to resume in session {session.id}.")
            if not trace.is_pending:
                logger.debug("Agent [%s] is not pending (status=%s); nothing to resume", self.name, trace.status.value)
                return trace
            if not self._has_decision(session, trace):
                return trace
        else:
            text = session.render(prompt)
            history = [m for m in session.history(self._options.history_window) if m.role != ChatRole.system]
            if trace is None:
                trace = ExecutionTrace(agent_name=self.name, max_steps=self._options.max_steps)
                session.traces[self.name] = trace
            elif trace.is_pending and trace.pending_task is not None:
                logger.info("Agent [%s] abandons its paused run on [%s]", self.name, trace.pending_task.tool_name)
                self._decisions.clear(session, trace.pending_task.tool_name)
            trace.reset(text, self._options.max_steps)
            trace.phase = LoopPhase.planning if self._options.planning_mode else LoopPhase.reasoning
            trace.working_memory = history + [ChatMessage(role=ChatRole.user, content=text)]
            if record_history:
                session.add_message(ChatRole.user, text)
            logger.debug("Agent [%s] starting a new run", self.name)

        state: _LoopState = {"trace": trace, "session": session, "sink": sink}
        await self._graph.ainvoke(state, config={"recursion_limit": self._recursion_limit(trace)})
        session.touch()
        return trace

    def _has_decision(self, session: Session, trace: ExecutionTrace) -> bool:
        task = trace.pending_task
        tool_name = task.tool_name if task else ""
        decision = self._decisions.peek(session, tool_name)
        if decision is not None and task is not None and decision.task_id not in (None, task.id):
            logger.warning(
                "Agent [%s] dropped a decision on [%s] made for another task", self.name, tool_name
            )
            self._decisions.clear(session, tool_name)
            decision = None
        if decision is None:
            logger.info("Agent [%s] is still waiting for a decision on [%s]", self.name, tool_name)
            return False
        return True

    def _recursion_limit(self, trace: ExecutionTrace) -> int:
        # reason, act and observe per iteration plus plan and finalize
        return 4 * (max(trace.max_steps, self._options.max_steps_limit) + 2) + 10

    # ------------------------------------------------------------------
    # Routing
    # ------------------------------------------------------------------

    def _route_entry(self, state: _LoopState) -> str:
        trace = state["trace"]
        if trace.is_pending:
            return "act"
        if trace.is_finished:
            return "end"
        return _PHASE_NODES.get(trace.phase, "end")

    def _route_next(self, state: _LoopState) -> str:
        trace = state["trace"]
        if trace.is_finished:
            return "finalize"
        if trace.is_pending:
            return "end"
        return _PHASE_NODES.get(trace.phase, "end")

    # ------------------------------------------------------------------
    # Nodes
    # ------------------------------------------------------------------

    async def _node_plan(self, state: _LoopState) -> Dict[str, Any]:
        trace = state["trace"]
        try:
            steps = await self._planner.plan(trace.prompt or "", context=self.description)
        except Exception as exc:
            logger.warning("Agent [%s] planning failed, continuing without a plan: %s", self.name, exc)
            steps = []
        apply_plan(trace, steps)
        if trace.plans:
            content = "Plan:\n" + "\n".join(f"{i}. {s}" for i, s in enumerate(trace.plans, 1))
            trace.add_step(StepKind.reason, content)
            self._emit(state, ChunkKind.plan, content)
        trace.phase = LoopPhase.reasoning
        return {"trace": trace}

    async def _node_reason(self, state: _LoopState) -> Dict[str, Any]:
        trace = state["trace"]
        if trace.iteration >= trace.max_steps:
            logger.warning("Agent [%s] hit its step limit (%s)", self.name, trace.max_steps)
            trace.fail("Agent error: Maximum iterations reached.")
            return {"trace": trace}

        try:
            reasoning = await self._retry.call(
                self._reasoner.reason, self._build_messages(trace), self._tool_schemas(trace)
            )
        except Exception as exc:
            logger.error("Agent [%s] model call failed", self.name, exc_info=True)
            trace.fail(str(exc) or type(exc).__name__)
            return {"trace": trace}

        if reasoning.is_finish or reasoning.tool_call is None:
            answer = clean_final_answer(reasoning.content, self._options.finish_marker)
            if not answer:
                trace.iteration += 1
                trace.add_step(StepKind.reason, "(empty response)")
                trace.working_memory.append(ChatMessage(role=ChatRole.user, content=EMPTY_REPLY_NUDGE))
                return {"trace": trace}
            trace.add_step(StepKind.reason, reasoning.content)
            trace.working_memory.append(ChatMessage(role=ChatRole.assistant, content=reasoning.content, name=self.name))
            self._emit(state, ChunkKind.reason, reasoning.content)
            trace.finish(answer)
            return {"trace": trace}

        call = reasoning.tool_call
        thought = reasoning.content or f"Calling tool [{call.name}]."
        trace.add_step(StepKind.reason, thought)
        trace.working_memory.append(
            ChatMessage(
                role=ChatRole.assistant,
                content=reasoning.content,
                name=self.name,
                tool_name=call.name,
                tool_args=dict(call.args),
            )
        )
        self._emit(state, ChunkKind.reason, thought)
        trace.pending_call = call
        trace.phase = LoopPhase.acting
        return {"trace": trace}

    async def _node_act(self, state: _LoopState) -> Dict[str, Any]:
        trace = state["trace"]
        if trace.is_pending:
            await self._resume_pending(state)
            return {"trace": trace}

        call = trace.pending_call
        if call is None:
            trace.phase = LoopPhase.reasoning
            return {"trace": trace}
        await self._execute(state, call, approved=False)
        return {"trace": trace}

    async def _node_observe(self, state: _LoopState) -> Dict[str, Any]:
        trace = state["trace"]
        observation = trace.last_observation or ""
        trace.add_step(StepKind.observe, observation)
        self._emit(state, ChunkKind.observation, observation)
        trace.iteration += 1
        trace.phase = LoopPhase.reasoning

        opts = self._options
        trace.working_memory, dropped = trim_working_memory(
            trace.working_memory,
            max_messages=opts.context_max_messages,
            max_tokens=opts.context_max_tokens,
            prompt=trace.prompt,
        )
        if dropped:
            logger.info("Agent [%s] trimmed %s messages from its working memory", self.name, dropped)
        if (
            opts.feedback_mode
            and trace.max_steps < opts.max_steps_limit
            and trace.iteration >= opts.feedback_threshold(trace.max_steps)
        ):
            comment = (
                f"Agent [{self.name}] has used {trace.iteration} of {trace.max_steps} steps. "
                f"Approve to continue with {opts.step_extension} more steps."
            )
            task = HITLTask(
                tool_name=FEEDBACK_TOOL_NAME,
                args={"iteration": trace.iteration, "max_steps": trace.max_steps},
                comment=comment,
                agent_name=self.name,
            )
            trace.suspend(task, comment)
            logger.warning("Agent [%s] is approaching its step limit; waiting for feedback", self.name)
            self._emit(state, ChunkKind.status, comment)
        return {"trace": trace}

    async def _node_finalize(self, state: _LoopState) -> Dict[str, Any]:
        trace, session = state["trace"], state["session"]
        self._clear_stale_decisions(session)
        if trace.status == RunStatus.done and trace.final_answer is not None:
            session.messages.append(ChatMessage(role=ChatRole.assistant, content=trace.final_answer, name=self.name))
            if self.output_key:
                session.variables[self.output_key] = trace.final_answer
            logger.info("Agent [%s] finished after %s iterations", self.name, trace.iteration)
        else:
            logger.warning("Agent [%s] failed: %s", self.name, trace.error)
        self._emit(state, ChunkKind.status, trace.status.value)
        return {"trace": trace}

    # ------------------------------------------------------------------
    # Acting
    # ------------------------------------------------------------------

    async def _resume_pending(self, state: _LoopState) -> None:
        trace, session = state["trace"], state["session"]
        task = trace.pending_task
        if task is None:
            return
        decision = self._decisions.take(session, task.tool_name)
        if decision is None:
            return
        logger.info("Agent [%s] resumed with '%s' for [%s]", self.name, decision.outcome.value, task.tool_name)

        if task.is_sentinel:
            self._resolve_step_limit(trace, task, decision)
            return

        trace.clear_pending()
        call = ToolCall(name=task.tool_name, args=dict(task.args))
        if decision.outcome == HITLOutcome.reject:
            comment = decision.comment or DEFAULT_REJECT_COMMENT
            self._record_observation(
                state, call, f"Operation [{task.tool_name}] was rejected by the human reviewer: {comment}"
            )
        elif decision.outcome == HITLOutcome.skip:
            comment = decision.comment or DEFAULT_SKIP_COMMENT
            self._record_observation(
                state, call, f"Operation [{task.tool_name}] was skipped for now by the human reviewer: {comment}"
            )
        else:
            call.args.update(decision.modified_args or {})
            await self._execute(state, call, approved=True, note=decision.comment)

    def _resolve_step_limit(self, trace: ExecutionTrace, task: HITLTask, decision: HITLDecision) -> None:
        trace.clear_pending()
        if decision.outcome == HITLOutcome.approve:
            if task.id not in trace.resolved_task_ids:
                trace.resolved_task_ids.append(task.id)
                ceiling = max(self._options.max_steps_limit, trace.max_steps)
                trace.max_steps = min(trace.max_steps + self._options.step_extension, ceiling)
                logger.info("Agent [%s] step limit extended to %s", self.name, trace.max_steps)
            if decision.comment:
                trace.working_memory.append(
                    ChatMessage(role=ChatRole.user, content=f"Human feedback: {decision.comment}")
                )
            trace.phase = LoopPhase.reasoning
        elif decision.outcome == HITLOutcome.reject:
            reason = "Agent error: Maximum iterations reached."
            if decision.comment:
                reason = f"{reason} {decision.comment}"
            trace.fail(reason)
        else:
            trace.finish(decision.comment or trace.last_observation or "Stopped at the step limit.")

    async def _execute(self, state: _LoopState, call: ToolCall, *, approved: bool, note: Optional[str] = None) -> None:
        trace, session = state["trace"], state["session"]

        if call.name in PLAN_TOOL_NAMES and not self._tools.has(call.name):
            observation = run_plan_action(trace, call.name, call.args)
            self._emit(state, ChunkKind.plan, observation)
            self._record_observation(state, call, observation)
            return

        ctx = InvocationContext(
            session=session,
            trace=trace,
            agent_name=self.name,
            tool_name=call.name,
            args=dict(call.args),
            approved=approved,
        )
        chain = InterceptorChain([*self._registry.snapshot(), *self._interceptors])
        try:
            try:
                proceed = chain.apply_pre_invoke(ctx)
            except Exception as exc:
                logger.warning("Interceptor failed before tool [%s]", call.name, exc_info=True)
                self._record_observation(state, call, f"Tool call [{call.name}] was blocked: {exc}")
                return

            if not proceed:
                if trace.is_pending:
                    trace.phase = LoopPhase.acting
                    logger.warning("Agent [%s] suspended: %s", self.name, trace.interrupt_reason)
                    self._emit(state, ChunkKind.status, trace.interrupt_reason or "pending")
                    return
                self._record_observation(state, call, f"Tool call [{call.name}] was blocked.")
                return

            executed = ToolCall(name=call.name, args=dict(ctx.args))
            observation, direct = await self._invoke_tool(chain, ctx)
            if direct:
                self._emit(state, ChunkKind.action, self._describe_call(executed))
                trace.add_step(StepKind.act, self._describe_call(executed))
                trace.finish(observation)
                return
            if note:
                observation = f"{observation}\n(Note: {note})"
            self._record_observation(state, executed, observation)
        finally:
            chain.trigger_after_completion(ctx)

    async def _invoke_tool(self, chain: InterceptorChain, ctx: InvocationContext) -> Tuple[str, bool]:
        try:
            t = self._tools.get(ctx.tool_name)
        except ToolNotFoundError as exc:
            logger.warning("Agent [%s] requested unknown tool [%s]", self.name, ctx.tool_name)
            return str(exc), False

        ctx.trace.tool_call_count += 1
        try:
            raw = await t.invoke(ctx.args)
        except Exception as exc:
            logger.error("Tool [%s] of agent [%s] failed", ctx.tool_name, self.name, exc_info=True)
            replacement = chain.apply_on_error(ctx, exc)
            if replacement is None:
                return describe_tool_failure(ctx.tool_name, exc), False
            return _to_text(replacement), False

        result = chain.apply_post_invoke(ctx, raw)
        return _to_text(result), t.return_direct

    def _record_observation(self, state: _LoopState, call: ToolCall, observation: str) -> None:
        trace = state["trace"]
        description = self._describe_call(call)
        trace.add_step(StepKind.act, description)
        self._emit(state, ChunkKind.action, description)
        trace.working_memory.append(
            ChatMessage(role=ChatRole.tool, content=observation, name=self.name, tool_name=call.name)
        )
        trace.last_observation = observation
        trace.pending_call = None
        trace.phase = LoopPhase.observing

    # ------------------------------------------------------------------
    # Helpers
    # ------------------------------------------------------------------

    @staticmethod
    def _describe_call(call: ToolCall) -> str:
        return f"{call.name}({json.dumps(call.args, default=str, sort_keys=True, ensure_ascii=False)})"

    def _system_prompt(self) -> Optional[str]:
        parts = [p for p in (self._options.system_prompt, self.description) if p]
        if not parts:
            return None
        return "\n\n".join(parts)

    def _build_messages(self, trace: ExecutionTrace) -> List[ChatMessage]:
        messages: List[ChatMessage] = []
        system = self._system_prompt()
        if system:
            messages.append(ChatMessage(role=ChatRole.system, content=system))
        plan = plan_context(trace)
        if plan:
            messages.append(ChatMessage(role=ChatRole.system, content=plan))
        messages.extend(trace.working_memory)
        return messages

    def _tool_schemas(self, trace: ExecutionTrace) -> List[Dict[str, Any]]:
        schemas = self._tools.schemas()
        if trace.plans:
            schemas.extend(s for s in plan_tool_schemas() if not self._tools.has(s["name"]))
        return schemas

    def _clear_stale_decisions(self, session: Session) -> None:
        awaited = {
            t.pending_task.tool_name for t in session.traces.values() if t.is_pending and t.pending_task is not None
        }
        for tool_name in list(session.decisions):
            if tool_name not in awaited:
                self._decisions.clear(session, tool_name)

    def _emit(self, state: _LoopState, kind: ChunkKind, content: str) -> None:
        sink = state.get("sink")
        if sink is not None:
            sink(LoopChunk(kind=kind, agent_name=self.name, content=content))
