from __future__ import annotations

from typing import Any, List

import pytest

from tandem_ai.agent_core import hitl
from tandem_ai.agent_core.errors import InvalidTraceStateError, ModelCallError
from tandem_ai.agent_core.hitl.store import PendingDecisionStore
from tandem_ai.agent_core.interceptors.base import InvocationContext, Interceptor
from tandem_ai.agent_core.interceptors.hitl import HITLInterceptor
from tandem_ai.agent_core.interceptors.registry import InterceptorRegistry
from tandem_ai.agent_core.interceptors.stop_loop import StopLoopInterceptor
from tandem_ai.agent_core.reasoning.base import Reasoning
from tandem_ai.agent_core.reasoning import retry as retry_module
from tandem_ai.agent_core.reasoning.retry import RetryPolicy
from tandem_ai.agent_core.runtime import models as models_module
from tandem_ai.agent_core.runtime.context import TRIM_MARKER
from tandem_ai.agent_core.runtime.loop import EMPTY_REPLY_NUDGE, ReasonActLoop
from tandem_ai.agent_core.runtime.models import ChunkKind, ReActOptions
from tandem_ai.agent_core.schemas.domain import (
    FEEDBACK_TOOL_NAME,
    ChatRole,
    HITLDecision,
    RunStatus,
    StepKind,
)
from tandem_ai.agent_core.schemas.session import Session
from tandem_ai.agent_core.tools.base import FunctionTool
from tandem_ai.core.config import TandemSettings


class _Payments:
    def __init__(self) -> None:
        self.paid: List[int] = []

    def pay(self, amount: int) -> str:
        self.paid.append(amount)
        return f"paid {amount}"


def _tool_messages(trace) -> List[str]:
    return [m.content for m in trace.working_memory if m.role == ChatRole.tool]


def _loop(reasoner, tools=(), interceptors=(), **kwargs: Any) -> ReasonActLoop:
    kwargs.setdefault("retry_policy", RetryPolicy(max_attempts=1, delay_ms=0))
    kwargs.setdefault("registry", InterceptorRegistry())
    kwargs.setdefault("decision_store", PendingDecisionStore())
    return ReasonActLoop("cashier", reasoner, tools=list(tools), interceptors=list(interceptors), **kwargs)


@pytest.fixture
def payments() -> _Payments:
    return _Payments()


@pytest.fixture
def pay_tool(payments) -> FunctionTool:
    return FunctionTool(payments.pay, name="pay", description="Pay an invoice")


class TestBasicRuns:
    @pytest.mark.asyncio
    async def test_tool_call_then_answer(self, scripted_reasoner, pay_tool, payments):
        reasoner = scripted_reasoner(
            [Reasoning.call("pay", {"amount": 10}, thought="pay it"), Reasoning.finish("Paid 10.")]
        )
        session = Session()

        trace = await _loop(reasoner, [pay_tool]).run(session, "Pay the invoice")

        assert trace.status == RunStatus.done
        assert trace.final_answer == "Paid 10."
        assert trace.iteration == 1
        assert trace.tool_call_count == 1
        assert payments.paid == [10]
        assert [s.kind for s in trace.steps] == [StepKind.reason, StepKind.act, StepKind.observe, StepKind.reason]
        assert _tool_messages(trace) == ["paid 10"]
        assert reasoner.calls[0]["tools"][0]["name"] == "pay"

    @pytest.mark.asyncio
    async def test_prompt_is_rendered_and_answer_written_to_session(self, scripted_reasoner):
        reasoner = scripted_reasoner([Reasoning.finish("Sunny")])
        session = Session(variables={"city": "Paris"})

        trace = await _loop(reasoner, output_key="weather").run(session, "Weather in #{city}?")

        assert trace.prompt == "Weather in Paris?"
        assert session.variables["weather"] == "Sunny"
        assert [(m.role, m.content) for m in session.messages] == [
            (ChatRole.user, "Weather in Paris?"),
            (ChatRole.assistant, "Sunny"),
        ]
        assert session.messages[-1].name == "cashier"

    @pytest.mark.asyncio
    async def test_team_members_do_not_record_the_prompt(self, scripted_reasoner):
        session = Session()

        await _loop(scripted_reasoner([Reasoning.finish("ok")])).run(session, "task", record_history=False)

        assert [m.role for m in session.messages] == [ChatRole.assistant]

    @pytest.mark.asyncio
    async def test_previous_messages_are_in_working_memory(self, scripted_reasoner):
        reasoner = scripted_reasoner([Reasoning.finish("first"), Reasoning.finish("second")])
        loop = _loop(reasoner)
        session = Session()

        await loop.run(session, "one")
        await loop.run(session, "two")

        contents = [m.content for m in reasoner.calls[1]["messages"]]
        assert contents[-3:] == ["one", "first", "two"]

    @pytest.mark.asyncio
    async def test_system_prompt_and_description_are_sent(self, scripted_reasoner):
        reasoner = scripted_reasoner([Reasoning.finish("ok")])
        loop = _loop(reasoner, options=ReActOptions(system_prompt="Be precise."), description="Handles invoices.")

        await loop.run(Session(), "task")

        first = reasoner.calls[0]["messages"][0]
        assert first.role == ChatRole.system
        assert first.content == "Be precise.\n\nHandles invoices."

    @pytest.mark.asyncio
    async def test_resume_without_previous_run_is_an_error(self, scripted_reasoner):
        with pytest.raises(InvalidTraceStateError):
            await _loop(scripted_reasoner()).run(Session())

    @pytest.mark.asyncio
    async def test_resume_of_finished_run_is_a_no_op(self, scripted_reasoner):
        reasoner = scripted_reasoner([Reasoning.finish("done")])
        loop = _loop(reasoner)
        session = Session()
        await loop.run(session, "task")

        trace = await loop.run(session)

        assert trace.final_answer == "done"
        assert len(reasoner.calls) == 1

    @pytest.mark.asyncio
    async def test_return_direct_tool_ends_the_run(self, scripted_reasoner):
        answer = FunctionTool(lambda q: f"42 for {q}", name="oracle", return_direct=True)
        reasoner = scripted_reasoner([Reasoning.call("oracle", {"q": "life"})])

        trace = await _loop(reasoner, [answer]).run(Session(), "ask")

        assert trace.status == RunStatus.done
        assert trace.final_answer == "42 for life"
        assert len(reasoner.calls) == 1

    @pytest.mark.asyncio
    async def test_empty_reply_is_nudged(self, scripted_reasoner):
        reasoner = scripted_reasoner([Reasoning.finish("  "), Reasoning.finish("Final Answer: 4")])

        trace = await _loop(reasoner).run(Session(), "2+2?")

        assert trace.final_answer == "4"
        assert trace.iteration == 1
        assert reasoner.calls[1]["messages"][-1].content == EMPTY_REPLY_NUDGE

    @pytest.mark.asyncio
    async def test_step_limit_fails_the_run(self, scripted_reasoner):
        reasoner = scripted_reasoner(fallback=lambda i: Reasoning.call("search", {"q": i}))
        search = FunctionTool(lambda q: f"result {q}", name="search")

        trace = await _loop(reasoner, [search], options=ReActOptions(max_steps=3)).run(Session(), "go")

        assert trace.status == RunStatus.failed
        assert trace.error == "Agent error: Maximum iterations reached."
        assert trace.iteration == 3
        assert trace.tool_call_count == 3


class TestFailures:
    @pytest.mark.asyncio
    async def test_tool_errors_become_observations(self, scripted_reasoner, pay_tool):
        def boom() -> str:
            raise RuntimeError("kaput")

        reasoner = scripted_reasoner(
            [
                Reasoning.call("missing"),
                Reasoning.call("pay", {"wrong": 1}),
                Reasoning.call("boom"),
                Reasoning.finish("gave up"),
            ]
        )

        trace = await _loop(reasoner, [pay_tool, FunctionTool(boom)]).run(Session(), "try")

        observations = _tool_messages(trace)
        assert trace.status == RunStatus.done
        assert observations[0] == "Tool [missing] not found."
        assert observations[1].startswith("Invalid arguments for [pay]: ")
        assert observations[2] == "Execution error in tool [boom]: kaput"

    @pytest.mark.asyncio
    async def test_on_error_replacement_becomes_the_observation(self, scripted_reasoner):
        class _Fallback(Interceptor):
            def on_error(self, ctx: InvocationContext, error: BaseException):
                return {"cached": True}

        def flaky() -> str:
            raise RuntimeError("offline")

        reasoner = scripted_reasoner([Reasoning.call("flaky"), Reasoning.finish("ok")])

        trace = await _loop(reasoner, [FunctionTool(flaky)], [_Fallback()]).run(Session(), "go")

        assert _tool_messages(trace) == ['{"cached": true}']

    @pytest.mark.asyncio
    async def test_failing_post_invoke_keeps_the_tool_result(self, scripted_reasoner, pay_tool):
        class _Broken(Interceptor):
            def post_invoke(self, ctx: InvocationContext, result: Any) -> Any:
                raise RuntimeError("formatter crashed")

        reasoner = scripted_reasoner([Reasoning.call("pay", {"amount": 1}), Reasoning.finish("done")])

        trace = await _loop(reasoner, [pay_tool], [_Broken()]).run(Session(), "go")

        assert _tool_messages(trace) == ["paid 1"]
        assert trace.final_answer == "done"

    @pytest.mark.asyncio
    async def test_pre_invoke_exception_blocks_the_call(self, scripted_reasoner, pay_tool, payments):
        class _Guard(Interceptor):
            def pre_invoke(self, ctx: InvocationContext) -> bool:
                raise PermissionError("no payments on sunday")

        reasoner = scripted_reasoner([Reasoning.call("pay", {"amount": 1}), Reasoning.finish("done")])

        trace = await _loop(reasoner, [pay_tool], [_Guard()]).run(Session(), "go")

        assert payments.paid == []
        assert _tool_messages(trace) == ["Tool call [pay] was blocked: no payments on sunday"]

    @pytest.mark.asyncio
    async def test_model_failure_fails_the_run_after_retries(self, scripted_reasoner):
        reasoner = scripted_reasoner(fallback=lambda i: ModelCallError("transport down"))
        loop = _loop(reasoner, retry_policy=RetryPolicy(max_attempts=2, delay_ms=0))
        session = Session()

        trace = await loop.run(session, "go")

        assert trace.status == RunStatus.failed
        assert trace.error == "Model call failed after 2 attempts: transport down"
        assert len(reasoner.calls) == 2
        assert [m.role for m in session.messages] == [ChatRole.user]


class TestHumanApproval:
    @pytest.mark.asyncio
    async def test_approve_with_modified_arguments(self, scripted_reasoner, pay_tool, payments):
        reasoner = scripted_reasoner(
            [Reasoning.call("pay", {"amount": 5000}), Reasoning.finish("Paid the reduced amount.")]
        )
        loop = _loop(reasoner, [pay_tool], [HITLInterceptor().on_sensitive_tool("pay", comment="Large payment")])
        session = Session(id="s-approve")

        trace = await loop.run(session, "Pay invoice 17")

        assert trace.status == RunStatus.pending
        assert trace.interrupt_reason == "Large payment"
        assert hitl.get_pending_task(session).args == {"amount": 5000}
        assert payments.paid == []

        still_waiting = await loop.run(session)
        assert still_waiting.status == RunStatus.pending
        assert len(reasoner.calls) == 1

        hitl.approve(session, "pay", {"amount": 800}, "Reduced by finance")
        restored = Session.from_json(session.to_json())

        trace = await loop.run(restored)

        assert payments.paid == [800]
        assert trace.status == RunStatus.done
        assert trace.final_answer == "Paid the reduced amount."
        assert _tool_messages(trace) == ["paid 800\n(Note: Reduced by finance)"]
        assert restored.decisions == {}

    @pytest.mark.asyncio
    async def test_reject_feeds_the_comment_back(self, scripted_reasoner, pay_tool, payments):
        reasoner = scripted_reasoner([Reasoning.call("pay", {"amount": 5000}), Reasoning.finish("Not paid.")])
        loop = _loop(reasoner, [pay_tool], [HITLInterceptor().on_sensitive_tool("pay")])
        session = Session()
        await loop.run(session, "Pay")

        hitl.reject(session, "pay", "budget frozen")
        trace = await loop.run(session)

        assert payments.paid == []
        assert trace.final_answer == "Not paid."
        assert _tool_messages(trace) == ["Operation [pay] was rejected by the human reviewer: budget frozen"]

    @pytest.mark.asyncio
    async def test_skip_is_distinct_from_reject(self, scripted_reasoner, pay_tool, payments):
        reasoner = scripted_reasoner([Reasoning.call("pay", {"amount": 5000}), Reasoning.finish("Moved on.")])
        loop = _loop(reasoner, [pay_tool], [HITLInterceptor().on_sensitive_tool("pay")])
        session = Session()
        await loop.run(session, "Pay")

        hitl.skip(session, "pay")
        trace = await loop.run(session)

        assert payments.paid == []
        assert _tool_messages(trace) == [
            "Operation [pay] was skipped for now by the human reviewer: continue with the next step"
        ]

    @pytest.mark.asyncio
    async def test_decision_for_another_tool_does_not_resume(self, scripted_reasoner, pay_tool):
        reasoner = scripted_reasoner([Reasoning.call("pay", {"amount": 5000})])
        loop = _loop(reasoner, [pay_tool], [HITLInterceptor().on_sensitive_tool("pay")])
        session = Session()
        await loop.run(session, "Pay")

        hitl.approve(session, "refund")
        trace = await loop.run(session)

        assert trace.status == RunStatus.pending
        assert "refund" in session.decisions

    @pytest.mark.asyncio
    async def test_new_prompt_discards_the_decision_of_the_abandoned_run(self, scripted_reasoner, pay_tool, payments):
        reasoner = scripted_reasoner([Reasoning.call("pay", {"amount": 5}), Reasoning.call("pay", {"amount": 99999})])
        loop = _loop(reasoner, [pay_tool], [HITLInterceptor().on_sensitive_tool("pay")])
        session = Session()
        await loop.run(session, "Pay the small invoice")
        hitl.approve(session, "pay")

        second = await loop.run(session, "Pay the large invoice")
        assert second.status == RunStatus.pending
        assert hitl.get_pending_task(session).args == {"amount": 99999}
        assert session.decisions == {}

        trace = await loop.run(session)

        assert trace.status == RunStatus.pending
        assert payments.paid == []

    @pytest.mark.asyncio
    async def test_decision_made_for_another_task_is_dropped(self, scripted_reasoner, pay_tool, payments):
        reasoner = scripted_reasoner([Reasoning.call("pay", {"amount": 5000})])
        loop = _loop(reasoner, [pay_tool], [HITLInterceptor().on_sensitive_tool("pay")])
        session = Session()
        await loop.run(session, "Pay")

        session.decisions["pay"] = HITLDecision(outcome="approve", task_id="an-older-task")
        trace = await loop.run(session)

        assert trace.status == RunStatus.pending
        assert session.decisions == {}
        assert payments.paid == []

    @pytest.mark.asyncio
    async def test_stale_decisions_are_cleared_when_the_run_ends(self, scripted_reasoner):
        session = Session()
        session.decisions["old_tool"] = HITLDecision.approve()

        await _loop(scripted_reasoner([Reasoning.finish("ok")])).run(session, "task")

        assert session.decisions == {}

    @pytest.mark.asyncio
    async def test_repeated_action_is_held_for_review(self, scripted_reasoner):
        search = FunctionTool(lambda q: "nothing", name="search")
        reasoner = scripted_reasoner(fallback=lambda i: Reasoning.call("search", {"q": "same"}))
        loop = _loop(reasoner, [search], [StopLoopInterceptor(window_size=4, max_repeat_count=2)])

        trace = await loop.run(Session(), "find it")

        assert trace.status == RunStatus.pending
        assert trace.tool_call_count == 1
        assert trace.pending_task.comment.startswith("Potential infinite loop")

    @pytest.mark.asyncio
    async def test_registry_interceptors_wrap_every_call(self, scripted_reasoner, pay_tool):
        seen: List[str] = []

        class _Audit(Interceptor):
            def pre_invoke(self, ctx: InvocationContext) -> bool:
                seen.append(ctx.tool_name)
                return True

        registry = InterceptorRegistry()
        registry.register(_Audit())
        reasoner = scripted_reasoner([Reasoning.call("pay", {"amount": 1}), Reasoning.finish("ok")])

        await _loop(reasoner, [pay_tool], registry=registry).run(Session(), "go")

        assert seen == ["pay"]


class TestStepLimitFeedback:
    @staticmethod
    def _searching_loop(scripted_reasoner, **options: Any) -> ReasonActLoop:
        reasoner = scripted_reasoner(fallback=lambda i: Reasoning.call("search", {"q": i}))
        search = FunctionTool(lambda q: f"result {q}", name="search")
        opts = ReActOptions(max_steps=10, max_steps_limit=20, step_extension=10, feedback_mode=True, **options)
        return _loop(reasoner, [search], options=opts)

    @pytest.mark.asyncio
    async def test_approval_extends_the_limit_once(self, scripted_reasoner):
        loop = self._searching_loop(scripted_reasoner)
        session = Session()

        trace = await loop.run(session, "research forever")

        assert trace.status == RunStatus.pending
        assert trace.pending_task.tool_name == FEEDBACK_TOOL_NAME
        assert trace.iteration == 9
        assert "9 of 10 steps" in trace.interrupt_reason

        hitl.approve(session, FEEDBACK_TOOL_NAME)
        trace = await loop.run(session)

        assert trace.max_steps == 20
        assert len(trace.resolved_task_ids) == 1
        assert trace.status == RunStatus.failed
        assert trace.error == "Agent error: Maximum iterations reached."
        assert trace.tool_call_count == 20

    @pytest.mark.asyncio
    async def test_resolved_sentinel_does_not_extend_twice(self, scripted_reasoner):
        loop = self._searching_loop(scripted_reasoner)
        session = Session()
        trace = await loop.run(session, "research")
        first_task = trace.pending_task
        trace.resolved_task_ids.append(first_task.id)

        hitl.approve(session, FEEDBACK_TOOL_NAME)
        trace = await loop.run(session)

        assert trace.max_steps == 10
        assert trace.status == RunStatus.pending
        assert trace.pending_task.id != first_task.id

    @pytest.mark.asyncio
    async def test_reject_fails_with_the_step_limit_error(self, scripted_reasoner):
        loop = self._searching_loop(scripted_reasoner)
        session = Session()
        await loop.run(session, "research")

        hitl.reject(session, FEEDBACK_TOOL_NAME, "enough")
        trace = await loop.run(session)

        assert trace.status == RunStatus.failed
        assert trace.error == "Agent error: Maximum iterations reached. enough"

    @pytest.mark.asyncio
    async def test_skip_finishes_with_the_last_observation(self, scripted_reasoner):
        loop = self._searching_loop(scripted_reasoner)
        session = Session()
        await loop.run(session, "research")

        hitl.skip(session, FEEDBACK_TOOL_NAME)
        trace = await loop.run(session)

        assert trace.status == RunStatus.done
        assert trace.final_answer == "result 8"

    @pytest.mark.asyncio
    async def test_no_sentinel_once_the_ceiling_is_reached(self, scripted_reasoner):
        reasoner = scripted_reasoner(fallback=lambda i: Reasoning.call("search", {"q": i}))
        search = FunctionTool(lambda q: f"result {q}", name="search")
        opts = ReActOptions(max_steps=5, max_steps_limit=5, feedback_mode=True)

        trace = await _loop(reasoner, [search], options=opts).run(Session(), "go")

        assert trace.status == RunStatus.failed
        assert trace.iteration == 5


class TestPlanningMode:
    @pytest.mark.asyncio
    async def test_plan_is_built_and_progress_tracked(self, scripted_reasoner):
        reasoner = scripted_reasoner(
            [
                Reasoning.finish("1. Search flights\n2. Book hotel"),
                Reasoning.call("update_plan_progress", {"next_plan_index": 2}),
                Reasoning.finish("Trip booked."),
            ]
        )
        loop = _loop(reasoner, options=ReActOptions(planning_mode=True))

        trace = await loop.run(Session(), "Plan a trip to Rome")

        assert trace.plans == ["Search flights", "Book hotel"]
        assert trace.plan_index == 1
        assert trace.final_answer == "Trip booked."
        assert _tool_messages(trace) == ["Plan progress updated. Next is step 2: Book hotel"]
        tool_names = {t["name"] for t in reasoner.calls[1]["tools"]}
        assert {"update_plan_progress", "revise_plan"} <= tool_names
        assert any("Current plan" in m.content for m in reasoner.calls[1]["messages"] if m.role == ChatRole.system)

    @pytest.mark.asyncio
    async def test_simple_task_clears_a_previous_plan(self, scripted_reasoner):
        reasoner = scripted_reasoner(
            [
                Reasoning.finish("1. a\n2. b"),
                Reasoning.finish("first done"),
                Reasoning.finish("What is 2 + 2"),
                Reasoning.finish("4"),
            ]
        )
        loop = _loop(reasoner, options=ReActOptions(planning_mode=True))
        session = Session()

        first = await loop.run(session, "complex task")
        assert first.plans == ["a", "b"]

        second = await loop.run(session, "What is 2 + 2?")
        assert second.plans == []
        assert second.final_answer == "4"


class TestStreaming:
    @pytest.mark.asyncio
    async def test_stream_yields_progress_chunks(self, scripted_reasoner, pay_tool):
        reasoner = scripted_reasoner([Reasoning.call("pay", {"amount": 3}), Reasoning.finish("Paid.")])

        chunks = [c async for c in _loop(reasoner, [pay_tool]).stream(Session(), "Pay")]

        assert [c.kind for c in chunks] == [
            ChunkKind.reason,
            ChunkKind.action,
            ChunkKind.observation,
            ChunkKind.reason,
            ChunkKind.status,
        ]
        assert chunks[2].content == "paid 3"
        assert chunks[-1].content == "done"
        assert all(c.agent_name == "cashier" for c in chunks)


class TestWorkingMemory:
    @pytest.mark.asyncio
    async def test_long_run_trims_old_observations(self, scripted_reasoner):
        reasoner = scripted_reasoner(
            fallback=lambda i: Reasoning.call("search", {"q": i}) if i < 5 else Reasoning.finish("found it")
        )
        search = FunctionTool(lambda q: f"result {q}", name="search")
        options = ReActOptions(context_max_messages=4)

        trace = await _loop(reasoner, [search], options=options).run(Session(), "go")

        markers = [m for m in trace.working_memory if m.content.startswith(TRIM_MARKER)]
        assert trace.status == RunStatus.done
        assert trace.tool_call_count == 5
        assert len(markers) == 1
        assert markers[0].role == ChatRole.system
        assert trace.working_memory[0].content == "go"
        assert len(trace.working_memory) <= 7
        assert any(m.content.startswith(TRIM_MARKER) for m in reasoner.calls[-1]["messages"])
        assert _tool_messages(trace)[-1] == "result 4"


class TestDefaultsFromSettings:
    @pytest.mark.asyncio
    async def test_defaults_follow_settings(self, monkeypatch, scripted_reasoner):
        custom = TandemSettings(max_steps=4, model_max_retries=2, model_retry_delay_ms=0, context_max_messages=6)
        monkeypatch.setattr(models_module, "settings", custom)
        monkeypatch.setattr(retry_module, "settings", custom)
        reasoner = scripted_reasoner(fallback=lambda i: ModelCallError("transport down"))
        loop = ReasonActLoop(
            "cashier", reasoner, registry=InterceptorRegistry(), decision_store=PendingDecisionStore()
        )

        trace = await loop.run(Session(), "go")

        assert loop.options.max_steps == 4
        assert loop.options.context_max_messages == 6
        assert trace.status == RunStatus.failed
        assert len(reasoner.calls) == 2
