from __future__ import annotations

from tandem_ai.agent_core.interceptors.base import InvocationContext, Interceptor
from tandem_ai.agent_core.interceptors.chain import InterceptorChain
from tandem_ai.agent_core.interceptors.registry import InterceptorRegistry
from tandem_ai.agent_core.interceptors.timing import DURATION_KEY, ToolTimingInterceptor
from tandem_ai.agent_core.schemas.session import Session
from tandem_ai.agent_core.schemas.trace import ExecutionTrace


class _Deny(Interceptor):
    def pre_invoke(self, ctx: InvocationContext) -> bool:
        return False


def _ctx() -> InvocationContext:
    return InvocationContext(
        session=Session(), trace=ExecutionTrace(agent_name="a"), agent_name="a", tool_name="search", args={}
    )


def test_timing_is_recorded_after_completion():
    timing = ToolTimingInterceptor()
    ctx = _ctx()
    chain = InterceptorChain([timing])

    assert chain.apply_pre_invoke(ctx)
    chain.trigger_after_completion(ctx)

    assert ctx.attributes[DURATION_KEY] >= 0
    assert timing.records[0][0] == "search"


def test_timer_is_closed_when_a_later_interceptor_aborts():
    timing = ToolTimingInterceptor()
    ctx = _ctx()

    assert InterceptorChain([timing, _Deny()]).apply_pre_invoke(ctx) is False

    assert len(timing.records) == 1
    assert DURATION_KEY in ctx.attributes


def test_timing_keeps_only_the_latest_records():
    timing = ToolTimingInterceptor(keep_last=3)
    chain = InterceptorChain([timing])

    for name in ["a", "b", "c", "d", "e"]:
        ctx = InvocationContext(
            session=Session(), trace=ExecutionTrace(agent_name="a"), agent_name="a", tool_name=name, args={}
        )
        chain.apply_pre_invoke(ctx)
        chain.trigger_after_completion(ctx)

    assert [name for name, _ in timing.records] == ["c", "d", "e"]


def test_registry_register_unregister_and_snapshot():
    registry = InterceptorRegistry()
    a, b = ToolTimingInterceptor(), _Deny()

    registry.register(a)
    registry.register(a)
    registry.register(b)
    snapshot = registry.snapshot()
    registry.unregister(a)

    assert snapshot == (a, b)
    assert registry.snapshot() == (b,)
    assert len(registry) == 1

    registry.clear()
    assert len(registry) == 0
