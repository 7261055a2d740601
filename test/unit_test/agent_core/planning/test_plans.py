from __future__ import annotations

import pytest

from tandem_ai.agent_core.planning.plans import (
    REVISE_PLAN_TOOL,
    UPDATE_PLAN_PROGRESS_TOOL,
    Planner,
    apply_plan,
    clean_plans,
    parse_plan_text,
    plan_context,
    plan_tool_schemas,
    revise_plan,
    run_plan_action,
    update_plan_progress,
)
from tandem_ai.agent_core.reasoning.base import Reasoning
from tandem_ai.agent_core.schemas.trace import ExecutionTrace


def _planned(*steps: str) -> ExecutionTrace:
    trace = ExecutionTrace(agent_name="planner")
    apply_plan(trace, list(steps))
    return trace


def test_clean_plans_strips_decoration():
    raw = ["1. **Check the weather**.", "2) `Book` a hotel;", "- ", "  3 - Pack bags"]

    assert clean_plans(raw) == ["Check the weather", "Book a hotel", "Pack bags"]
    assert clean_plans(None) == []


def test_parse_plan_text():
    assert parse_plan_text("1. a\n\n2. b\n") == ["a", "b"]


def test_single_step_plan_is_dropped():
    trace = _planned("only step")

    assert trace.plans == []
    assert plan_context(trace) is None


def test_update_progress_is_one_based_and_clamped():
    trace = _planned("a", "b", "c")

    assert update_plan_progress(trace, 2) == "Plan progress updated. Next is step 2: b"
    assert trace.plan_index == 1

    assert update_plan_progress(trace, 99) == "Plan progress updated. All plan steps are complete."
    assert trace.plan_index == 3

    update_plan_progress(trace, -4)
    assert trace.plan_index == 0


def test_update_progress_without_plan():
    assert update_plan_progress(ExecutionTrace(agent_name="a"), 2).startswith("Error: no plan is active")


def test_revise_replaces_tail_and_rolls_back_cursor():
    trace = _planned("check weather", "go hiking", "dinner")
    update_plan_progress(trace, 3)

    message = revise_plan(trace, ["1. visit the museum", "dinner"], 2)

    assert message == "Plan revised from step 2. Continue with the new plan."
    assert trace.plans == ["check weather", "visit the museum", "dinner"]
    assert trace.plan_index == 1


def test_revise_after_cursor_keeps_cursor():
    trace = _planned("a", "b", "c")

    revise_plan(trace, ["x"], 3)

    assert trace.plans == ["a", "b", "x"]
    assert trace.plan_index == 0


def test_revise_with_no_valid_steps_keeps_plan():
    trace = _planned("a", "b")

    assert revise_plan(trace, ["  ", "1."], 1).startswith("No valid revised steps")
    assert trace.plans == ["a", "b"]


def test_revise_with_a_string_reads_one_step_per_line():
    trace = _planned("a", "b")

    revise_plan(trace, "book the museum", 2)
    assert trace.plans == ["a", "book the museum"]

    run_plan_action(trace, REVISE_PLAN_TOOL, {"new_steps": "1. pack\n2. leave", "from_index": 2})
    assert trace.plans == ["a", "pack", "leave"]


def test_revise_without_plan():
    assert revise_plan(ExecutionTrace(agent_name="a"), ["x"], 1).startswith("Error")


def test_run_plan_action_dispatches_and_reports_bad_arguments():
    trace = _planned("a", "b")

    assert run_plan_action(trace, UPDATE_PLAN_PROGRESS_TOOL, {"next_plan_index": 2}).endswith("step 2: b")
    assert run_plan_action(trace, REVISE_PLAN_TOOL, {"new_steps": ["c"], "from_index": 2}).startswith("Plan revised")
    assert trace.plans == ["a", "c"]
    assert run_plan_action(trace, UPDATE_PLAN_PROGRESS_TOOL, {"next_plan_index": "two"}).startswith(
        f"Invalid arguments for [{UPDATE_PLAN_PROGRESS_TOOL}]"
    )


def test_plan_context_marks_progress():
    trace = _planned("a", "b", "c")
    update_plan_progress(trace, 2)

    context = plan_context(trace)

    assert "done 1. a" in context
    assert "-> 2. b" in context
    assert {s["name"] for s in plan_tool_schemas()} == {REVISE_PLAN_TOOL, UPDATE_PLAN_PROGRESS_TOOL}


@pytest.mark.asyncio
async def test_planner_returns_steps_for_complex_tasks(scripted_reasoner):
    reasoner = scripted_reasoner([Reasoning.finish("1. Search flights\n2. Book hotel")])

    steps = await Planner(reasoner).plan("Plan a trip", context="travel agent")

    assert steps == ["Search flights", "Book hotel"]
    messages = reasoner.calls[0]["messages"]
    assert messages[-1].content == "Plan a trip"
    assert messages[1].content == "travel agent"


@pytest.mark.asyncio
async def test_planner_skips_simple_tasks(scripted_reasoner):
    reasoner = scripted_reasoner([Reasoning.finish("What is 2 + 2")])

    assert await Planner(reasoner).plan("What is 2 + 2?") == []
