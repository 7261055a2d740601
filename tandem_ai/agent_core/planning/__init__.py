"""Optional task decomposition for the ReAct loop."""

from .plans import (
    PLAN_TOOL_NAMES,
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

__all__ = [
    "PLAN_TOOL_NAMES",
    "REVISE_PLAN_TOOL",
    "UPDATE_PLAN_PROGRESS_TOOL",
    "Planner",
    "apply_plan",
    "clean_plans",
    "parse_plan_text",
    "plan_context",
    "plan_tool_schemas",
    "revise_plan",
    "run_plan_action",
    "update_plan_progress",
]
