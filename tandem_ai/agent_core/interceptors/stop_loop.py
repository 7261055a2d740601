from __future__ import annotations

"""Guard against an agent repeating the same action.

Each call is fingerprinted by tool name plus its arguments serialized with
sorted keys. Fingerprints live on the trace, so the guard survives a
suspend/resume round trip through JSON.
"""

import json
import logging
from typing import Any, Dict

from ..schemas.domain import HITLTask
from .base import InvocationContext, Interceptor

logger = logging.getLogger(__name__)


def action_fingerprint(tool_name: str, args: Dict[str, Any]) -> str:
    return f"{tool_name}:{json.dumps(args, sort_keys=True, default=str)}"


class StopLoopInterceptor(Interceptor):
    """
    Suspend the run when one action repeats ``max_repeat_count`` times within
    the last ``window_size`` actions.

    The suspension is an ordinary ``HITLTask`` for the repeated call: approving
    it lets the call through once, rejecting it feeds the warning back to the
    model.
    """

    def __init__(self, *, window_size: int = 6, max_repeat_count: int = 3, order: int = -10) -> None:
        self.window_size = max(4, window_size)
        self.max_repeat_count = max(2, max_repeat_count)
        self.order = order

    def pre_invoke(self, ctx: InvocationContext) -> bool:
        trace = ctx.trace
        fingerprint = action_fingerprint(ctx.tool_name, ctx.args)

        if not ctx.approved:
            recent = trace.action_fingerprints[-(self.window_size - 1) :]
            repeats = recent.count(fingerprint) + 1
            if repeats >= self.max_repeat_count:
                comment = (
                    f"Potential infinite loop: tool [{ctx.tool_name}] was requested {repeats} times "
                    f"with identical arguments within the last {self.window_size} actions."
                )
                task = HITLTask(
                    tool_name=ctx.tool_name, args=dict(ctx.args), comment=comment, agent_name=ctx.agent_name
                )
                trace.suspend(task, comment)
                logger.warning("Agent [%s]: %s", ctx.agent_name, comment)
                return False

        trace.action_fingerprints.append(fingerprint)
        del trace.action_fingerprints[: -self.window_size]
        return True
