from __future__ import annotations

"""Human-in-the-loop approval gate.

``HITLInterceptor`` holds a strategy per tool name. A strategy inspects the
running trace and the call arguments and returns a comment when the call needs
a human, or ``None`` to let it through. A flagged call suspends the run with a
``HITLTask`` and aborts the chain; the tool is not executed.
"""

import logging
from typing import Any, Callable, Dict, Optional

from ..schemas.domain import HITLTask
from ..schemas.trace import ExecutionTrace
from .base import InvocationContext, Interceptor

logger = logging.getLogger(__name__)

ApprovalStrategy = Callable[[ExecutionTrace, Dict[str, Any]], Optional[str]]


def always_require(comment: Optional[str] = None) -> ApprovalStrategy:
    """Strategy that flags every call of the tool it is bound to."""

    def _strategy(trace: ExecutionTrace, args: Dict[str, Any]) -> Optional[str]:
        return comment or "This operation is sensitive and requires human approval."

    return _strategy


class HITLInterceptor(Interceptor):
    def __init__(self, *, order: int = 0) -> None:
        self.order = order
        self._strategies: Dict[str, ApprovalStrategy] = {}

    def on_tool(self, tool_name: str, strategy: ApprovalStrategy) -> HITLInterceptor:
        """Gate ``tool_name`` with a conditional strategy."""
        self._strategies[tool_name] = strategy
        return self

    def on_sensitive_tool(self, *tool_names: str, comment: Optional[str] = None) -> HITLInterceptor:
        """Gate every call of the given tools unconditionally."""
        for name in tool_names:
            self._strategies[name] = always_require(comment)
        return self

    def is_sensitive(self, tool_name: str) -> bool:
        return tool_name in self._strategies

    def pre_invoke(self, ctx: InvocationContext) -> bool:
        if ctx.approved:
            return True
        strategy = self._strategies.get(ctx.tool_name)
        if strategy is None:
            return True

        comment = strategy(ctx.trace, ctx.args)
        if comment is None:
            return True

        task = HITLTask(tool_name=ctx.tool_name, args=dict(ctx.args), comment=comment, agent_name=ctx.agent_name)
        ctx.trace.suspend(task, comment)
        logger.info("Agent [%s] suspended before tool [%s]: %s", ctx.agent_name, ctx.tool_name, comment)
        return False
