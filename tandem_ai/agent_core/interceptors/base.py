from __future__ import annotations

"""Interceptor protocol and invocation context.

An interceptor wraps one unit of work (a tool call) with four hooks. Every
hook has a no-op default so implementations override only what they need.

Lifecycle
---------

- ``pre_invoke`` runs in ascending ``order``. Returning ``False`` aborts the
  call; the interceptor that aborts is not considered started.
- ``post_invoke`` and ``on_error`` run in reverse order.
- ``after_completion`` runs, in reverse order, for exactly the interceptors
  whose ``pre_invoke`` returned ``True``.
"""

from dataclasses import dataclass, field
from typing import TYPE_CHECKING, Any, Dict, Optional

if TYPE_CHECKING:
    from ..schemas.session import Session
    from ..schemas.trace import ExecutionTrace


@dataclass
class InvocationContext:
    """State shared by the interceptors of one tool call.

    Attributes
    ----------
    session:
        The session the run belongs to.
    trace:
        The running agent's trace. Interceptors suspend the run through it.
    agent_name:
        Name of the agent issuing the call.
    tool_name:
        The tool being invoked.
    args:
        Argument map. Interceptors may rewrite it before the tool runs.
    approved:
        ``True`` when a human already approved this exact call; approval gates
        must let it through.
    attributes:
        Scratch space for interceptors (timers, span ids).
    """

    session: "Session"
    trace: "ExecutionTrace"
    agent_name: str
    tool_name: str
    args: Dict[str, Any]
    approved: bool = False
    attributes: Dict[str, Any] = field(default_factory=dict)


class Interceptor:
    """Base class for cross-cutting tool call handlers."""

    order: int = 0

    def pre_invoke(self, ctx: InvocationContext) -> bool:
        return True

    def post_invoke(self, ctx: InvocationContext, result: Any) -> Any:
        return result

    def on_error(self, ctx: InvocationContext, error: BaseException) -> Optional[Any]:
        """Return a replacement result to suppress ``error``, or ``None``."""
        return None

    def after_completion(self, ctx: InvocationContext) -> None:
        return None
