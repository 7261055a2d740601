"""Agent execution core: ReAct loop, human approval, teams and sessions.

Design overview
---------------

- ``ReasonActLoop`` drives one agent through reason/act/observe cycles. Every
  tool call passes through an ``InterceptorChain``; an interceptor may
  suspend the run for human approval.
- All run state lives in an ``ExecutionTrace`` stored on the ``Session``. A
  suspended session can be serialized, stored and resumed elsewhere.
- ``TeamCoordinator`` runs several loops under a ``TeamProtocol`` and stops
  runaway collaboration with a ``LoopDetector``.

Typical usage
-------------

    loop = ReasonActLoop("assistant", reasoner, tools=[...], interceptors=[HITLInterceptor().on_sensitive_tool("pay")])
    trace = await loop.run(session, "Pay the invoice")
    if trace.is_pending:
        hitl.approve(session, trace.pending_task.tool_name, {"amount": 800})
        trace = await loop.run(session)
"""

from . import hitl
from .errors import (
    InvalidToolArgumentsError,
    InvalidTraceStateError,
    ModelCallError,
    SessionNotFoundError,
    TandemError,
    ToolExecutionError,
    ToolNotFoundError,
)
from .interceptors import (
    ApprovalPolicy,
    HITLInterceptor,
    Interceptor,
    InterceptorChain,
    InvocationContext,
    RiskPolicyInterceptor,
    StopLoopInterceptor,
    ToolTimingInterceptor,
    global_interceptors,
)
from .hitl import PendingDecisionStore
from .reasoning import PydanticAIReasoner, Reasoner, Reasoning, RetryPolicy
from .runtime import LoopChunk, ReActOptions, ReasonActLoop
from .schemas import (
    FEEDBACK_TOOL_NAME,
    ExecutionTrace,
    HITLDecision,
    HITLOutcome,
    HITLTask,
    RunStatus,
    Session,
    TeamStep,
    TeamTrace,
)
from .service import AgentService
from .session import FileSessionStore, InMemorySessionStore, SqlSessionStore
from .team import (
    HandoffProtocol,
    LoopDetector,
    ParallelProtocol,
    ReasonerRouter,
    RouterProtocol,
    SequentialProtocol,
    TeamCoordinator,
    TeamOptions,
)
from .tools import FunctionTool, Tool, ToolRegistry, tool

__all__ = [
    "AgentService",
    "ApprovalPolicy",
    "ExecutionTrace",
    "FEEDBACK_TOOL_NAME",
    "FileSessionStore",
    "FunctionTool",
    "HITLDecision",
    "HandoffProtocol",
    "HITLInterceptor",
    "HITLOutcome",
    "HITLTask",
    "InMemorySessionStore",
    "Interceptor",
    "InterceptorChain",
    "InvalidToolArgumentsError",
    "InvalidTraceStateError",
    "InvocationContext",
    "LoopChunk",
    "LoopDetector",
    "ModelCallError",
    "ParallelProtocol",
    "PendingDecisionStore",
    "PydanticAIReasoner",
    "ReActOptions",
    "ReasonActLoop",
    "Reasoner",
    "Reasoning",
    "ReasonerRouter",
    "RetryPolicy",
    "RiskPolicyInterceptor",
    "RouterProtocol",
    "RunStatus",
    "SequentialProtocol",
    "Session",
    "SessionNotFoundError",
    "SqlSessionStore",
    "StopLoopInterceptor",
    "TandemError",
    "TeamCoordinator",
    "TeamOptions",
    "TeamStep",
    "TeamTrace",
    "Tool",
    "ToolExecutionError",
    "ToolNotFoundError",
    "ToolRegistry",
    "ToolTimingInterceptor",
    "global_interceptors",
    "hitl",
    "tool",
]
