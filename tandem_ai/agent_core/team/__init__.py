"""Multi-agent coordination.

- ``TeamCoordinator`` schedules members on a LangGraph graph.
- ``TeamProtocol`` implementations decide who acts next. ``HandoffProtocol`` lets
  members pass the task to each other with a ``transfer_to`` tool.
- ``LoopDetector`` stops teams that stopped making progress.
"""

from .coordinator import TeamCoordinator, TeamOptions
from .loop_detector import LoopDetector, levenshtein, similarity
from .protocols import (
    TRANSFER_TOOL_NAME,
    Dispatch,
    HandoffProtocol,
    ParallelProtocol,
    RouterProtocol,
    SequentialProtocol,
    TeamProtocol,
    default_quality_gate,
    parse_transfer,
)
from .router import (
    MemberInfo,
    PydanticAIRouter,
    ReasonerRouter,
    RouteDecision,
    Router,
    RoutingChoice,
    parse_route,
)

__all__ = [
    "Dispatch",
    "HandoffProtocol",
    "LoopDetector",
    "MemberInfo",
    "ParallelProtocol",
    "PydanticAIRouter",
    "ReasonerRouter",
    "RouteDecision",
    "Router",
    "RouterProtocol",
    "RoutingChoice",
    "SequentialProtocol",
    "TRANSFER_TOOL_NAME",
    "TeamCoordinator",
    "TeamOptions",
    "TeamProtocol",
    "default_quality_gate",
    "levenshtein",
    "parse_route",
    "parse_transfer",
    "similarity",
]
