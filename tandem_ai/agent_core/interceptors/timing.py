from __future__ import annotations

import logging
import time
from collections import deque
from typing import Deque, Tuple

from .base import InvocationContext, Interceptor

logger = logging.getLogger(__name__)

_STARTED_KEY = "tool_timing.started"
DURATION_KEY = "tool_timing.duration_ms"


class ToolTimingInterceptor(Interceptor):
    """Measure wall-clock time of each tool call.

    The timer opens in ``pre_invoke`` and closes in ``after_completion``, so a
    call that is aborted by a later interceptor is still closed. Only the
    last ``keep_last`` measurements are kept in ``records``.
    """

    def __init__(self, *, order: int = -100, keep_last: int = 100) -> None:
        self.order = order
        self.records: Deque[Tuple[str, float]] = deque(maxlen=keep_last)

    def pre_invoke(self, ctx: InvocationContext) -> bool:
        ctx.attributes[_STARTED_KEY] = time.perf_counter()
        return True

    def after_completion(self, ctx: InvocationContext) -> None:
        started = ctx.attributes.pop(_STARTED_KEY, None)
        if started is None:
            return
        duration_ms = (time.perf_counter() - started) * 1000.0
        ctx.attributes[DURATION_KEY] = duration_ms
        self.records.append((ctx.tool_name, duration_ms))
        logger.debug("Tool [%s] of agent [%s] took %.1f ms", ctx.tool_name, ctx.agent_name, duration_ms)
