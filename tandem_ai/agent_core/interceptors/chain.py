from __future__ import annotations

"""Ordered execution of interceptors around one unit of work.

A chain instance is single use: build one per tool call. It remembers how far
``apply_pre_invoke`` got so cleanup reaches exactly the interceptors that
started, and it runs that cleanup at most once.
"""

import logging
from typing import Any, Iterable, List, Optional

from .base import InvocationContext, Interceptor

logger = logging.getLogger(__name__)


class InterceptorChain:
    def __init__(self, interceptors: Iterable[Interceptor] = ()) -> None:
        # sorted() is stable, so equal orders keep registration order
        self._interceptors: List[Interceptor] = sorted(interceptors, key=lambda i: i.order)
        self._interceptor_index = -1
        self._completed = False

    @property
    def interceptors(self) -> List[Interceptor]:
        return list(self._interceptors)

    @property
    def started_count(self) -> int:
        return self._interceptor_index + 1

    def apply_pre_invoke(self, ctx: InvocationContext) -> bool:
        """
        Run every pre-hook in order.

        Returns:
            ``True`` when all interceptors let the call proceed. ``False`` when one
            aborted; the started interceptors have then already been completed.

        Raises:
            Whatever a pre-hook raised, after the started interceptors were completed.
        """
        for i, interceptor in enumerate(self._interceptors):
            try:
                proceed = interceptor.pre_invoke(ctx)
            except Exception:
                self.trigger_after_completion(ctx)
                raise
            if not proceed:
                logger.debug("Interceptor %s aborted tool [%s]", type(interceptor).__name__, ctx.tool_name)
                self.trigger_after_completion(ctx)
                return False
            self._interceptor_index = i
        return True

    def apply_post_invoke(self, ctx: InvocationContext, result: Any) -> Any:
        for interceptor in reversed(self._interceptors):
            try:
                result = interceptor.post_invoke(ctx, result)
            except Exception:
                logger.warning(
                    "post_invoke of %s failed for tool [%s]; keeping previous result",
                    type(interceptor).__name__,
                    ctx.tool_name,
                    exc_info=True,
                )
        return result

    def apply_on_error(self, ctx: InvocationContext, error: BaseException) -> Optional[Any]:
        """Return the first non-``None`` replacement, or ``None`` when the error stands."""
        for interceptor in reversed(self._interceptors):
            try:
                replacement = interceptor.on_error(ctx, error)
            except Exception:
                logger.warning(
                    "on_error of %s failed for tool [%s]",
                    type(interceptor).__name__,
                    ctx.tool_name,
                    exc_info=True,
                )
                continue
            if replacement is not None:
                return replacement
        return None

    def trigger_after_completion(self, ctx: InvocationContext) -> None:
        if self._completed:
            return
        self._completed = True
        for i in range(self._interceptor_index, -1, -1):
            interceptor = self._interceptors[i]
            try:
                interceptor.after_completion(ctx)
            except Exception:
                logger.warning(
                    "after_completion of %s failed for tool [%s]",
                    type(interceptor).__name__,
                    ctx.tool_name,
                    exc_info=True,
                )
