from __future__ import annotations

import asyncio
import logging
from typing import Any, Awaitable, Callable, Tuple, Type, TypeVar

from ...core.config import settings
from ..errors import ModelCallError

logger = logging.getLogger(__name__)

T = TypeVar("T")


class RetryPolicy:
    """Bounded retry with linear back-off for model calls.

    Attempt ``n`` (1-based) that fails with one of ``retry_on`` waits
    ``delay_ms * n`` before the next attempt. Other exceptions propagate at
    once. After the last attempt the error is re-raised as ``ModelCallError``.
    """

    def __init__(
        self,
        max_attempts: int = 3,
        delay_ms: int = 500,
        retry_on: Tuple[Type[BaseException], ...] = (ModelCallError,),
    ) -> None:
        self.max_attempts = max(1, max_attempts)
        self.delay_ms = max(0, delay_ms)
        self.retry_on = retry_on

    @classmethod
    def from_settings(cls) -> RetryPolicy:
        loop = settings.loop
        return cls(max_attempts=loop.model_max_retries, delay_ms=loop.model_retry_delay_ms)

    async def call(self, fn: Callable[..., Awaitable[T]], *args: Any, **kwargs: Any) -> T:
        last_exc: BaseException | None = None
        for attempt in range(1, self.max_attempts + 1):
            try:
                return await fn(*args, **kwargs)
            except self.retry_on as exc:
                last_exc = exc
                if attempt >= self.max_attempts:
                    break
                logger.warning(f"Model call failed (attempt {attempt}/{self.max_attempts}): {exc}")
                if self.delay_ms:
                    await asyncio.sleep(self.delay_ms * attempt / 1000.0)
        raise ModelCallError(
            f"Model call failed after {self.max_attempts} attempts: {last_exc}", attempts=self.max_attempts
        ) from last_exc
