from __future__ import annotations

"""Process-wide interceptor registry.

Interceptors registered here are added to every ``ReasonActLoop`` run. Writes
are serialized by a lock and replace an immutable tuple, so concurrent runs
read a consistent snapshot without locking.
"""

import threading
from typing import Tuple

from .base import Interceptor


class InterceptorRegistry:
    def __init__(self) -> None:
        self._lock = threading.Lock()
        self._interceptors: Tuple[Interceptor, ...] = ()

    def register(self, interceptor: Interceptor) -> None:
        with self._lock:
            if interceptor not in self._interceptors:
                self._interceptors = self._interceptors + (interceptor,)

    def unregister(self, interceptor: Interceptor) -> None:
        with self._lock:
            self._interceptors = tuple(i for i in self._interceptors if i is not interceptor)

    def clear(self) -> None:
        with self._lock:
            self._interceptors = ()

    def snapshot(self) -> Tuple[Interceptor, ...]:
        return self._interceptors

    def __len__(self) -> int:
        return len(self._interceptors)


global_interceptors = InterceptorRegistry()
