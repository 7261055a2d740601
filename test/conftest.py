from __future__ import annotations

from typing import Any, Callable, Dict, Iterable, List, Optional, Union

import pytest

from tandem_ai.agent_core.interceptors.registry import global_interceptors
from tandem_ai.agent_core.reasoning.base import Reasoning
from tandem_ai.agent_core.schemas.domain import ChatMessage

ScriptItem = Union[Reasoning, BaseException]


class ScriptedReasoner:
    """Reasoner replaying a fixed script; ``fallback`` answers once the script runs out."""

    def __init__(
        self,
        script: Iterable[ScriptItem] = (),
        *,
        fallback: Optional[Callable[[int], ScriptItem]] = None,
    ) -> None:
        self._script: List[ScriptItem] = list(script)
        self._fallback = fallback
        self.calls: List[Dict[str, Any]] = []

    async def reason(self, messages: List[ChatMessage], tools: List[Dict[str, Any]]) -> Reasoning:
        index = len(self.calls)
        self.calls.append({"messages": list(messages), "tools": list(tools)})
        if index < len(self._script):
            item = self._script[index]
        elif self._fallback is not None:
            item = self._fallback(index)
        else:
            item = Reasoning.finish("script exhausted")
        if isinstance(item, BaseException):
            raise item
        return item


@pytest.fixture
def scripted_reasoner() -> Callable[..., ScriptedReasoner]:
    return ScriptedReasoner


@pytest.fixture(autouse=True)
def _isolate_global_interceptors():
    global_interceptors.clear()
    yield
    global_interceptors.clear()
