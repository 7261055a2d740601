from __future__ import annotations

"""Tool abstraction consumed by the ReAct loop.

The loop only sees a tool's name, description, JSON parameter schema and its
``invoke`` coroutine. ``FunctionTool`` adapts plain functions (sync or async)
and maps an argument map that does not fit the signature to
``InvalidToolArgumentsError``.
"""

import inspect
from abc import ABC, abstractmethod
from typing import Any, Callable, Dict, Optional

from ..errors import InvalidToolArgumentsError


class Tool(ABC):
    name: str
    description: str = ""
    parameters: Dict[str, Any] = {}
    return_direct: bool = False

    @abstractmethod
    async def invoke(self, args: Dict[str, Any]) -> Any: ...

    def schema(self) -> Dict[str, Any]:
        return {"name": self.name, "description": self.description, "parameters": dict(self.parameters)}


_JSON_TYPES = {str: "string", int: "integer", float: "number", bool: "boolean", list: "array", dict: "object"}


def _parameters_from_signature(fn: Callable[..., Any]) -> Dict[str, Any]:
    props: Dict[str, Any] = {}
    required = []
    for param in inspect.signature(fn).parameters.values():
        if param.kind in (inspect.Parameter.VAR_POSITIONAL, inspect.Parameter.VAR_KEYWORD):
            continue
        json_type = _JSON_TYPES.get(param.annotation) if not isinstance(param.annotation, str) else None
        if json_type is None and isinstance(param.annotation, str):
            json_type = {"str": "string", "int": "integer", "float": "number", "bool": "boolean"}.get(param.annotation)
        props[param.name] = {"type": json_type or "string"}
        if param.default is inspect.Parameter.empty:
            required.append(param.name)
    return {"type": "object", "properties": props, "required": required}


class FunctionTool(Tool):
    def __init__(
        self,
        fn: Callable[..., Any],
        *,
        name: Optional[str] = None,
        description: Optional[str] = None,
        parameters: Optional[Dict[str, Any]] = None,
        return_direct: bool = False,
    ) -> None:
        self._fn = fn
        self._signature = inspect.signature(fn)
        self.name = name or fn.__name__
        self.description = description if description is not None else inspect.getdoc(fn) or ""
        self.parameters = parameters if parameters is not None else _parameters_from_signature(fn)
        self.return_direct = return_direct

    async def invoke(self, args: Dict[str, Any]) -> Any:
        try:
            bound = self._signature.bind(**args)
        except TypeError as exc:
            raise InvalidToolArgumentsError(self.name, str(exc)) from exc
        result = self._fn(*bound.args, **bound.kwargs)
        if inspect.isawaitable(result):
            result = await result
        return result


def tool(
    name: Optional[str] = None,
    *,
    description: Optional[str] = None,
    return_direct: bool = False,
) -> Callable[[Callable[..., Any]], FunctionTool]:
    """Decorator turning a function into a ``FunctionTool``."""

    def _wrap(fn: Callable[..., Any]) -> FunctionTool:
        return FunctionTool(fn, name=name, description=description, return_direct=return_direct)

    return _wrap
