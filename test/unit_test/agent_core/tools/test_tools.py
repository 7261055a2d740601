from __future__ import annotations

import pytest

from tandem_ai.agent_core.errors import InvalidToolArgumentsError, ToolNotFoundError
from tandem_ai.agent_core.tools.base import FunctionTool, tool
from tandem_ai.agent_core.tools.registry import ToolRegistry


def pay(amount: int, currency: str = "EUR") -> str:
    """Pay an invoice."""
    return f"paid {amount} {currency}"


async def lookup(key: str) -> dict:
    return {"key": key, "value": 42}


@pytest.mark.asyncio
async def test_function_tool_invokes_sync_function():
    t = FunctionTool(pay)

    assert t.name == "pay"
    assert t.description == "Pay an invoice."
    assert await t.invoke({"amount": 5}) == "paid 5 EUR"


@pytest.mark.asyncio
async def test_function_tool_awaits_coroutines():
    assert await FunctionTool(lookup).invoke({"key": "k"}) == {"key": "k", "value": 42}


@pytest.mark.asyncio
async def test_bad_arguments_raise_invalid_arguments():
    t = FunctionTool(pay)

    with pytest.raises(InvalidToolArgumentsError) as exc_info:
        await t.invoke({"wrong": 1})

    assert exc_info.value.tool_name == "pay"


def test_schema_is_derived_from_signature():
    schema = FunctionTool(pay).schema()

    assert schema["name"] == "pay"
    assert schema["parameters"]["properties"]["amount"] == {"type": "integer"}
    assert schema["parameters"]["properties"]["currency"] == {"type": "string"}
    assert schema["parameters"]["required"] == ["amount"]


def test_decorator_options():
    @tool("final_lookup", description="Answer directly", return_direct=True)
    def answer(q: str) -> str:
        return q

    assert isinstance(answer, FunctionTool)
    assert answer.name == "final_lookup"
    assert answer.description == "Answer directly"
    assert answer.return_direct is True


def test_registry_lookup():
    registry = ToolRegistry([FunctionTool(pay)])
    registry.register(FunctionTool(lookup))

    assert registry.has("pay")
    assert registry.get("lookup").name == "lookup"
    assert sorted(registry.names()) == ["lookup", "pay"]
    assert len(registry) == 2
    assert [s["name"] for s in registry.schemas()] == ["pay", "lookup"]

    with pytest.raises(ToolNotFoundError, match=r"Tool \[nope\] not found\."):
        registry.get("nope")
