"""Model boundary: reasoner protocol, retry policy and adapters."""

from .base import Reasoner, Reasoning, ReasoningKind
from .parsing import clean_final_answer
from .pydantic_ai_reasoner import PydanticAIReasoner, ReasoningDecision
from .retry import RetryPolicy

__all__ = [
    "PydanticAIReasoner",
    "Reasoner",
    "Reasoning",
    "ReasoningDecision",
    "ReasoningKind",
    "RetryPolicy",
    "clean_final_answer",
]
