"""Interceptors wrapped around every tool call of a ReAct run."""

from .base import InvocationContext, Interceptor
from .chain import InterceptorChain
from .hitl import ApprovalStrategy, HITLInterceptor, always_require
from .policy import (
    ApprovalPolicy,
    RiskPolicyInterceptor,
    ToolRiskKind,
    classify_risk,
    risk_requires_approval,
)
from .registry import InterceptorRegistry, global_interceptors
from .stop_loop import StopLoopInterceptor, action_fingerprint
from .timing import ToolTimingInterceptor

__all__ = [
    "ApprovalPolicy",
    "ApprovalStrategy",
    "HITLInterceptor",
    "Interceptor",
    "InterceptorChain",
    "InterceptorRegistry",
    "InvocationContext",
    "RiskPolicyInterceptor",
    "StopLoopInterceptor",
    "ToolRiskKind",
    "ToolTimingInterceptor",
    "action_fingerprint",
    "always_require",
    "classify_risk",
    "global_interceptors",
    "risk_requires_approval",
]
