from __future__ import annotations

"""Risk based approval gating.

Classifies each tool call into a ``RiskLevel`` and, depending on the autonomy
profile, suspends the run for approval the same way ``HITLInterceptor`` does.
"""

import logging
from enum import Enum
from typing import Dict

from pydantic import Field

from ..schemas.base import BaseSchema
from ..schemas.domain import AutonomyProfile, HITLTask, RiskLevel
from .base import InvocationContext, Interceptor

logger = logging.getLogger(__name__)


class ToolRiskKind(str, Enum):
    """
    Coarse classification of what a tool does.

    Attributes:
        read: Read-only operations (low risk).
        write: State-modifying operations (medium risk).
        high: Irreversible or dangerous operations (high risk).
    """

    read = "read"
    write = "write"
    high = "high"


class ApprovalPolicy(BaseSchema):
    """
    When a tool call needs explicit human authorization.

    Tools without an override or kind fall back to ``default_risk``.
    """

    autonomy_profile: AutonomyProfile = AutonomyProfile.balanced
    require_for_risk_at_or_above: RiskLevel = RiskLevel.medium
    default_risk: RiskLevel = RiskLevel.low

    tool_risk_overrides: Dict[str, RiskLevel] = Field(
        default_factory=dict,
        description="Per-tool risk levels. Keys are tool names, values are RiskLevel.",
    )
    tool_risk_kinds: Dict[str, ToolRiskKind] = Field(
        default_factory=dict,
        description="Per-tool risk kinds (read/write/high). Used when no override exists.",
    )


def _risk_ge(a: RiskLevel, b: RiskLevel) -> bool:
    order = {RiskLevel.low: 0, RiskLevel.medium: 1, RiskLevel.high: 2}
    return order[a] >= order[b]


def risk_from_kind(kind: ToolRiskKind) -> RiskLevel:
    if kind == ToolRiskKind.read:
        return RiskLevel.low
    if kind == ToolRiskKind.write:
        return RiskLevel.medium
    return RiskLevel.high


def classify_risk(policy: ApprovalPolicy, tool_name: str) -> RiskLevel:
    override = policy.tool_risk_overrides.get(tool_name)
    if override is not None:
        return override
    kind = policy.tool_risk_kinds.get(tool_name)
    if kind is not None:
        return risk_from_kind(kind)
    return policy.default_risk


def risk_requires_approval(risk: RiskLevel, policy: ApprovalPolicy) -> bool:
    """
    Decide whether a call of the given risk needs approval.

    ``unrestricted`` only gates high risk, ``strict`` gates everything and
    ``balanced`` follows ``require_for_risk_at_or_above``.
    """
    if policy.autonomy_profile == AutonomyProfile.unrestricted:
        return _risk_ge(risk, RiskLevel.high)
    if policy.autonomy_profile == AutonomyProfile.strict:
        return True
    return _risk_ge(risk, policy.require_for_risk_at_or_above)


class RiskPolicyInterceptor(Interceptor):
    def __init__(self, policy: ApprovalPolicy, *, order: int = 0) -> None:
        self.policy = policy
        self.order = order

    def pre_invoke(self, ctx: InvocationContext) -> bool:
        if ctx.approved:
            return True
        risk = classify_risk(self.policy, ctx.tool_name)
        if not risk_requires_approval(risk, self.policy):
            return True

        comment = f"Tool [{ctx.tool_name}] is classified as {risk.value} risk and requires approval."
        task = HITLTask(tool_name=ctx.tool_name, args=dict(ctx.args), comment=comment, agent_name=ctx.agent_name)
        ctx.trace.suspend(task, comment)
        logger.info("Agent [%s] suspended by risk policy: %s", ctx.agent_name, comment)
        return False
