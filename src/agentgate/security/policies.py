"""Approval Policies - Fallback applied when no rule is definitive."""

from dataclasses import dataclass
from typing import Sequence

from agentgate.config.schemas import ApprovalPolicy
from agentgate.security.classifier import RiskTier, get_risk_description
from agentgate.security.rules import PermissionDecision


@dataclass(frozen=True)
class PolicyOutcome:
    """Decision produced by an approval policy."""

    decision: PermissionDecision
    reason: str


def apply_approval_policy(
    policy: ApprovalPolicy,
    tier: RiskTier,
    argv: Sequence[str],
) -> PolicyOutcome:
    """Apply the configured approval policy to a command.

    Only reached by commands that survived the hard blocks and had no
    definitive ALLOW or DENY rule.

    Args:
        policy: Configured approval policy
        tier: Risk tier of the command
        argv: Parsed argument vector

    Returns:
        PolicyOutcome with the decision and reason
    """
    if policy == ApprovalPolicy.NEVER:
        return PolicyOutcome(PermissionDecision.ALLOW, "Approval policy: never prompt")

    if policy == ApprovalPolicy.ON_REQUEST:
        if tier >= RiskTier.SYSTEM:
            return PolicyOutcome(PermissionDecision.PROMPT, get_risk_description(tier, argv))
        return PolicyOutcome(PermissionDecision.ALLOW, f"Low-risk command (tier {int(tier)})")

    if policy == ApprovalPolicy.UNTRUSTED:
        return PolicyOutcome(
            PermissionDecision.PROMPT,
            "Untrusted mode: all commands require approval",
        )

    if policy == ApprovalPolicy.ON_FAILURE:
        return PolicyOutcome(
            PermissionDecision.ALLOW,
            "Will re-prompt if sandbox blocks execution",
        )

    return PolicyOutcome(PermissionDecision.PROMPT, "Unknown approval policy")
