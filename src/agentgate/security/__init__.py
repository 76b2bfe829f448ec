"""Command permission gate for agentgate."""

from agentgate.security.approval import (
    DEFAULT_PROMPT_CHOICES,
    ApprovalChoice,
    AutoApprover,
    PendingApproval,
    PromptChoice,
    PromptPayload,
    TerminalApprover,
)
from agentgate.security.audit import AuditEvent, AuditEventType, AuditLogger, DecisionSource
from agentgate.security.classifier import (
    ForbiddenCheck,
    ForbiddenPattern,
    RiskClassifier,
    RiskTier,
    classify_risk,
    get_risk_description,
    is_forbidden_pattern,
)
from agentgate.security.errors import (
    ApprovalNotFoundError,
    BuiltinRuleError,
    GateError,
    InvalidChoiceError,
    RuleStoreError,
)
from agentgate.security.manager import PermissionManager, PermissionResult
from agentgate.security.parser import (
    ParseResult,
    extract_domains,
    extract_paths,
    hash_command,
    parse_command,
)
from agentgate.security.policies import PolicyOutcome, apply_approval_policy
from agentgate.security.rules import (
    DEFAULT_RULES,
    FileRuleStore,
    Literal,
    MemoryRuleStore,
    OneOf,
    PermissionDecision,
    PermissionRule,
    RuleEvaluation,
    RuleSource,
    RuleStore,
    create_rule,
    evaluate_rules,
    find_matching_rules,
    matches_pattern,
)
from agentgate.security.session import OnceApproval, SessionState
from agentgate.security.workspace import StaticWorkspaceProvider, WorkspaceProvider

__all__ = [
    # Parsing
    "ParseResult",
    "parse_command",
    "extract_paths",
    "extract_domains",
    "hash_command",
    # Risk Classification
    "RiskTier",
    "ForbiddenPattern",
    "ForbiddenCheck",
    "RiskClassifier",
    "classify_risk",
    "is_forbidden_pattern",
    "get_risk_description",
    # Rules
    "PermissionDecision",
    "RuleSource",
    "Literal",
    "OneOf",
    "PermissionRule",
    "RuleEvaluation",
    "DEFAULT_RULES",
    "matches_pattern",
    "find_matching_rules",
    "evaluate_rules",
    "create_rule",
    "RuleStore",
    "MemoryRuleStore",
    "FileRuleStore",
    # Session
    "OnceApproval",
    "SessionState",
    # Policies
    "PolicyOutcome",
    "apply_approval_policy",
    # Workspace
    "WorkspaceProvider",
    "StaticWorkspaceProvider",
    # Approval
    "ApprovalChoice",
    "PromptChoice",
    "PromptPayload",
    "PendingApproval",
    "DEFAULT_PROMPT_CHOICES",
    "TerminalApprover",
    "AutoApprover",
    # Audit
    "AuditEventType",
    "DecisionSource",
    "AuditEvent",
    "AuditLogger",
    # Manager
    "PermissionResult",
    "PermissionManager",
    # Errors
    "GateError",
    "ApprovalNotFoundError",
    "InvalidChoiceError",
    "BuiltinRuleError",
    "RuleStoreError",
]
