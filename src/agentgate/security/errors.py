"""Exceptions raised by the permission gate."""

from typing import Optional


class GateError(Exception):
    """Base class for permission gate errors."""


class ApprovalNotFoundError(GateError, LookupError):
    """Raised when resolving an approval id that is not pending."""

    def __init__(self, approval_id: str) -> None:
        super().__init__(f"No pending approval with id: {approval_id}")
        self.approval_id = approval_id


class InvalidChoiceError(GateError, ValueError):
    """Raised when an approval choice cannot be applied to a request."""

    def __init__(self, choice: str, reason: str) -> None:
        super().__init__(f"Cannot apply choice '{choice}': {reason}")
        self.choice = choice
        self.reason = reason


class BuiltinRuleError(GateError):
    """Raised when trying to remove or overwrite a built-in rule."""

    def __init__(self, rule_id: str) -> None:
        super().__init__(f"Built-in rule cannot be modified: {rule_id}")
        self.rule_id = rule_id


class RuleStoreError(GateError):
    """Raised when user rules cannot be written to the rule store."""

    def __init__(self, message: str, cause: Optional[Exception] = None) -> None:
        super().__init__(message)
        self.cause = cause
