"""Human-in-the-Loop Approval - Prompt payloads, pending requests and approvers."""

import getpass
import sys
from dataclasses import dataclass, field
from enum import Enum
from typing import Callable, Optional, Protocol, Sequence

from agentgate.security.classifier import RiskTier
from agentgate.telemetry.logger import get_logger

logger = get_logger(__name__)


class ApprovalChoice(Enum):
    """Choices offered when a command needs approval."""

    APPROVE_ONCE = "approve_once"  # Allow this exact command for an hour
    APPROVE_SESSION = "approve_session"  # Allow the base command for the session
    ALWAYS_ALLOW = "always_allow"  # Add an allow rule
    ALWAYS_PROMPT = "always_prompt"  # Add a prompt rule
    ALWAYS_FORBID = "always_forbid"  # Add a deny rule
    DENY = "deny"  # Deny this request

    @property
    def allows(self) -> bool:
        """Whether the choice lets the current request run."""
        return self not in (ApprovalChoice.ALWAYS_FORBID, ApprovalChoice.DENY)

    @property
    def needs_argv(self) -> bool:
        """Whether applying the choice requires a parsed argv."""
        return self in (
            ApprovalChoice.APPROVE_SESSION,
            ApprovalChoice.ALWAYS_ALLOW,
            ApprovalChoice.ALWAYS_PROMPT,
            ApprovalChoice.ALWAYS_FORBID,
        )


@dataclass(frozen=True)
class PromptChoice:
    """A choice as shown to the user."""

    id: ApprovalChoice
    label: str
    icon: str
    key: str

    def to_dict(self) -> dict[str, str]:
        return {"id": self.id.value, "label": self.label, "icon": self.icon}


DEFAULT_PROMPT_CHOICES: tuple[PromptChoice, ...] = (
    PromptChoice(ApprovalChoice.APPROVE_ONCE, "Approve once", "✓", "o"),
    PromptChoice(ApprovalChoice.APPROVE_SESSION, "Approve for session", "🔄", "s"),
    PromptChoice(ApprovalChoice.ALWAYS_ALLOW, "Always allow (add rule)", "✅", "a"),
    PromptChoice(ApprovalChoice.ALWAYS_PROMPT, "Always prompt (add rule)", "❓", "p"),
    PromptChoice(ApprovalChoice.ALWAYS_FORBID, "Always forbid (add rule)", "🚫", "f"),
    PromptChoice(ApprovalChoice.DENY, "Deny", "✗", "d"),
)


@dataclass
class PromptPayload:
    """Everything a UI needs to ask for approval.

    Attributes:
        ui_text: The reason that triggered the prompt
        expected_side_effects: Predicted side effects of running the command
        network_access: Domains the command is likely to contact
        choices: Choices to offer
        default_choice: Choice to highlight
    """

    ui_text: str
    expected_side_effects: list[str] = field(default_factory=list)
    network_access: list[str] = field(default_factory=list)
    choices: tuple[PromptChoice, ...] = DEFAULT_PROMPT_CHOICES
    default_choice: ApprovalChoice = ApprovalChoice.APPROVE_ONCE

    def to_dict(self) -> dict:
        return {
            "ui_text": self.ui_text,
            "expected_side_effects": list(self.expected_side_effects),
            "network_access": list(self.network_access),
            "choices": [c.to_dict() for c in self.choices],
            "default_choice": self.default_choice.value,
        }


@dataclass
class PendingApproval:
    """A PROMPT result awaiting resolution.

    Attributes:
        approval_id: Unique id handed to the caller
        command: Raw command
        cwd: Working directory
        argv: Parsed argument vector (empty if parsing failed)
        command_hash: Hash used for once-approvals
        risk_tier: Risk tier of the command
        reason: Why approval is needed
        payload: Prompt payload for the UI
        created_at: Epoch seconds when the prompt was issued
        paths: Paths referenced by the command
        domains: Domains the command is likely to contact
    """

    approval_id: str
    command: str
    cwd: str
    argv: tuple[str, ...]
    command_hash: Optional[str]
    risk_tier: RiskTier
    reason: str
    payload: PromptPayload
    created_at: float
    paths: list[str] = field(default_factory=list)
    domains: list[str] = field(default_factory=list)


class Approver(Protocol):
    """Anything that can pick a choice for a pending approval."""

    identity: str

    def choose(self, pending: PendingApproval) -> ApprovalChoice:
        ...


def _current_user() -> str:
    try:
        return getpass.getuser()
    except Exception:
        return "unknown"


class TerminalApprover:
    """Asks a human on the terminal to pick a choice.

    Example:
        approver = TerminalApprover()
        result = manager.request_approval("npm install", "/work", approver)
    """

    # Risk tier display colors (ANSI)
    TIER_COLORS = {
        RiskTier.READ_ONLY: "\033[32m",  # Green
        RiskTier.WORKSPACE_WRITE: "\033[33m",  # Yellow
        RiskTier.SYSTEM: "\033[31m",  # Red
        RiskTier.DANGEROUS: "\033[91m",  # Bright red
    }
    RESET = "\033[0m"
    BOLD = "\033[1m"

    def __init__(
        self,
        use_color: bool = True,
        input_func: Optional[Callable[[], str]] = None,
        output_func: Optional[Callable[[str], None]] = None,
        identity: Optional[str] = None,
    ) -> None:
        """Initialize the terminal approver.

        Args:
            use_color: Whether to use ANSI colors
            input_func: Custom input function (for testing)
            output_func: Custom output function (for testing)
            identity: Approver identity recorded in the audit log
        """
        self.use_color = use_color
        self.identity = identity or _current_user()
        self._input = input_func or self._default_input
        self._output = output_func or self._default_output

    def _default_input(self) -> str:
        try:
            return input().strip().lower()
        except EOFError:
            return "d"

    def _default_output(self, text: str) -> None:
        print(text, file=sys.stderr)

    def _colorize(self, text: str, color: str) -> str:
        if self.use_color:
            return f"{color}{text}{self.RESET}"
        return text

    def choose(self, pending: PendingApproval) -> ApprovalChoice:
        """Display the request and read the user's choice.

        Enter picks the payload's default choice. Ctrl-C and unknown
        input deny.
        """
        self._display(pending)

        choices = pending.payload.choices
        keys = " / ".join(f"[{c.key}] {c.label}" for c in choices)
        self._output(f"\n{keys} > ")

        try:
            response = self._input().strip().lower()
        except KeyboardInterrupt:
            self._output("\nApproval cancelled.\n")
            return ApprovalChoice.DENY

        if not response:
            return pending.payload.default_choice

        choice = _match_choice(response, choices)
        if choice is None:
            self._output("Invalid response. Command denied.\n")
            logger.info("Invalid approval response", response=response[:20])
            return ApprovalChoice.DENY

        return choice

    def _display(self, pending: PendingApproval) -> None:
        color = self.TIER_COLORS.get(pending.risk_tier, "")

        self._output("\n" + "=" * 60)
        self._output(self._colorize(f"{self.BOLD}  APPROVAL REQUIRED  {self.RESET}", color))
        self._output("=" * 60)

        self._output(f"\n  Risk Tier: {self._colorize(pending.risk_tier.label, color)}")
        self._output("\n  Command:")
        self._output(f"    {self._colorize(pending.command, self.BOLD)}")
        self._output(f"\n  Working directory: {pending.cwd}")
        self._output(f"\n  Reason: {pending.payload.ui_text}")

        if pending.payload.expected_side_effects:
            self._output("\n  Expected side effects:")
            for effect in pending.payload.expected_side_effects:
                self._output(f"    - {effect}")

        if pending.payload.network_access:
            self._output("\n  Network access:")
            for domain in pending.payload.network_access:
                self._output(f"    - {domain}")

        self._output("\n" + "-" * 60)


def _match_choice(response: str, choices: Sequence[PromptChoice]) -> Optional[ApprovalChoice]:
    for index, choice in enumerate(choices, start=1):
        if response in (choice.key, str(index), choice.id.value):
            return choice.id
    return None


class AutoApprover:
    """Automatic approver for non-interactive contexts.

    Used when running in batch mode or for testing.
    """

    def __init__(
        self,
        auto_approve_tiers: Optional[list[RiskTier]] = None,
        auto_deny: bool = False,
        identity: Optional[str] = None,
    ) -> None:
        """Initialize the auto approver.

        Args:
            auto_approve_tiers: Risk tiers approved once without asking
            auto_deny: If True, deny all requests
            identity: Approver identity recorded in the audit log
        """
        if auto_approve_tiers is None:
            auto_approve_tiers = [RiskTier.READ_ONLY, RiskTier.WORKSPACE_WRITE]
        self.auto_approve_tiers = auto_approve_tiers
        self.auto_deny = auto_deny
        self.identity = identity or f"auto:{_current_user()}"

    def choose(self, pending: PendingApproval) -> ApprovalChoice:
        if self.auto_deny:
            return ApprovalChoice.DENY
        if pending.risk_tier in self.auto_approve_tiers:
            return ApprovalChoice.APPROVE_ONCE
        return ApprovalChoice.DENY
