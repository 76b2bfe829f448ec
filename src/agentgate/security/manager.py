"""Permission Manager - Central decision point for proposed commands."""

import os
import threading
import time
import uuid
from dataclasses import dataclass, field
from typing import Any, Callable, Optional, Sequence, Union

from agentgate.config.defaults import (
    DEFAULT_RULES_FILE,
    MAX_PENDING_APPROVALS,
    PENDING_APPROVAL_TTL_SECONDS,
)
from agentgate.config.schemas import AgentGateConfig, ApprovalPolicy, SecurityConfig
from agentgate.security.approval import (
    ApprovalChoice,
    Approver,
    PendingApproval,
    PromptPayload,
)
from agentgate.security.audit import AuditEvent, AuditLogger, DecisionSource
from agentgate.security.classifier import RiskClassifier, RiskTier
from agentgate.security.errors import (
    ApprovalNotFoundError,
    BuiltinRuleError,
    InvalidChoiceError,
    RuleStoreError,
)
from agentgate.security.parser import (
    extract_domains,
    extract_paths,
    hash_command,
    parse_command,
)
from agentgate.security.policies import apply_approval_policy
from agentgate.security.rules import (
    BUILTIN_RULE_IDS,
    FileRuleStore,
    PermissionDecision,
    PermissionRule,
    RuleStore,
    create_rule,
    evaluate_rules,
    load_rules,
    save_rules,
)
from agentgate.security.session import OnceApproval, SessionState
from agentgate.security.workspace import WorkspaceProvider, find_outside_path
from agentgate.telemetry.logger import LoggerMixin, log_context

FILE_MUTATING_COMMANDS = frozenset({"touch", "mkdir", "cp", "mv", "rm", "echo"})
PACKAGE_MANAGERS = frozenset({"npm", "npx", "yarn", "pnpm", "pip"})
NETWORK_GIT_SUBCOMMANDS = frozenset({"push", "clone", "fetch", "pull"})
HISTORY_GIT_SUBCOMMANDS = frozenset({"commit", "merge", "rebase"})
LONG_RUNNING_COMMANDS = frozenset({"node", "python", "npm"})


@dataclass
class PermissionResult:
    """Outcome of evaluating a command.

    Attributes:
        decision: ALLOW, PROMPT or DENY
        reason: Human-readable explanation
        risk_tier: Risk tier of the command
        argv: Parsed argument vector (empty if parsing failed)
        paths: Paths referenced by the command
        domains: Domains the command is likely to contact
        matched_rule: Rule that decided (ALLOW/DENY rule decisions only)
        prompt_payload: Data for the approval UI (PROMPT only)
        command_hash: Hash used for once-approvals
        approval_id: Id to pass to resolve() (PROMPT only)
        decision_source: What produced the decision
    """

    decision: PermissionDecision
    reason: str
    risk_tier: RiskTier
    argv: tuple[str, ...] = ()
    paths: list[str] = field(default_factory=list)
    domains: list[str] = field(default_factory=list)
    matched_rule: Optional[PermissionRule] = None
    prompt_payload: Optional[PromptPayload] = None
    command_hash: Optional[str] = None
    approval_id: Optional[str] = None
    decision_source: DecisionSource = DecisionSource.POLICY

    @property
    def allowed(self) -> bool:
        return self.decision == PermissionDecision.ALLOW

    @property
    def denied(self) -> bool:
        return self.decision == PermissionDecision.DENY

    @property
    def needs_approval(self) -> bool:
        return self.decision == PermissionDecision.PROMPT

    def to_dict(self) -> dict[str, Any]:
        """Convert to dictionary for serialization."""
        d: dict[str, Any] = {
            "decision": self.decision.value,
            "reason": self.reason,
            "risk_tier": int(self.risk_tier),
            "argv": list(self.argv),
            "paths": list(self.paths),
            "domains": list(self.domains),
            "decision_source": self.decision_source.value,
        }
        if self.matched_rule is not None:
            d["matched_rule"] = self.matched_rule.to_dict()
        if self.prompt_payload is not None:
            d["prompt_payload"] = self.prompt_payload.to_dict()
        if self.command_hash is not None:
            d["command_hash"] = self.command_hash
        if self.approval_id is not None:
            d["approval_id"] = self.approval_id
        return d


def predict_side_effects(argv: Sequence[str]) -> list[str]:
    """Predict side effects from the base command and subcommand."""
    effects: list[str] = []
    if not argv:
        return effects

    cmd = argv[0].lower()

    if cmd in FILE_MUTATING_COMMANDS:
        effects.append("May modify files in workspace")

    if cmd in PACKAGE_MANAGERS:
        effects.append("May install packages")
        if "install" in argv or "add" in argv:
            effects.append("Network access required")

    if cmd == "git" and len(argv) > 1:
        sub = argv[1].lower()
        if sub in NETWORK_GIT_SUBCOMMANDS:
            effects.append("Network access required")
        if sub in HISTORY_GIT_SUBCOMMANDS:
            effects.append("May modify git history")

    if cmd in LONG_RUNNING_COMMANDS:
        effects.append("May start long-running process")

    return effects


class PermissionManager(LoggerMixin):
    """Decides whether a proposed command may run.

    Construct one per process (or per tenant) and pass it to whatever
    proposes commands. ``evaluate`` never blocks: a PROMPT result carries
    an ``approval_id`` that is later passed to ``resolve`` with the user's
    choice.

    Example:
        manager = PermissionManager(SecurityConfig(workspace_roots=["/work"]))

        result = manager.evaluate("npm install", "/work")
        if result.needs_approval:
            result = manager.resolve(result.approval_id, ApprovalChoice.APPROVE_ONCE)
        if result.allowed:
            run(result.argv)
    """

    def __init__(
        self,
        config: Optional[SecurityConfig] = None,
        rule_store: Optional[RuleStore] = None,
        audit_logger: Optional[AuditLogger] = None,
        classifier: Optional[RiskClassifier] = None,
        workspace_provider: Optional[WorkspaceProvider] = None,
        clock: Callable[[], float] = time.time,
    ) -> None:
        """Initialize the permission manager.

        Args:
            config: Security configuration
            rule_store: Store holding persisted user rules
            audit_logger: Audit logger (a private one is created if omitted)
            classifier: Risk classifier
            workspace_provider: Fallback source of trusted roots
            clock: Time source in epoch seconds
        """
        self._config = (config or SecurityConfig()).model_copy(deep=True)
        self.rule_store = rule_store
        self.audit = audit_logger or AuditLogger(clock=clock)
        self.classifier = classifier or RiskClassifier()
        self.workspace_provider = workspace_provider
        self._clock = clock

        self.session = SessionState()
        self._pending: dict[str, PendingApproval] = {}
        self.pending_ttl: float = PENDING_APPROVAL_TTL_SECONDS
        self.max_pending = MAX_PENDING_APPROVALS
        self._lock = threading.RLock()

        self._rules: list[PermissionRule] = load_rules(rule_store)
        self._config_rule_ids: set[str] = set()
        self._seed_config_rules(self._config.rules)

        self.logger.info(
            "PermissionManager initialized",
            policy=self._config.approval_policy.value,
            rule_count=len(self._rules),
        )

    def _seed_config_rules(self, entries: Sequence[dict[str, Any]]) -> None:
        """Add rules listed in the configuration. They are not persisted."""
        known = {rule.id for rule in self._rules}
        for entry in entries:
            try:
                rule = PermissionRule.from_dict(entry)
            except ValueError as e:
                self.logger.warning("Ignoring invalid configured rule", error=str(e))
                continue
            if rule.id in known:
                continue
            self._rules.append(rule)
            self._config_rule_ids.add(rule.id)
            known.add(rule.id)

    @classmethod
    def from_config(
        cls,
        config: AgentGateConfig,
        workspace_provider: Optional[WorkspaceProvider] = None,
    ) -> "PermissionManager":
        """Build a manager with a file rule store and audit log from config.

        Args:
            config: Root configuration
            workspace_provider: Fallback source of trusted roots

        Returns:
            Configured PermissionManager
        """
        rules_path = config.security.rules_path or DEFAULT_RULES_FILE
        audit = AuditLogger(
            capacity=config.audit.capacity,
            max_output_length=config.audit.max_output_length,
            log_path=config.audit.log_path,
            max_file_size=config.audit.max_file_size,
        )
        return cls(
            config=config.security,
            rule_store=FileRuleStore(rules_path),
            audit_logger=audit,
            workspace_provider=workspace_provider,
        )

    # Evaluation

    def evaluate(self, command: str, cwd: str) -> PermissionResult:
        """Decide whether a command may run in cwd.

        Args:
            command: Raw command string
            cwd: Working directory the command would run in

        Returns:
            PermissionResult; PROMPT results are registered as pending
        """
        parsed = parse_command(command)
        self.audit.log_proposal(command, parsed.argv, cwd)

        # 1. Unparseable input is treated as maximally risky
        if not parsed.success:
            return self._decide(
                command,
                cwd,
                PermissionDecision.PROMPT,
                f"Failed to parse command: {parsed.error}",
                RiskTier.DANGEROUS,
            )

        argv = parsed.argv
        command_hash = hash_command(argv, cwd)

        # 2. Hard blocks
        forbidden = self.classifier.is_forbidden(command)
        if forbidden.forbidden:
            self.logger.warning("Forbidden command denied", command=command)
            return self._decide(
                command,
                cwd,
                PermissionDecision.DENY,
                forbidden.reason or "Forbidden command",
                RiskTier.DANGEROUS,
                argv=argv,
                command_hash=command_hash,
            )

        # 3. Tier
        tier = self.classifier.classify(argv, command)

        # 4. Workspace trust
        paths = extract_paths(argv)
        domains = extract_domains(command)
        context = dict(argv=argv, paths=paths, domains=domains, command_hash=command_hash)

        path_problem = self._validate_paths(paths, cwd)
        if path_problem:
            return self._decide(command, cwd, PermissionDecision.PROMPT, path_problem, tier, **context)

        # 5. Network
        with self._lock:
            network_access = self._config.network_access
            policy = self._config.approval_policy
            rules = list(self._rules)

        if domains and not network_access:
            return self._decide(
                command,
                cwd,
                PermissionDecision.PROMPT,
                f"Network access required for: {', '.join(domains)}",
                tier,
                **context,
            )

        # 6. Session approvals
        if self.session.is_tool_approved(argv[0]):
            return self._decide(
                command,
                cwd,
                PermissionDecision.ALLOW,
                f"Approved for session: {argv[0]}",
                tier,
                source=DecisionSource.SESSION,
                **context,
            )

        if self.session.has_once_approval(command_hash, self._clock()):
            return self._decide(
                command,
                cwd,
                PermissionDecision.ALLOW,
                "Approved once (still valid)",
                tier,
                source=DecisionSource.SESSION,
                **context,
            )

        # 7. Rules
        evaluation = evaluate_rules(argv, rules)
        if evaluation.decision != PermissionDecision.PROMPT:
            rule = evaluation.most_restrictive
            return self._decide(
                command,
                cwd,
                evaluation.decision,
                f"Matched rule: {rule.name}",
                tier,
                source=DecisionSource.RULE,
                matched_rule=rule,
                **context,
            )

        # 8. Approval policy fallback
        outcome = apply_approval_policy(policy, tier, argv)
        return self._decide(command, cwd, outcome.decision, outcome.reason, tier, **context)

    def _validate_paths(self, paths: Sequence[str], cwd: str) -> Optional[str]:
        """Return why the paths are not trusted, or None if they are."""
        if not paths:
            return None

        roots = self.get_workspace_roots()
        if not roots:
            return "No trusted workspace configured. Please trust a workspace first."

        outside = find_outside_path(paths, cwd, roots)
        if outside is not None:
            return f'Path "{outside}" is outside trusted workspace'
        return None

    def get_workspace_roots(self) -> list[str]:
        """Trusted roots from config and session, else from the provider."""
        with self._lock:
            roots = list(self._config.workspace_roots)
        roots.extend(r for r in self.session.trusted_roots if r not in roots)

        if not roots and self.workspace_provider is not None:
            try:
                roots = list(self.workspace_provider.get_workspace_roots())
            except Exception as e:
                self.logger.warning("Workspace provider failed", error=str(e))
                roots = []
        return roots

    def _decide(
        self,
        command: str,
        cwd: str,
        decision: PermissionDecision,
        reason: str,
        tier: RiskTier,
        source: DecisionSource = DecisionSource.POLICY,
        argv: Sequence[str] = (),
        paths: Optional[list[str]] = None,
        domains: Optional[list[str]] = None,
        command_hash: Optional[str] = None,
        matched_rule: Optional[PermissionRule] = None,
    ) -> PermissionResult:
        """Build a result, audit it, and register it if it needs approval."""
        argv = tuple(argv)
        result = PermissionResult(
            decision=decision,
            reason=reason,
            risk_tier=tier,
            argv=argv,
            paths=list(paths or []),
            domains=list(domains or []),
            matched_rule=matched_rule,
            command_hash=command_hash,
            decision_source=source,
        )

        if decision == PermissionDecision.PROMPT:
            payload = PromptPayload(
                ui_text=reason,
                expected_side_effects=predict_side_effects(argv),
                network_access=list(result.domains),
            )
            pending = PendingApproval(
                approval_id=str(uuid.uuid4()),
                command=command,
                cwd=cwd,
                argv=argv,
                command_hash=command_hash,
                risk_tier=tier,
                reason=reason,
                payload=payload,
                created_at=self._clock(),
                paths=list(result.paths),
                domains=list(result.domains),
            )
            with self._lock:
                self._prune_pending(pending.created_at)
                while self._pending and len(self._pending) >= self.max_pending:
                    oldest = min(self._pending.values(), key=lambda p: p.created_at)
                    del self._pending[oldest.approval_id]
                    self.logger.debug("Pending approval evicted", approval_id=oldest.approval_id)
                self._pending[pending.approval_id] = pending
            result.prompt_payload = payload
            result.approval_id = pending.approval_id

        self.audit.log_decision(
            command,
            argv,
            decision,
            source,
            risk_tier=tier,
            matched_rule=matched_rule.id if matched_rule else None,
            reason=reason,
        )
        self.logger.debug(
            "Command evaluated",
            command=command,
            decision=decision.value,
            source=source.value,
            tier=int(tier),
        )
        return result

    # Resolution of pending approvals

    def _prune_pending(self, now: float) -> None:
        """Forget approvals left unresolved for longer than pending_ttl. Caller holds the lock."""
        expired = [
            approval_id
            for approval_id, pending in self._pending.items()
            if now - pending.created_at >= self.pending_ttl
        ]
        for approval_id in expired:
            del self._pending[approval_id]
        if expired:
            self.logger.debug("Pending approvals expired", count=len(expired))

    def pending_approvals(self) -> list[PendingApproval]:
        """Outstanding approvals, oldest first."""
        with self._lock:
            self._prune_pending(self._clock())
            return sorted(self._pending.values(), key=lambda p: p.created_at)

    def get_pending(self, approval_id: str) -> Optional[PendingApproval]:
        with self._lock:
            self._prune_pending(self._clock())
            return self._pending.get(approval_id)

    def cancel(self, approval_id: str) -> bool:
        """Drop a pending approval without applying any choice."""
        with self._lock:
            return self._pending.pop(approval_id, None) is not None

    def resolve(
        self,
        approval_id: str,
        choice: Union[ApprovalChoice, str],
        approver: str = "user",
    ) -> PermissionResult:
        """Apply the user's choice to a pending approval.

        Args:
            approval_id: Id from a PROMPT result
            choice: Chosen ApprovalChoice (or its string value)
            approver: Identity recorded in the audit log

        Returns:
            Final ALLOW or DENY result

        Raises:
            ApprovalNotFoundError: If the id is not pending
            InvalidChoiceError: If the choice is unknown or cannot apply
        """
        if not isinstance(choice, ApprovalChoice):
            try:
                choice = ApprovalChoice(choice)
            except ValueError:
                raise InvalidChoiceError(str(choice), "unknown choice") from None

        with self._lock:
            self._prune_pending(self._clock())
            pending = self._pending.get(approval_id)
            if pending is None:
                raise ApprovalNotFoundError(approval_id)
            if choice.needs_argv and not pending.argv:
                raise InvalidChoiceError(choice.value, "command could not be parsed")
            del self._pending[approval_id]

        with log_context(approval_id=approval_id, approver=approver):
            self._apply_choice(pending, choice)

            if choice.allows:
                self.audit.log_approval(pending.command, pending.argv, approver, choice.value)
                decision = PermissionDecision.ALLOW
                reason = f"Approved by {approver} ({choice.value})"
            else:
                self.audit.log_denial(pending.command, pending.argv, approver, reason=choice.value)
                decision = PermissionDecision.DENY
                reason = f"Denied by {approver} ({choice.value})"

            self.logger.info("Approval resolved", choice=choice.value)

        return PermissionResult(
            decision=decision,
            reason=reason,
            risk_tier=pending.risk_tier,
            argv=pending.argv,
            paths=list(pending.paths),
            domains=list(pending.domains),
            command_hash=pending.command_hash,
            decision_source=DecisionSource.USER,
        )

    def _apply_choice(self, pending: PendingApproval, choice: ApprovalChoice) -> None:
        argv = pending.argv
        if choice == ApprovalChoice.APPROVE_ONCE:
            if pending.command_hash:
                self.approve_once(pending.command_hash)
            return

        if choice == ApprovalChoice.APPROVE_SESSION:
            self.approve_for_session(argv[0])
            return

        rule_decisions = {
            ApprovalChoice.ALWAYS_ALLOW: (PermissionDecision.ALLOW, "Always allow"),
            ApprovalChoice.ALWAYS_PROMPT: (PermissionDecision.PROMPT, "Always prompt"),
            ApprovalChoice.ALWAYS_FORBID: (PermissionDecision.DENY, "Always forbid"),
        }
        if choice in rule_decisions:
            decision, label = rule_decisions[choice]
            try:
                self.add_rule(f"{label}: {' '.join(argv[:3])}", argv, decision)
            except RuleStoreError as e:
                # The rule is active in memory; only persistence failed
                self.logger.warning("Rule added but not persisted", error=str(e))

    def request_approval(self, command: str, cwd: str, approver: Approver) -> PermissionResult:
        """Evaluate a command and, if it needs approval, ask an approver.

        Args:
            command: Raw command string
            cwd: Working directory
            approver: TerminalApprover, AutoApprover or compatible object

        Returns:
            The evaluation result, or the resolved result after asking
        """
        result = self.evaluate(command, cwd)
        if not result.needs_approval:
            return result

        pending = self.get_pending(result.approval_id)
        choice = approver.choose(pending)
        return self.resolve(result.approval_id, choice, approver.identity)

    def reprompt_after_failure(self, command: str, cwd: str, error: str) -> PermissionResult:
        """Re-evaluate a command the sandbox blocked.

        Used with the on-failure policy: an ALLOW becomes a PROMPT citing
        the sandbox error. DENY and PROMPT results are returned unchanged.
        """
        result = self.evaluate(command, cwd)
        if not result.allowed:
            return result

        return self._decide(
            command,
            cwd,
            PermissionDecision.PROMPT,
            f"Sandbox blocked execution: {error}",
            result.risk_tier,
            argv=result.argv,
            paths=result.paths,
            domains=result.domains,
            command_hash=result.command_hash,
        )

    def record_result(
        self,
        command: str,
        argv: Sequence[str],
        success: bool,
        duration: float,
        output: Optional[str] = None,
        error: Optional[str] = None,
    ) -> AuditEvent:
        """Record the result of executing a command in the audit log."""
        with self._lock:
            limit = self._config.max_output_length
        if output is not None and len(output) > limit:
            output = output[:limit]
        return self.audit.log_result(command, argv, success, duration, output=output, error=error)

    # Session mutations

    def approve_once(self, command_hash: str) -> OnceApproval:
        """Allow one specific command hash for the next hour."""
        approval = self.session.grant_once(command_hash, self._clock())
        self.logger.info("Once-approval granted", command_hash=command_hash)
        return approval

    def approve_for_session(self, tool_name: str) -> None:
        """Allow a base command for the rest of the session."""
        self.session.approve_tool(tool_name)
        self.audit.log_session_approval(tool_name)
        self.logger.info("Session approval granted", tool=tool_name)

    def trust_workspace(self, path: str) -> None:
        """Trust a workspace root for the rest of the session."""
        root = os.path.abspath(os.path.expanduser(path))
        if self.session.trust_root(root):
            self.audit.log_config_changed({"trusted_workspace": root})
            self.logger.info("Workspace trusted", path=root)

    def clear_session(self) -> None:
        """Forget session and once approvals. Trusted workspaces stay."""
        self.session.clear()
        self.logger.info("Session cleared")

    # Rules

    def get_rules(self) -> list[PermissionRule]:
        """Active rules: built-ins followed by user rules."""
        with self._lock:
            return list(self._rules)

    def add_rule(
        self,
        name: str,
        argv: Sequence[str],
        decision: Union[PermissionDecision, str],
    ) -> PermissionRule:
        """Add a user rule from the first three argv tokens and persist it.

        Raises:
            ValueError: If argv is empty
            RuleStoreError: If persisting fails (the rule stays active)
        """
        if not isinstance(decision, PermissionDecision):
            decision = PermissionDecision(decision)

        rule = create_rule(f"user-{uuid.uuid4().hex[:12]}", name, argv, decision, now=self._clock())

        with self._lock:
            self._rules.append(rule)
            to_save = self._persistable_rules()

        self.audit.log_rule_added(rule.id, rule.name, rule.decision)
        self.logger.info("Rule added", rule_id=rule.id, decision=decision.value)

        save_rules(self.rule_store, to_save)
        return rule

    def remove_rule(self, rule_id: str) -> bool:
        """Remove a user rule.

        Returns:
            True if a rule was removed, False if no such rule exists

        Raises:
            BuiltinRuleError: If rule_id names a built-in rule
            RuleStoreError: If persisting fails (the rule stays removed)
        """
        if rule_id in BUILTIN_RULE_IDS:
            raise BuiltinRuleError(rule_id)

        with self._lock:
            remaining = [r for r in self._rules if r.id != rule_id]
            if len(remaining) == len(self._rules):
                return False
            self._rules = remaining
            self._config_rule_ids.discard(rule_id)
            to_save = self._persistable_rules()

        self.audit.log_rule_removed(rule_id)
        self.logger.info("Rule removed", rule_id=rule_id)

        save_rules(self.rule_store, to_save)
        return True

    def _user_rules(self) -> list[PermissionRule]:
        return [r for r in self._rules if not r.is_builtin]

    def _persistable_rules(self) -> list[PermissionRule]:
        return [r for r in self._user_rules() if r.id not in self._config_rule_ids]

    # Configuration

    def get_config(self) -> SecurityConfig:
        """Snapshot of the configuration, with the active user rules."""
        with self._lock:
            snapshot = self._config.model_copy(deep=True)
            snapshot.rules = [r.to_dict() for r in self._user_rules()]
        return snapshot

    def update_config(self, **changes: Any) -> SecurityConfig:
        """Update configuration fields.

        Rules passed here replace the previously configured rules; rules
        added through add_rule are kept.

        Raises:
            ValueError: If a field name is unknown
            pydantic.ValidationError: If a value is invalid
        """
        unknown = set(changes) - set(SecurityConfig.model_fields)
        if unknown:
            raise ValueError(f"Unknown configuration fields: {', '.join(sorted(unknown))}")

        with self._lock:
            merged = {**self._config.model_dump(), **changes}
            updated = SecurityConfig.model_validate(merged)

            if "rules" in changes:
                self._rules = [r for r in self._rules if r.id not in self._config_rule_ids]
                self._config_rule_ids.clear()
                self._config = updated
                self._seed_config_rules(updated.rules)
            else:
                self._config = updated

        dumped = updated.model_dump(mode="json")
        self.audit.log_config_changed({key: dumped[key] for key in changes})
        self.logger.info("Configuration updated", fields=sorted(changes))
        return self.get_config()

    @property
    def approval_policy(self) -> ApprovalPolicy:
        with self._lock:
            return self._config.approval_policy
