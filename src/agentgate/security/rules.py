"""Rules Engine - Argv-prefix permission rules with "most restrictive wins"."""

import json
import os
import threading
import time
from abc import ABC, abstractmethod
from dataclasses import dataclass, field
from enum import Enum
from pathlib import Path
from typing import Any, Iterable, Optional, Sequence, Union

from agentgate.config.defaults import MAX_RULE_PATTERN_LENGTH, RULES_STORAGE_KEY
from agentgate.security.errors import RuleStoreError
from agentgate.telemetry.logger import get_logger

logger = get_logger(__name__)


class PermissionDecision(Enum):
    """Decision for a command. Restrictiveness: DENY > PROMPT > ALLOW."""

    ALLOW = "allow"
    PROMPT = "prompt"
    DENY = "deny"

    @property
    def restrictiveness(self) -> int:
        """Rank used to resolve conflicts between rules."""
        return _RESTRICTIVENESS[self]


_RESTRICTIVENESS = {
    PermissionDecision.ALLOW: 0,
    PermissionDecision.PROMPT: 1,
    PermissionDecision.DENY: 2,
}


def most_restrictive(decisions: Iterable[PermissionDecision]) -> PermissionDecision:
    """Return the most restrictive decision (ALLOW for an empty input)."""
    return max(decisions, key=lambda d: d.restrictiveness, default=PermissionDecision.ALLOW)


class RuleSource(Enum):
    """Who created a rule."""

    DEFAULT = "default"
    USER = "user"


@dataclass(frozen=True)
class Literal:
    """Pattern position matching a single token (case-insensitive)."""

    value: str

    def matches(self, token: str) -> bool:
        return token.lower() == self.value.lower()

    def to_json(self) -> str:
        return self.value


@dataclass(frozen=True)
class OneOf:
    """Pattern position matching any of several tokens (case-insensitive)."""

    values: tuple[str, ...]

    def matches(self, token: str) -> bool:
        lowered = token.lower()
        return any(lowered == v.lower() for v in self.values)

    def to_json(self) -> list[str]:
        return list(self.values)


PatternPart = Union[Literal, OneOf]


def pattern_from_json(items: Sequence[Any]) -> tuple[PatternPart, ...]:
    """Build pattern parts from the persisted ``string | string[]`` form.

    Raises:
        ValueError: If an item is neither a string nor a list of strings
    """
    parts: list[PatternPart] = []
    for item in items:
        if isinstance(item, str):
            parts.append(Literal(item))
        elif isinstance(item, list) and item and all(isinstance(v, str) for v in item):
            parts.append(OneOf(tuple(item)))
        else:
            raise ValueError(f"Invalid pattern item: {item!r}")
    return tuple(parts)


@dataclass(frozen=True)
class PermissionRule:
    """A rule matching an argv prefix.

    Attributes:
        id: Unique rule identifier
        name: Display name
        pattern: Argv prefix; each position is a Literal or a OneOf
        decision: Decision applied when the rule matches
        created_by: DEFAULT for built-ins, USER for persisted rules
        created_at: Creation time in epoch milliseconds
        description: Optional longer description
    """

    id: str
    name: str
    pattern: tuple[PatternPart, ...]
    decision: PermissionDecision
    created_by: RuleSource = RuleSource.USER
    created_at: int = 0
    description: Optional[str] = None

    @property
    def is_builtin(self) -> bool:
        return self.created_by == RuleSource.DEFAULT

    def matches(self, argv: Sequence[str]) -> bool:
        return matches_pattern(argv, self.pattern)

    def to_dict(self) -> dict[str, Any]:
        """Convert to the persisted JSON shape."""
        d: dict[str, Any] = {
            "id": self.id,
            "name": self.name,
            "pattern": [part.to_json() for part in self.pattern],
            "decision": self.decision.value,
            "createdAt": self.created_at,
            "createdBy": self.created_by.value,
        }
        if self.description:
            d["description"] = self.description
        return d

    @classmethod
    def from_dict(cls, data: dict[str, Any]) -> "PermissionRule":
        """Create from the persisted JSON shape.

        Raises:
            ValueError: If required fields are missing or malformed
        """
        rule_id = data.get("id")
        if not rule_id or not isinstance(rule_id, str):
            raise ValueError("Rule is missing an id")

        pattern = data.get("pattern")
        if not isinstance(pattern, list) or not pattern:
            raise ValueError(f"Rule {rule_id} has no pattern list")

        decision = data.get("decision")
        if not decision:
            raise ValueError(f"Rule {rule_id} is missing a decision")

        created_at = data.get("createdAt", 0)
        return cls(
            id=rule_id,
            name=str(data.get("name") or rule_id),
            pattern=pattern_from_json(pattern),
            decision=PermissionDecision(decision),
            created_by=RuleSource(data.get("createdBy", RuleSource.USER.value)),
            created_at=created_at if isinstance(created_at, int) else 0,
            description=data.get("description"),
        )


def _builtin(rule_id: str, name: str, pattern: Sequence[Any], decision: PermissionDecision) -> PermissionRule:
    return PermissionRule(
        id=rule_id,
        name=name,
        pattern=pattern_from_json(pattern),
        decision=decision,
        created_by=RuleSource.DEFAULT,
    )


DEFAULT_RULES: tuple[PermissionRule, ...] = (
    # Read-only commands
    _builtin("allow-ls", "Allow ls", ["ls"], PermissionDecision.ALLOW),
    _builtin("allow-cat", "Allow cat", ["cat"], PermissionDecision.ALLOW),
    _builtin("allow-pwd", "Allow pwd", ["pwd"], PermissionDecision.ALLOW),
    _builtin("allow-echo", "Allow echo", ["echo"], PermissionDecision.ALLOW),
    _builtin("allow-git-status", "Allow git status", ["git", "status"], PermissionDecision.ALLOW),
    _builtin("allow-git-diff", "Allow git diff", ["git", "diff"], PermissionDecision.ALLOW),
    _builtin("allow-git-log", "Allow git log", ["git", "log"], PermissionDecision.ALLOW),
    # Package scripts
    _builtin("prompt-npm-install", "Prompt npm install", ["npm", "install"], PermissionDecision.PROMPT),
    _builtin("prompt-npm-run", "Prompt npm run", ["npm", "run"], PermissionDecision.PROMPT),
    # Dangerous
    _builtin("forbid-sudo", "Forbid sudo", ["sudo"], PermissionDecision.DENY),
    _builtin("forbid-rm-rf", "Forbid rm -rf", ["rm", ["-rf", "-fr", "-r", "-f"]], PermissionDecision.DENY),
)

BUILTIN_RULE_IDS = frozenset(rule.id for rule in DEFAULT_RULES)


@dataclass
class RuleEvaluation:
    """Result of evaluating argv against a rule set.

    Attributes:
        decision: Combined decision (PROMPT when nothing matched)
        matched_rules: Every matching rule, in rule-set order
        most_restrictive: The first matching rule carrying the combined decision
    """

    decision: PermissionDecision
    matched_rules: list[PermissionRule] = field(default_factory=list)
    most_restrictive: Optional[PermissionRule] = None


def matches_pattern(argv: Sequence[str], pattern: Sequence[PatternPart]) -> bool:
    """Check whether pattern is a case-insensitive prefix of argv."""
    if len(argv) < len(pattern):
        return False
    return all(part.matches(token) for part, token in zip(pattern, argv))


def find_matching_rules(argv: Sequence[str], rules: Iterable[PermissionRule]) -> list[PermissionRule]:
    """Return every rule whose pattern matches argv."""
    return [rule for rule in rules if rule.matches(argv)]


def evaluate_rules(argv: Sequence[str], rules: Iterable[PermissionRule]) -> RuleEvaluation:
    """Evaluate argv against rules.

    No match yields PROMPT: the absence of an allow rule is not permission.
    Otherwise the most restrictive matched decision wins.
    """
    matched = find_matching_rules(argv, rules)
    if not matched:
        return RuleEvaluation(decision=PermissionDecision.PROMPT)

    decision = most_restrictive(rule.decision for rule in matched)
    winner = next(rule for rule in matched if rule.decision == decision)
    return RuleEvaluation(decision=decision, matched_rules=matched, most_restrictive=winner)


def create_rule(
    rule_id: str,
    name: str,
    argv: Sequence[str],
    decision: PermissionDecision,
    now: Optional[float] = None,
) -> PermissionRule:
    """Create a user rule from the first (at most three) argv tokens.

    Args:
        rule_id: Rule identifier
        name: Display name
        argv: Parsed argument vector the rule is derived from
        decision: Decision to apply
        now: Creation time in epoch seconds (defaults to the current time)
    """
    if not argv:
        raise ValueError("Cannot create a rule from an empty argv")

    created = time.time() if now is None else now
    return PermissionRule(
        id=rule_id,
        name=name,
        pattern=tuple(Literal(token) for token in argv[:MAX_RULE_PATTERN_LENGTH]),
        decision=decision,
        created_by=RuleSource.USER,
        created_at=int(created * 1000),
    )


def serialize_rules(rules: Iterable[PermissionRule]) -> str:
    """Serialize rules to a JSON array."""
    return json.dumps([rule.to_dict() for rule in rules], indent=2)


def deserialize_rules(text: str) -> list[PermissionRule]:
    """Deserialize a JSON array of rules, dropping malformed entries."""
    try:
        parsed = json.loads(text)
    except (TypeError, ValueError):
        logger.warning("Persisted rules are not valid JSON")
        return []

    if not isinstance(parsed, list):
        logger.warning("Persisted rules are not a JSON array", kind=type(parsed).__name__)
        return []

    rules: list[PermissionRule] = []
    for entry in parsed:
        if not isinstance(entry, dict):
            continue
        try:
            rules.append(PermissionRule.from_dict(entry))
        except ValueError as e:
            logger.warning("Dropping malformed rule", rule_id=entry.get("id"), error=str(e))
    return rules


class RuleStore(ABC):
    """Abstract key-value store holding serialized user rules."""

    @abstractmethod
    def get(self, key: str) -> Optional[str]:
        """Return the stored value, or None if absent."""

    @abstractmethod
    def set(self, key: str, value: str) -> None:
        """Store a value, replacing any previous one."""


class MemoryRuleStore(RuleStore):
    """In-process rule store, used by tests and ephemeral sessions."""

    def __init__(self, initial: Optional[dict[str, str]] = None) -> None:
        self._data: dict[str, str] = dict(initial or {})
        self._lock = threading.Lock()

    def get(self, key: str) -> Optional[str]:
        with self._lock:
            return self._data.get(key)

    def set(self, key: str, value: str) -> None:
        with self._lock:
            self._data[key] = value


class FileRuleStore(RuleStore):
    """JSON-file rule store with atomic writes.

    The file holds a mapping of key to serialized value. Writes go to a
    temporary file that then replaces the target, so readers never see a
    partially written rule set.
    """

    def __init__(self, path: Path) -> None:
        self.path = Path(path).expanduser()
        self._lock = threading.Lock()

    def _read_all(self) -> dict[str, str]:
        if not self.path.exists():
            return {}
        with open(self.path) as f:
            data = json.load(f)
        if not isinstance(data, dict):
            raise ValueError(f"Rule store root must be an object: {self.path}")
        return data

    def get(self, key: str) -> Optional[str]:
        with self._lock:
            value = self._read_all().get(key)
        return value if isinstance(value, str) else None

    def set(self, key: str, value: str) -> None:
        with self._lock:
            try:
                data = self._read_all()
            except (OSError, ValueError):
                logger.warning("Rule store unreadable, overwriting", path=str(self.path))
                data = {}
            data[key] = value

            self.path.parent.mkdir(parents=True, exist_ok=True)
            temp_path = self.path.with_suffix(f".{os.getpid()}.tmp")
            with open(temp_path, "w") as f:
                json.dump(data, f, indent=2)
            os.replace(temp_path, self.path)


def load_rules(store: Optional[RuleStore], key: str = RULES_STORAGE_KEY) -> list[PermissionRule]:
    """Load built-in rules followed by persisted user rules.

    Any failure to read or parse the store degrades to the built-ins.
    """
    rules = list(DEFAULT_RULES)
    if store is None:
        return rules

    try:
        stored = store.get(key)
    except Exception as e:
        logger.warning("Failed to read rule store", error=str(e))
        return rules

    if not stored:
        return rules

    user_rules = [
        r for r in deserialize_rules(stored)
        if r.created_by == RuleSource.USER and r.id not in BUILTIN_RULE_IDS
    ]
    logger.debug("Loaded user rules", count=len(user_rules))
    return rules + user_rules


def save_rules(
    store: Optional[RuleStore],
    rules: Iterable[PermissionRule],
    key: str = RULES_STORAGE_KEY,
) -> None:
    """Persist user rules; built-ins are never written.

    Raises:
        RuleStoreError: If the store rejects the write
    """
    if store is None:
        return

    user_rules = [r for r in rules if r.created_by == RuleSource.USER]
    try:
        store.set(key, serialize_rules(user_rules))
    except Exception as e:
        logger.error("Failed to save rules", error=str(e))
        raise RuleStoreError(f"Failed to save rules: {e}", cause=e) from e
