"""Risk Classifier - Assigns risk tiers and detects forbidden commands."""

import re
from dataclasses import dataclass, field
from enum import IntEnum
from typing import Optional, Sequence

from agentgate.telemetry.logger import get_logger

logger = get_logger(__name__)


class RiskTier(IntEnum):
    """Risk tier of a command.

    Uses IntEnum for easy comparison (DANGEROUS > SYSTEM > ...).
    """

    READ_ONLY = 0  # No side effects
    WORKSPACE_WRITE = 1  # Modifies files in the project
    SYSTEM = 2  # Packages, interpreters, services, unknown binaries
    DANGEROUS = 3  # Destructive or privileged

    @property
    def label(self) -> str:
        """Short human-readable label."""
        return _TIER_LABELS[self]


_TIER_LABELS = {
    RiskTier.READ_ONLY: "Read-only",
    RiskTier.WORKSPACE_WRITE: "Workspace Write",
    RiskTier.SYSTEM: "System/Package",
    RiskTier.DANGEROUS: "Destructive/Privileged",
}


@dataclass(frozen=True)
class ForbiddenPattern:
    """A pattern whose match denies a command outright."""

    pattern: str
    description: str
    _regex: re.Pattern = field(init=False, repr=False, compare=False)

    def __post_init__(self) -> None:
        object.__setattr__(self, "_regex", re.compile(self.pattern, re.IGNORECASE | re.MULTILINE))

    def matches(self, command: str) -> bool:
        """Check if pattern matches the raw command."""
        return bool(self._regex.search(command))


@dataclass(frozen=True)
class ForbiddenCheck:
    """Result of checking a command against the forbidden patterns."""

    forbidden: bool
    reason: Optional[str] = None
    pattern: Optional[ForbiddenPattern] = None


_SHELL = r"(?:ba|z|da|k)?sh"

FORBIDDEN_PATTERNS: tuple[ForbiddenPattern, ...] = (
    # Privilege escalation
    ForbiddenPattern(r"(?:^\s*|[;&|\r\n]\s*)(?:sudo|su|doas|pkexec)\b", "Privilege escalation"),
    # Destructive filesystem
    ForbiddenPattern(
        r"(?<![\w-])rm\s+(?:[^\s;&|]+\s+)*(?:-[a-z]*[rf][a-z]*|--recursive|--force)(?=\s|$|[;&|])",
        "Recursive or forced delete",
    ),
    ForbiddenPattern(
        r">\s*(?:/etc/|/usr/|/var/|/bin/|/sbin/|~/|\$HOME\b)",
        "Redirect into system directory or home dotfiles",
    ),
    # Remote code execution
    ForbiddenPattern(rf"\b(?:curl|wget)\b.*\|\s*{_SHELL}\b", "Download piped into a shell"),
    ForbiddenPattern(rf"\|\s*{_SHELL}\s*$", "Output piped into a shell"),
    # Dangerous permissions
    ForbiddenPattern(
        r"\bchmod\s+(?:-\S+\s+)*(?:[0-7]?[0-7]{2}[2367]\b|(?:\S*,)?[ugo]*[ao][ugo]*[+=][rwxXst]*w)",
        "World-writable permissions",
    ),
    ForbiddenPattern(
        r"\bchmod\s+(?:-\S+\s+)*(?:[2467][0-7]{3}\b|\S*\+[rwxXt]*s)",
        "Setuid/setgid permissions",
    ),
    ForbiddenPattern(r"\bchown\s+(?:-\S+\s+)*root\b", "Ownership change to root"),
    # Secrets exposure
    ForbiddenPattern(r"\.ssh(?:/|\b)", "SSH directory access"),
    ForbiddenPattern(r"\bid_(?:rsa|dsa|ecdsa|ed25519)\b", "Private key access"),
    ForbiddenPattern(r"\.gnupg(?:/|\b)", "GnuPG keyring access"),
    ForbiddenPattern(r"\.aws/credentials", "AWS credentials access"),
    ForbiddenPattern(r"\.env\b", "Environment secrets file (.env) access"),
    ForbiddenPattern(r"/etc/(?:passwd|shadow|sudoers)\b", "System account database access"),
    ForbiddenPattern(r"password|secret|token|api[_-]?key", "Secret-looking argument"),
    # System modification
    ForbiddenPattern(r"\bdd\s+.*\bof=", "Raw disk write (dd of=)"),
    ForbiddenPattern(r"\bmkfs\b", "Filesystem creation"),
    ForbiddenPattern(r"\b(?:fdisk|sfdisk|parted)\b", "Disk partitioning"),
    ForbiddenPattern(r"\bkill\s+(?:-\S+\s+)*-(?:9|kill|sigkill)\b", "Forced process kill"),
    ForbiddenPattern(r"\b(?:killall|pkill)\b", "Mass process termination"),
)

# Tier 0: read-only
TIER_0_COMMANDS = frozenset({
    "cat", "head", "tail", "less", "more", "wc", "file",
    "ls", "dir", "tree", "pwd", "find", "which", "whereis",
    "echo", "printf", "env", "printenv",
    "date", "cal", "uptime", "whoami", "id", "groups",
    "diff", "cmp", "md5sum", "sha256sum",
})

TIER_0_GIT = frozenset({
    "status", "log", "diff", "show", "branch", "tag",
    "remote", "fetch", "ls-files", "ls-tree", "rev-parse",
})

# Tier 1: workspace write
TIER_1_COMMANDS = frozenset({
    "touch", "mkdir", "cp", "mv", "ln",
    "tee", "sort", "uniq", "cut", "paste", "tr", "sed", "awk",
    "tar", "zip", "unzip", "gzip", "gunzip",
})

TIER_1_GIT = frozenset({
    "add", "commit", "stash", "checkout", "switch", "restore",
    "merge", "rebase", "cherry-pick", "revert", "reset",
})

TIER_2_GIT = frozenset({"push", "clone"})

# Tier 2: system / package
TIER_2_COMMANDS = frozenset({
    "npm", "npx", "yarn", "pnpm", "bun",
    "pip", "pip3", "pipenv", "poetry", "conda",
    "cargo", "go", "gem", "bundle",
    "docker", "docker-compose", "podman",
    "make", "cmake", "configure",
    "node", "python", "python3", "ruby", "perl",
    "systemctl", "service", "launchctl",
})


class RiskClassifier:
    """Classifies commands into risk tiers 0-3.

    Forbidden patterns are checked independently of the tier: a match
    means the command must be denied no matter what rules or policy say.
    Anything not found in a lookup table is tier 2.

    Example:
        classifier = RiskClassifier()
        classifier.classify(("git", "status"), "git status")  # RiskTier.READ_ONLY
        classifier.is_forbidden("sudo rm -rf /").forbidden    # True
    """

    def __init__(
        self,
        additional_patterns: Optional[Sequence[ForbiddenPattern]] = None,
    ) -> None:
        """Initialize the risk classifier.

        Args:
            additional_patterns: Extra forbidden patterns, checked after the built-ins
        """
        self._patterns: list[ForbiddenPattern] = list(FORBIDDEN_PATTERNS)
        if additional_patterns:
            self._patterns.extend(additional_patterns)

        logger.debug("RiskClassifier initialized", pattern_count=len(self._patterns))

    @property
    def patterns(self) -> tuple[ForbiddenPattern, ...]:
        """Active forbidden patterns."""
        return tuple(self._patterns)

    def add_pattern(self, pattern: ForbiddenPattern) -> None:
        """Add a custom forbidden pattern."""
        self._patterns.append(pattern)

    def is_forbidden(self, command: str) -> ForbiddenCheck:
        """Check a raw command against the forbidden patterns.

        Args:
            command: Raw command string

        Returns:
            ForbiddenCheck naming the first matching pattern
        """
        for pattern in self._patterns:
            if pattern.matches(command):
                logger.debug(
                    "Forbidden pattern matched",
                    command=command,
                    description=pattern.description,
                )
                return ForbiddenCheck(
                    forbidden=True,
                    reason=f"Matches dangerous pattern: {pattern.description} ({pattern.pattern})",
                    pattern=pattern,
                )
        return ForbiddenCheck(forbidden=False)

    def classify(self, argv: Sequence[str], command: str) -> RiskTier:
        """Classify a parsed command into a risk tier.

        Args:
            argv: Parsed argument vector
            command: Raw command string

        Returns:
            RiskTier of the command
        """
        if not argv:
            return RiskTier.DANGEROUS

        if self.is_forbidden(command).forbidden:
            return RiskTier.DANGEROUS

        base = argv[0].lower()

        # rm without recursive/force flags (those are caught above)
        if base == "rm":
            return RiskTier.WORKSPACE_WRITE

        if base == "git" and len(argv) > 1:
            return self._classify_git(argv[1].lower())

        if base in TIER_0_COMMANDS:
            return RiskTier.READ_ONLY
        if base in TIER_1_COMMANDS:
            return RiskTier.WORKSPACE_WRITE
        if base in TIER_2_COMMANDS:
            return RiskTier.SYSTEM

        # Unknown commands may change system state
        return RiskTier.SYSTEM

    def _classify_git(self, subcommand: str) -> RiskTier:
        if subcommand in TIER_0_GIT:
            return RiskTier.READ_ONLY
        if subcommand in TIER_1_GIT:
            return RiskTier.WORKSPACE_WRITE
        if subcommand in TIER_2_GIT:
            return RiskTier.SYSTEM
        return RiskTier.WORKSPACE_WRITE


def get_risk_description(tier: RiskTier, argv: Sequence[str]) -> str:
    """Render a human-readable sentence for a tier, naming the command."""
    cmd = argv[0] if argv else "unknown"

    if tier == RiskTier.READ_ONLY:
        return f"Read-only command ({cmd}) - safe to run"
    if tier == RiskTier.WORKSPACE_WRITE:
        return f"Workspace modification ({cmd}) - may modify files in project"
    if tier == RiskTier.SYSTEM:
        return f"System/package operation ({cmd}) - may install packages or change system state"
    return f"Potentially dangerous ({cmd}) - requires explicit approval"


_default_classifier: Optional[RiskClassifier] = None


def _get_default_classifier() -> RiskClassifier:
    global _default_classifier
    if _default_classifier is None:
        _default_classifier = RiskClassifier()
    return _default_classifier


def classify_risk(argv: Sequence[str], command: str) -> RiskTier:
    """Classify with the built-in tables and patterns."""
    return _get_default_classifier().classify(argv, command)


def is_forbidden_pattern(command: str) -> ForbiddenCheck:
    """Check a command against the built-in forbidden patterns."""
    return _get_default_classifier().is_forbidden(command)
