"""Default configuration values for agentgate."""

from pathlib import Path

# Default paths
DEFAULT_CONFIG_DIR = Path.home() / ".agentgate"
DEFAULT_CONFIG_FILE = DEFAULT_CONFIG_DIR / "config.yaml"
DEFAULT_RULES_FILE = DEFAULT_CONFIG_DIR / "rules.json"
SYSTEM_CONFIG_FILE = Path("/etc/agentgate/config.yaml")
PROJECT_CONFIG_NAME = ".agentgate.yaml"

# Environment overrides
ENV_PREFIX = "AGENTGATE_"

# Short environment names for the settings CI jobs change most
ENV_ALIASES = {
    "POLICY": ("security", "approval_policy"),
    "NETWORK": ("security", "network_access"),
    "WORKSPACE": ("security", "workspace_roots"),
    "RULES_FILE": ("security", "rules_path"),
    "AUDIT_LOG": ("audit", "log_path"),
}

# Rule persistence
RULES_STORAGE_KEY = "agentgate_permission_rules"
MAX_RULE_PATTERN_LENGTH = 3

# Session state
ONCE_APPROVAL_TTL_SECONDS = 60 * 60

# Pending approvals: unresolved prompts expire, and the oldest are evicted past the cap
PENDING_APPROVAL_TTL_SECONDS = 60 * 60
MAX_PENDING_APPROVALS = 1000

# Audit log
DEFAULT_AUDIT_CAPACITY = 1000
DEFAULT_AUDIT_OUTPUT_LENGTH = 5000
