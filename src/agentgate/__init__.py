"""
agentgate - Permission gate for commands proposed by autonomous agents.

Every shell command an agent wants to run is evaluated before execution:
- Forbidden patterns are denied outright
- Commands touching untrusted paths or the network need approval
- User rules and session approvals short-circuit repeat prompts
- A configurable approval policy decides the rest
"""

__version__ = "0.1.0"
__author__ = "agentgate Team"

from agentgate.config.schemas import AgentGateConfig
from agentgate.security.manager import PermissionManager, PermissionResult

__all__ = [
    "__version__",
    "AgentGateConfig",
    "PermissionManager",
    "PermissionResult",
]
