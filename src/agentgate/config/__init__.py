"""Configuration management for agentgate."""

from agentgate.config.loader import get_default_config_path, load_config
from agentgate.config.schemas import (
    AgentGateConfig,
    ApprovalPolicy,
    AuditConfig,
    SecurityConfig,
    TelemetryConfig,
)

__all__ = [
    "AgentGateConfig",
    "ApprovalPolicy",
    "AuditConfig",
    "SecurityConfig",
    "TelemetryConfig",
    "load_config",
    "get_default_config_path",
]
