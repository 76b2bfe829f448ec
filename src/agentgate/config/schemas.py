"""Configuration schemas using Pydantic for validation."""

from enum import Enum
from pathlib import Path
from typing import Any, Optional

from pydantic import BaseModel, Field, field_validator


class ApprovalPolicy(str, Enum):
    """Fallback applied when no rule gives a definitive answer."""

    NEVER = "never"  # Never prompt (hard blocks still apply)
    ON_REQUEST = "on-request"  # Prompt for tier 2 and above
    UNTRUSTED = "untrusted"  # Always prompt
    ON_FAILURE = "on-failure"  # Allow, re-prompt if the sandbox blocks


class SecurityConfig(BaseModel):
    """Permission gate configuration."""

    approval_policy: ApprovalPolicy = Field(
        default=ApprovalPolicy.ON_REQUEST,
        description="Fallback policy for commands without a definitive rule",
    )
    network_access: bool = Field(
        default=False,
        description="Allow commands that reach the network without prompting",
    )
    workspace_roots: list[str] = Field(
        default_factory=list,
        description="Trusted workspace roots; referenced paths must live under one",
    )
    sandbox_writes: bool = Field(
        default=True,
        description="Whether the executing sandbox confines writes to the workspace",
    )
    max_output_length: int = Field(
        default=10000,
        gt=0,
        description="Maximum command output length kept for execution results",
    )
    rules: list[dict[str, Any]] = Field(
        default_factory=list,
        description="Extra user rules in the persisted rule format",
    )
    rules_path: Optional[Path] = Field(
        default=None,
        description="Path to the persisted user rules file",
    )

    @field_validator("workspace_roots")
    @classmethod
    def validate_workspace_roots(cls, v: list[str]) -> list[str]:
        """Reject blank workspace roots."""
        for root in v:
            if not root or not root.strip():
                raise ValueError("Workspace roots must be non-empty paths")
        return v


class AuditConfig(BaseModel):
    """Audit log configuration."""

    capacity: int = Field(
        default=1000,
        gt=0,
        description="Number of events kept in memory",
    )
    max_output_length: int = Field(
        default=5000,
        gt=0,
        description="Output longer than this is truncated before storage",
    )
    log_path: Optional[Path] = Field(
        default=None,
        description="Optional JSON-lines file that mirrors every event",
    )
    max_file_size: int = Field(
        default=10 * 1024 * 1024,
        gt=0,
        description="Audit file size that triggers rotation",
    )


class TelemetryConfig(BaseModel):
    """Logging configuration."""

    log_file: Optional[Path] = Field(
        default=None,
        description="Path to log file",
    )
    json_format: bool = Field(
        default=True,
        description="Render log lines as JSON",
    )


class AgentGateConfig(BaseModel):
    """Root configuration for agentgate."""

    security: SecurityConfig = Field(
        default_factory=SecurityConfig,
        description="Permission gate configuration",
    )
    audit: AuditConfig = Field(
        default_factory=AuditConfig,
        description="Audit log configuration",
    )
    telemetry: TelemetryConfig = Field(
        default_factory=TelemetryConfig,
        description="Logging configuration",
    )
    log_level: str = Field(
        default="INFO",
        description="Global log level",
    )

    @field_validator("log_level")
    @classmethod
    def validate_log_level(cls, v: str) -> str:
        """Validate log level is valid."""
        valid_levels = {"DEBUG", "INFO", "WARNING", "ERROR", "CRITICAL"}
        if v.upper() not in valid_levels:
            raise ValueError(f"Invalid log level: {v}. Must be one of {valid_levels}")
        return v.upper()
