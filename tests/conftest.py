"""Pytest configuration and fixtures."""

import pytest
from pathlib import Path

from agentgate.config.schemas import AgentGateConfig, SecurityConfig
from agentgate.security.audit import AuditLogger
from agentgate.security.manager import PermissionManager
from agentgate.security.rules import MemoryRuleStore


class FakeClock:
    """Manually advanced time source (epoch seconds)."""

    def __init__(self, start: float = 1_700_000_000.0) -> None:
        self.now = start

    def __call__(self) -> float:
        return self.now

    def advance(self, seconds: float) -> None:
        self.now += seconds


@pytest.fixture
def test_config() -> AgentGateConfig:
    """Create a test configuration."""
    return AgentGateConfig()


@pytest.fixture
def clock() -> FakeClock:
    """Create a controllable clock."""
    return FakeClock()


@pytest.fixture
def workspace(tmp_path: Path) -> str:
    """Create a trusted workspace directory."""
    root = tmp_path / "workspace"
    root.mkdir()
    return str(root)


@pytest.fixture
def rule_store() -> MemoryRuleStore:
    """Create an empty in-memory rule store."""
    return MemoryRuleStore()


@pytest.fixture
def audit(clock: FakeClock) -> AuditLogger:
    """Create an audit logger driven by the fake clock."""
    return AuditLogger(clock=clock)


@pytest.fixture
def manager(
    workspace: str,
    rule_store: MemoryRuleStore,
    audit: AuditLogger,
    clock: FakeClock,
) -> PermissionManager:
    """Create a permission manager trusting the test workspace."""
    return PermissionManager(
        config=SecurityConfig(workspace_roots=[workspace]),
        rule_store=rule_store,
        audit_logger=audit,
        clock=clock,
    )


@pytest.fixture
def temp_config_file(tmp_path: Path) -> Path:
    """Create a temporary config file."""
    config_file = tmp_path / "config.yaml"
    config_file.write_text("""
security:
  approval_policy: untrusted
  network_access: true
  workspace_roots:
    - /srv/project

audit:
  capacity: 50

log_level: DEBUG
""")
    return config_file
