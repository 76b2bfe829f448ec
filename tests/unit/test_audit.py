"""Tests for the audit logger."""

import json
from pathlib import Path
from unittest.mock import MagicMock

from agentgate.security.audit import (
    AuditEvent,
    AuditEventType,
    AuditLogger,
    DecisionSource,
)
from agentgate.security.classifier import RiskTier
from agentgate.security.rules import PermissionDecision


class TestAuditEvent:
    """Tests for AuditEvent serialization."""

    def test_to_dict_snake_case(self) -> None:
        event = AuditEvent(
            type=AuditEventType.TOOL_DECISION,
            id="audit-1",
            timestamp=12.5,
            command="git status",
            argv=("git", "status"),
            decision=PermissionDecision.ALLOW,
            decision_source=DecisionSource.RULE,
            risk_tier=RiskTier.READ_ONLY,
            matched_rule="allow-git-status",
        )
        assert event.to_dict() == {
            "id": "audit-1",
            "type": "tool_decision",
            "timestamp": 12.5,
            "command": "git status",
            "argv": ["git", "status"],
            "decision": "allow",
            "decision_source": "rule",
            "risk_tier": 0,
            "matched_rule": "allow-git-status",
        }

    def test_from_dict_round_trip(self) -> None:
        event = AuditEvent(
            type=AuditEventType.TOOL_RESULT,
            id="audit-2",
            timestamp=1.0,
            success=False,
            duration=0.5,
            error="exit 1",
        )
        assert AuditEvent.from_dict(event.to_dict()) == event


class TestAuditLogger:
    """Tests for AuditLogger."""

    def test_assigns_id_and_timestamp(self, clock) -> None:
        audit = AuditLogger(clock=clock)
        first = audit.log_proposal("ls", ("ls",), "/work")
        second = audit.log_proposal("ls", ("ls",), "/work")

        assert first.id and second.id and first.id != second.id
        assert first.timestamp == clock.now
        assert first.type == AuditEventType.TOOL_PROPOSED
        assert first.cwd == "/work"

    def test_ring_buffer_capacity(self) -> None:
        """Oldest events drop once capacity is exceeded."""
        audit = AuditLogger(capacity=3)
        for i in range(5):
            audit.log_proposal(f"cmd{i}", (f"cmd{i}",), "/")

        logs = audit.get_logs()
        assert len(audit) == 3
        assert [e.command for e in logs] == ["cmd2", "cmd3", "cmd4"]

    def test_default_capacity(self) -> None:
        audit = AuditLogger()
        for i in range(1005):
            audit.log_rule_removed(f"r{i}")
        assert len(audit) == 1000
        assert audit.get_logs()[0].matched_rule == "r5"

    def test_output_truncated(self) -> None:
        audit = AuditLogger()
        event = audit.log_result("cat big", ("cat", "big"), True, 0.1, output="x" * 6000)
        assert len(event.output) == 5000

    def test_short_output_kept(self) -> None:
        audit = AuditLogger()
        event = audit.log_result("echo hi", ("echo", "hi"), True, 0.1, output="hi\n")
        assert event.output == "hi\n"

    def test_listeners_receive_events(self) -> None:
        audit = AuditLogger()
        received = []
        audit.subscribe(received.append)

        event = audit.log_session_approval("npm")

        assert received == [event]
        assert event.metadata == {"tool": "npm"}

    def test_unsubscribe_callable(self) -> None:
        audit = AuditLogger()
        received = []
        unsubscribe = audit.subscribe(received.append)

        unsubscribe()
        audit.log_rule_removed("r1")

        assert received == []

    def test_unsubscribe_method(self) -> None:
        audit = AuditLogger()
        listener = MagicMock()
        audit.subscribe(listener)
        audit.unsubscribe(listener)
        audit.unsubscribe(listener)  # unknown listeners are ignored

        audit.log_rule_removed("r1")
        listener.assert_not_called()

    def test_listener_isolation(self) -> None:
        """A failing listener does not stop the others or the log call."""
        audit = AuditLogger()
        failing = MagicMock(side_effect=RuntimeError("boom"))
        healthy = MagicMock()
        audit.subscribe(failing)
        audit.subscribe(healthy)

        event = audit.log_rule_removed("r1")

        failing.assert_called_once_with(event)
        healthy.assert_called_once_with(event)
        assert audit.get_logs() == [event]

    def test_get_by_type(self) -> None:
        audit = AuditLogger()
        audit.log_proposal("ls", ("ls",), "/")
        audit.log_decision("ls", ("ls",), PermissionDecision.ALLOW, DecisionSource.RULE)
        audit.log_denial("rm x", ("rm", "x"), "alice", reason="deny")

        decisions = audit.get_by_type(AuditEventType.TOOL_DECISION)
        assert len(decisions) == 1
        assert decisions[0].decision == PermissionDecision.ALLOW

        denials = audit.get_by_type(AuditEventType.TOOL_DENIED)
        assert denials[0].approver_identity == "alice"
        assert denials[0].decision_source == DecisionSource.USER

    def test_get_in_range_inclusive(self, clock) -> None:
        audit = AuditLogger(clock=clock)
        start = clock.now
        audit.log_rule_removed("a")
        clock.advance(10)
        audit.log_rule_removed("b")
        clock.advance(10)
        audit.log_rule_removed("c")

        in_range = audit.get_in_range(start, start + 10)
        assert [e.matched_rule for e in in_range] == ["a", "b"]

    def test_export_json(self) -> None:
        audit = AuditLogger()
        audit.log_approval("make", ("make",), "bob", choice="approve_once")

        exported = json.loads(audit.export_json())
        assert len(exported) == 1
        assert exported[0]["type"] == "tool_approved"
        assert exported[0]["approver_identity"] == "bob"
        assert exported[0]["metadata"] == {"choice": "approve_once"}

    def test_clear(self) -> None:
        audit = AuditLogger()
        audit.log_rule_removed("a")
        audit.clear()
        assert audit.get_logs() == []

    def test_convenience_loggers(self) -> None:
        audit = AuditLogger()
        added = audit.log_rule_added("user-1", "Allow make", PermissionDecision.ALLOW)
        changed = audit.log_config_changed({"network_access": True})

        assert added.type == AuditEventType.RULE_ADDED
        assert added.metadata == {"rule_name": "Allow make"}
        assert changed.type == AuditEventType.CONFIG_CHANGED
        assert changed.metadata == {"changes": {"network_access": True}}

    def test_every_event_type_has_a_logger(self) -> None:
        """Each event type is produced by one of the convenience loggers."""
        audit = AuditLogger()
        audit.log_proposal("make", ("make",), "/")
        audit.log_decision("make", ("make",), PermissionDecision.PROMPT, DecisionSource.POLICY)
        audit.log_approval("make", ("make",), "bob", choice="approve_once")
        audit.log_denial("make", ("make",), "bob")
        audit.log_result("make", ("make",), success=True, duration=0.5)
        audit.log_rule_added("user-1", "Allow make", PermissionDecision.ALLOW)
        audit.log_rule_removed("user-1")
        audit.log_session_approval("make")
        audit.log_config_changed({"network_access": True})

        assert {event.type for event in audit.get_logs()} == set(AuditEventType)


class TestAuditFileSink:
    """Tests for the JSON-lines file sink."""

    def test_writes_json_lines(self, tmp_path: Path) -> None:
        log_path = tmp_path / "audit" / "audit.jsonl"
        audit = AuditLogger(log_path=log_path)

        audit.log_proposal("ls", ("ls",), "/")
        audit.log_rule_removed("r1")

        lines = log_path.read_text().splitlines()
        assert len(lines) == 2
        assert json.loads(lines[0])["type"] == "tool_proposed"

    def test_rotation(self, tmp_path: Path) -> None:
        log_path = tmp_path / "audit.jsonl"
        audit = AuditLogger(log_path=log_path, max_file_size=10)

        audit.log_proposal("ls", ("ls",), "/")
        audit.log_proposal("pwd", ("pwd",), "/")

        rotated = [p for p in tmp_path.iterdir() if p.name != "audit.jsonl"]
        assert len(rotated) == 1
        assert len(log_path.read_text().splitlines()) == 1