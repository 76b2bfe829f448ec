"""Audit Logging - Bounded in-memory log of every permission decision."""

import json
import threading
import time
import uuid
from collections import deque
from dataclasses import dataclass, replace
from datetime import datetime
from enum import Enum
from pathlib import Path
from typing import Any, Callable, Optional, Sequence

from agentgate.config.defaults import DEFAULT_AUDIT_CAPACITY, DEFAULT_AUDIT_OUTPUT_LENGTH
from agentgate.security.classifier import RiskTier
from agentgate.security.rules import PermissionDecision
from agentgate.telemetry.logger import get_logger

logger = get_logger(__name__)


class AuditEventType(Enum):
    """Types of auditable events."""

    TOOL_PROPOSED = "tool_proposed"
    TOOL_DECISION = "tool_decision"
    TOOL_APPROVED = "tool_approved"
    TOOL_DENIED = "tool_denied"
    TOOL_RESULT = "tool_result"
    RULE_ADDED = "rule_added"
    RULE_REMOVED = "rule_removed"
    SESSION_APPROVAL = "session_approval"
    CONFIG_CHANGED = "config_changed"


class DecisionSource(Enum):
    """What produced a decision."""

    RULE = "rule"
    POLICY = "policy"
    USER = "user"
    SESSION = "session"


@dataclass
class AuditEvent:
    """A permission audit event.

    Attributes:
        type: Type of event
        id: Unique event id (assigned when logged)
        timestamp: Epoch seconds (assigned when logged)
        command: Raw command string
        argv: Parsed argument vector
        cwd: Working directory
        decision: Decision taken
        decision_source: What produced the decision
        risk_tier: Risk tier of the command
        matched_rule: Id of the rule that decided
        approver_identity: Who approved or denied
        success: Whether execution succeeded
        duration: Execution time in seconds
        output: Execution output (truncated)
        error: Execution error
        metadata: Additional context
    """

    type: AuditEventType
    id: str = ""
    timestamp: float = 0.0
    command: Optional[str] = None
    argv: Optional[tuple[str, ...]] = None
    cwd: Optional[str] = None
    decision: Optional[PermissionDecision] = None
    decision_source: Optional[DecisionSource] = None
    risk_tier: Optional[RiskTier] = None
    matched_rule: Optional[str] = None
    approver_identity: Optional[str] = None
    success: Optional[bool] = None
    duration: Optional[float] = None
    output: Optional[str] = None
    error: Optional[str] = None
    metadata: Optional[dict[str, Any]] = None

    def to_dict(self) -> dict[str, Any]:
        """Convert to dictionary for serialization."""
        d: dict[str, Any] = {
            "id": self.id,
            "type": self.type.value,
            "timestamp": self.timestamp,
        }

        if self.command is not None:
            d["command"] = self.command
        if self.argv is not None:
            d["argv"] = list(self.argv)
        if self.cwd is not None:
            d["cwd"] = self.cwd
        if self.decision is not None:
            d["decision"] = self.decision.value
        if self.decision_source is not None:
            d["decision_source"] = self.decision_source.value
        if self.risk_tier is not None:
            d["risk_tier"] = int(self.risk_tier)
        if self.matched_rule is not None:
            d["matched_rule"] = self.matched_rule
        if self.approver_identity is not None:
            d["approver_identity"] = self.approver_identity
        if self.success is not None:
            d["success"] = self.success
        if self.duration is not None:
            d["duration"] = self.duration
        if self.output is not None:
            d["output"] = self.output
        if self.error is not None:
            d["error"] = self.error
        if self.metadata:
            d["metadata"] = self.metadata

        return d

    def to_json(self) -> str:
        """Convert to JSON string."""
        return json.dumps(self.to_dict())

    @classmethod
    def from_dict(cls, data: dict[str, Any]) -> "AuditEvent":
        """Create from dictionary."""
        return cls(
            type=AuditEventType(data["type"]),
            id=data.get("id", ""),
            timestamp=data.get("timestamp", 0.0),
            command=data.get("command"),
            argv=tuple(data["argv"]) if "argv" in data else None,
            cwd=data.get("cwd"),
            decision=PermissionDecision(data["decision"]) if "decision" in data else None,
            decision_source=(
                DecisionSource(data["decision_source"]) if "decision_source" in data else None
            ),
            risk_tier=RiskTier(data["risk_tier"]) if "risk_tier" in data else None,
            matched_rule=data.get("matched_rule"),
            approver_identity=data.get("approver_identity"),
            success=data.get("success"),
            duration=data.get("duration"),
            output=data.get("output"),
            error=data.get("error"),
            metadata=data.get("metadata"),
        )


AuditListener = Callable[[AuditEvent], None]


class AuditLogger:
    """Append-only audit log with a fixed-capacity ring buffer.

    Every event gets an id and timestamp at log time, is stored in memory
    (oldest events drop once capacity is reached), fanned out to
    subscribers and, if a log path is set, appended to a JSON-lines file.

    Example:
        audit = AuditLogger()
        unsubscribe = audit.subscribe(print)

        audit.log_decision("ls", ("ls",), PermissionDecision.ALLOW, DecisionSource.RULE)
        events = audit.get_by_type(AuditEventType.TOOL_DECISION)
        unsubscribe()
    """

    def __init__(
        self,
        capacity: int = DEFAULT_AUDIT_CAPACITY,
        max_output_length: int = DEFAULT_AUDIT_OUTPUT_LENGTH,
        log_path: Optional[Path] = None,
        max_file_size: int = 10 * 1024 * 1024,  # 10 MB
        clock: Callable[[], float] = time.time,
    ) -> None:
        """Initialize the audit logger.

        Args:
            capacity: Number of events kept in memory
            max_output_length: Output longer than this is truncated
            log_path: Optional JSON-lines file mirroring every event
            max_file_size: Maximum log file size before rotation
            clock: Time source in epoch seconds
        """
        self.capacity = capacity
        self.max_output_length = max_output_length
        self.log_path = Path(log_path).expanduser() if log_path else None
        self.max_file_size = max_file_size
        self._clock = clock

        self._events: deque[AuditEvent] = deque(maxlen=capacity)
        self._listeners: list[AuditListener] = []
        self._lock = threading.Lock()

        if self.log_path:
            self.log_path.parent.mkdir(parents=True, exist_ok=True)

        logger.debug(
            "AuditLogger initialized",
            capacity=capacity,
            log_path=str(self.log_path) if self.log_path else None,
        )

    def log(self, event: AuditEvent) -> AuditEvent:
        """Log an audit event.

        Args:
            event: Event to log; id and timestamp are overwritten

        Returns:
            The stored event
        """
        output = event.output
        if output is not None and len(output) > self.max_output_length:
            output = output[: self.max_output_length]

        stored = replace(
            event,
            id=f"audit-{uuid.uuid4().hex[:12]}",
            timestamp=self._clock(),
            output=output,
        )

        with self._lock:
            self._events.append(stored)
            listeners = list(self._listeners)

        for listener in listeners:
            try:
                listener(stored)
            except Exception as e:
                logger.error("Audit listener failed", event_type=stored.type.value, error=str(e))

        if self.log_path:
            self._write(stored)

        return stored

    def _write(self, event: AuditEvent) -> None:
        """Append an event to the audit file."""
        self._check_rotation()
        try:
            with open(self.log_path, "a") as f:
                f.write(event.to_json() + "\n")
        except Exception as e:
            logger.error("Failed to write audit log", error=str(e))

    def _check_rotation(self) -> None:
        """Check if log file needs rotation."""
        if self.log_path.exists():
            if self.log_path.stat().st_size >= self.max_file_size:
                self._rotate()

    def _rotate(self) -> None:
        """Rotate the audit log file."""
        timestamp = datetime.now().strftime("%Y%m%d_%H%M%S")
        rotated_path = self.log_path.with_suffix(f".{timestamp}{self.log_path.suffix}")

        try:
            self.log_path.rename(rotated_path)
            logger.info("Audit log rotated", new_path=str(rotated_path))
        except Exception as e:
            logger.error("Failed to rotate audit log", error=str(e))

    # Convenience methods for each pipeline branch

    def log_proposal(self, command: str, argv: Sequence[str], cwd: str) -> AuditEvent:
        """Log a proposed command before evaluation."""
        return self.log(
            AuditEvent(
                type=AuditEventType.TOOL_PROPOSED,
                command=command,
                argv=tuple(argv),
                cwd=cwd,
            )
        )

    def log_decision(
        self,
        command: str,
        argv: Sequence[str],
        decision: PermissionDecision,
        source: DecisionSource,
        risk_tier: Optional[RiskTier] = None,
        matched_rule: Optional[str] = None,
        reason: Optional[str] = None,
    ) -> AuditEvent:
        """Log the outcome of an evaluation.

        Args:
            command: Raw command
            argv: Parsed argument vector
            decision: Decision taken
            source: What produced the decision
            risk_tier: Risk tier of the command
            matched_rule: Id of the deciding rule
            reason: Human-readable reason
        """
        return self.log(
            AuditEvent(
                type=AuditEventType.TOOL_DECISION,
                command=command,
                argv=tuple(argv),
                decision=decision,
                decision_source=source,
                risk_tier=risk_tier,
                matched_rule=matched_rule,
                metadata={"reason": reason} if reason else None,
            )
        )

    def log_approval(
        self,
        command: str,
        argv: Sequence[str],
        approver: str,
        choice: Optional[str] = None,
    ) -> AuditEvent:
        """Log a human (or automatic) approval."""
        return self.log(
            AuditEvent(
                type=AuditEventType.TOOL_APPROVED,
                command=command,
                argv=tuple(argv),
                decision=PermissionDecision.ALLOW,
                decision_source=DecisionSource.USER,
                approver_identity=approver,
                metadata={"choice": choice} if choice else None,
            )
        )

    def log_denial(
        self,
        command: str,
        argv: Sequence[str],
        approver: str,
        reason: Optional[str] = None,
    ) -> AuditEvent:
        """Log a human (or automatic) denial."""
        return self.log(
            AuditEvent(
                type=AuditEventType.TOOL_DENIED,
                command=command,
                argv=tuple(argv),
                decision=PermissionDecision.DENY,
                decision_source=DecisionSource.USER,
                approver_identity=approver,
                metadata={"reason": reason} if reason else None,
            )
        )

    def log_result(
        self,
        command: str,
        argv: Sequence[str],
        success: bool,
        duration: float,
        output: Optional[str] = None,
        error: Optional[str] = None,
    ) -> AuditEvent:
        """Log the result of executing a command.

        Args:
            command: Raw command
            argv: Parsed argument vector
            success: Whether execution succeeded
            duration: Execution time in seconds
            output: Command output (truncated on storage)
            error: Error message if execution failed
        """
        return self.log(
            AuditEvent(
                type=AuditEventType.TOOL_RESULT,
                command=command,
                argv=tuple(argv),
                success=success,
                duration=duration,
                output=output,
                error=error,
            )
        )

    def log_rule_added(self, rule_id: str, rule_name: str, decision: PermissionDecision) -> AuditEvent:
        """Log a new user rule."""
        return self.log(
            AuditEvent(
                type=AuditEventType.RULE_ADDED,
                decision=decision,
                matched_rule=rule_id,
                metadata={"rule_name": rule_name},
            )
        )

    def log_rule_removed(self, rule_id: str) -> AuditEvent:
        """Log a removed user rule."""
        return self.log(AuditEvent(type=AuditEventType.RULE_REMOVED, matched_rule=rule_id))

    def log_session_approval(self, tool_name: str) -> AuditEvent:
        """Log a base command approved for the rest of the session."""
        return self.log(
            AuditEvent(
                type=AuditEventType.SESSION_APPROVAL,
                decision=PermissionDecision.ALLOW,
                decision_source=DecisionSource.SESSION,
                metadata={"tool": tool_name},
            )
        )

    def log_config_changed(self, changes: dict[str, Any]) -> AuditEvent:
        """Log a configuration update."""
        return self.log(AuditEvent(type=AuditEventType.CONFIG_CHANGED, metadata={"changes": changes}))

    # Subscribers

    def subscribe(self, listener: AuditListener) -> Callable[[], None]:
        """Subscribe to events.

        Returns:
            Callable that removes the listener
        """
        with self._lock:
            self._listeners.append(listener)
        return lambda: self.unsubscribe(listener)

    def unsubscribe(self, listener: AuditListener) -> None:
        """Remove a listener. Unknown listeners are ignored."""
        with self._lock:
            if listener in self._listeners:
                self._listeners.remove(listener)

    # Queries

    def get_logs(self) -> list[AuditEvent]:
        """Get all stored events, oldest first."""
        with self._lock:
            return list(self._events)

    def get_by_type(self, event_type: AuditEventType) -> list[AuditEvent]:
        with self._lock:
            return [e for e in self._events if e.type == event_type]

    def get_in_range(self, start: float, end: float) -> list[AuditEvent]:
        """Get events with start <= timestamp <= end."""
        with self._lock:
            return [e for e in self._events if start <= e.timestamp <= end]

    def export_json(self) -> str:
        """Export stored events as a JSON array."""
        with self._lock:
            return json.dumps([e.to_dict() for e in self._events], indent=2)

    def clear(self) -> None:
        """Drop all stored events. The audit file is left untouched."""
        with self._lock:
            self._events.clear()

    def __len__(self) -> int:
        with self._lock:
            return len(self._events)
