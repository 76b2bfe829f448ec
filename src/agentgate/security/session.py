"""Session State - Transient approvals and trusted workspaces for one run."""

import threading
from dataclasses import dataclass
from typing import Optional

from agentgate.config.defaults import ONCE_APPROVAL_TTL_SECONDS
from agentgate.telemetry.logger import get_logger

logger = get_logger(__name__)


@dataclass(frozen=True)
class OnceApproval:
    """A time-boxed grant for one specific (argv, cwd) hash.

    Attributes:
        command_hash: Hash of the approved command
        approved_at: Grant time in epoch seconds
        expires_at: Expiry time in epoch seconds
    """

    command_hash: str
    approved_at: float
    expires_at: float

    def is_live(self, now: float) -> bool:
        """Valid only strictly before expiry."""
        return now < self.expires_at


class SessionState:
    """Session-scoped approvals guarded by a lock.

    Holds base commands approved for the rest of the session, once-approvals
    keyed by command hash, and workspace roots trusted during the session.
    Expired once-approvals are evicted when they are looked up.
    """

    def __init__(self, once_ttl: float = ONCE_APPROVAL_TTL_SECONDS) -> None:
        self.once_ttl = once_ttl
        self._approved_tools: set[str] = set()
        self._once_approvals: dict[str, OnceApproval] = {}
        self._trusted_roots: list[str] = []
        self._lock = threading.Lock()

    def approve_tool(self, tool_name: str) -> None:
        with self._lock:
            self._approved_tools.add(tool_name.lower())

    def is_tool_approved(self, tool_name: str) -> bool:
        with self._lock:
            return tool_name.lower() in self._approved_tools

    @property
    def approved_tools(self) -> frozenset[str]:
        with self._lock:
            return frozenset(self._approved_tools)

    def grant_once(self, command_hash: str, now: float) -> OnceApproval:
        """Grant a once-approval expiring ``once_ttl`` seconds after ``now``."""
        approval = OnceApproval(
            command_hash=command_hash,
            approved_at=now,
            expires_at=now + self.once_ttl,
        )
        with self._lock:
            self._once_approvals[command_hash] = approval
        return approval

    def has_once_approval(self, command_hash: str, now: float) -> bool:
        """Check for a live once-approval, evicting it if expired."""
        with self._lock:
            approval = self._once_approvals.get(command_hash)
            if approval is None:
                return False
            if not approval.is_live(now):
                del self._once_approvals[command_hash]
                logger.debug("Once-approval expired", command_hash=command_hash)
                return False
            return True

    def get_once_approval(self, command_hash: str) -> Optional[OnceApproval]:
        with self._lock:
            return self._once_approvals.get(command_hash)

    def trust_root(self, path: str) -> bool:
        """Add a trusted root. Returns False if it was already trusted."""
        with self._lock:
            if path in self._trusted_roots:
                return False
            self._trusted_roots.append(path)
            return True

    @property
    def trusted_roots(self) -> list[str]:
        with self._lock:
            return list(self._trusted_roots)

    def clear(self) -> None:
        """Wipe session and once approvals. Trusted roots are kept."""
        with self._lock:
            self._approved_tools.clear()
            self._once_approvals.clear()
