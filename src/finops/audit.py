"""Audit trail for destructive ledger operations.

Every live bulk operation records one entry. Entries are emitted on the
``finops.audit`` logger so they reach whatever sink structlog renders to,
and the most recent ones are kept in memory for the admin API.
"""

from collections import deque
from dataclasses import dataclass, field
from datetime import UTC, datetime
from typing import Any

import structlog

audit_logger = structlog.get_logger("finops.audit")


@dataclass
class AuditEntry:
    """A single audited action."""

    action: str
    user: str
    timestamp: str
    details: dict[str, Any] = field(default_factory=dict)


class AuditLog:
    """Bounded in-process log of recent audit entries."""

    def __init__(self, max_entries: int = 500):
        self._entries: deque[AuditEntry] = deque(maxlen=max_entries)

    def record(self, action: str, user: str, **details: Any) -> AuditEntry:
        entry = AuditEntry(
            action=action,
            user=user,
            timestamp=datetime.now(UTC).isoformat(),
            details=details,
        )
        self._entries.append(entry)
        audit_logger.info("audit", action=action, user=user, at=entry.timestamp, **details)
        return entry

    def recent(self, limit: int = 50, action: str | None = None) -> list[AuditEntry]:
        """Most recent entries first, optionally filtered by action."""
        entries = [e for e in reversed(self._entries) if action is None or e.action == action]
        return entries[:limit]

    def clear(self) -> None:
        self._entries.clear()

    def __len__(self) -> int:
        return len(self._entries)


_audit_log = AuditLog()


def get_audit_log() -> AuditLog:
    """Process-wide audit log."""
    return _audit_log
