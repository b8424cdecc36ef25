"""
Security audit trail.
Created: 2026-03-04

Append-only JSONL log of security-relevant engine transitions: token issuance,
client authentication failures, code reuse and refresh replay, revocation,
client registration and logout.
"""

from __future__ import annotations

import json
import logging
import uuid
from collections.abc import Callable
from dataclasses import asdict, dataclass, field
from datetime import UTC, datetime
from enum import Enum
from pathlib import Path
from typing import Any

logger = logging.getLogger("audit")


class AuditSeverity(str, Enum):
    INFO = "info"  # Normal operation (e.g. token issued)
    WARNING = "warning"  # Failed authentication, unknown token
    CRITICAL = "critical"  # Client registered or deleted
    ALERT = "alert"  # Replay detected (code reuse, refresh token reuse)


@dataclass
class AuditEvent:
    """A single audit log entry."""

    id: str
    timestamp: str
    severity: AuditSeverity
    actor: str  # client_id, user_id or "server"
    action: str  # e.g. "token_issued", "code_reuse"
    target: str  # e.g. "client:abc", "grant:authorization_code"
    status: str  # "success", "failure", "revoked"
    context: dict[str, Any] = field(default_factory=dict)

    @classmethod
    def create(
        cls,
        severity: AuditSeverity,
        actor: str,
        action: str,
        target: str,
        status: str,
        **context: Any,
    ) -> AuditEvent:
        return cls(
            id=str(uuid.uuid4()),
            timestamp=datetime.now(tz=UTC).isoformat(),
            severity=severity,
            actor=actor,
            action=action,
            target=target,
            status=status,
            context=context,
        )


class AuditLogger:
    """
    Append-only audit logger.
    Writes JSONL to ``log_path`` when given; always mirrors to the ``audit`` logger.
    """

    def __init__(self, log_path: Path | None = None):
        self.log_path = log_path
        if log_path is not None:
            log_path.parent.mkdir(parents=True, exist_ok=True)
        self._callbacks: list[Callable[[dict], None]] = []

    def on_log(self, callback: Callable[[dict], None]) -> None:
        """Register a callback to be called after each audit log write."""
        self._callbacks.append(callback)

    def log(self, event: AuditEvent) -> None:
        """Write an event to the audit log."""
        event_dict = asdict(event)
        event_dict["severity"] = event.severity.value
        level = logging.WARNING if event.severity is AuditSeverity.ALERT else logging.INFO
        logger.log(level, "%s %s %s (%s)", event.actor, event.action, event.target, event.status)
        try:
            if self.log_path is not None:
                with open(self.log_path, "a", encoding="utf-8") as f:
                    f.write(json.dumps(event_dict) + "\n")
        except OSError as e:
            # Never break the protocol flow because the audit sink is down
            logger.critical("FAILED TO WRITE AUDIT LOG: %s | Event: %s", e, event)
        for cb in self._callbacks:
            try:
                cb(event_dict)
            except Exception:
                logger.exception("Audit callback failed")

    def log_token_event(
        self,
        action: str,
        client_id: str | None,
        *,
        grant_type: str | None = None,
        severity: AuditSeverity = AuditSeverity.INFO,
        status: str = "success",
        **context: Any,
    ) -> str:
        """Helper for token lifecycle events (issue, revoke, reuse)."""
        event = AuditEvent.create(
            severity=severity,
            actor=client_id or "anonymous",
            action=action,
            target=f"grant:{grant_type}" if grant_type else f"client:{client_id}",
            status=status,
            **context,
        )
        self.log(event)
        return event.id

    def log_client_event(
        self,
        action: str,
        client_id: str | None,
        status: str,
        severity: AuditSeverity = AuditSeverity.WARNING,
        **context: Any,
    ) -> str:
        """Helper for client authentication and registration events."""
        event = AuditEvent.create(
            severity=severity,
            actor=client_id or "anonymous",
            action=action,
            target=f"client:{client_id}",
            status=status,
            **context,
        )
        self.log(event)
        return event.id

    def log_session_event(
        self,
        action: str,
        user_id: str,
        session_id: str,
        status: str = "success",
        severity: AuditSeverity = AuditSeverity.INFO,
        **context: Any,
    ) -> str:
        """Helper for login session events (logout)."""
        event = AuditEvent.create(
            severity=severity,
            actor=user_id,
            action=action,
            target=f"session:{session_id}",
            status=status,
            **context,
        )
        self.log(event)
        return event.id
