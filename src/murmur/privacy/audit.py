# SPDX-License-Identifier: MIT
# Copyright (c) 2026 Murmur Contributors

"""Key rotation audit trail.

Records encryption key lifecycle events (master key rotations and DEK
access) so rotations are attributable without revealing content. Events
are append-only and kept in a bounded log; when the log is full the oldest
event is evicted first.

Event details pass through the content sanitizer and the log-context
scrubber before they are stored, so an audit record never carries
plaintext feedback or PII.

Storage sits behind the ``AuditLog`` protocol. ``InMemoryAuditLog`` is the
default; a durable store can be swapped in without touching call sites.
"""

from __future__ import annotations

import logging
import threading
import uuid
from collections import deque
from dataclasses import dataclass, field
from datetime import UTC, datetime, timedelta
from enum import StrEnum
from typing import Any, Protocol, runtime_checkable

from ..core.config import get_config
from ..core.exceptions import ValidationException
from ..core.logging import scrub_log_context
from .sanitizer import sanitize

logger = logging.getLogger(__name__)


class KeyRotationEventType(StrEnum):
    """Key lifecycle transitions that are audited."""

    INITIATED = "initiated"  # Master key rotation started
    SUCCESS = "success"  # Master key rotation completed
    FAILED = "failed"  # Master key rotation failed
    ACCESS = "access"  # Data encryption key accessed


# Log level per event type
EVENT_LOG_LEVELS: dict[KeyRotationEventType, int] = {
    KeyRotationEventType.FAILED: logging.CRITICAL,
    KeyRotationEventType.INITIATED: logging.WARNING,
    KeyRotationEventType.SUCCESS: logging.INFO,
    KeyRotationEventType.ACCESS: logging.INFO,
}


@dataclass(frozen=True)
class KeyRotationPolicy:
    """Recommended rotation schedule.

    The master key rotates quarterly or on compromise. DEKs rotate rarely
    because rotation means re-encrypting the org's data.
    """

    master_key_rotation_days: int = 90
    dek_rotation_days: int = 365
    require_admin_approval: bool = True
    allow_emergency_rotation: bool = True

    def to_dict(self) -> dict[str, Any]:
        return {
            "master_key_rotation_days": self.master_key_rotation_days,
            "dek_rotation_days": self.dek_rotation_days,
            "require_admin_approval": self.require_admin_approval,
            "allow_emergency_rotation": self.allow_emergency_rotation,
        }


KEY_ROTATION_POLICY = KeyRotationPolicy()


def _scrub_details(details: dict[str, Any]) -> dict[str, Any]:
    scrubbed = scrub_log_context(details)
    return {key: _scrub_value(value) for key, value in scrubbed.items()}


def _scrub_value(value: Any) -> Any:
    if isinstance(value, str):
        return sanitize(value)
    if isinstance(value, dict):
        return {key: _scrub_value(item) for key, item in value.items()}
    if isinstance(value, list):
        return [_scrub_value(item) for item in value]
    return value


@dataclass
class KeyRotationEvent:
    """One audited key lifecycle event.

    Attributes:
        event_type: What happened
        org_id: Org whose key was involved
        user_id: Admin who triggered the event (optional)
        error: Failure description, sanitized (optional)
        timestamp: When the event was recorded (UTC)
        details: Free-form context, scrubbed of PII
        event_id: Unique identifier for this event
    """

    event_type: KeyRotationEventType
    org_id: str
    user_id: str | None = None
    error: str | None = None
    timestamp: datetime = field(default_factory=lambda: datetime.now(UTC))
    details: dict[str, Any] = field(default_factory=dict)
    event_id: str = field(default_factory=lambda: str(uuid.uuid4()))

    def __post_init__(self) -> None:
        if not self.org_id:
            raise ValidationException("org_id is required", field="org_id")
        if self.details:
            self.details = _scrub_details(self.details)
        if self.error:
            self.error = sanitize(self.error)

    @property
    def is_rotation(self) -> bool:
        """Whether this event is a finished rotation (success or failure)."""
        return self.event_type in (KeyRotationEventType.SUCCESS, KeyRotationEventType.FAILED)

    def to_dict(self) -> dict[str, Any]:
        """Serialize to dictionary for JSON storage."""
        return {
            "event_id": self.event_id,
            "type": self.event_type.value,
            "org_id": self.org_id,
            "user_id": self.user_id,
            "error": self.error,
            "timestamp": self.timestamp.isoformat(),
            "details": self.details,
        }


@runtime_checkable
class AuditLog(Protocol):
    """Protocol for bounded append-only audit storage."""

    @property
    def capacity(self) -> int:
        """Maximum events retained."""
        ...

    def append(self, event: KeyRotationEvent) -> None:
        """Append an event, evicting the oldest if full."""
        ...

    def query(
        self,
        org_id: str | None = None,
        event_type: KeyRotationEventType | None = None,
    ) -> list[KeyRotationEvent]:
        """Get matching events, oldest first."""
        ...

    def __len__(self) -> int: ...


class InMemoryAuditLog:
    """In-memory ring buffer audit log.

    Thread-safe but not persistent - data lost on restart. Append and evict
    happen under one lock, so readers never see a half-applied append.
    """

    def __init__(self, capacity: int | None = None):
        if capacity is None:
            capacity = get_config().audit_capacity
        if capacity < 1:
            raise ValidationException("capacity must be positive", field="capacity", value=capacity)
        self._events: deque[KeyRotationEvent] = deque(maxlen=capacity)
        self._capacity = capacity
        self._lock = threading.Lock()

    @property
    def capacity(self) -> int:
        return self._capacity

    def append(self, event: KeyRotationEvent) -> None:
        with self._lock:
            # deque(maxlen) drops from the left on overflow
            self._events.append(event)

    def query(
        self,
        org_id: str | None = None,
        event_type: KeyRotationEventType | None = None,
    ) -> list[KeyRotationEvent]:
        with self._lock:
            snapshot = list(self._events)
        return [
            event
            for event in snapshot
            if (org_id is None or event.org_id == org_id)
            and (event_type is None or event.event_type == event_type)
        ]

    def clear(self) -> None:
        """Clear all events (for testing)."""
        with self._lock:
            self._events.clear()

    def __len__(self) -> int:
        with self._lock:
            return len(self._events)


@dataclass(frozen=True)
class RotationStats:
    """Summary of finished master key rotations in the log."""

    total_rotations: int
    successful_rotations: int
    failed_rotations: int
    last_rotation: KeyRotationEvent | None = None

    def to_dict(self) -> dict[str, Any]:
        return {
            "total_rotations": self.total_rotations,
            "successful_rotations": self.successful_rotations,
            "failed_rotations": self.failed_rotations,
            "last_rotation": self.last_rotation.to_dict() if self.last_rotation else None,
        }


class KeyRotationAuditTrail:
    """High-level key rotation audit service.

    Usage:
        trail = KeyRotationAuditTrail()
        trail.log_event(KeyRotationEventType.INITIATED, org_id, user_id=admin_id)
        ...
        trail.stats().successful_rotations
    """

    def __init__(
        self,
        log: AuditLog | None = None,
        policy: KeyRotationPolicy = KEY_ROTATION_POLICY,
    ):
        self._log: AuditLog = log if log is not None else InMemoryAuditLog()
        self.policy = policy

    @property
    def log(self) -> AuditLog:
        return self._log

    def log_event(
        self,
        event_type: KeyRotationEventType | str,
        org_id: str,
        user_id: str | None = None,
        error: str | None = None,
        details: dict[str, Any] | None = None,
    ) -> KeyRotationEvent:
        """Record an event and emit a structured log line.

        Returns:
            The stored event (timestamped and scrubbed)
        """
        event = KeyRotationEvent(
            event_type=KeyRotationEventType(event_type),
            org_id=org_id,
            user_id=user_id,
            error=error,
            details=details or {},
        )
        self._log.append(event)

        logger.log(
            EVENT_LOG_LEVELS.get(event.event_type, logging.INFO),
            "Key rotation audit: %s",
            event.event_type.value,
            extra={
                "extra_data": {
                    "audit_type": "KEY_ROTATION",
                    "event_id": event.event_id,
                    "org_id": event.org_id,
                    "has_error": event.error is not None,
                }
            },
        )
        return event

    def org_history(self, org_id: str) -> list[KeyRotationEvent]:
        """Get every retained event for one org, oldest first."""
        return self._log.query(org_id=org_id)

    def all_events(self) -> list[KeyRotationEvent]:
        """Get a copy of every retained event, oldest first."""
        return self._log.query()

    def stats(self, org_id: str | None = None) -> RotationStats:
        """Summarize finished rotations, optionally for one org."""
        rotations = [event for event in self._log.query(org_id=org_id) if event.is_rotation]
        successes = sum(1 for event in rotations if event.event_type == KeyRotationEventType.SUCCESS)
        failures = len(rotations) - successes
        return RotationStats(
            total_rotations=len(rotations),
            successful_rotations=successes,
            failed_rotations=failures,
            last_rotation=rotations[-1] if rotations else None,
        )

    def rotation_due(self, org_id: str, now: datetime | None = None) -> bool:
        """Whether the org's master key is due for rotation under the policy.

        An org with no retained successful rotation is always due.
        """
        now = now or datetime.now(UTC)
        successes = self._log.query(org_id=org_id, event_type=KeyRotationEventType.SUCCESS)
        if not successes:
            return True
        last = successes[-1].timestamp
        return now - last >= timedelta(days=self.policy.master_key_rotation_days)


# Module-level singleton for convenience
_default_trail: KeyRotationAuditTrail | None = None
_default_trail_lock = threading.Lock()


def get_audit_trail() -> KeyRotationAuditTrail:
    """Get the default key rotation audit trail."""
    global _default_trail
    if _default_trail is None:
        with _default_trail_lock:
            if _default_trail is None:
                _default_trail = KeyRotationAuditTrail()
    return _default_trail


def set_audit_trail(trail: KeyRotationAuditTrail | None) -> None:
    """Replace the default audit trail (None resets it)."""
    global _default_trail
    with _default_trail_lock:
        _default_trail = trail
