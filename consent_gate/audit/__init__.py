"""
Audit Subpackage for consent-gate

Records release pipeline transitions and outcomes (ISO 27001 A.12.4.1).
"""

from collections import deque
from dataclasses import dataclass, field
from datetime import datetime, UTC
from typing import Deque, List, Optional, Dict, Any
from enum import Enum
import uuid

import structlog

from ..constants import AuditEventTypes

logger = structlog.get_logger(__name__)


class AuditSeverity(str, Enum):
    """Audit event severity levels"""
    DEBUG = "debug"
    INFO = "info"
    WARNING = "warning"
    ERROR = "error"
    CRITICAL = "critical"


@dataclass
class AuditEvent:
    """
    Represents an audit event for release control.

    Attributes:
        event_type: Type of audit event
        trace_id: Request the event belongs to
        severity: Event severity level
        message: Human-readable description
        details: Additional structured data
        timestamp: When the event occurred
        event_id: Unique identifier for the event
        user_id: Tenant or user on whose behalf the release ran
    """
    event_type: str
    trace_id: Optional[str] = None
    severity: AuditSeverity = AuditSeverity.INFO
    message: str = ""
    details: Dict[str, Any] = field(default_factory=dict)
    timestamp: datetime = field(default_factory=lambda: datetime.now(UTC))
    event_id: str = field(default_factory=lambda: str(uuid.uuid4()))
    user_id: Optional[str] = None

    def to_dict(self) -> Dict[str, Any]:
        """Convert audit event to dictionary for logging/storage"""
        return {
            "event_id": self.event_id,
            "event_type": self.event_type,
            "severity": self.severity.value,
            "trace_id": self.trace_id,
            "user_id": self.user_id,
            "message": self.message,
            "details": self.details,
            "timestamp": self.timestamp.isoformat(),
        }


class AuditTrail:
    """Bounded in-memory audit trail that also emits structured log lines"""

    def __init__(self, max_events: int = 10000):
        self._events: Deque[AuditEvent] = deque(maxlen=max_events)

    def record(self, event: AuditEvent) -> AuditEvent:
        self._events.append(event)
        log = logger.warning if event.severity in (
            AuditSeverity.WARNING, AuditSeverity.ERROR, AuditSeverity.CRITICAL
        ) else logger.info
        log("Audit event", **event.to_dict())
        return event

    def events(self, trace_id: Optional[str] = None,
               event_type: Optional[str] = None) -> List[AuditEvent]:
        """Recorded events, optionally filtered"""
        return [
            e for e in self._events
            if (trace_id is None or e.trace_id == trace_id)
            and (event_type is None or e.event_type == event_type)
        ]

    def clear(self) -> None:
        self._events.clear()


def create_transition_event(
    trace_id: str,
    from_state: str,
    to_state: str,
    details: Optional[Dict[str, Any]] = None,
    user_id: Optional[str] = None
) -> AuditEvent:
    """
    Create a pipeline transition audit event.

    Args:
        trace_id: Request identifier
        from_state: State left
        to_state: State entered
        details: Additional context (hashes, decision codes)
        user_id: Tenant identity

    Returns:
        AuditEvent for the transition
    """
    severity = AuditSeverity.WARNING if to_state == "REJECTED" else AuditSeverity.INFO
    return AuditEvent(
        event_type=AuditEventTypes.PIPELINE_TRANSITION,
        trace_id=trace_id,
        severity=severity,
        message=f"Release pipeline {from_state} -> {to_state}",
        details={"from": from_state, "to": to_state, **(details or {})},
        user_id=user_id,
    )


def create_release_event(
    trace_id: str,
    approved: bool,
    reason: str,
    details: Optional[Dict[str, Any]] = None,
    user_id: Optional[str] = None
) -> AuditEvent:
    """Create the final approve/reject audit event for a release"""
    return AuditEvent(
        event_type=AuditEventTypes.RELEASE_APPROVED if approved else AuditEventTypes.RELEASE_REJECTED,
        trace_id=trace_id,
        severity=AuditSeverity.INFO if approved else AuditSeverity.WARNING,
        message=f"Release {'approved' if approved else 'rejected'}: {reason}",
        details=details or {},
        user_id=user_id,
    )


def create_delivery_event(
    trace_id: str,
    delivered: bool,
    detail: Optional[str] = None,
    reference: Optional[str] = None,
    user_id: Optional[str] = None
) -> AuditEvent:
    """Create the audit event for the hand-off of an approved payload"""
    return AuditEvent(
        event_type=AuditEventTypes.DELIVERY_HANDOFF if delivered else AuditEventTypes.DELIVERY_FAILED,
        trace_id=trace_id,
        severity=AuditSeverity.INFO if delivered else AuditSeverity.ERROR,
        message="Approved payload handed to delivery" if delivered else "Delivery hand-off failed",
        details={"detail": detail, "reference": reference},
        user_id=user_id,
    )


__all__ = [
    "AuditSeverity",
    "AuditEvent",
    "AuditTrail",
    "create_transition_event",
    "create_release_event",
    "create_delivery_event",
]
