"""
H10CM - Audit Logging

Audit trail for logins, program context changes and every grant mutation.
Events are written to the ``H10CM_Audit`` logger and kept in a bounded
in-memory buffer for querying and compliance export.
"""

import hashlib
import json
import logging
from collections import deque
from dataclasses import asdict, dataclass, field
from datetime import datetime, timezone
from enum import Enum
from typing import Any, Deque, Dict, Iterable, List, Optional
from uuid import uuid4

logger = logging.getLogger("H10CM_Audit")


# ============================================================
# Audit Event Types
# ============================================================


class AuditEventType(str, Enum):
    """Categories of auditable events."""

    # Authentication
    AUTH_LOGIN_SUCCESS = "auth.login.success"
    AUTH_LOGIN_FAILURE = "auth.login.failure"
    AUTH_LOGOUT = "auth.logout"

    # Program context
    PROGRAM_SWITCHED = "program.switched"
    PROGRAM_SWITCH_DENIED = "program.switch.denied"

    # Grants
    PROGRAM_GRANT_ASSIGNED = "grant.program.assigned"
    PROGRAM_GRANT_REVOKED = "grant.program.revoked"
    PROJECT_GRANT_ASSIGNED = "grant.project.assigned"
    PROJECT_GRANT_REVOKED = "grant.project.revoked"

    # Access requests
    ACCESS_REQUEST_APPROVED = "access_request.approved"
    ACCESS_REQUEST_DENIED = "access_request.denied"

    # Data access
    USERS_LISTED = "data.users.listed"
    ACCESS_REQUESTS_LISTED = "data.access_requests.listed"


class AuditResult(str, Enum):
    """Result of an audited action."""

    SUCCESS = "success"
    FAILURE = "failure"
    DENIED = "denied"
    ERROR = "error"


class AuditSeverity(str, Enum):
    """Severity level of audit event."""

    LOW = "low"           # Routine operations
    MEDIUM = "medium"     # Notable actions
    HIGH = "high"         # Grant changes


# ============================================================
# Audit Event Structure
# ============================================================


@dataclass
class AuditActor:
    """Who performed the action."""

    user_id: str
    email: str = ""
    role: Optional[str] = None


ANONYMOUS_ACTOR = AuditActor(user_id="anonymous")


@dataclass
class AuditAction:
    """What action was performed."""

    type: AuditEventType
    resource_type: str
    resource_id: Optional[str] = None
    details: Dict[str, Any] = field(default_factory=dict)


@dataclass
class AuditEvent:
    """Complete audit event record."""

    event_id: str
    timestamp: datetime
    actor: AuditActor
    action: AuditAction
    result: AuditResult
    severity: AuditSeverity
    error_message: Optional[str] = None

    def to_dict(self) -> Dict[str, Any]:
        """Convert to dictionary for storage."""
        return {
            "event_id": self.event_id,
            "timestamp": self.timestamp.isoformat(),
            "actor": asdict(self.actor),
            "action": {
                "type": self.action.type.value,
                "resource_type": self.action.resource_type,
                "resource_id": self.action.resource_id,
                "details": self.action.details,
            },
            "result": self.result.value,
            "severity": self.severity.value,
            "error_message": self.error_message,
        }

    def compute_hash(self) -> str:
        """Compute SHA256 hash for integrity verification."""
        content = (
            f"{self.event_id}{self.timestamp.isoformat()}"
            f"{self.actor.user_id}{self.action.type.value}{self.result.value}"
        )
        return hashlib.sha256(content.encode()).hexdigest()


# ============================================================
# Severity Mapping
# ============================================================


EVENT_SEVERITY: Dict[AuditEventType, AuditSeverity] = {
    AuditEventType.AUTH_LOGIN_SUCCESS: AuditSeverity.LOW,
    AuditEventType.AUTH_LOGOUT: AuditSeverity.LOW,
    AuditEventType.PROGRAM_SWITCHED: AuditSeverity.LOW,
    AuditEventType.USERS_LISTED: AuditSeverity.LOW,
    AuditEventType.ACCESS_REQUESTS_LISTED: AuditSeverity.LOW,

    AuditEventType.AUTH_LOGIN_FAILURE: AuditSeverity.MEDIUM,
    AuditEventType.PROGRAM_SWITCH_DENIED: AuditSeverity.MEDIUM,

    AuditEventType.PROGRAM_GRANT_ASSIGNED: AuditSeverity.HIGH,
    AuditEventType.PROGRAM_GRANT_REVOKED: AuditSeverity.HIGH,
    AuditEventType.PROJECT_GRANT_ASSIGNED: AuditSeverity.HIGH,
    AuditEventType.PROJECT_GRANT_REVOKED: AuditSeverity.HIGH,
    AuditEventType.ACCESS_REQUEST_APPROVED: AuditSeverity.HIGH,
    AuditEventType.ACCESS_REQUEST_DENIED: AuditSeverity.HIGH,
}


def get_event_severity(event_type: AuditEventType) -> AuditSeverity:
    """Get severity for an event type."""
    return EVENT_SEVERITY.get(event_type, AuditSeverity.MEDIUM)


# ============================================================
# Audit Logger
# ============================================================


class AuditLogger:
    """
    Central audit logging service.

    Keeps the most recent ``buffer_size`` events; older events are only in
    the log output.
    """

    def __init__(self, buffer_size: int = 1000):
        self._buffer: Deque[AuditEvent] = deque(maxlen=buffer_size)

    def log(
        self,
        event_type: AuditEventType,
        actor: AuditActor,
        resource_type: str,
        resource_id: Optional[str] = None,
        result: AuditResult = AuditResult.SUCCESS,
        details: Optional[Dict[str, Any]] = None,
        error_message: Optional[str] = None,
    ) -> AuditEvent:
        """Log an audit event."""
        event = AuditEvent(
            event_id=f"evt_{uuid4().hex[:16]}",
            timestamp=datetime.now(timezone.utc),
            actor=actor,
            action=AuditAction(
                type=event_type,
                resource_type=resource_type,
                resource_id=resource_id,
                details=_sanitize_for_audit(details or {}),
            ),
            result=result,
            severity=get_event_severity(event_type),
            error_message=error_message,
        )

        logger.info(
            f"AUDIT {event_type.value} {result.value} actor={actor.user_id} "
            f"{resource_type}={resource_id}",
            extra={
                "audit_event": event.to_dict(),
                "event_hash": event.compute_hash(),
            },
        )

        self._buffer.append(event)
        return event

    def query(
        self,
        start_time: Optional[datetime] = None,
        end_time: Optional[datetime] = None,
        event_types: Optional[Iterable[AuditEventType]] = None,
        actor_id: Optional[str] = None,
        resource_id: Optional[str] = None,
        severity: Optional[AuditSeverity] = None,
        result: Optional[AuditResult] = None,
        limit: int = 100,
        offset: int = 0,
    ) -> List[AuditEvent]:
        """Query buffered audit events with filters, oldest first."""
        types = set(event_types) if event_types is not None else None
        matches = [
            e for e in self._buffer
            if (start_time is None or e.timestamp >= start_time)
            and (end_time is None or e.timestamp <= end_time)
            and (types is None or e.action.type in types)
            and (actor_id is None or e.actor.user_id == actor_id)
            and (resource_id is None or e.action.resource_id == resource_id)
            and (severity is None or e.severity == severity)
            and (result is None or e.result == result)
        ]
        return matches[offset:offset + limit]

    def export(
        self,
        start_time: datetime,
        end_time: datetime,
        format: str = "json",
        include_hash: bool = True,
    ) -> str:
        """Export audit events for compliance."""
        if format != "json":
            raise ValueError(f"Unsupported format: {format}")

        events = self.query(start_time=start_time, end_time=end_time, limit=len(self._buffer))
        export_data = {
            "export_timestamp": datetime.now(timezone.utc).isoformat(),
            "period_start": start_time.isoformat(),
            "period_end": end_time.isoformat(),
            "event_count": len(events),
            "events": [e.to_dict() for e in events],
        }
        if include_hash:
            content = json.dumps(export_data, sort_keys=True, default=str)
            export_data["integrity_hash"] = hashlib.sha256(content.encode()).hexdigest()

        return json.dumps(export_data, indent=2, default=str)

    def __len__(self) -> int:
        return len(self._buffer)


def _sanitize_for_audit(data: Any) -> Any:
    """Remove sensitive fields from data before logging."""
    sensitive_fields = {
        "password", "secret", "token", "api_key",
        "certificate", "certificate_thumbprint", "private_key",
    }

    if isinstance(data, dict):
        return {
            k: "[REDACTED]" if k.lower() in sensitive_fields else _sanitize_for_audit(v)
            for k, v in data.items()
        }
    elif isinstance(data, (list, tuple)):
        return [_sanitize_for_audit(item) for item in data]
    elif isinstance(data, Enum):
        return data.value
    else:
        return data


# ============================================================
# Compliance Reports
# ============================================================


@dataclass
class ComplianceReport:
    """Structured compliance report."""

    report_id: str
    report_type: str
    generated_at: datetime
    period_start: datetime
    period_end: datetime
    summary: Dict[str, Any]
    details: List[Dict[str, Any]]
    integrity_hash: str


GRANT_EVENT_TYPES = (
    AuditEventType.PROGRAM_GRANT_ASSIGNED,
    AuditEventType.PROGRAM_GRANT_REVOKED,
    AuditEventType.PROJECT_GRANT_ASSIGNED,
    AuditEventType.PROJECT_GRANT_REVOKED,
    AuditEventType.ACCESS_REQUEST_APPROVED,
    AuditEventType.ACCESS_REQUEST_DENIED,
)

ADMIN_EVENT_TYPES = GRANT_EVENT_TYPES + (
    AuditEventType.USERS_LISTED,
    AuditEventType.ACCESS_REQUESTS_LISTED,
)


def generate_access_report(
    audit_logger: AuditLogger,
    start_time: datetime,
    end_time: datetime,
) -> ComplianceReport:
    """Generate access control compliance report."""
    events = audit_logger.query(
        start_time=start_time,
        end_time=end_time,
        event_types=[
            AuditEventType.AUTH_LOGIN_SUCCESS,
            AuditEventType.AUTH_LOGIN_FAILURE,
            *ADMIN_EVENT_TYPES,
        ],
        limit=len(audit_logger),
    )

    login_success = len([e for e in events if e.action.type == AuditEventType.AUTH_LOGIN_SUCCESS])
    login_failure = len([e for e in events if e.action.type == AuditEventType.AUTH_LOGIN_FAILURE])
    grant_changes = [
        e for e in events
        if e.action.type in GRANT_EVENT_TYPES and e.result == AuditResult.SUCCESS
    ]
    denied = len([
        e for e in events
        if e.action.type in ADMIN_EVENT_TYPES and e.result == AuditResult.DENIED
    ])

    summary = {
        "total_login_attempts": login_success + login_failure,
        "successful_logins": login_success,
        "failed_logins": login_failure,
        "grant_changes": len(grant_changes),
        "denied_admin_actions": denied,
        "unique_users": len(set(e.actor.user_id for e in events)),
    }

    report_data = {
        "summary": summary,
        "events": [e.to_dict() for e in events],
    }
    integrity_hash = hashlib.sha256(
        json.dumps(report_data, sort_keys=True, default=str).encode()
    ).hexdigest()

    return ComplianceReport(
        report_id=f"rpt_{uuid4().hex[:16]}",
        report_type="access_control",
        generated_at=datetime.now(timezone.utc),
        period_start=start_time,
        period_end=end_time,
        summary=summary,
        details=[e.to_dict() for e in events],
        integrity_hash=integrity_hash,
    )
