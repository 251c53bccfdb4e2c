"""
Audit logging for security-sensitive operations.

Provides structured logging for:
- Destructive project deletion (OTP request, verification, force delete)
- Application review decisions
- Invoice payment and deletion events
"""
from dataclasses import asdict, dataclass
from datetime import datetime
from enum import Enum
from typing import Optional

from annotation_hub.core.correlation import get_correlation_id
from annotation_hub.log.logging import logger


class AuditEventType(str, Enum):
    """Types of audit events."""
    # Project events
    PROJECT_DELETED = "project.deleted"
    PROJECT_DELETION_OTP_REQUESTED = "project.deletion_otp.requested"
    PROJECT_DELETION_OTP_REJECTED = "project.deletion_otp.rejected"
    PROJECT_FORCE_DELETED = "project.force_deleted"

    # Application events
    APP_STATUS_CHANGED = "application.status.changed"
    APP_DELETED = "application.deleted"

    # Invoice events
    INVOICE_PAID = "invoice.paid"
    INVOICE_BULK_PAID = "invoice.bulk_paid"
    INVOICE_DELETED = "invoice.deleted"
    PAYOUT_EXPORTED = "payout.exported"


class AuditSeverity(str, Enum):
    """Severity levels for audit events."""
    INFO = "info"
    WARNING = "warning"
    ERROR = "error"
    CRITICAL = "critical"


@dataclass
class AuditEvent:
    """Structured audit event."""
    event_type: AuditEventType
    timestamp: str
    correlation_id: Optional[str]
    user_id: Optional[str]
    resource_type: Optional[str]
    resource_id: Optional[str]
    action: str
    outcome: str  # "success" or "failure"
    severity: AuditSeverity
    details: Optional[dict]
    error_message: Optional[str]

    def to_dict(self) -> dict:
        """Convert to dictionary for JSON serialization."""
        data = asdict(self)
        data["event_type"] = self.event_type.value
        data["severity"] = self.severity.value
        return data


class AuditLogger:
    """
    Audit logger for security-sensitive operations.

    Usage:
        audit_logger.log_force_delete(user_id="123", project_id="456", manifest={...})
    """

    def __init__(self):
        self._logger = logger.bind(audit=True)

    def _log(self, event: AuditEvent) -> None:
        log_method = {
            AuditSeverity.INFO: self._logger.info,
            AuditSeverity.WARNING: self._logger.warning,
            AuditSeverity.ERROR: self._logger.error,
            AuditSeverity.CRITICAL: self._logger.critical,
        }.get(event.severity, self._logger.info)

        log_method(
            "AUDIT: " + event.event_type.value + " - " + event.action,
            audit_event=event.to_dict(),
        )

    def _create_event(
        self,
        event_type: AuditEventType,
        action: str,
        outcome: str = "success",
        severity: AuditSeverity = AuditSeverity.INFO,
        user_id: Optional[str] = None,
        resource_type: Optional[str] = None,
        resource_id: Optional[str] = None,
        details: Optional[dict] = None,
        error_message: Optional[str] = None,
    ) -> AuditEvent:
        return AuditEvent(
            event_type=event_type,
            timestamp=datetime.utcnow().isoformat() + "Z",
            correlation_id=get_correlation_id(),
            user_id=user_id,
            resource_type=resource_type,
            resource_id=resource_id,
            action=action,
            outcome=outcome,
            severity=severity,
            details=details,
            error_message=error_message,
        )

    # Project events
    def log_project_deleted(self, user_id: str, project_id: str, deleted_applications: int) -> None:
        event = self._create_event(
            event_type=AuditEventType.PROJECT_DELETED,
            action="Project deleted",
            user_id=user_id,
            resource_type="project",
            resource_id=project_id,
            details={"deleted_applications": deleted_applications},
        )
        self._log(event)

    def log_deletion_otp_requested(self, user_id: str, project_id: str, reason: Optional[str]) -> None:
        event = self._create_event(
            event_type=AuditEventType.PROJECT_DELETION_OTP_REQUESTED,
            action="Deletion OTP requested",
            severity=AuditSeverity.WARNING,
            user_id=user_id,
            resource_type="project",
            resource_id=project_id,
            details={"reason": reason},
        )
        self._log(event)

    def log_deletion_otp_rejected(self, user_id: str, project_id: str, reason: str) -> None:
        """Log a rejected OTP verification attempt."""
        event = self._create_event(
            event_type=AuditEventType.PROJECT_DELETION_OTP_REJECTED,
            action="Deletion OTP rejected",
            outcome="failure",
            severity=AuditSeverity.WARNING,
            user_id=user_id,
            resource_type="project",
            resource_id=project_id,
            error_message=reason,
        )
        self._log(event)

    def log_force_delete(self, user_id: str, project_id: str, manifest: dict) -> None:
        event = self._create_event(
            event_type=AuditEventType.PROJECT_FORCE_DELETED,
            action="Project force deleted with OTP authorization",
            severity=AuditSeverity.CRITICAL,
            user_id=user_id,
            resource_type="project",
            resource_id=project_id,
            details=manifest,
        )
        self._log(event)

    # Application events
    def log_application_status_changed(
        self,
        user_id: str,
        application_id: str,
        old_status: str,
        new_status: str,
    ) -> None:
        event = self._create_event(
            event_type=AuditEventType.APP_STATUS_CHANGED,
            action=f"Application status changed: {old_status} -> {new_status}",
            user_id=user_id,
            resource_type="application",
            resource_id=application_id,
            details={"old_status": old_status, "new_status": new_status},
        )
        self._log(event)

    def log_application_deleted(self, user_id: str, application_id: str, status: str) -> None:
        event = self._create_event(
            event_type=AuditEventType.APP_DELETED,
            action="Application record deleted",
            user_id=user_id,
            resource_type="application",
            resource_id=application_id,
            details={"status": status},
        )
        self._log(event)

    # Invoice events
    def log_invoice_paid(self, user_id: str, invoice_id: str, amount: float) -> None:
        event = self._create_event(
            event_type=AuditEventType.INVOICE_PAID,
            action="Invoice marked paid",
            user_id=user_id,
            resource_type="invoice",
            resource_id=invoice_id,
            details={"amount": amount},
        )
        self._log(event)

    def log_bulk_payment(self, admin_email: str, processed: int, total_amount: float, failed: int) -> None:
        event = self._create_event(
            event_type=AuditEventType.INVOICE_BULK_PAID,
            action="Bulk payment authorized",
            severity=AuditSeverity.WARNING,
            user_id=admin_email,
            resource_type="invoice",
            details={"processed": processed, "total_amount": total_amount, "failed": failed},
        )
        self._log(event)

    def log_invoice_deleted(self, user_id: str, invoice_id: str, invoice_number: str) -> None:
        event = self._create_event(
            event_type=AuditEventType.INVOICE_DELETED,
            action="Invoice deleted",
            severity=AuditSeverity.WARNING,
            user_id=user_id,
            resource_type="invoice",
            resource_id=invoice_id,
            details={"invoice_number": invoice_number},
        )
        self._log(event)

    def log_payout_exported(self, user_id: str, rail: str, processed: int, errors: int) -> None:
        event = self._create_event(
            event_type=AuditEventType.PAYOUT_EXPORTED,
            action=f"Payout CSV generated for {rail}",
            user_id=user_id,
            resource_type="invoice",
            details={"rail": rail, "processed": processed, "errors": errors},
        )
        self._log(event)


audit_logger = AuditLogger()
