"""
Best-effort email side channel for state transitions.

Transition methods never send mail themselves. They return an outbox, a
list of ``Notification`` records, and the caller hands it to
``NotificationDispatcher.dispatch`` once the transition has been
persisted. Dispatch never raises: every failure is logged and counted in
the returned ``DispatchReport``.
"""
import asyncio
from dataclasses import dataclass, field
from enum import Enum
from typing import Optional

from annotation_hub.core.config import settings
from annotation_hub.core.metrics import record_notification
from annotation_hub.log.logging import logger
from annotation_hub.services.email_sender import EmailSender, email_sender


class NotificationKind(str, Enum):
    APPLICATION_SUBMITTED = "application_submitted"
    APPLICATION_APPROVED = "application_approved"
    APPLICATION_REJECTED = "application_rejected"
    APPLICANT_REMOVED = "applicant_removed"
    REMOVAL_CONFIRMATION = "removal_confirmation"
    ASSESSMENT_PASSED = "assessment_passed"
    DELETION_OTP = "deletion_otp"
    PROJECT_DELETED = "project_deleted"
    INVOICE_CREATED = "invoice_created"
    PAYMENT_CONFIRMATION = "payment_confirmation"
    INVOICE_REMINDER = "invoice_reminder"


@dataclass
class Notification:
    """One email waiting to be sent."""
    kind: NotificationKind
    to_email: str
    subject: str
    html: str
    text: Optional[str] = None
    to_name: Optional[str] = None
    # Identifies the record the notification is about (invoice number, application id)
    ref: Optional[str] = None

    @classmethod
    def build(cls, kind: NotificationKind, to_email: str, rendered: tuple[str, str, str],
              to_name: Optional[str] = None, ref: Optional[str] = None) -> "Notification":
        subject, html, text = rendered
        return cls(kind=kind, to_email=to_email, subject=subject, html=html, text=text,
                   to_name=to_name, ref=ref)


@dataclass
class DispatchFailure:
    kind: str
    to_email: str
    error: str
    ref: Optional[str] = None


@dataclass
class DispatchReport:
    sent: int = 0
    failed: int = 0
    failures: list[DispatchFailure] = field(default_factory=list)

    @property
    def all_sent(self) -> bool:
        return self.failed == 0

    def failed_refs(self) -> set[str]:
        return {f.ref for f in self.failures if f.ref}

    def to_dict(self) -> dict:
        return {
            "sent": self.sent,
            "failed": self.failed,
            "failures": [f.__dict__ for f in self.failures],
        }


class NotificationDispatcher:
    """
    Sends an outbox concurrently and reports per-message outcomes.

    At most ``max_concurrency`` sends of one outbox are in flight at a time.
    """

    def __init__(self, sender: EmailSender = email_sender, max_concurrency: int | None = None):
        self.sender = sender
        self.max_concurrency = max(1, max_concurrency or settings.email_max_concurrency)

    async def _send_one(self, notification: Notification, semaphore: asyncio.Semaphore) -> None:
        async with semaphore:
            await self.sender.send(
                to_email=notification.to_email,
                subject=notification.subject,
                html=notification.html,
                text=notification.text,
                to_name=notification.to_name,
            )

    async def dispatch(self, outbox: list[Notification]) -> DispatchReport:
        report = DispatchReport()
        if not outbox:
            return report

        semaphore = asyncio.Semaphore(self.max_concurrency)
        results = await asyncio.gather(
            *(self._send_one(n, semaphore) for n in outbox), return_exceptions=True
        )

        for notification, result in zip(outbox, results):
            if isinstance(result, BaseException):
                report.failed += 1
                report.failures.append(
                    DispatchFailure(
                        kind=notification.kind.value,
                        to_email=notification.to_email,
                        error=str(result),
                        ref=notification.ref,
                    )
                )
                record_notification(notification.kind.value, "failed")
                logger.warning(
                    "Notification failed",
                    event_type="notification_failed",
                    kind=notification.kind.value,
                    to=notification.to_email,
                    ref=notification.ref,
                    error=str(result),
                )
            else:
                report.sent += 1
                record_notification(notification.kind.value, "sent")

        logger.info(
            "Notification outbox dispatched",
            event_type="notification_dispatch",
            sent=report.sent,
            failed=report.failed,
        )
        return report


notification_dispatcher = NotificationDispatcher()
