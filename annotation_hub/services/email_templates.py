"""
Subjects and bodies for every notification the lifecycle services emit.

Each builder returns ``(subject, html, text)``.
"""
from html import escape

from annotation_hub.core.config import settings


def _layout(title: str, paragraphs: list[str]) -> str:
    body = "".join(f"<p>{p}</p>" for p in paragraphs)
    return (
        "<html><body style=\"font-family: Arial, sans-serif; color: #222;\">"
        f"<h2>{escape(title)}</h2>{body}"
        "<p style=\"color:#888;font-size:12px\">MyDeeptech annotation team</p>"
        "</body></html>"
    )


def _render(subject: str, paragraphs: list[str]) -> tuple[str, str, str]:
    html = _layout(subject, [escape(p) for p in paragraphs])
    text = "\n\n".join(paragraphs)
    return subject, html, text


def application_submitted(admin_name: str, applicant_name: str, project_name: str, cover_letter: str) -> tuple[str, str, str]:
    paragraphs = [
        f"Hello {admin_name},",
        f"{applicant_name} has applied to {project_name}.",
    ]
    if cover_letter:
        paragraphs.append(f"Cover letter: {cover_letter}")
    paragraphs.append(f"Review applications at {settings.frontend_base_url}/admin/projects")
    return _render("New Project Application", paragraphs)


def application_approved(applicant_name: str, project_name: str, review_notes: str, guideline_link: str | None) -> tuple[str, str, str]:
    paragraphs = [
        f"Hello {applicant_name},",
        f"Your application to {project_name} has been approved. You can start working on the project.",
    ]
    if review_notes:
        paragraphs.append(f"Notes from the reviewer: {review_notes}")
    if guideline_link:
        paragraphs.append(f"Project guidelines: {guideline_link}")
    return _render(f"Application Approved - {project_name}", paragraphs)


def application_rejected(applicant_name: str, project_name: str, reason: str, review_notes: str) -> tuple[str, str, str]:
    paragraphs = [
        f"Hello {applicant_name},",
        f"Thank you for applying to {project_name}. Unfortunately your application was not successful.",
        f"Reason: {reason.replace('_', ' ')}",
    ]
    if review_notes:
        paragraphs.append(f"Notes from the reviewer: {review_notes}")
    return _render(f"Application Update - {project_name}", paragraphs)


def applicant_removed(applicant_name: str, project_name: str, reason: str, notes: str) -> tuple[str, str, str]:
    paragraphs = [
        f"Hello {applicant_name},",
        f"You have been removed from {project_name}.",
        f"Reason: {reason.replace('_', ' ')}",
    ]
    if notes:
        paragraphs.append(f"Notes: {notes}")
    return _render(f"Removed from Project - {project_name}", paragraphs)


def removal_confirmation(admin_name: str, applicant_name: str, project_name: str, reason: str) -> tuple[str, str, str]:
    return _render(
        f"Applicant Removal Confirmed - {project_name}",
        [
            f"Hello {admin_name},",
            f"{applicant_name} was removed from {project_name} ({reason.replace('_', ' ')}).",
        ],
    )


def assessment_passed(admin_name: str, applicant_name: str, project_name: str) -> tuple[str, str, str]:
    return _render(
        f"Assessment Passed - {project_name}",
        [
            f"Hello {admin_name},",
            f"{applicant_name} passed the assessment for {project_name} and is awaiting review.",
        ],
    )


def deletion_otp(project_name: str, requester_name: str, requester_email: str, otp: str,
                 active_applications: int, reason: str | None, ttl_minutes: int) -> tuple[str, str, str]:
    paragraphs = [
        "Hello Projects Officer,",
        f"{requester_name} ({requester_email}) has requested to force delete {project_name}, "
        f"which has {active_applications} active applications.",
        f"Reason: {reason or 'Not provided'}",
        f"Authorization code: {otp}",
        f"The code expires in {ttl_minutes} minutes. Only share it if you approve this deletion.",
    ]
    return _render(f"Project Deletion Authorization Required - {project_name}", paragraphs)


def project_deleted(project_name: str, admin_name: str, manifest: dict) -> tuple[str, str, str]:
    deleted = manifest.get("deletedApplications", {})
    paragraphs = [
        "Hello Projects Officer,",
        f"{project_name} was deleted by {admin_name}.",
        f"Applications removed: {deleted.get('total', 0)} "
        f"(pending {deleted.get('pending', 0)}, approved {deleted.get('approved', 0)}, "
        f"other {deleted.get('other', 0)}).",
    ]
    if manifest.get("confirmationMessage"):
        paragraphs.append(f"Confirmation: {manifest['confirmationMessage']}")
    return _render(f"Project Deleted - {project_name}", paragraphs)


def invoice_created(worker_name: str, project_name: str, invoice_number: str, amount: float,
                    currency: str, due_date: str) -> tuple[str, str, str]:
    return _render(
        f"New Invoice INV-{invoice_number}",
        [
            f"Hello {worker_name},",
            f"An invoice for {project_name} has been issued: {amount:.2f} {currency}, due {due_date}.",
            f"View it at {settings.frontend_base_url}/dashboard/invoices",
        ],
    )


def payment_confirmation(worker_name: str, project_name: str, invoice_number: str, amount: float,
                         currency: str, payment_reference: str | None) -> tuple[str, str, str]:
    paragraphs = [
        f"Hello {worker_name},",
        f"Payment of {amount:.2f} {currency} for invoice INV-{invoice_number} ({project_name}) has been made.",
    ]
    if payment_reference:
        paragraphs.append(f"Payment reference: {payment_reference}")
    return _render(f"Payment Confirmation - INV-{invoice_number}", paragraphs)


def invoice_reminder(worker_name: str, invoice_number: str, amount_due: float, currency: str,
                     days_overdue: int) -> tuple[str, str, str]:
    status_line = (
        f"It is {days_overdue} days overdue." if days_overdue else "It is awaiting payment processing."
    )
    return _render(
        f"Invoice Reminder - INV-{invoice_number}",
        [
            f"Hello {worker_name},",
            f"This is a reminder about invoice INV-{invoice_number} for {amount_due:.2f} {currency}.",
            status_line,
        ],
    )
