"""
Invoice models and the payment-status state machine.

    unpaid -> paid (terminal)
    unpaid -> overdue (time based, set by the overdue sweep)
    overdue -> paid
    unpaid | overdue -> cancelled | disputed
    disputed -> unpaid | paid | cancelled
"""
import math
from datetime import datetime
from enum import Enum

from bson import ObjectId
from pydantic import BaseModel, Field

from annotation_hub.core.exceptions import InvalidTransitionError
from annotation_hub.models.project import Currency


class PaymentStatus(str, Enum):
    UNPAID = "unpaid"
    PAID = "paid"
    OVERDUE = "overdue"
    CANCELLED = "cancelled"
    DISPUTED = "disputed"


class InvoiceStatus(str, Enum):
    DRAFT = "draft"
    SENT = "sent"
    VIEWED = "viewed"
    PAID = "paid"
    OVERDUE = "overdue"
    CANCELLED = "cancelled"


class PaymentMethod(str, Enum):
    BANK_TRANSFER = "bank_transfer"
    BULK_TRANSFER = "bulk_transfer"
    PAYPAL = "paypal"
    STRIPE = "stripe"
    CRYPTOCURRENCY = "cryptocurrency"
    CASH = "cash"
    OTHER = "other"


class InvoiceType(str, Enum):
    PROJECT_COMPLETION = "project_completion"
    MILESTONE = "milestone"
    HOURLY = "hourly"
    FIXED_RATE = "fixed_rate"
    BONUS = "bonus"


PAYMENT_TRANSITIONS: dict[PaymentStatus, frozenset[PaymentStatus]] = {
    PaymentStatus.UNPAID: frozenset(
        {PaymentStatus.PAID, PaymentStatus.OVERDUE, PaymentStatus.CANCELLED, PaymentStatus.DISPUTED}
    ),
    PaymentStatus.OVERDUE: frozenset(
        {PaymentStatus.PAID, PaymentStatus.CANCELLED, PaymentStatus.DISPUTED}
    ),
    PaymentStatus.DISPUTED: frozenset(
        {PaymentStatus.UNPAID, PaymentStatus.PAID, PaymentStatus.CANCELLED}
    ),
    PaymentStatus.PAID: frozenset(),
    PaymentStatus.CANCELLED: frozenset(),
}

PAYABLE_STATUSES = (PaymentStatus.UNPAID, PaymentStatus.OVERDUE)


def ensure_payment_transition(current: str, target: PaymentStatus) -> None:
    try:
        allowed = PAYMENT_TRANSITIONS[PaymentStatus(current)]
    except ValueError:
        allowed = frozenset()
    if target not in allowed:
        raise InvalidTransitionError(f"Cannot change payment status from {current} to {target.value}")


def days_overdue(invoice: dict, now: datetime | None = None) -> int:
    if invoice.get("paymentStatus") in (PaymentStatus.PAID.value, PaymentStatus.CANCELLED.value):
        return 0
    due_date = invoice.get("dueDate")
    if not due_date:
        return 0
    delta = (now or datetime.utcnow()) - due_date
    days = math.ceil(delta.total_seconds() / 86400)
    return days if days > 0 else 0


def amount_due(invoice: dict) -> float:
    if invoice.get("paymentStatus") == PaymentStatus.PAID.value:
        return 0
    return invoice.get("invoiceAmount", 0) - (invoice.get("paidAmount") or 0)


def format_invoice_number(invoice_number: str) -> str:
    return f"INV-{invoice_number}"


def with_derived_fields(invoice: dict, now: datetime | None = None) -> dict:
    """Return a copy of the invoice document with its computed fields filled in."""
    enriched = dict(invoice)
    enriched["daysOverdue"] = days_overdue(invoice, now)
    enriched["amountDue"] = amount_due(invoice)
    if invoice.get("invoiceNumber"):
        enriched["formattedInvoiceNumber"] = format_invoice_number(invoice["invoiceNumber"])
    return enriched


def next_invoice_number(last_number: str | None, now: datetime | None = None) -> str:
    """
    Build the next ``YYYYMM####`` invoice number.

    ``last_number`` is the highest number already issued this month, if any.
    """
    now = now or datetime.utcnow()
    prefix = f"{now.year}{now.month:02d}"
    sequence = 1
    if last_number and last_number.startswith(prefix):
        sequence = int(last_number[-4:]) + 1
    return f"{prefix}{sequence:04d}"


class Invoice(BaseModel):
    """
    Model representing an invoice document in MongoDB.
    """
    id: str | None = Field(None, alias="_id")
    invoiceNumber: str | None = None
    projectId: ObjectId
    dtUserId: ObjectId
    createdBy: ObjectId
    invoiceAmount: float = Field(..., ge=0)
    currency: Currency = Currency.USD
    invoiceDate: datetime = Field(default_factory=datetime.utcnow)
    dueDate: datetime
    workPeriodStart: datetime | None = None
    workPeriodEnd: datetime | None = None
    description: str | None = None
    workDescription: str | None = None
    hoursWorked: float | None = None
    tasksCompleted: int | None = None
    qualityScore: float | None = None
    invoiceType: InvoiceType = InvoiceType.PROJECT_COMPLETION
    adminNotes: str | None = None

    paymentStatus: PaymentStatus = PaymentStatus.UNPAID
    status: InvoiceStatus = InvoiceStatus.SENT
    paidAt: datetime | None = None
    paidAmount: float | None = None
    paymentMethod: PaymentMethod | None = None
    paymentReference: str | None = None
    paymentNotes: str | None = None

    emailSent: bool = False
    emailSentAt: datetime | None = None
    lastEmailReminder: datetime | None = None
    emailViewedAt: datetime | None = None

    createdAt: datetime = Field(default_factory=datetime.utcnow)
    updatedAt: datetime = Field(default_factory=datetime.utcnow)

    class Config:
        populate_by_name = True
        use_enum_values = True
        arbitrary_types_allowed = True
