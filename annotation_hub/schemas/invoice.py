"""
Request schemas for invoice endpoints.
"""
from datetime import datetime

from pydantic import BaseModel, Field, model_validator

from annotation_hub.models.invoice import InvoiceType, PaymentMethod, PaymentStatus
from annotation_hub.models.project import Currency


class InvoiceCreateRequest(BaseModel):
    projectId: str
    dtUserId: str
    invoiceAmount: float = Field(..., ge=0)
    currency: Currency = Currency.USD
    dueDate: datetime
    workPeriodStart: datetime | None = None
    workPeriodEnd: datetime | None = None
    description: str | None = Field(default=None, max_length=1000)
    workDescription: str | None = Field(default=None, max_length=2000)
    hoursWorked: float | None = Field(default=None, ge=0)
    tasksCompleted: int | None = Field(default=None, ge=0)
    qualityScore: float | None = Field(default=None, ge=0, le=100)
    invoiceType: InvoiceType = InvoiceType.PROJECT_COMPLETION
    adminNotes: str | None = Field(default=None, max_length=1000)

    @model_validator(mode="after")
    def check_work_period(self):
        if self.workPeriodStart and self.workPeriodEnd and self.workPeriodEnd < self.workPeriodStart:
            raise ValueError("workPeriodEnd must not be before workPeriodStart")
        return self


class PaymentStatusUpdateRequest(BaseModel):
    paymentStatus: PaymentStatus
    paymentMethod: PaymentMethod | None = None
    paymentReference: str | None = Field(default=None, max_length=200)
    paidAmount: float | None = Field(default=None, ge=0)
    paymentNotes: str | None = Field(default=None, max_length=500)


class InvoiceFilters(BaseModel):
    paymentStatus: PaymentStatus | None = None
    projectId: str | None = None
    dtUserId: str | None = None
    startDate: datetime | None = None
    endDate: datetime | None = None


class PayoutExportRequest(BaseModel):
    invoiceIds: list[str] | None = None
