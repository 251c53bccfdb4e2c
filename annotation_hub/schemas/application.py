"""
Request schemas for application endpoints.
"""
from pydantic import BaseModel, Field

from annotation_hub.models.application import ApplicationStatus, Availability


class ApplicationCreateRequest(BaseModel):
    """
    Body of an application. The resume is taken from the worker profile, so
    any resume URL sent by the client is ignored.
    """
    coverLetter: str = Field(default="", max_length=1000)
    proposedRate: float | None = Field(default=None, ge=0)
    availability: Availability = Availability.FLEXIBLE
    estimatedCompletionTime: str = Field(default="", max_length=200)

    model_config = {"extra": "ignore"}


class ApproveRequest(BaseModel):
    reviewNotes: str = Field(default="", max_length=500)


class RejectRequest(BaseModel):
    # Free text on purpose: unknown reasons are stored as "other"
    rejectionReason: str | None = None
    reviewNotes: str = Field(default="", max_length=500)


class BulkRejectRequest(RejectRequest):
    applicationIds: list[str] = Field(..., min_length=1, max_length=500)


class RemoveApplicantRequest(BaseModel):
    removalReason: str | None = None
    removalNotes: str = Field(default="", max_length=500)


class AssessmentCompletionRequest(BaseModel):
    """Scored assessment outcome for one worker."""
    workerId: str
    submissionId: str
    passed: bool


class ApplicationFilters(BaseModel):
    status: ApplicationStatus | None = None
    projectId: str | None = None
    applicantId: str | None = None
