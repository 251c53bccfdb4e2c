"""
Application models for the project-application lifecycle.

An Application is the record of one worker's candidacy for one project.
Status moves one way only:

    pending -> approved | rejected | withdrawn
    approved -> removed
    assessment_required -> pending | rejected | withdrawn

Terminal records (rejected, withdrawn, removed) are never reopened; an
admin deletes the record so the worker can apply again.
"""
from datetime import datetime
from enum import Enum

from bson import ObjectId
from pydantic import BaseModel, Field

from annotation_hub.core.exceptions import InvalidTransitionError


class ApplicationStatus(str, Enum):
    PENDING = "pending"
    APPROVED = "approved"
    REJECTED = "rejected"
    WITHDRAWN = "withdrawn"
    REMOVED = "removed"
    ASSESSMENT_REQUIRED = "assessment_required"


class RejectionReason(str, Enum):
    INSUFFICIENT_EXPERIENCE = "insufficient_experience"
    NOT_SUITABLE_SKILLS = "not_suitable_skills"
    PROJECT_FULL = "project_full"
    APPLICATION_QUALITY = "application_quality"
    AVAILABILITY_MISMATCH = "availability_mismatch"
    RATE_MISMATCH = "rate_mismatch"
    OTHER = "other"


class RemovalReason(str, Enum):
    PERFORMANCE_ISSUES = "performance_issues"
    PROJECT_CANCELLED = "project_cancelled"
    VIOLATES_GUIDELINES = "violates_guidelines"
    UNAVAILABLE = "unavailable"
    QUALITY_CONCERNS = "quality_concerns"
    ADMIN_DECISION = "admin_decision"
    OTHER = "other"


class Availability(str, Enum):
    FULL_TIME = "full_time"
    PART_TIME = "part_time"
    WEEKENDS = "weekends"
    FLEXIBLE = "flexible"


class AssessmentResult(str, Enum):
    PENDING = "pending"
    PASSED = "passed"
    FAILED = "failed"
    NOT_REQUIRED = "not_required"


ALLOWED_TRANSITIONS: dict[ApplicationStatus, frozenset[ApplicationStatus]] = {
    ApplicationStatus.PENDING: frozenset(
        {ApplicationStatus.APPROVED, ApplicationStatus.REJECTED, ApplicationStatus.WITHDRAWN}
    ),
    ApplicationStatus.ASSESSMENT_REQUIRED: frozenset(
        {ApplicationStatus.PENDING, ApplicationStatus.REJECTED, ApplicationStatus.WITHDRAWN}
    ),
    ApplicationStatus.APPROVED: frozenset({ApplicationStatus.REMOVED}),
    ApplicationStatus.REJECTED: frozenset(),
    ApplicationStatus.WITHDRAWN: frozenset(),
    ApplicationStatus.REMOVED: frozenset(),
}

# Statuses that still hold a claim on the project.
LIVE_STATUSES = (ApplicationStatus.PENDING, ApplicationStatus.APPROVED)
TERMINAL_STATUSES = (
    ApplicationStatus.REJECTED,
    ApplicationStatus.WITHDRAWN,
    ApplicationStatus.REMOVED,
)


def can_transition(current: str, target: ApplicationStatus) -> bool:
    try:
        return target in ALLOWED_TRANSITIONS[ApplicationStatus(current)]
    except ValueError:
        return False


def ensure_transition(current: str, target: ApplicationStatus) -> None:
    """
    Raise InvalidTransitionError unless ``current -> target`` is allowed.

    Review decisions report the status the record already has
    ("Application is already approved").
    """
    if can_transition(current, target):
        return
    if target == ApplicationStatus.REMOVED:
        raise InvalidTransitionError("Only approved applicants can be removed")
    if target == ApplicationStatus.WITHDRAWN:
        raise InvalidTransitionError(f"Cannot withdraw an application that is {current}")
    raise InvalidTransitionError(f"Application is already {current}")


def normalize_rejection_reason(reason: str | None) -> RejectionReason:
    """Unknown or missing rejection reasons collapse to ``other``."""
    try:
        return RejectionReason(reason)
    except ValueError:
        return RejectionReason.OTHER


def normalize_removal_reason(reason: str | None) -> RemovalReason:
    if reason is None:
        return RemovalReason.ADMIN_DECISION
    try:
        return RemovalReason(reason)
    except ValueError:
        return RemovalReason.OTHER


class Application(BaseModel):
    """
    Model representing a project application document in MongoDB.
    """
    id: str | None = Field(None, alias="_id", description="MongoDB document ID")
    projectId: ObjectId = Field(..., description="Project applied to")
    applicantId: ObjectId = Field(..., description="Worker who applied")
    status: ApplicationStatus = ApplicationStatus.PENDING
    appliedAt: datetime = Field(default_factory=datetime.utcnow)
    reviewedAt: datetime | None = None
    reviewedBy: ObjectId | None = None

    coverLetter: str = ""
    resumeUrl: str = Field(..., min_length=1, description="Copied from the worker profile")
    proposedRate: float | None = None
    availability: Availability = Availability.FLEXIBLE
    estimatedCompletionTime: str = ""

    reviewNotes: str = ""
    rejectionReason: RejectionReason | None = None
    workStartedAt: datetime | None = None

    removedAt: datetime | None = None
    removedBy: ObjectId | None = None
    removalReason: RemovalReason | None = None
    removalNotes: str = ""

    assessmentResult: AssessmentResult = AssessmentResult.NOT_REQUIRED
    assessmentSubmissionId: str | None = None
    assessmentCompletedAt: datetime | None = None

    createdAt: datetime = Field(default_factory=datetime.utcnow)
    updatedAt: datetime = Field(default_factory=datetime.utcnow)

    class Config:
        populate_by_name = True
        use_enum_values = True
        arbitrary_types_allowed = True
