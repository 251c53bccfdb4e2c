"""
Annotation project models.

A project is a job posting. Its counters ``approvedAnnotatorCount`` and
``totalApplicationCount`` are only ever changed with atomic ``$inc``
updates, and ``approvedAnnotatorCount <= maxAnnotators`` holds whenever
``maxAnnotators`` is set.
"""
from datetime import datetime
from enum import Enum

from bson import ObjectId
from pydantic import BaseModel, Field


class ProjectStatus(str, Enum):
    DRAFT = "draft"
    ACTIVE = "active"
    PAUSED = "paused"
    COMPLETED = "completed"
    CANCELLED = "cancelled"


class ProjectCategory(str, Enum):
    TEXT_ANNOTATION = "Text Annotation"
    IMAGE_ANNOTATION = "Image Annotation"
    AUDIO_ANNOTATION = "Audio Annotation"
    VIDEO_ANNOTATION = "Video Annotation"
    DATA_LABELING = "Data Labeling"
    CONTENT_MODERATION = "Content Moderation"
    TRANSCRIPTION = "Transcription"
    TRANSLATION = "Translation"
    SENTIMENT_ANALYSIS = "Sentiment Analysis"
    ENTITY_RECOGNITION = "Entity Recognition"
    CLASSIFICATION = "Classification"
    OBJECT_DETECTION = "Object Detection"
    SEMANTIC_SEGMENTATION = "Semantic Segmentation"
    SURVEY_RESEARCH = "Survey Research"
    DATA_ENTRY = "Data Entry"
    QUALITY_ASSURANCE = "Quality Assurance"
    OTHER = "Other"


class Currency(str, Enum):
    USD = "USD"
    EUR = "EUR"
    GBP = "GBP"
    NGN = "NGN"
    KES = "KES"
    GHS = "GHS"


class PayRateType(str, Enum):
    PER_TASK = "per_task"
    PER_HOUR = "per_hour"
    PER_PROJECT = "per_project"
    PER_ANNOTATION = "per_annotation"


class DifficultyLevel(str, Enum):
    BEGINNER = "beginner"
    INTERMEDIATE = "intermediate"
    ADVANCED = "advanced"
    EXPERT = "expert"


class ProjectAssessment(BaseModel):
    """Gating assessment attached to a project."""
    assessmentId: str
    isRequired: bool = True
    assessmentInstructions: str = ""
    attachedAt: datetime = Field(default_factory=datetime.utcnow)
    attachedBy: ObjectId | None = None

    class Config:
        arbitrary_types_allowed = True


class DeletionOTP(BaseModel):
    """
    Pending force-delete authorization.

    Only the hash of the code is stored. At most one live record exists;
    requesting a new code overwrites the old one.
    """
    codeHash: str | None = None
    expiresAt: datetime | None = None
    verified: bool = False
    requestedBy: ObjectId | None = None
    requestedAt: datetime | None = None
    reason: str | None = None
    failedAttempts: int = 0
    verifiedAt: datetime | None = None
    verifiedBy: ObjectId | None = None

    class Config:
        arbitrary_types_allowed = True


class Project(BaseModel):
    """
    Model representing an annotation project document in MongoDB.
    """
    id: str | None = Field(None, alias="_id")
    projectName: str
    projectDescription: str
    projectCategory: ProjectCategory
    payRate: float = Field(..., ge=0)
    payRateCurrency: Currency = Currency.USD
    payRateType: PayRateType = PayRateType.PER_TASK
    status: ProjectStatus = ProjectStatus.ACTIVE
    maxAnnotators: int | None = Field(None, ge=1, description="None means unlimited")
    deadline: datetime | None = None
    applicationDeadline: datetime | None = None
    estimatedDuration: str | None = None
    difficultyLevel: DifficultyLevel = DifficultyLevel.INTERMEDIATE
    requiredSkills: list[str] = Field(default_factory=list)
    languageRequirements: list[str] = Field(default_factory=list)
    tags: list[str] = Field(default_factory=list)
    isPublic: bool = True
    projectGuidelineLink: str | None = None
    projectGuidelineVideo: str | None = None
    projectCommunityLink: str | None = None
    projectTrackerLink: str | None = None

    createdBy: ObjectId
    approvedAnnotatorCount: int = 0
    totalApplicationCount: int = 0

    assessment: ProjectAssessment | None = None
    deletionOTP: DeletionOTP | None = None

    createdAt: datetime = Field(default_factory=datetime.utcnow)
    updatedAt: datetime = Field(default_factory=datetime.utcnow)

    class Config:
        populate_by_name = True
        use_enum_values = True
        arbitrary_types_allowed = True


def available_slots(project: dict) -> int | None:
    """Remaining capacity, or None for unlimited projects."""
    max_annotators = project.get("maxAnnotators")
    if max_annotators is None:
        return None
    return max(0, max_annotators - project.get("approvedAnnotatorCount", 0))


def requires_assessment(project: dict) -> bool:
    assessment = project.get("assessment") or {}
    return bool(assessment.get("assessmentId")) and bool(assessment.get("isRequired"))
