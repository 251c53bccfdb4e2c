"""
Request schemas for project endpoints.
"""
from datetime import datetime

from pydantic import BaseModel, Field

from annotation_hub.models.project import (
    Currency,
    DifficultyLevel,
    PayRateType,
    ProjectCategory,
    ProjectStatus,
)


class ProjectCreateRequest(BaseModel):
    projectName: str = Field(..., min_length=3, max_length=200)
    projectDescription: str = Field(..., min_length=10, max_length=5000)
    projectCategory: ProjectCategory
    payRate: float = Field(..., ge=0)
    payRateCurrency: Currency = Currency.USD
    payRateType: PayRateType = PayRateType.PER_TASK
    status: ProjectStatus = ProjectStatus.ACTIVE
    maxAnnotators: int | None = Field(default=None, ge=1)
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


class ProjectUpdateRequest(BaseModel):
    """Partial update; only fields that are sent are changed."""
    projectName: str | None = Field(default=None, min_length=3, max_length=200)
    projectDescription: str | None = Field(default=None, min_length=10, max_length=5000)
    projectCategory: ProjectCategory | None = None
    payRate: float | None = Field(default=None, ge=0)
    payRateCurrency: Currency | None = None
    payRateType: PayRateType | None = None
    status: ProjectStatus | None = None
    maxAnnotators: int | None = Field(default=None, ge=1)
    deadline: datetime | None = None
    applicationDeadline: datetime | None = None
    estimatedDuration: str | None = None
    difficultyLevel: DifficultyLevel | None = None
    requiredSkills: list[str] | None = None
    languageRequirements: list[str] | None = None
    tags: list[str] | None = None
    isPublic: bool | None = None
    projectGuidelineLink: str | None = None
    projectGuidelineVideo: str | None = None
    projectCommunityLink: str | None = None
    projectTrackerLink: str | None = None


class ProjectFilters(BaseModel):
    status: ProjectStatus | None = None
    category: ProjectCategory | None = None
    search: str | None = None


class DeletionOTPRequest(BaseModel):
    reason: str | None = Field(default=None, max_length=500)


class DeletionOTPVerifyRequest(BaseModel):
    otp: str = Field(..., pattern=r"^\d{6}$")
    confirmationMessage: str | None = Field(default=None, max_length=500)


class AttachAssessmentRequest(BaseModel):
    assessmentId: str
    isRequired: bool = True
    assessmentInstructions: str = Field(default="", max_length=2000)
