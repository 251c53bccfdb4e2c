"""
Custom exception classes and structured error responses.

This module provides:
- The error envelope returned by every failing endpoint
- Specific exception classes for the service's error taxonomy
- Error codes for programmatic error handling
"""

from typing import Any

from fastapi import status
from pydantic import BaseModel

from annotation_hub.core.correlation import get_correlation_id


class ErrorCode:
    """Error codes for programmatic error handling."""

    # General errors (1xxx)
    INTERNAL_ERROR = "ERR_1000"
    VALIDATION_ERROR = "ERR_1001"
    NOT_FOUND = "ERR_1002"
    UNAUTHORIZED = "ERR_1003"
    FORBIDDEN = "ERR_1004"
    CONFLICT = "ERR_1005"

    # Application errors (2xxx)
    APPLICATION_NOT_FOUND = "ERR_2001"
    APPLICATION_INVALID_STATUS = "ERR_2002"

    # Project errors (3xxx)
    PROJECT_NOT_FOUND = "ERR_3001"
    PROJECT_CAPACITY_REACHED = "ERR_3002"
    PROJECT_DELETION_REQUIRES_OTP = "ERR_3003"
    DELETION_OTP_INVALID = "ERR_3004"

    # Invoice errors (4xxx)
    INVOICE_NOT_FOUND = "ERR_4001"

    # Upstream errors (6xxx)
    EXCHANGE_RATE_UNAVAILABLE = "ERR_6001"
    NOTIFICATION_FAILED = "ERR_6002"


class ErrorResponse(BaseModel):
    """Error envelope: ``{success: false, message, error?, errors?, data?}``."""

    success: bool = False
    message: str
    error: str | None = None
    errors: list[str] | None = None
    data: dict[str, Any] | None = None
    code: str | None = None
    correlation_id: str | None = None

    @classmethod
    def create(
        cls,
        message: str,
        code: str | None = None,
        error: str | None = None,
        errors: list[str] | None = None,
        data: dict[str, Any] | None = None,
    ) -> "ErrorResponse":
        return cls(
            message=message,
            code=code,
            error=error,
            errors=errors,
            data=data,
            correlation_id=get_correlation_id(),
        )

    def to_content(self) -> dict[str, Any]:
        return self.model_dump(exclude_none=True)


class HubError(Exception):
    """Base exception for all annotation hub errors."""

    error_code: str = ErrorCode.INTERNAL_ERROR
    status_code: int = status.HTTP_500_INTERNAL_SERVER_ERROR

    def __init__(
        self,
        message: str,
        data: dict[str, Any] | None = None,
        errors: list[str] | None = None,
        error_code: str | None = None,
    ):
        super().__init__(message)
        self.message = message
        self.data = data
        self.errors = errors
        self.error_code = error_code or self.__class__.error_code

    def to_response(self) -> ErrorResponse:
        return ErrorResponse.create(
            message=self.message,
            code=self.error_code,
            error=self.__class__.__name__,
            errors=self.errors,
            data=self.data,
        )


# =============================================================================
# Validation Errors
# =============================================================================


class ValidationError(HubError):
    """Raised when input is malformed or a state-machine precondition fails."""

    error_code = ErrorCode.VALIDATION_ERROR
    status_code = status.HTTP_400_BAD_REQUEST


class InvalidTransitionError(ValidationError):
    """Raised when a record is asked to move to a state its current state forbids."""

    error_code = ErrorCode.APPLICATION_INVALID_STATUS


class CapacityReachedError(ValidationError):
    """Raised when approving would exceed a project's annotator capacity."""

    error_code = ErrorCode.PROJECT_CAPACITY_REACHED

    def __init__(self, max_annotators: int | None = None):
        super().__init__(
            "Project has reached maximum number of annotators",
            data={"maxAnnotators": max_annotators} if max_annotators is not None else None,
        )


class DeletionRequiresOTPError(ValidationError):
    """Raised when a direct delete hits live applications; the OTP path must be used."""

    error_code = ErrorCode.PROJECT_DELETION_REQUIRES_OTP

    def __init__(self, project_id: str, project_name: str, active_applications: int):
        super().__init__(
            f"Cannot delete project with {active_applications} active applications. "
            "Please resolve all applications first or use force delete with OTP verification.",
            data={
                "activeApplications": active_applications,
                "requiresOTP": True,
                "projectName": project_name,
                "projectId": project_id,
            },
        )


class DeletionOTPError(ValidationError):
    """Raised for every rejected deletion OTP (missing, expired, wrong, reused)."""

    error_code = ErrorCode.DELETION_OTP_INVALID


# =============================================================================
# Not Found Errors
# =============================================================================


class NotFoundError(HubError):
    """Base class for not found errors."""

    error_code = ErrorCode.NOT_FOUND
    status_code = status.HTTP_404_NOT_FOUND


class ProjectNotFoundError(NotFoundError):
    error_code = ErrorCode.PROJECT_NOT_FOUND

    def __init__(self, message: str = "Annotation project not found"):
        super().__init__(message)


class ApplicationNotFoundError(NotFoundError):
    error_code = ErrorCode.APPLICATION_NOT_FOUND

    def __init__(self, message: str = "Application not found"):
        super().__init__(message)


class InvoiceNotFoundError(NotFoundError):
    error_code = ErrorCode.INVOICE_NOT_FOUND

    def __init__(self, message: str = "Invoice not found"):
        super().__init__(message)


# =============================================================================
# Authentication / Authorization Errors
# =============================================================================


class AuthenticationError(HubError):
    """Raised when the caller is unauthenticated or not an approved worker."""

    error_code = ErrorCode.UNAUTHORIZED
    status_code = status.HTTP_401_UNAUTHORIZED


class AuthorizationError(HubError):
    """Raised when the caller lacks the role required for an operation."""

    error_code = ErrorCode.FORBIDDEN
    status_code = status.HTTP_403_FORBIDDEN


# =============================================================================
# Conflict / Upstream Errors
# =============================================================================


class ConflictError(HubError):
    """Raised when a uniqueness constraint in the data store is violated."""

    error_code = ErrorCode.CONFLICT
    status_code = status.HTTP_409_CONFLICT


class ExchangeRateUnavailableError(HubError):
    """Raised when no trustworthy USD/NGN rate can be obtained."""

    error_code = ErrorCode.EXCHANGE_RATE_UNAVAILABLE
    status_code = status.HTTP_503_SERVICE_UNAVAILABLE

    def __init__(self, detail: str | None = None):
        super().__init__("Exchange rate service unavailable", errors=[detail] if detail else None)


class NotificationDeliveryError(HubError):
    """Raised when an email the operation cannot do without was not delivered."""

    error_code = ErrorCode.NOTIFICATION_FAILED
    status_code = status.HTTP_502_BAD_GATEWAY
