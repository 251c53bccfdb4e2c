"""
Project router.

This module provides endpoints for:
- Creating, updating and browsing annotation projects
- Applying to a project
- Attaching gating assessments
- Direct and OTP-authorised project deletion
"""
from fastapi import APIRouter, Depends, Query, Response

from annotation_hub.core.auth import AuthUser, get_current_user, require_admin
from annotation_hub.schemas.application import ApplicationCreateRequest, AssessmentCompletionRequest
from annotation_hub.schemas.common import ok
from annotation_hub.schemas.project import (
    AttachAssessmentRequest,
    DeletionOTPRequest,
    DeletionOTPVerifyRequest,
    ProjectCreateRequest,
    ProjectFilters,
    ProjectUpdateRequest,
)
from annotation_hub.services.application_service import application_service
from annotation_hub.services.project_service import project_service

router = APIRouter(prefix="/projects", tags=["projects"])


# -----------------------------------------------------------------------------
# Worker endpoints
# -----------------------------------------------------------------------------

@router.get("/available", summary="Projects open to the current worker")
async def list_available_projects(
    page: int = Query(1, ge=1),
    limit: int = Query(20, ge=1, le=100),
    user: AuthUser = Depends(get_current_user),
):
    data = await project_service.list_available_projects(user.user_id, page, limit)
    return ok("Available projects retrieved successfully", data)


@router.post("/{project_id}/applications", status_code=201, summary="Apply to a project")
async def apply_to_project(
    project_id: str,
    request: ApplicationCreateRequest,
    user: AuthUser = Depends(get_current_user),
):
    """
    Submit an application. Projects with a required assessment start the
    application in ``assessment_required``.
    """
    result = await application_service.apply(user.user_id, project_id, request)
    return ok(
        "Application submitted successfully",
        {"application": result.data, "notifications": result.notifications.to_dict()},
    )


# -----------------------------------------------------------------------------
# Admin endpoints
# -----------------------------------------------------------------------------

@router.post("", status_code=201, summary="Create a project")
async def create_project(request: ProjectCreateRequest, admin: AuthUser = Depends(require_admin)):
    project = await project_service.create_project(request, admin.user_id)
    return ok("Annotation project created successfully", {"project": project})


@router.get("", summary="List projects")
async def list_projects(
    filters: ProjectFilters = Depends(),
    page: int = Query(1, ge=1),
    limit: int = Query(20, ge=1, le=100),
    admin: AuthUser = Depends(require_admin),
):
    data = await project_service.list_projects(filters, page, limit)
    return ok("Projects retrieved successfully", data)


@router.get("/{project_id}", summary="Project details with application statistics")
async def get_project(project_id: str, admin: AuthUser = Depends(require_admin)):
    project = await project_service.get_project(project_id)
    return ok("Project retrieved successfully", {"project": project})


@router.patch("/{project_id}", summary="Update a project")
async def update_project(
    project_id: str, request: ProjectUpdateRequest, admin: AuthUser = Depends(require_admin)
):
    project = await project_service.update_project(project_id, request)
    return ok("Project updated successfully", {"project": project})


@router.get("/{project_id}/applicants", summary="Approved applicants of a project")
async def list_approved_applicants(project_id: str, admin: AuthUser = Depends(require_admin)):
    applicants = await application_service.list_approved_applicants(project_id)
    return ok("Approved applicants retrieved successfully", {"applicants": applicants, "total": len(applicants)})


@router.get("/{project_id}/applicants/export", summary="Download approved annotators as CSV")
async def export_approved_annotators(project_id: str, admin: AuthUser = Depends(require_admin)):
    filename, content = await project_service.export_approved_annotators_csv(project_id)
    return Response(
        content=content,
        media_type="text/csv",
        headers={"Content-Disposition": f'attachment; filename="{filename}"'},
    )


@router.post("/{project_id}/assessment", summary="Attach a gating assessment")
async def attach_assessment(
    project_id: str, request: AttachAssessmentRequest, admin: AuthUser = Depends(require_admin)
):
    project = await project_service.attach_assessment(project_id, admin.user_id, request)
    return ok("Assessment attached successfully", {"project": project})


@router.post("/{project_id}/assessment/complete", summary="Record a scored assessment outcome")
async def complete_assessment(
    project_id: str,
    request: AssessmentCompletionRequest,
    admin: AuthUser = Depends(require_admin),
):
    """
    Move a worker's ``assessment_required`` application on once the
    assessment has been scored. Workers cannot report their own result.
    """
    result = await application_service.complete_assessment(
        request.workerId, project_id, request.submissionId, request.passed, recorded_by=admin.user_id
    )
    return ok("Assessment result recorded", {"application": result.data})


@router.delete("/{project_id}/assessment", summary="Detach the gating assessment")
async def remove_assessment(project_id: str, admin: AuthUser = Depends(require_admin)):
    project = await project_service.remove_assessment(project_id)
    return ok("Assessment removed successfully", {"project": project})


@router.delete("/{project_id}", summary="Delete a project")
async def delete_project(project_id: str, admin: AuthUser = Depends(require_admin)):
    """
    Delete a project with no live applications. If any are pending or
    approved the response is a 400 carrying ``requiresOTP: true``.
    """
    data = await project_service.delete_project(project_id, admin.user_id, admin.email)
    return ok("Project deleted successfully", data)


@router.post("/{project_id}/deletion-otp", summary="Request a force-delete OTP")
async def request_deletion_otp(
    project_id: str,
    request: DeletionOTPRequest | None = None,
    admin: AuthUser = Depends(require_admin),
):
    data = await project_service.request_deletion_otp(
        project_id,
        admin.user_id,
        admin_email=admin.email,
        reason=request.reason if request else None,
    )
    return ok("Deletion OTP sent to the Projects Officer", data)


@router.post("/{project_id}/deletion-otp/verify", summary="Verify the OTP and force delete")
async def verify_deletion_otp(
    project_id: str, request: DeletionOTPVerifyRequest, admin: AuthUser = Depends(require_admin)
):
    result = await project_service.verify_otp_and_delete(
        project_id,
        admin.user_id,
        request.otp,
        admin_email=admin.email,
        confirmation_message=request.confirmationMessage,
    )
    return ok("Project and related applications deleted successfully", result.data)
