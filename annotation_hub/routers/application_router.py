"""
Application review router.

This module provides endpoints for:
- Listing applications for review
- Approving, rejecting and bulk-rejecting applications
- Removing approved annotators
- Withdrawing and deleting applications
"""
from fastapi import APIRouter, Depends, Query

from annotation_hub.core.auth import AuthUser, get_current_user, require_admin
from annotation_hub.schemas.application import (
    ApplicationFilters,
    ApproveRequest,
    BulkRejectRequest,
    RejectRequest,
    RemoveApplicantRequest,
)
from annotation_hub.schemas.common import ok
from annotation_hub.services.application_service import application_service

router = APIRouter(prefix="/applications", tags=["applications"])


def _with_notifications(result) -> dict:
    return {"application": result.data, "notifications": result.notifications.to_dict()}


@router.get("", summary="List applications")
async def list_applications(
    filters: ApplicationFilters = Depends(),
    page: int = Query(1, ge=1),
    limit: int = Query(20, ge=1, le=100),
    admin: AuthUser = Depends(require_admin),
):
    data = await application_service.list_applications(filters, page, limit)
    return ok("Applications retrieved successfully", data)


@router.post("/bulk-reject", summary="Reject many pending applications")
async def bulk_reject(request: BulkRejectRequest, admin: AuthUser = Depends(require_admin)):
    """
    Reject every pending application in ``applicationIds``. Ids that are
    not pending are skipped; email failures are counted, not raised.
    """
    data = await application_service.reject_bulk(
        request.applicationIds, admin.user_id, request.rejectionReason, request.reviewNotes
    )
    return ok(f"{data['rejected']} applications rejected", data)


@router.patch("/{application_id}/approve", summary="Approve an application")
async def approve_application(
    application_id: str,
    request: ApproveRequest | None = None,
    admin: AuthUser = Depends(require_admin),
):
    result = await application_service.approve(
        application_id, admin.user_id, request.reviewNotes if request else ""
    )
    return ok("Application approved successfully", _with_notifications(result))


@router.patch("/{application_id}/reject", summary="Reject an application")
async def reject_application(
    application_id: str,
    request: RejectRequest | None = None,
    admin: AuthUser = Depends(require_admin),
):
    request = request or RejectRequest()
    result = await application_service.reject(
        application_id, admin.user_id, request.rejectionReason, request.reviewNotes
    )
    return ok("Application rejected successfully", _with_notifications(result))


@router.patch("/{application_id}/remove", summary="Remove an approved annotator")
async def remove_applicant(
    application_id: str,
    request: RemoveApplicantRequest | None = None,
    admin: AuthUser = Depends(require_admin),
):
    request = request or RemoveApplicantRequest()
    result = await application_service.remove_approved(
        application_id,
        admin.user_id,
        admin_email=admin.email,
        removal_reason=request.removalReason,
        removal_notes=request.removalNotes,
    )
    return ok("Applicant removed from project successfully", _with_notifications(result))


@router.patch("/{application_id}/withdraw", summary="Withdraw your own application")
async def withdraw_application(application_id: str, user: AuthUser = Depends(get_current_user)):
    result = await application_service.withdraw(application_id, user.user_id)
    return ok("Application withdrawn successfully", {"application": result.data})


@router.delete("/{application_id}", summary="Delete a closed application")
async def delete_application(application_id: str, admin: AuthUser = Depends(require_admin)):
    data = await application_service.delete_application(application_id, admin.user_id)
    return ok("Application deleted successfully", data)
