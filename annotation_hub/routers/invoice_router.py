"""
Invoice router.

This module provides endpoints for:
- Issuing, listing and deleting invoices
- Payment status changes and bulk payment authorization
- Paystack and MPESA payout CSV downloads
- The worker invoice dashboard
"""
from datetime import datetime

from fastapi import APIRouter, Depends, Query, Response

from annotation_hub.core.auth import AuthUser, get_current_user, require_admin
from annotation_hub.schemas.common import ok
from annotation_hub.schemas.invoice import (
    InvoiceCreateRequest,
    InvoiceFilters,
    PaymentStatusUpdateRequest,
    PayoutExportRequest,
)
from annotation_hub.services.bank_codes import supported_banks
from annotation_hub.services.invoice_service import invoice_service
from annotation_hub.services.payout_export_service import payout_export_service

router = APIRouter(prefix="/invoices", tags=["invoices"])


def _csv_response(content: str, rail: str, summary: dict) -> Response:
    filename = f"{rail}_payouts_{datetime.utcnow().strftime('%Y%m%d_%H%M%S')}.csv"
    return Response(
        content=content,
        media_type="text/csv",
        headers={
            "Content-Disposition": f'attachment; filename="{filename}"',
            "X-Processed-Invoices": str(summary["processedInvoices"]),
            "X-Skipped-Invoices": str(len(summary["errors"])),
        },
    )


def _ids(invoice_ids: str | None) -> list[str] | None:
    if not invoice_ids:
        return None
    return [i.strip() for i in invoice_ids.split(",") if i.strip()]


# -----------------------------------------------------------------------------
# Payout exports
# -----------------------------------------------------------------------------

@router.get("/export/paystack", summary="Download the Paystack bulk-transfer CSV")
async def export_paystack(
    invoiceIds: str | None = Query(None, description="Comma separated invoice ids"),
    admin: AuthUser = Depends(require_admin),
):
    """
    Payable invoices converted to NGN. Invoices with bad bank details are
    left out; a missing exchange rate fails the whole export with 503.
    """
    content, summary = await payout_export_service.generate_paystack_csv(_ids(invoiceIds), admin.user_id)
    return _csv_response(content, "paystack", summary)


@router.get("/export/mpesa", summary="Download the MPESA bulk-transfer CSV")
async def export_mpesa(
    invoiceIds: str | None = Query(None, description="Comma separated invoice ids"),
    admin: AuthUser = Depends(require_admin),
):
    content, summary = await payout_export_service.generate_mpesa_csv(_ids(invoiceIds), admin.user_id)
    return _csv_response(content, "mpesa", summary)


@router.post("/export/paystack/summary", summary="Paystack export summary without the file")
async def export_paystack_summary(request: PayoutExportRequest, admin: AuthUser = Depends(require_admin)):
    _, summary = await payout_export_service.generate_paystack_csv(request.invoiceIds, admin.user_id)
    return ok("Paystack export summary", summary)


@router.get("/banks", summary="Banks supported for Paystack payouts")
async def list_banks(user: AuthUser = Depends(get_current_user)):
    return ok("Supported banks retrieved successfully", {"banks": supported_banks()})


# -----------------------------------------------------------------------------
# Admin invoice management
# -----------------------------------------------------------------------------

@router.post("", status_code=201, summary="Issue an invoice")
async def create_invoice(request: InvoiceCreateRequest, admin: AuthUser = Depends(require_admin)):
    result = await invoice_service.create_invoice(request, admin.user_id)
    return ok("Invoice created successfully", {"invoice": result.data, "emailSent": result.notifications.all_sent})


@router.get("", summary="List invoices")
async def list_invoices(
    filters: InvoiceFilters = Depends(),
    page: int = Query(1, ge=1),
    limit: int = Query(20, ge=1, le=100),
    user: AuthUser = Depends(get_current_user),
):
    # Workers are always scoped to their own invoices
    if not user.is_admin:
        filters = filters.model_copy(update={"dtUserId": user.user_id})
    data = await invoice_service.list_invoices(filters, page, limit)
    return ok("Invoices retrieved successfully", data)


@router.post("/bulk-authorize", summary="Mark all unpaid invoices as paid")
async def bulk_authorize_payment(admin: AuthUser = Depends(require_admin)):
    data = await invoice_service.bulk_authorize_payment(admin.email or admin.user_id)
    return ok(f"Bulk payment authorization completed. {data['processedInvoices']} invoices processed.", data)


@router.get("/dashboard", summary="Current worker's invoice dashboard")
async def invoice_dashboard(user: AuthUser = Depends(get_current_user)):
    data = await invoice_service.get_invoice_dashboard(user.user_id)
    return ok("Invoice dashboard retrieved successfully", data)


@router.get("/{invoice_id}", summary="Invoice details")
async def get_invoice(invoice_id: str, user: AuthUser = Depends(get_current_user)):
    invoice = await invoice_service.get_invoice(invoice_id, user.user_id, user.is_admin)
    return ok("Invoice retrieved successfully", {"invoice": invoice})


@router.patch("/{invoice_id}/status", summary="Change an invoice's payment status")
async def update_payment_status(
    invoice_id: str, request: PaymentStatusUpdateRequest, admin: AuthUser = Depends(require_admin)
):
    data = await invoice_service.update_payment_status(invoice_id, request, admin.user_id)
    return ok("Payment status updated successfully", data)


@router.post("/{invoice_id}/reminder", summary="Email a payment reminder")
async def send_invoice_reminder(invoice_id: str, admin: AuthUser = Depends(require_admin)):
    data = await invoice_service.send_invoice_reminder(invoice_id)
    return ok("Invoice reminder processed", data)


@router.delete("/{invoice_id}", summary="Delete a recent unpaid invoice")
async def delete_invoice(invoice_id: str, admin: AuthUser = Depends(require_admin)):
    data = await invoice_service.delete_invoice(invoice_id, admin.user_id)
    return ok("Invoice deleted successfully", data)
