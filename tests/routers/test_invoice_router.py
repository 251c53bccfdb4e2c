"""Tests for the invoice router."""

from unittest.mock import AsyncMock, patch

from bson import ObjectId

from annotation_hub.core.exceptions import ExchangeRateUnavailableError, ValidationError
from annotation_hub.schemas.invoice import InvoiceFilters

INVOICE_ID = str(ObjectId())


class TestPayoutExports:
    def test_paystack_csv_download(self, admin_client):
        summary = {"processedInvoices": 3, "errors": [{"invoiceNumber": "1"}, {"invoiceNumber": "2"}]}
        with patch("annotation_hub.routers.invoice_router.payout_export_service") as service:
            service.generate_paystack_csv = AsyncMock(return_value=('"Transfer Amount"\n"15000.00"', summary))
            response = admin_client.get("/invoices/export/paystack?invoiceIds=a, b,,c")

        assert response.status_code == 200
        assert response.headers["content-type"].startswith("text/csv")
        assert response.headers["content-disposition"].startswith('attachment; filename="paystack_payouts_')
        assert response.headers["x-processed-invoices"] == "3"
        assert response.headers["x-skipped-invoices"] == "2"
        assert response.text.endswith('"15000.00"')
        assert service.generate_paystack_csv.await_args.args[0] == ["a", "b", "c"]

    def test_paystack_without_rate_is_503(self, admin_client):
        with patch("annotation_hub.routers.invoice_router.payout_export_service") as service:
            service.generate_paystack_csv = AsyncMock(side_effect=ExchangeRateUnavailableError("timeout"))
            response = admin_client.get("/invoices/export/paystack")

        assert response.status_code == 503
        body = response.json()
        assert body["success"] is False
        assert body["message"] == "Exchange rate service unavailable"
        assert body["errors"] == ["timeout"]

    def test_mpesa_csv_download(self, admin_client):
        with patch("annotation_hub.routers.invoice_router.payout_export_service") as service:
            service.generate_mpesa_csv = AsyncMock(return_value=("", {"processedInvoices": 0, "errors": []}))
            response = admin_client.get("/invoices/export/mpesa")

        assert response.status_code == 200
        assert "mpesa_payouts_" in response.headers["content-disposition"]
        assert service.generate_mpesa_csv.await_args.args[0] is None

    def test_worker_cannot_export(self, worker_client):
        response = worker_client.get("/invoices/export/paystack")
        assert response.status_code == 403


class TestInvoiceEndpoints:
    def test_worker_listing_is_scoped(self, worker_client, worker_user):
        with patch("annotation_hub.routers.invoice_router.invoice_service") as service:
            service.list_invoices = AsyncMock(return_value={"invoices": []})
            response = worker_client.get(f"/invoices?dtUserId={ObjectId()}")

        assert response.status_code == 200
        filters = service.list_invoices.await_args.args[0]
        assert isinstance(filters, InvoiceFilters)
        assert filters.dtUserId == worker_user.user_id

    def test_delete_paid_invoice_is_refused(self, admin_client):
        with patch("annotation_hub.routers.invoice_router.invoice_service") as service:
            service.delete_invoice = AsyncMock(
                side_effect=ValidationError("Can only delete unpaid invoices created within the last 24 hours")
            )
            response = admin_client.delete(f"/invoices/{INVOICE_ID}")

        assert response.status_code == 400
        assert response.json()["success"] is False

    def test_bulk_authorize_message(self, admin_client, admin_user):
        data = {"processedInvoices": 4, "totalAmount": 400.0, "emailsSent": 4, "errors": []}
        with patch("annotation_hub.routers.invoice_router.invoice_service") as service:
            service.bulk_authorize_payment = AsyncMock(return_value=data)
            response = admin_client.post("/invoices/bulk-authorize")

        assert response.status_code == 200
        assert response.json()["message"] == "Bulk payment authorization completed. 4 invoices processed."
        service.bulk_authorize_payment.assert_awaited_once_with(admin_user.email)

    def test_unknown_payment_status_is_rejected(self, admin_client):
        response = admin_client.patch(f"/invoices/{INVOICE_ID}/status", json={"paymentStatus": "refunded"})

        assert response.status_code == 400
        assert response.json()["message"] == "Validation error"

    def test_banks(self, worker_client):
        response = worker_client.get("/invoices/banks")

        assert response.status_code == 200
        codes = {b["bankCode"] for b in response.json()["data"]["banks"]}
        assert "access-bank" in codes
