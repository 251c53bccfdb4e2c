"""
Payout CSV generation for the Paystack and MPESA bulk-transfer rails.

Provides:
- Paystack CSV with USD amounts converted to NGN
- MPESA CSV with USD amounts as-is

Invoices with bad payout details are skipped and reported in the summary's
``errors`` list. The only failure that aborts an export is a missing
exchange rate on the Paystack rail.
"""

import csv
import io

from annotation_hub.core.audit import audit_logger
from annotation_hub.core.exceptions import ExchangeRateUnavailableError
from annotation_hub.core.metrics import record_payout_rows
from annotation_hub.core.mongo import dt_users_collection, invoices_collection, to_object_id
from annotation_hub.log.logging import logger
from annotation_hub.services.bank_codes import get_bank_code, validate_payment_info
from annotation_hub.services.common import load_users
from annotation_hub.services.exchange_rate_service import ExchangeRateService, exchange_rate_service
from annotation_hub.services.invoice_service import PAYABLE_STATUS_VALUES

PAYSTACK_HEADER = [
    "Transfer Amount",
    "Transfer Note (Optional)",
    "Transfer Reference (Optional)",
    "Recipient Code",
    "Bank Code or Slug",
    "Account Number",
    "Account Name (Optional)",
    "Email Address (Optional)",
]

MPESA_HEADER = [
    "Transfer Amount(USD)",
    "Transfer Note (Optional)",
    "Transfer Reference (Optional)",
    "MPESA Account Number",
    "Account Name",
    "Email Address",
]


def render_csv(rows: list[list]) -> str:
    """Render rows with every field quoted and embedded quotes doubled."""
    output = io.StringIO()
    writer = csv.writer(output, quoting=csv.QUOTE_ALL, lineterminator="\n")
    writer.writerows(rows)
    return output.getvalue().rstrip("\n")


class PayoutExportService:
    """
    Service for exporting payable invoices to payout-rail CSV files.
    """

    def __init__(
        self,
        invoices=invoices_collection,
        users=dt_users_collection,
        rates: ExchangeRateService = exchange_rate_service,
    ):
        self.invoices = invoices
        self.users = users
        self.rates = rates

    async def _payable_invoices(self, invoice_ids: list[str] | None) -> list[dict]:
        query = {"paymentStatus": {"$in": PAYABLE_STATUS_VALUES}}
        if invoice_ids:
            query["_id"] = {"$in": [to_object_id(i, "invoice id") for i in invoice_ids]}
        return await self.invoices.find(query).sort("createdAt", 1).to_list(length=None)

    def _finish(self, rail: str, rows: list[list], summary: dict, user_id: str | None) -> tuple[str, dict]:
        record_payout_rows(rail, summary["processedInvoices"], len(summary["errors"]))
        audit_logger.log_payout_exported(user_id or "unknown", rail, summary["processedInvoices"],
                                         len(summary["errors"]))
        logger.info(
            "Payout CSV generated",
            event_type="payout_csv_generated",
            rail=rail,
            total=summary["totalInvoices"],
            processed=summary["processedInvoices"],
            errors=len(summary["errors"]),
        )
        return render_csv(rows), summary

    async def generate_paystack_csv(
        self, invoice_ids: list[str] | None = None, user_id: str | None = None
    ) -> tuple[str, dict]:
        """
        Build the Paystack bulk-transfer CSV.

        Returns:
            ``(csv_content, summary)``. ``csv_content`` is empty when no
            invoice is payable.

        Raises:
            ExchangeRateUnavailableError: If no USD/NGN rate can be obtained.
        """
        invoices = await self._payable_invoices(invoice_ids)
        summary = {
            "totalInvoices": len(invoices),
            "processedInvoices": 0,
            "totalAmountUSD": 0,
            "totalAmountNGN": 0,
            "errors": [],
        }
        if not invoices:
            return "", summary

        # Abort before writing anything if there is no rate
        await self.rates.convert_usd_to_ngn(1)

        users = await load_users(self.users, [i.get("dtUserId") for i in invoices])
        rows = [PAYSTACK_HEADER]
        for invoice in invoices:
            number = invoice.get("invoiceNumber")
            try:
                user = users.get(invoice["dtUserId"]) or {}
                payment_info = user.get("payment_info") or {}
                validation = validate_payment_info(payment_info)
                if not validation["isValid"]:
                    summary["errors"].append(
                        {
                            "invoiceNumber": number,
                            "error": "Invalid payment info",
                            "details": ", ".join(validation["errors"]),
                        }
                    )
                    continue

                bank_code = payment_info.get("bank_code") or get_bank_code(payment_info.get("bank_name"))
                if not bank_code:
                    summary["errors"].append({"invoiceNumber": number, "error": "Bank code not found"})
                    continue

                amount_ngn = await self.rates.convert_usd_to_ngn(invoice["invoiceAmount"])
            except ExchangeRateUnavailableError:
                raise
            except Exception as e:
                logger.error("Paystack row failed", event_type="payout_row_error", invoice_number=number,
                             error=str(e))
                summary["errors"].append({"invoiceNumber": number, "error": "Processing failed", "details": str(e)})
                continue

            rows.append(
                [
                    f"{amount_ngn:.2f}",
                    f"{invoice.get('description') or 'Project completion payment'} for {user.get('fullName')}",
                    number,
                    "",
                    bank_code,
                    payment_info["account_number"],
                    payment_info["account_name"],
                    user.get("email", ""),
                ]
            )
            summary["processedInvoices"] += 1
            summary["totalAmountUSD"] += invoice["invoiceAmount"]
            summary["totalAmountNGN"] += amount_ngn

        summary["totalAmountNGN"] = round(summary["totalAmountNGN"], 2)
        return self._finish("paystack", rows, summary, user_id)

    async def generate_mpesa_csv(
        self, invoice_ids: list[str] | None = None, user_id: str | None = None
    ) -> tuple[str, dict]:
        """Build the MPESA bulk-transfer CSV. Amounts stay in USD."""
        invoices = await self._payable_invoices(invoice_ids)
        summary = {"totalInvoices": len(invoices), "processedInvoices": 0, "totalAmountUSD": 0, "errors": []}
        if not invoices:
            return "", summary

        users = await load_users(self.users, [i.get("dtUserId") for i in invoices])
        rows = [MPESA_HEADER]
        for invoice in invoices:
            number = invoice.get("invoiceNumber")
            try:
                user = users.get(invoice["dtUserId"]) or {}
                payment_info = user.get("payment_info") or {}
                if not payment_info.get("account_number") or not payment_info.get("account_name"):
                    summary["errors"].append({"invoiceNumber": number, "error": "Missing MPESA info"})
                    continue
                amount_usd = float(invoice["invoiceAmount"])
            except Exception as e:
                logger.error("MPESA row failed", event_type="payout_row_error", invoice_number=number,
                             error=str(e))
                summary["errors"].append({"invoiceNumber": number, "error": "Processing failed", "details": str(e)})
                continue

            rows.append(
                [
                    f"{amount_usd:.2f}",
                    f"{invoice.get('description') or 'Payment'} for {user.get('fullName')}",
                    number,
                    payment_info["account_number"],
                    payment_info["account_name"],
                    user.get("email", ""),
                ]
            )
            summary["processedInvoices"] += 1
            summary["totalAmountUSD"] += amount_usd

        return self._finish("mpesa", rows, summary, user_id)


payout_export_service = PayoutExportService()
