"""
Invoice issuing and the payment-status state machine.

An invoice can only be issued for a project the worker holds an approved
application on. Once paid an invoice is immutable: payment-status changes
are conditional updates on the status the caller saw, and deletion is
limited to unpaid invoices inside a short correction window.
"""
import re
from datetime import datetime, timedelta

from pymongo import DESCENDING, ReturnDocument
from pymongo.errors import DuplicateKeyError

from annotation_hub.core.audit import audit_logger
from annotation_hub.core.config import settings
from annotation_hub.core.exceptions import (
    ConflictError,
    InvoiceNotFoundError,
    NotFoundError,
    ProjectNotFoundError,
    ValidationError,
)
from annotation_hub.core.metrics import record_invoice_paid
from annotation_hub.core.mongo import (
    applications_collection,
    dt_users_collection,
    invoices_collection,
    projects_collection,
    to_object_id,
)
from annotation_hub.log.logging import logger
from annotation_hub.models.application import ApplicationStatus
from annotation_hub.models.common import serialize_document
from annotation_hub.models.invoice import (
    PAYABLE_STATUSES,
    Invoice,
    InvoiceStatus,
    PaymentMethod,
    PaymentStatus,
    days_overdue,
    amount_due,
    ensure_payment_transition,
    next_invoice_number,
    with_derived_fields,
)
from annotation_hub.models.worker import full_name_of, is_approved_worker
from annotation_hub.schemas.common import pagination_info
from annotation_hub.schemas.invoice import (
    InvoiceCreateRequest,
    InvoiceFilters,
    PaymentStatusUpdateRequest,
)
from annotation_hub.services import email_templates
from annotation_hub.services.common import TransitionResult, load_users
from annotation_hub.services.notification_service import (
    Notification,
    NotificationDispatcher,
    NotificationKind,
    notification_dispatcher,
)

PAYABLE_STATUS_VALUES = [s.value for s in PAYABLE_STATUSES]
INVOICE_NUMBER_ATTEMPTS = 5


def _view(invoice: dict) -> dict:
    return serialize_document(with_derived_fields(invoice))


class InvoiceService:
    """
    Service for invoices and payments.
    """

    def __init__(
        self,
        invoices=invoices_collection,
        projects=projects_collection,
        applications=applications_collection,
        users=dt_users_collection,
        dispatcher: NotificationDispatcher = notification_dispatcher,
    ):
        self.invoices = invoices
        self.projects = projects
        self.applications = applications
        self.users = users
        self.dispatcher = dispatcher

    async def _get_invoice(self, invoice_id) -> dict:
        invoice = await self.invoices.find_one({"_id": to_object_id(invoice_id, "invoice id")})
        if invoice is None:
            raise InvoiceNotFoundError()
        return invoice

    async def _allocate_invoice_number(self, now: datetime) -> str:
        prefix = f"{now.year}{now.month:02d}"
        last = await self.invoices.find_one(
            {"invoiceNumber": {"$regex": f"^{re.escape(prefix)}"}},
            {"invoiceNumber": 1},
            sort=[("invoiceNumber", DESCENDING)],
        )
        return next_invoice_number(last["invoiceNumber"] if last else None, now)

    async def _payment_confirmation(self, invoice: dict, worker: dict | None, project_name: str):
        if not worker or not worker.get("email"):
            return None
        return Notification.build(
            NotificationKind.PAYMENT_CONFIRMATION,
            worker["email"],
            email_templates.payment_confirmation(
                full_name_of(worker),
                project_name,
                invoice["invoiceNumber"],
                invoice.get("paidAmount") or invoice["invoiceAmount"],
                invoice.get("currency", "USD"),
                invoice.get("paymentReference"),
            ),
            to_name=worker.get("fullName"),
            ref=invoice["invoiceNumber"],
        )

    # =========================================================================
    # Admin operations
    # =========================================================================

    async def create_invoice(self, request: InvoiceCreateRequest, admin_id: str) -> TransitionResult:
        """
        Issue an invoice to a worker for a project.

        Raises:
            ProjectNotFoundError: If the project does not exist.
            NotFoundError: If the worker does not exist.
            ValidationError: If the worker is not approved or has no approved
                application on the project.
        """
        project_oid = to_object_id(request.projectId, "project id")
        worker_oid = to_object_id(request.dtUserId, "user id")

        project = await self.projects.find_one({"_id": project_oid}, {"projectName": 1})
        if project is None:
            raise ProjectNotFoundError()

        worker = await self.users.find_one({"_id": worker_oid})
        if worker is None:
            raise NotFoundError("DTUser not found")
        if not is_approved_worker(worker):
            raise ValidationError("Can only create invoices for approved annotators")

        worked = await self.applications.find_one(
            {"projectId": project_oid, "applicantId": worker_oid, "status": ApplicationStatus.APPROVED.value},
            {"_id": 1},
        )
        if worked is None:
            raise ValidationError("User has not worked on this project or application not approved")

        now = datetime.utcnow()
        fields = request.model_dump(exclude={"projectId", "dtUserId"})
        document = Invoice(
            **fields,
            projectId=project_oid,
            dtUserId=worker_oid,
            createdBy=to_object_id(admin_id, "admin id"),
            invoiceDate=now,
            createdAt=now,
            updatedAt=now,
        ).model_dump(exclude={"id"})

        for _ in range(INVOICE_NUMBER_ATTEMPTS):
            document["invoiceNumber"] = await self._allocate_invoice_number(now)
            document.pop("_id", None)
            try:
                result = await self.invoices.insert_one(document)
                break
            except DuplicateKeyError:
                logger.warning(
                    "Invoice number collision, retrying",
                    event_type="invoice_number_collision",
                    invoice_number=document["invoiceNumber"],
                )
        else:
            raise ConflictError("Could not allocate a unique invoice number, please retry")
        document["_id"] = result.inserted_id

        outbox = []
        if worker.get("email"):
            outbox.append(
                Notification.build(
                    NotificationKind.INVOICE_CREATED,
                    worker["email"],
                    email_templates.invoice_created(
                        full_name_of(worker),
                        project["projectName"],
                        document["invoiceNumber"],
                        document["invoiceAmount"],
                        document["currency"],
                        request.dueDate.date().isoformat(),
                    ),
                    to_name=worker.get("fullName"),
                    ref=document["invoiceNumber"],
                )
            )
        report = await self.dispatcher.dispatch(outbox)
        if outbox and report.all_sent:
            sent_at = datetime.utcnow()
            await self.invoices.update_one(
                {"_id": result.inserted_id}, {"$set": {"emailSent": True, "emailSentAt": sent_at}}
            )
            document.update({"emailSent": True, "emailSentAt": sent_at})

        logger.info(
            "Invoice created",
            event_type="invoice_created",
            invoice_id=str(result.inserted_id),
            invoice_number=document["invoiceNumber"],
            amount=document["invoiceAmount"],
        )
        return TransitionResult(data=_view(document), notifications=report)

    async def update_payment_status(
        self, invoice_id: str, request: PaymentStatusUpdateRequest, admin_id: str | None = None
    ) -> dict:
        """
        Change an invoice's payment status.

        Marking paid stamps ``paidAt``, defaults ``paidAmount`` to the full
        invoice amount and emails the worker. The email outcome is reported
        as ``emailNotificationSent`` and never fails the update.
        """
        invoice = await self._get_invoice(invoice_id)
        target = request.paymentStatus
        ensure_payment_transition(invoice["paymentStatus"], target)

        now = datetime.utcnow()
        changes = {"paymentStatus": target.value, "updatedAt": now}
        if target == PaymentStatus.PAID:
            changes.update(
                {
                    "paidAt": now,
                    "paidAmount": request.paidAmount if request.paidAmount is not None else invoice["invoiceAmount"],
                    "status": InvoiceStatus.PAID.value,
                }
            )
            if request.paymentMethod:
                changes["paymentMethod"] = request.paymentMethod.value
            if request.paymentReference:
                changes["paymentReference"] = request.paymentReference
            if request.paymentNotes:
                changes["paymentNotes"] = request.paymentNotes
        elif target == PaymentStatus.OVERDUE:
            changes["status"] = InvoiceStatus.OVERDUE.value
        elif target == PaymentStatus.CANCELLED:
            changes["status"] = InvoiceStatus.CANCELLED.value
        elif target == PaymentStatus.DISPUTED:
            changes["disputedAt"] = now

        updated = await self.invoices.find_one_and_update(
            {"_id": invoice["_id"], "paymentStatus": invoice["paymentStatus"]},
            {"$set": changes},
            return_document=ReturnDocument.AFTER,
        )
        if updated is None:
            current = await self._get_invoice(invoice_id)
            ensure_payment_transition(current["paymentStatus"], target)
            raise ValidationError("Invoice was modified concurrently, please retry")

        email_sent = False
        if target == PaymentStatus.PAID:
            record_invoice_paid("single")
            audit_logger.log_invoice_paid(admin_id or "unknown", str(invoice["_id"]), changes["paidAmount"])
            worker = await self.users.find_one({"_id": invoice["dtUserId"]}, {"fullName": 1, "email": 1})
            project = await self.projects.find_one({"_id": invoice["projectId"]}, {"projectName": 1}) or {}
            notification = await self._payment_confirmation(updated, worker, project.get("projectName", ""))
            if notification is not None:
                report = await self.dispatcher.dispatch([notification])
                email_sent = report.all_sent

        return {"invoice": _view(updated), "emailNotificationSent": email_sent}

    async def bulk_authorize_payment(self, admin_email: str) -> dict:
        """
        Mark every unpaid or overdue invoice as paid.

        Each invoice is processed on its own; a failure to update one invoice
        or to email its worker is recorded in ``errors`` and the batch goes on.
        """
        invoices = await self.invoices.find(
            {"paymentStatus": {"$in": PAYABLE_STATUS_VALUES}}
        ).sort("createdAt", 1).to_list(length=None)

        results = {"processedInvoices": 0, "totalAmount": 0, "emailsSent": 0, "errors": []}
        if not invoices:
            return results

        users = await load_users(self.users, [i["dtUserId"] for i in invoices])
        project_ids = list({i["projectId"] for i in invoices})
        projects = {
            p["_id"]: p
            for p in await self.projects.find({"_id": {"$in": project_ids}}, {"projectName": 1}).to_list(length=None)
        }

        outbox = []
        for invoice in invoices:
            now = datetime.utcnow()
            try:
                paid = await self.invoices.find_one_and_update(
                    {"_id": invoice["_id"], "paymentStatus": {"$in": PAYABLE_STATUS_VALUES}},
                    {
                        "$set": {
                            "paymentStatus": PaymentStatus.PAID.value,
                            "status": InvoiceStatus.PAID.value,
                            "paidAt": now,
                            "paidAmount": invoice["invoiceAmount"],
                            "paymentMethod": PaymentMethod.BULK_TRANSFER.value,
                            "paymentReference": f"BULK-{int(now.timestamp() * 1000)}",
                            "paymentNotes": f"Bulk payment authorization by {admin_email}",
                            "updatedAt": now,
                        }
                    },
                    return_document=ReturnDocument.AFTER,
                )
            except Exception as e:
                logger.error(
                    "Bulk payment failed for invoice",
                    event_type="bulk_payment_error",
                    invoice_number=invoice.get("invoiceNumber"),
                    error=str(e),
                )
                results["errors"].append(
                    {"invoiceNumber": invoice.get("invoiceNumber"), "error": "Processing failed", "details": str(e)}
                )
                continue

            if paid is None:
                # Paid or cancelled by someone else since the scan
                continue

            results["processedInvoices"] += 1
            results["totalAmount"] += invoice["invoiceAmount"]
            notification = await self._payment_confirmation(
                paid,
                users.get(invoice["dtUserId"]),
                projects.get(invoice["projectId"], {}).get("projectName", ""),
            )
            if notification is None:
                results["errors"].append(
                    {"invoiceNumber": invoice["invoiceNumber"], "error": "Email failed", "details": "No email address"}
                )
            else:
                outbox.append(notification)

        report = await self.dispatcher.dispatch(outbox)
        results["emailsSent"] = report.sent
        for failure in report.failures:
            results["errors"].append({"invoiceNumber": failure.ref, "error": "Email failed", "details": failure.error})

        record_invoice_paid("bulk", results["processedInvoices"])
        audit_logger.log_bulk_payment(
            admin_email, results["processedInvoices"], results["totalAmount"], len(results["errors"])
        )
        return results

    async def delete_invoice(self, invoice_id: str, admin_id: str | None = None) -> dict:
        """
        Delete an unpaid invoice created within the correction window.

        Raises:
            ValidationError: If the invoice is not unpaid or is too old.
        """
        invoice = await self._get_invoice(invoice_id)
        window_start = datetime.utcnow() - timedelta(hours=settings.invoice_deletion_window_hours)
        if invoice["paymentStatus"] != PaymentStatus.UNPAID.value or invoice["createdAt"] < window_start:
            raise ValidationError(
                f"Can only delete unpaid invoices created within the last "
                f"{settings.invoice_deletion_window_hours} hours"
            )

        result = await self.invoices.delete_one(
            {
                "_id": invoice["_id"],
                "paymentStatus": PaymentStatus.UNPAID.value,
                "createdAt": {"$gte": window_start},
            }
        )
        if result.deleted_count == 0:
            raise ValidationError("Invoice was modified concurrently, please retry")

        audit_logger.log_invoice_deleted(admin_id or "unknown", str(invoice["_id"]), invoice["invoiceNumber"])
        return {"id": str(invoice["_id"]), "invoiceNumber": invoice["invoiceNumber"]}

    async def send_invoice_reminder(self, invoice_id: str) -> dict:
        invoice = await self._get_invoice(invoice_id)
        if invoice["paymentStatus"] == PaymentStatus.PAID.value:
            raise ValidationError("Cannot send reminder for paid invoice")

        worker = await self.users.find_one({"_id": invoice["dtUserId"]}, {"fullName": 1, "email": 1})
        if not worker or not worker.get("email"):
            raise ValidationError("Invoice recipient has no email address")

        notification = Notification.build(
            NotificationKind.INVOICE_REMINDER,
            worker["email"],
            email_templates.invoice_reminder(
                full_name_of(worker),
                invoice["invoiceNumber"],
                amount_due(invoice),
                invoice.get("currency", "USD"),
                days_overdue(invoice),
            ),
            to_name=worker.get("fullName"),
            ref=invoice["invoiceNumber"],
        )
        report = await self.dispatcher.dispatch([notification])

        sent_at = None
        if report.all_sent:
            sent_at = datetime.utcnow()
            await self.invoices.update_one({"_id": invoice["_id"]}, {"$set": {"lastEmailReminder": sent_at}})

        return {
            "invoiceId": str(invoice["_id"]),
            "invoiceNumber": invoice["invoiceNumber"],
            "sentTo": worker["email"],
            "sent": report.all_sent,
            "sentAt": sent_at.isoformat() if sent_at else None,
        }

    async def mark_overdue_invoices(self) -> int:
        """Flip unpaid invoices past their due date to overdue."""
        now = datetime.utcnow()
        result = await self.invoices.update_many(
            {"paymentStatus": PaymentStatus.UNPAID.value, "dueDate": {"$lt": now}},
            {"$set": {"paymentStatus": PaymentStatus.OVERDUE.value, "status": InvoiceStatus.OVERDUE.value,
                      "updatedAt": now}},
        )
        if result.modified_count:
            logger.info("Marked invoices overdue", event_type="invoices_overdue", count=result.modified_count)
        return result.modified_count

    # =========================================================================
    # Queries
    # =========================================================================

    async def get_invoice(self, invoice_id: str, viewer_id: str, is_admin: bool = False) -> dict:
        """
        Fetch one invoice. Workers only see their own invoices; the first
        worker view stamps ``emailViewedAt``.
        """
        invoice = await self._get_invoice(invoice_id)
        if not is_admin and str(invoice["dtUserId"]) != str(viewer_id):
            raise InvoiceNotFoundError("Invoice not found or access denied")

        if not is_admin and not invoice.get("emailViewedAt"):
            viewed_at = datetime.utcnow()
            changes = {"emailViewedAt": viewed_at}
            if invoice.get("status") == InvoiceStatus.SENT.value:
                changes["status"] = InvoiceStatus.VIEWED.value
            await self.invoices.update_one(
                {"_id": invoice["_id"], "emailViewedAt": {"$exists": False}}, {"$set": changes}
            )
            invoice.update(changes)

        data = _view(invoice)
        project = await self.projects.find_one(
            {"_id": invoice["projectId"]}, {"projectName": 1, "projectCategory": 1}
        )
        if project:
            data["project"] = serialize_document(project)
        return data

    @staticmethod
    def _filter_query(filters: InvoiceFilters) -> dict:
        query = {}
        if filters.paymentStatus:
            query["paymentStatus"] = filters.paymentStatus.value
        if filters.projectId:
            query["projectId"] = to_object_id(filters.projectId, "project id")
        if filters.dtUserId:
            query["dtUserId"] = to_object_id(filters.dtUserId, "user id")
        if filters.startDate or filters.endDate:
            query["invoiceDate"] = {}
            if filters.startDate:
                query["invoiceDate"]["$gte"] = filters.startDate
            if filters.endDate:
                query["invoiceDate"]["$lte"] = filters.endDate
        return query

    async def _summary(self, query: dict) -> dict:
        paid = {"$eq": ["$paymentStatus", PaymentStatus.PAID.value]}
        pipeline = [
            {"$match": query},
            {
                "$group": {
                    "_id": None,
                    "totalAmount": {"$sum": "$invoiceAmount"},
                    "paidAmount": {"$sum": {"$cond": [paid, "$invoiceAmount", 0]}},
                    "unpaidAmount": {"$sum": {"$cond": [paid, 0, "$invoiceAmount"]}},
                    "totalInvoices": {"$sum": 1},
                    "paidInvoices": {"$sum": {"$cond": [paid, 1, 0]}},
                    "unpaidInvoices": {"$sum": {"$cond": [paid, 0, 1]}},
                    "overdueInvoices": {
                        "$sum": {"$cond": [{"$eq": ["$paymentStatus", PaymentStatus.OVERDUE.value]}, 1, 0]}
                    },
                }
            },
        ]
        rows = await self.invoices.aggregate(pipeline).to_list(length=1)
        summary = {
            "totalAmount": 0,
            "paidAmount": 0,
            "unpaidAmount": 0,
            "totalInvoices": 0,
            "paidInvoices": 0,
            "unpaidInvoices": 0,
            "overdueInvoices": 0,
        }
        if rows:
            summary.update({k: v for k, v in rows[0].items() if k != "_id"})
        return summary

    async def list_invoices(self, filters: InvoiceFilters, page: int = 1, limit: int = 20) -> dict:
        query = self._filter_query(filters)
        cursor = self.invoices.find(query).sort("createdAt", -1).skip((page - 1) * limit).limit(limit)
        invoices = await cursor.to_list(length=limit)
        total = await self.invoices.count_documents(query)
        return {
            "invoices": [_view(i) for i in invoices],
            "pagination": pagination_info(page, limit, total),
            "summary": await self._summary(query),
        }

    async def get_invoice_dashboard(self, worker_id: str) -> dict:
        worker_oid = to_object_id(worker_id, "user id")
        query = {"dtUserId": worker_oid}
        summary = await self._summary(query)
        recent = await self.invoices.find(query).sort("createdAt", -1).limit(5).to_list(length=5)
        unpaid = await self.invoices.find(
            {**query, "paymentStatus": {"$in": PAYABLE_STATUS_VALUES}}
        ).sort("dueDate", 1).to_list(length=None)
        return {
            "summary": summary,
            "recentInvoices": [_view(i) for i in recent],
            "outstandingInvoices": [_view(i) for i in unpaid],
            "totalOutstanding": sum(amount_due(i) for i in unpaid),
        }


invoice_service = InvoiceService()
