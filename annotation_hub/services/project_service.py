"""
Project lifecycle, capacity and deletion authorization.

A project with live applications (pending or approved) can only be
deleted through the two-phase OTP protocol: a code is mailed to the
Projects Officer, and the acting admin must present it before the
cascade runs. Codes are stored hashed, expire, allow a bounded number of
wrong guesses and are claimed atomically so each one authorizes at most
one deletion.
"""
import csv
import io
import re
import secrets
from datetime import datetime, timedelta

from pymongo import ReturnDocument

from annotation_hub.core.audit import audit_logger
from annotation_hub.core.config import settings
from annotation_hub.core.exceptions import (
    AuthenticationError,
    DeletionOTPError,
    DeletionRequiresOTPError,
    NotFoundError,
    NotificationDeliveryError,
    ProjectNotFoundError,
    ValidationError,
)
from annotation_hub.core.metrics import record_otp_failure, record_project_deletion
from annotation_hub.core.mongo import (
    applications_collection,
    dt_users_collection,
    project_deletions_collection,
    projects_collection,
    to_object_id,
)
from annotation_hub.core.security import hash_otp, otp_matches
from annotation_hub.log.logging import logger
from annotation_hub.models.application import LIVE_STATUSES, ApplicationStatus
from annotation_hub.models.common import serialize_document
from annotation_hub.models.project import (
    DeletionOTP,
    Project,
    ProjectAssessment,
    ProjectStatus,
    available_slots,
)
from annotation_hub.models.worker import is_approved_worker
from annotation_hub.schemas.common import pagination_info
from annotation_hub.schemas.project import (
    AttachAssessmentRequest,
    ProjectCreateRequest,
    ProjectFilters,
    ProjectUpdateRequest,
)
from annotation_hub.services import email_templates
from annotation_hub.services.common import TransitionResult, load_users
from annotation_hub.services.notification_service import (
    Notification,
    NotificationDispatcher,
    NotificationKind,
    notification_dispatcher,
)

OTP_NOT_FOUND = "No deletion OTP found. Please request a new OTP first."
OTP_EXPIRED = "OTP has expired. Please request a new OTP."
OTP_INVALID = "Invalid OTP code. Please check and try again."
OTP_USED = "OTP has already been used. Please request a new OTP."
OTP_LOCKED = "Too many invalid attempts. Please request a new OTP."

LIVE_STATUS_VALUES = [s.value for s in LIVE_STATUSES]


def generate_otp() -> str:
    """Six digit numeric code from a CSPRNG."""
    return str(secrets.randbelow(900000) + 100000)


class ProjectService:
    """
    Service for project CRUD, worker project discovery and deletion.
    """

    def __init__(
        self,
        projects=projects_collection,
        applications=applications_collection,
        users=dt_users_collection,
        deletions=project_deletions_collection,
        dispatcher: NotificationDispatcher = notification_dispatcher,
    ):
        self.projects = projects
        self.applications = applications
        self.users = users
        self.deletions = deletions
        self.dispatcher = dispatcher

    async def _get_project(self, project_id) -> dict:
        project = await self.projects.find_one({"_id": to_object_id(project_id, "project id")})
        if project is None:
            raise ProjectNotFoundError()
        return project

    async def _count_live_applications(self, project_oid) -> int:
        return await self.applications.count_documents(
            {"projectId": project_oid, "status": {"$in": LIVE_STATUS_VALUES}}
        )

    # =========================================================================
    # CRUD
    # =========================================================================

    async def create_project(self, request: ProjectCreateRequest, admin_id: str) -> dict:
        now = datetime.utcnow()
        project = Project(
            **request.model_dump(),
            createdBy=to_object_id(admin_id, "admin id"),
            createdAt=now,
            updatedAt=now,
        )
        document = project.model_dump(exclude={"id"})
        result = await self.projects.insert_one(document)
        document["_id"] = result.inserted_id
        logger.info(
            "Project created",
            event_type="project_created",
            project_id=str(result.inserted_id),
            admin_id=admin_id,
        )
        return serialize_document(document)

    async def update_project(self, project_id: str, request: ProjectUpdateRequest) -> dict:
        """
        Apply a partial update.

        Raises:
            ValidationError: If maxAnnotators would drop below the number of
                already approved annotators.
        """
        project_oid = to_object_id(project_id, "project id")
        changes = request.model_dump(mode="json", exclude_unset=True)
        for field in ("deadline", "applicationDeadline"):
            if field in changes:
                changes[field] = getattr(request, field)
        changes["updatedAt"] = datetime.utcnow()

        query = {"_id": project_oid}
        if changes.get("maxAnnotators") is not None:
            query["approvedAnnotatorCount"] = {"$lte": changes["maxAnnotators"]}

        updated = await self.projects.find_one_and_update(
            query, {"$set": changes}, return_document=ReturnDocument.AFTER
        )
        if updated is None:
            project = await self._get_project(project_id)
            raise ValidationError(
                "maxAnnotators cannot be lower than the number of approved annotators",
                data={"approvedAnnotatorCount": project.get("approvedAnnotatorCount", 0)},
            )
        return serialize_document(self._public_view(updated))

    async def get_project(self, project_id: str) -> dict:
        project = await self._get_project(project_id)
        stats = {s.value: 0 for s in ApplicationStatus}
        pipeline = [
            {"$match": {"projectId": project["_id"]}},
            {"$group": {"_id": "$status", "count": {"$sum": 1}}},
        ]
        async for row in self.applications.aggregate(pipeline):
            stats[row["_id"]] = row["count"]

        data = serialize_document(self._public_view(project))
        data["applicationStats"] = {**stats, "total": sum(stats.values())}
        data["availableSlots"] = available_slots(project)
        return data

    async def list_projects(self, filters: ProjectFilters, page: int = 1, limit: int = 20) -> dict:
        query = {}
        if filters.status:
            query["status"] = filters.status.value
        if filters.category:
            query["projectCategory"] = filters.category.value
        if filters.search:
            query["projectName"] = {"$regex": re.escape(filters.search), "$options": "i"}

        cursor = self.projects.find(query).sort("createdAt", -1).skip((page - 1) * limit).limit(limit)
        projects = await cursor.to_list(length=limit)
        total = await self.projects.count_documents(query)
        return {
            "projects": [serialize_document(self._public_view(p)) for p in projects],
            "pagination": pagination_info(page, limit, total),
        }

    async def list_available_projects(self, worker_id: str, page: int = 1, limit: int = 20) -> dict:
        """
        Active public projects for an approved worker, with their own
        application status and whether they can still apply.
        """
        worker_oid = to_object_id(worker_id, "user id")
        worker = await self.users.find_one({"_id": worker_oid}, {"annotatorStatus": 1})
        if not is_approved_worker(worker):
            raise AuthenticationError("Only approved annotators can view available projects")

        now = datetime.utcnow()
        query = {
            "status": ProjectStatus.ACTIVE.value,
            "isPublic": True,
            "$or": [{"applicationDeadline": None}, {"applicationDeadline": {"$gt": now}}],
        }
        cursor = self.projects.find(query).sort("createdAt", -1).skip((page - 1) * limit).limit(limit)
        projects = await cursor.to_list(length=limit)
        total = await self.projects.count_documents(query)

        own = await self.applications.find(
            {"applicantId": worker_oid, "projectId": {"$in": [p["_id"] for p in projects]}},
            {"projectId": 1, "status": 1},
        ).to_list(length=None)
        own_status = {a["projectId"]: a["status"] for a in own}

        items = []
        for project in projects:
            slots = available_slots(project)
            status = own_status.get(project["_id"])
            item = serialize_document(self._public_view(project))
            item.update(
                {
                    "availableSlots": slots,
                    "hasApplied": status is not None,
                    "applicationStatus": status,
                    "canApply": status is None and (slots is None or slots > 0),
                }
            )
            items.append(item)

        return {"projects": items, "pagination": pagination_info(page, limit, total)}

    async def attach_assessment(self, project_id: str, admin_id: str, request: AttachAssessmentRequest) -> dict:
        project = await self._get_project(project_id)
        assessment = ProjectAssessment(
            assessmentId=request.assessmentId,
            isRequired=request.isRequired,
            assessmentInstructions=request.assessmentInstructions,
            attachedBy=to_object_id(admin_id, "admin id"),
        ).model_dump()
        updated = await self.projects.find_one_and_update(
            {"_id": project["_id"]},
            {"$set": {"assessment": assessment, "updatedAt": datetime.utcnow()}},
            return_document=ReturnDocument.AFTER,
        )
        logger.info(
            "Assessment attached",
            event_type="assessment_attached",
            project_id=project_id,
            assessment_id=request.assessmentId,
            required=request.isRequired,
        )
        return serialize_document(self._public_view(updated))

    async def remove_assessment(self, project_id: str) -> dict:
        project = await self._get_project(project_id)
        updated = await self.projects.find_one_and_update(
            {"_id": project["_id"]},
            {"$set": {"assessment": None, "updatedAt": datetime.utcnow()}},
            return_document=ReturnDocument.AFTER,
        )
        return serialize_document(self._public_view(updated))

    async def export_approved_annotators_csv(self, project_id: str) -> tuple[str, str]:
        """
        CSV of a project's approved annotators.

        Returns:
            ``(filename, csv_content)``
        """
        project = await self._get_project(project_id)
        applications = await self.applications.find(
            {"projectId": project["_id"], "status": ApplicationStatus.APPROVED.value}
        ).sort("reviewedAt", -1).to_list(length=None)
        if not applications:
            raise NotFoundError("No approved annotators found for this project")

        users = await load_users(self.users, [a["applicantId"] for a in applications])
        output = io.StringIO()
        writer = csv.writer(output, quoting=csv.QUOTE_ALL, lineterminator="\n")
        writer.writerow(["Full Name", "Country", "Email"])
        for application in applications:
            user = users.get(application["applicantId"], {})
            writer.writerow(
                [
                    user.get("fullName") or "N/A",
                    (user.get("personal_info") or {}).get("country") or "N/A",
                    user.get("email") or "N/A",
                ]
            )

        slug = re.sub(r"\s+", "_", re.sub(r"[^a-zA-Z0-9\s]", "", project["projectName"])).lower()
        filename = f"{slug}_approved_annotators_{datetime.utcnow().date().isoformat()}.csv"
        return filename, output.getvalue()

    @staticmethod
    def _public_view(project: dict) -> dict:
        """Strip the deletion OTP record before a project leaves the service."""
        view = dict(project)
        otp = view.pop("deletionOTP", None)
        if otp:
            view["deletionPending"] = {
                "expiresAt": otp.get("expiresAt"),
                "requestedBy": otp.get("requestedBy"),
            }
        return view

    # =========================================================================
    # Deletion
    # =========================================================================

    async def _snapshot_applications(self, project_oid) -> list[dict]:
        applications = await self.applications.find(
            {"projectId": project_oid}, {"status": 1, "applicantId": 1, "appliedAt": 1}
        ).to_list(length=None)
        users = await load_users(self.users, [a["applicantId"] for a in applications])
        snapshot = []
        for application in applications:
            user = users.get(application["applicantId"], {})
            snapshot.append(
                {
                    "applicationId": str(application["_id"]),
                    "applicantName": user.get("fullName", "Unknown"),
                    "applicantEmail": user.get("email", "Unknown"),
                    "status": application["status"],
                    "appliedAt": serialize_document(application.get("appliedAt")),
                }
            )
        return snapshot

    @staticmethod
    def _manifest(project: dict, snapshot: list[dict], admin_email: str | None,
                  mode: str, confirmation_message: str | None = None) -> dict:
        counts = {"pending": 0, "approved": 0, "other": 0}
        for item in snapshot:
            key = item["status"] if item["status"] in counts else "other"
            counts[key] += 1
        return {
            "deletedProject": {
                "id": str(project["_id"]),
                "name": project.get("projectName"),
                "category": project.get("projectCategory"),
            },
            "deletedApplications": {
                "total": len(snapshot),
                "active": counts["pending"] + counts["approved"],
                **counts,
                "applications": snapshot,
            },
            "deletedBy": admin_email,
            "deletedAt": datetime.utcnow().isoformat(),
            "mode": mode,
            "confirmationMessage": confirmation_message,
        }

    async def _cascade_delete(self, project: dict) -> int:
        await self.projects.delete_one({"_id": project["_id"]})
        result = await self.applications.delete_many({"projectId": project["_id"]})
        return result.deleted_count

    async def delete_project(self, project_id: str, admin_id: str, admin_email: str | None = None) -> dict:
        """
        Delete a project that has no live applications.

        Raises:
            DeletionRequiresOTPError: If pending or approved applications exist;
                the payload tells the client to use the OTP flow.
        """
        project = await self._get_project(project_id)
        active = await self._count_live_applications(project["_id"])
        if active > 0:
            raise DeletionRequiresOTPError(str(project["_id"]), project.get("projectName", ""), active)

        snapshot = await self._snapshot_applications(project["_id"])
        manifest = self._manifest(project, snapshot, admin_email, mode="direct")
        await self.deletions.insert_one(
            {"projectId": project["_id"], "manifest": manifest, "deletedBy": admin_id,
             "deletedAt": datetime.utcnow(), "otpHash": None}
        )
        deleted = await self._cascade_delete(project)

        record_project_deletion("direct")
        audit_logger.log_project_deleted(admin_id, str(project["_id"]), deleted)
        return manifest

    async def request_deletion_otp(
        self,
        project_id: str,
        admin_id: str,
        admin_email: str | None = None,
        admin_name: str | None = None,
        reason: str | None = None,
    ) -> dict:
        """
        Phase one of a force delete: mail a fresh code to the Projects Officer.

        A new request replaces any earlier code. If the email cannot be
        delivered the code is discarded, since nobody could present it.
        """
        project = await self._get_project(project_id)
        active = await self._count_live_applications(project["_id"])
        total = await self.applications.count_documents({"projectId": project["_id"]})

        otp = generate_otp()
        now = datetime.utcnow()
        expires_at = now + timedelta(minutes=settings.deletion_otp_ttl_minutes)
        code_hash = hash_otp(otp)
        await self.projects.update_one(
            {"_id": project["_id"]},
            {
                "$set": {
                    "deletionOTP": DeletionOTP(
                        codeHash=code_hash,
                        expiresAt=expires_at,
                        requestedBy=to_object_id(admin_id, "admin id"),
                        requestedAt=now,
                        reason=reason,
                    ).model_dump(exclude_none=True)
                }
            },
        )

        officer = settings.projects_officer_email
        outbox = [
            Notification.build(
                NotificationKind.DELETION_OTP,
                officer,
                email_templates.deletion_otp(
                    project["projectName"],
                    admin_name or admin_email or admin_id,
                    admin_email or "unknown",
                    otp,
                    active,
                    reason,
                    settings.deletion_otp_ttl_minutes,
                ),
                to_name="Projects Officer",
                ref=str(project["_id"]),
            )
        ]
        report = await self.dispatcher.dispatch(outbox)
        if not report.all_sent:
            await self.projects.update_one(
                {"_id": project["_id"], "deletionOTP.codeHash": code_hash},
                {"$unset": {"deletionOTP": ""}},
            )
            raise NotificationDeliveryError(
                "Failed to send deletion OTP to Projects Officer",
                errors=[f.error for f in report.failures],
            )

        audit_logger.log_deletion_otp_requested(admin_id, str(project["_id"]), reason)
        return {
            "projectName": project["projectName"],
            "projectId": str(project["_id"]),
            "activeApplications": active,
            "totalApplications": total,
            "otpSentTo": officer,
            "expiresAt": expires_at.isoformat(),
            "requestedBy": admin_email,
            "otpExpiryMinutes": settings.deletion_otp_ttl_minutes,
        }

    @staticmethod
    def _otp_error(admin_id: str, project_id: str, reason: str, message: str,
                   data: dict | None = None) -> DeletionOTPError:
        record_otp_failure(reason)
        audit_logger.log_deletion_otp_rejected(admin_id, project_id, reason)
        return DeletionOTPError(message, data=data)

    async def verify_otp_and_delete(
        self,
        project_id: str,
        admin_id: str,
        otp: str,
        admin_email: str | None = None,
        confirmation_message: str | None = None,
    ) -> TransitionResult:
        """
        Phase two of a force delete: check the code, claim it, cascade.

        Raises:
            ValidationError: If no code is given.
            DeletionOTPError: Missing, expired, wrong, locked or reused code.
            ProjectNotFoundError: If the project does not exist.
        """
        if not otp:
            raise ValidationError("OTP code is required")
        otp = str(otp).strip()
        project_oid = to_object_id(project_id, "project id")

        project = await self.projects.find_one({"_id": project_oid})
        if project is None:
            # A replayed code for a project it already deleted
            previous = await self.deletions.find_one({"projectId": project_oid, "otpHash": hash_otp(otp)})
            if previous is not None:
                raise self._otp_error(admin_id, project_id, "reused", OTP_USED)
            raise ProjectNotFoundError()

        record = project.get("deletionOTP") or {}
        code_hash = record.get("codeHash")
        if not code_hash:
            raise self._otp_error(admin_id, project_id, "missing", OTP_NOT_FOUND)

        if record.get("verified"):
            raise self._otp_error(admin_id, project_id, "reused", OTP_USED)

        now = datetime.utcnow()
        if record.get("expiresAt") is None or record["expiresAt"] <= now:
            await self.projects.update_one(
                {"_id": project_oid, "deletionOTP.codeHash": code_hash},
                {"$unset": {"deletionOTP": ""}},
            )
            raise self._otp_error(admin_id, project_id, "expired", OTP_EXPIRED)

        if not otp_matches(otp, code_hash):
            counted = await self.projects.find_one_and_update(
                {"_id": project_oid, "deletionOTP.codeHash": code_hash},
                {"$inc": {"deletionOTP.failedAttempts": 1}},
                return_document=ReturnDocument.AFTER,
            )
            attempts = ((counted or {}).get("deletionOTP") or {}).get("failedAttempts", 0)
            if counted is None or attempts >= settings.deletion_otp_max_attempts:
                await self.projects.update_one(
                    {"_id": project_oid, "deletionOTP.codeHash": code_hash},
                    {"$unset": {"deletionOTP": ""}},
                )
                raise self._otp_error(admin_id, project_id, "locked", OTP_LOCKED)
            raise self._otp_error(
                admin_id,
                project_id,
                "invalid",
                OTP_INVALID,
                data={"attemptsRemaining": settings.deletion_otp_max_attempts - attempts},
            )

        claimed = await self.projects.find_one_and_update(
            {
                "_id": project_oid,
                "deletionOTP.codeHash": code_hash,
                "deletionOTP.verified": False,
                "deletionOTP.expiresAt": {"$gt": now},
            },
            {
                "$set": {
                    "deletionOTP.verified": True,
                    "deletionOTP.verifiedAt": now,
                    "deletionOTP.verifiedBy": to_object_id(admin_id, "admin id"),
                }
            },
            return_document=ReturnDocument.AFTER,
        )
        if claimed is None:
            raise self._otp_error(admin_id, project_id, "reused", OTP_USED)

        snapshot = await self._snapshot_applications(project_oid)
        manifest = self._manifest(
            project,
            snapshot,
            admin_email,
            mode="otp",
            confirmation_message=confirmation_message or "Project deleted with all applications",
        )
        manifest["otpVerified"] = True
        await self.deletions.insert_one(
            {"projectId": project_oid, "manifest": manifest, "deletedBy": admin_id,
             "deletedAt": now, "otpHash": code_hash}
        )
        await self._cascade_delete(project)

        record_project_deletion("otp")
        audit_logger.log_force_delete(
            admin_id,
            str(project_oid),
            {"applications": manifest["deletedApplications"]["total"],
             "active": manifest["deletedApplications"]["active"]},
        )

        outbox = [
            Notification.build(
                NotificationKind.PROJECT_DELETED,
                settings.projects_officer_email,
                email_templates.project_deleted(project.get("projectName", ""), admin_email or admin_id, manifest),
                to_name="Projects Officer",
                ref=str(project_oid),
            )
        ]
        report = await self.dispatcher.dispatch(outbox)
        manifest["confirmationSent"] = report.all_sent
        return TransitionResult(data=manifest, notifications=report)

    async def purge_expired_otps(self) -> int:
        """Clear deletion OTP records whose code has expired."""
        result = await self.projects.update_many(
            {"deletionOTP.expiresAt": {"$lte": datetime.utcnow()}},
            {"$unset": {"deletionOTP": ""}},
        )
        if result.modified_count:
            logger.info(
                "Purged expired deletion OTPs",
                event_type="deletion_otp_purged",
                count=result.modified_count,
            )
        return result.modified_count


project_service = ProjectService()
