"""
Project application lifecycle.

Every transition is a conditional update that only matches the status it
expects, so two concurrent reviewers cannot both win. Approval reserves a
capacity slot on the project with a guarded ``$inc`` before flipping the
application and gives the slot back if the flip loses.
"""
from datetime import datetime

from pymongo import ReturnDocument
from pymongo.errors import DuplicateKeyError

from annotation_hub.core.audit import audit_logger
from annotation_hub.core.exceptions import (
    ApplicationNotFoundError,
    AuthenticationError,
    CapacityReachedError,
    InvalidTransitionError,
    ProjectNotFoundError,
    ValidationError,
)
from annotation_hub.core.metrics import record_application_transition, record_capacity_rejection
from annotation_hub.core.mongo import (
    applications_collection,
    dt_users_collection,
    projects_collection,
    to_object_id,
)
from annotation_hub.log.logging import logger
from annotation_hub.models.application import (
    TERMINAL_STATUSES,
    Application,
    ApplicationStatus,
    AssessmentResult,
    RejectionReason,
    ensure_transition,
    normalize_rejection_reason,
    normalize_removal_reason,
)
from annotation_hub.models.common import serialize_document
from annotation_hub.models.project import ProjectStatus, requires_assessment
from annotation_hub.models.worker import full_name_of, is_approved_worker, resume_url_of
from annotation_hub.schemas.application import ApplicationCreateRequest, ApplicationFilters
from annotation_hub.schemas.common import pagination_info
from annotation_hub.services import email_templates
from annotation_hub.services.common import TransitionResult, load_users
from annotation_hub.services.notification_service import (
    Notification,
    NotificationDispatcher,
    NotificationKind,
    notification_dispatcher,
)


class ApplicationService:
    """
    Service for moving applications through their lifecycle.
    """

    def __init__(
        self,
        applications=applications_collection,
        projects=projects_collection,
        users=dt_users_collection,
        dispatcher: NotificationDispatcher = notification_dispatcher,
    ):
        self.applications = applications
        self.projects = projects
        self.users = users
        self.dispatcher = dispatcher

    # =========================================================================
    # Lookups
    # =========================================================================

    async def _get_application(self, application_id) -> dict:
        application = await self.applications.find_one({"_id": to_object_id(application_id, "application id")})
        if application is None:
            raise ApplicationNotFoundError()
        return application

    async def _get_project(self, project_id) -> dict:
        project = await self.projects.find_one({"_id": to_object_id(project_id, "project id")})
        if project is None:
            raise ProjectNotFoundError()
        return project

    async def _compare_and_set(self, application: dict, expected: str, changes: dict) -> dict | None:
        """Apply ``changes`` only if the application still has ``expected`` status."""
        return await self.applications.find_one_and_update(
            {"_id": application["_id"], "status": expected},
            {"$set": changes},
            return_document=ReturnDocument.AFTER,
        )

    async def _raise_lost_race(self, application_id, target: ApplicationStatus) -> None:
        current = await self.applications.find_one({"_id": application_id}, {"status": 1})
        if current is None:
            raise ApplicationNotFoundError()
        ensure_transition(current["status"], target)
        # The status still allows the move; another writer got there first.
        raise ValidationError("Application was modified concurrently, please retry")

    # =========================================================================
    # Worker actions
    # =========================================================================

    async def apply(self, worker_id: str, project_id: str, request: ApplicationCreateRequest) -> TransitionResult:
        """
        Create a pending application for an approved worker.

        The resume URL is copied from the worker profile. Projects with a
        required assessment start the application in ``assessment_required``.

        Raises:
            AuthenticationError: If the worker is unknown or not approved.
            ValidationError: No resume, inactive project, or duplicate application.
            ProjectNotFoundError: If the project does not exist.
        """
        worker_oid = to_object_id(worker_id, "user id")
        worker = await self.users.find_one({"_id": worker_oid})
        if not is_approved_worker(worker):
            raise AuthenticationError("Only approved annotators can apply to projects")

        resume_url = resume_url_of(worker)
        if resume_url is None:
            raise ValidationError(
                "Please upload your resume in your profile section before applying to projects",
                data={"requiresResumeUpload": True},
            )

        project = await self._get_project(project_id)
        if project.get("status") != ProjectStatus.ACTIVE.value:
            raise ValidationError("Project is not currently accepting applications")
        deadline = project.get("applicationDeadline")
        if deadline and deadline < datetime.utcnow():
            raise ValidationError("Application deadline has passed")

        existing = await self.applications.find_one(
            {"projectId": project["_id"], "applicantId": worker_oid}, {"status": 1}
        )
        if existing is not None:
            raise ValidationError(
                "You have already applied to this project",
                data={"applicationStatus": existing["status"]},
            )

        gated = requires_assessment(project)
        now = datetime.utcnow()
        document = Application(
            projectId=project["_id"],
            applicantId=worker_oid,
            status=ApplicationStatus.ASSESSMENT_REQUIRED if gated else ApplicationStatus.PENDING,
            appliedAt=now,
            coverLetter=request.coverLetter,
            resumeUrl=resume_url,
            proposedRate=request.proposedRate,
            availability=request.availability,
            estimatedCompletionTime=request.estimatedCompletionTime,
            assessmentResult=AssessmentResult.PENDING if gated else AssessmentResult.NOT_REQUIRED,
            createdAt=now,
            updatedAt=now,
        ).model_dump(exclude={"id"})

        try:
            result = await self.applications.insert_one(document)
        except DuplicateKeyError:
            raise ValidationError("You have already applied to this project")
        document["_id"] = result.inserted_id

        await self.projects.update_one({"_id": project["_id"]}, {"$inc": {"totalApplicationCount": 1}})
        record_application_transition(document["status"])

        logger.info(
            "Application submitted",
            event_type="application_submitted",
            application_id=str(result.inserted_id),
            project_id=str(project["_id"]),
            applicant_id=worker_id,
            status=document["status"],
        )

        outbox = []
        creator = await self.users.find_one({"_id": project.get("createdBy")}, {"fullName": 1, "email": 1})
        if creator and creator.get("email"):
            outbox.append(
                Notification.build(
                    NotificationKind.APPLICATION_SUBMITTED,
                    creator["email"],
                    email_templates.application_submitted(
                        full_name_of(creator), full_name_of(worker), project["projectName"], request.coverLetter
                    ),
                    to_name=creator.get("fullName"),
                    ref=str(result.inserted_id),
                )
            )

        report = await self.dispatcher.dispatch(outbox)
        data = serialize_document(document)
        if gated:
            data["assessment"] = serialize_document(project.get("assessment"))
        return TransitionResult(data=data, notifications=report)

    async def withdraw(self, application_id: str, worker_id: str) -> TransitionResult:
        application = await self._get_application(application_id)
        if str(application["applicantId"]) != str(worker_id):
            # Workers never learn about other workers' applications
            raise ApplicationNotFoundError()

        ensure_transition(application["status"], ApplicationStatus.WITHDRAWN)
        updated = await self._compare_and_set(
            application,
            application["status"],
            {"status": ApplicationStatus.WITHDRAWN.value, "updatedAt": datetime.utcnow()},
        )
        if updated is None:
            await self._raise_lost_race(application["_id"], ApplicationStatus.WITHDRAWN)

        record_application_transition(ApplicationStatus.WITHDRAWN.value)
        logger.info(
            "Application withdrawn",
            event_type="application_withdrawn",
            application_id=str(application["_id"]),
            applicant_id=worker_id,
        )
        return TransitionResult(data=serialize_document(updated))

    async def complete_assessment(
        self,
        worker_id: str,
        project_id: str,
        submission_id: str,
        passed: bool,
        recorded_by: str | None = None,
    ) -> TransitionResult:
        """
        Record the scored outcome of a worker's gating assessment.

        Called by an admin or the assessment grader, never by the worker
        being assessed. Passing moves the application to ``pending`` and
        notifies the project owner; failing rejects it with
        ``not_suitable_skills``.
        """
        worker_oid = to_object_id(worker_id, "user id")
        project = await self._get_project(project_id)
        application = await self.applications.find_one(
            {
                "projectId": project["_id"],
                "applicantId": worker_oid,
                "status": ApplicationStatus.ASSESSMENT_REQUIRED.value,
            }
        )
        if application is None:
            raise ApplicationNotFoundError("No application awaiting assessment for this project")

        now = datetime.utcnow()
        changes = {
            "assessmentCompletedAt": now,
            "assessmentSubmissionId": submission_id,
            "updatedAt": now,
        }
        if passed:
            target = ApplicationStatus.PENDING
            changes.update({"status": target.value, "assessmentResult": AssessmentResult.PASSED.value})
        else:
            target = ApplicationStatus.REJECTED
            changes.update(
                {
                    "status": target.value,
                    "assessmentResult": AssessmentResult.FAILED.value,
                    "rejectionReason": RejectionReason.NOT_SUITABLE_SKILLS.value,
                    "reviewedAt": now,
                }
            )

        updated = await self._compare_and_set(application, ApplicationStatus.ASSESSMENT_REQUIRED.value, changes)
        if updated is None:
            await self._raise_lost_race(application["_id"], target)
        record_application_transition(target.value)

        users = await load_users(self.users, [worker_oid, project.get("createdBy")])
        worker = users.get(worker_oid, {})
        outbox = []
        if passed:
            creator = users.get(project.get("createdBy"))
            if creator and creator.get("email"):
                outbox.append(
                    Notification.build(
                        NotificationKind.ASSESSMENT_PASSED,
                        creator["email"],
                        email_templates.assessment_passed(
                            full_name_of(creator), full_name_of(worker), project["projectName"]
                        ),
                        ref=str(application["_id"]),
                    )
                )
        elif worker.get("email"):
            outbox.append(
                Notification.build(
                    NotificationKind.APPLICATION_REJECTED,
                    worker["email"],
                    email_templates.application_rejected(
                        full_name_of(worker), project["projectName"],
                        RejectionReason.NOT_SUITABLE_SKILLS.value, "",
                    ),
                    ref=str(application["_id"]),
                )
            )

        logger.info(
            "Assessment completed",
            event_type="assessment_completed",
            application_id=str(application["_id"]),
            passed=passed,
            recorded_by=recorded_by,
        )
        report = await self.dispatcher.dispatch(outbox)
        return TransitionResult(data=serialize_document(updated), notifications=report)

    # =========================================================================
    # Admin review
    # =========================================================================

    async def approve(self, application_id: str, reviewer_id: str, review_notes: str = "") -> TransitionResult:
        """
        Approve a pending application.

        Raises:
            ApplicationNotFoundError: If the application does not exist.
            InvalidTransitionError: If the application is not pending.
            CapacityReachedError: If the project has no free annotator slot.
        """
        application = await self._get_application(application_id)
        ensure_transition(application["status"], ApplicationStatus.APPROVED)

        project = await self.projects.find_one({"_id": application["projectId"]})
        if project is None:
            raise ProjectNotFoundError()

        # Reserve a slot: only matches while the counter is below the cap.
        reserved = await self.projects.find_one_and_update(
            {
                "_id": project["_id"],
                "$or": [
                    {"maxAnnotators": None},
                    {"$expr": {"$lt": ["$approvedAnnotatorCount", "$maxAnnotators"]}},
                ],
            },
            {"$inc": {"approvedAnnotatorCount": 1}},
            return_document=ReturnDocument.AFTER,
        )
        if reserved is None:
            record_capacity_rejection()
            logger.warning(
                "Approval refused, project at capacity",
                event_type="capacity_reached",
                project_id=str(project["_id"]),
                max_annotators=project.get("maxAnnotators"),
            )
            raise CapacityReachedError(project.get("maxAnnotators"))

        now = datetime.utcnow()
        updated = await self._compare_and_set(
            application,
            ApplicationStatus.PENDING.value,
            {
                "status": ApplicationStatus.APPROVED.value,
                "reviewedAt": now,
                "reviewedBy": to_object_id(reviewer_id, "reviewer id"),
                "reviewNotes": review_notes,
                "workStartedAt": now,
                "updatedAt": now,
            },
        )
        if updated is None:
            await self.projects.update_one(
                {"_id": project["_id"], "approvedAnnotatorCount": {"$gt": 0}},
                {"$inc": {"approvedAnnotatorCount": -1}},
            )
            await self._raise_lost_race(application["_id"], ApplicationStatus.APPROVED)

        record_application_transition(ApplicationStatus.APPROVED.value)
        audit_logger.log_application_status_changed(
            reviewer_id, str(application["_id"]), application["status"], ApplicationStatus.APPROVED.value
        )

        outbox = []
        worker = await self.users.find_one({"_id": application["applicantId"]}, {"fullName": 1, "email": 1})
        if worker and worker.get("email"):
            outbox.append(
                Notification.build(
                    NotificationKind.APPLICATION_APPROVED,
                    worker["email"],
                    email_templates.application_approved(
                        full_name_of(worker), project["projectName"], review_notes,
                        project.get("projectGuidelineLink"),
                    ),
                    to_name=worker.get("fullName"),
                    ref=str(application["_id"]),
                )
            )
        report = await self.dispatcher.dispatch(outbox)

        data = serialize_document(updated)
        data["project"] = {
            "id": str(project["_id"]),
            "name": project["projectName"],
            "approvedAnnotatorCount": reserved.get("approvedAnnotatorCount"),
            "maxAnnotators": reserved.get("maxAnnotators"),
        }
        return TransitionResult(data=data, notifications=report)

    async def reject(
        self,
        application_id: str,
        reviewer_id: str,
        rejection_reason: str | None = None,
        review_notes: str = "",
    ) -> TransitionResult:
        application = await self._get_application(application_id)
        ensure_transition(application["status"], ApplicationStatus.REJECTED)
        if application["status"] != ApplicationStatus.PENDING.value:
            # assessment_required records are only rejected by a failed assessment
            raise InvalidTransitionError("Application is still awaiting its assessment")
        reason = normalize_rejection_reason(rejection_reason)

        now = datetime.utcnow()
        updated = await self._compare_and_set(
            application,
            ApplicationStatus.PENDING.value,
            {
                "status": ApplicationStatus.REJECTED.value,
                "reviewedAt": now,
                "reviewedBy": to_object_id(reviewer_id, "reviewer id"),
                "rejectionReason": reason.value,
                "reviewNotes": review_notes,
                "updatedAt": now,
            },
        )
        if updated is None:
            await self._raise_lost_race(application["_id"], ApplicationStatus.REJECTED)

        record_application_transition(ApplicationStatus.REJECTED.value)
        audit_logger.log_application_status_changed(
            reviewer_id, str(application["_id"]), application["status"], ApplicationStatus.REJECTED.value
        )

        project = await self.projects.find_one({"_id": application["projectId"]}, {"projectName": 1})
        worker = await self.users.find_one({"_id": application["applicantId"]}, {"fullName": 1, "email": 1})
        outbox = []
        if worker and worker.get("email") and project:
            outbox.append(
                Notification.build(
                    NotificationKind.APPLICATION_REJECTED,
                    worker["email"],
                    email_templates.application_rejected(
                        full_name_of(worker), project["projectName"], reason.value, review_notes
                    ),
                    to_name=worker.get("fullName"),
                    ref=str(application["_id"]),
                )
            )
        report = await self.dispatcher.dispatch(outbox)
        return TransitionResult(data=serialize_document(updated), notifications=report)

    async def reject_bulk(
        self,
        application_ids: list[str],
        reviewer_id: str,
        rejection_reason: str | None = None,
        review_notes: str = "",
    ) -> dict:
        """
        Reject every pending application among ``application_ids``.

        Ids that are unknown or not pending are skipped. The status change is
        one update; each rejection email is sent independently and failures
        are only counted.

        Raises:
            ValidationError: If no ids are given.
            ApplicationNotFoundError: If none of the ids is a pending application.
        """
        if not application_ids:
            raise ValidationError("No application IDs provided")
        oids = [to_object_id(a, "application id") for a in application_ids]
        reason = normalize_rejection_reason(rejection_reason)

        candidates = await self.applications.find(
            {"_id": {"$in": oids}, "status": ApplicationStatus.PENDING.value}
        ).to_list(length=None)
        if not candidates:
            raise ApplicationNotFoundError("No pending applications found with the provided IDs")

        now = datetime.utcnow()
        candidate_ids = [a["_id"] for a in candidates]
        await self.applications.update_many(
            {"_id": {"$in": candidate_ids}, "status": ApplicationStatus.PENDING.value},
            {
                "$set": {
                    "status": ApplicationStatus.REJECTED.value,
                    "reviewedAt": now,
                    "reviewedBy": to_object_id(reviewer_id, "reviewer id"),
                    "rejectionReason": reason.value,
                    "reviewNotes": review_notes,
                    "updatedAt": now,
                }
            },
        )

        # Only the records this call flipped carry its review timestamp.
        rejected = await self.applications.find(
            {"_id": {"$in": candidate_ids}, "status": ApplicationStatus.REJECTED.value, "reviewedAt": now}
        ).to_list(length=None)
        record_application_transition(ApplicationStatus.REJECTED.value)

        users = await load_users(self.users, [a["applicantId"] for a in rejected])
        project_ids = list({a["projectId"] for a in rejected})
        projects = {
            p["_id"]: p
            for p in await self.projects.find({"_id": {"$in": project_ids}}, {"projectName": 1}).to_list(length=None)
        }

        outbox = []
        missing_recipient = 0
        for application in rejected:
            worker = users.get(application["applicantId"])
            project = projects.get(application["projectId"])
            if not worker or not worker.get("email") or not project:
                missing_recipient += 1
                continue
            outbox.append(
                Notification.build(
                    NotificationKind.APPLICATION_REJECTED,
                    worker["email"],
                    email_templates.application_rejected(
                        full_name_of(worker), project["projectName"], reason.value, review_notes
                    ),
                    to_name=worker.get("fullName"),
                    ref=str(application["_id"]),
                )
            )
        report = await self.dispatcher.dispatch(outbox)

        logger.info(
            "Bulk rejection completed",
            event_type="applications_bulk_rejected",
            requested=len(application_ids),
            rejected=len(rejected),
            notification_failed=report.failed + missing_recipient,
        )
        return {
            "total": len(application_ids),
            "processed": len(candidates),
            "rejected": len(rejected),
            "skipped": len(application_ids) - len(rejected),
            "notificationSuccess": report.sent,
            "notificationFailed": report.failed + missing_recipient,
        }

    async def remove_approved(
        self,
        application_id: str,
        admin_id: str,
        admin_email: str | None = None,
        removal_reason: str | None = None,
        removal_notes: str = "",
    ) -> TransitionResult:
        """
        Remove an approved annotator from a project and free their slot.

        Both the worker and the acting admin are emailed.
        """
        application = await self._get_application(application_id)
        ensure_transition(application["status"], ApplicationStatus.REMOVED)
        reason = normalize_removal_reason(removal_reason)

        now = datetime.utcnow()
        updated = await self._compare_and_set(
            application,
            ApplicationStatus.APPROVED.value,
            {
                "status": ApplicationStatus.REMOVED.value,
                "removedAt": now,
                "removedBy": to_object_id(admin_id, "admin id"),
                "removalReason": reason.value,
                "removalNotes": removal_notes,
                "workEndedAt": now,
                "updatedAt": now,
            },
        )
        if updated is None:
            await self._raise_lost_race(application["_id"], ApplicationStatus.REMOVED)

        project = await self.projects.find_one_and_update(
            {"_id": application["projectId"], "approvedAnnotatorCount": {"$gt": 0}},
            {"$inc": {"approvedAnnotatorCount": -1}},
            return_document=ReturnDocument.AFTER,
        )
        if project is None:
            project = await self.projects.find_one({"_id": application["projectId"]}) or {}
            logger.warning(
                "Approved counter already at zero while removing applicant",
                event_type="counter_underflow_prevented",
                project_id=str(application["projectId"]),
            )

        record_application_transition(ApplicationStatus.REMOVED.value)
        audit_logger.log_application_status_changed(
            admin_id, str(application["_id"]), ApplicationStatus.APPROVED.value, ApplicationStatus.REMOVED.value
        )

        users = await load_users(self.users, [application["applicantId"], to_object_id(admin_id, "admin id")])
        worker = users.get(application["applicantId"], {})
        admin = users.get(to_object_id(admin_id, "admin id"), {})
        project_name = project.get("projectName", "")
        outbox = []
        if worker.get("email"):
            outbox.append(
                Notification.build(
                    NotificationKind.APPLICANT_REMOVED,
                    worker["email"],
                    email_templates.applicant_removed(full_name_of(worker), project_name, reason.value, removal_notes),
                    to_name=worker.get("fullName"),
                    ref=str(application["_id"]),
                )
            )
        admin_address = admin_email or admin.get("email")
        if admin_address:
            outbox.append(
                Notification.build(
                    NotificationKind.REMOVAL_CONFIRMATION,
                    admin_address,
                    email_templates.removal_confirmation(
                        full_name_of(admin) if admin else admin_address,
                        full_name_of(worker) if worker else "Annotator",
                        project_name,
                        reason.value,
                    ),
                    ref=str(application["_id"]),
                )
            )
        report = await self.dispatcher.dispatch(outbox)

        data = serialize_document(updated)
        data["project"] = {
            "id": str(application["projectId"]),
            "approvedAnnotatorCount": project.get("approvedAnnotatorCount"),
        }
        return TransitionResult(data=data, notifications=report)

    async def delete_application(self, application_id: str, admin_id: str) -> dict:
        """
        Delete a terminal application record so the worker may apply again.

        Raises:
            ValidationError: If the application is still pending or approved.
        """
        application = await self._get_application(application_id)
        if application["status"] not in [s.value for s in TERMINAL_STATUSES]:
            raise ValidationError(
                "Only rejected, withdrawn or removed applications can be deleted",
                data={"status": application["status"]},
            )

        result = await self.applications.delete_one(
            {"_id": application["_id"], "status": application["status"]}
        )
        if result.deleted_count == 0:
            raise ValidationError("Application was modified concurrently, please retry")

        await self.projects.update_one(
            {"_id": application["projectId"], "totalApplicationCount": {"$gt": 0}},
            {"$inc": {"totalApplicationCount": -1}},
        )
        audit_logger.log_application_deleted(admin_id, str(application["_id"]), application["status"])
        return {"id": str(application["_id"]), "status": application["status"]}

    # =========================================================================
    # Queries
    # =========================================================================

    async def list_applications(self, filters: ApplicationFilters, page: int = 1, limit: int = 20) -> dict:
        query = {}
        if filters.status:
            query["status"] = filters.status.value
        if filters.projectId:
            query["projectId"] = to_object_id(filters.projectId, "project id")
        if filters.applicantId:
            query["applicantId"] = to_object_id(filters.applicantId, "user id")

        cursor = self.applications.find(query).sort("appliedAt", -1).skip((page - 1) * limit).limit(limit)
        applications = await cursor.to_list(length=limit)
        total = await self.applications.count_documents(query)

        summary_query = {k: v for k, v in query.items() if k != "status"}
        pipeline = [{"$match": summary_query}, {"$group": {"_id": "$status", "count": {"$sum": 1}}}]
        summary = {s.value: 0 for s in ApplicationStatus}
        async for row in self.applications.aggregate(pipeline):
            summary[row["_id"]] = row["count"]

        users = await load_users(self.users, [a["applicantId"] for a in applications])
        items = []
        for application in applications:
            item = serialize_document(application)
            applicant = users.get(application["applicantId"])
            if applicant:
                item["applicant"] = {"fullName": applicant.get("fullName"), "email": applicant.get("email")}
            items.append(item)

        return {
            "applications": items,
            "pagination": pagination_info(page, limit, total),
            "summary": summary,
        }

    async def list_approved_applicants(self, project_id: str) -> list[dict]:
        project = await self._get_project(project_id)
        applications = await self.applications.find(
            {"projectId": project["_id"], "status": ApplicationStatus.APPROVED.value}
        ).sort("reviewedAt", -1).to_list(length=None)
        users = await load_users(self.users, [a["applicantId"] for a in applications])

        result = []
        for application in applications:
            applicant = users.get(application["applicantId"], {})
            result.append(
                {
                    "applicationId": str(application["_id"]),
                    "applicant": {
                        "id": str(application["applicantId"]),
                        "fullName": applicant.get("fullName"),
                        "email": applicant.get("email"),
                        "country": (applicant.get("personal_info") or {}).get("country"),
                    },
                    "reviewedAt": serialize_document(application.get("reviewedAt")),
                    "workStartedAt": serialize_document(application.get("workStartedAt")),
                }
            )
        return result


application_service = ApplicationService()
