"""Tests for ProjectService: capacity updates and OTP-gated deletion."""

from datetime import datetime, timedelta
from unittest.mock import MagicMock

import pytest
from bson import ObjectId

from annotation_hub.core.config import settings
from annotation_hub.core.exceptions import (
    AuthenticationError,
    DeletionOTPError,
    DeletionRequiresOTPError,
    NotificationDeliveryError,
    ProjectNotFoundError,
    ValidationError,
)
from annotation_hub.core.security import hash_otp
from annotation_hub.schemas.project import AttachAssessmentRequest, ProjectCreateRequest, ProjectUpdateRequest
from annotation_hub.services import project_service as project_service_module
from annotation_hub.services.project_service import (
    OTP_EXPIRED,
    OTP_INVALID,
    OTP_LOCKED,
    OTP_NOT_FOUND,
    OTP_USED,
    ProjectService,
    generate_otp,
)
from tests.factories import FakeCursor, active_project, application, approved_worker

ADMIN_ID = str(ObjectId())


@pytest.fixture
def service(collections, dispatcher):
    return ProjectService(
        projects=collections["projects"],
        applications=collections["applications"],
        users=collections["users"],
        deletions=collections["deletions"],
        dispatcher=dispatcher,
    )


def otp_record(code="123456", **overrides):
    record = {
        "codeHash": hash_otp(code),
        "expiresAt": datetime.utcnow() + timedelta(minutes=10),
        "verified": False,
        "requestedBy": ObjectId(ADMIN_ID),
        "requestedAt": datetime.utcnow(),
        "failedAttempts": 0,
    }
    record.update(overrides)
    return record


def test_generate_otp_is_six_digits():
    for _ in range(50):
        code = generate_otp()
        assert len(code) == 6
        assert code.isdigit()
        assert code[0] != "0"


# =============================================================================
# Updates and discovery
# =============================================================================


@pytest.mark.asyncio
async def test_create_project_stores_validated_document(service, collections):
    collections["projects"].insert_one.return_value = MagicMock(inserted_id=ObjectId())
    deadline = datetime.utcnow() + timedelta(days=30)
    request = ProjectCreateRequest(
        projectName="Street Signs",
        projectDescription="Draw boxes around street signs",
        projectCategory="Image Annotation",
        payRate=0.05,
        maxAnnotators=4,
        deadline=deadline,
    )

    result = await service.create_project(request, ADMIN_ID)

    stored = collections["projects"].insert_one.await_args.args[0]
    assert stored["createdBy"] == ObjectId(ADMIN_ID)
    assert stored["projectCategory"] == "Image Annotation"
    assert stored["status"] == "active"
    assert stored["deadline"] == deadline
    assert stored["approvedAnnotatorCount"] == 0
    assert stored["assessment"] is None
    assert "id" not in stored
    assert result["createdBy"] == ADMIN_ID


@pytest.mark.asyncio
async def test_attach_assessment_records_admin(service, collections):
    project = active_project()
    collections["projects"].find_one.return_value = project
    collections["projects"].find_one_and_update.side_effect = lambda q, u, **kw: {**project, **u["$set"]}

    result = await service.attach_assessment(
        str(project["_id"]), ADMIN_ID, AttachAssessmentRequest(assessmentId="quiz-1")
    )

    stored = collections["projects"].find_one_and_update.await_args.args[1]["$set"]["assessment"]
    assert stored["attachedBy"] == ObjectId(ADMIN_ID)
    assert stored["isRequired"] is True
    assert result["assessment"]["assessmentId"] == "quiz-1"


@pytest.mark.asyncio
async def test_update_cannot_lower_capacity_below_approved(service, collections):
    project = active_project(approvedAnnotatorCount=4, maxAnnotators=5)
    collections["projects"].find_one_and_update.return_value = None
    collections["projects"].find_one.return_value = project

    with pytest.raises(ValidationError) as exc_info:
        await service.update_project(str(project["_id"]), ProjectUpdateRequest(maxAnnotators=3))

    assert exc_info.value.data == {"approvedAnnotatorCount": 4}
    query = collections["projects"].find_one_and_update.await_args.args[0]
    assert query["approvedAnnotatorCount"] == {"$lte": 3}


@pytest.mark.asyncio
async def test_update_only_sets_sent_fields(service, collections):
    project = active_project()
    collections["projects"].find_one_and_update.return_value = {**project, "projectName": "Renamed"}

    result = await service.update_project(str(project["_id"]), ProjectUpdateRequest(projectName="Renamed"))

    changes = collections["projects"].find_one_and_update.await_args.args[1]["$set"]
    assert set(changes) == {"projectName", "updatedAt"}
    assert result["projectName"] == "Renamed"


@pytest.mark.asyncio
async def test_project_view_never_exposes_otp_hash(service, collections):
    project = active_project(deletionOTP=otp_record())
    collections["projects"].find_one.return_value = project
    collections["applications"].aggregate.return_value = FakeCursor([{"_id": "pending", "count": 2}])

    result = await service.get_project(str(project["_id"]))

    assert "deletionOTP" not in result
    assert "deletionPending" in result
    assert result["applicationStats"]["pending"] == 2
    assert result["applicationStats"]["total"] == 2
    assert result["availableSlots"] == 3


@pytest.mark.asyncio
async def test_available_projects_marks_applied_and_full(service, collections):
    worker = approved_worker()
    open_project = active_project()
    full_project = active_project(maxAnnotators=1, approvedAnnotatorCount=1)
    applied_project = active_project()
    collections["users"].find_one.return_value = worker
    collections["projects"].find.return_value = FakeCursor([open_project, full_project, applied_project])
    collections["projects"].count_documents.return_value = 3
    collections["applications"].find.return_value = FakeCursor(
        [{"projectId": applied_project["_id"], "status": "pending"}]
    )

    result = await service.list_available_projects(str(worker["_id"]))

    by_id = {p["id"]: p for p in result["projects"]}
    assert by_id[str(open_project["_id"])]["canApply"] is True
    assert by_id[str(full_project["_id"])]["canApply"] is False
    assert by_id[str(full_project["_id"])]["availableSlots"] == 0
    assert by_id[str(applied_project["_id"])]["hasApplied"] is True
    assert by_id[str(applied_project["_id"])]["applicationStatus"] == "pending"


@pytest.mark.asyncio
async def test_available_projects_only_for_approved_workers(service, collections):
    collections["users"].find_one.return_value = approved_worker(annotatorStatus="submitted")

    with pytest.raises(AuthenticationError):
        await service.list_available_projects(str(ObjectId()))


@pytest.mark.asyncio
async def test_export_approved_annotators_csv(service, collections):
    project = active_project(projectName="Voice & Audio 2024")
    worker = approved_worker(fullName='Ada "The" Worker', personal_info={"country": "Nigeria"})
    collections["projects"].find_one.return_value = project
    collections["applications"].find.return_value = FakeCursor(
        [application("approved", projectId=project["_id"], applicantId=worker["_id"])]
    )
    collections["users"].find.return_value = FakeCursor([worker])

    filename, content = await service.export_approved_annotators_csv(str(project["_id"]))

    assert filename.startswith("voice_audio_2024_approved_annotators_")
    lines = content.splitlines()
    assert lines[0] == '"Full Name","Country","Email"'
    assert lines[1] == '"Ada ""The"" Worker","Nigeria","ada@example.com"'


# =============================================================================
# Direct deletion
# =============================================================================


@pytest.mark.asyncio
async def test_direct_delete_refused_with_live_applications(service, collections):
    project = active_project()
    collections["projects"].find_one.return_value = project
    collections["applications"].count_documents.return_value = 3

    with pytest.raises(DeletionRequiresOTPError) as exc_info:
        await service.delete_project(str(project["_id"]), ADMIN_ID)

    assert exc_info.value.data["requiresOTP"] is True
    assert exc_info.value.data["activeApplications"] == 3
    collections["projects"].delete_one.assert_not_awaited()


@pytest.mark.asyncio
async def test_direct_delete_without_live_applications(service, collections):
    project = active_project()
    collections["projects"].find_one.return_value = project
    collections["applications"].count_documents.return_value = 0
    collections["applications"].find.return_value = FakeCursor([application("rejected", projectId=project["_id"])])
    collections["applications"].delete_many.return_value = MagicMock(deleted_count=1)

    manifest = await service.delete_project(str(project["_id"]), ADMIN_ID, "admin@example.com")

    assert manifest["mode"] == "direct"
    assert manifest["deletedApplications"]["total"] == 1
    assert manifest["deletedApplications"]["other"] == 1
    record = collections["deletions"].insert_one.await_args.args[0]
    assert record["otpHash"] is None
    collections["projects"].delete_one.assert_awaited_once_with({"_id": project["_id"]})


# =============================================================================
# OTP request
# =============================================================================


@pytest.mark.asyncio
async def test_request_otp_stores_hash_and_mails_officer(service, collections, sender, monkeypatch):
    monkeypatch.setattr(project_service_module, "generate_otp", lambda: "654321")
    project = active_project()
    collections["projects"].find_one.return_value = project
    collections["applications"].count_documents.side_effect = [2, 5]

    result = await service.request_deletion_otp(str(project["_id"]), ADMIN_ID, "admin@example.com", reason="Cancelled")

    stored = collections["projects"].update_one.await_args.args[1]["$set"]["deletionOTP"]
    assert stored["codeHash"] == hash_otp("654321")
    assert "654321" not in str(stored)
    assert stored["failedAttempts"] == 0
    assert result["otpSentTo"] == settings.projects_officer_email
    assert result["activeApplications"] == 2
    assert result["totalApplications"] == 5
    assert sender.send.await_args.kwargs["to_email"] == settings.projects_officer_email
    assert "654321" in sender.send.await_args.kwargs["html"]


@pytest.mark.asyncio
async def test_request_otp_discards_code_when_email_fails(service, collections, sender):
    project = active_project()
    collections["projects"].find_one.return_value = project
    collections["applications"].count_documents.return_value = 1
    sender.send.side_effect = RuntimeError("email API down")

    with pytest.raises(NotificationDeliveryError, match="Failed to send deletion OTP"):
        await service.request_deletion_otp(str(project["_id"]), ADMIN_ID)

    unset_call = collections["projects"].update_one.await_args_list[-1]
    assert unset_call.args[1] == {"$unset": {"deletionOTP": ""}}


# =============================================================================
# OTP verification
# =============================================================================


@pytest.mark.asyncio
async def test_verify_without_request(service, collections):
    collections["projects"].find_one.return_value = active_project()

    with pytest.raises(DeletionOTPError, match=OTP_NOT_FOUND):
        await service.verify_otp_and_delete(str(ObjectId()), ADMIN_ID, "123456")


@pytest.mark.asyncio
async def test_expired_otp_is_rejected_and_cleared(service, collections):
    project = active_project(deletionOTP=otp_record(expiresAt=datetime.utcnow() - timedelta(seconds=1)))
    collections["projects"].find_one.return_value = project

    with pytest.raises(DeletionOTPError, match=OTP_EXPIRED):
        await service.verify_otp_and_delete(str(project["_id"]), ADMIN_ID, "123456")

    collections["projects"].update_one.assert_awaited_once()
    assert collections["projects"].update_one.await_args.args[1] == {"$unset": {"deletionOTP": ""}}
    collections["applications"].delete_many.assert_not_awaited()


@pytest.mark.asyncio
async def test_wrong_otp_counts_attempt(service, collections):
    project = active_project(deletionOTP=otp_record())
    collections["projects"].find_one.return_value = project
    collections["projects"].find_one_and_update.return_value = {
        **project,
        "deletionOTP": {**project["deletionOTP"], "failedAttempts": 1},
    }

    with pytest.raises(DeletionOTPError, match=OTP_INVALID) as exc_info:
        await service.verify_otp_and_delete(str(project["_id"]), ADMIN_ID, "000000")

    assert exc_info.value.data == {"attemptsRemaining": settings.deletion_otp_max_attempts - 1}
    update = collections["projects"].find_one_and_update.await_args.args[1]
    assert update == {"$inc": {"deletionOTP.failedAttempts": 1}}


@pytest.mark.asyncio
async def test_too_many_wrong_otps_clear_the_code(service, collections):
    project = active_project(deletionOTP=otp_record(failedAttempts=settings.deletion_otp_max_attempts - 1))
    collections["projects"].find_one.return_value = project
    collections["projects"].find_one_and_update.return_value = {
        **project,
        "deletionOTP": {**project["deletionOTP"], "failedAttempts": settings.deletion_otp_max_attempts},
    }

    with pytest.raises(DeletionOTPError, match=OTP_LOCKED):
        await service.verify_otp_and_delete(str(project["_id"]), ADMIN_ID, "000000")

    assert collections["projects"].update_one.await_args.args[1] == {"$unset": {"deletionOTP": ""}}


def _force_delete_fixture(collections):
    """Project with 2 pending and 1 approved application and a live OTP for 123456."""
    project = active_project(deletionOTP=otp_record("123456"))
    workers = [approved_worker(email=f"w{i}@example.com") for i in range(3)]
    apps = [
        application("pending", projectId=project["_id"], applicantId=workers[0]["_id"]),
        application("pending", projectId=project["_id"], applicantId=workers[1]["_id"]),
        application("approved", projectId=project["_id"], applicantId=workers[2]["_id"]),
    ]
    collections["applications"].find.return_value = FakeCursor(apps)
    collections["users"].find.return_value = FakeCursor(workers)
    collections["applications"].delete_many.return_value = MagicMock(deleted_count=3)
    collections["projects"].find_one_and_update.return_value = {
        **project,
        "deletionOTP": {**project["deletionOTP"], "verified": True},
    }
    return project


@pytest.mark.asyncio
async def test_force_delete_manifest(service, collections, sender):
    project = _force_delete_fixture(collections)
    collections["projects"].find_one.return_value = project
    collections["applications"].count_documents.return_value = 3

    with pytest.raises(DeletionRequiresOTPError) as exc_info:
        await service.delete_project(str(project["_id"]), ADMIN_ID)
    assert exc_info.value.data["activeApplications"] == 3

    result = await service.verify_otp_and_delete(
        str(project["_id"]), ADMIN_ID, "123456", admin_email="admin@example.com"
    )

    manifest = result.data
    assert manifest["deletedApplications"]["total"] == 3
    assert manifest["deletedApplications"]["pending"] == 2
    assert manifest["deletedApplications"]["approved"] == 1
    assert manifest["deletedApplications"]["active"] == 3
    assert manifest["otpVerified"] is True
    assert manifest["confirmationSent"] is True
    claim_filter = collections["projects"].find_one_and_update.await_args.args[0]
    assert claim_filter["deletionOTP.verified"] is False
    record = collections["deletions"].insert_one.await_args.args[0]
    assert record["otpHash"] == hash_otp("123456")
    collections["applications"].delete_many.assert_awaited_once_with({"projectId": project["_id"]})


@pytest.mark.asyncio
async def test_otp_is_single_use(service, collections):
    project = _force_delete_fixture(collections)
    # Second lookup: the project is gone, the deletion record remains
    collections["projects"].find_one.side_effect = [project, None]
    collections["deletions"].find_one.return_value = {"projectId": project["_id"], "otpHash": hash_otp("123456")}

    await service.verify_otp_and_delete(str(project["_id"]), ADMIN_ID, "123456")

    with pytest.raises(DeletionOTPError, match=OTP_USED):
        await service.verify_otp_and_delete(str(project["_id"]), ADMIN_ID, "123456")

    assert collections["projects"].delete_one.await_count == 1


@pytest.mark.asyncio
async def test_concurrent_claim_loser_reports_used(service, collections):
    project = active_project(deletionOTP=otp_record("123456"))
    collections["projects"].find_one.return_value = project
    collections["projects"].find_one_and_update.return_value = None

    with pytest.raises(DeletionOTPError, match=OTP_USED):
        await service.verify_otp_and_delete(str(project["_id"]), ADMIN_ID, "123456")

    collections["projects"].delete_one.assert_not_awaited()


@pytest.mark.asyncio
async def test_verify_unknown_project(service, collections):
    collections["projects"].find_one.return_value = None
    collections["deletions"].find_one.return_value = None

    with pytest.raises(ProjectNotFoundError):
        await service.verify_otp_and_delete(str(ObjectId()), ADMIN_ID, "123456")


@pytest.mark.asyncio
async def test_purge_expired_otps(service, collections):
    collections["projects"].update_many.return_value = MagicMock(modified_count=2)

    assert await service.purge_expired_otps() == 2
    query = collections["projects"].update_many.await_args.args[0]
    assert "$lte" in query["deletionOTP.expiresAt"]
