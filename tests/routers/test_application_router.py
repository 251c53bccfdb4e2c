"""Tests for the application review router and the service-level endpoints."""

from unittest.mock import AsyncMock, patch

from bson import ObjectId
from fastapi.testclient import TestClient

from annotation_hub.core.exceptions import CapacityReachedError, InvalidTransitionError
from annotation_hub.main import app
from annotation_hub.services.common import TransitionResult
from annotation_hub.services.notification_service import DispatchFailure, DispatchReport

APPLICATION_ID = str(ObjectId())


def test_approve_reports_email_outcome(admin_client):
    report = DispatchReport(
        sent=0, failed=1, failures=[DispatchFailure(kind="application_approved", to_email="a@x.com", error="500")]
    )
    with patch("annotation_hub.routers.application_router.application_service") as service:
        service.approve = AsyncMock(return_value=TransitionResult(data={"status": "approved"}, notifications=report))
        response = admin_client.patch(f"/applications/{APPLICATION_ID}/approve")

    assert response.status_code == 200
    body = response.json()
    assert body["data"]["application"]["status"] == "approved"
    assert body["data"]["notifications"]["failed"] == 1


def test_approve_at_capacity(admin_client):
    with patch("annotation_hub.routers.application_router.application_service") as service:
        service.approve = AsyncMock(side_effect=CapacityReachedError(3))
        response = admin_client.patch(f"/applications/{APPLICATION_ID}/approve", json={"reviewNotes": "ok"})

    assert response.status_code == 400
    body = response.json()
    assert body["data"] == {"maxAnnotators": 3}
    assert body["error"] == "CapacityReachedError"


def test_reject_twice(admin_client):
    with patch("annotation_hub.routers.application_router.application_service") as service:
        service.reject = AsyncMock(side_effect=InvalidTransitionError("Application is already rejected"))
        response = admin_client.patch(f"/applications/{APPLICATION_ID}/reject")

    assert response.status_code == 400
    assert response.json()["message"] == "Application is already rejected"


def test_bulk_reject_requires_ids(admin_client):
    response = admin_client.post("/applications/bulk-reject", json={"applicationIds": []})

    assert response.status_code == 400
    assert response.json()["success"] is False


def test_worker_withdraws(worker_client, worker_user):
    with patch("annotation_hub.routers.application_router.application_service") as service:
        service.withdraw = AsyncMock(return_value=TransitionResult(data={"status": "withdrawn"}))
        response = worker_client.patch(f"/applications/{APPLICATION_ID}/withdraw")

    assert response.status_code == 200
    service.withdraw.assert_awaited_once_with(APPLICATION_ID, worker_user.user_id)


def test_unhandled_error_envelope(admin_client):
    # admin_client installs the auth overrides; this client keeps server errors as responses
    client = TestClient(app, raise_server_exceptions=False)
    with patch("annotation_hub.routers.application_router.application_service") as service:
        service.delete_application = AsyncMock(side_effect=RuntimeError("connection reset"))
        response = client.delete(f"/applications/{APPLICATION_ID}")

    assert response.status_code == 500
    body = response.json()
    assert body["message"] == "Internal server error"
    assert "connection reset" not in str(body)


def test_root_and_health_live(admin_client):
    assert admin_client.get("/").json()["message"] == "Annotation Hub is running!"
    assert admin_client.get("/health/live").json()["status"] == "alive"


def test_readiness_reports_mongodb_outage(admin_client):
    with patch("annotation_hub.routers.healthcheck_router.check_mongodb_health", AsyncMock(return_value=False)):
        response = admin_client.get("/health/ready")

    assert response.status_code == 503
    assert response.json()["checks"] == {"mongodb": "not_ready"}
