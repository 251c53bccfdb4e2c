import pytest
from bson import ObjectId
from unittest.mock import AsyncMock, MagicMock
from fastapi.testclient import TestClient

from annotation_hub.core.auth import AuthUser, get_current_user, require_admin
from annotation_hub.main import app
from annotation_hub.services.notification_service import NotificationDispatcher
from tests.factories import make_collection

ADMIN_ID = str(ObjectId())
WORKER_ID = str(ObjectId())


@pytest.fixture
def collections():
    return {
        "projects": make_collection(),
        "applications": make_collection(),
        "users": make_collection(),
        "invoices": make_collection(),
        "deletions": make_collection(),
    }


@pytest.fixture
def sender():
    """Email sender whose sends all succeed unless a test says otherwise."""
    mock = MagicMock()
    mock.send = AsyncMock(return_value="msg-1")
    return mock


@pytest.fixture
def dispatcher(sender):
    return NotificationDispatcher(sender=sender)


@pytest.fixture
def admin_user():
    return AuthUser(user_id=ADMIN_ID, email="admin@example.com", is_admin=True)


@pytest.fixture
def worker_user():
    return AuthUser(user_id=WORKER_ID, email="ada@example.com", is_admin=False)


@pytest.fixture
def admin_client(admin_user):
    """Create a test client authenticated as an admin."""
    app.dependency_overrides[get_current_user] = lambda: admin_user
    app.dependency_overrides[require_admin] = lambda: admin_user
    client = TestClient(app)

    yield client

    app.dependency_overrides.clear()


@pytest.fixture
def worker_client(worker_user):
    """Create a test client authenticated as a worker."""
    app.dependency_overrides[get_current_user] = lambda: worker_user
    client = TestClient(app)

    yield client

    app.dependency_overrides.clear()
