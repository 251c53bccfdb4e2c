# annotation_hub/core/mongo.py
"""
Collection references used by the services.

Services take these as constructor defaults so tests can hand in mocks.
"""
from bson import ObjectId
from bson.errors import InvalidId

from annotation_hub.core.database import (
    APPLICATIONS,
    DT_USERS,
    INVOICES,
    PROJECT_DELETIONS,
    PROJECTS,
    db_manager,
)
from annotation_hub.core.exceptions import ValidationError

database = db_manager.database

projects_collection = database[PROJECTS]
applications_collection = database[APPLICATIONS]
dt_users_collection = database[DT_USERS]
invoices_collection = database[INVOICES]
project_deletions_collection = database[PROJECT_DELETIONS]


def to_object_id(value, field: str = "id") -> ObjectId:
    """
    Convert a client-supplied identifier into an ObjectId.

    Raises:
        ValidationError: If the value is not a valid ObjectId.
    """
    if isinstance(value, ObjectId):
        return value
    try:
        return ObjectId(str(value))
    except (InvalidId, TypeError):
        raise ValidationError(f"Invalid {field}: {value}")
