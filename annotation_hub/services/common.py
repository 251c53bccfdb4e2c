"""Pieces shared by the lifecycle services."""
from dataclasses import dataclass, field
from typing import Any

from annotation_hub.services.notification_service import DispatchReport


@dataclass
class TransitionResult:
    """The persisted outcome of a transition plus what happened to its emails."""
    data: Any
    notifications: DispatchReport = field(default_factory=DispatchReport)


async def load_users(users_collection, user_ids) -> dict:
    """Fetch users by ObjectId and index them by id."""
    ids = list({uid for uid in user_ids if uid is not None})
    if not ids:
        return {}
    cursor = users_collection.find(
        {"_id": {"$in": ids}},
        {"fullName": 1, "email": 1, "annotatorStatus": 1, "payment_info": 1, "personal_info": 1},
    )
    users = await cursor.to_list(length=None)
    return {user["_id"]: user for user in users}
