"""Helpers shared by the document models."""
from datetime import datetime
from typing import Any

from bson import ObjectId


def serialize_document(value: Any) -> Any:
    """
    Convert a MongoDB document into JSON-friendly data.

    ObjectIds become strings and ``_id`` is exposed as ``id``; nested
    documents and lists are converted recursively.
    """
    if isinstance(value, ObjectId):
        return str(value)
    if isinstance(value, datetime):
        return value.isoformat()
    if isinstance(value, list):
        return [serialize_document(v) for v in value]
    if isinstance(value, dict):
        converted = {}
        for key, item in value.items():
            if key == "_id":
                converted["id"] = serialize_document(item)
            else:
                converted[key] = serialize_document(item)
        return converted
    return value
