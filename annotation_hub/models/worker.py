"""
Worker (DTUser) view used by the lifecycle services.

Worker profiles are owned by the account subsystem; this service only
reads the fields that gate applying and getting paid.
"""
from enum import Enum


class AnnotatorStatus(str, Enum):
    PENDING = "pending"
    SUBMITTED = "submitted"
    VERIFIED = "verified"
    APPROVED = "approved"
    REJECTED = "rejected"


def is_approved_worker(user: dict | None) -> bool:
    return bool(user) and user.get("annotatorStatus") == AnnotatorStatus.APPROVED.value


def resume_url_of(user: dict) -> str | None:
    url = (user.get("attachments") or {}).get("resume_url")
    return url.strip() if isinstance(url, str) and url.strip() else None


def full_name_of(user: dict) -> str:
    return user.get("fullName") or user.get("email") or "Annotator"
