# annotation_hub/core/security.py
import hashlib
import hmac

from jose import jwt

from annotation_hub.core.config import settings


def verify_jwt_token(token: str) -> dict:
    """
    Verify JWT token.

    Args:
        token: Token to verify

    Returns:
        Decoded token data
    """
    return jwt.decode(token, settings.secret_key, algorithms=[settings.algorithm])


def create_jwt_token(claims: dict) -> str:
    return jwt.encode(claims, settings.secret_key, algorithm=settings.algorithm)


def hash_otp(code: str) -> str:
    """Hash a one-time code with the service secret so stored codes are not readable."""
    return hmac.new(settings.secret_key.encode(), code.encode(), hashlib.sha256).hexdigest()


def otp_matches(code: str, stored_hash: str | None) -> bool:
    if not stored_hash:
        return False
    return hmac.compare_digest(hash_otp(code), stored_hash)
