"""
Authentication and authorization dependencies.

Workers and admins both present a bearer JWT. The token payload carries:
- id: User ID
- email: User email (optional)
- is_admin: Boolean indicating admin status
"""

from fastapi import Depends
from fastapi.security import OAuth2PasswordBearer
from jose import JWTError

from annotation_hub.core.exceptions import AuthenticationError, AuthorizationError
from annotation_hub.core.security import verify_jwt_token
from annotation_hub.log.logging import logger

oauth2_scheme = OAuth2PasswordBearer(tokenUrl="auth/login")


class AuthUser:
    """Represents an authenticated caller."""

    def __init__(self, user_id: str, email: str | None = None, is_admin: bool = False):
        self.user_id = user_id
        self.email = email
        self.is_admin = is_admin

    def __repr__(self) -> str:
        return f"AuthUser(user_id={self.user_id!r}, is_admin={self.is_admin})"


async def get_current_user(token: str = Depends(oauth2_scheme)) -> AuthUser:
    """Extract and validate the caller from the JWT token."""
    try:
        payload = verify_jwt_token(token)
    except JWTError as e:
        logger.warning("Token rejected", event_type="auth_token_invalid", error=str(e))
        raise AuthenticationError("Could not validate credentials")

    user_id = payload.get("id")
    if user_id is None:
        raise AuthenticationError("Could not validate credentials")

    return AuthUser(
        user_id=str(user_id),
        email=payload.get("email"),
        is_admin=bool(payload.get("is_admin", False)),
    )


async def require_admin(user: AuthUser = Depends(get_current_user)) -> AuthUser:
    """Dependency that requires admin access."""
    if not user.is_admin:
        logger.warning(
            "Non-admin user attempted admin access",
            event_type="admin_access_denied",
            user_id=user.user_id,
        )
        raise AuthorizationError("Admin access required")
    return user
