"""Bearer JWT authentication for the HTTP routes."""

from fastapi import Request
from jose import JWTError, jwt
from pydantic import BaseModel

from tutor_sync.core.config import get_settings
from tutor_sync.core.errors import AuthError


class CurrentUser(BaseModel):
    """User information extracted from the JWT."""

    id: str
    name: str | None = None
    email: str | None = None


def create_access_token(user_id: str, **claims: str) -> str:
    """Issue a token for ``user_id``. Used by tests and local tooling."""
    settings = get_settings()
    payload = {"sub": user_id, **claims}
    return jwt.encode(payload, settings.auth_secret, algorithm=settings.auth_algorithm)


async def get_current_user(request: Request) -> CurrentUser:
    """Validate the Authorization header and return the caller.

    Raises:
        AuthError: If the header is missing, or the token is invalid,
            expired or has no subject.
    """
    auth_header = request.headers.get("authorization")
    if not auth_header or not auth_header.startswith("Bearer "):
        raise AuthError("User not authenticated", "Missing or invalid Authorization header")

    token = auth_header[7:]
    settings = get_settings()

    try:
        payload = jwt.decode(
            token, settings.auth_secret, algorithms=[settings.auth_algorithm]
        )
    except jwt.ExpiredSignatureError as e:
        raise AuthError("User not authenticated", "Token has expired") from e
    except JWTError as e:
        raise AuthError("User not authenticated", f"Invalid token: {e}") from e

    user_id = payload.get("sub")
    if not user_id:
        raise AuthError("User not authenticated", "Invalid token: missing user ID")

    return CurrentUser(
        id=str(user_id),
        name=payload.get("name"),
        email=payload.get("email"),
    )
