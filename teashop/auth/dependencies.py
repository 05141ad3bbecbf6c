"""FastAPI dependencies resolving the session user from the Authorization header."""
from dataclasses import dataclass

from fastapi import Depends, Header

from teashop.auth.session import verify_session_token
from teashop.errors import Forbidden, Unauthorized


@dataclass(frozen=True)
class SessionUser:
    user_id: str
    is_admin: bool = False


async def verify_session(authorization: str = Header(None, alias="Authorization")) -> SessionUser:
    """
    Resolve ``Authorization: Bearer <session_token>``.

    Raises:
        Unauthorized: Header missing, not a bearer token, or token unknown/expired
    """
    if not authorization:
        raise Unauthorized("No authorization header")

    parts = authorization.split(" ")
    if len(parts) != 2 or parts[0].lower() != "bearer":
        raise Unauthorized("Invalid authorization header")

    session = verify_session_token(parts[1])
    if not session:
        raise Unauthorized("Invalid session token")

    return SessionUser(user_id=session.user_id, is_admin=session.is_admin)


async def verify_admin(user: SessionUser = Depends(verify_session)) -> SessionUser:
    """Verify that the session user is an admin."""
    if not user.is_admin:
        raise Forbidden("Admin access required")
    return user
