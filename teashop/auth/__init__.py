"""Authentication: in-memory web sessions and FastAPI dependencies."""
from teashop.auth.dependencies import SessionUser, verify_admin, verify_session
from teashop.auth.session import create_session, revoke_session, verify_session_token

__all__ = [
    "SessionUser",
    "create_session",
    "revoke_session",
    "verify_admin",
    "verify_session",
    "verify_session_token",
]
