"""Bearer sessions for the cart and admin API (in-memory, per process)."""
import secrets
from dataclasses import dataclass
from datetime import datetime, timedelta, timezone
from typing import Dict, Optional

SESSION_LIFETIME = timedelta(days=7)


@dataclass(frozen=True)
class Session:
    user_id: str
    is_admin: bool
    expires_at: datetime

    def expired(self, now: Optional[datetime] = None) -> bool:
        return (now or datetime.now(timezone.utc)) > self.expires_at


_sessions: Dict[str, Session] = {}


def create_session(user_id: str, is_admin: bool = False) -> str:
    """Open a session for ``user_id`` and return its bearer token."""
    token = secrets.token_urlsafe(32)
    _sessions[token] = Session(
        user_id=str(user_id),
        is_admin=is_admin,
        expires_at=datetime.now(timezone.utc) + SESSION_LIFETIME,
    )
    return token


def verify_session_token(token: str) -> Optional[Session]:
    """Session for a token, or None when unknown or expired (expired ones are dropped)."""
    session = _sessions.get(token)
    if session is None:
        return None
    if session.expired():
        del _sessions[token]
        return None
    return session


def revoke_session(token: str) -> None:
    _sessions.pop(token, None)
