# Overview: Service-layer operations for session tokens.

"""
Bearer sessions.

A token is 64 hex characters handed to the client once; the table keeps its
SHA-256 digest. Sessions lapse after SESSION_TTL_HOURS, on logout, and when
the user's password changes.
"""

import hashlib
import secrets
from datetime import timedelta

from flask import current_app, has_app_context

from ..extensions import db
from ..models import SessionToken, User
from ..time_utils import utcnow

DEFAULT_SESSION_TTL_HOURS = 24


def _session_ttl() -> timedelta:
    hours = DEFAULT_SESSION_TTL_HOURS
    if has_app_context():
        hours = int(current_app.config.get("SESSION_TTL_HOURS", DEFAULT_SESSION_TTL_HOURS))
    return timedelta(hours=hours)


def generate_token() -> str:
    return secrets.token_hex(32)


def hash_token(token: str) -> str:
    return hashlib.sha256(token.encode("utf-8")).hexdigest()


def create_session(
    user_id,
    user_agent: str | None = None,
    ip_address: str | None = None,
) -> tuple[SessionToken, str]:
    """Open a session for user_id; returns the row and the token to give the client."""
    token = generate_token()
    now = utcnow()

    session = SessionToken(
        user_id=user_id,
        token_hash=hash_token(token),
        created_at=now,
        last_used_at=now,
        expires_at=now + _session_ttl(),
        user_agent=(user_agent or "")[:255] or None,
        ip_address=ip_address,
    )
    db.session.add(session)
    db.session.commit()

    return session, token


def validate_session(token: str) -> User | None:
    """
    Return the session's user, or None when the token is unknown, revoked
    or expired. Touches last_used_at on success.
    """
    now = utcnow()
    session = (
        db.session.query(SessionToken)
        .filter(SessionToken.token_hash == hash_token(token), SessionToken.revoked_at.is_(None))
        .first()
    )
    if session is None:
        return None
    if session.expires_at < now:
        return None

    session.last_used_at = now
    db.session.commit()
    return session.user


def revoke_session(token: str) -> bool:
    session = db.session.query(SessionToken).filter_by(token_hash=hash_token(token)).first()
    if session is None or session.is_revoked:
        return False
    session.revoked_at = utcnow()
    db.session.commit()
    return True


def revoke_all_user_sessions(user_id) -> int:
    """Revoke every live session of a user; the caller commits."""
    now = utcnow()
    count = (
        db.session.query(SessionToken)
        .filter(SessionToken.user_id == user_id, SessionToken.revoked_at.is_(None))
        .update({SessionToken.revoked_at: now}, synchronize_session=False)
    )
    return count
