# Overview: Service-layer operations for authentication; password hashing and login.

"""
Authentication.

Passwords are hashed with bcrypt (cost factor 12). Login accepts either the
username or the email address and returns an opaque session token issued by
session_service.
"""

import bcrypt
from sqlalchemy import or_

from ..context import RequestContext
from ..errors import AuthenticationError, FieldValidationError
from ..extensions import db
from ..models import User
from ..time_utils import utcnow
from . import session_service

MIN_PASSWORD_LENGTH = 6


def validate_password_strength(password) -> None:
    if not isinstance(password, str) or len(password) < MIN_PASSWORD_LENGTH:
        raise FieldValidationError([{
            "field": "password",
            "message": f"Password must be at least {MIN_PASSWORD_LENGTH} characters long",
        }])


def hash_password(password: str) -> str:
    """Hash password using bcrypt with cost factor 12."""
    validate_password_strength(password)
    salt = bcrypt.gensalt(rounds=12)
    hashed = bcrypt.hashpw(password.encode('utf-8'), salt)
    return hashed.decode('utf-8')


def verify_password(password: str, password_hash: str) -> bool:
    """Timing-safe bcrypt comparison; malformed hashes never verify."""
    try:
        return bcrypt.checkpw(password.encode('utf-8'), password_hash.encode('utf-8'))
    except ValueError:
        return False


def find_user_by_login(username_or_email: str) -> User | None:
    ident = username_or_email.strip()
    return (
        db.session.query(User)
        .filter(or_(User.username == ident, User.email == ident.lower(), User.email == ident))
        .first()
    )


def login(
    ctx: RequestContext,
    *,
    username_or_email: str | None,
    password: str | None,
    user_agent: str | None = None,
    ip_address: str | None = None,
) -> dict:
    """Returns {"token", "user"}; raises AuthenticationError on bad credentials."""
    if not username_or_email or not password:
        raise FieldValidationError([
            {"field": "usernameOrEmail", "message": "Username/email and password are required"},
        ])

    user = find_user_by_login(username_or_email)
    if user is None or not verify_password(password, user.password_hash):
        ctx.logger.warning("Failed login for %s", username_or_email)
        raise AuthenticationError("Invalid credentials")

    user.last_login_at = utcnow()
    session, token = session_service.create_session(
        user.id, user_agent=user_agent, ip_address=ip_address
    )
    ctx.logger.info("User %s logged in (session %s)", user.id, session.id)
    return {"token": token, "expires_at": session.to_dict()["expires_at"], "user": user.to_dict()}


def logout(ctx: RequestContext, token: str) -> None:
    session_service.revoke_session(token)
    ctx.logger.info("User %s logged out", ctx.user_id)
