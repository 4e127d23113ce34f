# Overview: Service-layer operations for user accounts.

from __future__ import annotations

from typing import Any

from sqlalchemy import or_
from sqlalchemy.exc import IntegrityError
from sqlalchemy.orm import joinedload

from ..context import RequestContext
from ..errors import ConflictError, NotFoundError, ValidationError
from ..extensions import db
from ..models import Role, User
from ..validation import parse_uuid
from . import session_service
from .auth_service import hash_password
from .listing import paginate
from .store_service import get_store_or_404


def _user_query():
    return db.session.query(User).options(
        joinedload(User.role),
        joinedload(User.store),
        joinedload(User.created_by),
        joinedload(User.updated_by),
    )


def get_user_or_404(user_id: Any) -> User:
    user = _user_query().filter(User.id == parse_uuid(user_id, field="user_id")).first()
    if user is None:
        raise NotFoundError(f"User {user_id} not found")
    return user


def _ensure_unique(*, username: str | None, email: str | None, exclude_id: Any = None) -> None:
    if username:
        query = db.session.query(User.id).filter(User.username == username)
        if exclude_id is not None:
            query = query.filter(User.id != exclude_id)
        if query.first() is not None:
            raise ConflictError(f"Username {username} already exists")
    if email:
        query = db.session.query(User.id).filter(User.email == email)
        if exclude_id is not None:
            query = query.filter(User.id != exclude_id)
        if query.first() is not None:
            raise ConflictError(f"Email {email} already exists")


def _apply_references(patch: dict) -> None:
    if patch.get("role_id") is not None:
        if db.session.get(Role, patch["role_id"]) is None:
            raise NotFoundError(f"Role {patch['role_id']} not found")
    if patch.get("store_id") is not None:
        get_store_or_404(patch["store_id"])


def _commit() -> None:
    try:
        db.session.commit()
    except IntegrityError:
        db.session.rollback()
        raise ConflictError("Username or email already exists")


def list_users(*, limit: int, offset: int, search: str | None = None, store_id: Any = None) -> dict:
    query = _user_query()
    if search:
        like = f"%{search}%"
        query = query.filter(or_(User.username.ilike(like), User.email.ilike(like), User.name.ilike(like)))
    if store_id not in (None, ""):
        query = query.filter(User.store_id == parse_uuid(store_id, field="store_id"))
    query = query.order_by(User.created_at.desc(), User.id.desc())
    return paginate(query, limit=limit, offset=offset)


def get_user(user_id: Any) -> dict:
    return get_user_or_404(user_id).to_dict()


def create_user(ctx: RequestContext, *, patch: dict, password: str) -> dict:
    patch = dict(patch)
    if "email" in patch:
        patch["email"] = patch["email"].lower()
    _ensure_unique(username=patch.get("username"), email=patch.get("email"))
    _apply_references(patch)

    user = User(
        **patch,
        password_hash=hash_password(password),
        created_by_id=ctx.user_id,
        updated_by_id=ctx.user_id,
    )
    db.session.add(user)
    _commit()
    ctx.logger.info("Created user %s (%s)", user.id, user.username)
    return get_user_or_404(user.id).to_dict()


def update_user(ctx: RequestContext, user_id: Any, *, patch: dict, password: str | None = None) -> dict:
    user = get_user_or_404(user_id)
    patch = dict(patch)
    if "email" in patch and patch["email"]:
        patch["email"] = patch["email"].lower()
    _ensure_unique(username=patch.get("username"), email=patch.get("email"), exclude_id=user.id)
    _apply_references(patch)

    for key, value in patch.items():
        setattr(user, key, value)
    if password is not None:
        user.password_hash = hash_password(password)
        # Existing sessions die with the old password
        session_service.revoke_all_user_sessions(user.id)
    user.updated_by_id = ctx.user_id
    _commit()
    ctx.logger.info("Updated user %s", user.id)
    return get_user_or_404(user.id).to_dict()


def delete_user(ctx: RequestContext, user_id: Any) -> None:
    user = get_user_or_404(user_id)
    if ctx.user_id is not None and user.id == ctx.user_id:
        raise ValidationError("You cannot delete your own account")
    db.session.delete(user)
    db.session.commit()
    ctx.logger.info("Deleted user %s", user_id)
