# Overview: Service-layer operations for roles (named authority levels).

from __future__ import annotations

from typing import Any

from sqlalchemy.exc import IntegrityError

from ..context import RequestContext
from ..errors import ConflictError, NotFoundError
from ..extensions import db
from ..models import Role
from ..permissions import SUPER_ADMIN_LEVEL
from ..validation import parse_uuid
from .listing import paginate


def get_role_or_404(role_id: Any) -> Role:
    role = db.session.get(Role, parse_uuid(role_id, field="role_id"))
    if role is None:
        raise NotFoundError(f"Role {role_id} not found")
    return role


def _ensure_name_free(name: str, *, exclude_id: Any = None) -> None:
    query = db.session.query(Role.id).filter(Role.name == name)
    if exclude_id is not None:
        query = query.filter(Role.id != exclude_id)
    if query.first() is not None:
        raise ConflictError(f"Role {name} already exists")


def list_roles(*, limit: int, offset: int, search: str | None = None) -> dict:
    query = db.session.query(Role)
    if search:
        query = query.filter(Role.name.ilike(f"%{search}%"))
    query = query.order_by(Role.level.desc(), Role.name.asc())
    return paginate(query, limit=limit, offset=offset)


def get_role(role_id: Any) -> dict:
    return get_role_or_404(role_id).to_dict()


def create_role(ctx: RequestContext, *, patch: dict) -> dict:
    _ensure_name_free(patch["name"])
    role = Role(**patch, created_by_id=ctx.user_id, updated_by_id=ctx.user_id)
    db.session.add(role)
    try:
        db.session.commit()
    except IntegrityError:
        db.session.rollback()
        raise ConflictError(f"Role {patch['name']} already exists")
    ctx.logger.info("Created role %s (level %s)", role.name, role.level)
    return role.to_dict()


def update_role(ctx: RequestContext, role_id: Any, *, patch: dict) -> dict:
    role = get_role_or_404(role_id)
    if "name" in patch:
        _ensure_name_free(patch["name"], exclude_id=role.id)
    for key, value in patch.items():
        setattr(role, key, value)
    role.updated_by_id = ctx.user_id
    try:
        db.session.commit()
    except IntegrityError:
        db.session.rollback()
        raise ConflictError("Role name already exists")
    return role.to_dict()


def delete_role(ctx: RequestContext, role_id: Any) -> None:
    """Users holding the role keep their account with no role (level 0)."""
    role = get_role_or_404(role_id)
    db.session.delete(role)
    db.session.commit()
    ctx.logger.info("Deleted role %s", role_id)


def ensure_super_admin_role() -> Role:
    """Find or create the level-99 role. Used by `flask system init`."""
    role = db.session.query(Role).filter(Role.level == SUPER_ADMIN_LEVEL).first()
    if role is None:
        role = Role(name="Super Admin", level=SUPER_ADMIN_LEVEL)
        db.session.add(role)
        db.session.flush()
    return role
