# Overview: Service-layer operations for stores; CRUD plus acting-store resolution.

from __future__ import annotations

from typing import Any

from sqlalchemy import or_
from sqlalchemy.exc import IntegrityError

from ..context import Actor, RequestContext
from ..errors import (
    AuthorizationError,
    ConflictError,
    FieldValidationError,
    NotFoundError,
    UserHasNoStoreError,
    ValidationError,
)
from ..extensions import db
from ..models import Order, Product, Store
from ..permissions import is_super_admin
from ..validation import parse_uuid
from .listing import paginate


def normalize_store_code(code: str | None) -> str | None:
    if code is None:
        return None
    code = code.strip().upper()
    return code or None


def get_store_or_404(store_id: Any) -> Store:
    store = db.session.get(Store, parse_uuid(store_id, field="store_id"))
    if store is None:
        raise NotFoundError(f"Store {store_id} not found")
    return store


def require_store_code(store: Store) -> str:
    if not store.code:
        raise ValidationError(
            f"Store {store.name} has no code; set a store code before adding products or taking orders"
        )
    return store.code


def resolve_acting_store(actor: Actor, requested_store_id: Any = None) -> Store:
    """
    Resolve the store an operation acts on.

    - Super admin: must name the store explicitly.
    - Everyone else: pinned to their home store; naming another store is denied.
    """
    if is_super_admin(actor.level):
        if requested_store_id in (None, ""):
            raise FieldValidationError([{
                "field": "store_id",
                "message": "store_id is required when acting as super admin",
            }])
        return get_store_or_404(requested_store_id)

    if actor.store_id is None:
        raise UserHasNoStoreError()
    if requested_store_id not in (None, "") and str(requested_store_id) != str(actor.store_id):
        raise AuthorizationError("Access denied. You can only act on your own store")
    return get_store_or_404(actor.store_id)


def list_stores(*, limit: int, offset: int, search: str | None = None) -> dict:
    query = db.session.query(Store)
    if search:
        like = f"%{search}%"
        query = query.filter(or_(Store.name.ilike(like), Store.code == search.upper()))
    query = query.order_by(Store.name.asc(), Store.id.asc())
    return paginate(query, limit=limit, offset=offset)


def get_store(store_id: Any) -> dict:
    return get_store_or_404(store_id).to_dict()


def _ensure_code_free(code: str | None, *, exclude_id: Any = None) -> None:
    if not code:
        return
    query = db.session.query(Store.id).filter(Store.code == code)
    if exclude_id is not None:
        query = query.filter(Store.id != exclude_id)
    if query.first() is not None:
        raise ConflictError(f"Store code {code} already exists")


def _commit(message: str) -> None:
    try:
        db.session.commit()
    except IntegrityError:
        db.session.rollback()
        raise ConflictError(message)


def create_store(ctx: RequestContext, *, patch: dict) -> dict:
    patch = dict(patch)
    if "code" in patch:
        patch["code"] = normalize_store_code(patch["code"])
    _ensure_code_free(patch.get("code"))

    store = Store(**patch, created_by_id=ctx.user_id, updated_by_id=ctx.user_id)
    db.session.add(store)
    _commit("Store code already exists")
    ctx.logger.info("Created store %s (%s)", store.id, store.code)
    return store.to_dict()


def update_store(ctx: RequestContext, store_id: Any, *, patch: dict) -> dict:
    store = get_store_or_404(store_id)
    patch = dict(patch)
    if "code" in patch:
        patch["code"] = normalize_store_code(patch["code"])
        _ensure_code_free(patch["code"], exclude_id=store.id)

    for key, value in patch.items():
        setattr(store, key, value)
    store.updated_by_id = ctx.user_id
    _commit("Store code already exists")
    ctx.logger.info("Updated store %s", store.id)
    return store.to_dict()


def delete_store(ctx: RequestContext, store_id: Any) -> None:
    store = get_store_or_404(store_id)
    if db.session.query(Product.id).filter_by(store_id=store.id).first() is not None:
        raise ConflictError("Store has products and cannot be deleted")
    if db.session.query(Order.id).filter_by(store_id=store.id).first() is not None:
        raise ConflictError("Store has orders and cannot be deleted")

    db.session.delete(store)
    _commit("Store is referenced and cannot be deleted")
    ctx.logger.info("Deleted store %s", store_id)
