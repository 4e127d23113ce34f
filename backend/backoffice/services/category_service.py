# Overview: Service-layer operations for product categories.

from __future__ import annotations

from sqlalchemy import or_
from sqlalchemy.exc import IntegrityError

from ..context import RequestContext
from ..errors import ConflictError, NotFoundError
from ..extensions import db
from ..models import Category, Product
from .listing import paginate


def get_category_or_404(category_id: int) -> Category:
    category = db.session.get(Category, category_id)
    if category is None:
        raise NotFoundError(f"Category {category_id} not found")
    return category


def get_category_by_code(category_code: str) -> Category | None:
    return db.session.query(Category).filter_by(category_code=category_code.strip()).first()


def list_categories(*, limit: int, offset: int, search: str | None = None) -> dict:
    query = db.session.query(Category)
    if search:
        query = query.filter(or_(Category.name.ilike(f"%{search}%"), Category.category_code == search))
    query = query.order_by(Category.name.asc(), Category.id.asc())
    return paginate(query, limit=limit, offset=offset)


def get_category(category_id: int) -> dict:
    return get_category_or_404(category_id).to_dict()


def _ensure_code_free(code: str, *, exclude_id: int | None = None) -> None:
    query = db.session.query(Category.id).filter(Category.category_code == code)
    if exclude_id is not None:
        query = query.filter(Category.id != exclude_id)
    if query.first() is not None:
        raise ConflictError(f"Category code {code} already exists")


def create_category(ctx: RequestContext, *, patch: dict) -> dict:
    _ensure_code_free(patch["category_code"])
    category = Category(**patch, created_by_id=ctx.user_id, updated_by_id=ctx.user_id)
    db.session.add(category)
    try:
        db.session.commit()
    except IntegrityError:
        db.session.rollback()
        raise ConflictError(f"Category code {patch['category_code']} already exists")
    ctx.logger.info("Created category %s (%s)", category.id, category.category_code)
    return category.to_dict()


def update_category(ctx: RequestContext, category_id: int, *, patch: dict) -> dict:
    category = get_category_or_404(category_id)
    if "category_code" in patch:
        _ensure_code_free(patch["category_code"], exclude_id=category.id)
    for key, value in patch.items():
        setattr(category, key, value)
    category.updated_by_id = ctx.user_id
    try:
        db.session.commit()
    except IntegrityError:
        db.session.rollback()
        raise ConflictError("Category code already exists")
    return category.to_dict()


def delete_category(ctx: RequestContext, category_id: int) -> None:
    category = get_category_or_404(category_id)
    if db.session.query(Product.id).filter_by(category_id=category.id).first() is not None:
        raise ConflictError("Category has products and cannot be deleted")
    db.session.delete(category)
    db.session.commit()
    ctx.logger.info("Deleted category %s", category_id)
