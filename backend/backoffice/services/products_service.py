# Overview: Catalog authority for products; SKU generation, store ownership and CRUD.

from __future__ import annotations

from datetime import datetime
from typing import Any, Iterable

from sqlalchemy.exc import IntegrityError
from sqlalchemy.orm import joinedload

from ..context import Actor, RequestContext
from ..errors import (
    AuthorizationError,
    ConflictError,
    DuplicateSkuError,
    FieldValidationError,
    NotFoundError,
    UserHasNoStoreError,
)
from ..extensions import db
from ..models import OrderLine, Product
from ..permissions import is_super_admin
from ..time_utils import utcnow
from ..validation import parse_uuid
from .audit_service import (
    EVENT_PRODUCT_CREATED,
    EVENT_PRODUCT_DELETED,
    EVENT_PRODUCT_UPDATED,
    append_audit_event,
)
from .category_service import get_category_or_404
from .listing import paginate
from .store_service import get_store_or_404, require_store_code, resolve_acting_store

UPDATABLE_FIELDS = ("name", "category_id", "selling_price", "purchase_price")


def generate_sku(store_code: str, category_code: str, now: datetime | None = None) -> str:
    """
    {storeCode}-{categoryCode}-{yyyyMMddHHss}

    The timestamp is hour plus seconds with no minutes field. Two products
    generated for the same store and category in the same second collide;
    callers serialize or pass explicit SKUs.
    """
    now = now or utcnow()
    return f"{store_code}-{category_code}-{now.strftime('%Y%m%d%H%S')}"


def _sku_taken(sku: str) -> bool:
    return db.session.query(Product.id).filter(Product.sku == sku).first() is not None


def _product_query():
    return db.session.query(Product).options(
        joinedload(Product.category),
        joinedload(Product.store),
        joinedload(Product.created_by),
        joinedload(Product.updated_by),
    )


def get_product_or_404(product_id: Any) -> Product:
    product = _product_query().filter(Product.id == parse_uuid(product_id, field="product_id")).first()
    if product is None:
        raise NotFoundError(f"Product {product_id} not found")
    return product


def get_product_by_sku(sku: str) -> Product | None:
    return db.session.query(Product).filter(Product.sku == sku.strip()).first()


def ensure_can_mutate(actor: Actor, product: Product) -> None:
    """Only super admins reach across stores."""
    if is_super_admin(actor.level):
        return
    if actor.store_id is None:
        raise UserHasNoStoreError()
    if product.store_id != actor.store_id:
        raise AuthorizationError("Access denied. Product belongs to another store")


def _prepare_product(ctx: RequestContext, patch: dict, *, store_id: Any, now: datetime) -> Product:
    store = resolve_acting_store(ctx.actor, store_id)
    store_code = require_store_code(store)
    category = get_category_or_404(patch["category_id"])

    sku = patch.get("sku") or None
    if sku is None:
        sku = generate_sku(store_code, category.category_code, now)
    elif _sku_taken(sku):
        raise DuplicateSkuError(sku)

    return Product(
        name=patch["name"],
        category_id=category.id,
        store_id=store.id,
        sku=sku,
        selling_price=patch["selling_price"],
        purchase_price=patch["purchase_price"],
        created_by_id=ctx.user_id,
        updated_by_id=ctx.user_id,
    )


def _audit_created(ctx: RequestContext, product: Product) -> None:
    append_audit_event(
        event_type=EVENT_PRODUCT_CREATED,
        entity_type="product",
        entity_id=product.id,
        store_id=product.store_id,
        actor_user_id=ctx.user_id,
        correlation_id=ctx.correlation_id,
        payload={"sku": product.sku, "name": product.name},
    )


def _commit_or_conflict(sku_hint: str | None = None) -> None:
    try:
        db.session.commit()
    except IntegrityError:
        db.session.rollback()
        if sku_hint:
            raise DuplicateSkuError(sku_hint)
        raise ConflictError("Product conflicts with an existing record")


def create_product(ctx: RequestContext, *, patch: dict, store_id: Any = None, now: datetime | None = None) -> dict:
    """
    Create a product in the acting store. SKU is generated when absent,
    otherwise it must be unused.
    """
    product = _prepare_product(ctx, patch, store_id=store_id, now=now or utcnow())
    db.session.add(product)
    db.session.flush()
    _audit_created(ctx, product)
    _commit_or_conflict(product.sku)
    ctx.logger.info("Created product %s (%s)", product.id, product.sku)
    return get_product_or_404(product.id).to_dict()


def create_products_batch(
    ctx: RequestContext,
    rows: Iterable[dict],
    *,
    now: datetime | None = None,
) -> list[dict]:
    """
    All-or-nothing creation. Each row: name, category_id, selling_price,
    purchase_price, optional sku and store_id.
    """
    rows = list(rows)
    now = now or utcnow()
    products: list[Product] = []
    seen: set[str] = set()

    try:
        for idx, row in enumerate(rows, start=1):
            try:
                product = _prepare_product(ctx, row, store_id=row.get("store_id"), now=now)
            except FieldValidationError as e:
                raise FieldValidationError(
                    [{"field": f"row {idx}: {err['field']}", "message": err["message"]} for err in e.errors]
                )
            if product.sku in seen:
                raise DuplicateSkuError(product.sku)
            seen.add(product.sku)
            products.append(product)

        db.session.add_all(products)
        db.session.flush()
        for product in products:
            _audit_created(ctx, product)
    except Exception:
        db.session.rollback()
        raise
    _commit_or_conflict()

    ctx.logger.info("Created %d product(s) from batch", len(products))
    ids = [p.id for p in products]
    by_id = {p.id: p for p in _product_query().filter(Product.id.in_(ids)).all()}
    return [by_id[i].to_dict() for i in ids]


def list_products(
    *,
    limit: int,
    offset: int,
    name: str | None = None,
    sku: str | None = None,
    store_id: Any = None,
) -> dict:
    query = _product_query()
    if name:
        query = query.filter(Product.name.ilike(f"%{name}%"))
    if sku:
        query = query.filter(Product.sku == sku)
    if store_id not in (None, ""):
        store = get_store_or_404(store_id)
        query = query.filter(Product.store_id == store.id)
    query = query.order_by(Product.created_at.desc(), Product.id.desc())
    return paginate(query, limit=limit, offset=offset)


def get_product(product_id: Any) -> dict:
    return get_product_or_404(product_id).to_dict()


def update_product(ctx: RequestContext, product_id: Any, *, patch: dict) -> dict:
    """SKU and store are immutable; only UPDATABLE_FIELDS change."""
    product = get_product_or_404(product_id)
    ensure_can_mutate(ctx.actor, product)

    changes = {k: v for k, v in patch.items() if k in UPDATABLE_FIELDS}
    if "category_id" in changes:
        get_category_or_404(changes["category_id"])

    for key, value in changes.items():
        setattr(product, key, value)
    product.updated_by_id = ctx.user_id

    append_audit_event(
        event_type=EVENT_PRODUCT_UPDATED,
        entity_type="product",
        entity_id=product.id,
        store_id=product.store_id,
        actor_user_id=ctx.user_id,
        correlation_id=ctx.correlation_id,
        payload={k: str(v) for k, v in changes.items()},
    )
    _commit_or_conflict()
    ctx.logger.info("Updated product %s", product.id)
    return get_product_or_404(product.id).to_dict()


def _delete_loaded(ctx: RequestContext, product: Product) -> None:
    ensure_can_mutate(ctx.actor, product)
    if db.session.query(OrderLine.id).filter(OrderLine.product_id == product.id).first() is not None:
        raise ConflictError(f"Product {product.name} has order history and cannot be deleted")

    append_audit_event(
        event_type=EVENT_PRODUCT_DELETED,
        entity_type="product",
        entity_id=product.id,
        store_id=product.store_id,
        actor_user_id=ctx.user_id,
        correlation_id=ctx.correlation_id,
        payload={"sku": product.sku},
    )
    # Lots go with the product
    db.session.delete(product)


def delete_product(ctx: RequestContext, product_id: Any) -> None:
    product = get_product_or_404(product_id)
    try:
        _delete_loaded(ctx, product)
    except Exception:
        db.session.rollback()
        raise
    _commit_or_conflict()
    ctx.logger.info("Deleted product %s", product_id)


def delete_products_bulk(ctx: RequestContext, product_ids: list) -> dict:
    """Deletes every listed product or none of them."""
    if not product_ids:
        raise FieldValidationError([{"field": "ids", "message": "ids must be a non-empty list"}])
    ids = [parse_uuid(pid, field="ids") for pid in product_ids]

    products = _product_query().filter(Product.id.in_(ids)).all()
    found = {p.id for p in products}
    missing = [str(pid) for pid in ids if pid not in found]
    if missing:
        raise NotFoundError(f"Products not found: {', '.join(missing)}", details={"missing": missing})

    try:
        for product in products:
            _delete_loaded(ctx, product)
    except Exception:
        db.session.rollback()
        raise
    _commit_or_conflict()
    ctx.logger.info("Bulk deleted %d product(s)", len(products))
    return {"deleted": len(products)}
