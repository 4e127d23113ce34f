# Overview: Inventory ledger; lot receipt, availability, FIFO-by-expiry allocation and depletion.

"""
Inventory ledger.

Stock is held as lots (InventoryLot). A lot is created when stock is
received and afterwards only ever shrinks: depletion reduces its quantity
or deletes it once emptied.

Availability and allocation re-evaluate expiry against the current time,
so a lot that expired after it was received is never allocated even though
its stored status still reads "active" or "near_expiry".

Allocation order (hard contract): expiry_date ascending with undated lots
last, then created_at ascending, then id.
"""

from __future__ import annotations

import math
from dataclasses import dataclass, field
from datetime import datetime, timedelta
from decimal import Decimal
from typing import Any, Iterable

from flask import current_app, has_app_context
from sqlalchemy import func, or_
from sqlalchemy.orm import joinedload

from ..context import RequestContext
from ..errors import (
    FieldValidationError,
    InsufficientInventoryError,
    NotFoundError,
    ProductHasNoInventoryError,
    ProductNotInStoreError,
    ValidationError,
)
from ..extensions import db
from ..models import (
    Category,
    InventoryLot,
    Product,
    LOT_STATUS_ACTIVE,
    LOT_STATUS_EXPIRED,
    LOT_STATUS_NEAR_EXPIRY,
)
from ..permissions import is_super_admin
from ..time_utils import normalize_datetime, parse_iso_datetime, utcnow
from ..validation import parse_uuid
from .audit_service import (
    EVENT_LOT_DEPLETED,
    EVENT_LOT_RECEIVED,
    EVENT_LOT_REMOVED,
    append_audit_event,
)
from .concurrency import lock_for_update, run_in_transaction
from .listing import paginate
from .store_service import require_store_code, resolve_acting_store

DEFAULT_NEAR_EXPIRY_DAYS = 7


@dataclass(frozen=True)
class LotAllocation:
    lot_id: Any
    taken: float
    removed: bool

    def to_dict(self) -> dict:
        return {"lot_id": str(self.lot_id), "taken": self.taken, "removed": self.removed}


@dataclass
class DepletionResult:
    product_id: Any
    requested: float
    allocations: list[LotAllocation] = field(default_factory=list)

    @property
    def depleted(self) -> float:
        return float(sum(Decimal(str(a.taken)) for a in self.allocations))

    def to_dict(self) -> dict:
        return {
            "product_id": str(self.product_id),
            "requested": self.requested,
            "depleted": self.depleted,
            "allocations": [a.to_dict() for a in self.allocations],
        }


def _near_expiry_days() -> int:
    if has_app_context():
        return int(current_app.config.get("NEAR_EXPIRY_DAYS", DEFAULT_NEAR_EXPIRY_DAYS))
    return DEFAULT_NEAR_EXPIRY_DAYS


def format_quantity(value) -> str:
    """10.0 -> '10', 2.5 -> '2.5'."""
    return f"{float(value):g}"


def compute_lot_status(
    expiry_date: datetime | None,
    now: datetime | None = None,
    near_expiry_days: int | None = None,
) -> str:
    """
    - no expiry -> active
    - expiry already passed -> expired
    - expires within near_expiry_days (rounded up to whole days) -> near_expiry
    - otherwise -> active
    """
    if expiry_date is None:
        return LOT_STATUS_ACTIVE
    expiry = normalize_datetime(expiry_date)
    now = normalize_datetime(now) if now is not None else utcnow()
    window = _near_expiry_days() if near_expiry_days is None else near_expiry_days

    if expiry < now:
        return LOT_STATUS_EXPIRED
    days_until_expiry = math.ceil((expiry - now) / timedelta(days=1))
    if days_until_expiry <= window:
        return LOT_STATUS_NEAR_EXPIRY
    return LOT_STATUS_ACTIVE


def _not_expired(now: datetime):
    return or_(InventoryLot.expiry_date.is_(None), InventoryLot.expiry_date >= now)


def _status_clause(status: str, now: datetime, window_days: int):
    """SQL twin of compute_lot_status for one status."""
    horizon = now + timedelta(days=window_days)
    if status == LOT_STATUS_EXPIRED:
        return InventoryLot.expiry_date < now
    if status == LOT_STATUS_NEAR_EXPIRY:
        return InventoryLot.expiry_date.between(now, horizon)
    return or_(InventoryLot.expiry_date.is_(None), InventoryLot.expiry_date > horizon)


def _allocation_order():
    return (
        InventoryLot.expiry_date.is_(None).asc(),
        InventoryLot.expiry_date.asc(),
        InventoryLot.created_at.asc(),
        InventoryLot.id.asc(),
    )


def list_allocatable(product_id: Any, *, now: datetime | None = None, lock: bool = False) -> list[InventoryLot]:
    """Non-expired lots with stock, in allocation order."""
    now = now or utcnow()
    query = (
        db.session.query(InventoryLot)
        .filter(
            InventoryLot.product_id == product_id,
            InventoryLot.quantity > 0,
            _not_expired(now),
        )
        .order_by(*_allocation_order())
    )
    if lock:
        query = lock_for_update(query)
    return query.all()


def get_available_quantity(product_id: Any, *, now: datetime | None = None, lock: bool = False) -> float:
    """Sum of quantity over the product's non-expired lots; 0 when it has none."""
    product_id = parse_uuid(product_id, field="product_id")
    now = now or utcnow()
    if lock:
        lots = list_allocatable(product_id, now=now, lock=True)
        return float(sum((Decimal(str(lot.quantity)) for lot in lots), Decimal("0")))

    total = (
        db.session.query(func.coalesce(func.sum(InventoryLot.quantity), 0))
        .filter(InventoryLot.product_id == product_id, _not_expired(now))
        .scalar()
    )
    return float(total or 0)


def _product_has_any_lot(product_id: Any) -> bool:
    return db.session.query(InventoryLot.id).filter(InventoryLot.product_id == product_id).first() is not None


def _deplete_locked(
    ctx: RequestContext,
    product: Product,
    requested: Decimal,
    *,
    now: datetime,
) -> DepletionResult:
    if not _product_has_any_lot(product.id):
        raise ProductHasNoInventoryError(product.id, requested=float(requested))

    lots = list_allocatable(product.id, now=now, lock=True)
    available = sum((Decimal(str(lot.quantity)) for lot in lots), Decimal("0"))
    if available < requested:
        raise InsufficientInventoryError(
            f"Insufficient inventory for product {product.name}. "
            f"Available: {format_quantity(available)}, Requested: {format_quantity(requested)}",
            product_id=product.id,
            requested=float(requested),
            available=float(available),
        )

    result = DepletionResult(product_id=product.id, requested=float(requested))
    remaining = requested
    for lot in lots:
        if remaining <= 0:
            break
        lot_qty = Decimal(str(lot.quantity))
        if lot_qty <= remaining:
            remaining -= lot_qty
            result.allocations.append(LotAllocation(lot_id=lot.id, taken=float(lot_qty), removed=True))
            event_type = EVENT_LOT_REMOVED
            db.session.delete(lot)
            taken = lot_qty
        else:
            lot.quantity = float(lot_qty - remaining)
            result.allocations.append(LotAllocation(lot_id=lot.id, taken=float(remaining), removed=False))
            event_type = EVENT_LOT_DEPLETED
            taken = remaining
            remaining = Decimal("0")

        append_audit_event(
            event_type=event_type,
            entity_type="inventory",
            entity_id=lot.id,
            store_id=product.store_id,
            actor_user_id=ctx.user_id,
            correlation_id=ctx.correlation_id,
            payload={"product_id": str(product.id), "taken": float(taken)},
        )

    db.session.flush()
    ctx.logger.info(
        "Depleted %s of product %s across %d lot(s)",
        format_quantity(requested), product.id, len(result.allocations),
    )
    return result


def deplete(
    ctx: RequestContext,
    product_id: Any,
    quantity,
    *,
    now: datetime | None = None,
    commit: bool = True,
) -> DepletionResult:
    """
    Remove `quantity` of a product from its allocatable lots, earliest expiry first.

    Lots fully consumed are deleted; the last lot touched is reduced. Nothing
    is mutated when the request cannot be covered. Not idempotent.

    commit=False joins the caller's transaction (checkout).
    """
    product_id = parse_uuid(product_id, field="product_id")
    requested = Decimal(str(quantity))
    if requested <= 0:
        raise FieldValidationError([{"field": "quantity", "message": "quantity must be > 0"}])

    def _op():
        product = db.session.get(Product, product_id)
        if product is None:
            raise NotFoundError(f"Product {product_id} not found")
        return _deplete_locked(ctx, product, requested, now=now or utcnow())

    if commit:
        return run_in_transaction(_op)
    return _op()


def _lot_store_for(ctx: RequestContext, product: Product, requested_store_id: Any, *, explicit: bool):
    """
    Store a lot is received into. Super admins act on the product's store
    (or must name it in batch uploads); everyone else is pinned to theirs.
    """
    actor = ctx.actor
    if is_super_admin(actor.level) and not explicit and requested_store_id in (None, ""):
        store = product.store
    else:
        store = resolve_acting_store(actor, requested_store_id)
    if product.store_id != store.id:
        raise ProductNotInStoreError(
            f"Product {product.name} does not belong to store {store.name}",
            details={"product_id": str(product.id), "store_id": str(store.id)},
        )
    require_store_code(store)
    return store


def _validate_lot_entry(entry: dict) -> dict:
    """Coerce one lot entry; raises FieldValidationError listing every bad field."""
    errors: list[dict[str, str]] = []
    out: dict = {}

    raw_product = entry.get("product_id")
    if raw_product in (None, ""):
        errors.append({"field": "product_id", "message": "product_id is required"})
    else:
        try:
            out["product_id"] = parse_uuid(raw_product, field="product_id")
        except ValidationError as e:
            errors.append({"field": "product_id", "message": str(e)})

    raw_qty = entry.get("quantity")
    if raw_qty in (None, ""):
        errors.append({"field": "quantity", "message": "quantity is required"})
    else:
        try:
            qty = float(str(raw_qty).strip())
            if qty != qty or qty < 0 or qty == float("inf"):
                raise ValueError
            out["quantity"] = qty
        except ValueError:
            errors.append({"field": "quantity", "message": "quantity must be a non-negative number"})

    location = entry.get("location")
    out["location"] = str(location).strip() if location not in (None, "") else None
    if out["location"] and len(out["location"]) > 255:
        errors.append({"field": "location", "message": "location exceeds max length 255"})

    raw_expiry = entry.get("expiry_date")
    out["expiry_date"] = None
    if raw_expiry not in (None, ""):
        if isinstance(raw_expiry, datetime):
            out["expiry_date"] = normalize_datetime(raw_expiry)
        else:
            try:
                out["expiry_date"] = parse_iso_datetime(str(raw_expiry))
            except ValueError:
                errors.append({"field": "expiry_date", "message": "expiry_date must be an ISO-8601 date"})

    out["store_id"] = entry.get("store_id")

    if errors:
        raise FieldValidationError(errors)
    return out


def _build_lot(ctx: RequestContext, product: Product, entry: dict, now: datetime) -> InventoryLot:
    return InventoryLot(
        product_id=product.id,
        quantity=entry["quantity"],
        location=entry["location"],
        expiry_date=entry["expiry_date"],
        status=compute_lot_status(entry["expiry_date"], now),
        created_by_id=ctx.user_id,
        created_at=utcnow(),
    )


def _audit_received(ctx: RequestContext, lot: InventoryLot, product: Product) -> None:
    append_audit_event(
        event_type=EVENT_LOT_RECEIVED,
        entity_type="inventory",
        entity_id=lot.id,
        store_id=product.store_id,
        actor_user_id=ctx.user_id,
        correlation_id=ctx.correlation_id,
        payload={
            "product_id": str(product.id),
            "quantity": lot.quantity,
            "status": lot.status,
        },
    )


def create_lot(
    ctx: RequestContext,
    *,
    product_id: Any,
    quantity,
    location: str | None = None,
    expiry_date=None,
    store_id: Any = None,
    now: datetime | None = None,
) -> dict:
    """Receive one lot. Status is computed from expiry_date at receipt."""
    entry = _validate_lot_entry({
        "product_id": product_id,
        "quantity": quantity,
        "location": location,
        "expiry_date": expiry_date,
        "store_id": store_id,
    })
    now = now or utcnow()

    def _op():
        product = db.session.get(Product, entry["product_id"])
        if product is None:
            raise NotFoundError(f"Product {entry['product_id']} not found")
        _lot_store_for(ctx, product, entry["store_id"], explicit=False)

        lot = _build_lot(ctx, product, entry, now)
        db.session.add(lot)
        db.session.flush()
        _audit_received(ctx, lot, product)
        return lot

    lot = run_in_transaction(_op)
    ctx.logger.info("Received lot %s: %s of product %s", lot.id, format_quantity(lot.quantity), lot.product_id)
    return lot.to_dict(current_status=compute_lot_status(lot.expiry_date, now))


def create_lots_batch(ctx: RequestContext, entries: Iterable[dict], *, now: datetime | None = None) -> list[dict]:
    """
    Receive many lots at once. Every entry is validated before anything is
    written; one bad entry rejects the whole batch.
    """
    entries = list(entries)
    if not entries:
        raise ValidationError("No data found in file")
    now = now or utcnow()

    cleaned: list[dict] = []
    errors: list[dict[str, str]] = []
    for idx, entry in enumerate(entries, start=1):
        try:
            cleaned.append(_validate_lot_entry(entry))
        except FieldValidationError as e:
            errors.extend({"field": f"row {idx}: {err['field']}", "message": err["message"]} for err in e.errors)
    if errors:
        raise FieldValidationError(errors)

    product_ids = {c["product_id"] for c in cleaned}
    products = {
        p.id: p
        for p in db.session.query(Product)
        .options(joinedload(Product.store))
        .filter(Product.id.in_(product_ids))
        .all()
    }
    for idx, entry in enumerate(cleaned, start=1):
        product = products.get(entry["product_id"])
        if product is None:
            raise NotFoundError(f"Row {idx}: product {entry['product_id']} not found")
        _lot_store_for(ctx, product, entry["store_id"], explicit=True)

    def _op():
        lots = []
        for entry in cleaned:
            product = products[entry["product_id"]]
            lot = _build_lot(ctx, product, entry, now)
            db.session.add(lot)
            lots.append((lot, product))
        db.session.flush()
        for lot, product in lots:
            _audit_received(ctx, lot, product)
        return [lot for lot, _ in lots]

    lots = run_in_transaction(_op)
    ctx.logger.info("Received %d lot(s) from batch", len(lots))
    return [lot.to_dict(current_status=compute_lot_status(lot.expiry_date, now)) for lot in lots]


def _lot_query():
    return db.session.query(InventoryLot).options(
        joinedload(InventoryLot.product).joinedload(Product.category),
        joinedload(InventoryLot.created_by),
    )


def get_lot(lot_id: Any, *, now: datetime | None = None) -> dict:
    lot = _lot_query().filter(InventoryLot.id == parse_uuid(lot_id, field="id")).first()
    if lot is None:
        raise NotFoundError(f"Inventory {lot_id} not found")
    return lot.to_dict(current_status=compute_lot_status(lot.expiry_date, now))


def list_lots(
    *,
    limit: int,
    offset: int,
    product_id: Any = None,
    statuses: list[str] | None = None,
    store_id: Any = None,
    product_name: str | None = None,
    sku: str | None = None,
    category_id: int | None = None,
    search: str | None = None,
    now: datetime | None = None,
) -> dict:
    """
    Newest lots first. `search` matches product name (substring), SKU (exact)
    or category name (substring). `statuses` filter on the status as of `now`,
    the same value rendered as current_status.
    """
    query = _lot_query().join(InventoryLot.product).join(Product.category)

    if product_id not in (None, ""):
        query = query.filter(InventoryLot.product_id == parse_uuid(product_id, field="product_id"))
    now = normalize_datetime(now) if now is not None else utcnow()
    if statuses:
        window = _near_expiry_days()
        query = query.filter(or_(*(_status_clause(s, now, window) for s in statuses)))
    if store_id not in (None, ""):
        query = query.filter(Product.store_id == parse_uuid(store_id, field="store_id"))
    if product_name:
        query = query.filter(Product.name.ilike(f"%{product_name}%"))
    if sku:
        query = query.filter(Product.sku == sku)
    if category_id is not None:
        query = query.filter(Product.category_id == category_id)
    if search:
        like = f"%{search}%"
        query = query.filter(or_(Product.name.ilike(like), Product.sku == search, Category.name.ilike(like)))

    query = query.order_by(InventoryLot.created_at.desc(), InventoryLot.id.desc())
    return paginate(
        query,
        limit=limit,
        offset=offset,
        serialize=lambda lot: lot.to_dict(current_status=compute_lot_status(lot.expiry_date, now)),
    )
