# Overview: Checkout orchestration; validates a cart, prices it, and records the order with its depletions.

"""
Checkout.

A checkout is one unit of work: the cart's lots are locked, availability is
checked, the order and its lines are inserted, and every line is depleted
from the ledger before a single commit. Any failure rolls everything back,
so a failed checkout never leaves an order behind.
"""

from __future__ import annotations

from collections import OrderedDict
from dataclasses import dataclass
from datetime import datetime, timedelta
from decimal import Decimal, InvalidOperation
from typing import Any

from flask import current_app, has_app_context
from sqlalchemy.exc import IntegrityError
from sqlalchemy.orm import joinedload, selectinload

from ..context import RequestContext
from ..errors import (
    ConflictError,
    FieldValidationError,
    GrandTotalMismatchError,
    InsufficientInventoryError,
    NotFoundError,
    ProductNotInStoreError,
    UserHasNoStoreError,
    ValidationError,
)
from ..extensions import db
from ..models import Order, OrderLine, Product
from ..permissions import is_super_admin
from ..time_utils import utcnow
from ..validation import parse_uuid
from .audit_service import EVENT_ORDER_CREATED, append_audit_event, list_events
from .concurrency import run_in_transaction
from .inventory_service import deplete, format_quantity, get_available_quantity
from .listing import paginate
from .store_service import get_store_or_404, require_store_code

DEFAULT_GRAND_TOTAL_TOLERANCE = Decimal("0.01")
CENTS = Decimal("0.01")
CUSTOMER_NAME_MAX_LENGTH = 255
# Invoice numbers have one-second resolution; a same-second clash moves to the next second
INVOICE_ATTEMPTS = 2


@dataclass(frozen=True)
class CartItem:
    product_id: Any
    quantity: Decimal


def _tolerance() -> Decimal:
    if has_app_context():
        return Decimal(str(current_app.config.get("GRAND_TOTAL_TOLERANCE", DEFAULT_GRAND_TOTAL_TOLERANCE)))
    return DEFAULT_GRAND_TOTAL_TOLERANCE


def compute_line_total(quantity, selling_price) -> Decimal:
    """quantity x selling_price, exact."""
    return Decimal(str(quantity)) * Decimal(str(selling_price))


def reconcile_grand_total(computed: Decimal, provided: Decimal, tolerance: Decimal | None = None) -> None:
    """Raise GrandTotalMismatchError when |computed - provided| exceeds the tolerance."""
    tolerance = _tolerance() if tolerance is None else tolerance
    if abs(computed - provided) > tolerance:
        raise GrandTotalMismatchError(
            f"Grand total mismatch. Calculated: {computed.quantize(CENTS)}, Provided: {provided.quantize(CENTS)}",
            details={"calculated": float(computed), "provided": float(provided)},
        )


def generate_invoice_number(store_code: str, now: datetime | None = None) -> str:
    """{STORECODE}{yy}{MM}{dd}{HH}{mm}{ss}"""
    now = now or utcnow()
    return f"{store_code.upper()}{now.strftime('%y%m%d%H%M%S')}"


def _parse_decimal(value) -> Decimal | None:
    if value is None or isinstance(value, bool):
        return None
    try:
        parsed = Decimal(str(value).strip())
    except (InvalidOperation, ValueError):
        return None
    return parsed if parsed.is_finite() else None


def validate_cart(items, grand_total, customer_name=None) -> tuple[list[CartItem], Decimal, str | None]:
    errors: list[dict[str, str]] = []
    cart: list[CartItem] = []

    if not isinstance(items, list) or not items:
        errors.append({"field": "items", "message": "Items are required"})
    else:
        for idx, item in enumerate(items):
            if not isinstance(item, dict):
                errors.append({"field": f"items[{idx}]", "message": "Item must be an object"})
                continue
            product_id = item.get("product_id")
            if not product_id:
                errors.append({"field": f"items[{idx}].product_id", "message": "Product ID is required for all items"})
                continue
            try:
                product_id = parse_uuid(product_id, field=f"items[{idx}].product_id")
            except ValidationError as e:
                errors.append({"field": f"items[{idx}].product_id", "message": str(e)})
                continue
            quantity = _parse_decimal(item.get("quantity"))
            if quantity is None or quantity <= 0:
                errors.append({
                    "field": f"items[{idx}].quantity",
                    "message": f"Quantity must be greater than 0 for product {product_id}",
                })
                continue
            cart.append(CartItem(product_id=product_id, quantity=quantity))

    total = _parse_decimal(grand_total)
    if total is None or total <= 0:
        errors.append({"field": "grand_total", "message": "Grand total must be greater than 0"})

    if customer_name is not None:
        if not isinstance(customer_name, str):
            errors.append({"field": "customer_name", "message": "customer_name must be a string"})
        elif len(customer_name.strip()) > CUSTOMER_NAME_MAX_LENGTH:
            errors.append({
                "field": "customer_name",
                "message": f"customer_name exceeds max length {CUSTOMER_NAME_MAX_LENGTH}",
            })
        else:
            customer_name = customer_name.strip() or None

    if errors:
        raise FieldValidationError(errors)
    return cart, total, customer_name


def checkout(
    ctx: RequestContext,
    *,
    items,
    grand_total,
    customer_name: str | None = None,
    now: datetime | None = None,
) -> dict:
    cart, provided_total, customer_name = validate_cart(items, grand_total, customer_name)
    actor = ctx.actor
    if actor.store_id is None:
        raise UserHasNoStoreError("User must have a store assigned to checkout")
    now = now or utcnow()

    def _op(invoice_at: datetime):
        store = get_store_or_404(actor.store_id)
        store_code = require_store_code(store)

        products: dict[Any, Product] = {}
        requested: "OrderedDict[Any, Decimal]" = OrderedDict()
        priced: list[tuple[CartItem, Decimal]] = []
        computed = Decimal("0")

        for item in cart:
            product = products.get(item.product_id) or db.session.get(Product, item.product_id)
            if product is None:
                raise NotFoundError(f"Product not found: {item.product_id}")
            if product.store_id != store.id:
                raise ProductNotInStoreError(
                    f"Product {product.name} does not belong to your store",
                    details={"product_id": str(product.id)},
                )
            products[product.id] = product
            requested[product.id] = requested.get(product.id, Decimal("0")) + item.quantity

            line_total = compute_line_total(item.quantity, product.selling_price)
            computed += line_total
            priced.append((item, line_total))

        for product_id, quantity in requested.items():
            available = Decimal(str(get_available_quantity(product_id, now=now, lock=True)))
            if quantity > available:
                product = products[product_id]
                raise InsufficientInventoryError(
                    f"Insufficient inventory for product {product.name}. "
                    f"Available: {format_quantity(available)}, Requested: {format_quantity(quantity)}",
                    product_id=product_id,
                    requested=float(quantity),
                    available=float(available),
                )

        reconcile_grand_total(computed, provided_total)

        order = Order(
            invoice_number=generate_invoice_number(store_code, invoice_at),
            customer_name=customer_name,
            total_price=computed.quantize(CENTS),
            store_id=store.id,
            created_by_id=ctx.user_id,
            created_at=now,
        )
        db.session.add(order)
        db.session.flush()

        for item, line_total in priced:
            db.session.add(OrderLine(
                order_id=order.id,
                product_id=item.product_id,
                quantity=float(item.quantity),
                total_price=line_total.quantize(CENTS),
                created_at=now,
            ))
        db.session.flush()

        for item in cart:
            deplete(ctx, item.product_id, item.quantity, now=now, commit=False)

        append_audit_event(
            event_type=EVENT_ORDER_CREATED,
            entity_type="order",
            entity_id=order.id,
            store_id=store.id,
            actor_user_id=ctx.user_id,
            correlation_id=ctx.correlation_id,
            occurred_at=now,
            payload={
                "invoice_number": order.invoice_number,
                "total_price": str(order.total_price),
                "items": [{"product_id": str(i.product_id), "quantity": str(i.quantity)} for i in cart],
            },
        )
        return order.id

    for attempt in range(INVOICE_ATTEMPTS):
        invoice_at = now + timedelta(seconds=attempt)
        try:
            order_id = run_in_transaction(lambda: _op(invoice_at))
            break
        except IntegrityError:
            ctx.logger.warning(
                "Invoice number for %s already taken in store %s", invoice_at.isoformat(), actor.store_id
            )
    else:
        raise ConflictError(
            "An order with this invoice number already exists; the checkout can be retried immediately"
        )

    ctx.logger.info("Checkout created order %s", order_id)
    return _order_query().filter(Order.id == order_id).one().to_dict()


def _order_query():
    return db.session.query(Order).options(
        joinedload(Order.store),
        joinedload(Order.created_by),
        selectinload(Order.lines).joinedload(OrderLine.product),
    )


def list_orders(ctx: RequestContext, *, limit: int, offset: int) -> dict:
    """Newest first; scoped to the caller's store unless super admin."""
    query = _order_query()
    actor = ctx.actor
    if not is_super_admin(actor.level):
        if actor.store_id is None:
            raise UserHasNoStoreError()
        query = query.filter(Order.store_id == actor.store_id)
    query = query.order_by(Order.created_at.desc(), Order.id.desc())
    return paginate(query, limit=limit, offset=offset)


def get_order(ctx: RequestContext, order_id: int) -> dict:
    order = _order_query().filter(Order.id == order_id).first()
    actor = ctx.actor
    if order is None or (not is_super_admin(actor.level) and order.store_id != actor.store_id):
        raise NotFoundError(f"Order {order_id} not found")
    data = order.to_dict()
    data["audit_events"] = list_events(entity_type="order", entity_id=order.id)
    return data
