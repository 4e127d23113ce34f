# backend/backoffice/routes/orders.py
from flask import Blueprint, request

from ..decorators import current_context, require_auth, require_level
from ..errors import BackofficeError
from ..permissions import Operation
from ..services import checkout_service
from ..validation import parse_list_params

orders_bp = Blueprint("orders", __name__, url_prefix="/api/orders")


@orders_bp.post("/checkout")
@require_auth
@require_level(Operation.ORDERS_CHECKOUT)
def checkout():
    """
    Body: {customer_name?, grand_total, items: [{product_id, quantity}]}

    Either the whole order is recorded and stock depleted, or nothing is.
    """
    payload = request.get_json(silent=True) or {}
    ctx = current_context()
    try:
        order = checkout_service.checkout(
            ctx,
            items=payload.get("items"),
            grand_total=payload.get("grand_total"),
            customer_name=payload.get("customer_name"),
        )
    except BackofficeError as e:
        ctx.logger.info("Checkout rejected: %s", e)
        return e.to_dict(), e.status_code
    return order, 201


@orders_bp.get("")
@require_auth
@require_level(Operation.ORDERS_READ)
def list_orders():
    try:
        params = parse_list_params(request.args)
        return checkout_service.list_orders(current_context(), limit=params.limit, offset=params.offset)
    except BackofficeError as e:
        return e.to_dict(), e.status_code


@orders_bp.get("/<int:order_id>")
@require_auth
@require_level(Operation.ORDERS_READ)
def get_order(order_id: int):
    try:
        return checkout_service.get_order(current_context(), order_id)
    except BackofficeError as e:
        return e.to_dict(), e.status_code
