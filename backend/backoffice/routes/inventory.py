# backend/backoffice/routes/inventory.py
"""
Inventory lot routes.

Each lot carries its stored `status` (computed at receipt) and a
`current_status` re-evaluated against the current time.
"""
from uuid import UUID

from flask import Blueprint, request

from ..decorators import current_context, require_auth, require_level
from ..errors import BackofficeError, FieldValidationError
from ..permissions import Operation
from ..services import import_service, inventory_service
from ..validation import parse_list_params, parse_status_filter
from .uploads import read_uploaded_rows

inventory_bp = Blueprint("inventory", __name__, url_prefix="/api/inventory")


def _int_arg(name: str):
    raw = request.args.get(name)
    if raw in (None, ""):
        return None
    try:
        return int(raw)
    except ValueError:
        raise FieldValidationError([{"field": name, "message": f"{name} must be an integer"}])


@inventory_bp.get("")
@require_auth
@require_level(Operation.INVENTORY_READ)
def list_inventory():
    """
    Query params: limit, offset, product_id, status (repeatable or comma
    separated), store_id, product_name, sku, category_id, search.
    """
    try:
        params = parse_list_params(request.args)
        return inventory_service.list_lots(
            limit=params.limit,
            offset=params.offset,
            product_id=request.args.get("product_id"),
            statuses=parse_status_filter(request.args),
            store_id=request.args.get("store_id"),
            product_name=request.args.get("product_name"),
            sku=request.args.get("sku"),
            category_id=_int_arg("category_id"),
            search=params.search,
        )
    except BackofficeError as e:
        return e.to_dict(), e.status_code


@inventory_bp.get("/<uuid:lot_id>")
@require_auth
@require_level(Operation.INVENTORY_READ)
def get_inventory(lot_id: UUID):
    try:
        return inventory_service.get_lot(lot_id)
    except BackofficeError as e:
        return e.to_dict(), e.status_code


@inventory_bp.post("")
@require_auth
@require_level(Operation.INVENTORY_WRITE)
def create_inventory():
    """Body: {product_id, quantity, location?, expiry_date?, store_id?}"""
    payload = request.get_json(silent=True) or {}
    try:
        created = inventory_service.create_lot(
            current_context(),
            product_id=payload.get("product_id"),
            quantity=payload.get("quantity"),
            location=payload.get("location"),
            expiry_date=payload.get("expiry_date"),
            store_id=payload.get("store_id"),
        )
    except BackofficeError as e:
        return e.to_dict(), e.status_code
    return created, 201


@inventory_bp.post("/batch")
@require_auth
@require_level(Operation.INVENTORY_BATCH)
def create_inventory_batch():
    """multipart/form-data with `file` (CSV or XLSX, max 10MB)."""
    try:
        rows = read_uploaded_rows()
        created = import_service.import_inventory(current_context(), rows)
    except BackofficeError as e:
        return e.to_dict(), e.status_code
    return {
        "message": f"Successfully created {len(created)} inventory items",
        "count": len(created),
        "data": created,
    }, 201
