# backend/backoffice/routes/products.py
"""
Product catalog routes.

Reads need any authenticated user. Writes need staff level (40) and are
limited to the caller's own store unless the caller is a super admin.
"""
from uuid import UUID

from flask import Blueprint, request

from ..decorators import current_context, require_auth, require_level
from ..errors import BackofficeError
from ..models import Product
from ..permissions import Operation
from ..services import import_service, products_service
from ..validation import ModelValidationPolicy, parse_list_params, validate_payload
from .uploads import read_uploaded_rows

PRODUCT_POLICY = ModelValidationPolicy(
    writable_fields={"name", "category_id", "sku", "selling_price", "purchase_price"},
    required_on_create={"name", "category_id", "selling_price", "purchase_price"},
)

PRODUCT_UPDATE_POLICY = ModelValidationPolicy(
    writable_fields=set(products_service.UPDATABLE_FIELDS),
)

products_bp = Blueprint("products", __name__, url_prefix="/api/products")


@products_bp.get("")
@require_auth
@require_level(Operation.PRODUCTS_READ)
def list_products():
    """
    Query params:
    - limit (1..100, default 10), offset (>= 0)
    - name: substring match; `search` is accepted as an alias
    - sku: exact match
    - store_id: only products of that store
    """
    try:
        params = parse_list_params(request.args)
        return products_service.list_products(
            limit=params.limit,
            offset=params.offset,
            name=request.args.get("name") or params.search,
            sku=request.args.get("sku"),
            store_id=request.args.get("store_id"),
        )
    except BackofficeError as e:
        return e.to_dict(), e.status_code


@products_bp.get("/<uuid:product_id>")
@require_auth
@require_level(Operation.PRODUCTS_READ)
def get_product(product_id: UUID):
    try:
        return products_service.get_product(product_id)
    except BackofficeError as e:
        return e.to_dict(), e.status_code


@products_bp.post("")
@require_auth
@require_level(Operation.PRODUCTS_WRITE)
def create_product():
    payload = dict(request.get_json(silent=True) or {})
    store_id = payload.pop("store_id", None)
    try:
        patch = validate_payload(model=Product, payload=payload, policy=PRODUCT_POLICY, partial=False)
        created = products_service.create_product(current_context(), patch=patch, store_id=store_id)
    except BackofficeError as e:
        return e.to_dict(), e.status_code
    return created, 201


@products_bp.post("/batch")
@require_auth
@require_level(Operation.PRODUCTS_BATCH)
def create_products_batch():
    """multipart/form-data with `file` (CSV or XLSX, max 10MB)."""
    ctx = current_context()
    try:
        rows = read_uploaded_rows()
        created = import_service.import_products(ctx, rows)
    except BackofficeError as e:
        return e.to_dict(), e.status_code
    return {
        "message": f"Successfully created {len(created)} products",
        "count": len(created),
        "data": created,
    }, 201


@products_bp.put("/<uuid:product_id>")
@require_auth
@require_level(Operation.PRODUCTS_WRITE)
def update_product(product_id: UUID):
    payload = request.get_json(silent=True) or {}
    try:
        patch = validate_payload(model=Product, payload=payload, policy=PRODUCT_UPDATE_POLICY, partial=True)
        return products_service.update_product(current_context(), product_id, patch=patch)
    except BackofficeError as e:
        return e.to_dict(), e.status_code


@products_bp.delete("/bulk")
@require_auth
@require_level(Operation.PRODUCTS_WRITE)
def delete_products_bulk():
    payload = request.get_json(silent=True) or {}
    ids = payload.get("ids")
    try:
        return products_service.delete_products_bulk(current_context(), ids if isinstance(ids, list) else [])
    except BackofficeError as e:
        return e.to_dict(), e.status_code


@products_bp.delete("/<uuid:product_id>")
@require_auth
@require_level(Operation.PRODUCTS_WRITE)
def delete_product(product_id: UUID):
    try:
        products_service.delete_product(current_context(), product_id)
    except BackofficeError as e:
        return e.to_dict(), e.status_code
    return "", 204
