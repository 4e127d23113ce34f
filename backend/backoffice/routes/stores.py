# backend/backoffice/routes/stores.py
from uuid import UUID

from flask import Blueprint, request

from ..decorators import current_context, require_auth, require_level
from ..errors import BackofficeError
from ..models import Store
from ..permissions import Operation
from ..services import store_service
from ..validation import ModelValidationPolicy, parse_list_params, validate_payload

STORE_POLICY = ModelValidationPolicy(
    writable_fields={"name", "address", "phone", "code"},
    required_on_create={"name"},
)

stores_bp = Blueprint("stores", __name__, url_prefix="/api/stores")


@stores_bp.get("")
@require_auth
@require_level(Operation.STORES_READ)
def list_stores():
    try:
        params = parse_list_params(request.args)
        return store_service.list_stores(limit=params.limit, offset=params.offset, search=params.search)
    except BackofficeError as e:
        return e.to_dict(), e.status_code


@stores_bp.get("/<uuid:store_id>")
@require_auth
@require_level(Operation.STORES_READ)
def get_store(store_id: UUID):
    try:
        return store_service.get_store(store_id)
    except BackofficeError as e:
        return e.to_dict(), e.status_code


@stores_bp.post("")
@require_auth
@require_level(Operation.STORES_WRITE)
def create_store():
    payload = request.get_json(silent=True) or {}
    try:
        patch = validate_payload(model=Store, payload=payload, policy=STORE_POLICY, partial=False)
        created = store_service.create_store(current_context(), patch=patch)
    except BackofficeError as e:
        return e.to_dict(), e.status_code
    return created, 201


@stores_bp.put("/<uuid:store_id>")
@require_auth
@require_level(Operation.STORES_WRITE)
def update_store(store_id: UUID):
    payload = request.get_json(silent=True) or {}
    try:
        patch = validate_payload(model=Store, payload=payload, policy=STORE_POLICY, partial=True)
        return store_service.update_store(current_context(), store_id, patch=patch)
    except BackofficeError as e:
        return e.to_dict(), e.status_code


@stores_bp.delete("/<uuid:store_id>")
@require_auth
@require_level(Operation.STORES_WRITE)
def delete_store(store_id: UUID):
    try:
        store_service.delete_store(current_context(), store_id)
    except BackofficeError as e:
        return e.to_dict(), e.status_code
    return "", 204
