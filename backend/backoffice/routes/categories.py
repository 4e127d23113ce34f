# backend/backoffice/routes/categories.py
from flask import Blueprint, request

from ..decorators import current_context, require_auth, require_level
from ..errors import BackofficeError
from ..models import Category
from ..permissions import Operation
from ..services import category_service
from ..validation import ModelValidationPolicy, parse_list_params, validate_payload

CATEGORY_POLICY = ModelValidationPolicy(
    writable_fields={"name", "category_code"},
    required_on_create={"name", "category_code"},
)

categories_bp = Blueprint("categories", __name__, url_prefix="/api/categories")


@categories_bp.get("")
@require_auth
@require_level(Operation.CATEGORIES_READ)
def list_categories():
    try:
        params = parse_list_params(request.args)
        return category_service.list_categories(limit=params.limit, offset=params.offset, search=params.search)
    except BackofficeError as e:
        return e.to_dict(), e.status_code


@categories_bp.get("/<int:category_id>")
@require_auth
@require_level(Operation.CATEGORIES_READ)
def get_category(category_id: int):
    try:
        return category_service.get_category(category_id)
    except BackofficeError as e:
        return e.to_dict(), e.status_code


@categories_bp.post("")
@require_auth
@require_level(Operation.CATEGORIES_WRITE)
def create_category():
    payload = request.get_json(silent=True) or {}
    try:
        patch = validate_payload(model=Category, payload=payload, policy=CATEGORY_POLICY, partial=False)
        created = category_service.create_category(current_context(), patch=patch)
    except BackofficeError as e:
        return e.to_dict(), e.status_code
    return created, 201


@categories_bp.put("/<int:category_id>")
@require_auth
@require_level(Operation.CATEGORIES_WRITE)
def update_category(category_id: int):
    payload = request.get_json(silent=True) or {}
    try:
        patch = validate_payload(model=Category, payload=payload, policy=CATEGORY_POLICY, partial=True)
        return category_service.update_category(current_context(), category_id, patch=patch)
    except BackofficeError as e:
        return e.to_dict(), e.status_code


@categories_bp.delete("/<int:category_id>")
@require_auth
@require_level(Operation.CATEGORIES_WRITE)
def delete_category(category_id: int):
    try:
        category_service.delete_category(current_context(), category_id)
    except BackofficeError as e:
        return e.to_dict(), e.status_code
    return "", 204
