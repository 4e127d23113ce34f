# backend/backoffice/routes/users.py
from uuid import UUID

from flask import Blueprint, request

from ..decorators import current_context, require_auth, require_level
from ..errors import BackofficeError, FieldValidationError
from ..models import User
from ..permissions import Operation
from ..services import user_service
from ..validation import ModelValidationPolicy, parse_list_params, validate_payload

USER_POLICY = ModelValidationPolicy(
    writable_fields={"username", "email", "name", "role_id", "store_id"},
    required_on_create={"username", "email", "name"},
)

users_bp = Blueprint("users", __name__, url_prefix="/api/users")


@users_bp.get("")
@require_auth
@require_level(Operation.USERS_READ)
def list_users():
    try:
        params = parse_list_params(request.args)
        return user_service.list_users(
            limit=params.limit,
            offset=params.offset,
            search=params.search,
            store_id=request.args.get("store_id"),
        )
    except BackofficeError as e:
        return e.to_dict(), e.status_code


@users_bp.get("/<uuid:user_id>")
@require_auth
@require_level(Operation.USERS_READ)
def get_user(user_id: UUID):
    try:
        return user_service.get_user(user_id)
    except BackofficeError as e:
        return e.to_dict(), e.status_code


@users_bp.post("")
@require_auth
@require_level(Operation.USERS_WRITE)
def create_user():
    payload = dict(request.get_json(silent=True) or {})
    password = payload.pop("password", None)
    try:
        if not password:
            raise FieldValidationError([{"field": "password", "message": "Password is required"}])
        patch = validate_payload(model=User, payload=payload, policy=USER_POLICY, partial=False)
        created = user_service.create_user(current_context(), patch=patch, password=password)
    except BackofficeError as e:
        return e.to_dict(), e.status_code
    return created, 201


@users_bp.put("/<uuid:user_id>")
@require_auth
@require_level(Operation.USERS_WRITE)
def update_user(user_id: UUID):
    payload = dict(request.get_json(silent=True) or {})
    password = payload.pop("password", None)
    try:
        patch = validate_payload(model=User, payload=payload, policy=USER_POLICY, partial=True)
        return user_service.update_user(current_context(), user_id, patch=patch, password=password)
    except BackofficeError as e:
        return e.to_dict(), e.status_code


@users_bp.delete("/<uuid:user_id>")
@require_auth
@require_level(Operation.USERS_WRITE)
def delete_user(user_id: UUID):
    try:
        user_service.delete_user(current_context(), user_id)
    except BackofficeError as e:
        return e.to_dict(), e.status_code
    return "", 204
