# backend/backoffice/routes/roles.py
from uuid import UUID

from flask import Blueprint, request

from ..decorators import current_context, require_auth, require_level
from ..errors import BackofficeError
from ..models import Role
from ..permissions import Operation
from ..services import role_service
from ..validation import ModelValidationPolicy, enforce_rules_role, parse_list_params, validate_payload

ROLE_POLICY = ModelValidationPolicy(
    writable_fields={"name", "level"},
    required_on_create={"name", "level"},
)

roles_bp = Blueprint("roles", __name__, url_prefix="/api/roles")


@roles_bp.get("")
@require_auth
@require_level(Operation.ROLES_READ)
def list_roles():
    try:
        params = parse_list_params(request.args)
        return role_service.list_roles(limit=params.limit, offset=params.offset, search=params.search)
    except BackofficeError as e:
        return e.to_dict(), e.status_code


@roles_bp.get("/<uuid:role_id>")
@require_auth
@require_level(Operation.ROLES_READ)
def get_role(role_id: UUID):
    try:
        return role_service.get_role(role_id)
    except BackofficeError as e:
        return e.to_dict(), e.status_code


@roles_bp.post("")
@require_auth
@require_level(Operation.ROLES_WRITE)
def create_role():
    payload = request.get_json(silent=True) or {}
    try:
        patch = validate_payload(model=Role, payload=payload, policy=ROLE_POLICY, partial=False)
        enforce_rules_role(patch)
        created = role_service.create_role(current_context(), patch=patch)
    except BackofficeError as e:
        return e.to_dict(), e.status_code
    return created, 201


@roles_bp.put("/<uuid:role_id>")
@require_auth
@require_level(Operation.ROLES_WRITE)
def update_role(role_id: UUID):
    payload = request.get_json(silent=True) or {}
    try:
        patch = validate_payload(model=Role, payload=payload, policy=ROLE_POLICY, partial=True)
        enforce_rules_role(patch)
        return role_service.update_role(current_context(), role_id, patch=patch)
    except BackofficeError as e:
        return e.to_dict(), e.status_code


@roles_bp.delete("/<uuid:role_id>")
@require_auth
@require_level(Operation.ROLES_WRITE)
def delete_role(role_id: UUID):
    try:
        role_service.delete_role(current_context(), role_id)
    except BackofficeError as e:
        return e.to_dict(), e.status_code
    return "", 204
