from __future__ import annotations

import uuid
from dataclasses import dataclass
from datetime import datetime
from decimal import Decimal, InvalidOperation
from typing import Any

from sqlalchemy import Float, Integer, Numeric, String, Text, DateTime, Uuid
from sqlalchemy.orm import DeclarativeMeta

from .errors import FieldValidationError, ValidationError
from .models import LOT_STATUSES
from .time_utils import normalize_datetime, parse_iso_datetime

# Numeric(10, 2) ceiling
MAX_PRICE = Decimal("99999999.99")

DEFAULT_LIMIT = 10
MAX_LIMIT = 100


@dataclass(frozen=True)
class ModelValidationPolicy:
    """Which columns a resource accepts from clients, and which a create must include."""
    writable_fields: set[str]
    required_on_create: set[str] = None  # type: ignore


@dataclass(frozen=True)
class ListParams:
    limit: int = DEFAULT_LIMIT
    offset: int = 0
    search: str | None = None


def _columns_by_key(model: DeclarativeMeta) -> dict[str, Any]:
    mapper = model.__mapper__
    return {c.key: c for c in mapper.columns}


def _coerce_value(key: str, col, value: Any):
    coltype = col.type

    if value is None:
        return None

    # No floats, bools or exponent notation
    if isinstance(coltype, Integer):
        if isinstance(value, int) and not isinstance(value, bool):
            return value
        if isinstance(value, str):
            stripped = value.strip()
            if not stripped or "e" in stripped.lower() or "." in stripped:
                raise ValidationError(f"{key} must be an integer")
            try:
                return int(stripped)
            except ValueError:
                raise ValidationError(f"{key} must be an integer")
        raise ValidationError(f"{key} must be an integer")

    # Float before Numeric: Float is a Numeric subclass
    if isinstance(coltype, Float):
        return coerce_quantity(value, field=key)

    if isinstance(coltype, Numeric):
        return coerce_money(value, field=key)

    if isinstance(coltype, Uuid):
        return parse_uuid(value, field=key)

    # ISO-8601 strings or datetime objects, stored as naive UTC
    if isinstance(coltype, DateTime):
        if isinstance(value, datetime):
            return normalize_datetime(value)
        if isinstance(value, str):
            try:
                dt = parse_iso_datetime(value)
            except ValueError:
                raise ValidationError(f"{key} must be an ISO-8601 datetime")
            if dt is None:
                raise ValidationError(f"{key} must be an ISO-8601 datetime")
            return dt
        raise ValidationError(f"{key} must be a datetime")

    if isinstance(coltype, (String, Text)):
        return str(value).strip()

    return value


def coerce_money(value: Any, *, field: str) -> Decimal:
    if isinstance(value, bool):
        raise ValidationError(f"{field} must be a number")
    try:
        amount = Decimal(str(value).strip())
    except (InvalidOperation, ValueError):
        raise ValidationError(f"{field} must be a number")
    if not amount.is_finite():
        raise ValidationError(f"{field} must be a number")
    if amount < 0:
        raise ValidationError(f"{field} must be >= 0")
    if amount > MAX_PRICE:
        raise ValidationError(f"{field} cannot exceed {MAX_PRICE}")
    return amount.quantize(Decimal("0.01"))


def coerce_quantity(value: Any, *, field: str = "quantity") -> float:
    if isinstance(value, bool):
        raise ValidationError(f"{field} must be a number")
    try:
        qty = float(str(value).strip())
    except ValueError:
        raise ValidationError(f"{field} must be a number")
    if qty != qty or qty in (float("inf"), float("-inf")):
        raise ValidationError(f"{field} must be a number")
    return qty


def parse_uuid(value: Any, *, field: str = "id") -> uuid.UUID:
    if isinstance(value, uuid.UUID):
        return value
    try:
        return uuid.UUID(str(value).strip())
    except (ValueError, AttributeError):
        raise ValidationError(f"{field} must be a valid UUID")


def validate_payload(
    *,
    model: DeclarativeMeta,
    payload: dict,
    policy: ModelValidationPolicy,
    partial: bool,
) -> dict:
    """
    Turn a JSON body into a patch of typed column values.

    Types, nullability and String lengths come from the model's columns;
    the policy decides which keys are accepted at all. Every bad field is
    reported at once in a single FieldValidationError. With partial=False
    the policy's required_on_create keys must be present.
    """
    if payload is None:
        payload = {}
    if not isinstance(payload, dict):
        raise ValidationError("Invalid JSON payload")

    errors: list[dict[str, str]] = []
    required = policy.required_on_create or set()
    if not partial:
        for f in sorted(required):
            if f not in payload:
                errors.append({"field": f, "message": f"{f} is required"})

    cols = _columns_by_key(model)
    patch: dict = {}

    for k, raw in payload.items():
        if k not in policy.writable_fields or k not in cols:
            errors.append({"field": k, "message": f"Field not allowed: {k}"})
            continue
        col = cols[k]

        if raw is None:
            if not col.nullable:
                errors.append({"field": k, "message": f"{k} cannot be null"})
            else:
                patch[k] = None
            continue

        try:
            val = _coerce_value(k, col, raw)
        except ValidationError as e:
            errors.append({"field": k, "message": str(e)})
            continue

        if isinstance(col.type, (String, Text)) and not col.nullable and val == "":
            errors.append({"field": k, "message": f"{k} cannot be blank"})
            continue

        if isinstance(col.type, String) and col.type.length and isinstance(val, str):
            if len(val) > col.type.length:
                errors.append({"field": k, "message": f"{k} exceeds max length {col.type.length}"})
                continue

        patch[k] = val

    if errors:
        raise FieldValidationError(errors)
    return patch


def enforce_rules_role(patch: dict) -> None:
    level = patch.get("level")
    if level is not None and level < 0:
        raise FieldValidationError([{"field": "level", "message": "level must be >= 0"}])


def parse_list_params(args) -> ListParams:
    """
    limit: 1..100 (default 10); offset: >= 0 (default 0); search: trimmed text.
    """
    errors: list[dict[str, str]] = []

    limit = DEFAULT_LIMIT
    raw_limit = args.get("limit")
    if raw_limit not in (None, ""):
        try:
            limit = int(raw_limit)
            if limit < 1 or limit > MAX_LIMIT:
                raise ValueError
        except ValueError:
            errors.append({"field": "limit", "message": f"limit must be an integer between 1 and {MAX_LIMIT}"})

    offset = 0
    raw_offset = args.get("offset")
    if raw_offset not in (None, ""):
        try:
            offset = int(raw_offset)
            if offset < 0:
                raise ValueError
        except ValueError:
            errors.append({"field": "offset", "message": "offset must be a non-negative integer"})

    if errors:
        raise FieldValidationError(errors)

    search = (args.get("search") or "").strip() or None
    return ListParams(limit=limit, offset=offset, search=search)


def parse_status_filter(args) -> list[str] | None:
    """status may be given once, repeated, or comma-separated."""
    values: list[str] = []
    for raw in args.getlist("status"):
        values.extend(v.strip() for v in raw.split(",") if v.strip())
    if not values:
        return None
    invalid = [v for v in values if v not in LOT_STATUSES]
    if invalid:
        raise FieldValidationError([{
            "field": "status",
            "message": f"status must be one of: {', '.join(LOT_STATUSES)}",
        }])
    return values
