# Overview: Domain error taxonomy; each error carries the HTTP status routes respond with.

from __future__ import annotations

from typing import Any


class BackofficeError(Exception):
    """Base class for domain errors raised by services."""

    status_code = 500

    def __init__(self, message: str, *, details: dict[str, Any] | None = None):
        super().__init__(message)
        self.message = message
        self.details = details or {}

    def to_dict(self) -> dict:
        body: dict[str, Any] = {"error": self.message}
        if self.details:
            body["details"] = self.details
        return body


class ValidationError(BackofficeError):
    """400-level input problem."""

    status_code = 400


class FieldValidationError(ValidationError):
    """Input problem reported per field: {"errors": [{field, message}]}."""

    def __init__(self, errors: list[dict[str, str]]):
        self.errors = list(errors)
        summary = "; ".join(f"{e['field']}: {e['message']}" for e in self.errors)
        super().__init__(summary or "Validation failed")

    def to_dict(self) -> dict:
        return {"errors": self.errors}


class GrandTotalMismatchError(ValidationError):
    pass


class ProductNotInStoreError(ValidationError):
    pass


class NotFoundError(BackofficeError):
    status_code = 404


class AuthenticationError(BackofficeError):
    status_code = 401


class AuthorizationError(BackofficeError):
    status_code = 403


class UserHasNoStoreError(AuthorizationError):
    def __init__(self, message: str = "User must have a store assigned to perform this operation"):
        super().__init__(message)


class ConflictError(BackofficeError):
    """Business rule conflict (duplicate SKU, unique key, referenced row)."""

    status_code = 400


class DuplicateSkuError(ConflictError):
    def __init__(self, sku: str):
        super().__init__(f"Product with SKU {sku} already exists", details={"sku": sku})
        self.sku = sku


class InsufficientInventoryError(BackofficeError):
    """
    Raised when allocatable lots cannot cover a request.

    details: requested / available / missing quantities for the product.
    """

    status_code = 400

    def __init__(
        self,
        message: str,
        *,
        product_id: Any = None,
        requested: float = 0,
        available: float = 0,
    ):
        missing = max(float(requested) - float(available), 0.0)
        super().__init__(
            message,
            details={
                "product_id": str(product_id) if product_id is not None else None,
                "requested": float(requested),
                "available": float(available),
                "missing": missing,
            },
        )
        self.product_id = product_id
        self.requested = float(requested)
        self.available = float(available)
        self.missing = missing


class ProductHasNoInventoryError(InsufficientInventoryError):
    def __init__(self, product_id: Any, requested: float = 0):
        super().__init__(
            f"No inventory found for product {product_id}",
            product_id=product_id,
            requested=requested,
            available=0,
        )


class InternalError(BackofficeError):
    status_code = 500

    def __init__(self, message: str = "Internal server error"):
        super().__init__(message)
