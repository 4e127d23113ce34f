"""
Level-based access policy.

Every protected operation maps to the minimum role level allowed to perform
it. Routes consume this table through the require_level decorator; nothing
else hard-codes levels. SUPER_ADMIN_LEVEL is the only level allowed to act
across stores.
"""

from __future__ import annotations

from flask import current_app, has_app_context

from .errors import AuthorizationError

SUPER_ADMIN_LEVEL = 99
MANAGER_LEVEL = 51
STAFF_LEVEL = 40
AUTHENTICATED_LEVEL = 0


class Operation:
    AUTH_SESSION = "auth.session"

    STORES_READ = "stores.read"
    STORES_WRITE = "stores.write"
    ROLES_READ = "roles.read"
    ROLES_WRITE = "roles.write"
    CATEGORIES_READ = "categories.read"
    CATEGORIES_WRITE = "categories.write"
    USERS_READ = "users.read"
    USERS_WRITE = "users.write"

    PRODUCTS_READ = "products.read"
    PRODUCTS_WRITE = "products.write"
    PRODUCTS_BATCH = "products.batch"

    INVENTORY_READ = "inventory.read"
    INVENTORY_WRITE = "inventory.write"
    INVENTORY_BATCH = "inventory.batch"

    ORDERS_CHECKOUT = "orders.checkout"
    ORDERS_READ = "orders.read"


LEVEL_POLICY: dict[str, int] = {
    Operation.AUTH_SESSION: AUTHENTICATED_LEVEL,

    Operation.STORES_READ: AUTHENTICATED_LEVEL,
    Operation.STORES_WRITE: MANAGER_LEVEL,
    Operation.ROLES_READ: AUTHENTICATED_LEVEL,
    Operation.ROLES_WRITE: MANAGER_LEVEL,
    Operation.CATEGORIES_READ: AUTHENTICATED_LEVEL,
    Operation.CATEGORIES_WRITE: MANAGER_LEVEL,
    Operation.USERS_READ: AUTHENTICATED_LEVEL,
    Operation.USERS_WRITE: MANAGER_LEVEL,

    Operation.PRODUCTS_READ: AUTHENTICATED_LEVEL,
    Operation.PRODUCTS_WRITE: STAFF_LEVEL,
    Operation.PRODUCTS_BATCH: STAFF_LEVEL,

    Operation.INVENTORY_READ: AUTHENTICATED_LEVEL,
    Operation.INVENTORY_WRITE: STAFF_LEVEL,
    Operation.INVENTORY_BATCH: STAFF_LEVEL,

    Operation.ORDERS_CHECKOUT: STAFF_LEVEL,
    Operation.ORDERS_READ: STAFF_LEVEL,
}


def super_admin_level() -> int:
    if has_app_context():
        return int(current_app.config.get("SUPER_ADMIN_LEVEL", SUPER_ADMIN_LEVEL))
    return SUPER_ADMIN_LEVEL


def is_super_admin(level: int | None) -> bool:
    return level is not None and level >= super_admin_level()


def required_level(operation: str) -> int:
    try:
        return LEVEL_POLICY[operation]
    except KeyError:
        raise KeyError(f"No access policy defined for operation {operation!r}") from None


def check_level(level: int | None, operation: str) -> None:
    """Raise AuthorizationError when level is below the operation's minimum."""
    needed = required_level(operation)
    current = level if level is not None else 0
    if current < needed:
        raise AuthorizationError(
            f"Access denied. Required level: {needed}, Current level: {current}",
            details={"required_level": needed, "current_level": current},
        )
