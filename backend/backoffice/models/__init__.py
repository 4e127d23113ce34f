from .tenancy import Store
from .auth import Role, User, SessionToken, user_summary
from .inventory import (
    Category,
    Product,
    InventoryLot,
    LOT_STATUSES,
    LOT_STATUS_ACTIVE,
    LOT_STATUS_NEAR_EXPIRY,
    LOT_STATUS_EXPIRED,
)
from .sales import Order, OrderLine
from .audit import AuditEvent

__all__ = [
    'Store',
    'Role', 'User', 'SessionToken', 'user_summary',
    'Category', 'Product', 'InventoryLot',
    'LOT_STATUSES', 'LOT_STATUS_ACTIVE', 'LOT_STATUS_NEAR_EXPIRY', 'LOT_STATUS_EXPIRED',
    'Order', 'OrderLine',
    'AuditEvent',
]
