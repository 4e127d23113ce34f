from __future__ import annotations

from ..extensions import db
from ..time_utils import to_utc_z
from .mixins import AuditColumnsMixin, uuid_pk


class Store(AuditColumnsMixin, db.Model):
    """
    A retail location; the tenant boundary for products, lots and orders.

    `code` is the short upper-case identifier used as the SKU prefix and the
    invoice-number prefix. A store without a code cannot own products or
    take part in checkout.
    """
    __tablename__ = "stores"

    id = uuid_pk()
    name = db.Column(db.String(120), nullable=False)
    address = db.Column(db.String(255), nullable=True)
    phone = db.Column(db.String(32), nullable=True)
    code = db.Column(db.String(20), nullable=True, unique=True, index=True)

    def __repr__(self) -> str:
        return f"<Store id={self.id} code={self.code!r}>"

    def to_dict(self) -> dict:
        from .auth import user_summary

        return {
            "id": str(self.id),
            "name": self.name,
            "address": self.address,
            "phone": self.phone,
            "code": self.code,
            "created_by": user_summary(self.created_by),
            "updated_by": user_summary(self.updated_by),
            "created_at": to_utc_z(self.created_at),
            "updated_at": to_utc_z(self.updated_at),
        }

    def to_summary(self) -> dict:
        return {"id": str(self.id), "name": self.name, "code": self.code}
