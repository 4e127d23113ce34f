from __future__ import annotations

from ..extensions import db
from ..time_utils import to_utc_z, utcnow

# BIGINT identities; SQLite only autoincrements INTEGER PRIMARY KEY
BigIntPK = db.BigInteger().with_variant(db.Integer, "sqlite")


class Order(db.Model):
    """
    A completed checkout. Orders are immutable once committed.
    """
    __tablename__ = "orders"
    __table_args__ = (
        db.Index("ix_orders_store_created", "store_id", "created_at"),
        {"sqlite_autoincrement": True},
    )

    id = db.Column(BigIntPK, primary_key=True, autoincrement=True)
    invoice_number = db.Column(db.String(32), nullable=False, unique=True)
    customer_name = db.Column(db.String(255), nullable=True)
    total_price = db.Column(db.Numeric(10, 2), nullable=False)

    store_id = db.Column(db.Uuid, db.ForeignKey("stores.id", ondelete="RESTRICT"), nullable=False, index=True)
    created_by_id = db.Column(
        db.Uuid,
        db.ForeignKey("users.id", ondelete="SET NULL", use_alter=True, name="fk_orders_created_by"),
        nullable=True,
    )
    created_at = db.Column(db.DateTime(timezone=True), nullable=False, default=utcnow)

    store = db.relationship("Store", foreign_keys=[store_id])
    created_by = db.relationship("User", foreign_keys=[created_by_id])
    lines = db.relationship(
        "OrderLine",
        back_populates="order",
        cascade="all, delete-orphan",
        passive_deletes=True,
        order_by="OrderLine.id",
    )

    def to_dict(self, *, include_lines: bool = True) -> dict:
        from .auth import user_summary

        data = {
            "id": self.id,
            "invoice_number": self.invoice_number,
            "customer_name": self.customer_name,
            "total_price": float(self.total_price),
            "store_id": str(self.store_id),
            "store": self.store.to_summary() if self.store else None,
            "created_by": user_summary(self.created_by),
            "created_at": to_utc_z(self.created_at),
        }
        if include_lines:
            data["items"] = [line.to_dict() for line in self.lines]
        return data


class OrderLine(db.Model):
    __tablename__ = "order_items"
    __table_args__ = {"sqlite_autoincrement": True}

    id = db.Column(BigIntPK, primary_key=True, autoincrement=True)
    order_id = db.Column(BigIntPK, db.ForeignKey("orders.id", ondelete="CASCADE"), nullable=False, index=True)
    product_id = db.Column(db.Uuid, db.ForeignKey("products.id", ondelete="RESTRICT"), nullable=False, index=True)
    quantity = db.Column(db.Float, nullable=False)
    # quantity x selling_price at sale time
    total_price = db.Column(db.Numeric(10, 2), nullable=False)
    created_at = db.Column(db.DateTime(timezone=True), nullable=False, default=utcnow)

    order = db.relationship("Order", back_populates="lines")
    product = db.relationship("Product", backref=db.backref("order_lines", lazy=True, passive_deletes="all"))

    def to_dict(self) -> dict:
        return {
            "id": self.id,
            "order_id": self.order_id,
            "product_id": str(self.product_id),
            "product": self.product.to_summary() if self.product else None,
            "quantity": self.quantity,
            "total_price": float(self.total_price),
            "created_at": to_utc_z(self.created_at),
        }
