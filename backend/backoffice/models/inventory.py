from __future__ import annotations

from ..extensions import db
from ..time_utils import to_utc_z, utcnow
from .mixins import AuditColumnsMixin, uuid_pk

LOT_STATUS_ACTIVE = "active"
LOT_STATUS_NEAR_EXPIRY = "near_expiry"
LOT_STATUS_EXPIRED = "expired"
LOT_STATUSES = (LOT_STATUS_ACTIVE, LOT_STATUS_NEAR_EXPIRY, LOT_STATUS_EXPIRED)


class Category(AuditColumnsMixin, db.Model):
    __tablename__ = "categories"
    __table_args__ = {"sqlite_autoincrement": True}

    id = db.Column(db.Integer, primary_key=True)
    name = db.Column(db.String(120), nullable=False)
    # Middle segment of generated SKUs
    category_code = db.Column(db.String(20), nullable=False, unique=True, index=True)

    def to_dict(self) -> dict:
        from .auth import user_summary

        return {
            "id": self.id,
            "name": self.name,
            "category_code": self.category_code,
            "created_by": user_summary(self.created_by),
            "updated_by": user_summary(self.updated_by),
            "created_at": to_utc_z(self.created_at),
            "updated_at": to_utc_z(self.updated_at),
        }

    def to_summary(self) -> dict:
        return {"id": self.id, "name": self.name, "category_code": self.category_code}


class Product(AuditColumnsMixin, db.Model):
    """
    Sellable item owned by exactly one store.

    SKU is globally unique and immutable once assigned. Deleting a product
    removes its lots; a product referenced by order lines cannot be deleted.
    """
    __tablename__ = "products"
    __table_args__ = (
        db.Index("ix_products_store_name", "store_id", "name"),
        db.CheckConstraint("selling_price >= 0", name="ck_products_selling_price_non_negative"),
        db.CheckConstraint("purchase_price >= 0", name="ck_products_purchase_price_non_negative"),
    )

    id = uuid_pk()
    name = db.Column(db.String(255), nullable=False)
    category_id = db.Column(db.Integer, db.ForeignKey("categories.id"), nullable=False, index=True)
    store_id = db.Column(db.Uuid, db.ForeignKey("stores.id"), nullable=False, index=True)
    sku = db.Column(db.String(50), nullable=False, unique=True, index=True)

    selling_price = db.Column(db.Numeric(10, 2), nullable=False)
    purchase_price = db.Column(db.Numeric(10, 2), nullable=False)

    category = db.relationship("Category", backref=db.backref("products", lazy=True))
    store = db.relationship("Store", foreign_keys=[store_id], backref=db.backref("products", lazy=True))
    lots = db.relationship(
        "InventoryLot",
        back_populates="product",
        cascade="all, delete-orphan",
    )

    def to_dict(self) -> dict:
        from .auth import user_summary

        return {
            "id": str(self.id),
            "name": self.name,
            "sku": self.sku,
            "category_id": self.category_id,
            "category": self.category.to_summary() if self.category else None,
            "store_id": str(self.store_id),
            "store": self.store.to_summary() if self.store else None,
            "selling_price": float(self.selling_price) if self.selling_price is not None else None,
            "purchase_price": float(self.purchase_price) if self.purchase_price is not None else None,
            "created_by": user_summary(self.created_by),
            "updated_by": user_summary(self.updated_by),
            "created_at": to_utc_z(self.created_at),
            "updated_at": to_utc_z(self.updated_at),
        }

    def to_summary(self) -> dict:
        return {"id": str(self.id), "name": self.name, "sku": self.sku}


class InventoryLot(db.Model):
    """
    A quantity of one product received together, optionally expiring.

    Lots are never edited after receipt except by depletion, which reduces
    `quantity` or deletes the row. `status` is computed when the lot is
    received; availability re-evaluates `expiry_date` at read time.
    """
    __tablename__ = "inventory"
    __table_args__ = (
        db.Index("ix_inventory_product_expiry", "product_id", "expiry_date", "created_at"),
        db.Index("ix_inventory_status", "status"),
        db.CheckConstraint("quantity >= 0", name="ck_inventory_quantity_non_negative"),
    )

    id = uuid_pk()
    product_id = db.Column(db.Uuid, db.ForeignKey("products.id", ondelete="CASCADE"), nullable=False, index=True)
    quantity = db.Column(db.Float, nullable=False)
    location = db.Column(db.String(255), nullable=True)
    expiry_date = db.Column(db.DateTime(timezone=True), nullable=True)
    status = db.Column(db.String(20), nullable=False, default=LOT_STATUS_ACTIVE)

    created_by_id = db.Column(
        db.Uuid,
        db.ForeignKey("users.id", ondelete="SET NULL", use_alter=True, name="fk_inventory_created_by"),
        nullable=True,
    )
    # Application-set with microsecond precision; FIFO tie-break
    created_at = db.Column(db.DateTime(timezone=True), nullable=False, default=utcnow)

    product = db.relationship("Product", back_populates="lots")
    created_by = db.relationship("User", foreign_keys=[created_by_id])

    def to_dict(self, *, current_status: str | None = None) -> dict:
        from .auth import user_summary

        product = self.product
        return {
            "id": str(self.id),
            "product_id": str(self.product_id),
            "product": {
                "id": str(product.id),
                "name": product.name,
                "sku": product.sku,
                "store_id": str(product.store_id),
                "category": product.category.to_summary() if product.category else None,
            } if product else None,
            "quantity": self.quantity,
            "location": self.location,
            "expiry_date": to_utc_z(self.expiry_date),
            "status": self.status,
            "current_status": current_status or self.status,
            "created_by": user_summary(self.created_by),
            "created_at": to_utc_z(self.created_at),
        }
