from __future__ import annotations

import json

from ..extensions import db
from ..time_utils import to_utc_z, utcnow


class AuditEvent(db.Model):
    """
    Append-only record of domain events (lots received and depleted, orders
    created, product changes). Written in the same transaction as the change
    it records.
    """
    __tablename__ = "audit_events"
    __table_args__ = (
        db.Index("ix_audit_events_entity", "entity_type", "entity_id"),
        db.Index("ix_audit_events_store_occurred", "store_id", "occurred_at"),
        {"sqlite_autoincrement": True},
    )

    id = db.Column(db.Integer, primary_key=True)
    event_type = db.Column(db.String(64), nullable=False, index=True)
    entity_type = db.Column(db.String(32), nullable=False)
    entity_id = db.Column(db.String(64), nullable=False)
    store_id = db.Column(db.Uuid, nullable=True)
    actor_user_id = db.Column(db.Uuid, nullable=True)
    correlation_id = db.Column(db.String(64), nullable=True)
    occurred_at = db.Column(db.DateTime(timezone=True), nullable=False, default=utcnow)
    note = db.Column(db.String(255), nullable=True)
    payload = db.Column(db.Text, nullable=True)

    def to_dict(self) -> dict:
        return {
            "id": self.id,
            "event_type": self.event_type,
            "entity_type": self.entity_type,
            "entity_id": self.entity_id,
            "store_id": str(self.store_id) if self.store_id else None,
            "actor_user_id": str(self.actor_user_id) if self.actor_user_id else None,
            "correlation_id": self.correlation_id,
            "occurred_at": to_utc_z(self.occurred_at),
            "note": self.note,
            "payload": json.loads(self.payload) if self.payload else None,
        }
