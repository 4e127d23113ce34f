# Overview: Append-only audit trail for inventory, product and order events.

from __future__ import annotations

import json
from datetime import datetime
from typing import Any, Optional

from ..extensions import db
from ..models import AuditEvent
from ..time_utils import utcnow

EVENT_LOT_RECEIVED = "LOT_RECEIVED"
EVENT_LOT_DEPLETED = "LOT_DEPLETED"
EVENT_LOT_REMOVED = "LOT_REMOVED"
EVENT_ORDER_CREATED = "ORDER_CREATED"
EVENT_PRODUCT_CREATED = "PRODUCT_CREATED"
EVENT_PRODUCT_UPDATED = "PRODUCT_UPDATED"
EVENT_PRODUCT_DELETED = "PRODUCT_DELETED"


def append_audit_event(
    *,
    event_type: str,
    entity_type: str,
    entity_id: Any,
    store_id: Any = None,
    actor_user_id: Any = None,
    correlation_id: str | None = None,
    occurred_at: Optional[datetime] = None,
    note: Optional[str] = None,
    payload: dict | None = None,
) -> AuditEvent:
    """
    Append-only audit event.

    - No domain logic here.
    - No deletes/updates of existing events.
    - Flushed, not committed: the caller's transaction owns it.
    """
    ev = AuditEvent(
        event_type=event_type,
        entity_type=entity_type,
        entity_id=str(entity_id),
        store_id=store_id,
        actor_user_id=actor_user_id,
        correlation_id=correlation_id,
        occurred_at=occurred_at or utcnow(),
        note=note,
        payload=json.dumps(payload, default=str) if payload is not None else None,
    )
    db.session.add(ev)
    db.session.flush()
    return ev


def list_events(*, entity_type: str | None = None, entity_id: Any = None, limit: int = 100) -> list[dict]:
    """Newest first. Order detail embeds the events of its order."""
    query = db.session.query(AuditEvent)
    if entity_type:
        query = query.filter(AuditEvent.entity_type == entity_type)
    if entity_id is not None:
        query = query.filter(AuditEvent.entity_id == str(entity_id))
    events = query.order_by(AuditEvent.occurred_at.desc(), AuditEvent.id.desc()).limit(limit).all()
    return [ev.to_dict() for ev in events]
