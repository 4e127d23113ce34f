from __future__ import annotations

import uuid

from sqlalchemy.orm import declared_attr

from ..extensions import db
from ..time_utils import utcnow


def uuid_pk():
    return db.Column(db.Uuid, primary_key=True, default=uuid.uuid4)


class AuditColumnsMixin:
    """
    created_by/updated_by attribution plus timestamps.

    The user references are weak: deleting a user nulls them out.
    """

    @declared_attr
    def created_by_id(cls):
        return db.Column(
            db.Uuid,
            db.ForeignKey("users.id", ondelete="SET NULL", use_alter=True,
                          name=f"fk_{cls.__tablename__}_created_by"),
            nullable=True,
        )

    @declared_attr
    def updated_by_id(cls):
        return db.Column(
            db.Uuid,
            db.ForeignKey("users.id", ondelete="SET NULL", use_alter=True,
                          name=f"fk_{cls.__tablename__}_updated_by"),
            nullable=True,
        )

    @declared_attr
    def created_by(cls):
        return db.relationship(
            "User", foreign_keys=f"{cls.__name__}.created_by_id", remote_side="User.id"
        )

    @declared_attr
    def updated_by(cls):
        return db.relationship(
            "User", foreign_keys=f"{cls.__name__}.updated_by_id", remote_side="User.id"
        )

    @declared_attr
    def created_at(cls):
        return db.Column(db.DateTime(timezone=True), nullable=False, default=utcnow)

    @declared_attr
    def updated_at(cls):
        return db.Column(db.DateTime(timezone=True), nullable=False, default=utcnow, onupdate=utcnow)
