from __future__ import annotations

from ..extensions import db
from ..time_utils import to_utc_z, utcnow
from .mixins import AuditColumnsMixin, uuid_pk


def user_summary(user) -> dict | None:
    """Compact {id, name, email} rendering used for attribution fields."""
    if user is None:
        return None
    return {"id": str(user.id), "name": user.name, "email": user.email}


class Role(AuditColumnsMixin, db.Model):
    """
    Named authority level. Higher level means more authority; 99 is the
    super admin level, the only one allowed to act across stores.
    """
    __tablename__ = "roles"
    __table_args__ = (
        db.CheckConstraint("level >= 0", name="ck_roles_level_non_negative"),
    )

    id = uuid_pk()
    name = db.Column(db.String(64), nullable=False, unique=True)
    level = db.Column(db.Integer, nullable=False, default=0)

    def to_dict(self) -> dict:
        return {
            "id": str(self.id),
            "name": self.name,
            "level": self.level,
            "created_by": user_summary(self.created_by),
            "updated_by": user_summary(self.updated_by),
            "created_at": to_utc_z(self.created_at),
            "updated_at": to_utc_z(self.updated_at),
        }


class User(AuditColumnsMixin, db.Model):
    """User accounts for authentication and attribution."""
    __tablename__ = "users"

    id = uuid_pk()
    username = db.Column(db.String(64), nullable=False, unique=True, index=True)
    email = db.Column(db.String(255), nullable=False, unique=True)
    name = db.Column(db.String(255), nullable=False)

    # Bcrypt hashed password
    password_hash = db.Column(db.String(255), nullable=False)

    role_id = db.Column(db.Uuid, db.ForeignKey("roles.id", ondelete="SET NULL"), nullable=True, index=True)
    store_id = db.Column(db.Uuid, db.ForeignKey("stores.id", ondelete="SET NULL"), nullable=True, index=True)

    last_login_at = db.Column(db.DateTime(timezone=True), nullable=True)

    role = db.relationship("Role", foreign_keys=[role_id], backref=db.backref("users", lazy=True))
    store = db.relationship("Store", foreign_keys=[store_id], backref=db.backref("users", lazy=True))

    @property
    def level(self) -> int:
        return self.role.level if self.role is not None else 0

    def to_dict(self) -> dict:
        return {
            "id": str(self.id),
            "username": self.username,
            "email": self.email,
            "name": self.name,
            "role_id": str(self.role_id) if self.role_id else None,
            "role": {"id": str(self.role.id), "name": self.role.name, "level": self.role.level} if self.role else None,
            "store_id": str(self.store_id) if self.store_id else None,
            "store": self.store.to_summary() if self.store else None,
            "created_by": user_summary(self.created_by),
            "updated_by": user_summary(self.updated_by),
            "created_at": to_utc_z(self.created_at),
            "updated_at": to_utc_z(self.updated_at),
            "last_login_at": to_utc_z(self.last_login_at) if self.last_login_at else None,
        }


class SessionToken(db.Model):
    """
    Opaque bearer session. Only the SHA-256 hash of the token is stored.
    """
    __tablename__ = "session_tokens"
    __table_args__ = (
        db.Index("ix_session_tokens_user_revoked", "user_id", "revoked_at"),
        {"sqlite_autoincrement": True},
    )

    id = db.Column(db.Integer, primary_key=True)
    user_id = db.Column(db.Uuid, db.ForeignKey("users.id", ondelete="CASCADE"), nullable=False, index=True)
    token_hash = db.Column(db.String(64), nullable=False, unique=True, index=True)

    created_at = db.Column(db.DateTime(timezone=True), nullable=False, default=utcnow)
    last_used_at = db.Column(db.DateTime(timezone=True), nullable=False, default=utcnow)
    expires_at = db.Column(db.DateTime(timezone=True), nullable=False)
    revoked_at = db.Column(db.DateTime(timezone=True), nullable=True)

    user_agent = db.Column(db.String(255), nullable=True)
    ip_address = db.Column(db.String(64), nullable=True)

    user = db.relationship(
        "User",
        backref=db.backref("sessions", lazy=True, cascade="all, delete-orphan"),
    )

    @property
    def is_revoked(self) -> bool:
        return self.revoked_at is not None

    def to_dict(self) -> dict:
        return {
            "id": self.id,
            "user_id": str(self.user_id),
            "created_at": to_utc_z(self.created_at),
            "last_used_at": to_utc_z(self.last_used_at),
            "expires_at": to_utc_z(self.expires_at),
            "revoked_at": to_utc_z(self.revoked_at),
        }
