# backend/backoffice/config.py
from __future__ import annotations
import os


class Config:
    # Optional "SECRET_KEY", with default dev key
    SECRET_KEY = os.environ.get("SECRET_KEY", "dev-secret-key-change-me")

    # SQLite DB stored in backend/instance/backoffice.sqlite3
    SQLALCHEMY_DATABASE_URI = os.environ.get(
        "DATABASE_URL",  # optional alternative location
        "sqlite:///backoffice.sqlite3",  # default local location
    )
    SQLALCHEMY_TRACK_MODIFICATIONS = False

    LOG_LEVEL = os.environ.get("LOG_LEVEL", "INFO")

    # Uploads (CSV/XLSX batch import) are capped at 10MB
    MAX_CONTENT_LENGTH = int(os.environ.get("MAX_UPLOAD_BYTES", 10 * 1024 * 1024))

    # Session tokens
    SESSION_TTL_HOURS = int(os.environ.get("SESSION_TTL_HOURS", "24"))

    # Inventory lots expiring within this many days are "near_expiry"
    NEAR_EXPIRY_DAYS = int(os.environ.get("NEAR_EXPIRY_DAYS", "7"))

    # Allowed drift between client grand_total and server-computed total
    GRAND_TOTAL_TOLERANCE = os.environ.get("GRAND_TOTAL_TOLERANCE", "0.01")

    # Only this role level may act across stores
    SUPER_ADMIN_LEVEL = int(os.environ.get("SUPER_ADMIN_LEVEL", "99"))
