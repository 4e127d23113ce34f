# backend/backoffice/routes/uploads.py
"""Multipart upload handling shared by the batch import routes."""

from flask import request

from ..errors import ValidationError
from ..services import import_service


def read_uploaded_rows() -> list[dict]:
    """Rows from the multipart `file` field (CSV or XLSX)."""
    file = request.files.get("file")
    if file is None or not file.filename:
        raise ValidationError("File is required")

    fmt = import_service.detect_format(file.filename, file.mimetype)
    return import_service.read_rows(file.stream, fmt)
