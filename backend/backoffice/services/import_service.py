# Overview: Batch import adapter; turns uploaded CSV/XLSX rows into catalog and ledger calls.

"""
Batch import.

Uploaded spreadsheets are parsed into plain dict rows, header aliases are
folded onto canonical field names, and the rows are handed to the catalog
(products) or the ledger (inventory lots) as one all-or-nothing batch.

Accepted headers:
- products: name, category_id | category_code, store_id, sku, selling_price, purchase_price
- inventory: product_id | sku, quantity, location, expiry_date, store_id
Each field also accepts its camelCase and Title Case spelling.
"""

from __future__ import annotations

import csv
import io
from typing import Any

from openpyxl import load_workbook

from ..context import RequestContext
from ..errors import FieldValidationError, NotFoundError, UserHasNoStoreError, ValidationError
from ..models import Product
from ..permissions import is_super_admin
from ..validation import ModelValidationPolicy, validate_payload
from . import category_service, inventory_service, products_service

CSV_MIME_TYPES = {"text/csv", "application/csv"}
XLSX_MIME_TYPES = {
    "application/vnd.openxmlformats-officedocument.spreadsheetml.sheet",
    "application/vnd.ms-excel",
}
ALLOWED_MIME_TYPES = CSV_MIME_TYPES | XLSX_MIME_TYPES

PRODUCT_ALIASES = {
    "name": ("name", "Name"),
    "category_id": ("category_id", "categoryId", "Category ID"),
    "category_code": ("category_code", "categoryCode", "Category Code"),
    "store_id": ("store_id", "storeId", "Store ID"),
    "sku": ("sku", "SKU"),
    "selling_price": ("selling_price", "sellingPrice", "Selling Price"),
    "purchase_price": ("purchase_price", "purchasePrice", "Purchase Price"),
}

INVENTORY_ALIASES = {
    "product_id": ("product_id", "productId", "Product ID"),
    "sku": ("sku", "SKU"),
    "quantity": ("quantity", "Quantity"),
    "location": ("location", "Location"),
    "expiry_date": ("expiry_date", "expiryDate", "Expiry Date"),
    "store_id": ("store_id", "storeId", "Store ID"),
}

PRODUCT_ROW_POLICY = ModelValidationPolicy(
    writable_fields={"name", "category_id", "sku", "selling_price", "purchase_price"},
    required_on_create={"name", "category_id", "selling_price", "purchase_price"},
)


def detect_format(filename: str | None, mimetype: str | None) -> str:
    """Returns "csv" or "xlsx"; raises ValidationError for anything else."""
    ext = (filename or "").rsplit(".", 1)[-1].lower() if filename and "." in filename else ""
    mimetype = (mimetype or "").split(";")[0].strip().lower()

    if mimetype in CSV_MIME_TYPES or ext == "csv":
        return "csv"
    if mimetype in XLSX_MIME_TYPES or ext in {"xlsx", "xlsm"}:
        return "xlsx"
    raise ValidationError("Invalid file type. Only CSV and XLSX files are allowed.")


def _clean_cell(value: Any) -> Any:
    if isinstance(value, str):
        value = value.strip()
        return value or None
    return value


def read_rows(stream, fmt: str) -> list[dict[str, Any]]:
    """Header row first; blank rows are skipped."""
    if fmt == "csv":
        raw = stream.read()
        try:
            text = raw.decode("utf-8-sig") if isinstance(raw, bytes) else raw
            reader = csv.DictReader(io.StringIO(text))
            rows = [{(k or "").strip(): _clean_cell(v) for k, v in row.items()} for row in reader]
        except (UnicodeDecodeError, csv.Error) as e:
            raise ValidationError(f"Failed to parse upload: {e}") from e
    else:
        try:
            wb = load_workbook(stream, read_only=True, data_only=True)
        except Exception as e:
            raise ValidationError(f"Failed to parse upload: {e}") from e
        try:
            sheet = wb.active
            data = list(sheet.values)
        finally:
            wb.close()
        if not data:
            return []
        headers = [str(h).strip() if h is not None else "" for h in data[0]]
        rows = [
            {headers[i]: _clean_cell(row[i]) for i in range(min(len(headers), len(row)))}
            for row in data[1:]
        ]
    return [row for row in rows if any(v not in (None, "") for v in row.values())]


def fold_aliases(row: dict[str, Any], aliases: dict[str, tuple[str, ...]]) -> dict[str, Any]:
    out: dict[str, Any] = {}
    for field, names in aliases.items():
        value = None
        for name in names:
            if row.get(name) not in (None, ""):
                value = row[name]
                break
        out[field] = value
    return out


def _integral(value: Any) -> Any:
    # Spreadsheet numbers arrive as floats (3.0)
    if isinstance(value, float) and value.is_integer():
        return int(value)
    return value


def _stringify(value: Any) -> Any:
    if value is None or isinstance(value, str):
        return value
    return str(value)


def _require_store_scope(ctx: RequestContext, rows: list[dict], noun: str) -> None:
    actor = ctx.actor
    if is_super_admin(actor.level):
        missing = sum(1 for row in rows if row.get("store_id") in (None, ""))
        if missing:
            raise ValidationError(
                f"Store ID is required for all {noun} when uploading as super admin. "
                f"Missing store_id in {missing} row(s)."
            )
    elif actor.store_id is None:
        raise UserHasNoStoreError(f"User must have a store assigned to upload {noun}")


def import_products(ctx: RequestContext, rows: list[dict[str, Any]]) -> list[dict]:
    if not rows:
        raise ValidationError("No data found in file")
    folded = [fold_aliases(row, PRODUCT_ALIASES) for row in rows]
    _require_store_scope(ctx, folded, "products")

    prepared: list[dict] = []
    errors: list[dict[str, str]] = []
    for idx, row in enumerate(folded, start=1):
        if row["category_id"] is None and row["category_code"] is not None:
            category = category_service.get_category_by_code(str(row["category_code"]))
            if category is None:
                errors.append({
                    "field": f"row {idx}: category_code",
                    "message": f"Category not found with code: {row['category_code']}",
                })
                continue
            row["category_id"] = category.id

        payload = {
            "name": _stringify(row["name"]),
            "category_id": _integral(row["category_id"]),
            "selling_price": row["selling_price"],
            "purchase_price": row["purchase_price"],
        }
        if row["sku"] is not None:
            payload["sku"] = _stringify(row["sku"])
        payload = {k: v for k, v in payload.items() if v is not None}
        try:
            patch = validate_payload(model=Product, payload=payload, policy=PRODUCT_ROW_POLICY, partial=False)
        except FieldValidationError as e:
            errors.extend({"field": f"row {idx}: {err['field']}", "message": err["message"]} for err in e.errors)
            continue
        patch["store_id"] = _stringify(row["store_id"])
        prepared.append(patch)

    if errors:
        raise FieldValidationError(errors)

    ctx.logger.info("Importing %d product row(s)", len(prepared))
    return products_service.create_products_batch(ctx, prepared)


def import_inventory(ctx: RequestContext, rows: list[dict[str, Any]]) -> list[dict]:
    if not rows:
        raise ValidationError("No data found in file")
    folded = [fold_aliases(row, INVENTORY_ALIASES) for row in rows]
    _require_store_scope(ctx, folded, "inventory")

    entries: list[dict] = []
    for idx, row in enumerate(folded, start=1):
        product_id = _stringify(row["product_id"])
        if product_id is None and row["sku"] is not None:
            product = products_service.get_product_by_sku(_stringify(row["sku"]))
            if product is None:
                raise NotFoundError(f"Product not found with SKU: {row['sku']}")
            product_id = product.id
        if product_id is None:
            raise FieldValidationError([{"field": f"row {idx}: product_id", "message": "Product ID or SKU is required"}])

        entries.append({
            "product_id": product_id,
            "quantity": row["quantity"],
            "location": _stringify(row["location"]),
            "expiry_date": row["expiry_date"],
            "store_id": _stringify(row["store_id"]),
        })

    ctx.logger.info("Importing %d inventory row(s)", len(entries))
    return inventory_service.create_lots_batch(ctx, entries)
