"""
Batch import tests (CSV and XLSX uploads for products and inventory).
"""

import io
from datetime import datetime, timedelta

import pytest
from openpyxl import Workbook

from backoffice.errors import ValidationError
from backoffice.extensions import db
from backoffice.models import InventoryLot, Product
from backoffice.services import import_service
from backoffice.time_utils import utcnow


def _upload(client, path, headers, content: bytes, filename: str):
    return client.post(
        path,
        data={"file": (io.BytesIO(content), filename)},
        headers=headers,
        content_type="multipart/form-data",
    )


def _xlsx(rows) -> bytes:
    wb = Workbook()
    sheet = wb.active
    for row in rows:
        sheet.append(row)
    out = io.BytesIO()
    wb.save(out)
    return out.getvalue()


class TestRowParsing:

    def test_csv_skips_blank_rows_and_trims(self):
        raw = b"\xef\xbb\xbfname, sku \n  Bread , B-1\n,\nMilk,M-1\n"
        rows = import_service.read_rows(io.BytesIO(raw), "csv")
        assert rows == [{"name": "Bread", "sku": "B-1"}, {"name": "Milk", "sku": "M-1"}]

    def test_aliases_fold_onto_canonical_names(self):
        row = {"Name": "Bread", "sellingPrice": "2.00", "Purchase Price": "1.00", "Category Code": "FOOD"}
        folded = import_service.fold_aliases(row, import_service.PRODUCT_ALIASES)
        assert folded["name"] == "Bread"
        assert folded["selling_price"] == "2.00"
        assert folded["purchase_price"] == "1.00"
        assert folded["category_code"] == "FOOD"
        assert folded["store_id"] is None

    def test_csv_that_is_not_utf8(self):
        raw = b"name,category_code,selling_price,purchase_price\n\xff\xfeBad,1,1,1\n"
        with pytest.raises(ValidationError, match="Failed to parse upload"):
            import_service.read_rows(io.BytesIO(raw), "csv")

    def test_format_detection(self):
        assert import_service.detect_format("a.csv", "application/octet-stream") == "csv"
        assert import_service.detect_format("a.xlsx", None) == "xlsx"
        assert import_service.detect_format("upload", "text/csv") == "csv"


class TestProductUpload:

    def test_csv_with_aliased_headers(self, client, staff_headers, store_a, category):
        csv_body = (
            "Name,Category Code,Selling Price,Purchase Price,SKU\n"
            "Bread,FOOD,2.50,1.10,CSV-1\n"
            "Milk,FOOD,1.20,0.80,CSV-2\n"
        ).encode()

        resp = _upload(client, "/api/products/batch", staff_headers, csv_body, "products.csv")

        assert resp.status_code == 201
        data = resp.get_json()
        assert data["message"] == "Successfully created 2 products"
        assert data["count"] == 2
        assert {p["sku"] for p in data["data"]} == {"CSV-1", "CSV-2"}
        assert all(p["store_id"] == str(store_a.id) for p in data["data"])

    def test_xlsx_upload(self, client, staff_headers, category):
        content = _xlsx([
            ["name", "category_id", "selling_price", "purchase_price", "sku"],
            ["Cheese", category.id, 7.5, 4, "XL-1"],
        ])

        resp = _upload(client, "/api/products/batch", staff_headers, content, "products.xlsx")

        assert resp.status_code == 201
        assert resp.get_json()["data"][0]["selling_price"] == 7.5

    def test_super_admin_rows_need_store_id(self, client, super_admin_headers, category):
        csv_body = (
            "name,category_id,selling_price,purchase_price\n"
            f"Bread,{category.id},2.50,1.10\n"
            f"Milk,{category.id},1.20,0.80\n"
        ).encode()

        resp = _upload(client, "/api/products/batch", super_admin_headers, csv_body, "products.csv")

        assert resp.status_code == 400
        assert resp.get_json()["error"] == (
            "Store ID is required for all products when uploading as super admin. "
            "Missing store_id in 2 row(s)."
        )

    def test_super_admin_with_store_id(self, client, super_admin_headers, store_b, category):
        csv_body = (
            "name,category_id,selling_price,purchase_price,store_id\n"
            f"Bread,{category.id},2.50,1.10,{store_b.id}\n"
        ).encode()

        resp = _upload(client, "/api/products/batch", super_admin_headers, csv_body, "products.csv")

        assert resp.status_code == 201
        assert resp.get_json()["data"][0]["sku"].startswith("EAST-FOOD-")

    def test_user_without_store(self, client, headers_for, staff_no_store, category):
        csv_body = f"name,category_id,selling_price,purchase_price\nBread,{category.id},1,1\n".encode()

        resp = _upload(client, "/api/products/batch", headers_for(staff_no_store), csv_body, "p.csv")

        assert resp.status_code == 403

    def test_bad_rows_reject_whole_file(self, client, staff_headers, category):
        csv_body = (
            "name,category_code,selling_price,purchase_price,sku\n"
            "Bread,FOOD,2.50,1.10,OK-1\n"
            "Milk,NOPE,1.20,0.80,OK-2\n"
            "Eggs,FOOD,-3,0.80,OK-3\n"
        ).encode()

        resp = _upload(client, "/api/products/batch", staff_headers, csv_body, "products.csv")

        assert resp.status_code == 400
        fields = [e["field"] for e in resp.get_json()["errors"]]
        assert fields == ["row 2: category_code", "row 3: selling_price"]
        assert db.session.query(Product).count() == 0

    def test_missing_file(self, client, staff_headers):
        resp = client.post("/api/products/batch", data={}, headers=staff_headers, content_type="multipart/form-data")
        assert resp.status_code == 400
        assert resp.get_json()["error"] == "File is required"

    def test_wrong_file_type(self, client, staff_headers):
        resp = _upload(client, "/api/products/batch", staff_headers, b"hello", "notes.txt")
        assert resp.status_code == 400
        assert resp.get_json()["error"] == "Invalid file type. Only CSV and XLSX files are allowed."

    def test_header_only_file(self, client, staff_headers):
        resp = _upload(client, "/api/products/batch", staff_headers, b"name,sku\n", "products.csv")
        assert resp.status_code == 400
        assert resp.get_json()["error"] == "No data found in file"

    def test_undecodable_csv(self, client, staff_headers, category):
        content = b"name,category_code,selling_price,purchase_price\n\xff\xfeBad,FOOD,1,1\n"
        resp = _upload(client, "/api/products/batch", staff_headers, content, "products.csv")

        assert resp.status_code == 400
        assert resp.get_json()["error"].startswith("Failed to parse upload")
        assert db.session.query(Product).count() == 0

    def test_file_too_large(self, app, client, staff_headers):
        limit = app.config["MAX_CONTENT_LENGTH"]
        app.config["MAX_CONTENT_LENGTH"] = 64
        try:
            resp = _upload(client, "/api/products/batch", staff_headers, b"x" * 512, "products.csv")
        finally:
            app.config["MAX_CONTENT_LENGTH"] = limit
        assert resp.status_code == 413


class TestInventoryUpload:

    def test_csv_by_sku(self, client, staff_headers, store_a, make_product):
        product = make_product(store_a, sku="INV-1")
        expiry = (utcnow() + timedelta(days=3)).date().isoformat()
        csv_body = (
            "SKU,Quantity,Location,Expiry Date\n"
            f"INV-1,10,Aisle 3,{expiry}\n"
            "INV-1,4,Back room,\n"
        ).encode()

        resp = _upload(client, "/api/inventory/batch", staff_headers, csv_body, "lots.csv")

        assert resp.status_code == 201
        data = resp.get_json()
        assert data["message"] == "Successfully created 2 inventory items"
        statuses = sorted(lot["status"] for lot in data["data"])
        assert statuses == ["active", "near_expiry"]
        assert db.session.query(InventoryLot).filter_by(product_id=product.id).count() == 2

    def test_xlsx_with_date_cells(self, client, staff_headers, store_a, make_product):
        product = make_product(store_a)
        content = _xlsx([
            ["product_id", "quantity", "expiry_date"],
            [str(product.id), 6, datetime(2099, 1, 1)],
        ])

        resp = _upload(client, "/api/inventory/batch", staff_headers, content, "lots.xlsx")

        assert resp.status_code == 201
        lot = resp.get_json()["data"][0]
        assert lot["expiry_date"] == "2099-01-01T00:00:00Z"
        assert lot["status"] == "active"

    def test_unknown_sku(self, client, staff_headers, store_a):
        resp = _upload(client, "/api/inventory/batch", staff_headers, b"sku,quantity\nGHOST,1\n", "lots.csv")
        assert resp.status_code == 404
        assert resp.get_json()["error"] == "Product not found with SKU: GHOST"

    def test_one_bad_row_rejects_all(self, client, staff_headers, store_a, make_product):
        make_product(store_a, sku="INV-2")
        csv_body = b"sku,quantity\nINV-2,5\nINV-2,-1\n"

        resp = _upload(client, "/api/inventory/batch", staff_headers, csv_body, "lots.csv")

        assert resp.status_code == 400
        assert resp.get_json()["errors"][0]["field"] == "row 2: quantity"
        assert db.session.query(InventoryLot).count() == 0

    def test_other_store_product_is_rejected(self, client, staff_headers, store_b, make_product):
        make_product(store_b, sku="EAST-1")
        resp = _upload(client, "/api/inventory/batch", staff_headers, b"sku,quantity\nEAST-1,5\n", "lots.csv")
        assert resp.status_code == 400
        assert db.session.query(InventoryLot).count() == 0

    def test_super_admin_rows_need_store_id(self, client, super_admin_headers, store_a, make_product):
        make_product(store_a, sku="INV-3")
        resp = _upload(client, "/api/inventory/batch", super_admin_headers, b"sku,quantity\nINV-3,5\n", "lots.csv")
        assert resp.status_code == 400
        assert "Missing store_id in 1 row(s)." in resp.get_json()["error"]
