"""
Product catalog tests: SKU generation, uniqueness, store ownership and CRUD.
"""

from datetime import datetime

import pytest

from backoffice.errors import DuplicateSkuError, NotFoundError
from backoffice.extensions import db
from backoffice.models import InventoryLot, Product, Store
from backoffice.services import audit_service, checkout_service, products_service
from backoffice.services.products_service import generate_sku


def _product_body(category, **overrides):
    body = {
        "name": "Rye Bread",
        "category_id": category.id,
        "selling_price": 4.5,
        "purchase_price": 2.25,
    }
    body.update(overrides)
    return body


class TestSkuGeneration:

    def test_format_has_no_minutes(self):
        now = datetime(2026, 3, 1, 14, 25, 9)
        assert generate_sku("MAIN", "FOOD", now) == "MAIN-FOOD-202603011409"

    def test_same_second_collides(self):
        now = datetime(2026, 3, 1, 14, 25, 9)
        later_minute = datetime(2026, 3, 1, 14, 59, 9)
        assert generate_sku("MAIN", "FOOD", now) == generate_sku("MAIN", "FOOD", later_minute)


class TestCreateProduct:

    def test_staff_creates_in_own_store(self, client, staff_headers, store_a, category):
        resp = client.post("/api/products", json=_product_body(category), headers=staff_headers)

        assert resp.status_code == 201
        data = resp.get_json()
        assert data["sku"].startswith("MAIN-FOOD-")
        assert data["store_id"] == str(store_a.id)
        assert data["selling_price"] == 4.5
        assert data["created_by"]["email"] == "staff_a@example.com"

    def test_explicit_sku_is_kept(self, client, staff_headers, category):
        resp = client.post("/api/products", json=_product_body(category, sku="RYE-001"), headers=staff_headers)
        assert resp.status_code == 201
        assert resp.get_json()["sku"] == "RYE-001"

    def test_duplicate_sku(self, client, staff_headers, store_a, make_product, category):
        make_product(store_a, sku="RYE-001")

        resp = client.post("/api/products", json=_product_body(category, sku="RYE-001"), headers=staff_headers)

        assert resp.status_code == 400
        assert resp.get_json()["error"] == "Product with SKU RYE-001 already exists"

    def test_staff_cannot_target_other_store(self, client, staff_headers, store_b, category):
        body = _product_body(category, store_id=str(store_b.id))
        resp = client.post("/api/products", json=body, headers=staff_headers)
        assert resp.status_code == 403

    def test_super_admin_must_name_store(self, client, super_admin_headers, category):
        resp = client.post("/api/products", json=_product_body(category), headers=super_admin_headers)

        assert resp.status_code == 400
        assert resp.get_json()["errors"][0]["field"] == "store_id"

    def test_super_admin_creates_in_named_store(self, client, super_admin_headers, store_b, category):
        body = _product_body(category, store_id=str(store_b.id))
        resp = client.post("/api/products", json=body, headers=super_admin_headers)

        assert resp.status_code == 201
        assert resp.get_json()["sku"].startswith("EAST-FOOD-")

    def test_store_without_code(self, client, super_admin_headers, db_session, category):
        store = Store(name="Pop-up")
        db_session.add(store)
        db_session.commit()

        body = _product_body(category, store_id=str(store.id))
        resp = client.post("/api/products", json=body, headers=super_admin_headers)

        assert resp.status_code == 400
        assert "has no code" in resp.get_json()["error"]

    def test_unknown_category(self, client, staff_headers, category):
        resp = client.post("/api/products", json=_product_body(category, category_id=9999), headers=staff_headers)
        assert resp.status_code == 404

    def test_every_bad_field_is_reported(self, client, staff_headers, category):
        body = {"category_id": category.id, "selling_price": -1, "purchase_price": "abc"}
        resp = client.post("/api/products", json=body, headers=staff_headers)

        assert resp.status_code == 400
        fields = {e["field"] for e in resp.get_json()["errors"]}
        assert fields == {"name", "selling_price", "purchase_price"}


class TestBatchCreate:

    def test_duplicate_sku_within_batch_rejects_all(self, staff_a, ctx_for, category):
        rows = [
            {"name": "A", "category_id": category.id, "selling_price": 1, "purchase_price": 1, "sku": "DUP-1"},
            {"name": "B", "category_id": category.id, "selling_price": 1, "purchase_price": 1, "sku": "DUP-1"},
        ]
        with pytest.raises(DuplicateSkuError):
            products_service.create_products_batch(ctx_for(staff_a), rows)
        assert db.session.query(Product).count() == 0

    def test_generated_skus_collide_in_same_second(self, staff_a, ctx_for, category):
        rows = [
            {"name": "A", "category_id": category.id, "selling_price": 1, "purchase_price": 1},
            {"name": "B", "category_id": category.id, "selling_price": 1, "purchase_price": 1},
        ]
        with pytest.raises(DuplicateSkuError):
            products_service.create_products_batch(ctx_for(staff_a), rows, now=datetime(2026, 3, 1, 8, 0, 0))
        assert db.session.query(Product).count() == 0

    def test_bad_row_rejects_all(self, staff_a, ctx_for, category):
        rows = [
            {"name": "A", "category_id": category.id, "selling_price": 1, "purchase_price": 1, "sku": "OK-1"},
            {"name": "B", "category_id": 4242, "selling_price": 1, "purchase_price": 1, "sku": "OK-2"},
        ]
        with pytest.raises(NotFoundError):
            products_service.create_products_batch(ctx_for(staff_a), rows)
        assert db.session.query(Product).count() == 0


class TestReadProducts:

    def test_list_filters_and_paginates(self, client, viewer_headers, store_a, store_b, make_product):
        make_product(store_a, name="Green Apple", sku="APL-1")
        make_product(store_a, name="Red Apple", sku="APL-2")
        make_product(store_b, name="Pear", sku="PER-1")

        resp = client.get("/api/products?name=apple&limit=1", headers=viewer_headers)
        data = resp.get_json()
        assert resp.status_code == 200
        assert data["total"] == 2
        assert len(data["data"]) == 1
        assert data["limit"] == 1

        resp = client.get("/api/products?sku=PER-1", headers=viewer_headers)
        assert [p["name"] for p in resp.get_json()["data"]] == ["Pear"]

        resp = client.get(f"/api/products?store_id={store_b.id}", headers=viewer_headers)
        assert resp.get_json()["total"] == 1

    @pytest.mark.parametrize("query", ["limit=0", "limit=101", "offset=-1", "limit=abc"])
    def test_bad_pagination(self, client, viewer_headers, query):
        resp = client.get(f"/api/products?{query}", headers=viewer_headers)
        assert resp.status_code == 400

    def test_get_unknown_product(self, client, viewer_headers):
        resp = client.get("/api/products/00000000-0000-0000-0000-000000000000", headers=viewer_headers)
        assert resp.status_code == 404


class TestUpdateProduct:

    def test_update_fields(self, client, staff_headers, store_a, make_product):
        product = make_product(store_a)
        resp = client.put(
            f"/api/products/{product.id}",
            json={"name": "Sourdough", "selling_price": "5.10"},
            headers=staff_headers,
        )
        assert resp.status_code == 200
        data = resp.get_json()
        assert data["name"] == "Sourdough"
        assert data["selling_price"] == 5.1
        assert data["sku"] == product.sku

    def test_update_is_audited(self, client, staff_headers, store_a, make_product):
        product = make_product(store_a)
        client.put(f"/api/products/{product.id}", json={"purchase_price": 3}, headers=staff_headers)

        events = audit_service.list_events(entity_type="product", entity_id=product.id)
        assert [e["event_type"] for e in events] == ["PRODUCT_UPDATED"]
        assert events[0]["payload"] == {"purchase_price": "3.00"}
        assert events[0]["correlation_id"]

    def test_sku_is_immutable(self, client, staff_headers, store_a, make_product):
        product = make_product(store_a)
        resp = client.put(f"/api/products/{product.id}", json={"sku": "NEW"}, headers=staff_headers)
        assert resp.status_code == 400

    def test_other_store_cannot_update(self, client, staff_b_headers, store_a, make_product):
        product = make_product(store_a)
        resp = client.put(f"/api/products/{product.id}", json={"name": "X"}, headers=staff_b_headers)
        assert resp.status_code == 403


class TestDeleteProduct:

    def test_delete_removes_lots(self, client, staff_headers, store_a, make_product, make_lot):
        product = make_product(store_a)
        make_lot(product, 3)

        resp = client.delete(f"/api/products/{product.id}", headers=staff_headers)

        assert resp.status_code == 204
        assert db.session.query(Product).count() == 0
        assert db.session.query(InventoryLot).count() == 0

    def test_product_with_orders_is_kept(self, client, staff_headers, staff_a, ctx_for, store_a, make_product, make_lot):
        product = make_product(store_a, selling_price="1.00")
        make_lot(product, 3)
        checkout_service.checkout(
            ctx_for(staff_a),
            items=[{"product_id": str(product.id), "quantity": 1}],
            grand_total=1,
        )

        resp = client.delete(f"/api/products/{product.id}", headers=staff_headers)

        assert resp.status_code == 400
        assert db.session.query(Product).count() == 1

    def test_bulk_delete_is_all_or_nothing(self, client, staff_headers, store_a, make_product):
        first = make_product(store_a)
        second = make_product(store_a)
        missing = "00000000-0000-0000-0000-000000000000"

        resp = client.delete(
            "/api/products/bulk",
            json={"ids": [str(first.id), missing]},
            headers=staff_headers,
        )
        assert resp.status_code == 404
        assert resp.get_json()["details"]["missing"] == [missing]
        assert db.session.query(Product).count() == 2

        resp = client.delete(
            "/api/products/bulk",
            json={"ids": [str(first.id), str(second.id)]},
            headers=staff_headers,
        )
        assert resp.status_code == 200
        assert resp.get_json() == {"deleted": 2}
        assert db.session.query(Product).count() == 0

    def test_viewer_cannot_delete(self, client, viewer_headers, store_a, make_product):
        product = make_product(store_a)
        resp = client.delete(f"/api/products/{product.id}", headers=viewer_headers)
        assert resp.status_code == 403
