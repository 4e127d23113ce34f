"""
Inventory ledger tests.

Covers lot status classification, availability, and FIFO-by-expiry
depletion.
"""

from datetime import datetime, timedelta

import pytest

from backoffice.errors import (
    FieldValidationError,
    InsufficientInventoryError,
    ProductHasNoInventoryError,
    ProductNotInStoreError,
)
from backoffice.extensions import db
from backoffice.models import AuditEvent, InventoryLot
from backoffice.services import inventory_service
from backoffice.services.inventory_service import compute_lot_status

NOW = datetime(2026, 3, 1, 12, 0, 0)


def _lot_quantities(product):
    db.session.expire_all()
    return {
        lot.id: lot.quantity
        for lot in db.session.query(InventoryLot).filter_by(product_id=product.id).all()
    }


class TestLotStatus:

    def test_no_expiry_is_active(self):
        assert compute_lot_status(None, NOW) == "active"

    def test_within_seven_days_is_near_expiry(self):
        assert compute_lot_status(NOW + timedelta(days=7), NOW) == "near_expiry"

    def test_expiring_now_is_near_expiry(self):
        assert compute_lot_status(NOW, NOW) == "near_expiry"

    def test_partial_day_rounds_up(self):
        # 7 days and one second rounds up to 8 days
        assert compute_lot_status(NOW + timedelta(days=7, seconds=1), NOW) == "active"

    def test_eight_days_is_active(self):
        assert compute_lot_status(NOW + timedelta(days=8), NOW) == "active"

    def test_past_expiry_is_expired(self):
        assert compute_lot_status(NOW - timedelta(seconds=1), NOW) == "expired"

    def test_window_is_configurable(self):
        assert compute_lot_status(NOW + timedelta(days=10), NOW, near_expiry_days=14) == "near_expiry"


class TestAvailability:

    def test_product_without_lots_has_zero(self, store_a, make_product):
        product = make_product(store_a)
        assert inventory_service.get_available_quantity(product.id, now=NOW) == 0

    def test_expired_lots_are_excluded(self, store_a, make_product, make_lot):
        product = make_product(store_a)
        make_lot(product, 5, expiry_date=NOW - timedelta(days=1))
        make_lot(product, 3)
        make_lot(product, 2, expiry_date=NOW + timedelta(days=1))

        assert inventory_service.get_available_quantity(product.id, now=NOW) == 5

    def test_stored_status_does_not_matter(self, store_a, make_product, make_lot):
        product = make_product(store_a)
        # Received long ago as active; it has since expired
        make_lot(product, 4, expiry_date=NOW - timedelta(hours=1), status="active")

        assert inventory_service.get_available_quantity(product.id, now=NOW) == 0


class TestDepletion:

    def test_earliest_expiry_first_and_undated_last(self, store_a, staff_a, ctx_for, make_product, make_lot):
        product = make_product(store_a)
        later = make_lot(product, 4, expiry_date=NOW + timedelta(days=10))
        sooner = make_lot(product, 3, expiry_date=NOW + timedelta(days=2))
        undated = make_lot(product, 5)

        result = inventory_service.deplete(ctx_for(staff_a), product.id, 5, now=NOW)

        assert [a.lot_id for a in result.allocations] == [sooner.id, later.id]
        assert result.allocations[0].removed is True
        assert result.allocations[1].removed is False
        assert result.depleted == 5

        remaining = _lot_quantities(product)
        assert sooner.id not in remaining
        assert remaining[later.id] == 2
        assert remaining[undated.id] == 5

    def test_same_expiry_breaks_tie_on_receipt_time(self, store_a, staff_a, ctx_for, make_product, make_lot):
        product = make_product(store_a)
        expiry = NOW + timedelta(days=20)
        second = make_lot(product, 2, expiry_date=expiry, created_at=NOW - timedelta(hours=1))
        first = make_lot(product, 2, expiry_date=expiry, created_at=NOW - timedelta(hours=2))

        result = inventory_service.deplete(ctx_for(staff_a), product.id, 3, now=NOW)

        assert [a.lot_id for a in result.allocations] == [first.id, second.id]
        assert _lot_quantities(product) == {second.id: 1}

    def test_expired_lot_is_never_allocated(self, store_a, staff_a, ctx_for, make_product, make_lot):
        product = make_product(store_a)
        expired = make_lot(product, 10, expiry_date=NOW - timedelta(days=1), status="active")
        fresh = make_lot(product, 4, expiry_date=NOW + timedelta(days=30))

        inventory_service.deplete(ctx_for(staff_a), product.id, 4, now=NOW)

        assert _lot_quantities(product) == {expired.id: 10}
        assert fresh.id not in _lot_quantities(product)

    def test_quantity_is_conserved(self, store_a, staff_a, ctx_for, make_product, make_lot):
        product = make_product(store_a)
        make_lot(product, 2.5, expiry_date=NOW + timedelta(days=3))
        make_lot(product, 4, expiry_date=NOW + timedelta(days=9))
        make_lot(product, 1.5)

        before = inventory_service.get_available_quantity(product.id, now=NOW)
        inventory_service.deplete(ctx_for(staff_a), product.id, 3.5, now=NOW)
        after = inventory_service.get_available_quantity(product.id, now=NOW)

        assert before - after == pytest.approx(3.5)

    def test_depletion_is_not_idempotent(self, store_a, staff_a, ctx_for, make_product, make_lot):
        product = make_product(store_a)
        make_lot(product, 10)
        ctx = ctx_for(staff_a)

        inventory_service.deplete(ctx, product.id, 3, now=NOW)
        inventory_service.deplete(ctx, product.id, 3, now=NOW)

        assert inventory_service.get_available_quantity(product.id, now=NOW) == 4

    def test_insufficient_stock_changes_nothing(self, store_a, staff_a, ctx_for, make_product, make_lot):
        product = make_product(store_a, name="Milk")
        make_lot(product, 3, expiry_date=NOW + timedelta(days=1))
        make_lot(product, 4)
        before = _lot_quantities(product)

        with pytest.raises(InsufficientInventoryError) as exc:
            inventory_service.deplete(ctx_for(staff_a), product.id, 8, now=NOW)

        assert str(exc.value) == "Insufficient inventory for product Milk. Available: 7, Requested: 8"
        assert exc.value.missing == 1
        assert _lot_quantities(product) == before

    def test_product_without_lots(self, store_a, staff_a, ctx_for, make_product):
        product = make_product(store_a)
        with pytest.raises(ProductHasNoInventoryError):
            inventory_service.deplete(ctx_for(staff_a), product.id, 1, now=NOW)

    @pytest.mark.parametrize("quantity", [0, -2])
    def test_quantity_must_be_positive(self, store_a, staff_a, ctx_for, make_product, make_lot, quantity):
        product = make_product(store_a)
        make_lot(product, 5)
        with pytest.raises(FieldValidationError):
            inventory_service.deplete(ctx_for(staff_a), product.id, quantity, now=NOW)

    def test_each_touched_lot_is_audited(self, store_a, staff_a, ctx_for, make_product, make_lot):
        product = make_product(store_a)
        make_lot(product, 2, expiry_date=NOW + timedelta(days=1))
        make_lot(product, 5)

        inventory_service.deplete(ctx_for(staff_a), product.id, 3, now=NOW)

        types = sorted(e.event_type for e in db.session.query(AuditEvent).all())
        assert types == ["LOT_DEPLETED", "LOT_REMOVED"]


class TestReceiving:

    def test_status_is_computed_at_receipt(self, store_a, staff_a, ctx_for, make_product):
        product = make_product(store_a)
        lot = inventory_service.create_lot(
            ctx_for(staff_a),
            product_id=str(product.id),
            quantity=12,
            expiry_date=(NOW + timedelta(days=3)).isoformat(),
            now=NOW,
        )
        assert lot["status"] == "near_expiry"
        assert lot["quantity"] == 12

    def test_staff_cannot_receive_into_other_store(self, store_b, staff_a, ctx_for, make_product):
        product = make_product(store_b)
        with pytest.raises(ProductNotInStoreError):
            inventory_service.create_lot(ctx_for(staff_a), product_id=product.id, quantity=1, now=NOW)

    def test_super_admin_defaults_to_product_store(self, store_b, super_admin, ctx_for, make_product):
        product = make_product(store_b)
        lot = inventory_service.create_lot(ctx_for(super_admin), product_id=product.id, quantity=2, now=NOW)
        assert lot["product"]["store_id"] == str(store_b.id)

    def test_batch_rejects_everything_on_one_bad_row(self, store_a, staff_a, ctx_for, make_product):
        product = make_product(store_a)
        entries = [
            {"product_id": str(product.id), "quantity": 5},
            {"product_id": str(product.id), "quantity": "lots"},
        ]
        with pytest.raises(FieldValidationError) as exc:
            inventory_service.create_lots_batch(ctx_for(staff_a), entries, now=NOW)

        assert exc.value.errors[0]["field"] == "row 2: quantity"
        assert db.session.query(InventoryLot).count() == 0
