"""
Inventory store tests.

Verifies:
- Conditional listing decrement (SOLD at zero, never negative)
- Lot reservation (SOLD_OUT at total, never oversold)
- Lot management: resale price, deactivate, stats
"""

import pytest

from resale.models import SellerListing, ResaleLot, AdminPurchaseOrder
from resale.models.inventory import LISTING_ACTIVE, LISTING_SOLD, LOT_ACTIVE, LOT_SOLD_OUT, LOT_INACTIVE
from resale.services import inventory_service
from resale.services.errors import InsufficientStock, ResourceNotFound, ValidationError


# =============================================================================
# LISTING DECREMENT
# =============================================================================


class TestDecrementListing:

    def test_partial_decrement_keeps_listing_active(self, db_session, seller, make_listing):
        listing = make_listing(seller, quantity=10)

        updated = inventory_service.decrement_listing(db_session, listing.id, 3)
        db_session.commit()

        assert updated.on_hand_quantity == 7
        assert updated.status == LISTING_ACTIVE

    def test_decrement_to_zero_marks_sold(self, db_session, seller, make_listing):
        listing = make_listing(seller, quantity=4)

        updated = inventory_service.decrement_listing(db_session, listing.id, 4)
        db_session.commit()

        assert updated.on_hand_quantity == 0
        assert updated.status == LISTING_SOLD

    def test_decrement_records_admin_purchaser(self, db_session, admin, seller, make_listing):
        listing = make_listing(seller, quantity=4)

        updated = inventory_service.decrement_listing(db_session, listing.id, 1, admin_purchaser_id=admin.id)

        assert updated.admin_purchaser_id == admin.id

    def test_over_decrement_raises_and_changes_nothing(self, db_session, seller, make_listing):
        listing = make_listing(seller, name="Saffron", quantity=2)

        with pytest.raises(InsufficientStock) as exc_info:
            inventory_service.decrement_listing(db_session, listing.id, 3)
        db_session.rollback()

        err = exc_info.value
        assert err.available == 2
        assert err.requested == 3
        assert "Saffron" in str(err)
        assert db_session.get(SellerListing, listing.id).on_hand_quantity == 2

    def test_unknown_listing(self, db_session):
        with pytest.raises(ResourceNotFound):
            inventory_service.decrement_listing(db_session, 9999, 1)

    @pytest.mark.parametrize("qty", [0, -1])
    def test_non_positive_quantity_rejected(self, db_session, seller, make_listing, qty):
        listing = make_listing(seller)
        with pytest.raises(ValidationError):
            inventory_service.decrement_listing(db_session, listing.id, qty)

    def test_version_bumped(self, db_session, seller, make_listing):
        listing = make_listing(seller, quantity=5)
        before = listing.version_id

        updated = inventory_service.decrement_listing(db_session, listing.id, 1)

        assert updated.version_id == before + 1


# =============================================================================
# LOT CREATION AND RESERVATION
# =============================================================================


class TestCreateLot:

    def test_lot_starts_unsold_and_active(self, db_session, admin, seller, make_listing):
        listing = make_listing(seller, quantity=5)
        order = AdminPurchaseOrder(admin_id=admin.id, seller_id=seller.id, total_amount_cents=15000)
        db_session.add(order)
        db_session.flush()

        lot = inventory_service.create_lot(
            db_session,
            listing=listing,
            seller_id=seller.id,
            purchaser_id=admin.id,
            order_id=order.id,
            quantity=3,
            purchase_price_cents=5000,
            selling_price_cents=8000,
        )
        db_session.commit()

        assert lot.total_quantity == 3
        assert lot.sold_quantity == 0
        assert lot.status == LOT_ACTIVE
        assert lot.name == listing.name
        assert lot.available_quantity == 3

    def test_zero_quantity_rejected(self, db_session, admin, seller, make_listing):
        listing = make_listing(seller)
        with pytest.raises(ValidationError):
            inventory_service.create_lot(
                db_session, listing=listing, seller_id=seller.id, purchaser_id=admin.id,
                order_id=1, quantity=0, purchase_price_cents=5000, selling_price_cents=8000,
            )


class TestReserveFromLot:

    def test_partial_reservation(self, db_session, admin, seller, make_lot):
        lot = make_lot(admin, seller, total=5, sold=0)

        updated = inventory_service.reserve_from_lot(db_session, lot.id, 2)
        db_session.commit()

        assert updated.sold_quantity == 2
        assert updated.available_quantity == 3
        assert updated.status == LOT_ACTIVE

    def test_reserving_last_units_marks_sold_out(self, db_session, admin, seller, make_lot):
        lot = make_lot(admin, seller, total=5, sold=3)

        updated = inventory_service.reserve_from_lot(db_session, lot.id, 2)
        db_session.commit()

        assert updated.sold_quantity == 5
        assert updated.status == LOT_SOLD_OUT

    def test_oversell_rejected(self, db_session, admin, seller, make_lot):
        lot = make_lot(admin, seller, total=5, sold=3)

        with pytest.raises(InsufficientStock) as exc_info:
            inventory_service.reserve_from_lot(db_session, lot.id, 3)
        db_session.rollback()

        assert exc_info.value.available == 2
        assert db_session.get(ResaleLot, lot.id).sold_quantity == 3

    def test_inactive_lot_has_no_availability(self, db_session, admin, seller, make_lot):
        lot = make_lot(admin, seller, total=5, sold=0, status=LOT_INACTIVE)

        with pytest.raises(InsufficientStock) as exc_info:
            inventory_service.reserve_from_lot(db_session, lot.id, 1)

        assert exc_info.value.available == 0

    def test_unknown_lot(self, db_session):
        with pytest.raises(ResourceNotFound):
            inventory_service.reserve_from_lot(db_session, 424242, 1)


# =============================================================================
# LOT MANAGEMENT
# =============================================================================


class TestLotManagement:

    def test_update_resale_price(self, db_session, admin, seller, make_lot):
        lot = make_lot(admin, seller, selling_price_cents=8000)

        inventory_service.update_lot(db_session, lot.id, admin.id, selling_price_cents=9000)
        db_session.commit()

        assert db_session.get(ResaleLot, lot.id).selling_price_cents == 9000

    def test_update_rejects_non_positive_price(self, db_session, admin, seller, make_lot):
        lot = make_lot(admin, seller)
        with pytest.raises(ValidationError):
            inventory_service.update_lot(db_session, lot.id, admin.id, selling_price_cents=0)

    def test_update_rejects_manual_sold_out(self, db_session, admin, seller, make_lot):
        lot = make_lot(admin, seller)
        with pytest.raises(ValidationError):
            inventory_service.update_lot(db_session, lot.id, admin.id, status=LOT_SOLD_OUT)

    def test_other_admin_cannot_see_lot(self, db_session, admin, seller, make_user, make_lot):
        other = make_user("admin2", "ADMIN")
        lot = make_lot(admin, seller)
        with pytest.raises(ResourceNotFound):
            inventory_service.get_lot(db_session, lot.id, purchaser_id=other.id)

    def test_deactivate_unsold_lot(self, db_session, admin, seller, make_lot):
        lot = make_lot(admin, seller, sold=0)

        inventory_service.deactivate_lot(db_session, lot.id, admin.id)
        db_session.commit()

        assert db_session.get(ResaleLot, lot.id).status == LOT_INACTIVE

    def test_deactivate_refused_after_sales(self, db_session, admin, seller, make_lot):
        lot = make_lot(admin, seller, total=5, sold=1)
        with pytest.raises(ValidationError):
            inventory_service.deactivate_lot(db_session, lot.id, admin.id)

    def test_stats(self, db_session, admin, seller, make_lot):
        make_lot(admin, seller, total=5, sold=2, purchase_price_cents=5000, selling_price_cents=8000)
        make_lot(admin, seller, total=2, sold=2, purchase_price_cents=1000, selling_price_cents=1500, name="Tea")

        stats = inventory_service.get_lot_stats(db_session, admin.id)

        assert stats["total_lots"] == 2
        assert stats["active_lots"] == 1
        assert stats["total_quantity"] == 7
        assert stats["sold_quantity"] == 4
        assert stats["available_quantity"] == 3
        assert stats["total_investment_cents"] == 5 * 5000 + 2 * 1000
        assert stats["potential_revenue_cents"] == 5 * 8000 + 2 * 1500
        assert stats["potential_profit_cents"] == stats["potential_revenue_cents"] - stats["total_investment_cents"]

    def test_list_lots_filters_and_paginates(self, db_session, admin, seller, make_lot):
        make_lot(admin, seller, name="Basmati Rice")
        make_lot(admin, seller, name="Darjeeling Tea")
        make_lot(admin, seller, name="Assam Tea", total=1, sold=1)

        result = inventory_service.list_lots(db_session, admin.id, search="Tea")
        assert result["total"] == 2

        active = inventory_service.list_lots(db_session, admin.id, status=LOT_ACTIVE, limit=1)
        assert active["total"] == 2
        assert len(active["lots"]) == 1
        assert active["pages"] == 2
