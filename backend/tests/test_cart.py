"""
Cart aggregation tests. Carts hold intent only; nothing is reserved.
"""

import pytest

from resale.models import Cart, ResaleLot
from resale.models.inventory import LOT_INACTIVE
from resale.services import cart_service
from resale.services.errors import InsufficientStock, ResourceNotFound, ValidationError


def test_add_creates_cart_lazily(db_session, admin, seller, buyer, make_lot):
    lot = make_lot(admin, seller, total=5, selling_price_cents=8000)

    cart_service.add_item(db_session, buyer.id, lot.id, 2)
    snapshot = cart_service.cart_snapshot(db_session, buyer.id)

    assert snapshot["cart_id"] is not None
    assert snapshot["item_count"] == 2
    assert snapshot["total_cents"] == 16000
    item = snapshot["items"][0]
    assert item["product"]["id"] == lot.id
    assert item["product"]["is_admin_product"] is True
    assert item["product_type"] == "lot"
    # Nothing reserved
    assert db_session.get(ResaleLot, lot.id).sold_quantity == 0


def test_adding_same_lot_increments_line(db_session, admin, seller, buyer, make_lot):
    lot = make_lot(admin, seller, total=5)

    cart_service.add_item(db_session, buyer.id, lot.id, 1)
    cart = cart_service.add_item(db_session, buyer.id, lot.id, 2)

    assert len(cart.lines) == 1
    assert cart.lines[0].quantity == 3


def test_add_beyond_availability(db_session, admin, seller, buyer, make_lot):
    lot = make_lot(admin, seller, total=5, sold=3)
    cart_service.add_item(db_session, buyer.id, lot.id, 2)

    with pytest.raises(InsufficientStock) as exc_info:
        cart_service.add_item(db_session, buyer.id, lot.id, 1)

    assert exc_info.value.requested == 3
    assert exc_info.value.available == 2


def test_inactive_lot_not_purchasable(db_session, admin, seller, buyer, make_lot):
    lot = make_lot(admin, seller, status=LOT_INACTIVE)
    with pytest.raises(ValidationError):
        cart_service.add_item(db_session, buyer.id, lot.id, 1)


def test_unknown_product(db_session, buyer):
    with pytest.raises(ResourceNotFound):
        cart_service.add_item(db_session, buyer.id, 31337, 1)


def test_unknown_product_type(db_session, admin, seller, buyer, make_lot):
    lot = make_lot(admin, seller)
    with pytest.raises(ValidationError):
        cart_service.add_item(db_session, buyer.id, lot.id, 1, product_type="bundle")


def test_listing_requires_admin_acquisition(db_session, seller, buyer, make_listing):
    listing = make_listing(seller, quantity=5)
    with pytest.raises(ValidationError):
        cart_service.add_item(db_session, buyer.id, listing.id, 1, product_type="listing")


def test_acquired_listing_line(db_session, admin, seller, buyer, make_listing):
    listing = make_listing(seller, quantity=5, price_cents=2500, admin_purchaser_id=admin.id)

    cart_service.add_item(db_session, buyer.id, listing.id, 2, product_type="listing")
    item = cart_service.cart_snapshot(db_session, buyer.id)["items"][0]

    assert item["product_type"] == "listing"
    assert item["product"]["is_admin_product"] is False
    assert item["line_total_cents"] == 5000


def test_set_quantity_and_zero_removes(db_session, admin, seller, buyer, make_lot):
    lot = make_lot(admin, seller, total=5)
    cart = cart_service.add_item(db_session, buyer.id, lot.id, 1)
    line_id = cart.lines[0].id

    cart = cart_service.set_line_quantity(db_session, buyer.id, line_id, 4)
    assert cart.lines[0].quantity == 4

    cart = cart_service.set_line_quantity(db_session, buyer.id, line_id, 0)
    assert cart.lines == []
    # Cart row survives its last line
    assert db_session.query(Cart).filter_by(buyer_id=buyer.id).count() == 1


def test_negative_quantity_rejected(db_session, admin, seller, buyer, make_lot):
    lot = make_lot(admin, seller)
    cart = cart_service.add_item(db_session, buyer.id, lot.id, 1)
    with pytest.raises(ValidationError):
        cart_service.set_line_quantity(db_session, buyer.id, cart.lines[0].id, -1)


def test_remove_line_scoped_to_owner(db_session, admin, seller, buyer, make_user, make_lot):
    lot = make_lot(admin, seller)
    cart = cart_service.add_item(db_session, buyer.id, lot.id, 1)
    line_id = cart.lines[0].id
    other = make_user("other_buyer", "BUYER")

    with pytest.raises(ResourceNotFound):
        cart_service.remove_line(db_session, other.id, line_id)

    cart = cart_service.remove_line(db_session, buyer.id, line_id)
    assert cart.lines == []


def test_snapshot_of_missing_cart(db_session, buyer):
    assert cart_service.cart_snapshot(db_session, buyer.id) == {
        "cart_id": None,
        "items": [],
        "total_cents": 0,
        "item_count": 0,
    }


def test_listing_line_beyond_on_hand(db_session, admin, seller, buyer, make_listing):
    listing = make_listing(seller, quantity=2, admin_purchaser_id=admin.id)
    cart_service.add_item(db_session, buyer.id, listing.id, 2, product_type="listing")

    with pytest.raises(InsufficientStock) as exc_info:
        cart_service.add_item(db_session, buyer.id, listing.id, 498, product_type="listing")

    assert exc_info.value.requested == 500
    assert exc_info.value.available == 2
    db_session.expire_all()
    assert cart_service.cart_snapshot(db_session, buyer.id)["item_count"] == 2


def test_set_quantity_beyond_availability(db_session, admin, seller, buyer, make_lot):
    lot = make_lot(admin, seller, total=5)
    cart = cart_service.add_item(db_session, buyer.id, lot.id, 1)
    line_id = cart.lines[0].id

    with pytest.raises(InsufficientStock) as exc_info:
        cart_service.set_line_quantity(db_session, buyer.id, line_id, 1000)

    assert exc_info.value.requested == 1000
    assert exc_info.value.available == 5
    db_session.rollback()
    assert cart_service.cart_snapshot(db_session, buyer.id)["item_count"] == 1


def test_set_quantity_on_deactivated_lot(db_session, admin, seller, buyer, make_lot):
    lot = make_lot(admin, seller, total=5)
    cart = cart_service.add_item(db_session, buyer.id, lot.id, 1)
    line_id = cart.lines[0].id
    lot.status = LOT_INACTIVE
    db_session.commit()

    with pytest.raises(InsufficientStock) as exc_info:
        cart_service.set_line_quantity(db_session, buyer.id, line_id, 2)
    assert exc_info.value.available == 0

    # Removing the line still works
    cart = cart_service.set_line_quantity(db_session, buyer.id, line_id, 0)
    assert cart.lines == []


def test_set_quantity_on_listing_line_beyond_on_hand(db_session, admin, seller, buyer, make_listing):
    listing = make_listing(seller, quantity=3, admin_purchaser_id=admin.id)
    cart = cart_service.add_item(db_session, buyer.id, listing.id, 1, product_type="listing")
    line_id = cart.lines[0].id

    cart = cart_service.set_line_quantity(db_session, buyer.id, line_id, 3)
    assert cart.lines[0].quantity == 3

    with pytest.raises(InsufficientStock) as exc_info:
        cart_service.set_line_quantity(db_session, buyer.id, line_id, 4)
    assert exc_info.value.available == 3
