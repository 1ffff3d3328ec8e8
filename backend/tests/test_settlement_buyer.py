"""
Buyer checkout flow tests (cart -> buyer order -> lot reservation + commissions).

Verifies:
- Captured checkout reserves, confirms, books commissions and clears the cart
  in one transaction
- Any line over live availability rejects the whole checkout
- Gateway checkout waits for a verified admin-signed payment
- Fallback settlement when no admin gateway keys exist
- Legacy listing lines decrement the listing and earn no commission
"""

import pytest
from sqlalchemy import BigInteger

from resale.models import BrokerAccount, BuyerPurchaseOrder, CommissionRecord, ResaleLot, SellerListing, Order, OrderLine
from resale.models.auth import ROLE_ADMIN, ROLE_BUYER, ROLE_SELLER
from resale.models.inventory import LOT_SOLD_OUT
from resale.models.orders import ORDER_CONFIRMED, ORDER_PLACED, PAYMENT_CREATED, PAYMENT_PAID, PAYMENT_PENDING
from resale.services import cart_service, inventory_service
from resale.services.errors import (
    CredentialsMissing,
    InsufficientStock,
    InvalidSignature,
    PaymentConflict,
    ResourceNotFound,
    ValidationError,
)
from resale.services.settlement_service import SettlementEngine

from conftest import ADMIN_KEY_ID, ADMIN_SECRET, forged_signature, pay


@pytest.fixture
def referred_parties(make_user, make_broker):
    """Seller and buyer each referred by their own broker."""
    seller_broker = make_broker("broker_s", "BRK100001")
    buyer_broker = make_broker("broker_b", "BRK100002")
    seller = make_user("seller_ref", ROLE_SELLER, referred_by_code="BRK100001")
    buyer = make_user("buyer_ref", ROLE_BUYER, referred_by_code="BRK100002")
    return seller, buyer, seller_broker, buyer_broker


def _cart_lines(db_session, buyer_id):
    return cart_service.cart_snapshot(db_session, buyer_id)["items"]


# =============================================================================
# CAPTURED CHECKOUT
# =============================================================================


class TestCapturedCheckout:

    def test_checkout_settles_lot_and_commissions(self, engine, db_session, admin, referred_parties, make_lot):
        seller, buyer, seller_broker, buyer_broker = referred_parties
        lot = make_lot(admin, seller, total=5, sold=3, purchase_price_cents=5000, selling_price_cents=8000)
        cart_service.add_item(db_session, buyer.id, lot.id, 2)

        order = engine.checkout(buyer.id, shipping_address="12 MG Road")

        assert order["payment_status"] == PAYMENT_PAID
        assert order["status"] == ORDER_CONFIRMED
        assert order["total_amount_cents"] == 16000
        assert order["shipping_address"] == "12 MG Road"
        assert order["lines"][0]["unit_price_cents"] == 8000

        lot = db_session.get(ResaleLot, lot.id)
        assert lot.sold_quantity == 5
        assert lot.status == LOT_SOLD_OUT

        records = db_session.query(CommissionRecord).filter_by(order_id=order["id"]).all()
        assert len(records) == 2
        assert {r.referral_side for r in records} == {"SELLER", "BUYER"}
        assert all(r.profit_cents == 3000 and r.commission_amount_cents == 150 for r in records)

        db_session.expire_all()
        assert db_session.get(BrokerAccount, seller_broker.id).total_earnings_cents == 150
        assert db_session.get(BrokerAccount, buyer_broker.id).total_earnings_cents == 150

        assert _cart_lines(db_session, buyer.id) == []

    def test_price_frozen_at_checkout(self, engine, db_session, admin, seller, buyer, make_lot):
        lot = make_lot(admin, seller, selling_price_cents=8000)
        cart_service.add_item(db_session, buyer.id, lot.id, 1)

        order = engine.checkout(buyer.id)
        inventory_service.update_lot(db_session, lot.id, admin.id, selling_price_cents=12000)

        stored = db_session.get(BuyerPurchaseOrder, order["id"])
        assert stored.lines[0].unit_price_cents == 8000
        assert stored.total_amount_cents == 8000

    def test_over_quantity_line_rejects_entire_checkout(self, engine, db_session, admin, seller, buyer,
                                                        make_lot):
        plenty = make_lot(admin, seller, total=5, sold=0, name="Basmati Rice")
        scarce = make_lot(admin, seller, total=3, sold=0, name="Saffron")
        cart_service.add_item(db_session, buyer.id, plenty.id, 2)
        cart_service.add_item(db_session, buyer.id, scarce.id, 3)

        # Someone else buys two of the scarce units after the cart was filled
        inventory_service.reserve_from_lot(db_session, scarce.id, 2)
        db_session.commit()

        with pytest.raises(InsufficientStock) as exc_info:
            engine.checkout(buyer.id)

        assert exc_info.value.product_name == "Saffron"
        assert exc_info.value.available == 1

        db_session.expire_all()
        assert db_session.get(ResaleLot, plenty.id).sold_quantity == 0
        assert db_session.get(ResaleLot, scarce.id).sold_quantity == 2
        assert db_session.query(BuyerPurchaseOrder).count() == 0
        assert len(_cart_lines(db_session, buyer.id)) == 2

    def test_empty_cart(self, engine, buyer):
        with pytest.raises(ValidationError):
            engine.checkout(buyer.id)

    def test_no_brokers_no_commissions(self, engine, db_session, admin, seller, buyer, make_lot):
        lot = make_lot(admin, seller)
        cart_service.add_item(db_session, buyer.id, lot.id, 1)

        engine.checkout(buyer.id)

        assert db_session.query(CommissionRecord).count() == 0

    def test_legacy_listing_line(self, engine, db_session, admin, seller, buyer, make_listing):
        listing = make_listing(seller, price_cents=2500, quantity=4, admin_purchaser_id=admin.id)
        cart_service.add_item(db_session, buyer.id, listing.id, 3, product_type="listing")

        order = engine.checkout(buyer.id)

        assert order["total_amount_cents"] == 7500
        assert order["lines"][0]["listing_id"] == listing.id
        assert db_session.get(SellerListing, listing.id).on_hand_quantity == 1
        assert db_session.query(CommissionRecord).count() == 0

    def test_order_numbers_are_sequential_format(self, engine, db_session, admin, seller, buyer, make_lot):
        lot = make_lot(admin, seller)
        cart_service.add_item(db_session, buyer.id, lot.id, 1)

        order = engine.checkout(buyer.id)

        assert order["order_number"] == f"OD{order['id']:08d}"

    def test_totals_beyond_32_bit_range(self, engine, db_session, admin, seller, buyer, make_lot):
        lot = make_lot(admin, seller, total=3, purchase_price_cents=1_000_000_000,
                       selling_price_cents=1_500_000_000)
        cart_service.add_item(db_session, buyer.id, lot.id, 2)

        order = engine.checkout(buyer.id)

        db_session.expire_all()
        stored = db_session.get(BuyerPurchaseOrder, order["id"])
        assert stored.total_amount_cents == 3_000_000_000
        assert stored.lines[0].line_total_cents == 3_000_000_000
        for column in (Order.__table__.c.total_amount_cents, OrderLine.__table__.c.line_total_cents,
                       BrokerAccount.__table__.c.total_earnings_cents,
                       BrokerAccount.__table__.c.total_commission_paid_cents):
            assert isinstance(column.type, BigInteger)


# =============================================================================
# GATEWAY CHECKOUT
# =============================================================================


class TestGatewayCheckout:

    def test_checkout_leaves_order_pending(self, gateway_engine, db_session, admin, seller, buyer, make_lot):
        lot = make_lot(admin, seller, total=5, sold=0)
        cart_service.add_item(db_session, buyer.id, lot.id, 2)

        order = gateway_engine.checkout(buyer.id)

        assert order["status"] == ORDER_PLACED
        assert order["payment_status"] == PAYMENT_PENDING
        assert db_session.get(ResaleLot, lot.id).sold_quantity == 0
        assert _cart_lines(db_session, buyer.id) == []

    def test_intent_then_verify_settles(self, gateway_engine, gateway, db_session, admin, referred_parties, make_lot):
        seller, buyer, _, _ = referred_parties
        lot = make_lot(admin, seller, total=5, sold=0)
        cart_service.add_item(db_session, buyer.id, lot.id, 2)
        order = gateway_engine.checkout(buyer.id)

        intent = gateway_engine.create_buyer_payment_intent(buyer.id, order["id"])
        assert intent["mode"] == "gateway"
        assert intent["key_id"] == ADMIN_KEY_ID
        assert intent["amount"] == 16000
        assert db_session.get(Order, order["id"]).payment_status == PAYMENT_CREATED

        payment_id, signature = pay(gateway, ADMIN_SECRET, intent["gateway_order_id"])
        result = gateway_engine.verify_buyer_payment(
            buyer.id, order["id"], intent["gateway_order_id"], payment_id, signature,
        )

        assert result["paid"] is True
        assert result["replayed"] is False
        assert result["order"]["status"] == ORDER_CONFIRMED
        assert db_session.get(ResaleLot, lot.id).sold_quantity == 2
        assert db_session.query(CommissionRecord).filter_by(order_id=order["id"]).count() == 2

        replay = gateway_engine.verify_buyer_payment(
            buyer.id, order["id"], intent["gateway_order_id"], payment_id, signature,
        )
        assert replay["replayed"] is True
        db_session.expire_all()
        assert db_session.get(ResaleLot, lot.id).sold_quantity == 2
        assert db_session.query(CommissionRecord).count() == 2

    def test_forged_signature_leaves_order_unpaid(self, gateway_engine, db_session, admin, seller, buyer, make_lot):
        lot = make_lot(admin, seller)
        cart_service.add_item(db_session, buyer.id, lot.id, 1)
        order = gateway_engine.checkout(buyer.id)
        intent = gateway_engine.create_buyer_payment_intent(buyer.id, order["id"])

        with pytest.raises(InvalidSignature):
            gateway_engine.verify_buyer_payment(
                buyer.id, order["id"], intent["gateway_order_id"], "pay_fake",
                forged_signature(intent["gateway_order_id"], "pay_fake"),
            )

        db_session.expire_all()
        assert db_session.get(Order, order["id"]).payment_status == PAYMENT_CREATED
        assert db_session.get(ResaleLot, lot.id).sold_quantity == 0

    def test_second_payment_conflicts(self, gateway_engine, gateway, db_session, admin, seller, buyer, make_lot):
        lot = make_lot(admin, seller)
        cart_service.add_item(db_session, buyer.id, lot.id, 1)
        order = gateway_engine.checkout(buyer.id)
        intent = gateway_engine.create_buyer_payment_intent(buyer.id, order["id"])
        first = pay(gateway, ADMIN_SECRET, intent["gateway_order_id"])
        gateway_engine.verify_buyer_payment(buyer.id, order["id"], intent["gateway_order_id"], *first)

        second = pay(gateway, ADMIN_SECRET, intent["gateway_order_id"])
        with pytest.raises(PaymentConflict):
            gateway_engine.verify_buyer_payment(buyer.id, order["id"], intent["gateway_order_id"], *second)

    def test_stock_gone_before_payment(self, gateway_engine, gateway, db_session, admin, seller, buyer, make_lot):
        lot = make_lot(admin, seller, total=2, sold=0)
        cart_service.add_item(db_session, buyer.id, lot.id, 2)
        order = gateway_engine.checkout(buyer.id)
        intent = gateway_engine.create_buyer_payment_intent(buyer.id, order["id"])

        inventory_service.reserve_from_lot(db_session, lot.id, 1)
        db_session.commit()

        payment_id, signature = pay(gateway, ADMIN_SECRET, intent["gateway_order_id"])
        with pytest.raises(InsufficientStock):
            gateway_engine.verify_buyer_payment(
                buyer.id, order["id"], intent["gateway_order_id"], payment_id, signature,
            )

        db_session.expire_all()
        assert db_session.get(Order, order["id"]).payment_status == PAYMENT_CREATED
        assert db_session.get(ResaleLot, lot.id).sold_quantity == 1
        assert db_session.query(CommissionRecord).count() == 0

    def test_other_buyer_cannot_pay(self, gateway_engine, db_session, admin, seller, buyer, make_user, make_lot):
        lot = make_lot(admin, seller)
        cart_service.add_item(db_session, buyer.id, lot.id, 1)
        order = gateway_engine.checkout(buyer.id)
        intruder = make_user("intruder", ROLE_BUYER)

        with pytest.raises(ResourceNotFound):
            gateway_engine.create_buyer_payment_intent(intruder.id, order["id"])

    def test_already_paid_intent(self, engine, db_session, admin, seller, buyer, make_lot):
        lot = make_lot(admin, seller)
        cart_service.add_item(db_session, buyer.id, lot.id, 1)
        order = engine.checkout(buyer.id)

        intent = engine.create_buyer_payment_intent(buyer.id, order["id"])

        assert intent["mode"] == "already_paid"
        assert intent["paid"] is True


class TestFallbackSettlement:

    def test_fallback_without_admin_keys(self, db_session, gateway, make_user, make_lot):
        admin = make_user("admin_nokeys", ROLE_ADMIN)
        seller = make_user("seller_fb", ROLE_SELLER)
        buyer = make_user("buyer_fb", ROLE_BUYER)
        lot = make_lot(admin, seller, total=3, sold=0)
        cart_service.add_item(db_session, buyer.id, lot.id, 1)
        engine = SettlementEngine(db_session, gateway, checkout_mode="gateway", allow_fallback=True)
        order = engine.checkout(buyer.id)

        intent = engine.create_buyer_payment_intent(buyer.id, order["id"])

        assert intent["mode"] == "fallback"
        assert intent["order"]["payment_status"] == PAYMENT_PAID
        assert db_session.get(ResaleLot, lot.id).sold_quantity == 1

    def test_fallback_disabled(self, db_session, gateway, make_user, make_lot):
        admin = make_user("admin_nokeys", ROLE_ADMIN)
        seller = make_user("seller_fb", ROLE_SELLER)
        buyer = make_user("buyer_fb", ROLE_BUYER)
        lot = make_lot(admin, seller)
        cart_service.add_item(db_session, buyer.id, lot.id, 1)
        engine = SettlementEngine(db_session, gateway, checkout_mode="gateway", allow_fallback=False)
        order = engine.checkout(buyer.id)

        with pytest.raises(CredentialsMissing):
            engine.create_buyer_payment_intent(buyer.id, order["id"])

        assert db_session.get(ResaleLot, lot.id).sold_quantity == 0
