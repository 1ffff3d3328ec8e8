# Overview: Settlement engine; turns verified purchase intents into inventory, order and commission mutations.

"""
Settlement Engine

Two purchase flows share one set of invariants.

Flow A (admin acquires stock from a seller):
    create_admin_purchase_intent -> gateway order with the SELLER's keys,
        AdminPurchaseOrder PLACED/CREATED with one frozen line
    verify_admin_purchase -> signature checked with the seller secret, then in
        ONE transaction: order PAID/CONFIRMED, listing decremented, lot created

Flow B (buyer checks out a cart of resale lots):
    checkout -> every line revalidated against live stock, prices frozen.
        captured mode: reservation, PAID/CONFIRMED, commissions and cart
        clearing commit together.
        gateway mode: order PLACED/PENDING, cart cleared; payment follows.
    create_buyer_payment_intent -> gateway order with the ADMIN's keys, or an
        immediate fallback settlement when no admin keys exist
    verify_buyer_payment -> signature checked with the admin secret, then in
        ONE transaction: every line reserved, PAID/CONFIRMED, commissions

Guarantees:
- Signatures are verified before any mutation. A bad signature leaves the
  order exactly as it was.
- Paid state and the inventory mutation commit together or not at all.
- Verification is idempotent on gateway_payment_id. Replaying the same
  payment re-confirms without touching inventory; a different payment id
  on a paid order raises PaymentConflict.
- Every multi-step write runs through run_with_retry; exhausted retries
  surface as ConcurrencyConflict.

The engine owns no global state. The session and gateway are injected.
"""

from __future__ import annotations

import logging
import secrets

from flask import current_app

from ..extensions import db
from ..models import (
    Order,
    AdminPurchaseOrder,
    BuyerPurchaseOrder,
    OrderLine,
    Cart,
    ResaleLot,
    SellerListing,
)
from ..models.inventory import LISTING_ACTIVE, LOT_ACTIVE
from ..models.orders import (
    ORDER_TYPE_ADMIN_PURCHASE,
    ORDER_TYPE_BUYER_PURCHASE,
    ORDER_PLACED,
    ORDER_CONFIRMED,
    PAYMENT_CREATED,
    PAYMENT_PENDING,
    PAYMENT_PAID,
)
from ..models.brokers import DEFAULT_COMMISSION_RATE
from resale.time_utils import utcnow
from . import inventory_service, cart_service, commission_service
from .concurrency import lock_for_update, run_with_retry
from .credential_service import resolve_payee_credentials
from .errors import (
    CredentialsMissing,
    InsufficientStock,
    PaymentConflict,
    ResourceNotFound,
    ValidationError,
)

logger = logging.getLogger(__name__)


CHECKOUT_MODE_CAPTURED = "captured"
CHECKOUT_MODE_GATEWAY = "gateway"
VALID_CHECKOUT_MODES = [CHECKOUT_MODE_CAPTURED, CHECKOUT_MODE_GATEWAY]


def format_order_number(order_id: int) -> str:
    return f"OD{order_id:08d}"


class SettlementEngine:

    def __init__(
        self,
        session,
        gateway,
        *,
        currency: str = "INR",
        commission_rate=DEFAULT_COMMISSION_RATE,
        allow_fallback: bool = True,
        checkout_mode: str = CHECKOUT_MODE_CAPTURED,
        retry_attempts: int = 3,
    ):
        if checkout_mode not in VALID_CHECKOUT_MODES:
            raise ValueError(f"checkout_mode must be one of {VALID_CHECKOUT_MODES}")
        self.session = session
        self.gateway = gateway
        self.currency = currency
        self.commission_rate = commission_service.parse_rate(commission_rate)
        self.allow_fallback = allow_fallback
        self.checkout_mode = checkout_mode
        self.retry_attempts = retry_attempts

    @classmethod
    def from_app(cls, app=None, session=None) -> "SettlementEngine":
        """Build an engine from Flask config and the app's gateway adapter."""
        app = app or current_app
        config = app.config
        return cls(
            session if session is not None else db.session,
            app.extensions["payment_gateway"],
            currency=config.get("GATEWAY_CURRENCY", "INR"),
            commission_rate=config.get("COMMISSION_RATE", DEFAULT_COMMISSION_RATE),
            allow_fallback=bool(config.get("GATEWAY_ALLOW_FALLBACK", True)),
            checkout_mode=config.get("CHECKOUT_PAYMENT_MODE", CHECKOUT_MODE_CAPTURED),
        )

    def _run(self, func):
        return run_with_retry(self.session, func, attempts=self.retry_attempts)

    # =========================================================================
    # SHARED HELPERS
    # =========================================================================

    def _load_order(self, order_cls, order_id: int, *, refresh: bool = False):
        if refresh:
            query = self.session.query(Order).filter(Order.id == order_id).populate_existing()
            order = lock_for_update(query).first()
        else:
            order = self.session.get(Order, order_id)
        if order is None or not isinstance(order, order_cls):
            raise ResourceNotFound(f"Order {order_id} not found", details={"order_id": order_id})
        return order

    def _assign_order_number(self, order: Order) -> None:
        self.session.flush()  # Get order ID
        order.order_number = format_order_number(order.id)

    def _check_replay(self, order: Order, gateway_payment_id: str) -> bool:
        """
        True when `order` is already settled by this very payment.
        A paid order with any other payment id is a conflict.
        """
        if not order.is_paid:
            return False
        if order.gateway_payment_id == gateway_payment_id:
            return True
        raise PaymentConflict(
            "Order already paid with a different payment",
            details={"order_id": order.id},
        )

    def _ensure_payment_unused(self, order: Order, gateway_payment_id: str) -> None:
        other = (
            self.session.query(Order.id)
            .filter(Order.gateway_payment_id == gateway_payment_id, Order.id != order.id)
            .first()
        )
        if other:
            raise PaymentConflict(
                "Payment already applied to another order",
                details={"order_id": order.id, "gateway_payment_id": gateway_payment_id},
            )

    @staticmethod
    def _check_gateway_order(order: Order, gateway_order_id: str) -> None:
        if not order.gateway_order_id or order.gateway_order_id != gateway_order_id:
            raise ValidationError(
                "Gateway order does not match this order",
                details={"order_id": order.id},
            )

    @staticmethod
    def _mark_paid(order: Order, gateway_payment_id=None, signature=None) -> None:
        order.payment_status = PAYMENT_PAID
        order.status = ORDER_CONFIRMED
        order.gateway_payment_id = gateway_payment_id
        order.gateway_signature = signature
        order.paid_at = utcnow()

    # =========================================================================
    # FLOW A: ADMIN ACQUISITION
    # =========================================================================

    def create_admin_purchase_intent(self, admin_id: int, listing_id: int, quantity: int,
                                     resale_price_cents: int) -> dict:
        """
        Open a payment for `quantity` units of a seller listing.

        Raises:
            ValidationError: quantity < 1, resale price <= 0, listing not ACTIVE
            ResourceNotFound: unknown listing
            InsufficientStock: quantity > on_hand now (rechecked at settlement)
            CredentialsMissing: seller has no gateway keys
            GatewayUnavailable: gateway call failed
        """
        if quantity < 1:
            raise ValidationError("Quantity must be at least 1")
        if resale_price_cents <= 0:
            raise ValidationError("Selling price is required and must be greater than 0")

        listing = inventory_service.get_listing(self.session, listing_id)
        if listing.status != LISTING_ACTIVE:
            raise ValidationError("Listing not available for purchase", details={"listing_id": listing_id})
        if listing.on_hand_quantity < quantity:
            raise InsufficientStock(listing.name, requested=quantity, available=listing.on_hand_quantity,
                                    product_id=listing.id)

        credentials = resolve_payee_credentials(self.session, ORDER_TYPE_ADMIN_PURCHASE, seller_id=listing.seller_id)

        amount = listing.price_cents * quantity
        gateway_order = self.gateway.create_order(
            amount,
            self.currency,
            credentials,
            receipt=f"adm_{secrets.token_hex(6)}",
            notes={
                "listing_id": listing.id,
                "quantity": quantity,
                "seller_id": listing.seller_id,
                "admin_id": admin_id,
                "resale_price_cents": resale_price_cents,
            },
        )

        seller_id = listing.seller_id
        unit_price = listing.price_cents
        name = listing.name

        def _op():
            order = AdminPurchaseOrder(
                admin_id=admin_id,
                seller_id=seller_id,
                resale_price_cents=resale_price_cents,
                total_amount_cents=amount,
                currency=self.currency,
                status=ORDER_PLACED,
                payment_status=PAYMENT_CREATED,
                gateway_order_id=gateway_order.id,
            )
            order.lines.append(OrderLine(
                listing_id=listing_id,
                product_name=name,
                quantity=quantity,
                unit_price_cents=unit_price,
                line_total_cents=amount,
            ))
            self.session.add(order)
            self._assign_order_number(order)
            self.session.commit()
            return order

        order = self._run(_op)
        logger.info("Admin %s opened purchase order %s for listing %s x%s", admin_id, order.id, listing_id, quantity)

        return {
            "order_id": order.id,
            "order_number": order.order_number,
            "gateway_order_id": gateway_order.id,
            "amount": gateway_order.amount,
            "currency": gateway_order.currency,
            "key_id": credentials.key_id,
            "total_amount_cents": amount,
            "resale_price_cents": resale_price_cents,
            "listing": {
                "id": listing_id,
                "name": name,
                "price_cents": unit_price,
                "quantity": quantity,
            },
        }

    def _admin_result(self, order: AdminPurchaseOrder, *, replayed: bool) -> dict:
        lot = self.session.query(ResaleLot).filter_by(order_id=order.id).first()
        line = order.lines[0]
        listing = self.session.get(SellerListing, line.listing_id)
        return {
            "order_id": order.id,
            "order_number": order.order_number,
            "payment_status": order.payment_status,
            "status": order.status,
            "lot_id": lot.id if lot else None,
            "seller_remaining_quantity": listing.on_hand_quantity if listing else None,
            "replayed": replayed,
        }

    def verify_admin_purchase(self, order_id: int, gateway_order_id: str, gateway_payment_id: str,
                              signature: str) -> dict:
        """
        Verify the seller-signed payment and settle the acquisition.

        Raises:
            ResourceNotFound: unknown admin-purchase order
            ValidationError: gateway order id does not belong to the order
            InvalidSignature: signature mismatch (nothing is mutated)
            PaymentConflict: order already paid by another payment
            InsufficientStock: listing no longer has the quantity (rolled back)
        """
        order = self._load_order(AdminPurchaseOrder, order_id)
        self._check_gateway_order(order, gateway_order_id)

        credentials = resolve_payee_credentials(self.session, ORDER_TYPE_ADMIN_PURCHASE, seller_id=order.seller_id)
        self.gateway.verify(gateway_order_id, gateway_payment_id, signature, credentials)

        if self._check_replay(order, gateway_payment_id):
            return self._admin_result(order, replayed=True)
        self._ensure_payment_unused(order, gateway_payment_id)

        def _op():
            locked = self._load_order(AdminPurchaseOrder, order_id, refresh=True)
            if self._check_replay(locked, gateway_payment_id):
                return locked, True

            line = locked.lines[0]
            self._mark_paid(locked, gateway_payment_id, signature)

            listing = inventory_service.decrement_listing(
                self.session, line.listing_id, line.quantity, admin_purchaser_id=locked.admin_id,
            )
            inventory_service.create_lot(
                self.session,
                listing=listing,
                seller_id=locked.seller_id,
                purchaser_id=locked.admin_id,
                order_id=locked.id,
                quantity=line.quantity,
                purchase_price_cents=line.unit_price_cents,
                selling_price_cents=locked.resale_price_cents,
            )
            self.session.commit()
            return locked, False

        settled, replayed = self._run(_op)
        if not replayed:
            logger.info("Admin purchase order %s settled with payment %s", settled.id, gateway_payment_id)
        return self._admin_result(settled, replayed=replayed)

    # =========================================================================
    # FLOW B: BUYER CHECKOUT
    # =========================================================================

    def _freeze_line(self, cart_line) -> OrderLine:
        """Live availability check and price freeze for one cart line."""
        if cart_line.lot_id is not None:
            lot = self.session.get(ResaleLot, cart_line.lot_id, populate_existing=True)
            if lot is None:
                raise ResourceNotFound(f"Resale lot {cart_line.lot_id} not found",
                                       details={"lot_id": cart_line.lot_id})
            available = lot.available_quantity if lot.status == LOT_ACTIVE else 0
            if cart_line.quantity > available:
                raise InsufficientStock(lot.name, requested=cart_line.quantity, available=available,
                                        product_id=lot.id)
            unit_price = lot.selling_price_cents
            return OrderLine(
                lot_id=lot.id,
                product_name=lot.name,
                quantity=cart_line.quantity,
                unit_price_cents=unit_price,
                line_total_cents=unit_price * cart_line.quantity,
            )

        listing = self.session.get(SellerListing, cart_line.listing_id, populate_existing=True)
        if listing is None:
            raise ResourceNotFound(f"Listing {cart_line.listing_id} not found",
                                   details={"listing_id": cart_line.listing_id})
        available = listing.on_hand_quantity if listing.status == LISTING_ACTIVE else 0
        if cart_line.quantity > available:
            raise InsufficientStock(listing.name, requested=cart_line.quantity, available=available,
                                    product_id=listing.id)
        unit_price = listing.price_cents
        return OrderLine(
            listing_id=listing.id,
            product_name=listing.name,
            quantity=cart_line.quantity,
            unit_price_cents=unit_price,
            line_total_cents=unit_price * cart_line.quantity,
        )

    def _confirm_buyer_order(self, order: BuyerPurchaseOrder, gateway_payment_id=None, signature=None) -> None:
        """
        Reserve every line, mark paid and book commissions.
        Never commits; any failure leaves the caller to roll back.
        """
        for line in order.lines:
            if line.lot_id is not None:
                lot = inventory_service.reserve_from_lot(self.session, line.lot_id, line.quantity)
                commission_service.credit_commissions(
                    self.session,
                    order_id=order.id,
                    lot=lot,
                    buyer_id=order.buyer_id,
                    rate=self.commission_rate,
                    selling_price_cents=line.unit_price_cents,
                )
            else:
                inventory_service.decrement_listing(self.session, line.listing_id, line.quantity)

        self._mark_paid(order, gateway_payment_id, signature)

    def checkout(self, buyer_id: int, *, shipping_address: str | None = None, notes: str | None = None) -> dict:
        """
        Convert the buyer's cart into a BuyerPurchaseOrder.

        Raises:
            ValidationError: empty cart
            InsufficientStock: any line exceeds live availability (nothing mutated)
            ResourceNotFound: a line references a vanished product
        """
        def _op():
            cart = self.session.query(Cart).filter_by(buyer_id=buyer_id).first()
            if cart is None or not cart.lines:
                raise ValidationError("Cart is empty")

            order = BuyerPurchaseOrder(
                buyer_id=buyer_id,
                currency=self.currency,
                status=ORDER_PLACED,
                payment_status=PAYMENT_PENDING,
                shipping_address=shipping_address,
                notes=notes,
            )
            for cart_line in cart.lines:
                order.lines.append(self._freeze_line(cart_line))
            order.total_amount_cents = sum(line.line_total_cents for line in order.lines)

            self.session.add(order)
            self._assign_order_number(order)

            if self.checkout_mode == CHECKOUT_MODE_CAPTURED:
                self._confirm_buyer_order(order)

            cart_service.clear_cart(self.session, cart)
            self.session.commit()
            return order

        order = self._run(_op)
        logger.info(
            "Buyer %s checked out order %s (%s cents, %s)",
            buyer_id, order.id, order.total_amount_cents, order.payment_status,
        )
        return order.to_dict()

    def _load_buyer_order(self, buyer_id: int, order_id: int, *, refresh: bool = False) -> BuyerPurchaseOrder:
        order = self._load_order(BuyerPurchaseOrder, order_id, refresh=refresh)
        if order.buyer_id != buyer_id:
            raise ResourceNotFound(f"Order {order_id} not found", details={"order_id": order_id})
        return order

    def _settle_buyer_order(self, buyer_id: int, order_id: int, gateway_payment_id=None, signature=None):
        def _op():
            order = self._load_buyer_order(buyer_id, order_id, refresh=True)
            if order.is_paid:
                if gateway_payment_id is None or order.gateway_payment_id == gateway_payment_id:
                    return order, True
                raise PaymentConflict("Order already paid with a different payment", details={"order_id": order.id})
            self._confirm_buyer_order(order, gateway_payment_id, signature)
            self.session.commit()
            return order, False

        return self._run(_op)

    def create_buyer_payment_intent(self, buyer_id: int, order_id: int) -> dict:
        """
        Open a gateway payment for an unpaid buyer order, paid to the admin.

        When no admin credentials exist and fallback is allowed, the order is
        settled immediately instead.
        """
        order = self._load_buyer_order(buyer_id, order_id)
        if order.is_paid:
            return {"order_id": order.id, "paid": True, "mode": "already_paid", "order": order.to_dict()}

        try:
            credentials = resolve_payee_credentials(self.session, ORDER_TYPE_BUYER_PURCHASE)
        except CredentialsMissing:
            if not self.allow_fallback:
                raise
            logger.warning("No platform gateway credentials; settling order %s without gateway", order_id)
            settled, _ = self._settle_buyer_order(buyer_id, order_id)
            return {"order_id": settled.id, "paid": True, "mode": "fallback", "order": settled.to_dict()}

        gateway_order = self.gateway.create_order(
            order.total_amount_cents,
            order.currency,
            credentials,
            receipt=order.order_number,
            notes={"order_id": order.id, "buyer_id": buyer_id},
        )

        def _op():
            locked = self._load_buyer_order(buyer_id, order_id, refresh=True)
            if locked.is_paid:
                raise PaymentConflict("Order already paid", details={"order_id": order_id})
            locked.gateway_order_id = gateway_order.id
            locked.payment_status = PAYMENT_CREATED
            self.session.commit()
            return locked

        self._run(_op)
        return {
            "order_id": order_id,
            "paid": False,
            "mode": "gateway",
            "gateway_order_id": gateway_order.id,
            "amount": gateway_order.amount,
            "currency": gateway_order.currency,
            "key_id": credentials.key_id,
        }

    def verify_buyer_payment(self, buyer_id: int, order_id: int, gateway_order_id: str,
                             gateway_payment_id: str, signature: str) -> dict:
        """
        Verify the admin-signed payment, then reserve and confirm in one
        transaction. A reservation failure rolls back every line.
        """
        order = self._load_buyer_order(buyer_id, order_id)
        self._check_gateway_order(order, gateway_order_id)

        credentials = resolve_payee_credentials(self.session, ORDER_TYPE_BUYER_PURCHASE)
        self.gateway.verify(gateway_order_id, gateway_payment_id, signature, credentials)

        if self._check_replay(order, gateway_payment_id):
            return {"order_id": order.id, "paid": True, "replayed": True, "order": order.to_dict()}
        self._ensure_payment_unused(order, gateway_payment_id)

        settled, replayed = self._settle_buyer_order(buyer_id, order_id, gateway_payment_id, signature)
        if not replayed:
            logger.info("Buyer order %s settled with payment %s", settled.id, gateway_payment_id)
        return {"order_id": settled.id, "paid": True, "replayed": replayed, "order": settled.to_dict()}
