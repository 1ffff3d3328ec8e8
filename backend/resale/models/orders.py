from __future__ import annotations

from ..extensions import db
from resale.time_utils import to_utc_z


ORDER_TYPE_ADMIN_PURCHASE = "ADMIN_PURCHASE"
ORDER_TYPE_BUYER_PURCHASE = "BUYER_PURCHASE"

ORDER_PLACED = "PLACED"
ORDER_CONFIRMED = "CONFIRMED"
ORDER_SHIPPED = "SHIPPED"
ORDER_DELIVERED = "DELIVERED"
ORDER_CANCELLED = "CANCELLED"

PAYMENT_CREATED = "CREATED"
PAYMENT_PENDING = "PENDING"
PAYMENT_PAID = "PAID"
PAYMENT_FAILED = "FAILED"
PAYMENT_REFUNDED = "REFUNDED"


class Order(db.Model):
    """
    Purchase order, one table for both purchase flows.

    WHY: The two flows involve different parties. The `type` column is a
    polymorphic discriminator, so rows load as AdminPurchaseOrder or
    BuyerPurchaseOrder and each variant only exposes the party fields that
    are meaningful for it.

    LIFECYCLE:
    - Created PLACED with payment CREATED (gateway order exists) or PENDING
    - PAID/CONFIRMED only after signature verification or captured checkout
    - Never regresses from PAID

    Line items freeze product, quantity and unit price at purchase time and
    are never recomputed from the current listing or lot price.
    """
    __tablename__ = "orders"
    __table_args__ = (
        db.Index("ix_orders_type_created", "type", "created_at"),
        db.Index("ix_orders_gateway_order_id", "gateway_order_id"),
        {"sqlite_autoincrement": True},
    )

    id = db.Column(db.Integer, primary_key=True)
    type = db.Column(db.String(32), nullable=False, index=True)

    # Human-readable order number (e.g., "OD00001234")
    order_number = db.Column(db.String(32), nullable=True, unique=True)

    total_amount_cents = db.Column(db.BigInteger, nullable=False, default=0)
    currency = db.Column(db.String(8), nullable=False, default="INR")

    status = db.Column(db.String(16), nullable=False, default=ORDER_PLACED, index=True)
    payment_status = db.Column(db.String(16), nullable=False, default=PAYMENT_PENDING, index=True)

    # Gateway correlation triple
    gateway_order_id = db.Column(db.String(64), nullable=True)
    gateway_payment_id = db.Column(db.String(64), nullable=True, unique=True)
    gateway_signature = db.Column(db.String(128), nullable=True)

    paid_at = db.Column(db.DateTime(timezone=True), nullable=True)

    version_id = db.Column(db.Integer, nullable=False, default=1)

    created_at = db.Column(db.DateTime(timezone=True), nullable=False, server_default=db.func.now())
    updated_at = db.Column(
        db.DateTime(timezone=True),
        nullable=False,
        server_default=db.func.now(),
        onupdate=db.func.now(),
    )

    lines = db.relationship(
        "OrderLine",
        backref="order",
        lazy=True,
        order_by="OrderLine.id",
        cascade="all, delete-orphan",
    )

    __mapper_args__ = {
        "polymorphic_on": type,
        "version_id_col": version_id,
    }

    @property
    def is_paid(self) -> bool:
        return self.payment_status == PAYMENT_PAID

    def party_ids(self) -> set[int]:
        return set()

    def to_dict(self) -> dict:
        return {
            "id": self.id,
            "type": self.type,
            "order_number": self.order_number,
            "total_amount_cents": self.total_amount_cents,
            "currency": self.currency,
            "status": self.status,
            "payment_status": self.payment_status,
            "gateway_order_id": self.gateway_order_id,
            "gateway_payment_id": self.gateway_payment_id,
            "paid_at": to_utc_z(self.paid_at) if self.paid_at else None,
            "version_id": self.version_id,
            "created_at": to_utc_z(self.created_at),
            "updated_at": to_utc_z(self.updated_at),
            "lines": [line.to_dict() for line in self.lines],
        }


class AdminPurchaseOrder(Order):
    """Admin acquiring stock from a seller listing (funds go to the seller)."""

    admin_id = db.Column(db.Integer, db.ForeignKey("users.id"), nullable=True, index=True)
    seller_id = db.Column(db.Integer, db.ForeignKey("users.id"), nullable=True, index=True)

    # Resale price chosen by admin at intent time, applied to the lot on settlement
    resale_price_cents = db.Column(db.Integer, nullable=True)

    admin = db.relationship("User", foreign_keys=[admin_id])
    seller = db.relationship("User", foreign_keys=[seller_id])

    __mapper_args__ = {"polymorphic_identity": ORDER_TYPE_ADMIN_PURCHASE}

    def party_ids(self) -> set[int]:
        return {self.admin_id, self.seller_id}

    def to_dict(self) -> dict:
        data = super().to_dict()
        data.update({
            "admin_id": self.admin_id,
            "seller_id": self.seller_id,
            "resale_price_cents": self.resale_price_cents,
        })
        return data


class BuyerPurchaseOrder(Order):
    """Buyer purchasing curated resale stock (funds go to the platform admin)."""

    buyer_id = db.Column(db.Integer, db.ForeignKey("users.id"), nullable=True, index=True)

    shipping_address = db.Column(db.Text, nullable=True)
    notes = db.Column(db.String(255), nullable=True)

    buyer = db.relationship("User", foreign_keys=[buyer_id])

    __mapper_args__ = {"polymorphic_identity": ORDER_TYPE_BUYER_PURCHASE}

    def party_ids(self) -> set[int]:
        return {self.buyer_id}

    def to_dict(self) -> dict:
        data = super().to_dict()
        data.update({
            "buyer_id": self.buyer_id,
            "shipping_address": self.shipping_address,
            "notes": self.notes,
        })
        return data


class OrderLine(db.Model):
    """Frozen line item: product reference, name, quantity and unit price at purchase."""
    __tablename__ = "order_lines"
    __table_args__ = (
        db.CheckConstraint("quantity >= 1", name="ck_order_lines_quantity_positive"),
        {"sqlite_autoincrement": True},
    )

    id = db.Column(db.Integer, primary_key=True)
    order_id = db.Column(db.Integer, db.ForeignKey("orders.id"), nullable=False, index=True)

    # Exactly one of these is set
    lot_id = db.Column(db.Integer, db.ForeignKey("resale_lots.id"), nullable=True, index=True)
    listing_id = db.Column(db.Integer, db.ForeignKey("seller_listings.id"), nullable=True, index=True)

    product_name = db.Column(db.String(255), nullable=False)
    quantity = db.Column(db.Integer, nullable=False)
    unit_price_cents = db.Column(db.Integer, nullable=False)
    line_total_cents = db.Column(db.BigInteger, nullable=False)

    created_at = db.Column(db.DateTime(timezone=True), nullable=False, server_default=db.func.now())

    lot = db.relationship("ResaleLot")
    listing = db.relationship("SellerListing")

    def to_dict(self) -> dict:
        return {
            "id": self.id,
            "order_id": self.order_id,
            "lot_id": self.lot_id,
            "listing_id": self.listing_id,
            "product_name": self.product_name,
            "quantity": self.quantity,
            "unit_price_cents": self.unit_price_cents,
            "line_total_cents": self.line_total_cents,
            "created_at": to_utc_z(self.created_at),
        }
