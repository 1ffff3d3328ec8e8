from __future__ import annotations

from decimal import Decimal

from ..extensions import db
from resale.time_utils import to_utc_z


COMMISSION_PENDING = "PENDING"
COMMISSION_PAID = "PAID"

DEFAULT_COMMISSION_RATE = Decimal("0.05")


class BrokerAccount(db.Model):
    """
    Referral broker profile.

    Sellers and buyers tag themselves with a broker_code (User.referred_by_code)
    to route commissions on the platform's resale margin to that broker.

    total_earnings_cents is only changed by an atomic SQL increment in
    commission_service, never by read-modify-write.
    """
    __tablename__ = "broker_accounts"
    __table_args__ = {"sqlite_autoincrement": True}

    id = db.Column(db.Integer, primary_key=True)
    user_id = db.Column(db.Integer, db.ForeignKey("users.id"), nullable=False, unique=True)

    broker_code = db.Column(db.String(16), nullable=False, unique=True, index=True)

    total_earnings_cents = db.Column(db.BigInteger, nullable=False, default=0)
    total_commission_paid_cents = db.Column(db.BigInteger, nullable=False, default=0)

    is_active = db.Column(db.Boolean, nullable=False, default=True)

    created_at = db.Column(db.DateTime(timezone=True), nullable=False, server_default=db.func.now())
    updated_at = db.Column(
        db.DateTime(timezone=True),
        nullable=False,
        server_default=db.func.now(),
        onupdate=db.func.now(),
    )

    user = db.relationship("User", backref=db.backref("broker_account", uselist=False, lazy=True))

    def to_dict(self) -> dict:
        return {
            "id": self.id,
            "user_id": self.user_id,
            "broker_code": self.broker_code,
            "total_earnings_cents": self.total_earnings_cents,
            "total_commission_paid_cents": self.total_commission_paid_cents,
            "is_active": self.is_active,
            "created_at": to_utc_z(self.created_at),
        }


class CommissionRecord(db.Model):
    """
    Credit of a fraction of realized margin to a referring broker.

    One purchased lot line yields up to two records: one for the seller's
    broker and one for the buyer's broker. Immutable after creation except
    for status.

    profit_cents may be zero or negative (admin resold below cost); the
    record is still written with a non-positive commission.
    """
    __tablename__ = "commission_records"
    __table_args__ = (
        db.Index("ix_commissions_broker_created", "broker_id", "created_at"),
        {"sqlite_autoincrement": True},
    )

    id = db.Column(db.Integer, primary_key=True)
    broker_id = db.Column(db.Integer, db.ForeignKey("broker_accounts.id"), nullable=False, index=True)
    order_id = db.Column(db.Integer, db.ForeignKey("orders.id"), nullable=False, index=True)
    lot_id = db.Column(db.Integer, db.ForeignKey("resale_lots.id"), nullable=False, index=True)
    seller_id = db.Column(db.Integer, db.ForeignKey("users.id"), nullable=False)
    buyer_id = db.Column(db.Integer, db.ForeignKey("users.id"), nullable=False)

    # Which referral relationship produced this credit: SELLER or BUYER
    referral_side = db.Column(db.String(8), nullable=False)

    purchase_price_cents = db.Column(db.Integer, nullable=False)
    selling_price_cents = db.Column(db.Integer, nullable=False)
    profit_cents = db.Column(db.Integer, nullable=False)
    commission_rate = db.Column(db.Numeric(6, 4), nullable=False, default=DEFAULT_COMMISSION_RATE)
    commission_amount_cents = db.Column(db.Integer, nullable=False)

    status = db.Column(db.String(16), nullable=False, default=COMMISSION_PENDING, index=True)

    created_at = db.Column(db.DateTime(timezone=True), nullable=False, server_default=db.func.now())

    broker = db.relationship("BrokerAccount", backref=db.backref("commissions", lazy=True))
    order = db.relationship("Order")
    lot = db.relationship("ResaleLot")
    seller = db.relationship("User", foreign_keys=[seller_id])
    buyer = db.relationship("User", foreign_keys=[buyer_id])

    def to_dict(self) -> dict:
        return {
            "id": self.id,
            "broker_id": self.broker_id,
            "order_id": self.order_id,
            "lot_id": self.lot_id,
            "seller_id": self.seller_id,
            "buyer_id": self.buyer_id,
            "referral_side": self.referral_side,
            "purchase_price_cents": self.purchase_price_cents,
            "selling_price_cents": self.selling_price_cents,
            "profit_cents": self.profit_cents,
            "commission_rate": str(self.commission_rate),
            "commission_amount_cents": self.commission_amount_cents,
            "status": self.status,
            "created_at": to_utc_z(self.created_at),
        }
