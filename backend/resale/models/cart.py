from __future__ import annotations

from ..extensions import db
from resale.time_utils import to_utc_z


LINE_TYPE_LOT = "lot"
LINE_TYPE_LISTING = "listing"


class Cart(db.Model):
    """
    One cart per buyer.

    WHY: Carts hold purchase intent only. Nothing is reserved while lines
    sit here; checkout revalidates every line against live stock.
    The cart row survives removal of its last line.
    """
    __tablename__ = "carts"
    __table_args__ = {"sqlite_autoincrement": True}

    id = db.Column(db.Integer, primary_key=True)
    buyer_id = db.Column(db.Integer, db.ForeignKey("users.id"), nullable=False, unique=True)

    created_at = db.Column(db.DateTime(timezone=True), nullable=False, server_default=db.func.now())
    updated_at = db.Column(
        db.DateTime(timezone=True),
        nullable=False,
        server_default=db.func.now(),
        onupdate=db.func.now(),
    )

    buyer = db.relationship("User", backref=db.backref("cart", uselist=False, lazy=True))
    lines = db.relationship(
        "CartLine",
        backref="cart",
        lazy=True,
        order_by="CartLine.id",
        cascade="all, delete-orphan",
    )

    def to_dict(self) -> dict:
        return {
            "id": self.id,
            "buyer_id": self.buyer_id,
            "created_at": to_utc_z(self.created_at),
            "updated_at": to_utc_z(self.updated_at),
        }


class CartLine(db.Model):
    """A (lot or legacy listing, quantity) intent in a buyer's cart."""
    __tablename__ = "cart_lines"
    __table_args__ = (
        db.CheckConstraint("quantity >= 1", name="ck_cart_lines_quantity_positive"),
        db.CheckConstraint(
            "(lot_id IS NOT NULL AND listing_id IS NULL) OR (lot_id IS NULL AND listing_id IS NOT NULL)",
            name="ck_cart_lines_single_target",
        ),
        db.UniqueConstraint("cart_id", "lot_id", name="uq_cart_lines_cart_lot"),
        db.UniqueConstraint("cart_id", "listing_id", name="uq_cart_lines_cart_listing"),
        {"sqlite_autoincrement": True},
    )

    id = db.Column(db.Integer, primary_key=True)
    cart_id = db.Column(db.Integer, db.ForeignKey("carts.id"), nullable=False, index=True)

    lot_id = db.Column(db.Integer, db.ForeignKey("resale_lots.id"), nullable=True)
    listing_id = db.Column(db.Integer, db.ForeignKey("seller_listings.id"), nullable=True)

    quantity = db.Column(db.Integer, nullable=False)

    created_at = db.Column(db.DateTime(timezone=True), nullable=False, server_default=db.func.now())

    lot = db.relationship("ResaleLot")
    listing = db.relationship("SellerListing")

    @property
    def line_type(self) -> str:
        return LINE_TYPE_LOT if self.lot_id is not None else LINE_TYPE_LISTING

    def to_dict(self) -> dict:
        return {
            "id": self.id,
            "cart_id": self.cart_id,
            "lot_id": self.lot_id,
            "listing_id": self.listing_id,
            "line_type": self.line_type,
            "quantity": self.quantity,
            "created_at": to_utc_z(self.created_at),
        }
