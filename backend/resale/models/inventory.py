from __future__ import annotations

from ..extensions import db
from resale.time_utils import to_utc_z


LISTING_DRAFT = "DRAFT"
LISTING_ACTIVE = "ACTIVE"
LISTING_SOLD = "SOLD"
LISTING_INACTIVE = "INACTIVE"

LOT_ACTIVE = "ACTIVE"
LOT_SOLD_OUT = "SOLD_OUT"
LOT_INACTIVE = "INACTIVE"


class SellerListing(db.Model):
    """
    A seller's original for-sale item.

    INVARIANTS:
    - on_hand_quantity >= 0 (enforced by CHECK and by the conditional
      decrement in inventory_service.decrement_listing)
    - on_hand_quantity == 0 after a purchase => status == SOLD

    on_hand_quantity is only changed through inventory_service mutators.
    """
    __tablename__ = "seller_listings"
    __table_args__ = (
        db.CheckConstraint("on_hand_quantity >= 0", name="ck_listings_on_hand_non_negative"),
        db.Index("ix_listings_seller_status", "seller_id", "status"),
        {"sqlite_autoincrement": True},
    )

    id = db.Column(db.Integer, primary_key=True)
    seller_id = db.Column(db.Integer, db.ForeignKey("users.id"), nullable=False, index=True)

    name = db.Column(db.String(255), nullable=False)
    description = db.Column(db.Text, nullable=True)

    # Authoritative storage in cents
    price_cents = db.Column(db.Integer, nullable=False)
    on_hand_quantity = db.Column(db.Integer, nullable=False, default=0)

    status = db.Column(db.String(16), nullable=False, default=LISTING_DRAFT, index=True)

    # Set once the platform admin has acquired stock from this listing
    admin_purchaser_id = db.Column(db.Integer, db.ForeignKey("users.id"), nullable=True)

    version_id = db.Column(db.Integer, nullable=False, default=1)

    created_at = db.Column(db.DateTime(timezone=True), nullable=False, server_default=db.func.now())
    updated_at = db.Column(
        db.DateTime(timezone=True),
        nullable=False,
        server_default=db.func.now(),
        onupdate=db.func.now(),
    )

    seller = db.relationship("User", foreign_keys=[seller_id], backref=db.backref("listings", lazy=True))
    admin_purchaser = db.relationship("User", foreign_keys=[admin_purchaser_id])
    __mapper_args__ = {"version_id_col": version_id}

    def __repr__(self) -> str:
        return f"<SellerListing id={self.id} name={self.name!r} on_hand={self.on_hand_quantity} status={self.status}>"

    def to_dict(self) -> dict:
        return {
            "id": self.id,
            "seller_id": self.seller_id,
            "name": self.name,
            "description": self.description,
            "price_cents": self.price_cents,
            "on_hand_quantity": self.on_hand_quantity,
            "status": self.status,
            "admin_purchaser_id": self.admin_purchaser_id,
            "version_id": self.version_id,
            "created_at": to_utc_z(self.created_at),
            "updated_at": to_utc_z(self.updated_at),
        }


class ResaleLot(db.Model):
    """
    Admin-owned inventory batch acquired from a seller listing.

    WHY: Buyers purchase from curated platform stock, not from sellers
    directly. A lot tracks partial sell-through of a fixed acquired quantity.

    INVARIANTS:
    - 0 <= sold_quantity <= total_quantity (CHECK + conditional reserve)
    - total_quantity and purchase_price_cents are frozen at acquisition
    - exactly one lot per admin-purchase order (unique order_id)
    """
    __tablename__ = "resale_lots"
    __table_args__ = (
        db.CheckConstraint("total_quantity >= 1", name="ck_lots_total_positive"),
        db.CheckConstraint(
            "sold_quantity >= 0 AND sold_quantity <= total_quantity",
            name="ck_lots_sold_within_total",
        ),
        db.Index("ix_lots_purchaser_status", "purchaser_id", "status"),
        {"sqlite_autoincrement": True},
    )

    id = db.Column(db.Integer, primary_key=True)

    listing_id = db.Column(db.Integer, db.ForeignKey("seller_listings.id"), nullable=False, index=True)
    seller_id = db.Column(db.Integer, db.ForeignKey("users.id"), nullable=False, index=True)
    purchaser_id = db.Column(db.Integer, db.ForeignKey("users.id"), nullable=False)
    order_id = db.Column(db.Integer, db.ForeignKey("orders.id"), nullable=False, unique=True)

    # Copied from the listing so the lot is independent of later listing edits
    name = db.Column(db.String(255), nullable=False)
    description = db.Column(db.Text, nullable=True)

    total_quantity = db.Column(db.Integer, nullable=False)
    sold_quantity = db.Column(db.Integer, nullable=False, default=0)

    purchase_price_cents = db.Column(db.Integer, nullable=False)
    selling_price_cents = db.Column(db.Integer, nullable=False)

    status = db.Column(db.String(16), nullable=False, default=LOT_ACTIVE, index=True)

    created_at = db.Column(db.DateTime(timezone=True), nullable=False, server_default=db.func.now())
    updated_at = db.Column(
        db.DateTime(timezone=True),
        nullable=False,
        server_default=db.func.now(),
        onupdate=db.func.now(),
    )

    listing = db.relationship("SellerListing", backref=db.backref("lots", lazy=True))
    seller = db.relationship("User", foreign_keys=[seller_id])
    purchaser = db.relationship("User", foreign_keys=[purchaser_id])

    @property
    def available_quantity(self) -> int:
        return self.total_quantity - self.sold_quantity

    def __repr__(self) -> str:
        return f"<ResaleLot id={self.id} sold={self.sold_quantity}/{self.total_quantity} status={self.status}>"

    def to_dict(self) -> dict:
        return {
            "id": self.id,
            "listing_id": self.listing_id,
            "seller_id": self.seller_id,
            "purchaser_id": self.purchaser_id,
            "order_id": self.order_id,
            "name": self.name,
            "description": self.description,
            "total_quantity": self.total_quantity,
            "sold_quantity": self.sold_quantity,
            "available_quantity": self.available_quantity,
            "purchase_price_cents": self.purchase_price_cents,
            "selling_price_cents": self.selling_price_cents,
            "status": self.status,
            "created_at": to_utc_z(self.created_at),
            "updated_at": to_utc_z(self.updated_at),
        }
