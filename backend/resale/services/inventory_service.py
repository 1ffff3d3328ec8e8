# Overview: Service-layer operations for listings and resale lots; the only writers of quantity fields.

from __future__ import annotations

from sqlalchemy import case, func, update

from ..models import SellerListing, ResaleLot
from ..models.inventory import (
    LISTING_SOLD,
    LOT_ACTIVE,
    LOT_SOLD_OUT,
    LOT_INACTIVE,
)
from .errors import InsufficientStock, ResourceNotFound, ValidationError
"""
Inventory Invariants (authoritative)

- SellerListing.on_hand_quantity >= 0 at all times.
- A purchase that brings on_hand_quantity to 0 marks the listing SOLD.
- ResaleLot: 0 <= sold_quantity <= total_quantity at all times.
- A reservation that brings sold_quantity to total_quantity marks the lot
  SOLD_OUT (never INACTIVE automatically).

Mutation discipline:
- decrement_listing, create_lot and reserve_from_lot are the only legal ways
  to change quantity fields.
- Availability is checked inside the UPDATE statement's WHERE clause at the
  moment of mutation, never against a value read earlier (cart-time data
  is advisory only).
- A zero-row conditional UPDATE is re-read to report either
  ResourceNotFound or InsufficientStock; nothing is silently overwritten.
- These functions never commit. The caller owns the transaction.
"""


def get_listing(session, listing_id: int) -> SellerListing:
    listing = session.get(SellerListing, listing_id)
    if listing is None:
        raise ResourceNotFound(f"Listing {listing_id} not found", details={"listing_id": listing_id})
    return listing


def get_lot(session, lot_id: int, *, purchaser_id: int | None = None) -> ResaleLot:
    lot = session.get(ResaleLot, lot_id)
    if lot is None or (purchaser_id is not None and lot.purchaser_id != purchaser_id):
        raise ResourceNotFound(f"Resale lot {lot_id} not found", details={"lot_id": lot_id})
    return lot


# =============================================================================
# QUANTITY MUTATORS
# =============================================================================

def decrement_listing(session, listing_id: int, quantity: int, *, admin_purchaser_id: int | None = None) -> SellerListing:
    """
    Take `quantity` units off a seller listing.

    Only quantity is checked, not status. A listing the seller deactivates
    after an admin intent is created is still acquired once that intent's
    payment verifies. Callers that need ACTIVE check it themselves.

    Raises:
        ValidationError: quantity < 1
        ResourceNotFound: unknown listing
        InsufficientStock: quantity > on_hand at mutation time
    """
    if quantity < 1:
        raise ValidationError("quantity must be at least 1")

    values = {
        "on_hand_quantity": SellerListing.on_hand_quantity - quantity,
        "status": case(
            (SellerListing.on_hand_quantity - quantity <= 0, LISTING_SOLD),
            else_=SellerListing.status,
        ),
        "version_id": SellerListing.version_id + 1,
    }
    if admin_purchaser_id is not None:
        values["admin_purchaser_id"] = admin_purchaser_id

    stmt = (
        update(SellerListing)
        .where(
            SellerListing.id == listing_id,
            SellerListing.on_hand_quantity >= quantity,
        )
        .values(**values)
        .execution_options(synchronize_session=False)
    )
    result = session.execute(stmt)

    if result.rowcount != 1:
        listing = session.get(SellerListing, listing_id, populate_existing=True)
        if listing is None:
            raise ResourceNotFound(f"Listing {listing_id} not found", details={"listing_id": listing_id})
        raise InsufficientStock(
            listing.name,
            requested=quantity,
            available=listing.on_hand_quantity,
            product_id=listing.id,
        )

    return session.get(SellerListing, listing_id, populate_existing=True)


def create_lot(
    session,
    *,
    listing: SellerListing,
    seller_id: int,
    purchaser_id: int,
    order_id: int,
    quantity: int,
    purchase_price_cents: int,
    selling_price_cents: int,
) -> ResaleLot:
    """
    Create the resale lot for a settled admin purchase.

    total = quantity, sold = 0, status = ACTIVE. The unique order_id column
    guarantees one lot per admin-purchase order.
    """
    if quantity < 1:
        raise ValidationError("Lot quantity must be at least 1")
    if selling_price_cents <= 0:
        raise ValidationError("selling price must be greater than 0")

    lot = ResaleLot(
        listing_id=listing.id,
        seller_id=seller_id,
        purchaser_id=purchaser_id,
        order_id=order_id,
        name=listing.name,
        description=listing.description,
        total_quantity=quantity,
        sold_quantity=0,
        purchase_price_cents=purchase_price_cents,
        selling_price_cents=selling_price_cents,
        status=LOT_ACTIVE,
    )
    session.add(lot)
    session.flush()  # Get lot ID
    return lot


def reserve_from_lot(session, lot_id: int, quantity: int) -> ResaleLot:
    """
    Sell `quantity` units out of an ACTIVE resale lot.

    Availability (total - sold) is recomputed by the database in the same
    statement that increments sold_quantity, so two buyers racing on the
    last units cannot both succeed.

    Raises:
        ValidationError: quantity < 1
        ResourceNotFound: unknown lot
        InsufficientStock: quantity > total - sold, or lot not ACTIVE
    """
    if quantity < 1:
        raise ValidationError("quantity must be at least 1")

    stmt = (
        update(ResaleLot)
        .where(
            ResaleLot.id == lot_id,
            ResaleLot.status == LOT_ACTIVE,
            ResaleLot.sold_quantity + quantity <= ResaleLot.total_quantity,
        )
        .values(
            sold_quantity=ResaleLot.sold_quantity + quantity,
            status=case(
                (ResaleLot.sold_quantity + quantity >= ResaleLot.total_quantity, LOT_SOLD_OUT),
                else_=ResaleLot.status,
            ),
        )
        .execution_options(synchronize_session=False)
    )
    result = session.execute(stmt)

    if result.rowcount != 1:
        lot = session.get(ResaleLot, lot_id, populate_existing=True)
        if lot is None:
            raise ResourceNotFound(f"Resale lot {lot_id} not found", details={"lot_id": lot_id})
        available = lot.available_quantity if lot.status == LOT_ACTIVE else 0
        raise InsufficientStock(lot.name, requested=quantity, available=available, product_id=lot.id)

    return session.get(ResaleLot, lot_id, populate_existing=True)


# =============================================================================
# LOT MANAGEMENT (admin)
# =============================================================================

def list_lots(session, purchaser_id: int, *, status: str | None = None, search: str | None = None,
              page: int = 1, limit: int = 20) -> dict:
    query = session.query(ResaleLot).filter(ResaleLot.purchaser_id == purchaser_id)
    if status:
        query = query.filter(ResaleLot.status == status)
    if search:
        query = query.filter(ResaleLot.name.ilike(f"%{search}%"))

    total = query.count()
    lots = (
        query.order_by(ResaleLot.created_at.desc(), ResaleLot.id.desc())
        .offset((page - 1) * limit)
        .limit(limit)
        .all()
    )
    return {
        "lots": [lot.to_dict() for lot in lots],
        "total": total,
        "page": page,
        "pages": (total + limit - 1) // limit if limit else 0,
    }


def update_lot(session, lot_id: int, purchaser_id: int, *, selling_price_cents: int | None = None,
               status: str | None = None, name: str | None = None, description: str | None = None) -> ResaleLot:
    """
    Edit admin-controlled lot fields. Quantities are not editable here.

    status may only be toggled between ACTIVE and INACTIVE; SOLD_OUT is set
    by reservation alone.
    """
    lot = get_lot(session, lot_id, purchaser_id=purchaser_id)

    if selling_price_cents is not None:
        if selling_price_cents <= 0:
            raise ValidationError("Invalid selling price")
        lot.selling_price_cents = selling_price_cents

    if status is not None:
        if status not in (LOT_ACTIVE, LOT_INACTIVE):
            raise ValidationError(f"status must be one of {[LOT_ACTIVE, LOT_INACTIVE]}")
        if status == LOT_ACTIVE and lot.available_quantity <= 0:
            raise ValidationError("Cannot activate a lot with no available quantity")
        lot.status = status

    if name is not None:
        lot.name = name
    if description is not None:
        lot.description = description

    session.flush()
    return lot


def deactivate_lot(session, lot_id: int, purchaser_id: int) -> ResaleLot:
    """Soft delete: INACTIVE. Refused once the lot has sales history."""
    lot = get_lot(session, lot_id, purchaser_id=purchaser_id)
    if lot.sold_quantity > 0:
        raise ValidationError("Cannot delete product with sales history")
    lot.status = LOT_INACTIVE
    session.flush()
    return lot


def get_lot_stats(session, purchaser_id: int) -> dict:
    row = session.query(
        func.count(ResaleLot.id),
        func.coalesce(func.sum(ResaleLot.total_quantity), 0),
        func.coalesce(func.sum(ResaleLot.sold_quantity), 0),
        func.coalesce(func.sum(ResaleLot.purchase_price_cents * ResaleLot.total_quantity), 0),
        func.coalesce(func.sum(ResaleLot.selling_price_cents * ResaleLot.total_quantity), 0),
        func.coalesce(func.sum(case((ResaleLot.status == LOT_ACTIVE, 1), else_=0)), 0),
    ).filter(ResaleLot.purchaser_id == purchaser_id).one()

    total_lots, total_quantity, sold_quantity, investment, potential_revenue, active_lots = (int(v or 0) for v in row)
    return {
        "total_lots": total_lots,
        "active_lots": active_lots,
        "total_quantity": total_quantity,
        "sold_quantity": sold_quantity,
        "available_quantity": total_quantity - sold_quantity,
        "total_investment_cents": investment,
        "potential_revenue_cents": potential_revenue,
        "potential_profit_cents": potential_revenue - investment,
    }
