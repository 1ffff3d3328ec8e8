# Overview: Service-layer operations for the buyer cart; intent only, no stock is reserved here.

from __future__ import annotations

from ..models import Cart, CartLine, ResaleLot, SellerListing
from ..models.cart import LINE_TYPE_LOT, LINE_TYPE_LISTING
from ..models.inventory import LISTING_ACTIVE, LOT_ACTIVE
from .errors import InsufficientStock, ResourceNotFound, ValidationError
"""
Cart Aggregation

- One cart per buyer, created lazily and never deleted by line removal.
- Adding a product already in the cart increments the existing line.
- Add-time availability checks are advisory. Checkout revalidates every line
  against live stock inside the settlement transaction.
- Legacy listing lines are accepted only for ACTIVE listings that the
  platform admin has already acquired from.
"""


def get_or_create_cart(session, buyer_id: int) -> Cart:
    cart = session.query(Cart).filter_by(buyer_id=buyer_id).first()
    if cart is None:
        cart = Cart(buyer_id=buyer_id)
        session.add(cart)
        session.flush()
    return cart


def _get_line(session, buyer_id: int, line_id: int) -> CartLine:
    line = (
        session.query(CartLine)
        .join(Cart, Cart.id == CartLine.cart_id)
        .filter(CartLine.id == line_id, Cart.buyer_id == buyer_id)
        .first()
    )
    if line is None:
        raise ResourceNotFound(f"Cart item {line_id} not found", details={"line_id": line_id})
    return line


def _lot_available(lot: ResaleLot) -> int:
    return lot.available_quantity if lot.status == LOT_ACTIVE else 0


def _listing_available(listing: SellerListing) -> int:
    return listing.on_hand_quantity if listing.status == LISTING_ACTIVE else 0


def _check_line_quantity(line: CartLine, quantity: int) -> None:
    """Raise InsufficientStock when `quantity` exceeds the line product's current availability."""
    if line.lot_id is not None:
        product = line.lot
        available = _lot_available(product) if product is not None else 0
    else:
        product = line.listing
        available = _listing_available(product) if product is not None else 0
    if product is None:
        raise ResourceNotFound("Product no longer exists", details={"line_id": line.id})
    if quantity > available:
        raise InsufficientStock(product.name, requested=quantity, available=available, product_id=product.id)


def add_item(session, buyer_id: int, product_id: int, quantity: int, *, product_type: str = LINE_TYPE_LOT) -> Cart:
    """
    Add `quantity` of a lot (or legacy listing) to the buyer's cart.

    Raises:
        ValidationError: quantity < 1, unknown product_type, product not purchasable
        ResourceNotFound: unknown product
        InsufficientStock: existing + new quantity exceeds current availability
    """
    if quantity < 1:
        raise ValidationError("quantity must be at least 1")

    cart = get_or_create_cart(session, buyer_id)

    if product_type == LINE_TYPE_LOT:
        lot = session.get(ResaleLot, product_id)
        if lot is None:
            raise ResourceNotFound(f"Product {product_id} not found", details={"product_id": product_id})
        if lot.status != LOT_ACTIVE:
            raise ValidationError("Product not available for purchase", details={"product_id": product_id})
        if lot.available_quantity <= 0:
            raise InsufficientStock(lot.name, requested=quantity, available=0, product_id=lot.id)

        line = session.query(CartLine).filter_by(cart_id=cart.id, lot_id=lot.id).first()
        new_quantity = quantity + (line.quantity if line else 0)
        if new_quantity > lot.available_quantity:
            raise InsufficientStock(lot.name, requested=new_quantity, available=lot.available_quantity, product_id=lot.id)

        if line:
            line.quantity = new_quantity
        else:
            session.add(CartLine(cart_id=cart.id, lot_id=lot.id, quantity=quantity))

    elif product_type == LINE_TYPE_LISTING:
        listing = session.get(SellerListing, product_id)
        if listing is None:
            raise ResourceNotFound(f"Product {product_id} not found", details={"product_id": product_id})
        if listing.status != LISTING_ACTIVE or listing.admin_purchaser_id is None:
            raise ValidationError("Product not available for purchase", details={"product_id": product_id})

        line = session.query(CartLine).filter_by(cart_id=cart.id, listing_id=listing.id).first()
        new_quantity = quantity + (line.quantity if line else 0)
        if new_quantity > listing.on_hand_quantity:
            raise InsufficientStock(listing.name, requested=new_quantity, available=listing.on_hand_quantity,
                                    product_id=listing.id)

        if line:
            line.quantity = new_quantity
        else:
            session.add(CartLine(cart_id=cart.id, listing_id=listing.id, quantity=quantity))

    else:
        raise ValidationError(f"product_type must be one of {[LINE_TYPE_LOT, LINE_TYPE_LISTING]}")

    session.commit()
    session.refresh(cart)
    return cart


def set_line_quantity(session, buyer_id: int, line_id: int, quantity: int) -> Cart:
    """
    Set a line's quantity; 0 removes the line.

    Raises:
        InsufficientStock: quantity exceeds current availability, or the
            product is no longer ACTIVE
    """
    if quantity < 0:
        raise ValidationError("quantity cannot be negative")

    line = _get_line(session, buyer_id, line_id)
    cart = line.cart
    if quantity == 0:
        cart.lines.remove(line)
    else:
        _check_line_quantity(line, quantity)
        line.quantity = quantity

    session.commit()
    session.refresh(cart)
    return cart


def remove_line(session, buyer_id: int, line_id: int) -> Cart:
    line = _get_line(session, buyer_id, line_id)
    cart = line.cart
    cart.lines.remove(line)
    session.commit()
    session.refresh(cart)
    return cart


def clear_cart(session, cart: Cart) -> None:
    """Remove every line. Never commits; runs inside checkout's transaction."""
    for line in list(cart.lines):
        cart.lines.remove(line)
    session.flush()


def _line_snapshot(line: CartLine) -> dict | None:
    if line.lot_id is not None:
        lot = line.lot
        if lot is None:
            return None
        product = {
            "id": lot.id,
            "name": lot.name,
            "price_cents": lot.selling_price_cents,
            "available_quantity": lot.available_quantity if lot.status == LOT_ACTIVE else 0,
            "status": lot.status,
            "is_admin_product": True,
        }
    else:
        listing = line.listing
        if listing is None:
            return None
        product = {
            "id": listing.id,
            "name": listing.name,
            "price_cents": listing.price_cents,
            "available_quantity": listing.on_hand_quantity if listing.status == LISTING_ACTIVE else 0,
            "status": listing.status,
            "is_admin_product": False,
        }

    return {
        "id": line.id,
        "product": product,
        "product_type": line.line_type,
        "quantity": line.quantity,
        "line_total_cents": product["price_cents"] * line.quantity,
    }


def cart_snapshot(session, buyer_id: int) -> dict:
    """
    Buyer-facing view of the cart with current (advisory) prices and
    availability. Lines whose product no longer exists are omitted.
    """
    cart = session.query(Cart).filter_by(buyer_id=buyer_id).first()
    if cart is None:
        return {"cart_id": None, "items": [], "total_cents": 0, "item_count": 0}

    items = [snap for snap in (_line_snapshot(line) for line in cart.lines) if snap is not None]
    return {
        "cart_id": cart.id,
        "items": items,
        "total_cents": sum(item["line_total_cents"] for item in items),
        "item_count": sum(item["quantity"] for item in items),
    }
