# Overview: Flask API routes for cart, checkout and order reads; parses input and returns JSON responses.

from flask import Blueprint, request, jsonify, g, current_app

from ..extensions import db
from ..models.auth import ROLE_ADMIN, ROLE_BUYER, ROLE_SELLER
from ..models.cart import LINE_TYPE_LOT
from ..services import cart_service, order_service
from ..services.errors import SettlementError
from ..services.settlement_service import SettlementEngine
from ..validation import coerce_int, optional_text, parse_id, parse_quantity, require_fields
from ..decorators import require_auth, require_role


orders_bp = Blueprint("orders", __name__, url_prefix="/api/orders")


def _error(e: SettlementError):
    return jsonify(e.to_dict()), e.status_code


# =============================================================================
# CART
# =============================================================================

@orders_bp.get("/cart")
@require_auth
@require_role(ROLE_BUYER)
def get_cart_route():
    try:
        return jsonify(cart_service.cart_snapshot(db.session, g.current_user.id)), 200
    except Exception:
        current_app.logger.exception("Failed to load cart")
        return jsonify({"error": "Internal server error"}), 500


@orders_bp.post("/cart")
@require_auth
@require_role(ROLE_BUYER)
def add_to_cart_route():
    """
    Add a resale lot (or legacy listing) to the cart.

    Request body:
    {
        "product_id": 7,
        "quantity": 2,
        "product_type": "lot"   (optional: "lot" | "listing")
    }

    Availability is checked here for feedback only; checkout rechecks.
    """
    try:
        data = request.get_json(silent=True)
        require_fields(data, "product_id")

        cart_service.add_item(
            db.session,
            g.current_user.id,
            parse_id(data.get("product_id"), "product_id"),
            parse_quantity(data.get("quantity", 1)),
            product_type=data.get("product_type") or LINE_TYPE_LOT,
        )
        snapshot = cart_service.cart_snapshot(db.session, g.current_user.id)
        snapshot["message"] = "Product added to cart"
        return jsonify(snapshot), 200

    except SettlementError as e:
        db.session.rollback()
        return _error(e)
    except Exception:
        current_app.logger.exception("Failed to add cart item")
        return jsonify({"error": "Internal server error"}), 500


@orders_bp.put("/cart/items/<int:line_id>")
@require_auth
@require_role(ROLE_BUYER)
def update_cart_item_route(line_id: int):
    """Set a line's quantity. 0 removes the line."""
    try:
        data = request.get_json(silent=True) or {}
        quantity = parse_quantity(data.get("quantity", 0), allow_zero=True)
        cart_service.set_line_quantity(db.session, g.current_user.id, line_id, quantity)
        return jsonify(cart_service.cart_snapshot(db.session, g.current_user.id)), 200

    except SettlementError as e:
        db.session.rollback()
        return _error(e)
    except Exception:
        current_app.logger.exception("Failed to update cart item")
        return jsonify({"error": "Internal server error"}), 500


@orders_bp.delete("/cart/items/<int:line_id>")
@require_auth
@require_role(ROLE_BUYER)
def remove_cart_item_route(line_id: int):
    try:
        cart_service.remove_line(db.session, g.current_user.id, line_id)
        return jsonify(cart_service.cart_snapshot(db.session, g.current_user.id)), 200

    except SettlementError as e:
        db.session.rollback()
        return _error(e)
    except Exception:
        current_app.logger.exception("Failed to remove cart item")
        return jsonify({"error": "Internal server error"}), 500


# =============================================================================
# CHECKOUT
# =============================================================================

@orders_bp.post("/checkout")
@require_auth
@require_role(ROLE_BUYER)
def checkout_route():
    """
    Convert the cart into an order.

    Request body (optional):
    {
        "shipping_address": "...",
        "notes": "..."
    }

    Returns:
        201: order (PAID in captured mode, PENDING in gateway mode)
        400: empty cart, or a line exceeding live availability
    """
    try:
        data = request.get_json(silent=True) or {}
        engine = SettlementEngine.from_app()
        order = engine.checkout(
            g.current_user.id,
            shipping_address=optional_text(data, "shipping_address", 2000),
            notes=optional_text(data, "notes", 255),
        )
        return jsonify(order), 201

    except SettlementError as e:
        return _error(e)
    except Exception:
        current_app.logger.exception("Failed to checkout")
        return jsonify({"error": "Internal server error"}), 500


# =============================================================================
# ORDER READS
# =============================================================================

@orders_bp.get("")
@require_auth
@require_role(ROLE_BUYER)
def list_buyer_orders_route():
    try:
        return jsonify({"orders": order_service.list_buyer_orders(db.session, g.current_user.id)}), 200
    except Exception:
        current_app.logger.exception("Failed to list buyer orders")
        return jsonify({"error": "Internal server error"}), 500


@orders_bp.get("/seller")
@require_auth
@require_role(ROLE_SELLER)
def list_seller_orders_route():
    try:
        return jsonify({"orders": order_service.list_seller_orders(db.session, g.current_user.id)}), 200
    except Exception:
        current_app.logger.exception("Failed to list seller orders")
        return jsonify({"error": "Internal server error"}), 500


@orders_bp.get("/admin")
@require_auth
@require_role(ROLE_ADMIN)
def list_all_orders_route():
    """Query params: type, payment_status, page, limit."""
    try:
        page = max(1, coerce_int(request.args.get("page", "1"), "page"))
        limit = min(200, max(1, coerce_int(request.args.get("limit", "50"), "limit")))
        result = order_service.list_all_orders(
            db.session,
            order_type=request.args.get("type"),
            payment_status=request.args.get("payment_status"),
            page=page,
            limit=limit,
        )
        return jsonify(result), 200

    except SettlementError as e:
        return _error(e)
    except Exception:
        current_app.logger.exception("Failed to list orders")
        return jsonify({"error": "Internal server error"}), 500


@orders_bp.get("/<int:order_id>")
@require_auth
def get_order_route(order_id: int):
    try:
        order = order_service.get_order_for_user(db.session, order_id, g.current_user)
        return jsonify(order_service.serialize_order(order)), 200

    except SettlementError as e:
        return _error(e)
    except Exception:
        current_app.logger.exception("Failed to get order")
        return jsonify({"error": "Internal server error"}), 500
