# Overview: Flask API routes for gateway payments; parses input and returns JSON responses.

# backend/resale/routes/payments.py
"""
Payment API Routes

Admin purchase (funds to the seller):
- POST /api/payments/admin/create-order
- POST /api/payments/admin/verify
- GET  /api/payments/admin/status/<order_id>

Buyer purchase (funds to the platform admin):
- POST /api/payments/buyer/create-order
- POST /api/payments/buyer/verify

Every verify call checks the HMAC signature with the payee's secret before
anything is written.
"""

from flask import Blueprint, request, jsonify, g, current_app

from ..extensions import db
from ..models.auth import ROLE_ADMIN, ROLE_BUYER
from ..services import order_service
from ..services.errors import SettlementError
from ..services.settlement_service import SettlementEngine
from ..validation import parse_id, parse_quantity, parse_price_cents, require_fields
from ..decorators import require_auth, require_role


payments_bp = Blueprint("payments", __name__, url_prefix="/api/payments")


def _verification_fields(data: dict) -> dict:
    require_fields(data, "gateway_order_id", "gateway_payment_id", "signature", "order_id")
    return {
        "order_id": parse_id(data.get("order_id"), "order_id"),
        "gateway_order_id": str(data["gateway_order_id"]),
        "gateway_payment_id": str(data["gateway_payment_id"]),
        "signature": str(data["signature"]),
    }


# =============================================================================
# ADMIN PURCHASE
# =============================================================================

@payments_bp.post("/admin/create-order")
@require_auth
@require_role(ROLE_ADMIN)
def admin_create_order_route():
    """
    Open a gateway order with the seller's keys for an admin acquisition.

    Request body:
    {
        "listing_id": 12,
        "quantity": 3,
        "resale_price_cents": 8000
    }

    Returns:
        201: gateway order details plus the local order id
        400: bad quantity/price, listing unavailable, insufficient stock,
             seller credentials missing
        404: unknown listing
        502: gateway unavailable
    """
    try:
        data = request.get_json(silent=True)
        require_fields(data, "listing_id")

        engine = SettlementEngine.from_app()
        result = engine.create_admin_purchase_intent(
            admin_id=g.current_user.id,
            listing_id=parse_id(data.get("listing_id"), "listing_id"),
            quantity=parse_quantity(data.get("quantity", 1)),
            resale_price_cents=parse_price_cents(data.get("resale_price_cents"), "resale_price_cents"),
        )
        return jsonify(result), 201

    except SettlementError as e:
        return jsonify(e.to_dict()), e.status_code
    except Exception:
        current_app.logger.exception("Failed to create admin payment order")
        return jsonify({"error": "Internal server error"}), 500


@payments_bp.post("/admin/verify")
@require_auth
@require_role(ROLE_ADMIN)
def admin_verify_route():
    """
    Verify the seller-signed payment and settle the acquisition.

    Request body:
    {
        "order_id": 5,
        "gateway_order_id": "order_...",
        "gateway_payment_id": "pay_...",
        "signature": "hex hmac"
    }

    Returns:
        200: {order_id, payment_status: PAID, lot_id, seller_remaining_quantity}
        400: signature mismatch, insufficient stock at settlement
        404: unknown order
        409: order paid by another payment, concurrent update
    """
    try:
        fields = _verification_fields(request.get_json(silent=True))
        engine = SettlementEngine.from_app()
        result = engine.verify_admin_purchase(**fields)
        result["message"] = "Payment verified successfully"
        return jsonify(result), 200

    except SettlementError as e:
        return jsonify(e.to_dict()), e.status_code
    except Exception:
        current_app.logger.exception("Failed to verify admin payment")
        return jsonify({"error": "Internal server error"}), 500


@payments_bp.get("/admin/status/<int:order_id>")
@require_auth
@require_role(ROLE_ADMIN)
def admin_status_route(order_id: int):
    try:
        return jsonify(order_service.get_admin_payment_status(db.session, order_id)), 200
    except SettlementError as e:
        return jsonify(e.to_dict()), e.status_code
    except Exception:
        current_app.logger.exception("Failed to get payment status")
        return jsonify({"error": "Internal server error"}), 500


# =============================================================================
# BUYER PURCHASE
# =============================================================================

@payments_bp.post("/buyer/create-order")
@require_auth
@require_role(ROLE_BUYER)
def buyer_create_order_route():
    """
    Open a gateway order with the platform admin's keys for an unpaid order.

    Without configured admin keys the order is settled directly
    ({"mode": "fallback", "paid": true}) when fallback is enabled.
    """
    try:
        data = request.get_json(silent=True)
        require_fields(data, "order_id")

        engine = SettlementEngine.from_app()
        result = engine.create_buyer_payment_intent(
            buyer_id=g.current_user.id,
            order_id=parse_id(data.get("order_id"), "order_id"),
        )
        status = 201 if result["mode"] == "gateway" else 200
        return jsonify(result), status

    except SettlementError as e:
        return jsonify(e.to_dict()), e.status_code
    except Exception:
        current_app.logger.exception("Failed to create buyer payment order")
        return jsonify({"error": "Internal server error"}), 500


@payments_bp.post("/buyer/verify")
@require_auth
@require_role(ROLE_BUYER)
def buyer_verify_route():
    try:
        fields = _verification_fields(request.get_json(silent=True))
        engine = SettlementEngine.from_app()
        result = engine.verify_buyer_payment(buyer_id=g.current_user.id, **fields)
        return jsonify(result), 200

    except SettlementError as e:
        return jsonify(e.to_dict()), e.status_code
    except Exception:
        current_app.logger.exception("Failed to verify buyer payment")
        return jsonify({"error": "Internal server error"}), 500
