# Overview: Flask API routes for admin resale lots; parses input and returns JSON responses.

from flask import Blueprint, request, jsonify, g, current_app

from ..extensions import db
from ..models.auth import ROLE_ADMIN
from ..services import inventory_service
from ..services.errors import SettlementError, ValidationError
from ..validation import coerce_int, optional_text, parse_price_cents
from ..decorators import require_auth, require_role


lots_bp = Blueprint("lots", __name__, url_prefix="/api/lots")


@lots_bp.get("")
@require_auth
@require_role(ROLE_ADMIN)
def list_lots_route():
    """Query params: status, search, page, limit."""
    try:
        page = max(1, coerce_int(request.args.get("page", "1"), "page"))
        limit = min(200, max(1, coerce_int(request.args.get("limit", "20"), "limit")))
        result = inventory_service.list_lots(
            db.session,
            g.current_user.id,
            status=request.args.get("status"),
            search=request.args.get("search"),
            page=page,
            limit=limit,
        )
        return jsonify(result), 200

    except SettlementError as e:
        return jsonify(e.to_dict()), e.status_code
    except Exception:
        current_app.logger.exception("Failed to list lots")
        return jsonify({"error": "Internal server error"}), 500


@lots_bp.get("/stats")
@require_auth
@require_role(ROLE_ADMIN)
def lot_stats_route():
    try:
        return jsonify(inventory_service.get_lot_stats(db.session, g.current_user.id)), 200
    except Exception:
        current_app.logger.exception("Failed to compute lot stats")
        return jsonify({"error": "Internal server error"}), 500


@lots_bp.get("/<int:lot_id>")
@require_auth
@require_role(ROLE_ADMIN)
def get_lot_route(lot_id: int):
    try:
        lot = inventory_service.get_lot(db.session, lot_id, purchaser_id=g.current_user.id)
        return jsonify(lot.to_dict()), 200
    except SettlementError as e:
        return jsonify(e.to_dict()), e.status_code
    except Exception:
        current_app.logger.exception("Failed to get lot")
        return jsonify({"error": "Internal server error"}), 500


@lots_bp.patch("/<int:lot_id>")
@require_auth
@require_role(ROLE_ADMIN)
def update_lot_route(lot_id: int):
    """
    Update admin-controlled lot fields.

    Request body (all optional):
    {
        "selling_price_cents": 9000,
        "status": "ACTIVE" | "INACTIVE",
        "name": "...",
        "description": "..."
    }
    """
    try:
        data = request.get_json(silent=True)
        if not isinstance(data, dict):
            raise ValidationError("Invalid JSON payload")

        selling_price = None
        if data.get("selling_price_cents") is not None:
            selling_price = parse_price_cents(data["selling_price_cents"], "selling_price_cents")

        lot = inventory_service.update_lot(
            db.session,
            lot_id,
            g.current_user.id,
            selling_price_cents=selling_price,
            status=data.get("status"),
            name=optional_text(data, "name", 255),
            description=optional_text(data, "description", 5000),
        )
        db.session.commit()
        return jsonify(lot.to_dict()), 200

    except SettlementError as e:
        db.session.rollback()
        return jsonify(e.to_dict()), e.status_code
    except Exception:
        db.session.rollback()
        current_app.logger.exception("Failed to update lot")
        return jsonify({"error": "Internal server error"}), 500


@lots_bp.delete("/<int:lot_id>")
@require_auth
@require_role(ROLE_ADMIN)
def delete_lot_route(lot_id: int):
    """Soft delete (INACTIVE). Refused once the lot has sales."""
    try:
        lot = inventory_service.deactivate_lot(db.session, lot_id, g.current_user.id)
        db.session.commit()
        return jsonify({"message": "Product deactivated", "lot": lot.to_dict()}), 200

    except SettlementError as e:
        db.session.rollback()
        return jsonify(e.to_dict()), e.status_code
    except Exception:
        db.session.rollback()
        current_app.logger.exception("Failed to deactivate lot")
        return jsonify({"error": "Internal server error"}), 500
