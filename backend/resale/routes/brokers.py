# Overview: Flask API routes for broker dashboard, earnings and referred users.

from flask import Blueprint, request, jsonify, g, current_app

from ..extensions import db
from ..models.auth import ROLE_BROKER
from ..services import broker_service
from ..services.errors import SettlementError
from ..validation import coerce_int
from ..decorators import require_auth, require_role


brokers_bp = Blueprint("brokers", __name__, url_prefix="/api/brokers")


@brokers_bp.get("/dashboard")
@require_auth
@require_role(ROLE_BROKER)
def dashboard_route():
    try:
        return jsonify(broker_service.get_dashboard(db.session, g.current_user.id)), 200
    except Exception:
        current_app.logger.exception("Failed to load broker dashboard")
        return jsonify({"error": "Internal server error"}), 500


@brokers_bp.get("/earnings")
@require_auth
@require_role(ROLE_BROKER)
def earnings_route():
    """Paginated commission history. Query params: page, limit."""
    try:
        page = max(1, coerce_int(request.args.get("page", "1"), "page"))
        limit = min(100, max(1, coerce_int(request.args.get("limit", "20"), "limit")))
        return jsonify(broker_service.list_earnings(db.session, g.current_user.id, page=page, limit=limit)), 200

    except SettlementError as e:
        return jsonify(e.to_dict()), e.status_code
    except Exception:
        current_app.logger.exception("Failed to list broker earnings")
        return jsonify({"error": "Internal server error"}), 500


@brokers_bp.get("/users")
@require_auth
@require_role(ROLE_BROKER)
def users_route():
    try:
        return jsonify(broker_service.list_referred_users(db.session, g.current_user.id)), 200
    except Exception:
        current_app.logger.exception("Failed to list broker users")
        return jsonify({"error": "Internal server error"}), 500
