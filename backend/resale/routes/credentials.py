# Overview: Flask API routes for payee gateway credentials; read-back is always masked.

from flask import Blueprint, request, jsonify, g, current_app

from ..extensions import db
from ..models.auth import ROLE_ADMIN, ROLE_SELLER
from ..services import credential_service
from ..services.errors import SettlementError
from ..decorators import require_auth, require_role


credentials_bp = Blueprint("credentials", __name__, url_prefix="/api/credentials")


@credentials_bp.get("")
@require_auth
@require_role(ROLE_SELLER, ROLE_ADMIN)
def get_credentials_route():
    return jsonify(credential_service.describe_user_credentials(g.current_user)), 200


@credentials_bp.put("")
@require_auth
@require_role(ROLE_SELLER, ROLE_ADMIN)
def set_credentials_route():
    """
    Configure the key pair this seller/admin receives funds into.

    Request body:
    {
        "key_id": "rzp_live_xxx",
        "key_secret": "..."
    }
    """
    try:
        data = request.get_json(silent=True) or {}
        user = credential_service.set_user_credentials(
            db.session,
            g.current_user.id,
            data.get("key_id"),
            data.get("key_secret"),
        )
        return jsonify(credential_service.describe_user_credentials(user)), 200

    except SettlementError as e:
        return jsonify(e.to_dict()), e.status_code
    except Exception:
        current_app.logger.exception("Failed to update gateway credentials")
        return jsonify({"error": "Internal server error"}), 500
