from __future__ import annotations

from ..extensions import db
from resale.time_utils import to_utc_z


ROLE_ADMIN = "ADMIN"
ROLE_SELLER = "SELLER"
ROLE_BUYER = "BUYER"
ROLE_BROKER = "BROKER"

VALID_ROLES = [ROLE_ADMIN, ROLE_SELLER, ROLE_BUYER, ROLE_BROKER]


class User(db.Model):
    """
    Marketplace account (admin, seller, buyer or broker).

    WHY: Every settlement step must be attributable to a party. Sellers and
    the platform admin also own the payment gateway keys funds are paid into.

    SECURITY: gateway_key_secret is never serialized. Read-back goes through
    credential_service.describe_user_credentials, which masks it.
    """
    __tablename__ = "users"
    __table_args__ = (
        db.Index("ix_users_role_active", "role", "is_active"),
        {"sqlite_autoincrement": True},
    )

    id = db.Column(db.Integer, primary_key=True)

    username = db.Column(db.String(64), nullable=False, unique=True, index=True)
    email = db.Column(db.String(255), nullable=False, unique=True)

    # Bcrypt hashed password
    password_hash = db.Column(db.String(255), nullable=False)

    role = db.Column(db.String(16), nullable=False, default=ROLE_BUYER, index=True)
    is_active = db.Column(db.Boolean, nullable=False, default=True)

    # Payment gateway keys of the party that receives funds
    gateway_key_id = db.Column(db.String(128), nullable=True)
    gateway_key_secret = db.Column(db.String(255), nullable=True)

    # Broker code this seller/buyer was referred by (matches BrokerAccount.broker_code)
    referred_by_code = db.Column(db.String(16), nullable=True, index=True)

    created_at = db.Column(db.DateTime(timezone=True), nullable=False, server_default=db.func.now())
    last_login_at = db.Column(db.DateTime(timezone=True), nullable=True)

    def __repr__(self) -> str:
        return f"<User id={self.id} username={self.username!r} role={self.role}>"

    def to_dict(self) -> dict:
        return {
            "id": self.id,
            "username": self.username,
            "email": self.email,
            "role": self.role,
            "is_active": self.is_active,
            "referred_by_code": self.referred_by_code,
            "has_gateway_credentials": bool(self.gateway_key_id and self.gateway_key_secret),
            "created_at": to_utc_z(self.created_at),
            "last_login_at": to_utc_z(self.last_login_at) if self.last_login_at else None,
        }


class SessionToken(db.Model):
    """
    Bearer session token.

    SECURITY NOTES:
    - Tokens stored hashed in database (SHA-256)
    - Absolute timeout from SESSION_TTL_HOURS
    - Revocable on logout
    """
    __tablename__ = "session_tokens"
    __table_args__ = (
        db.Index("ix_session_tokens_user_active", "user_id", "is_revoked"),
        {"sqlite_autoincrement": True},
    )

    id = db.Column(db.Integer, primary_key=True)
    user_id = db.Column(db.Integer, db.ForeignKey("users.id"), nullable=False, index=True)

    # Token hash (never store plaintext tokens!)
    token_hash = db.Column(db.String(255), nullable=False, unique=True, index=True)

    created_at = db.Column(db.DateTime(timezone=True), nullable=False, server_default=db.func.now())
    last_used_at = db.Column(db.DateTime(timezone=True), nullable=False, server_default=db.func.now())
    expires_at = db.Column(db.DateTime(timezone=True), nullable=False, index=True)

    is_revoked = db.Column(db.Boolean, nullable=False, default=False, index=True)
    revoked_at = db.Column(db.DateTime(timezone=True), nullable=True)

    user = db.relationship("User", backref=db.backref("sessions", lazy=True))

    def to_dict(self) -> dict:
        return {
            "id": self.id,
            "user_id": self.user_id,
            "created_at": to_utc_z(self.created_at),
            "last_used_at": to_utc_z(self.last_used_at),
            "expires_at": to_utc_z(self.expires_at),
            "is_revoked": self.is_revoked,
        }
