# Overview: Service-layer operations for payee gateway credentials; resolution, configuration and masking.

from __future__ import annotations

from dataclasses import dataclass

from ..models import User
from ..models.auth import ROLE_ADMIN, ROLE_SELLER
from ..models.orders import ORDER_TYPE_ADMIN_PURCHASE, ORDER_TYPE_BUYER_PURCHASE
from .errors import CredentialsMissing, ResourceNotFound, ValidationError, AccessDenied
"""
Credential Resolution

Funds always flow to the party that is selling:
- ADMIN_PURCHASE: the seller whose listing is acquired
- BUYER_PURCHASE: the platform admin (first ADMIN account, lowest id, that
  holds both a key id and a secret)

The secret is used for order creation and signature verification only. It
never appears in a response or a log line; read-back is masked.
"""


@dataclass(frozen=True)
class GatewayCredentials:
    key_id: str
    key_secret: str
    owner_id: int | None = None

    def __repr__(self) -> str:
        return f"GatewayCredentials(key_id={self.key_id!r}, key_secret={mask_secret(self.key_secret)!r}, owner_id={self.owner_id})"


def mask_secret(secret: str | None) -> str | None:
    """Mask a secret, revealing at most a quarter of it and never more than four characters."""
    if not secret:
        return None
    shown = min(4, len(secret) // 4)
    return "****" + (secret[-shown:] if shown else "")


def _has_credentials(user: User) -> bool:
    return bool(user.gateway_key_id and user.gateway_key_secret)


def resolve_payee_credentials(session, direction: str, seller_id: int | None = None) -> GatewayCredentials:
    """
    Return the gateway key pair owned by the payee for `direction`.

    Raises:
        CredentialsMissing: payee has not configured both values
        ValidationError: unknown direction, or ADMIN_PURCHASE without seller_id
    """
    if direction == ORDER_TYPE_ADMIN_PURCHASE:
        if seller_id is None:
            raise ValidationError("seller_id is required for admin purchases")
        seller = session.get(User, seller_id)
        if seller is None or not _has_credentials(seller):
            raise CredentialsMissing(
                "Seller payment credentials not configured",
                details={"seller_id": seller_id},
            )
        return GatewayCredentials(seller.gateway_key_id, seller.gateway_key_secret, owner_id=seller.id)

    if direction == ORDER_TYPE_BUYER_PURCHASE:
        admin = (
            session.query(User)
            .filter(
                User.role == ROLE_ADMIN,
                User.is_active.is_(True),
                User.gateway_key_id.isnot(None),
                User.gateway_key_id != "",
                User.gateway_key_secret.isnot(None),
                User.gateway_key_secret != "",
            )
            .order_by(User.id.asc())
            .first()
        )
        if admin is None:
            raise CredentialsMissing("Platform payment credentials not configured")
        return GatewayCredentials(admin.gateway_key_id, admin.gateway_key_secret, owner_id=admin.id)

    raise ValidationError(f"Unknown payment direction: {direction}")


def set_user_credentials(session, user_id: int, key_id: str, key_secret: str) -> User:
    """Configure the gateway key pair a seller or admin receives funds into."""
    user = session.get(User, user_id)
    if user is None:
        raise ResourceNotFound(f"User {user_id} not found")
    if user.role not in (ROLE_ADMIN, ROLE_SELLER):
        raise AccessDenied("Only sellers and admins receive payments")

    key_id = (key_id or "").strip()
    key_secret = (key_secret or "").strip()
    if not key_id or not key_secret:
        raise ValidationError("key_id and key_secret are required")
    if len(key_id) > 128 or len(key_secret) > 255:
        raise ValidationError("Credential value too long")

    user.gateway_key_id = key_id
    user.gateway_key_secret = key_secret
    session.commit()
    return user


def describe_user_credentials(user: User) -> dict:
    return {
        "user_id": user.id,
        "key_id": user.gateway_key_id,
        "key_secret": mask_secret(user.gateway_key_secret),
        "configured": _has_credentials(user),
    }
