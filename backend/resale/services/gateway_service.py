# Overview: Payment gateway adapter; creates gateway orders and verifies payment signatures.

"""
Payment Gateway Adapter

Orders are always created with the payee's own key pair, so funds settle
directly into the seller's (admin purchase) or the platform's (buyer
purchase) gateway account.

Signature scheme:
    HMAC-SHA256(key_secret, f"{gateway_order_id}|{gateway_payment_id}") as hex

The adapter performs no deduplication. Each create_order call produces a new
gateway order.
"""

from __future__ import annotations

import hashlib
import hmac
import logging
import secrets
from dataclasses import dataclass, field

import razorpay

from .credential_service import GatewayCredentials
from .errors import GatewayUnavailable, InvalidSignature, ValidationError

logger = logging.getLogger(__name__)


GATEWAY_MODE_LIVE = "live"
GATEWAY_MODE_SIMULATED = "simulated"


@dataclass
class GatewayOrder:
    id: str
    amount: int  # minor units
    currency: str
    receipt: str | None = None
    notes: dict = field(default_factory=dict)

    def to_dict(self) -> dict:
        return {
            "id": self.id,
            "amount": self.amount,
            "currency": self.currency,
            "receipt": self.receipt,
        }


def sign_payment(key_secret: str, gateway_order_id: str, gateway_payment_id: str) -> str:
    payload = f"{gateway_order_id}|{gateway_payment_id}"
    return hmac.new(key_secret.encode(), payload.encode(), hashlib.sha256).hexdigest()


def verify_signature(
    gateway_order_id: str,
    gateway_payment_id: str,
    signature: str,
    credentials: GatewayCredentials,
) -> None:
    """Raises InvalidSignature unless `signature` matches the payee secret."""
    if not gateway_order_id or not gateway_payment_id or not signature:
        raise InvalidSignature("Missing payment verification fields")

    expected = sign_payment(credentials.key_secret, gateway_order_id, gateway_payment_id)
    if not hmac.compare_digest(expected, str(signature)):
        logger.warning("Invalid payment signature for gateway order %s", gateway_order_id)
        raise InvalidSignature(
            "Payment verification failed",
            details={"gateway_order_id": gateway_order_id},
        )


class PaymentGateway:
    """Base adapter. Subclasses implement create_order."""

    mode = None

    def create_order(
        self,
        amount_minor: int,
        currency: str,
        credentials: GatewayCredentials,
        *,
        receipt: str | None = None,
        notes: dict | None = None,
    ) -> GatewayOrder:
        raise NotImplementedError

    def verify(self, gateway_order_id: str, gateway_payment_id: str, signature: str,
               credentials: GatewayCredentials) -> None:
        verify_signature(gateway_order_id, gateway_payment_id, signature, credentials)

    @staticmethod
    def _validate_amount(amount_minor: int) -> None:
        if not isinstance(amount_minor, int) or isinstance(amount_minor, bool) or amount_minor <= 0:
            raise ValidationError("Gateway order amount must be a positive integer in minor units")


class LiveGateway(PaymentGateway):
    """Razorpay-backed adapter. A client is built per call from the payee's keys."""

    mode = GATEWAY_MODE_LIVE

    def _client(self, credentials: GatewayCredentials):
        return razorpay.Client(auth=(credentials.key_id, credentials.key_secret))

    def create_order(self, amount_minor, currency, credentials, *, receipt=None, notes=None):
        self._validate_amount(amount_minor)

        order_data = {
            "amount": amount_minor,
            "currency": currency,
            "receipt": receipt,
            "notes": {k: str(v) for k, v in (notes or {}).items()},
        }

        try:
            gateway_order = self._client(credentials).order.create(data=order_data)
        except Exception as exc:
            # razorpay raises requests and razorpay.errors types
            logger.error("Failed to create gateway order (receipt=%s): %s", receipt, exc)
            raise GatewayUnavailable(
                "Payment gateway unavailable",
                details={"receipt": receipt},
            ) from exc

        logger.info("Created gateway order %s for receipt %s", gateway_order["id"], receipt)

        return GatewayOrder(
            id=gateway_order["id"],
            amount=int(gateway_order.get("amount", amount_minor)),
            currency=gateway_order.get("currency", currency),
            receipt=receipt,
            notes=gateway_order.get("notes") or {},
        )


class SimulatedGateway(PaymentGateway):
    """
    Local adapter for development and tests.

    Mints order ids without network access. Signatures follow the live
    scheme, so verification is identical.
    """

    mode = GATEWAY_MODE_SIMULATED

    def __init__(self):
        self.orders: dict[str, GatewayOrder] = {}

    def create_order(self, amount_minor, currency, credentials, *, receipt=None, notes=None):
        self._validate_amount(amount_minor)
        order = GatewayOrder(
            id=f"order_sim_{secrets.token_hex(8)}",
            amount=amount_minor,
            currency=currency,
            receipt=receipt,
            notes=dict(notes or {}),
        )
        self.orders[order.id] = order
        logger.info("Created simulated gateway order %s for receipt %s", order.id, receipt)
        return order

    def capture(self, gateway_order_id: str, credentials: GatewayCredentials) -> tuple[str, str]:
        """Simulate the client-side checkout: returns (payment_id, signature)."""
        payment_id = f"pay_sim_{secrets.token_hex(8)}"
        return payment_id, sign_payment(credentials.key_secret, gateway_order_id, payment_id)


def get_gateway(mode: str | None) -> PaymentGateway:
    mode = (mode or GATEWAY_MODE_LIVE).strip().lower()
    if mode == GATEWAY_MODE_LIVE:
        return LiveGateway()
    if mode == GATEWAY_MODE_SIMULATED:
        return SimulatedGateway()
    raise ValueError(f"Unknown GATEWAY_MODE: {mode}")
