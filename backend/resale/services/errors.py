# Overview: Settlement error taxonomy shared by services and routes.

"""
Every settlement failure is a SettlementError subclass carrying an HTTP
status and structured details. Routes turn them into JSON error responses;
nothing here is swallowed.

Quantity-related errors name the offending product so the client can
re-render availability without a full reload.
"""


class SettlementError(Exception):
    """Base class for settlement failures."""
    status_code = 400
    code = "SETTLEMENT_ERROR"

    def __init__(self, message: str, details: dict | None = None):
        super().__init__(message)
        self.message = message
        self.details = details or {}

    def to_dict(self) -> dict:
        return {
            "error": self.message,
            "code": self.code,
            "details": self.details,
        }


class ValidationError(SettlementError):
    """Bad quantity/price shape. Raised before any mutation."""
    code = "VALIDATION_ERROR"


class ResourceNotFound(SettlementError):
    status_code = 404
    code = "NOT_FOUND"


class AccessDenied(SettlementError):
    status_code = 403
    code = "ACCESS_DENIED"


class InsufficientStock(SettlementError):
    """Requested quantity exceeds live availability."""
    code = "INSUFFICIENT_STOCK"

    def __init__(self, product_name: str, requested: int, available: int, *, product_id: int | None = None):
        super().__init__(
            f"Not enough quantity available for {product_name}. "
            f"Available: {available}, Requested: {requested}",
            details={
                "product_id": product_id,
                "product_name": product_name,
                "requested_quantity": requested,
                "available_quantity": available,
            },
        )
        self.product_name = product_name
        self.requested = requested
        self.available = available


class CredentialsMissing(SettlementError):
    """The payee has not configured both gateway key id and secret."""
    code = "CREDENTIALS_MISSING"


class InvalidSignature(SettlementError):
    """Payment signature does not match the payee secret."""
    code = "INVALID_SIGNATURE"


class PaymentConflict(SettlementError):
    """Order already settled with a different gateway payment."""
    status_code = 409
    code = "PAYMENT_CONFLICT"


class ConcurrencyConflict(SettlementError):
    """A condition-checked write lost a race after all retries."""
    status_code = 409
    code = "CONCURRENCY_CONFLICT"

    def to_dict(self) -> dict:
        data = super().to_dict()
        data["retryable"] = True
        return data


class GatewayUnavailable(SettlementError):
    status_code = 502
    code = "GATEWAY_UNAVAILABLE"
