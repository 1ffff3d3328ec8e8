# backend/resale/config.py
from __future__ import annotations
import os


def _env_bool(name: str, default: str) -> bool:
    return os.environ.get(name, default).strip().lower() in ("1", "true", "yes", "on")


class Config:
    # Optional "SECRET_KEY", with default dev key
    SECRET_KEY = os.environ.get("SECRET_KEY", "dev-secret-key-change-me")

    # SQLite DB stored in backend/instance/resale.sqlite3
    SQLALCHEMY_DATABASE_URI = os.environ.get(
        "DATABASE_URL",  # optional alternative location
        "sqlite:///resale.sqlite3",  # default local location
    )
    SQLALCHEMY_TRACK_MODIFICATIONS = False

    # Bearer session lifetime
    SESSION_TTL_HOURS = int(os.environ.get("SESSION_TTL_HOURS", "24"))

    # Payment gateway
    # live: orders are created through the gateway API with the payee's keys
    # simulated: order ids are minted locally, signatures use the same HMAC scheme
    GATEWAY_MODE = os.environ.get("GATEWAY_MODE", "live").strip().lower()
    GATEWAY_CURRENCY = os.environ.get("GATEWAY_CURRENCY", "INR")
    # Buyer payments settle without a gateway order when no admin keys exist
    GATEWAY_ALLOW_FALLBACK = _env_bool("GATEWAY_ALLOW_FALLBACK", "true")

    # captured: checkout marks the order paid immediately
    # gateway: checkout creates an unpaid order settled by buyer payment verification
    CHECKOUT_PAYMENT_MODE = os.environ.get("CHECKOUT_PAYMENT_MODE", "captured").strip().lower()

    # Broker commission on unit margin (decimal string to avoid float drift)
    COMMISSION_RATE = os.environ.get("COMMISSION_RATE", "0.05")
