# Overview: Service-layer operations for broker commissions on realized resale margin.

"""
Commission Calculation

For every purchased lot line of a confirmed buyer order:

    profit     = lot.selling_price - lot.purchase_price      (per unit, cents)
    commission = profit * rate, rounded half-up to whole cents

The seller's referring broker and the buyer's referring broker are credited
independently: zero, one or two records per line. A referral code with no
matching active broker is skipped silently. A non-positive profit still
produces a record with a non-positive commission.

Broker earnings are only changed by an atomic SQL increment.
"""

from __future__ import annotations

import logging
import secrets
from dataclasses import dataclass
from decimal import Decimal, ROUND_HALF_UP

from sqlalchemy import update

from ..models import BrokerAccount, CommissionRecord, User
from ..models.brokers import COMMISSION_PAID, DEFAULT_COMMISSION_RATE

logger = logging.getLogger(__name__)


REFERRAL_SIDE_SELLER = "SELLER"
REFERRAL_SIDE_BUYER = "BUYER"

BROKER_CODE_PREFIX = "BRK"
BROKER_CODE_ATTEMPTS = 50


@dataclass(frozen=True)
class CommissionQuote:
    purchase_price_cents: int
    selling_price_cents: int
    profit_cents: int
    rate: Decimal
    commission_cents: int


def parse_rate(value) -> Decimal:
    if value is None:
        return DEFAULT_COMMISSION_RATE
    rate = Decimal(str(value))
    if rate < 0 or rate > 1:
        raise ValueError(f"Commission rate must be between 0 and 1, got {rate}")
    return rate


def compute_commission(purchase_price_cents: int, selling_price_cents: int, rate=DEFAULT_COMMISSION_RATE) -> CommissionQuote:
    rate = parse_rate(rate)
    profit = selling_price_cents - purchase_price_cents
    commission = (Decimal(profit) * rate).quantize(Decimal("1"), rounding=ROUND_HALF_UP)
    return CommissionQuote(
        purchase_price_cents=purchase_price_cents,
        selling_price_cents=selling_price_cents,
        profit_cents=profit,
        rate=rate,
        commission_cents=int(commission),
    )


def find_broker(session, broker_code: str | None) -> BrokerAccount | None:
    if not broker_code:
        return None
    return (
        session.query(BrokerAccount)
        .filter(BrokerAccount.broker_code == broker_code, BrokerAccount.is_active.is_(True))
        .first()
    )


def _credit(session, broker: BrokerAccount, *, order_id, lot, buyer_id, side, quote) -> CommissionRecord:
    record = CommissionRecord(
        broker_id=broker.id,
        order_id=order_id,
        lot_id=lot.id,
        seller_id=lot.seller_id,
        buyer_id=buyer_id,
        referral_side=side,
        purchase_price_cents=quote.purchase_price_cents,
        selling_price_cents=quote.selling_price_cents,
        profit_cents=quote.profit_cents,
        commission_rate=quote.rate,
        commission_amount_cents=quote.commission_cents,
        status=COMMISSION_PAID,
    )
    session.add(record)

    session.execute(
        update(BrokerAccount)
        .where(BrokerAccount.id == broker.id)
        .values(total_earnings_cents=BrokerAccount.total_earnings_cents + quote.commission_cents)
        .execution_options(synchronize_session=False)
    )
    return record


def credit_commissions(session, *, order_id: int, lot, buyer_id: int, rate=DEFAULT_COMMISSION_RATE,
                       selling_price_cents: int | None = None) -> list[CommissionRecord]:
    """
    Write commission records for one purchased lot line.

    Never commits; runs inside the settlement transaction. Callers pass the
    unit price frozen on the order line; the lot's current price is only a
    fallback.
    """
    if selling_price_cents is None:
        selling_price_cents = lot.selling_price_cents
    quote = compute_commission(lot.purchase_price_cents, selling_price_cents, rate)
    records = []

    seller = session.get(User, lot.seller_id)
    seller_broker = find_broker(session, seller.referred_by_code if seller else None)
    if seller_broker is not None:
        records.append(_credit(session, seller_broker, order_id=order_id, lot=lot, buyer_id=buyer_id,
                               side=REFERRAL_SIDE_SELLER, quote=quote))

    buyer = session.get(User, buyer_id)
    buyer_broker = find_broker(session, buyer.referred_by_code if buyer else None)
    if buyer_broker is not None:
        records.append(_credit(session, buyer_broker, order_id=order_id, lot=lot, buyer_id=buyer_id,
                               side=REFERRAL_SIDE_BUYER, quote=quote))

    if records:
        session.flush()
        logger.info(
            "Credited %s commission record(s) for order %s lot %s (%s cents each)",
            len(records), order_id, lot.id, quote.commission_cents,
        )
    return records


def generate_broker_code(session) -> str:
    """BRK + 6 random digits, re-drawn until unused."""
    for _ in range(BROKER_CODE_ATTEMPTS):
        code = f"{BROKER_CODE_PREFIX}{secrets.randbelow(1_000_000):06d}"
        if not session.query(BrokerAccount.id).filter_by(broker_code=code).first():
            return code
    raise RuntimeError("Could not allocate a unique broker code")


def ensure_broker_account(session, user_id: int) -> BrokerAccount:
    """Return the broker profile for user_id, creating it on first use."""
    broker = session.query(BrokerAccount).filter_by(user_id=user_id).first()
    if broker is None:
        broker = BrokerAccount(user_id=user_id, broker_code=generate_broker_code(session))
        session.add(broker)
        session.commit()
    return broker
