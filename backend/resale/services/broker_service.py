# Overview: Service-layer read operations for brokers; dashboard, earnings history and referred users.

from __future__ import annotations

from sqlalchemy import func

from ..models import BrokerAccount, CommissionRecord, User
from ..models.auth import ROLE_BUYER, ROLE_SELLER
from ..models.brokers import COMMISSION_PAID
from .commission_service import ensure_broker_account


RECENT_EARNINGS_LIMIT = 10


def _earning_dict(record: CommissionRecord) -> dict:
    data = record.to_dict()
    data["order_number"] = record.order.order_number if record.order else None
    data["product_name"] = record.lot.name if record.lot else None
    data["seller_username"] = record.seller.username if record.seller else None
    data["buyer_username"] = record.buyer.username if record.buyer else None
    return data


def _referred_users_query(session, broker: BrokerAccount):
    return session.query(User).filter(
        User.referred_by_code == broker.broker_code,
        User.role.in_([ROLE_BUYER, ROLE_SELLER]),
    )


def get_dashboard(session, user_id: int) -> dict:
    broker = ensure_broker_account(session, user_id)

    total_users = _referred_users_query(session, broker).count()

    paid_total = session.query(
        func.coalesce(func.sum(CommissionRecord.commission_amount_cents), 0)
    ).filter(
        CommissionRecord.broker_id == broker.id,
        CommissionRecord.status == COMMISSION_PAID,
    ).scalar()

    recent = (
        session.query(CommissionRecord)
        .filter(CommissionRecord.broker_id == broker.id)
        .order_by(CommissionRecord.created_at.desc(), CommissionRecord.id.desc())
        .limit(RECENT_EARNINGS_LIMIT)
        .all()
    )

    return {
        "broker_code": broker.broker_code,
        "total_users": total_users,
        "total_earnings_cents": int(paid_total or 0),
        "cumulative_earnings_cents": broker.total_earnings_cents,
        "total_commission_paid_cents": broker.total_commission_paid_cents,
        "recent_earnings": [_earning_dict(r) for r in recent],
        "is_active": broker.is_active,
    }


def list_earnings(session, user_id: int, *, page: int = 1, limit: int = 20) -> dict:
    broker = ensure_broker_account(session, user_id)

    query = session.query(CommissionRecord).filter(CommissionRecord.broker_id == broker.id)
    total = query.count()
    records = (
        query.order_by(CommissionRecord.created_at.desc(), CommissionRecord.id.desc())
        .offset((page - 1) * limit)
        .limit(limit)
        .all()
    )
    return {
        "earnings": [_earning_dict(r) for r in records],
        "pagination": {
            "page": page,
            "limit": limit,
            "total": total,
            "pages": (total + limit - 1) // limit if limit else 0,
        },
    }


def list_referred_users(session, user_id: int) -> dict:
    broker = ensure_broker_account(session, user_id)
    users = _referred_users_query(session, broker).order_by(User.created_at.desc(), User.id.desc()).all()
    return {
        "broker_code": broker.broker_code,
        "users": [
            {
                "id": u.id,
                "username": u.username,
                "email": u.email,
                "role": u.role,
                "created_at": u.to_dict()["created_at"],
            }
            for u in users
        ],
    }
