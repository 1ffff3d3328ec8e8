# Overview: Service-layer read operations for orders; party-scoped listing and access checks.

from __future__ import annotations

from ..models import Order, AdminPurchaseOrder, BuyerPurchaseOrder, User
from ..models.auth import ROLE_ADMIN
from ..models.orders import ORDER_TYPE_ADMIN_PURCHASE, ORDER_TYPE_BUYER_PURCHASE
from .errors import AccessDenied, ResourceNotFound, ValidationError


VALID_ORDER_TYPES = [ORDER_TYPE_ADMIN_PURCHASE, ORDER_TYPE_BUYER_PURCHASE]


def _party(user: User | None) -> dict | None:
    if user is None:
        return None
    return {"id": user.id, "username": user.username, "email": user.email}


def serialize_order(order: Order) -> dict:
    data = order.to_dict()
    if isinstance(order, AdminPurchaseOrder):
        data["admin"] = _party(order.admin)
        data["seller"] = _party(order.seller)
    elif isinstance(order, BuyerPurchaseOrder):
        data["buyer"] = _party(order.buyer)
    return data


def get_order_for_user(session, order_id: int, user: User) -> Order:
    """
    Party-scoped read. Admins see every order; anyone else must be the
    buyer, seller or purchasing admin of the order.
    """
    order = session.get(Order, order_id)
    if order is None:
        raise ResourceNotFound(f"Order {order_id} not found", details={"order_id": order_id})

    if user.role != ROLE_ADMIN and user.id not in order.party_ids():
        raise AccessDenied("Access denied", details={"order_id": order_id})
    return order


def list_buyer_orders(session, buyer_id: int) -> list[dict]:
    orders = (
        session.query(BuyerPurchaseOrder)
        .filter(BuyerPurchaseOrder.buyer_id == buyer_id)
        .order_by(Order.created_at.desc(), Order.id.desc())
        .all()
    )
    return [order.to_dict() for order in orders]


def list_seller_orders(session, seller_id: int) -> list[dict]:
    """Admin acquisitions of this seller's listings."""
    orders = (
        session.query(AdminPurchaseOrder)
        .filter(AdminPurchaseOrder.seller_id == seller_id)
        .order_by(Order.created_at.desc(), Order.id.desc())
        .all()
    )
    return [serialize_order(order) for order in orders]


def list_all_orders(session, *, order_type: str | None = None, payment_status: str | None = None,
                    page: int = 1, limit: int = 50) -> dict:
    query = session.query(Order)
    if order_type:
        if order_type not in VALID_ORDER_TYPES:
            raise ValidationError(f"type must be one of {VALID_ORDER_TYPES}")
        query = query.filter(Order.type == order_type)
    if payment_status:
        query = query.filter(Order.payment_status == payment_status)

    total = query.count()
    orders = (
        query.order_by(Order.created_at.desc(), Order.id.desc())
        .offset((page - 1) * limit)
        .limit(limit)
        .all()
    )
    return {
        "orders": [serialize_order(order) for order in orders],
        "total": total,
        "page": page,
        "pages": (total + limit - 1) // limit if limit else 0,
    }


def get_admin_payment_status(session, order_id: int) -> dict:
    order = session.get(Order, order_id)
    if order is None or not isinstance(order, AdminPurchaseOrder):
        raise ResourceNotFound(f"Order {order_id} not found", details={"order_id": order_id})

    line = order.lines[0] if order.lines else None
    return {
        "order_id": order.id,
        "order_number": order.order_number,
        "gateway_order_id": order.gateway_order_id,
        "payment_status": order.payment_status,
        "status": order.status,
        "total_amount_cents": order.total_amount_cents,
        "listing": line.to_dict() if line else None,
        "seller": _party(order.seller),
        "created_at": order.to_dict()["created_at"],
    }
