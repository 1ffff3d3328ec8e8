from .auth import User, SessionToken
from .inventory import SellerListing, ResaleLot
from .cart import Cart, CartLine
from .orders import Order, AdminPurchaseOrder, BuyerPurchaseOrder, OrderLine
from .brokers import BrokerAccount, CommissionRecord

__all__ = [
    'User', 'SessionToken',
    'SellerListing', 'ResaleLot',
    'Cart', 'CartLine',
    'Order', 'AdminPurchaseOrder', 'BuyerPurchaseOrder', 'OrderLine',
    'BrokerAccount', 'CommissionRecord',
]
