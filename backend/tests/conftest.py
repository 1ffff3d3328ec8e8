"""
Pytest fixtures for resale settlement backend tests.

Provides an in-memory database, the test client, account/inventory factories
and a settlement engine wired to the simulated payment gateway.
"""

from functools import lru_cache

import pytest
from resale import create_app
from resale.extensions import db
from resale.models import User, SellerListing, ResaleLot, AdminPurchaseOrder, OrderLine, BrokerAccount
from resale.models.auth import ROLE_ADMIN, ROLE_SELLER, ROLE_BUYER, ROLE_BROKER
from resale.models.inventory import LISTING_ACTIVE, LOT_ACTIVE, LOT_SOLD_OUT
from resale.models.orders import ORDER_CONFIRMED, PAYMENT_PAID
from resale.services.auth_service import hash_password
from resale.services.gateway_service import sign_payment
from resale.services.settlement_service import SettlementEngine, format_order_number


PASSWORD = "Password123!"

SELLER_KEY_ID = "rzp_test_seller"
SELLER_SECRET = "seller_secret_9876"
ADMIN_KEY_ID = "rzp_test_admin"
ADMIN_SECRET = "admin_secret_4321"

TEST_CONFIG = {
    'TESTING': True,
    'SQLALCHEMY_DATABASE_URI': 'sqlite:///:memory:',
    'SQLALCHEMY_TRACK_MODIFICATIONS': False,
    'GATEWAY_MODE': 'simulated',
    'GATEWAY_CURRENCY': 'INR',
    'GATEWAY_ALLOW_FALLBACK': True,
    'CHECKOUT_PAYMENT_MODE': 'captured',
    'COMMISSION_RATE': '0.05',
}


@lru_cache(maxsize=1)
def _password_hash() -> str:
    return hash_password(PASSWORD)


@pytest.fixture(scope='session')
def app():
    """Create application for testing."""
    app = create_app(TEST_CONFIG)

    with app.app_context():
        db.create_all()
        yield app
        db.drop_all()


@pytest.fixture(scope='function')
def client(app):
    """Create test client."""
    return app.test_client()


@pytest.fixture(scope='function')
def db_session(app):
    """Create fresh database for each test."""
    with app.app_context():
        # Clear all data but keep schema
        meta = db.metadata
        for table in reversed(meta.sorted_tables):
            db.session.execute(table.delete())
        db.session.commit()

        yield db.session

        # Cleanup after test
        db.session.rollback()


@pytest.fixture(scope='function')
def gateway(app):
    return app.extensions["payment_gateway"]


@pytest.fixture(scope='function')
def engine(app, db_session):
    """Engine in captured checkout mode (the default)."""
    return SettlementEngine.from_app(app, session=db_session)


@pytest.fixture(scope='function')
def gateway_engine(app, db_session, gateway):
    """Engine whose checkout waits for a gateway payment."""
    return SettlementEngine(db_session, gateway, checkout_mode="gateway", allow_fallback=True)


# =============================================================================
# FACTORIES
# =============================================================================

@pytest.fixture(scope='function')
def make_user(db_session):
    def _make(username, role, *, referred_by_code=None, key_id=None, key_secret=None, is_active=True):
        user = User(
            username=username,
            email=f"{username}@resale.test",
            password_hash=_password_hash(),
            role=role,
            is_active=is_active,
            referred_by_code=referred_by_code,
            gateway_key_id=key_id,
            gateway_key_secret=key_secret,
        )
        db_session.add(user)
        db_session.commit()
        return user
    return _make


@pytest.fixture(scope='function')
def admin(make_user):
    return make_user("admin", ROLE_ADMIN, key_id=ADMIN_KEY_ID, key_secret=ADMIN_SECRET)


@pytest.fixture(scope='function')
def seller(make_user):
    return make_user("seller", ROLE_SELLER, key_id=SELLER_KEY_ID, key_secret=SELLER_SECRET)


@pytest.fixture(scope='function')
def buyer(make_user):
    return make_user("buyer", ROLE_BUYER)


@pytest.fixture(scope='function')
def make_broker(db_session, make_user):
    def _make(username, code, *, is_active=True):
        user = make_user(username, ROLE_BROKER)
        broker = BrokerAccount(user_id=user.id, broker_code=code, is_active=is_active)
        db_session.add(broker)
        db_session.commit()
        return broker
    return _make


@pytest.fixture(scope='function')
def make_listing(db_session):
    def _make(seller, *, name="Basmati Rice", price_cents=5000, quantity=10, status=LISTING_ACTIVE,
              admin_purchaser_id=None):
        listing = SellerListing(
            seller_id=seller.id,
            name=name,
            price_cents=price_cents,
            on_hand_quantity=quantity,
            status=status,
            admin_purchaser_id=admin_purchaser_id,
        )
        db_session.add(listing)
        db_session.commit()
        return listing
    return _make


@pytest.fixture(scope='function')
def make_lot(db_session, make_listing):
    """
    Lot as produced by a settled admin purchase, without going through the
    gateway: a PAID admin order plus the lot it created.
    """
    def _make(admin, seller, *, total=5, sold=0, purchase_price_cents=5000, selling_price_cents=8000,
              name="Basmati Rice", status=None):
        listing = make_listing(seller, name=name, price_cents=purchase_price_cents, quantity=0,
                               admin_purchaser_id=admin.id)
        order = AdminPurchaseOrder(
            admin_id=admin.id,
            seller_id=seller.id,
            resale_price_cents=selling_price_cents,
            total_amount_cents=purchase_price_cents * total,
            status=ORDER_CONFIRMED,
            payment_status=PAYMENT_PAID,
        )
        order.lines.append(OrderLine(
            listing_id=listing.id,
            product_name=name,
            quantity=total,
            unit_price_cents=purchase_price_cents,
            line_total_cents=purchase_price_cents * total,
        ))
        db_session.add(order)
        db_session.flush()
        order.order_number = format_order_number(order.id)

        if status is None:
            status = LOT_SOLD_OUT if sold >= total else LOT_ACTIVE
        lot = ResaleLot(
            listing_id=listing.id,
            seller_id=seller.id,
            purchaser_id=admin.id,
            order_id=order.id,
            name=name,
            total_quantity=total,
            sold_quantity=sold,
            purchase_price_cents=purchase_price_cents,
            selling_price_cents=selling_price_cents,
            status=status,
        )
        db_session.add(lot)
        db_session.commit()
        return lot
    return _make


# =============================================================================
# HELPERS
# =============================================================================

def pay(gateway, secret: str, gateway_order_id: str) -> tuple[str, str]:
    """Simulated client checkout against `secret`: returns (payment_id, signature)."""
    from resale.services.credential_service import GatewayCredentials
    return gateway.capture(gateway_order_id, GatewayCredentials("unused", secret))


def forged_signature(gateway_order_id: str, payment_id: str) -> str:
    return sign_payment("not-the-payee-secret", gateway_order_id, payment_id)


def get_auth_token(client, username: str, password: str = PASSWORD) -> str:
    """Helper to get auth token for a user."""
    response = client.post('/api/auth/login', json={
        'username': username,
        'password': password
    })
    if response.status_code == 200:
        return response.json.get('token')
    return None


def auth_headers(token: str) -> dict:
    """Helper to create Authorization headers."""
    return {'Authorization': f'Bearer {token}'}
