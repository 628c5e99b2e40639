"""
Pytest fixtures for foodops backend tests.

Provides the test app (in-memory SQLite), a per-test table wipe, catalog
and stock fixtures, and a fake payment gateway.
"""

import hashlib

import pytest

from foodops import create_app
from foodops.errors import ExternalDependencyError
from foodops.extensions import db, PAYMENT_GATEWAY_KEY
from foodops.models import InventoryItem, Product
from foodops.models.inventory import INVENTORY_STATUS_READY
from foodops.services.payment_gateway import GatewaySettings, MidtransClient, SnapTransaction
from foodops.time_utils import utcnow


TEST_SERVER_KEY = "SB-Mid-server-test-key"


@pytest.fixture(scope='session')
def app():
    """Create application for testing."""
    app = create_app({
        'TESTING': True,
        'SQLALCHEMY_DATABASE_URI': 'sqlite:///:memory:',
        'SQLALCHEMY_TRACK_MODIFICATIONS': False,
        'LOCATIONS': ['Bandung', 'Jakarta'],
        'MIDTRANS_SERVER_KEY': TEST_SERVER_KEY,
        'MIDTRANS_APP_BASE_URL': 'https://shop.example.test',
    })

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


# =============================================================================
# PAYMENT GATEWAY
# =============================================================================

class FakeGateway(MidtransClient):
    """Records Snap requests instead of sending them; signatures use the test key."""

    def __init__(self, fail: bool = False):
        super().__init__(GatewaySettings(server_key=TEST_SERVER_KEY))
        self.fail = fail
        self.calls = []

    def create_transaction(self, *, order_id, gross_amount, customer, items, expiry_minutes=None):
        self.calls.append({
            "order_id": order_id,
            "gross_amount": gross_amount,
            "customer": customer,
            "items": list(items),
        })
        if self.fail:
            raise ExternalDependencyError("Midtrans Snap error: 500 Internal Server Error - upstream down")
        token = f"tok-{len(self.calls)}"
        return SnapTransaction(
            token=token,
            redirect_url=f"https://app.sandbox.midtrans.com/snap/v4/redirection/{token}",
            order_id=order_id,
            expiry_at=utcnow(),
        )


@pytest.fixture(scope='function')
def gateway(app, monkeypatch):
    """Swap the app's gateway for a FakeGateway for one test."""
    fake = FakeGateway()
    monkeypatch.setitem(app.extensions, PAYMENT_GATEWAY_KEY, fake)
    return fake


def sign_notification(order_id: str, status_code: str, gross_amount: str) -> str:
    raw = f"{order_id}{status_code}{gross_amount}{TEST_SERVER_KEY}"
    return hashlib.sha512(raw.encode("utf-8")).hexdigest()


# =============================================================================
# CATALOG & STOCK
# =============================================================================

@pytest.fixture(scope='function')
def hok_l(db_session):
    product = Product(code="HOK-L", name="Hokkaido Large", price=10000)
    db_session.add(product)
    db_session.commit()
    return product


@pytest.fixture(scope='function')
def hok_r(db_session):
    product = Product(code="HOK-R", name="Hokkaido Regular", price=7000)
    db_session.add(product)
    db_session.commit()
    return product


@pytest.fixture(scope='function')
def brw(db_session):
    product = Product(code="BRW", name="Brownies", price=25000)
    db_session.add(product)
    db_session.commit()
    return product


def add_stock(product, location: str, count: int, *, start: int = 100) -> list[str]:
    """Create READY units labeled like the kitchen printer does (e.g. 100-HOK-L)."""
    barcodes = []
    for serial in range(start, start + count):
        barcode = f"{serial}-{product.code}"
        db.session.add(InventoryItem(
            barcode=barcode,
            product_id=product.id,
            location=location,
            status=INVENTORY_STATUS_READY,
        ))
        barcodes.append(barcode)
    db.session.commit()
    return barcodes


def whatsapp_order_payload(product, quantity: int = 2, **overrides) -> dict:
    payload = {
        "outlet": "WhatsApp",
        "customer": "Budi",
        "status": "NOT PAID",
        "orderDate": "2025-01-05T03:00:00Z",
        "location": "Bandung",
        "discount": 10,
        "ongkirPlan": 5000,
        "items": [{"productId": product.id, "quantity": quantity}],
    }
    payload.update(overrides)
    return payload
