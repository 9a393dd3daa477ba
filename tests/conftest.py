"""
Shared fixtures: in-memory database, fake catalog and PayOS clients, API client
"""
import itertools
import os

os.environ["DATABASE_URL"] = "sqlite://"
os.environ["EVENTS_ENABLED"] = "false"
os.environ["PAYOS_CHECKSUM_KEY"] = "test-checksum-key"

import pytest
from fastapi.testclient import TestClient

from app.api import deps
from app.database import Base, SessionLocal, engine
from app.models.order import Order
from app.main import app
from app.repositories.order_repository import OrderRepository
from app.schemas.order import CheckoutRequest, CustomerInfo, NormalizedOrder, NormalizedOrderItem
from app.schemas.payment import PaymentInfo, PaymentLink
from app.schemas.product import ProductDefinition
from app.services.order_service import OrderService
from app.services.order_state_machine import OrderStateMachine
from app.services.payment_poller import PaymentPoller
from app.services.payment_reconciliation import PaymentReconciliationService
from app.services.payos_client import (
    PayOSClient,
    PaymentNotFoundError,
    PaymentProviderUnavailableError,
)
from app.services.product_client import ProductNotFoundError, ProductServiceUnavailableError

CHECKSUM_KEY = "test-checksum-key"


def make_product(product_id, name, price, currency="VND", required_fields=None):
    return ProductDefinition(
        id=product_id,
        name=name,
        price=price,
        currency=currency,
        required_fields=required_fields or [],
    )


BASIC = make_product("prod-basic", "ChatGPT Plus 1 month", 500000)
ACCOUNT = make_product(
    "prod-account",
    "Netflix Premium",
    250000,
    required_fields=[
        {"label": "Account email", "type": "email", "required": True},
        {"label": "Profile name", "type": "text", "required": False},
        {"label": "Account password", "type": "password", "required": True},
    ],
)
USD_ITEM = make_product("prod-usd", "Domain renewal", 12.5, currency="USD")


def checkout_payload(items=None, **overrides):
    payload = {
        "customer": {"name": "Nguyen Van A", "email": "a@mail.vn", "phone": "0901234567"},
        "items": items if items is not None else [
            {"product_id": "prod-basic", "name": "ChatGPT Plus 1 month", "price": 500000, "quantity": 1}
        ],
        "note": None,
    }
    payload.update(overrides)
    return payload


def checkout_request(items=None, **overrides) -> CheckoutRequest:
    return CheckoutRequest.model_validate(checkout_payload(items, **overrides))


class FakeCatalog:
    def __init__(self, *products):
        self.products = {product.id: product for product in products}
        self.unavailable = False
        self.calls = []

    async def get_product(self, product_id):
        self.calls.append(product_id)
        if self.unavailable:
            raise ProductServiceUnavailableError("Product Service unavailable: connection refused")
        if product_id not in self.products:
            raise ProductNotFoundError(f"Product {product_id} not found")
        return self.products[product_id]


class FakePayOS:
    """In-memory PayOS: links are PENDING until a test sets another status"""

    def __init__(self):
        self.created = []
        self.statuses = {}
        self.amounts = {}
        self.lookups = []
        self.fail_create = False
        self.lookup_error = False
        self.on_create = None
        self.on_lookup = None

    async def create_payment_link(self, order_id, amount, order_code, description=None):
        if self.on_create:
            self.on_create(order_id)
        if self.fail_create:
            raise PaymentProviderUnavailableError("PayOS unavailable: timed out")
        self.created.append((order_id, amount, order_code))
        self.statuses.setdefault(order_code, "PENDING")
        self.amounts[order_code] = amount
        return PaymentLink(
            checkout_url=f"https://pay.payos.vn/web/{order_code}",
            qr_code=f"00020101021238570010A000000727{order_code}",
            payment_link_id=f"link-{order_code}",
        )

    async def get_payment_info(self, order_code):
        self.lookups.append(order_code)
        if self.on_lookup:
            self.on_lookup(order_code)
        if self.lookup_error:
            raise PaymentProviderUnavailableError("PayOS unavailable: timed out")
        if order_code not in self.statuses:
            raise PaymentNotFoundError("Payment link not found")
        status = self.statuses[order_code]
        amount = self.amounts.get(order_code, 0)
        return PaymentInfo(
            id=f"link-{order_code}",
            order_code=order_code,
            amount=amount,
            amount_paid=amount if status == "PAID" else 0,
            amount_remaining=0 if status == "PAID" else amount,
            status=status,
        )

    def verify_webhook_data(self, data, signature):
        return PayOSClient(checksum_key=CHECKSUM_KEY).verify_webhook_data(data, signature)


class RecordingPublisher:
    def __init__(self):
        self.events = []

    def publish_order_created(self, order_data):
        self.events.append(("OrderCreated", order_data))
        return True

    def publish_order_status_changed(self, order_data):
        self.events.append(("OrderStatusChanged", order_data))
        return True

    def publish_payment_status_changed(self, order_data):
        self.events.append(("PaymentStatusChanged", order_data))
        return True

    def of_type(self, event_type):
        return [data for name, data in self.events if name == event_type]


@pytest.fixture(autouse=True)
def database():
    Base.metadata.create_all(bind=engine)
    yield
    Base.metadata.drop_all(bind=engine)


@pytest.fixture
def db(database):
    session = SessionLocal()
    yield session
    session.close()


@pytest.fixture
def catalog():
    return FakeCatalog(BASIC, ACCOUNT, USD_ITEM)


@pytest.fixture
def payos():
    return FakePayOS()


@pytest.fixture
def publisher():
    return RecordingPublisher()


@pytest.fixture
def order_service(db, catalog, payos, publisher):
    codes = itertools.count(100001)
    return OrderService(db, catalog, payos, publisher, order_code_factory=lambda: next(codes))


@pytest.fixture
def reconciliation(db, payos, publisher):
    return PaymentReconciliationService(db, payos, publisher)


@pytest.fixture
def state_machine(db, publisher):
    return OrderStateMachine(db, publisher, require_payment_for_completion=False)


@pytest.fixture
def client(catalog, payos, publisher):
    async def reconcile(order_id):
        session = SessionLocal()
        try:
            result = await PaymentReconciliationService(session, payos, publisher).reconcile(order_id)
            return result.outcome
        finally:
            session.close()

    app.dependency_overrides[deps.get_product_client] = lambda: catalog
    app.dependency_overrides[deps.get_payos_client] = lambda: payos
    app.dependency_overrides[deps.get_event_publisher] = lambda: publisher
    app.state.payment_poller = PaymentPoller(reconcile=reconcile, interval=0.01, max_attempts=1000)
    with TestClient(app) as test_client:
        yield test_client
    app.dependency_overrides.clear()


CUSTOMER_HEADERS = {"X-User-Id": "user-1", "X-User-Email": "a@mail.vn"}
ADMIN_HEADERS = {"X-User-Id": "admin-7", "X-User-Role": "admin"}


def persist_order(db, user_id="user-1", lines=None, currency="VND", **fields):
    """Store an order directly, bypassing checkout, then force any column values"""
    items = [
        NormalizedOrderItem(product_id=product_id, name=name, price=price, currency=currency, quantity=quantity)
        for product_id, name, price, quantity in (lines or [("prod-basic", "ChatGPT Plus 1 month", 500000, 1)])
    ]
    payload = NormalizedOrder(
        customer=CustomerInfo(name="Tran Thi B", email="b@mail.vn", phone="0912345678"),
        items=items,
        total_amount=sum(item.price * item.quantity for item in items),
        currency=currency,
    )
    order = OrderRepository(db).create(payload, user_id=user_id)
    for name, value in fields.items():
        setattr(order, name, value)
    db.commit()
    return order


def update_in_other_session(order_id, **fields):
    """Commit column changes through a separate session, as a concurrent request would"""
    session = SessionLocal()
    try:
        order = session.get(Order, order_id)
        for name, value in fields.items():
            setattr(order, name, value)
        session.commit()
    finally:
        session.close()
