import asyncio
import os

import httpx
import mongomock
import pytest
from fastapi.testclient import TestClient

from cache import TTLCache
from config import Settings
from database import create_document, ensure_indexes
from main import create_app
from paystack import PaystackClient
from seed import seed_admin

ADMIN_EMAIL = "admin@glams.ng"
ADMIN_PASSWORD = "Admin@123"


class FakeImageStore:
    """In-memory stand-in for the GridFS image store."""

    def __init__(self):
        self.files = {}
        self.removed = []
        self.fail_remove = False
        self.calls_on_loop = []
        self._counter = 0

    def _record_loop(self):
        try:
            asyncio.get_running_loop()
        except RuntimeError:
            self.calls_on_loop.append(False)
        else:
            self.calls_on_loop.append(True)

    def upload(self, data, original_name, content_type):
        self._record_loop()
        self._counter += 1
        ext = os.path.splitext(original_name)[1]
        filename = f"product-{self._counter}{ext}"
        self.files[filename] = (data, content_type)
        return f"http://testserver/api/images/{filename}"

    def open(self, filename):
        return self.files.get(filename)

    def remove(self, filename):
        self._record_loop()
        if self.fail_remove:
            raise RuntimeError("storage unavailable")
        self.removed.append(filename)
        self.files.pop(filename, None)


class PaystackStub:
    """httpx.MockTransport handler answering like the Paystack API."""

    def __init__(self):
        self.requests = []
        self.initialize_response = {
            "status": True,
            "message": "Authorization URL created",
            "data": {"authorization_url": "https://checkout.paystack.com/abc123", "access_code": "abc123", "reference": "REF1"},
        }
        self.verifications = {}
        self.down = False

    def verified(self, reference, amount, order, status="success"):
        self.verifications[reference] = {
            "status": True,
            "message": "Verification successful",
            "data": {
                "status": status,
                "reference": reference,
                "amount": amount,
                "channel": "card",
                "paid_at": "2026-10-19T09:30:00.000Z",
                "metadata": {"order": order},
            },
        }

    def __call__(self, request: httpx.Request) -> httpx.Response:
        self.requests.append(request)
        if self.down:
            raise httpx.ConnectError("connection refused", request=request)
        if request.url.path.endswith("/transaction/initialize"):
            return httpx.Response(200, json=self.initialize_response)
        reference = request.url.path.rsplit("/", 1)[-1]
        body = self.verifications.get(reference, {"status": False, "message": "Transaction reference not found"})
        return httpx.Response(200, json=body)


class FakeClock:
    def __init__(self):
        self.now = 1000.0

    def __call__(self):
        return self.now


@pytest.fixture
def settings():
    return Settings(jwt_secret="test-secret", paystack_secret="sk_test_123", frontend_url="http://shop.test", database_name="glams_test")


@pytest.fixture
def db():
    database = mongomock.MongoClient()["glams_test"]
    ensure_indexes(database)
    return database


@pytest.fixture
def paystack():
    return PaystackStub()


@pytest.fixture
def gateway(settings, paystack):
    return PaystackClient(
        settings.paystack_secret,
        base_url="https://api.paystack.test",
        callback_url=settings.callback_url,
        http=httpx.Client(transport=httpx.MockTransport(paystack)),
    )


@pytest.fixture
def images():
    return FakeImageStore()


@pytest.fixture
def clock():
    return FakeClock()


@pytest.fixture
def cache(settings, clock):
    return TTLCache(settings.analytics_cache_ttl, clock=clock)


@pytest.fixture
def app(settings, db, gateway, images, cache):
    return create_app(settings, db=db, gateway=gateway, images=images, cache=cache)


@pytest.fixture
def client(app):
    return TestClient(app)


@pytest.fixture
def admin(db):
    seed_admin(db, ADMIN_EMAIL, ADMIN_PASSWORD, name="Marcel")
    return db["admin"].find_one({"email": ADMIN_EMAIL})


@pytest.fixture
def auth_headers(client, admin):
    resp = client.post("/api/auth/admin/login", json={"email": ADMIN_EMAIL, "password": ADMIN_PASSWORD})
    assert resp.status_code == 200
    return {"Authorization": f"Bearer {resp.json()['token']}"}


@pytest.fixture
def make_product(db):
    def _make(**overrides):
        doc = {
            "name": "Still Water",
            "description": "Purified table water",
            "category": "Table Water",
            "size_volume": "75cl",
            "unit_type": "bottle",
            "price": 1500.0,
            "cost_price": None,
            "stock_quantity": 120,
            "reorder_level": 50,
            "water_source": None,
            "treatment_process": None,
            "product_code": "GW-75",
            "image_url": None,
        }
        doc.update(overrides)
        return create_document(db, "product", doc)
    return _make


@pytest.fixture
def order_draft():
    return {
        "items": [
            {"productId": "p1", "name": "Still Water", "size_volume": "75cl", "quantity": 2, "price": 1500, "total": 3000},
        ],
        "customer": {
            "firstName": "Ada",
            "lastName": "Obi",
            "email": "ada@example.com",
            "phone": "08030000000",
            "address": "12 Marina Rd",
            "city": "Lagos",
            "state": "Lagos",
            "zipCode": "100001",
        },
        "payment": {"paymentMethod": "card", "deliveryMethod": "home", "specialInstructions": "Call on arrival"},
        "totals": {"subtotal": 3000, "deliveryFee": 2000, "total": 5000},
        "status": "pending",
    }
