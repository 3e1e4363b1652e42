import pytest
from fastapi.testclient import TestClient
from pymongo.errors import DuplicateKeyError

from auth import verify_password
from config import Settings
from database import create_document, to_serializable
from main import create_app
from seed import seed_admin


def test_settings_from_env():
    settings = Settings.from_env({
        "DATABASE_URL": "mongodb://localhost:27017",
        "PAYSTACK_SECRET": "sk_live_x",
        "FRONTEND_URL": "https://glams.example/",
        "PORT": "9000",
        "JWT_TTL_HOURS": "12",
        "DELIVERY_FEE": "1500",
    })
    assert settings.database_url == "mongodb://localhost:27017"
    assert settings.port == 9000
    assert settings.jwt_ttl_hours == 12
    assert settings.delivery_fee == 1500
    assert settings.callback_url == "https://glams.example/checkout"
    assert settings.database_name == "glams"


def test_settings_defaults():
    settings = Settings.from_env({})
    assert settings.database_url is None
    assert settings.paystack_secret is None
    assert settings.jwt_ttl_hours == 24
    assert settings.callback_url == "http://localhost:5173/checkout"


def test_seed_admin_is_idempotent(db):
    assert seed_admin(db, "owner@glams.ng", "pw-123") is True
    assert seed_admin(db, "owner@glams.ng", "other") is False
    admins = list(db["admin"].find())
    assert len(admins) == 1
    assert admins[0]["name"] == "owner"
    assert verify_password("pw-123", admins[0]["password_hash"])


def test_payment_reference_is_unique(db):
    create_document(db, "order", {"payment": {"reference": "DUP"}})
    with pytest.raises(DuplicateKeyError):
        create_document(db, "order", {"payment": {"reference": "DUP"}})


def test_to_serializable_handles_nested_values(db):
    new_id = create_document(db, "product", {"name": "x", "tags": [{"at": None}]})
    doc = to_serializable(db["product"].find_one())
    assert doc["id"] == new_id
    assert isinstance(doc["created_at"], str)
    assert doc["tags"] == [{"at": None}]


def test_root_and_diagnostics(client):
    assert client.get("/").json() == {"message": "Welcome to Glams API"}
    status = client.get("/test").json()
    assert status["connection_status"] == "Connected"
    assert status["paystack"] == "✅ Set"


def test_missing_database_is_reported(settings, gateway):
    client = TestClient(create_app(settings, gateway=gateway))
    resp = client.get("/api/products")
    assert resp.status_code == 500
    assert resp.json() == {"success": False, "message": "Database not configured"}
