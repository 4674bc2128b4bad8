import hashlib
import hmac
import json
import time

import mongomock
import pytest
import resend
from fastapi.testclient import TestClient

import settings
from database import create_document, get_db
from main import app, create_token

WEBHOOK_SECRET = "whsec_test_secret"

ADDRESS = {
    "name": "Asha Rao",
    "email": "asha.rao@gmail.com",
    "mobileNumber": "9876543210",
    "address": "12 MG Road",
    "city": "Bengaluru",
    "postalCode": "560001",
    "country": "India",
}


@pytest.fixture
def db():
    return mongomock.MongoClient()["mobile_mania_test"]


@pytest.fixture
def client(db):
    app.dependency_overrides[get_db] = lambda: db
    with TestClient(app) as c:
        yield c
    app.dependency_overrides.clear()


@pytest.fixture
def sent_emails(monkeypatch):
    sent = []

    def fake_send(payload):
        sent.append(payload)
        return {"id": f"email_{len(sent)}"}

    monkeypatch.setattr(settings, "RESEND_API_KEY", "re_test_key")
    monkeypatch.setattr(resend.Emails, "send", fake_send)
    return sent


@pytest.fixture(autouse=True)
def stripe_settings(monkeypatch):
    monkeypatch.setattr(settings, "STRIPE_WEBHOOK_SECRET", WEBHOOK_SECRET)
    monkeypatch.setattr(settings, "STRIPE_SECRET_KEY", "sk_test_123")
    monkeypatch.setattr(settings, "STRIPE_PUBLISHABLE_KEY", "pk_test_123")
    monkeypatch.setattr(settings, "FRONTEND_URL", "https://shop.local")


def make_user(db, first_name="Asha", email="asha.rao@gmail.com", is_admin=False):
    user_id = create_document(db, "user", {
        "firstName": first_name,
        "lastName": "Rao",
        "email": email,
        "password_hash": "x",
        "isAdmin": is_admin,
    })
    user = {"id": user_id, "firstName": first_name, "lastName": "Rao", "email": email, "isAdmin": is_admin}
    headers = {"Authorization": f"Bearer {create_token({'id': user_id, 'email': email, 'isAdmin': is_admin})}"}
    return user, headers


def make_product(db, name="Pixel 8", price=500.0, stock=10, **extra):
    doc = {
        "name": name,
        "brand": "Google",
        "description": f"{name} description",
        "price": price,
        "images": [f"https://img.example.net/{name.replace(' ', '-')}.png"],
        "category": "Mobiles",
        "countInStock": stock,
        "specs": {},
        "rating": 0,
        "numReviews": 0,
    }
    doc.update(extra)
    return create_document(db, "product", doc)


def sign_payload(payload: bytes, secret: str = WEBHOOK_SECRET, timestamp: int = None) -> str:
    timestamp = timestamp or int(time.time())
    signed = f"{timestamp}.{payload.decode('utf-8')}".encode()
    signature = hmac.new(secret.encode(), signed, hashlib.sha256).hexdigest()
    return f"t={timestamp},v1={signature}"


def completed_event(order_id, event_type="checkout.session.completed") -> bytes:
    return json.dumps({
        "id": "evt_test_1",
        "object": "event",
        "type": event_type,
        "data": {"object": {"id": "cs_test_1", "object": "checkout.session", "metadata": {"orderId": order_id}}},
    }).encode()
