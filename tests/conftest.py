import hashlib
import hmac
import json
import os
import threading
import time
from decimal import Decimal
from typing import Any, Dict, Generator, List, Optional

import pytest
from fastapi.testclient import TestClient
from unittest.mock import MagicMock

os.environ.setdefault("DISABLE_FASTAPI_LIMITER_INIT_FOR_TESTS", "1")

from marketplace import config
from marketplace.app import app as fastapi_app
from marketplace.bookings.models import Booking
from marketplace.payments import stripe_client
from marketplace.payments.errors import ProcessorUnavailableError
from marketplace.payments.models import CheckoutSession
from marketplace.utils.security import require_customer, require_user

WEBHOOK_SECRET = "whsec_test_secret"
CUSTOMER_ID = "cust-1"

# Marquage automatique selon le dossier
def pytest_collection_modifyitems(config, items):
    for item in items:
        nodeid = item.nodeid.replace("\\", "/")
        if "tests/unit/" in nodeid:
            item.add_marker(pytest.mark.unit)
        elif "tests/integration/" in nodeid:
            item.add_marker(pytest.mark.integration)
        elif "tests/functional/" in nodeid:
            item.add_marker(pytest.mark.functional)

@pytest.fixture(scope="session")
def app():
    return fastapi_app

@pytest.fixture()
def client(app) -> Generator[TestClient, None, None]:
    with TestClient(app) as c:
        yield c

@pytest.fixture()
def client_no_raise(app) -> Generator[TestClient, None, None]:
    """Client qui renvoie les 500 au lieu de relever l'exception serveur."""
    with TestClient(app, raise_server_exceptions=False) as c:
        yield c

# Simuler un client authentifié pour les endpoints protégés
@pytest.fixture(autouse=True)
def _override_auth(app):
    fake_user: Dict[str, Any] = {
        "id": CUSTOMER_ID,
        "email": "customer@example.com",
        "role": "customer",
        "metadata": {"full_name": "Test Customer"},
        "token": "fake-token",
    }
    app.dependency_overrides[require_user] = lambda: fake_user
    app.dependency_overrides[require_customer] = lambda: fake_user
    try:
        yield fake_user
    finally:
        app.dependency_overrides.pop(require_user, None)
        app.dependency_overrides.pop(require_customer, None)

@pytest.fixture(autouse=True)
def _stripe_config(monkeypatch):
    monkeypatch.setattr(config, "STRIPE_SECRET_KEY", "sk_test_dummy")
    monkeypatch.setattr(config, "STRIPE_WEBHOOK_SECRET", WEBHOOK_SECRET)
    monkeypatch.setattr(config, "STRIPE_CURRENCY", "usd")
    monkeypatch.setattr(config, "FRONTEND_URL", "http://localhost:3000")
    monkeypatch.setattr(config, "SMTP_HOST", "")
    stripe_client.reset_processor()
    yield
    stripe_client.reset_processor()

# Aucun accès réseau à Supabase pendant les tests
@pytest.fixture(autouse=True)
def mock_supabase(monkeypatch):
    monkeypatch.setattr("marketplace.infra.supabase_client.get_supabase", lambda: MagicMock())
    monkeypatch.setattr("marketplace.infra.supabase_client.get_service_supabase", lambda: MagicMock())


class FakeProcessor:
    """Remplace Stripe: enregistre les appels et renvoie des sessions factices."""

    def __init__(self):
        self.created: List[Dict[str, Any]] = []
        self.expired: List[str] = []
        self.listed: List[Dict[str, Any]] = []
        self.fail_create = False
        self.fail_expire = False
        self._lock = threading.Lock()

    def create_checkout_session(self, *, line_items, success_url, cancel_url, metadata, client_reference_id):
        if self.fail_create:
            raise ProcessorUnavailableError("Stripe: connection error")
        with self._lock:
            session_id = f"cs_test_{len(self.created) + 1}"
            self.created.append({
                "id": session_id,
                "line_items": line_items,
                "success_url": success_url,
                "cancel_url": cancel_url,
                "metadata": metadata,
                "client_reference_id": client_reference_id,
            })
        return {"id": session_id, "url": f"https://checkout.stripe.test/pay/{session_id}"}

    def expire_checkout_session(self, session_id):
        if self.fail_expire:
            raise ProcessorUnavailableError("Stripe: connection error")
        self.expired.append(session_id)

    def list_checkout_sessions(self, *, created_after):
        return iter(self.listed)


@pytest.fixture()
def processor() -> Generator[FakeProcessor, None, None]:
    fake = FakeProcessor()
    stripe_client.set_processor(fake)
    yield fake
    stripe_client.reset_processor()


class InMemoryStore:
    """
    Base en mémoire branchée à la place des repositories.
    Les transitions de statut sont atomiques (verrou) comme un UPDATE conditionnel.
    """

    def __init__(self):
        self.users: Dict[str, dict] = {}
        self.listings: Dict[str, dict] = {}
        self.sessions: Dict[str, dict] = {}
        self.bookings: Dict[tuple, dict] = {}
        self.booking_writes = 0
        self.cart_writes = 0
        self.fail_session_insert = False
        self.fail_booking_insert = False
        self.fail_cart_update = False
        self.lock = threading.Lock()

    # catalog
    def fetch_listings_by_ids(self, ids):
        return [json.loads(json.dumps(self.listings[i])) for i in ids if i in self.listings]

    # customers
    def get_user_by_id(self, user_id):
        return self.users.get(user_id)

    def remove_cart_lines(self, customer_id, cart_line_ids):
        if self.fail_cart_update:
            raise RuntimeError("cart update failed")
        consumed = set(cart_line_ids)
        with self.lock:
            user = self.users.get(customer_id) or {}
            cart = user.get("customer_cart") or []
            remaining = [l for l in cart if l.get("id") not in consumed]
            user["customer_cart"] = remaining
            self.cart_writes += 1
            return len(cart) - len(remaining)

    def get_vendor_names(self, vendor_ids):
        out = {}
        for v in vendor_ids:
            u = self.users.get(v)
            if u and u.get("vendor_business_name"):
                out[v] = u["vendor_business_name"]
        return out

    # checkout_sessions
    def insert_checkout_session(self, session: CheckoutSession):
        if self.fail_session_insert:
            raise RuntimeError("insert failed")
        row = session.to_row()
        with self.lock:
            if row["session_id"] in self.sessions:
                raise RuntimeError("duplicate session_id")
            self.sessions[row["session_id"]] = row
        return session

    def get_checkout_session(self, session_id):
        row = self.sessions.get(session_id)
        return CheckoutSession.model_validate(row) if row else None

    def transition_status(self, session_id, from_status, to_status, extra=None):
        with self.lock:
            row = self.sessions.get(session_id)
            if not row or row["status"] != from_status:
                return None
            row.update({"status": to_status, **(extra or {})})
            return CheckoutSession.model_validate(dict(row))

    def existing_session_ids(self, session_ids):
        return {s for s in session_ids if s in self.sessions}

    # bookings
    def insert_bookings(self, bookings: List[Booking]):
        if self.fail_booking_insert:
            raise RuntimeError("bookings insert failed")
        with self.lock:
            self.booking_writes += 1
            for b in bookings:
                key = (b.checkout_session_id, b.line_index)
                self.bookings.setdefault(key, b.to_row())
        return []

    def bookings_for(self, session_id):
        return [row for (sid, _), row in sorted(self.bookings.items()) if sid == session_id]


@pytest.fixture()
def store(monkeypatch) -> InMemoryStore:
    s = InMemoryStore()
    monkeypatch.setattr("marketplace.catalog.repository.fetch_listings_by_ids", s.fetch_listings_by_ids)
    monkeypatch.setattr("marketplace.customers.repository.get_user_by_id", s.get_user_by_id)
    monkeypatch.setattr("marketplace.customers.repository.remove_cart_lines", s.remove_cart_lines)
    monkeypatch.setattr("marketplace.customers.repository.get_vendor_names", s.get_vendor_names)
    monkeypatch.setattr("marketplace.payments.repository.insert_checkout_session", s.insert_checkout_session)
    monkeypatch.setattr("marketplace.payments.repository.get_checkout_session", s.get_checkout_session)
    monkeypatch.setattr("marketplace.payments.repository.transition_status", s.transition_status)
    monkeypatch.setattr("marketplace.payments.repository.existing_session_ids", s.existing_session_ids)
    monkeypatch.setattr("marketplace.bookings.repository.insert_bookings", s.insert_bookings)
    return s


@pytest.fixture()
def make_listing():
    def _make(
        listing_id: str,
        *,
        zip_code: str = "90210",
        vendor_id: str = "vendor-1",
        name: Optional[str] = None,
        packages: Optional[List[dict]] = None,
        custom_packages: Optional[List[dict]] = None,
        flat_price: Optional[dict] = None,
    ) -> dict:
        return {
            "id": listing_id,
            "vendor_id": vendor_id,
            "name": name or f"Listing {listing_id}",
            "image_urls": [f"https://img.test/{listing_id}.jpg"],
            "location": {"zip_code": zip_code, "city": "City", "state": "ST"},
            "packages": packages if packages is not None else [
                {"id": "pkg-1", "name": "Gold", "price": 100, "description": "Full service", "includes": [], "is_active": True},
            ],
            "custom_packages": custom_packages or [],
            "flat_price": flat_price or {"amount": None, "is_active": False},
        }
    return _make


@pytest.fixture()
def make_cart_line():
    counter = {"n": 0}

    def _make(
        listing_id: str,
        total_price,
        *,
        kind: str = "package",
        option_id: Optional[str] = "pkg-1",
        event_date: str = "2026-12-31",
        event_time: str = "07:30 PM",
        attendees: int = 50,
        line_id: Optional[str] = None,
    ) -> dict:
        counter["n"] += 1
        return {
            "id": line_id or f"line-{counter['n']}",
            "listing_id": listing_id,
            "pricing_option_id": option_id,
            "pricing_option_kind": kind,
            "event_date": event_date,
            "event_time": event_time,
            "attendees": attendees,
            "total_price": str(Decimal(str(total_price))),
            "added_at": "2026-10-01T10:00:00Z",
        }
    return _make


@pytest.fixture()
def seed_customer(store):
    def _seed(cart: List[dict], customer_id: str = CUSTOMER_ID, **profile) -> dict:
        user = {
            "id": customer_id,
            "email": "customer@example.com",
            "full_name": "Test Customer",
            "phone_number": "+1 555 0100",
            "location": {"city": "Los Angeles"},
            "customer_cart": cart,
        }
        user.update(profile)
        store.users[customer_id] = user
        return user
    return _seed


def sign_payload(payload: bytes, secret: str = WEBHOOK_SECRET, timestamp: Optional[int] = None) -> str:
    """En-tête Stripe-Signature (t=...,v1=HMAC-SHA256(secret, "t.payload"))."""
    t = int(time.time()) if timestamp is None else timestamp
    signed = f"{t}.".encode("utf-8") + payload
    sig = hmac.new(secret.encode("utf-8"), signed, hashlib.sha256).hexdigest()
    return f"t={t},v1={sig}"


def checkout_event(event_type: str, session_id: str, *, payment_status: str = "paid", event_id: str = "evt_1") -> dict:
    return {
        "id": event_id,
        "object": "event",
        "type": event_type,
        "data": {
            "object": {
                "id": session_id,
                "object": "checkout.session",
                "payment_status": payment_status,
                "payment_intent": f"pi_{session_id}",
                "metadata": {"customer_id": CUSTOMER_ID},
            }
        },
    }


@pytest.fixture()
def post_webhook():
    def _post(client, event: dict, *, secret: str = WEBHOOK_SECRET, signature: Optional[str] = None):
        payload = json.dumps(event).encode("utf-8")
        header = signature if signature is not None else sign_payload(payload, secret)
        return client.post(
            "/payments/webhook",
            content=payload,
            headers={"Stripe-Signature": header, "Content-Type": "application/json"},
        )
    return _post


@pytest.fixture()
def webhook_event():
    return checkout_event
