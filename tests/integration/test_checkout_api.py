import pytest

from marketplace.utils.security import require_customer


@pytest.fixture()
def cart_90210(store, seed_customer, make_listing, make_cart_line):
    store.listings["L1"] = make_listing("L1", zip_code="90210", name="Beverly Hall")
    seed_customer([make_cart_line("L1", "100.00", line_id="a")])
    return store


def test_checkout_returns_redirect_and_session(client, cart_90210, processor):
    r = client.post("/payments/checkout")
    assert r.status_code == 200
    body = r.json()
    assert body == {"redirectUrl": "https://checkout.stripe.test/pay/cs_test_1", "sessionId": "cs_test_1"}
    assert cart_90210.sessions["cs_test_1"]["status"] == "pending"

def test_checkout_accepts_camelcase_client_breakdown(client, cart_90210, processor):
    payload = {
        "taxBreakdown": [
            {"postalCode": "90210", "jurisdiction": "California", "rate": 8.85, "taxableAmount": 100, "taxAmount": 8.85},
        ],
        "totalTaxAmount": 8.85,
    }
    r = client.post("/payments/checkout", json=payload)
    assert r.status_code == 200
    assert cart_90210.sessions["cs_test_1"]["tax_amount"] == "8.85"

def test_checkout_tampered_breakdown_does_not_change_charge(client, cart_90210, processor):
    payload = {"taxBreakdown": [{"postalCode": "90210", "rate": 0, "taxableAmount": 100, "taxAmount": 0}], "totalTaxAmount": 0}
    r = client.post("/payments/checkout", json=payload)
    assert r.status_code == 200
    items = processor.created[0]["line_items"]
    assert sum(i["price_data"]["unit_amount"] for i in items) == 10885

def test_checkout_invalid_body_is_400(client, cart_90210, processor):
    r = client.post("/payments/checkout", content=b"{not json", headers={"Content-Type": "application/json"})
    assert r.status_code == 400
    r = client.post("/payments/checkout", json={"totalTaxAmount": -1})
    assert r.status_code == 400
    assert processor.created == []

def test_checkout_empty_cart_is_400(client, store, seed_customer, processor):
    seed_customer([])
    r = client.post("/payments/checkout")
    assert r.status_code == 400
    assert r.json() == {"detail": "Le panier est vide"}

def test_checkout_deleted_listing_is_409(client, store, seed_customer, make_listing, make_cart_line, processor):
    store.listings["L1"] = make_listing("L1")
    seed_customer([make_cart_line("L1", 10), make_cart_line("DELETED", 10)])
    r = client.post("/payments/checkout")
    assert r.status_code == 409
    assert "DELETED" in r.json()["detail"]
    assert processor.created == []
    assert store.sessions == {}

def test_checkout_unknown_postal_code_is_400(client, store, seed_customer, make_listing, make_cart_line, processor):
    store.listings["L1"] = make_listing("L1", zip_code="00000")
    seed_customer([make_cart_line("L1", 10)])
    r = client.post("/payments/checkout")
    assert r.status_code == 400
    assert processor.created == []

def test_checkout_processor_down_is_502(client, cart_90210, processor):
    processor.fail_create = True
    r = client.post("/payments/checkout")
    assert r.status_code == 502
    assert cart_90210.sessions == {}

def test_checkout_persistence_failure_is_500_and_compensates(client, cart_90210, processor):
    cart_90210.fail_session_insert = True
    r = client.post("/payments/checkout")
    assert r.status_code == 500
    assert processor.expired == ["cs_test_1"]

def test_checkout_requires_customer_role(app, client, cart_90210, processor):
    from fastapi import HTTPException

    def _vendor():
        raise HTTPException(status_code=403, detail="Réservé aux clients")

    app.dependency_overrides[require_customer] = _vendor
    r = client.post("/payments/checkout")
    assert r.status_code == 403
    assert processor.created == []

def test_get_session_for_owner(client, cart_90210, processor):
    client.post("/payments/checkout")
    r = client.get("/payments/sessions/cs_test_1")
    assert r.status_code == 200
    body = r.json()
    assert body["status"] == "pending"
    assert body["subtotal"] == 100.0
    assert body["taxAmount"] == 8.85
    assert body["total"] == 108.85
    assert body["taxBreakdown"][0]["postalCode"] == "90210"

def test_get_session_unknown_or_foreign_is_404(client, store, processor):
    assert client.get("/payments/sessions/cs_nope").status_code == 404

def test_checkout_line_total_above_ceiling_is_400(client_no_raise, store, seed_customer, make_listing, make_cart_line, processor):
    store.listings["L1"] = make_listing("L1")
    seed_customer([make_cart_line("L1", "1e30")])
    r = client_no_raise.post("/payments/checkout")
    assert r.status_code == 400
    assert processor.created == []
    assert store.sessions == {}
