from decimal import Decimal

import pytest

from marketplace.payments import service
from marketplace.payments.errors import (
    CheckoutPersistenceError,
    EmptyCartError,
    ListingMissingError,
    ProcessorNotConfiguredError,
    ProcessorUnavailableError,
)
from marketplace.payments.models import TaxBreakdownItem
from marketplace import config
from marketplace.payments import stripe_client

CUSTOMER = "cust-1"


@pytest.fixture()
def two_state_cart(store, seed_customer, make_listing, make_cart_line):
    store.listings["CA"] = make_listing("CA", zip_code="90210", name="Beverly Hall")
    store.listings["DE"] = make_listing("DE", zip_code="19901", name="Dover Barn")
    seed_customer([make_cart_line("CA", "100.00", line_id="l1"), make_cart_line("DE", "50.00", line_id="l2")])
    return store


def _client_item(code, rate, taxable, tax):
    return TaxBreakdownItem(postal_code=code, jurisdiction="", rate=Decimal(rate),
                            taxable_amount=Decimal(taxable), tax_amount=Decimal(tax))

def test_to_cents():
    assert service.to_cents(Decimal("8.85")) == 885
    assert service.to_cents(Decimal("0.00")) == 0
    assert service.to_cents(Decimal("1234.5")) == 123450

def test_create_checkout_session_persists_pending_record(two_state_cart, processor):
    result = service.create_checkout_session(CUSTOMER)

    assert result.session_id == "cs_test_1"
    assert result.redirect_url.endswith("cs_test_1")
    row = two_state_cart.sessions["cs_test_1"]
    assert row["status"] == "pending"
    assert row["customer_id"] == CUSTOMER
    assert Decimal(row["subtotal"]) == Decimal("150.00")
    assert Decimal(row["tax_amount"]) == Decimal("8.85")
    assert Decimal(row["total"]) == Decimal("158.85")
    assert [b["postal_code"] for b in row["tax_breakdown"]] == ["90210", "19901"]
    assert [l["cart_line_id"] for l in row["cart_snapshot"]] == ["l1", "l2"]
    assert row["payment_intent_id"] is None

def test_line_items_and_metadata_sent_to_processor(two_state_cart, processor):
    service.create_checkout_session(CUSTOMER)
    call = processor.created[0]

    items = call["line_items"]
    assert len(items) == 3
    assert items[0]["quantity"] == 1
    assert items[0]["price_data"]["unit_amount"] == 10000
    assert items[0]["price_data"]["currency"] == "usd"
    assert items[0]["price_data"]["product_data"] == {"name": "Beverly Hall", "description": "Gold"}
    assert items[2]["price_data"]["product_data"]["name"] == service.TAX_LINE_NAME
    assert items[2]["price_data"]["unit_amount"] == 885
    assert sum(i["price_data"]["unit_amount"] for i in items) == 15885

    assert call["metadata"] == {"customer_id": CUSTOMER, "tax_amount": "8.85", "tax_rates": "90210:8.85;19901:0"}
    assert call["client_reference_id"] == CUSTOMER
    assert call["success_url"] == "http://localhost:3000/order-confirmation?session_id={CHECKOUT_SESSION_ID}"
    assert call["cancel_url"] == "http://localhost:3000/checkout"

def test_no_tax_line_when_tax_is_zero(store, seed_customer, make_listing, make_cart_line, processor):
    store.listings["DE"] = make_listing("DE", zip_code="19901")
    seed_customer([make_cart_line("DE", "50.00")])
    service.create_checkout_session(CUSTOMER)
    items = processor.created[0]["line_items"]
    assert len(items) == 1

def test_consistent_client_breakdown_is_accepted(two_state_cart, processor, caplog):
    client = [_client_item("90210", "8.85", "100.00", "8.85"), _client_item("19901", "0", "50", "0")]
    service.create_checkout_session(CUSTOMER, client, Decimal("8.85"))
    assert "client breakdown ignored" not in caplog.text
    assert Decimal(two_state_cart.sessions["cs_test_1"]["tax_amount"]) == Decimal("8.85")

@pytest.mark.parametrize("client,total", [
    ([_client_item("90210", "0", "100.00", "0"), _client_item("19901", "0", "50", "0")], Decimal("0")),
    ([_client_item("90210", "8.85", "100.00", "8.85")], Decimal("8.85")),
    ([_client_item("90210", "8.85", "10.00", "0.89"), _client_item("19901", "0", "50", "0")], Decimal("0.89")),
    ([_client_item("90210", "8.85", "100.00", "8.85"), _client_item("19901", "0", "50", "0")], Decimal("1.00")),
    ([_client_item("90210", "8.85", "100.00", "8.85"), _client_item("90210", "8.85", "100.00", "8.85")], None),
])
def test_inconsistent_client_breakdown_is_ignored(two_state_cart, processor, client, total):
    service.create_checkout_session(CUSTOMER, client, total)
    row = two_state_cart.sessions["cs_test_1"]
    assert Decimal(row["tax_amount"]) == Decimal("8.85")
    assert Decimal(row["total"]) == Decimal("158.85")

def test_empty_cart_creates_nothing(store, seed_customer, processor):
    seed_customer([])
    with pytest.raises(EmptyCartError):
        service.create_checkout_session(CUSTOMER)
    assert processor.created == []
    assert store.sessions == {}

def test_missing_listing_creates_nothing(store, seed_customer, make_listing, make_cart_line, processor):
    store.listings["L1"] = make_listing("L1")
    seed_customer([make_cart_line("L1", 10), make_cart_line("GONE", 10)])
    with pytest.raises(ListingMissingError):
        service.create_checkout_session(CUSTOMER)
    assert processor.created == []
    assert store.sessions == {}

def test_processor_failure_persists_nothing(two_state_cart, processor):
    processor.fail_create = True
    with pytest.raises(ProcessorUnavailableError) as exc:
        service.create_checkout_session(CUSTOMER)
    assert exc.value.status_code == 502
    assert two_state_cart.sessions == {}

def test_persistence_failure_expires_processor_session(two_state_cart, processor):
    two_state_cart.fail_session_insert = True
    with pytest.raises(CheckoutPersistenceError) as exc:
        service.create_checkout_session(CUSTOMER)
    assert exc.value.status_code == 500
    assert processor.expired == ["cs_test_1"]

def test_persistence_failure_with_failed_compensation_still_raises(two_state_cart, processor, caplog):
    two_state_cart.fail_session_insert = True
    processor.fail_expire = True
    with pytest.raises(CheckoutPersistenceError):
        service.create_checkout_session(CUSTOMER)
    assert "left for reconciliation" in caplog.text

def test_missing_stripe_key_is_not_configured(two_state_cart, monkeypatch):
    monkeypatch.setattr(config, "STRIPE_SECRET_KEY", "")
    stripe_client.reset_processor()
    with pytest.raises(ProcessorNotConfiguredError) as exc:
        service.create_checkout_session(CUSTOMER)
    assert exc.value.status_code == 500

def test_get_session_for_customer_checks_owner(two_state_cart, processor):
    service.create_checkout_session(CUSTOMER)
    assert service.get_session_for_customer("cs_test_1", CUSTOMER).session_id == "cs_test_1"
    assert service.get_session_for_customer("cs_test_1", "someone-else") is None
    assert service.get_session_for_customer("cs_unknown", CUSTOMER) is None
