"""
Cas d'usage 'checkout': orchestre cart, tax, stripe_client, metadata et repository.
Snapshot du panier -> ventilation fiscale -> session Stripe -> enregistrement 'pending'.
"""
import logging
from decimal import Decimal, ROUND_HALF_UP
from typing import Any, Dict, List, Optional

from marketplace import config
from marketplace.payments import cart
from marketplace.payments import metadata as meta
from marketplace.payments import repository
from marketplace.payments import stripe_client
from marketplace.payments.errors import (
    CheckoutPersistenceError,
    InvalidCheckoutError,
    ProcessorUnavailableError,
)
from marketplace.payments.models import (
    CartSnapshot,
    CheckoutResult,
    CheckoutSession,
    TaxBreakdownItem,
)
from marketplace.tax import resolver

logger = logging.getLogger(__name__)

TAX_LINE_NAME = "Taxes"


def to_cents(amount: Decimal) -> int:
    return int((Decimal(str(amount)) * 100).to_integral_value(rounding=ROUND_HALF_UP))

def success_url() -> str:
    return f"{config.FRONTEND_URL}{config.CHECKOUT_SUCCESS_PATH}?session_id={{CHECKOUT_SESSION_ID}}"

def cancel_url() -> str:
    return f"{config.FRONTEND_URL}{config.CHECKOUT_CANCEL_PATH}"

# module marketplace.payments.service
def server_breakdown(snapshot: CartSnapshot) -> List[TaxBreakdownItem]:
    """Ventilation calculée par le serveur, une entrée par code postal."""
    return [
        TaxBreakdownItem(
            postal_code=e.postal_code,
            jurisdiction=e.jurisdiction,
            rate=e.rate,
            taxable_amount=e.taxable_amount,
            tax_amount=e.tax_amount,
        )
        for e in resolver.compute_breakdown(cart.taxable_lines(snapshot))
    ]

def client_breakdown_matches(
    client: Optional[List[TaxBreakdownItem]],
    client_total: Optional[Decimal],
    server: List[TaxBreakdownItem],
) -> bool:
    """
    Vrai si la ventilation envoyée par le client est cohérente avec celle du serveur:
    mêmes codes postaux, montants taxables, taux du résolveur, arrondis et total.
    """
    if client is None:
        return False
    by_code: Dict[str, TaxBreakdownItem] = {}
    for item in client:
        code = resolver.normalize_postal_code(item.postal_code)
        if not code or code in by_code:
            return False
        by_code[code] = item
    if set(by_code) != {s.postal_code for s in server}:
        return False
    for s in server:
        c = by_code[s.postal_code]
        if Decimal(str(c.rate)) != s.rate:
            return False
        if resolver.to_money(c.taxable_amount) != s.taxable_amount:
            return False
        if resolver.to_money(c.tax_amount) != s.tax_amount:
            return False
    if client_total is not None:
        if resolver.to_money(client_total) != resolver.to_money(sum((s.tax_amount for s in server), Decimal("0"))):
            return False
    return True

def resolve_breakdown(
    snapshot: CartSnapshot,
    client: Optional[List[TaxBreakdownItem]] = None,
    client_total: Optional[Decimal] = None,
) -> List[TaxBreakdownItem]:
    """
    Retourne la ventilation retenue pour les montants facturés.
    La proposition du client n'est qu'un indice: incohérente, elle est ignorée (log).
    """
    server = server_breakdown(snapshot)
    if client is None and client_total is None:
        return server
    if client_breakdown_matches(client, client_total, server):
        return server
    logger.warning(
        "payments.service.resolve_breakdown client breakdown ignored customer_id=%s client=%s",
        snapshot.customer_id,
        [c.model_dump(mode="json") for c in client or []],
    )
    return server

def build_line_items(snapshot: CartSnapshot, tax_amount: Decimal, currency: str) -> List[Dict[str, Any]]:
    """
    Une ligne Stripe par ligne de panier (quantité 1, montant figé), plus une ligne "Taxes" si > 0.
    """
    items: List[Dict[str, Any]] = []
    for line in snapshot.lines:
        product: Dict[str, Any] = {"name": line.display.name or line.listing_id}
        if line.display.description:
            product["description"] = line.display.description
        items.append({
            "quantity": 1,
            "price_data": {
                "currency": currency,
                "unit_amount": to_cents(line.line_total),
                "product_data": product,
            },
        })
    if tax_amount > 0:
        items.append({
            "quantity": 1,
            "price_data": {
                "currency": currency,
                "unit_amount": to_cents(tax_amount),
                "product_data": {"name": TAX_LINE_NAME},
            },
        })
    return items

def _compensate(processor, session_id: str) -> None:
    try:
        processor.expire_checkout_session(session_id)
        logger.info("payments.service compensation expired session_id=%s", session_id)
    except Exception:
        logger.exception(
            "payments.service compensation failed session_id=%s (left for reconciliation)", session_id
        )

def create_checkout_session(
    customer_id: str,
    tax_breakdown: Optional[List[TaxBreakdownItem]] = None,
    total_tax_amount: Optional[Decimal] = None,
) -> CheckoutResult:
    """
    Crée la session de paiement pour le panier du client.
    - Erreurs avant écriture: aucune trace (ni Stripe, ni base)
    - Échec Stripe: ProcessorUnavailableError (502), rien n'est enregistré
    - Échec d'enregistrement local: la session Stripe est expirée puis CheckoutPersistenceError (500)
    """
    if not customer_id:
        raise InvalidCheckoutError("Client inconnu")

    snapshot = cart.build_cart_snapshot(customer_id)
    breakdown = resolve_breakdown(snapshot, tax_breakdown, total_tax_amount)
    tax_amount = resolver.to_money(sum((b.tax_amount for b in breakdown), Decimal("0")))
    total = resolver.calculate_total(snapshot.subtotal, [tax_amount])
    currency = config.STRIPE_CURRENCY

    processor = stripe_client.get_processor()
    stripe_session = processor.create_checkout_session(
        line_items=build_line_items(snapshot, tax_amount, currency),
        success_url=success_url(),
        cancel_url=cancel_url(),
        metadata=meta.build_metadata(customer_id, tax_amount, breakdown),
        client_reference_id=customer_id,
    )
    session_id = (stripe_session or {}).get("id")
    redirect_url = (stripe_session or {}).get("url")
    if not session_id or not redirect_url:
        raise ProcessorUnavailableError("Session Stripe invalide")

    record = CheckoutSession(
        session_id=session_id,
        customer_id=customer_id,
        currency=currency,
        subtotal=snapshot.subtotal,
        tax_amount=tax_amount,
        tax_breakdown=breakdown,
        total=total,
        status="pending",
        cart_snapshot=snapshot.lines,
    )
    try:
        repository.insert_checkout_session(record)
    except Exception as e:
        _compensate(processor, session_id)
        raise CheckoutPersistenceError() from e

    logger.info(
        "payments.checkout created session_id=%s customer_id=%s lines=%s subtotal=%s tax=%s total=%s",
        session_id, customer_id, len(snapshot.lines), snapshot.subtotal, tax_amount, total,
    )
    return CheckoutResult(redirect_url=redirect_url, session_id=session_id)

def get_session_for_customer(session_id: str, customer_id: str) -> Optional[CheckoutSession]:
    """Session du client (None si inconnue ou appartenant à un autre client)."""
    session = repository.get_checkout_session(session_id)
    if not session or session.customer_id != customer_id:
        return None
    return session
