"""
Métadonnées Stripe associées à une session de checkout.
Stripe limite à 50 clés et 500 caractères par valeur: en cas de dépassement,
les champs sont retirés entiers (jamais tronqués), du moins au plus essentiel.
"""
import logging
from decimal import Decimal
from typing import Any, Dict, Iterable, Optional

from marketplace import config
from marketplace.payments.models import TaxBreakdownItem

logger = logging.getLogger(__name__)

CUSTOMER_ID_KEY = "customer_id"
# Ordre de retrait en cas de dépassement
DROPPABLE_KEYS = ("tax_rates", "tax_amount")


def _format_rate(rate: Decimal) -> str:
    return format(Decimal(str(rate)).normalize(), "f")

# module marketplace.payments.metadata
def format_tax_rates(breakdown: Iterable[TaxBreakdownItem]) -> str:
    """Ex: "90210:8.85;19901:0"."""
    return ";".join(f"{e.postal_code}:{_format_rate(e.rate)}" for e in breakdown)

def parse_tax_rates(value: Optional[str]) -> Dict[str, Decimal]:
    rates: Dict[str, Decimal] = {}
    for part in (value or "").split(";"):
        code, sep, rate = part.partition(":")
        if not sep:
            continue
        try:
            rates[code] = Decimal(rate)
        except Exception:
            continue
    return rates

def _fits(metadata: Dict[str, str]) -> bool:
    if len(metadata) > config.STRIPE_METADATA_MAX_KEYS:
        return False
    return all(len(v) <= config.STRIPE_METADATA_MAX_VALUE_LENGTH for v in metadata.values())

def build_metadata(
    customer_id: str,
    tax_amount: Decimal,
    breakdown: Iterable[TaxBreakdownItem],
) -> Dict[str, str]:
    """
    Construit {customer_id, tax_amount, tax_rates} en respectant les limites Stripe.
    - customer_id n'est jamais retiré
    - ValueError si customer_id seul dépasse la limite
    """
    metadata: Dict[str, str] = {
        CUSTOMER_ID_KEY: str(customer_id),
        "tax_amount": str(tax_amount),
        "tax_rates": format_tax_rates(breakdown),
    }
    for key in DROPPABLE_KEYS:
        if _fits(metadata):
            break
        logger.info("payments.metadata dropping key=%s length=%s", key, len(metadata[key]))
        metadata.pop(key)
    if not _fits(metadata):
        raise ValueError("customer_id dépasse la limite de taille des métadonnées Stripe")
    return metadata

def extract_customer_id(session_object: Dict[str, Any]) -> Optional[str]:
    """customer_id depuis metadata, sinon client_reference_id."""
    meta = (session_object or {}).get("metadata") or {}
    return meta.get(CUSTOMER_ID_KEY) or (session_object or {}).get("client_reference_id")
