"""
Construction du snapshot de panier (pas de Stripe).
- Lit le panier courant et les annonces en lot
- Échoue en bloc (aucun checkout partiel) si une annonce ou une offre a disparu
- Le total de ligne est celui figé à l'ajout au panier: jamais recalculé ici
"""
import logging
from datetime import date
from decimal import Decimal
from typing import Any, Dict, List, Optional, Tuple

from pydantic import BaseModel, Field, ValidationError

from marketplace.catalog import repository as catalog_repository
from marketplace.customers import repository as customers_repository
from marketplace.payments.errors import (
    EmptyCartError,
    InvalidCheckoutError,
    ListingMissingError,
    PricingOptionUnavailableError,
)
from marketplace.payments.models import (
    EVENT_TIME_PATTERN,
    CartSnapshot,
    LineDisplay,
    LineSnapshot,
    ListingSnapshot,
    PricingOptionKind,
    PricingOptionSnapshot,
)
from marketplace.tax.resolver import MAX_AMOUNT, ZERO_MONEY, to_money

logger = logging.getLogger(__name__)

FLAT_PRICE_LABEL = "Flat price"


class CartLine(BaseModel):
    """Ligne brute de users.customer_cart."""
    id: str = Field(min_length=1)
    listing_id: str = Field(min_length=1)
    pricing_option_id: Optional[str] = None
    pricing_option_kind: PricingOptionKind
    event_date: date
    event_time: str = Field(pattern=EVENT_TIME_PATTERN)
    attendees: int = Field(ge=1)
    total_price: Decimal = Field(ge=0, le=MAX_AMOUNT)
    added_at: Optional[str] = None


# module marketplace.payments.cart
def parse_cart_lines(raw_lines: List[Dict[str, Any]]) -> List[CartLine]:
    """
    Valide les lignes brutes du panier.
    - EmptyCartError si le panier est vide
    - InvalidCheckoutError si une ligne est malformée (annonce manquante, date invalide...)
    """
    if not raw_lines:
        raise EmptyCartError()
    lines: List[CartLine] = []
    for index, raw in enumerate(raw_lines):
        try:
            lines.append(CartLine.model_validate(raw or {}))
        except ValidationError as e:
            logger.warning("payments.cart.parse_cart_lines invalid line index=%s errors=%s", index, e.errors())
            raise InvalidCheckoutError(f"Ligne de panier invalide (position {index})") from e
    return lines

def resolve_pricing_option(
    listing: Dict[str, Any], line: CartLine, customer_id: str
) -> Optional[PricingOptionSnapshot]:
    """
    Résout l'offre référencée par la ligne, ou None si elle n'est plus disponible.
    - package: offre du catalogue active
    - custom_package: émise pour CE client et active
    - flat_price: tarif forfaitaire actif de l'annonce
    """
    kind = line.pricing_option_kind
    if kind == "package":
        p = catalog_repository.find_package(listing, line.pricing_option_id)
        if not p or p.get("is_active") is False:
            return None
    elif kind == "custom_package":
        p = catalog_repository.find_custom_package(listing, line.pricing_option_id)
        if not p or p.get("is_active") is False:
            return None
        if str(p.get("created_for") or "") != str(customer_id):
            return None
    else:
        flat = listing.get("flat_price") or {}
        if not flat.get("is_active") or flat.get("amount") is None:
            return None
        return PricingOptionSnapshot(
            name=FLAT_PRICE_LABEL,
            description="",
            price=to_money(flat.get("amount")),
            kind="flat_price",
        )
    return PricingOptionSnapshot(
        name=p.get("name") or "",
        description=p.get("description") or "",
        price=to_money(p.get("price") or 0),
        kind=kind,
    )

def listing_postal_code(listing: Dict[str, Any]) -> str:
    return str((listing.get("location") or {}).get("zip_code") or "")

def snapshot_line(
    line: CartLine,
    listing: Dict[str, Any],
    option: PricingOptionSnapshot,
    vendor_name: Optional[str],
) -> LineSnapshot:
    listing_name = listing.get("name") or ""
    return LineSnapshot(
        cart_line_id=line.id,
        listing_id=line.listing_id,
        vendor_id=str(listing.get("vendor_id") or ""),
        pricing_option_id=line.pricing_option_id,
        pricing_option_kind=line.pricing_option_kind,
        event_date=line.event_date,
        event_time=line.event_time,
        attendees=line.attendees,
        line_total=to_money(line.total_price),
        postal_code=listing_postal_code(listing),
        display=LineDisplay(name=listing_name, description=option.name),
        vendor_name=vendor_name,
        pricing_option=option,
        listing=ListingSnapshot(
            name=listing_name,
            location=listing.get("location") or {},
            image_url=catalog_repository.first_image_url(listing),
            vendor_business_name=vendor_name,
        ),
    )

def build_cart_snapshot(customer_id: str) -> CartSnapshot:
    """
    Construit le snapshot immuable du panier et son sous-total.
    Erreurs: EmptyCartError/InvalidCheckoutError (400), ListingMissingError/PricingOptionUnavailableError (409).
    """
    lines = parse_cart_lines(customers_repository.get_cart(customer_id))

    listings = catalog_repository.get_listings_map([l.listing_id for l in lines])
    resolved: List[Tuple[CartLine, Dict[str, Any], PricingOptionSnapshot]] = []
    for line in lines:
        listing = listings.get(line.listing_id)
        if not listing:
            logger.warning(
                "payments.cart.build_cart_snapshot listing missing customer_id=%s listing_id=%s",
                customer_id, line.listing_id,
            )
            raise ListingMissingError(line.listing_id)
        option = resolve_pricing_option(listing, line, customer_id)
        if option is None:
            logger.warning(
                "payments.cart.build_cart_snapshot option unavailable customer_id=%s listing_id=%s option_id=%s",
                customer_id, line.listing_id, line.pricing_option_id,
            )
            raise PricingOptionUnavailableError(line.listing_id, line.pricing_option_id)
        resolved.append((line, listing, option))

    vendor_names = customers_repository.get_vendor_names(
        str(listing.get("vendor_id") or "") for _, listing, _ in resolved
    )
    snapshots = [
        snapshot_line(line, listing, option, vendor_names.get(str(listing.get("vendor_id") or "")))
        for line, listing, option in resolved
    ]
    subtotal = sum((s.line_total for s in snapshots), ZERO_MONEY)
    return CartSnapshot(customer_id=customer_id, lines=snapshots, subtotal=to_money(subtotal))

def taxable_lines(snapshot: CartSnapshot) -> List[Tuple[str, Decimal]]:
    """[(postal_code, line_total), ...] dans l'ordre du panier."""
    return [(line.postal_code, line.line_total) for line in snapshot.lines]
