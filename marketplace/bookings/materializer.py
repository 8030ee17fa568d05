"""
Matérialisation des réservations d'une session de checkout complétée.

- Champs figés (snapshot uniquement): offre, type, prix, date/heure, invités, prestataire
- Champs rafraîchis (relus, snapshot en secours): nom/lieu/image de l'annonce, nom commercial
- Une écriture pour toutes les réservations (clé unique session + index de ligne)
- Nettoyage du panier puis email: best-effort, jamais bloquants
"""
import logging
from datetime import datetime, timezone
from typing import Any, Dict, List, Optional

from marketplace.bookings import repository as bookings_repository
from marketplace.bookings.models import Booking, BookingPayment, CustomerSnapshot
from marketplace.catalog import repository as catalog_repository
from marketplace.customers import repository as customers_repository
from marketplace.notifications import email_service
from marketplace.payments import repository as payments_repository
from marketplace.payments.models import CheckoutSession, LineSnapshot, ListingSnapshot

logger = logging.getLogger(__name__)

FROZEN_FIELDS = (
    "vendor_id",
    "pricing_option_id",
    "pricing_option_kind",
    "event_date",
    "event_time",
    "attendees",
    "total_price",
    "pricing_option_snapshot",
)
REFRESHABLE_FIELDS = ("name", "location", "image_url", "vendor_business_name")


def refreshed_listing_snapshot(
    line: LineSnapshot,
    listing: Optional[Dict[str, Any]],
    vendor_name: Optional[str],
) -> ListingSnapshot:
    """Valeurs d'affichage actuelles, ou celles du snapshot si la source a disparu."""
    fallback = line.listing
    if not listing:
        return ListingSnapshot(
            name=fallback.name,
            location=fallback.location,
            image_url=fallback.image_url,
            vendor_business_name=vendor_name or fallback.vendor_business_name,
        )
    return ListingSnapshot(
        name=listing.get("name") or fallback.name,
        location=listing.get("location") or fallback.location,
        image_url=catalog_repository.first_image_url(listing) or fallback.image_url,
        vendor_business_name=vendor_name or fallback.vendor_business_name,
    )

def build_bookings(
    session: CheckoutSession,
    customer: Optional[Dict[str, Any]],
    listings: Dict[str, Dict[str, Any]],
    vendor_names: Dict[str, str],
) -> List[Booking]:
    booked_at = datetime.now(timezone.utc)
    customer_snapshot = CustomerSnapshot(**customers_repository.contact_snapshot(customer))
    bookings: List[Booking] = []
    for index, line in enumerate(session.cart_snapshot):
        bookings.append(
            Booking(
                customer_id=session.customer_id,
                vendor_id=line.vendor_id,
                listing_id=line.listing_id,
                pricing_option_id=line.pricing_option_id,
                pricing_option_kind=line.pricing_option_kind,
                event_date=line.event_date,
                event_time=line.event_time,
                attendees=line.attendees,
                total_price=line.line_total,
                status="Confirmed",
                payment=BookingPayment(
                    session_id=session.session_id,
                    payment_intent_id=session.payment_intent_id,
                    currency=session.currency,
                    amount_paid=line.line_total,
                ),
                customer_snapshot=customer_snapshot,
                listing_snapshot=refreshed_listing_snapshot(
                    line, listings.get(line.listing_id), vendor_names.get(line.vendor_id)
                ),
                pricing_option_snapshot=line.pricing_option,
                checkout_session_id=session.session_id,
                line_index=index,
                booked_at=booked_at,
            )
        )
    return bookings

def _load_customer(customer_id: str) -> Optional[Dict[str, Any]]:
    try:
        return customers_repository.get_user_by_id(customer_id)
    except Exception:
        logger.exception("bookings.materializer customer lookup failed customer_id=%s", customer_id)
        return None

# module marketplace.bookings.materializer
def materialize(session: CheckoutSession) -> List[Booking]:
    """
    Crée une réservation par ligne du snapshot de la session.
    Si l'écriture échoue, la session est rendue à 'pending' et l'erreur propagée
    (réponse 500, Stripe rejouera l'événement).
    """
    customer = _load_customer(session.customer_id)
    listings = catalog_repository.find_listings_map(l.listing_id for l in session.cart_snapshot)
    vendor_names = customers_repository.get_vendor_names(l.vendor_id for l in session.cart_snapshot)
    bookings = build_bookings(session, customer, listings, vendor_names)

    try:
        bookings_repository.insert_bookings(bookings)
    except Exception:
        logger.error("bookings.materializer write failed, releasing session_id=%s", session.session_id)
        try:
            payments_repository.release_completed(session.session_id)
        except Exception:
            logger.exception("bookings.materializer release failed session_id=%s", session.session_id)
        raise

    logger.info(
        "bookings.materializer created=%s session_id=%s customer_id=%s",
        len(bookings), session.session_id, session.customer_id,
    )

    try:
        removed = customers_repository.remove_cart_lines(
            session.customer_id, [l.cart_line_id for l in session.cart_snapshot]
        )
        logger.info("bookings.materializer cart cleared removed=%s customer_id=%s", removed, session.customer_id)
    except Exception:
        logger.exception("bookings.materializer cart cleanup failed customer_id=%s", session.customer_id)

    try:
        result = email_service.send_booking_confirmation(
            recipient_email=(customer or {}).get("email") or "",
            customer_name=(customer or {}).get("full_name") or "",
            bookings=bookings,
            total=str(session.total),
            currency=session.currency,
        )
        logger.info("bookings.materializer email status=%s session_id=%s", result.status, session.session_id)
    except Exception:
        logger.exception("bookings.materializer email failed session_id=%s", session.session_id)

    return bookings
