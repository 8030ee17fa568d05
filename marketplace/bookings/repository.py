"""
Accès aux données pour la feature 'bookings' (table 'bookings').
"""
import logging
from typing import List

import marketplace.infra.supabase_client as supabase_client
from marketplace.bookings.models import Booking

logger = logging.getLogger(__name__)

# Contrainte unique côté base: une ligne de session ne devient qu'une réservation
BOOKING_CONFLICT_KEY = "checkout_session_id,line_index"

# module marketplace.bookings.repository
def insert_bookings(bookings: List[Booking]) -> List[dict]:
    """
    Écrit toutes les réservations d'une session en une seule requête.
    Les doublons (rejeu) sont ignorés; lève en cas d'échec.
    """
    if not bookings:
        return []
    rows = [b.to_row() for b in bookings]
    try:
        res = (
            supabase_client.get_service_supabase()
            .table("bookings")
            .upsert(rows, on_conflict=BOOKING_CONFLICT_KEY, ignore_duplicates=True)
            .execute()
        )
    except Exception:
        logger.exception(
            "bookings.repository.insert_bookings failed session_id=%s count=%s",
            bookings[0].checkout_session_id, len(rows),
        )
        raise
    return res.data or []
