"""
Accès aux données pour la feature 'payments' (table 'checkout_sessions').
Les transitions de statut sont des UPDATE conditionnels (compare-and-set):
seul l'appelant dont la mise à jour touche une ligne a gagné la transition.
"""
import logging
from datetime import datetime, timezone
from typing import Any, Dict, Iterable, Optional, Set

import marketplace.infra.supabase_client as supabase_client
from marketplace.payments.models import CheckoutSession

logger = logging.getLogger(__name__)

TABLE = "checkout_sessions"

def _now_iso() -> str:
    return datetime.now(timezone.utc).isoformat()

def _table():
    return supabase_client.get_service_supabase().table(TABLE)

# module marketplace.payments.repository
def insert_checkout_session(session: CheckoutSession) -> CheckoutSession:
    """Insère la session 'pending' avec son snapshot complet; lève en cas d'échec."""
    row = session.to_row()
    if not row.get("created_at"):
        row["created_at"] = _now_iso()
    try:
        res = _table().insert(row).execute()
    except Exception:
        logger.exception("payments.repository.insert_checkout_session failed session_id=%s", session.session_id)
        raise
    rows = res.data or []
    return CheckoutSession.model_validate(rows[0]) if rows else session

def get_checkout_session(session_id: str) -> Optional[CheckoutSession]:
    try:
        res = _table().select("*").eq("session_id", session_id).limit(1).execute()
    except Exception:
        logger.exception("payments.repository.get_checkout_session failed session_id=%s", session_id)
        raise
    rows = res.data or []
    return CheckoutSession.model_validate(rows[0]) if rows else None

def transition_status(
    session_id: str,
    from_status: str,
    to_status: str,
    extra: Optional[Dict[str, Any]] = None,
) -> Optional[CheckoutSession]:
    """
    UPDATE checkout_sessions SET status=to_status WHERE session_id=? AND status=from_status.
    Retourne la session mise à jour si cet appel a gagné la transition, sinon None.
    """
    values: Dict[str, Any] = {"status": to_status}
    values.update(extra or {})
    try:
        res = (
            _table()
            .update(values)
            .eq("session_id", session_id)
            .eq("status", from_status)
            .execute()
        )
    except Exception:
        logger.exception(
            "payments.repository.transition_status failed session_id=%s %s->%s",
            session_id, from_status, to_status,
        )
        raise
    rows = res.data or []
    return CheckoutSession.model_validate(rows[0]) if rows else None

def mark_completed(session_id: str, payment_intent_id: Optional[str]) -> Optional[CheckoutSession]:
    return transition_status(
        session_id,
        "pending",
        "completed",
        {"payment_intent_id": payment_intent_id, "completed_at": _now_iso()},
    )

def mark_expired(session_id: str) -> Optional[CheckoutSession]:
    return transition_status(session_id, "pending", "expired", {"expired_at": _now_iso()})

def release_completed(session_id: str) -> Optional[CheckoutSession]:
    """Rend la session à 'pending' quand la matérialisation n'a pas pu aboutir."""
    return transition_status(
        session_id,
        "completed",
        "pending",
        {"payment_intent_id": None, "completed_at": None},
    )

def existing_session_ids(session_ids: Iterable[str]) -> Set[str]:
    ids = sorted({str(s) for s in session_ids if s})
    if not ids:
        return set()
    res = _table().select("session_id").in_("session_id", ids).execute()
    return {str(r.get("session_id")) for r in res.data or []}
