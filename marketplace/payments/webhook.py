"""
Traitement des webhooks Stripe (livraison au moins une fois, ordre non garanti).
- Signature vérifiée sur le corps brut AVANT tout parsing JSON
- Transitions pending -> completed / pending -> expired par UPDATE conditionnel
- Seul le gagnant de la transition matérialise les réservations
"""
import json
import logging
from typing import Any, Dict, Optional

from marketplace import config
from marketplace.bookings import materializer
from marketplace.payments import repository
from marketplace.payments import stripe_client
from marketplace.payments.errors import ProcessorNotConfiguredError, WebhookPayloadError
from marketplace.payments.models import WebhookOutcome

logger = logging.getLogger(__name__)

COMPLETION_EVENTS = {"checkout.session.completed", "checkout.session.async_payment_succeeded"}
EXPIRY_EVENTS = {"checkout.session.expired"}
PAID_STATUSES = {"paid", "no_payment_required"}


def parse_event(payload: bytes) -> Dict[str, Any]:
    try:
        event = json.loads(payload)
    except (ValueError, UnicodeDecodeError) as e:
        raise WebhookPayloadError() from e
    if not isinstance(event, dict):
        raise WebhookPayloadError()
    return event

def _session_object(event: Dict[str, Any]) -> Dict[str, Any]:
    obj = (event.get("data") or {}).get("object") or {}
    return obj if isinstance(obj, dict) else {}

def _payment_intent_id(session_object: Dict[str, Any]) -> Optional[str]:
    pi = session_object.get("payment_intent")
    if isinstance(pi, dict):
        return pi.get("id")
    return pi or None

def _outcome_after_lost_transition(session_id: str, event_type: str) -> WebhookOutcome:
    current = repository.get_checkout_session(session_id)
    if current is None:
        logger.warning("payments.webhook unknown session type=%s session_id=%s", event_type, session_id)
        return WebhookOutcome(outcome="unknown_session", event_type=event_type, session_id=session_id)
    logger.debug(
        "payments.webhook duplicate type=%s session_id=%s status=%s", event_type, session_id, current.status
    )
    return WebhookOutcome(outcome="duplicate", event_type=event_type, session_id=session_id)

# module marketplace.payments.webhook
def handle_completed(event_type: str, session_object: Dict[str, Any]) -> WebhookOutcome:
    session_id = session_object.get("id")
    payment_status = session_object.get("payment_status")
    if payment_status not in PAID_STATUSES:
        logger.info(
            "payments.webhook payment not settled type=%s session_id=%s payment_status=%s",
            event_type, session_id, payment_status,
        )
        return WebhookOutcome(outcome="payment_pending", event_type=event_type, session_id=session_id)

    won = repository.mark_completed(session_id, _payment_intent_id(session_object))
    if won is None:
        return _outcome_after_lost_transition(session_id, event_type)

    bookings = materializer.materialize(won)
    return WebhookOutcome(
        outcome="completed",
        event_type=event_type,
        session_id=session_id,
        bookings_created=len(bookings),
    )

def handle_expired(event_type: str, session_object: Dict[str, Any]) -> WebhookOutcome:
    session_id = session_object.get("id")
    won = repository.mark_expired(session_id)
    if won is None:
        return _outcome_after_lost_transition(session_id, event_type)
    logger.info("payments.webhook session expired session_id=%s", session_id)
    return WebhookOutcome(outcome="expired", event_type=event_type, session_id=session_id)

def handle_webhook(payload: bytes, signature_header: Optional[str]) -> WebhookOutcome:
    """
    Point d'entrée du webhook.
    - ProcessorNotConfiguredError (500) si STRIPE_WEBHOOK_SECRET est absent
    - WebhookSignatureError (400) si la signature est invalide: aucun changement d'état
    - WebhookPayloadError (400) si le corps signé n'est pas un événement JSON
    """
    secret = config.STRIPE_WEBHOOK_SECRET
    if not secret:
        logger.error("payments.webhook STRIPE_WEBHOOK_SECRET not configured")
        raise ProcessorNotConfiguredError("STRIPE_WEBHOOK_SECRET manquant")

    try:
        stripe_client.verify_webhook(payload, signature_header, secret, config.STRIPE_WEBHOOK_TOLERANCE)
    except Exception:
        logger.warning("payments.webhook signature rejected (possible forged request) length=%s", len(payload or b""))
        raise

    event = parse_event(payload)
    event_type = str(event.get("type") or "")
    session_object = _session_object(event)

    if event_type in COMPLETION_EVENTS or event_type in EXPIRY_EVENTS:
        if not session_object.get("id"):
            raise WebhookPayloadError("Session absente de l'événement")

    if event_type in COMPLETION_EVENTS:
        outcome = handle_completed(event_type, session_object)
    elif event_type in EXPIRY_EVENTS:
        outcome = handle_expired(event_type, session_object)
    else:
        outcome = WebhookOutcome(outcome="ignored", event_type=event_type)

    logger.info(
        "payments.webhook outcome=%s type=%s session_id=%s bookings=%s",
        outcome.outcome, event_type, outcome.session_id, outcome.bookings_created,
    )
    return outcome
