import logging
from typing import Any, Dict

from fastapi import APIRouter, Depends, HTTPException, Request
from fastapi.responses import JSONResponse
from pydantic import ValidationError
from starlette.concurrency import run_in_threadpool

from marketplace.utils.security import require_customer
from marketplace.utils.rate_limit import optional_rate_limit
from marketplace.payments import service as payments_service
from marketplace.payments import webhook as payments_webhook
from marketplace.payments.errors import InvalidCheckoutError
from marketplace.payments.models import CheckoutRequest, CheckoutSession

logger = logging.getLogger(__name__)
router = APIRouter(prefix="/payments", tags=["Payments API"])


def _session_payload(session: CheckoutSession) -> Dict[str, Any]:
    return {
        "sessionId": session.session_id,
        "status": session.status,
        "currency": session.currency,
        "subtotal": float(session.subtotal),
        "taxAmount": float(session.tax_amount),
        "total": float(session.total),
        "taxBreakdown": [
            {
                "postalCode": b.postal_code,
                "jurisdiction": b.jurisdiction,
                "rate": float(b.rate),
                "taxableAmount": float(b.taxable_amount),
                "taxAmount": float(b.tax_amount),
            }
            for b in session.tax_breakdown
        ],
        "lines": len(session.cart_snapshot),
        "createdAt": session.created_at.isoformat() if session.created_at else None,
        "completedAt": session.completed_at.isoformat() if session.completed_at else None,
    }

# module marketplace.payments.views
@router.post("/checkout", dependencies=[Depends(optional_rate_limit(times=10, seconds=60))])
async def create_checkout_session(request: Request, user: dict = Depends(require_customer)):
    """
    Crée une session Checkout Stripe pour le panier du client authentifié.
    - Entrée JSON (optionnelle): { "taxBreakdown": [...], "totalTaxAmount": 12.34 }
      La ventilation du client n'est qu'un indice, les montants sont recalculés côté serveur.
    - Sécurité: require_customer + rate limit (10 req / 60s)
    - Sortie: { "redirectUrl": "...", "sessionId": "cs_..." }
    - Erreurs: 400 panier vide/invalide, 409 panier obsolète, 502 Stripe indisponible
    """
    raw = await request.body()
    try:
        payload = CheckoutRequest.model_validate_json(raw) if raw.strip() else CheckoutRequest()
    except ValidationError as e:
        raise InvalidCheckoutError(f"Corps de requête invalide: {e.error_count()} erreur(s)") from e

    result = await run_in_threadpool(
        payments_service.create_checkout_session,
        user.get("id", ""),
        payload.tax_breakdown,
        payload.total_tax_amount,
    )
    return JSONResponse(result.model_dump(by_alias=True))

@router.post("/webhook", include_in_schema=False)
async def webhook_stripe(request: Request):
    """
    Webhook Stripe: le corps brut est lu tel quel (signature calculée sur les octets reçus).
    - 200 {"received": true} pour tout événement reconnu, dupliqué ou ignoré
    - 400 signature/payload invalide, 500 erreur interne (Stripe rejouera)
    """
    payload = await request.body()
    sig_header = request.headers.get("stripe-signature")
    outcome = await run_in_threadpool(payments_webhook.handle_webhook, payload, sig_header)
    logger.debug("payments.views.webhook outcome=%s", outcome.outcome)
    return JSONResponse({"received": True})

@router.get("/sessions/{session_id}")
def get_checkout_session(session_id: str, user: Dict[str, Any] = Depends(require_customer)) -> Dict[str, Any]:
    """
    Statut et totaux d'une session (page de confirmation de commande).
    - 404 si la session est inconnue ou appartient à un autre client
    """
    session = payments_service.get_session_for_customer(session_id, user.get("id", ""))
    if not session:
        raise HTTPException(status_code=404, detail="Session introuvable")
    return _session_payload(session)
