"""
Adaptateur Stripe: centralise les appels et la configuration Stripe.
- PaymentProcessor: interface consommée par le service (substituable en tests via set_processor)
- StripeProcessor: implémentation SDK, clé API passée à chaque requête
- verify_webhook: vérification de signature sur le corps brut
"""
import logging
from typing import Any, Dict, Iterator, List, Optional, Protocol

import stripe

from marketplace import config
from marketplace.payments.errors import (
    ProcessorNotConfiguredError,
    ProcessorUnavailableError,
    WebhookSignatureError,
)

logger = logging.getLogger(__name__)


class PaymentProcessor(Protocol):
    def create_checkout_session(
        self,
        *,
        line_items: List[Dict[str, Any]],
        success_url: str,
        cancel_url: str,
        metadata: Dict[str, str],
        client_reference_id: str,
    ) -> Dict[str, Any]:
        ...

    def expire_checkout_session(self, session_id: str) -> None:
        ...

    def list_checkout_sessions(self, *, created_after: int) -> Iterator[Dict[str, Any]]:
        ...


class StripeProcessor:
    def __init__(self, api_key: str):
        self.api_key = api_key

    def create_checkout_session(
        self,
        *,
        line_items: List[Dict[str, Any]],
        success_url: str,
        cancel_url: str,
        metadata: Dict[str, str],
        client_reference_id: str,
    ) -> Dict[str, Any]:
        """
        Crée une session Stripe Checkout (mode paiement).
        Retour: {"id": "cs_...", "url": "https://checkout.stripe.com/..."}
        """
        try:
            session = stripe.checkout.Session.create(
                api_key=self.api_key,
                mode="payment",
                payment_method_types=["card"],
                line_items=line_items,
                success_url=success_url,
                cancel_url=cancel_url,
                metadata=metadata,
                client_reference_id=client_reference_id,
            )
        except stripe.StripeError as e:
            logger.exception("payments.stripe_client.create_checkout_session failed customer_id=%s", client_reference_id)
            raise ProcessorUnavailableError(f"Stripe: {getattr(e, 'user_message', None) or str(e)}") from e
        return {"id": session.get("id"), "url": session.get("url")}

    def expire_checkout_session(self, session_id: str) -> None:
        try:
            stripe.checkout.Session.expire(session_id, api_key=self.api_key)
        except stripe.StripeError as e:
            raise ProcessorUnavailableError(f"Stripe: {str(e)}") from e

    def list_checkout_sessions(self, *, created_after: int) -> Iterator[Dict[str, Any]]:
        try:
            page = stripe.checkout.Session.list(
                api_key=self.api_key,
                created={"gte": created_after},
                limit=100,
            )
            for session in page.auto_paging_iter():
                yield dict(session)
        except stripe.StripeError as e:
            raise ProcessorUnavailableError(f"Stripe: {str(e)}") from e


_processor: Optional[PaymentProcessor] = None

# module marketplace.payments.stripe_client
def get_processor() -> PaymentProcessor:
    """
    Retourne le processeur partagé, créé au premier appel.
    - ProcessorNotConfiguredError si STRIPE_SECRET_KEY est absent
    """
    global _processor
    if _processor is None:
        if not config.STRIPE_SECRET_KEY:
            raise ProcessorNotConfiguredError("STRIPE_SECRET_KEY manquant")
        _processor = StripeProcessor(config.STRIPE_SECRET_KEY)
    return _processor

def set_processor(processor: Optional[PaymentProcessor]) -> None:
    global _processor
    _processor = processor

def reset_processor() -> None:
    set_processor(None)

def verify_webhook(payload: bytes, sig_header: Optional[str], secret: str, tolerance: int) -> None:
    """
    Vérifie la signature Stripe (t=...,v1=...) sur le corps brut, avant tout parsing JSON.
    Lève WebhookSignatureError si l'en-tête est absent, invalide ou hors tolérance.
    """
    if not sig_header:
        raise WebhookSignatureError("En-tête Stripe-Signature manquant")
    try:
        stripe.WebhookSignature.verify_header(
            payload.decode("utf-8"), sig_header, secret, tolerance=tolerance
        )
    except UnicodeDecodeError as e:
        raise WebhookSignatureError("Corps webhook non UTF-8") from e
    except stripe.SignatureVerificationError as e:
        raise WebhookSignatureError(str(e) or "Signature webhook invalide") from e
