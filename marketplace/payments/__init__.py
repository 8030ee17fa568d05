"""
Module 'payments' (feature-first): point d'entrée public.
Réunit les erreurs et les modèles du pipeline checkout; les cas d'usage
(cart, service, webhook, reconcile) s'importent depuis leurs modules.
"""

from .errors import (
    CheckoutError,
    InvalidCheckoutError,
    EmptyCartError,
    StaleCartError,
    ListingMissingError,
    PricingOptionUnavailableError,
    ProcessorUnavailableError,
    WebhookSignatureError,
    WebhookPayloadError,
    CheckoutPersistenceError,
    ProcessorNotConfiguredError,
)
from .models import (
    CartSnapshot,
    LineSnapshot,
    CheckoutSession,
    CheckoutRequest,
    CheckoutResult,
    TaxBreakdownItem,
    WebhookOutcome,
)

__all__ = [
    # errors
    "CheckoutError",
    "InvalidCheckoutError",
    "EmptyCartError",
    "StaleCartError",
    "ListingMissingError",
    "PricingOptionUnavailableError",
    "ProcessorUnavailableError",
    "WebhookSignatureError",
    "WebhookPayloadError",
    "CheckoutPersistenceError",
    "ProcessorNotConfiguredError",
    # models
    "CartSnapshot",
    "LineSnapshot",
    "CheckoutSession",
    "CheckoutRequest",
    "CheckoutResult",
    "TaxBreakdownItem",
    "WebhookOutcome",
]
