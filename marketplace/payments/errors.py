"""
Taxonomie des erreurs du pipeline checkout -> webhook -> réservations.
Chaque classe porte son code HTTP; app_setup.exceptions les rend en {"detail": message}.
"""


class CheckoutError(Exception):
    status_code = 500
    default_message = "Erreur interne du checkout"

    def __init__(self, message: str | None = None):
        self.message = message or self.default_message
        super().__init__(self.message)


class InvalidCheckoutError(CheckoutError):
    status_code = 400
    default_message = "Requête de checkout invalide"


class EmptyCartError(InvalidCheckoutError):
    default_message = "Le panier est vide"


class StaleCartError(CheckoutError):
    """Le panier référence un état du catalogue qui n'existe plus."""
    status_code = 409
    default_message = "Le panier n'est plus à jour"


class ListingMissingError(StaleCartError):
    def __init__(self, listing_id: str):
        self.listing_id = listing_id
        super().__init__(f"Annonce introuvable: {listing_id}")


class PricingOptionUnavailableError(StaleCartError):
    def __init__(self, listing_id: str, pricing_option_id: str | None):
        self.listing_id = listing_id
        self.pricing_option_id = pricing_option_id
        super().__init__(
            f"Offre indisponible pour l'annonce {listing_id}: {pricing_option_id or 'flat_price'}"
        )


class ProcessorUnavailableError(CheckoutError):
    status_code = 502
    default_message = "Le prestataire de paiement est indisponible"


class WebhookSignatureError(CheckoutError):
    status_code = 400
    default_message = "Signature webhook invalide"


class WebhookPayloadError(CheckoutError):
    status_code = 400
    default_message = "Payload webhook invalide"


class CheckoutPersistenceError(CheckoutError):
    status_code = 500
    default_message = "Impossible d'enregistrer la session de checkout"


class ProcessorNotConfiguredError(CheckoutError):
    status_code = 500
    default_message = "Stripe n'est pas configuré"
