"""
Modèles du pipeline de paiement (pydantic v2).
- Snapshots de panier: figés au moment du checkout, seule source des champs tarifaires
- CheckoutSession: enregistrement durable d'une session Stripe
- Schémas API en camelCase (taxBreakdown, totalTaxAmount, redirectUrl, sessionId)
"""
from datetime import date, datetime
from decimal import Decimal
from typing import List, Literal, Optional

from pydantic import BaseModel, ConfigDict, Field, field_validator
from pydantic.alias_generators import to_camel

PricingOptionKind = Literal["package", "custom_package", "flat_price"]
SessionStatus = Literal["pending", "completed", "expired"]

EVENT_TIME_PATTERN = r"^(0?[1-9]|1[0-2]):[0-5][0-9] (AM|PM)$"


class LineDisplay(BaseModel):
    model_config = ConfigDict(frozen=True)

    name: str
    description: str = ""


class PricingOptionSnapshot(BaseModel):
    model_config = ConfigDict(frozen=True)

    name: str
    description: str = ""
    price: Decimal
    kind: PricingOptionKind


class ListingSnapshot(BaseModel):
    model_config = ConfigDict(frozen=True)

    name: str
    location: dict = Field(default_factory=dict)
    image_url: Optional[str] = None
    vendor_business_name: Optional[str] = None


class LineSnapshot(BaseModel):
    """Une ligne de panier figée. Les champs tarifaires ne sont jamais relus depuis le catalogue."""
    model_config = ConfigDict(frozen=True)

    cart_line_id: str
    listing_id: str
    vendor_id: str
    pricing_option_id: Optional[str] = None
    pricing_option_kind: PricingOptionKind
    event_date: date
    event_time: str = Field(pattern=EVENT_TIME_PATTERN)
    attendees: int = Field(ge=1)
    line_total: Decimal = Field(ge=0)
    postal_code: str
    display: LineDisplay
    vendor_name: Optional[str] = None
    pricing_option: PricingOptionSnapshot
    listing: ListingSnapshot


class CartSnapshot(BaseModel):
    model_config = ConfigDict(frozen=True)

    customer_id: str
    lines: List[LineSnapshot]
    subtotal: Decimal

    @property
    def cart_line_ids(self) -> List[str]:
        return [line.cart_line_id for line in self.lines]


class TaxBreakdownItem(BaseModel):
    """Entrée de ventilation fiscale (stockée en snake_case, reçue en camelCase)."""
    model_config = ConfigDict(frozen=True, alias_generator=to_camel, populate_by_name=True)

    postal_code: str
    jurisdiction: str = ""
    rate: Decimal
    taxable_amount: Decimal
    tax_amount: Decimal


class CheckoutSession(BaseModel):
    model_config = ConfigDict(frozen=True)

    session_id: str
    customer_id: str
    currency: str
    subtotal: Decimal
    tax_amount: Decimal
    tax_breakdown: List[TaxBreakdownItem] = Field(default_factory=list)
    total: Decimal
    status: SessionStatus = "pending"
    payment_intent_id: Optional[str] = None
    cart_snapshot: List[LineSnapshot] = Field(default_factory=list)
    created_at: Optional[datetime] = None
    completed_at: Optional[datetime] = None
    expired_at: Optional[datetime] = None

    def to_row(self) -> dict:
        return self.model_dump(mode="json")


class CheckoutRequest(BaseModel):
    model_config = ConfigDict(alias_generator=to_camel, populate_by_name=True)

    tax_breakdown: Optional[List[TaxBreakdownItem]] = None
    total_tax_amount: Optional[Decimal] = None

    @field_validator("total_tax_amount")
    @classmethod
    def _non_negative(cls, v):
        if v is not None and v < 0:
            raise ValueError("totalTaxAmount doit être positif")
        return v


class CheckoutResult(BaseModel):
    model_config = ConfigDict(alias_generator=to_camel, populate_by_name=True)

    redirect_url: str
    session_id: str


class WebhookOutcome(BaseModel):
    """Résultat interne du traitement d'un événement (la réponse HTTP reste {"received": true})."""
    outcome: Literal[
        "completed",
        "duplicate",
        "unknown_session",
        "payment_pending",
        "expired",
        "ignored",
    ]
    event_type: str = ""
    session_id: Optional[str] = None
    bookings_created: int = 0
