from datetime import date, datetime
from decimal import Decimal
from typing import Literal, Optional

from pydantic import BaseModel, ConfigDict, Field

from marketplace.payments.models import ListingSnapshot, PricingOptionKind, PricingOptionSnapshot

BookingStatus = Literal["Pending", "Confirmed", "Cancelled", "Completed"]


class BookingPayment(BaseModel):
    model_config = ConfigDict(frozen=True)

    session_id: str
    payment_intent_id: Optional[str] = None
    currency: str
    amount_paid: Decimal


class CustomerSnapshot(BaseModel):
    model_config = ConfigDict(frozen=True)

    full_name: str = ""
    email: str = ""
    phone_number: str = ""
    location: dict = Field(default_factory=dict)


class Booking(BaseModel):
    """Réservation durable; (checkout_session_id, line_index) est unique."""
    model_config = ConfigDict(frozen=True)

    id: Optional[str] = None
    customer_id: str
    vendor_id: str
    listing_id: str
    pricing_option_id: Optional[str] = None
    pricing_option_kind: PricingOptionKind
    event_date: date
    event_time: str
    attendees: int
    total_price: Decimal
    status: BookingStatus = "Confirmed"
    payment: BookingPayment
    customer_snapshot: CustomerSnapshot
    listing_snapshot: ListingSnapshot
    pricing_option_snapshot: PricingOptionSnapshot
    checkout_session_id: str
    line_index: int
    booked_at: Optional[datetime] = None

    def to_row(self) -> dict:
        return self.model_dump(mode="json", exclude={"id"} if self.id is None else None)
