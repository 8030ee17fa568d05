"""
Envoi de l'email de confirmation de réservation (SMTP, best-effort).
Ne lève jamais: le statut d'envoi est retourné à l'appelant qui le journalise.
"""
import logging
import smtplib
from dataclasses import dataclass
from email.message import EmailMessage
from typing import Iterable, Literal, Optional

from marketplace import config

logger = logging.getLogger(__name__)

EmailDeliveryStatus = Literal["sent", "not_configured", "failed"]


@dataclass(frozen=True)
class EmailDeliveryResult:
    status: EmailDeliveryStatus
    detail: Optional[str] = None


def _smtp_configured() -> bool:
    return bool(config.SMTP_HOST and config.EMAIL_FROM)

def build_confirmation_body(customer_name: str, bookings: Iterable, total: str, currency: str) -> str:
    lines = [f"Hello {customer_name or 'there'},", "", "Your booking is confirmed:", ""]
    for b in bookings:
        lines.append(
            f"- {b.listing_snapshot.name} / {b.pricing_option_snapshot.name}: "
            f"{b.event_date.isoformat()} {b.event_time}, {b.attendees} guest(s), "
            f"{b.total_price} {currency.upper()}"
        )
    lines.append("")
    lines.append(f"Total paid (taxes included): {total} {currency.upper()}")
    lines.append("")
    lines.append("Thank you for your order.")
    return "\n".join(lines)

# module marketplace.notifications.email_service
def send_booking_confirmation(
    *,
    recipient_email: str,
    customer_name: str,
    bookings: list,
    total: str,
    currency: str,
) -> EmailDeliveryResult:
    if not _smtp_configured():
        return EmailDeliveryResult(status="not_configured", detail="SMTP not configured")
    if not recipient_email:
        return EmailDeliveryResult(status="failed", detail="missing recipient")

    message = EmailMessage()
    message["Subject"] = "Your booking is confirmed"
    message["From"] = config.EMAIL_FROM
    message["To"] = recipient_email
    message.set_content(build_confirmation_body(customer_name, bookings, total, currency))

    try:
        with smtplib.SMTP(config.SMTP_HOST, config.SMTP_PORT, timeout=20) as server:
            if config.SMTP_USE_TLS:
                server.starttls()
            if config.SMTP_USERNAME:
                server.login(config.SMTP_USERNAME, config.SMTP_PASSWORD or "")
            server.send_message(message)
    except Exception as exc:
        logger.exception("notifications.email_service.send_booking_confirmation failed to=%s", recipient_email)
        return EmailDeliveryResult(status="failed", detail=str(exc))

    return EmailDeliveryResult(status="sent")
