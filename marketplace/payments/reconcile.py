"""
Balayage de réconciliation: sessions Stripe créées par ce backend mais sans
enregistrement local (échec d'écriture après création côté Stripe).

- Session ouverte sans enregistrement: expirée chez Stripe
- Session payée sans enregistrement: journalisée en erreur pour suivi manuel

Usage:
    python -m marketplace.payments.reconcile
"""
import logging
import time
from dataclasses import dataclass, field
from typing import List, Optional

from marketplace import config
from marketplace.payments import metadata as meta
from marketplace.payments import repository
from marketplace.payments import stripe_client

logger = logging.getLogger(__name__)


@dataclass
class ReconcileReport:
    scanned: int = 0
    expired: List[str] = field(default_factory=list)
    paid_orphans: List[str] = field(default_factory=list)
    failed: List[str] = field(default_factory=list)


# module marketplace.payments.reconcile
def reconcile_orphans(lookback_hours: Optional[int] = None, now: Optional[float] = None) -> ReconcileReport:
    hours = config.RECONCILE_LOOKBACK_HOURS if lookback_hours is None else lookback_hours
    created_after = int((now if now is not None else time.time()) - hours * 3600)
    processor = stripe_client.get_processor()

    ours = [
        s for s in processor.list_checkout_sessions(created_after=created_after)
        if meta.extract_customer_id(s) and s.get("id")
    ]
    report = ReconcileReport(scanned=len(ours))
    known = repository.existing_session_ids(s["id"] for s in ours)

    for s in ours:
        session_id = s["id"]
        if session_id in known:
            continue
        if s.get("payment_status") in ("paid", "no_payment_required"):
            logger.error(
                "payments.reconcile paid session without local record session_id=%s customer_id=%s",
                session_id, meta.extract_customer_id(s),
            )
            report.paid_orphans.append(session_id)
        elif s.get("status") == "open":
            try:
                processor.expire_checkout_session(session_id)
                report.expired.append(session_id)
                logger.info("payments.reconcile expired orphan session_id=%s", session_id)
            except Exception:
                logger.exception("payments.reconcile expire failed session_id=%s", session_id)
                report.failed.append(session_id)

    logger.info(
        "payments.reconcile scanned=%s expired=%s paid_orphans=%s failed=%s",
        report.scanned, len(report.expired), len(report.paid_orphans), len(report.failed),
    )
    return report


if __name__ == "__main__":
    logging.basicConfig(level=logging.INFO)
    reconcile_orphans()
