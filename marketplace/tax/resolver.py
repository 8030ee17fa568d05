"""
Résolution fiscale: code postal -> juridiction + taux, et calculs monétaires.
Pur et déterministe (aucun appel réseau); les montants sont des Decimal à 2 décimales.
"""
import logging
import re
from dataclasses import dataclass
from decimal import Decimal, InvalidOperation, ROUND_HALF_UP
from typing import Dict, Iterable, List, Optional, Tuple

import zipcodes

from marketplace.tax import rates
from marketplace.payments.errors import InvalidCheckoutError

logger = logging.getLogger(__name__)

MONEY_QUANT = Decimal("0.01")
ZERO_MONEY = Decimal("0.00")
# Plafond d'un montant accepté (sous-total, ligne de panier)
MAX_AMOUNT = Decimal("99999999.99")

_POSTAL_CODE_RE = re.compile(r"^(\d{5})(?:-\d{4})?$")


@dataclass(frozen=True)
class TaxJurisdiction:
    postal_code: str
    jurisdiction: str
    rate: Decimal


@dataclass(frozen=True)
class TaxBreakdownEntry:
    postal_code: str
    jurisdiction: str
    rate: Decimal
    taxable_amount: Decimal
    tax_amount: Decimal

    def to_dict(self) -> Dict[str, object]:
        return {
            "postal_code": self.postal_code,
            "jurisdiction": self.jurisdiction,
            "rate": str(self.rate),
            "taxable_amount": str(self.taxable_amount),
            "tax_amount": str(self.tax_amount),
        }


def to_money(value) -> Decimal:
    """Arrondi à 2 décimales; InvalidCheckoutError si la valeur n'est pas un montant représentable."""
    try:
        return Decimal(str(value)).quantize(MONEY_QUANT, rounding=ROUND_HALF_UP)
    except InvalidOperation:
        raise InvalidCheckoutError(f"Montant invalide: {value}")


def normalize_postal_code(postal_code: Optional[str]) -> Optional[str]:
    """Retourne le ZIP à 5 chiffres, ou None si le format est invalide (NNNNN ou NNNNN-NNNN)."""
    m = _POSTAL_CODE_RE.match((postal_code or "").strip())
    return m.group(1) if m else None


def _state_for_zip5(zip5: str) -> Optional[str]:
    matches = zipcodes.matching(zip5)
    return matches[0].get("state") if matches else None


def resolve(postal_code: Optional[str]) -> Optional[TaxJurisdiction]:
    """
    Résout un code postal US en juridiction fiscale.
    - None si le format est invalide ou si le ZIP n'existe pas
    - un taux de 0 est un résultat valide (ex: Delaware, Oregon)
    """
    zip5 = normalize_postal_code(postal_code)
    if not zip5:
        return None
    state = _state_for_zip5(zip5)
    if not state:
        return None
    name = rates.STATE_NAMES.get(state)
    rate = rates.STATE_TAX_RATES.get(name) if name else None
    if rate is None:
        return None
    return TaxJurisdiction(postal_code=zip5, jurisdiction=name, rate=rate)


def calculate_tax_amount(base, rate) -> Decimal:
    """round(base * rate / 100, 2) en arrondi commercial (ROUND_HALF_UP)."""
    return to_money(Decimal(str(base)) * Decimal(str(rate)) / Decimal("100"))


def calculate_total(subtotal, taxes: Iterable) -> Decimal:
    total = Decimal(str(subtotal))
    for t in taxes:
        total += Decimal(str(t))
    return to_money(total)


def group_by_postal_code(lines: Iterable[Tuple[str, Decimal]]) -> Dict[str, Decimal]:
    """Regroupe les montants taxables par code postal, dans l'ordre de première apparition."""
    groups: Dict[str, Decimal] = {}
    for postal_code, amount in lines:
        key = normalize_postal_code(postal_code) or (postal_code or "")
        groups[key] = groups.get(key, ZERO_MONEY) + Decimal(str(amount))
    return groups


def compute_breakdown(lines: Iterable[Tuple[str, Decimal]]) -> List[TaxBreakdownEntry]:
    """
    Calcule la ventilation fiscale d'un panier.
    - lines: [(postal_code, taxable_amount), ...]
    - une entrée par code postal distinct, résolu une seule fois
    - InvalidCheckoutError si un code postal ne peut pas être résolu
    """
    breakdown: List[TaxBreakdownEntry] = []
    for postal_code, taxable in group_by_postal_code(lines).items():
        juris = resolve(postal_code)
        if juris is None:
            logger.warning("tax.resolver.compute_breakdown unresolved postal_code=%s", postal_code)
            raise InvalidCheckoutError(f"Code postal non reconnu: {postal_code or '(vide)'}")
        taxable = to_money(taxable)
        breakdown.append(
            TaxBreakdownEntry(
                postal_code=juris.postal_code,
                jurisdiction=juris.jurisdiction,
                rate=juris.rate,
                taxable_amount=taxable,
                tax_amount=calculate_tax_amount(taxable, juris.rate),
            )
        )
    return breakdown


def total_tax(breakdown: Iterable[TaxBreakdownEntry]) -> Decimal:
    return to_money(sum((e.tax_amount for e in breakdown), ZERO_MONEY))


def all_rates() -> Dict[str, float]:
    """Table complète {juridiction: taux en %} (exposée par GET /tax/rates)."""
    return {name: float(rate) for name, rate in rates.STATE_TAX_RATES.items()}
