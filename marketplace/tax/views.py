from decimal import Decimal, InvalidOperation
from typing import Any, Dict, Optional

from fastapi import APIRouter, HTTPException, Query

from marketplace.tax import resolver

router = APIRouter(prefix="/tax", tags=["Tax API"])

# module marketplace.tax.views
@router.get("/calculate")
def calculate_tax(
    postal_code: Optional[str] = Query(None, alias="postalCode"),
    subtotal: Optional[str] = Query(None),
) -> Dict[str, Any]:
    """
    Estimation de taxe pour un code postal et un sous-total.
    - 400 si un paramètre manque, si le sous-total est négatif/non numérique/hors plafond,
      ou si le code postal est invalide ou non reconnu
    """
    if not postal_code or subtotal is None or subtotal == "":
        raise HTTPException(status_code=400, detail="postalCode et subtotal sont requis")
    try:
        amount = Decimal(subtotal)
    except InvalidOperation:
        raise HTTPException(status_code=400, detail="subtotal invalide")
    if not amount.is_finite() or amount < 0 or amount > resolver.MAX_AMOUNT:
        raise HTTPException(status_code=400, detail="subtotal invalide")

    juris = resolver.resolve(postal_code)
    if juris is None:
        raise HTTPException(status_code=400, detail="Code postal invalide ou non reconnu")

    base = resolver.to_money(amount)
    tax_amount = resolver.calculate_tax_amount(base, juris.rate)
    return {
        "postalCode": juris.postal_code,
        "jurisdiction": juris.jurisdiction,
        "rate": float(juris.rate),
        "subtotal": float(base),
        "taxAmount": float(tax_amount),
        "total": float(resolver.calculate_total(base, [tax_amount])),
    }

@router.get("/rates")
def tax_rates() -> Dict[str, Any]:
    return {"taxRates": resolver.all_rates()}
