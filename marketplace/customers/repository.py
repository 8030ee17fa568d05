"""
Accès aux profils (table 'users'): coordonnées client, panier (customer_cart JSON),
nom commercial des prestataires.
"""
import json
import logging
from typing import Any, Dict, Iterable, List, Optional

import marketplace.infra.supabase_client as supabase_client
from marketplace.payments.errors import StaleCartError

logger = logging.getLogger(__name__)

CART_UPDATE_ATTEMPTS = 3

# module marketplace.customers.repository
def get_user_by_id(user_id: str) -> Optional[dict]:
    """Retourne le profil ou None s'il n'existe pas; lève en cas d'erreur Supabase."""
    try:
        res = (
            supabase_client.get_service_supabase()
            .table("users")
            .select("*")
            .eq("id", user_id)
            .limit(1)
            .execute()
        )
        rows = res.data or []
        return rows[0] if rows else None
    except Exception:
        logger.exception("customers.repository.get_user_by_id failed user_id=%s", user_id)
        raise

def get_cart(customer_id: str) -> List[dict]:
    """Panier courant du client ([] si profil absent ou panier vide)."""
    user = get_user_by_id(customer_id)
    return list((user or {}).get("customer_cart") or [])

def _write_cart_if_unchanged(customer_id: str, expected: List[dict], remaining: List[dict]) -> bool:
    """UPDATE users SET customer_cart=remaining WHERE id=? AND customer_cart=expected."""
    res = (
        supabase_client.get_service_supabase()
        .table("users")
        .update({"customer_cart": remaining})
        .eq("id", customer_id)
        .eq("customer_cart", json.dumps(expected, separators=(",", ":")))
        .execute()
    )
    return bool(res.data)

def remove_cart_lines(customer_id: str, cart_line_ids: Iterable[str]) -> int:
    """
    Retire exactement les lignes consommées du panier.
    L'écriture n'aboutit que si le panier n'a pas changé depuis la lecture; sinon
    relecture et nouvel essai (CART_UPDATE_ATTEMPTS au plus), puis StaleCartError.
    Retourne le nombre de lignes retirées.
    """
    consumed = {str(i) for i in cart_line_ids}
    if not consumed:
        return 0
    for attempt in range(1, CART_UPDATE_ATTEMPTS + 1):
        cart = get_cart(customer_id)
        remaining = [line for line in cart if str(line.get("id")) not in consumed]
        removed = len(cart) - len(remaining)
        if removed == 0:
            return 0
        if _write_cart_if_unchanged(customer_id, cart, remaining):
            return removed
        logger.info(
            "customers.repository.remove_cart_lines cart changed, retrying customer_id=%s attempt=%s",
            customer_id, attempt,
        )
    raise StaleCartError("Panier modifié pendant le nettoyage")

def get_vendor_names(vendor_ids: Iterable[str]) -> Dict[str, str]:
    """
    Retourne {vendor_id: nom commercial} (fallback: full_name).
    Données d'affichage: {} en cas d'erreur.
    """
    ids = sorted({str(v) for v in vendor_ids if v})
    if not ids:
        return {}
    try:
        res = (
            supabase_client.get_service_supabase()
            .table("users")
            .select("id, vendor_business_name, full_name")
            .in_("id", ids)
            .execute()
        )
    except Exception:
        logger.exception("customers.repository.get_vendor_names failed ids=%s", ids)
        return {}
    names: Dict[str, str] = {}
    for row in res.data or []:
        name = row.get("vendor_business_name") or row.get("full_name")
        if name:
            names[str(row.get("id"))] = name
    return names

def contact_snapshot(user: Optional[Dict[str, Any]]) -> Dict[str, Any]:
    """Coordonnées du client figées dans la réservation."""
    user = user or {}
    return {
        "full_name": user.get("full_name") or "",
        "email": user.get("email") or "",
        "phone_number": user.get("phone_number") or "",
        "location": user.get("location") or {},
    }
