"""
Accès aux données du catalogue (table 'listings').
Les lectures du pipeline de checkout propagent les erreurs: un catalogue
injoignable ne doit jamais être confondu avec une annonce supprimée.
"""
import logging
from typing import Any, Dict, Iterable, List, Optional

import marketplace.infra.supabase_client as supabase_client

logger = logging.getLogger(__name__)

# module marketplace.catalog.repository
def fetch_listings_by_ids(ids: List[str]) -> List[dict]:
    """
    Récupère les annonces par leurs IDs en une seule requête.
    - Retourne [] si ids vide; lève l'exception Supabase en cas d'erreur.
    """
    if not ids:
        return []
    try:
        res = (
            supabase_client.get_service_supabase()
            .table("listings")
            .select("*")
            .in_("id", sorted({str(i) for i in ids}))
            .execute()
        )
        return res.data or []
    except Exception:
        logger.exception("catalog.repository.fetch_listings_by_ids failed ids=%s", ids)
        raise

def get_listings_map(ids: Iterable[str]) -> Dict[str, Dict[str, Any]]:
    """Retourne un dict {id: annonce} à partir d'une liste d'IDs."""
    listings = fetch_listings_by_ids(list(ids))
    return {str(l.get("id")): l for l in listings}

def find_listings_map(ids: Iterable[str]) -> Dict[str, Dict[str, Any]]:
    """
    Variante tolérante pour les champs rafraîchissables (nom, lieu, image):
    retourne {} en cas d'erreur, l'appelant retombe alors sur le snapshot.
    """
    try:
        return get_listings_map(ids)
    except Exception:
        return {}

def find_package(listing: Dict[str, Any], package_id: Optional[str]) -> Optional[dict]:
    for p in listing.get("packages") or []:
        if str(p.get("id")) == str(package_id):
            return p
    return None

def find_custom_package(listing: Dict[str, Any], package_id: Optional[str]) -> Optional[dict]:
    for p in listing.get("custom_packages") or []:
        if str(p.get("id")) == str(package_id):
            return p
    return None

def first_image_url(listing: Dict[str, Any]) -> Optional[str]:
    images = listing.get("image_urls") or []
    return images[0] if images else None
