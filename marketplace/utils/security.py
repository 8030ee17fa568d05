from fastapi import Request, HTTPException, Depends
from typing import Optional, Dict, Any
import logging

import marketplace.infra.supabase_client as supabase_client

COOKIE_NAME = "sb_access"
ROLES = ("customer", "vendor", "admin")

logger = logging.getLogger(__name__)

def determine_role(app_metadata: Dict[str, Any] | None, user_metadata: Dict[str, Any] | None) -> str:
    """
    Rôle applicatif: app_metadata (posé côté serveur) prioritaire sur user_metadata.
    Valeur par défaut: customer.
    """
    for source in (app_metadata or {}, user_metadata or {}):
        role = str(source.get("role", "")).lower()
        if role in ROLES:
            return role
    return "customer"

def _extract_token(request: Request) -> Optional[str]:
    # Hybride: priorité au Bearer, fallback cookie
    auth_header = request.headers.get("Authorization", "")
    if auth_header.startswith("Bearer "):
        token = auth_header[7:].strip()
        if token:
            return token
    return request.cookies.get(COOKIE_NAME)

def get_user_from_token(access_token: str) -> Dict[str, Any]:
    """Normalise supabase.auth.get_user(access_token) en {id, email, role, metadata, token}."""
    res = supabase_client.get_supabase().auth.get_user(access_token)
    user = getattr(res, "user", None)
    if user is None:
        return {}
    metadata = getattr(user, "user_metadata", None) or {}
    return {
        "id": getattr(user, "id", None),
        "email": getattr(user, "email", None),
        "metadata": metadata,
        "role": determine_role(getattr(user, "app_metadata", None), metadata),
        "token": access_token,
    }

def get_current_user(request: Request) -> Dict[str, Any]:
    token = _extract_token(request)
    if not token:
        raise HTTPException(status_code=401, detail="Non authentifié")

    try:
        user = get_user_from_token(token)
    except Exception:
        logger.info("security.get_current_user token rejected")
        raise HTTPException(status_code=401, detail="Session expirée, veuillez vous connecter")
    if not user.get("id"):
        raise HTTPException(status_code=401, detail="Session expirée, veuillez vous connecter")
    return user

def require_user(user: Dict[str, Any] = Depends(get_current_user)) -> Dict[str, Any]:
    return user

def require_customer(user: Dict[str, Any] = Depends(require_user)) -> Dict[str, Any]:
    if user.get("role") != "customer":
        raise HTTPException(status_code=403, detail="Réservé aux clients")
    return user
