"""
Diagnostics de santé: DNS + accès aux tables Supabase utilisées par le pipeline.
"""
import socket
from typing import Any, Dict
from urllib.parse import urlparse

import marketplace.infra.supabase_client as supabase_client
from marketplace import config

TABLES = ("users", "listings", "checkout_sessions", "bookings")


def _check_table(client, name: str) -> Dict[str, Any]:
    try:
        res = client.table(name).select("*").limit(1).execute()
        return {"ok": True, "rows": len(res.data or [])}
    except Exception as e:
        return {"ok": False, "error": str(e)}

# module marketplace.health.service
def health_supabase_info() -> Dict[str, Any]:
    parsed = urlparse(config.SUPABASE_URL) if config.SUPABASE_URL else None
    hostname = parsed.hostname if parsed else None
    dns_ok = None
    dns_error = None
    if hostname:
        try:
            socket.getaddrinfo(hostname, 443)
            dns_ok = True
        except Exception as e:
            dns_ok = False
            dns_error = str(e)

    info: Dict[str, Any] = {
        "supabase_url": config.SUPABASE_URL,
        "hostname": hostname,
        "dns_ok": dns_ok,
        "dns_error": dns_error,
        "connect_ok": False,
        "error": None,
        "tables": {},
    }
    try:
        client = supabase_client.get_service_supabase()
        for t in TABLES:
            info["tables"][t] = _check_table(client, t)
        info["connect_ok"] = True
    except Exception as e:
        info["error"] = str(e)
    return info
