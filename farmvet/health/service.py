"""Diagnostics de connectivité (Supabase) et de configuration des passerelles."""
import socket
from typing import Any, Dict
from urllib.parse import urlparse

import farmvet.infra.supabase_client as supabase_client
from farmvet.config import SUPABASE_URL

CHECKED_TABLES = ["orders", "products", "notifications"]


def _check_table(client, name: str) -> Dict[str, Any]:
    try:
        res = client.table(name).select("id").limit(1).execute()
        return {"ok": True, "rows": len(res.data or [])}
    except Exception as e:
        return {"ok": False, "error": str(e)}


def health_supabase_info() -> Dict[str, Any]:
    parsed = urlparse(SUPABASE_URL) if SUPABASE_URL else None
    hostname = parsed.hostname if parsed else None
    info: Dict[str, Any] = {
        "hostname": hostname,
        "dns_ok": None,
        "connect_ok": False,
        "error": None,
        "tables": {},
    }
    if hostname:
        try:
            socket.getaddrinfo(hostname, 443)
            info["dns_ok"] = True
        except Exception as e:
            info["dns_ok"] = False
            info["error"] = str(e)
    try:
        client = supabase_client.get_service_supabase()
        for table in CHECKED_TABLES:
            info["tables"][table] = _check_table(client, table)
        info["connect_ok"] = True
    except Exception as e:
        info["error"] = str(e)
    return info
