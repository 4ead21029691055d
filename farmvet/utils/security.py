"""
Authentification des requêtes API.
- Jeton: header Authorization Bearer en priorité, sinon cookie de session (COOKIE_NAME).
- Résolution via Supabase auth.get_user(token) -> {id, email, name, role, token}.
- require_user / require_admin: dépendances FastAPI (401 non authentifié, 403 rôle insuffisant).
"""
from typing import Any, Dict, Optional

from fastapi import Depends, HTTPException, Request

import farmvet.infra.supabase_client as supabase_client

COOKIE_NAME = "sb_access"


def determine_role(metadata: Optional[Dict[str, Any]]) -> str:
    return "admin" if str((metadata or {}).get("role", "")).lower() == "admin" else "user"


def _as_dict(obj: Any) -> Dict[str, Any]:
    if obj is None:
        return {}
    if isinstance(obj, dict):
        return obj
    if hasattr(obj, "model_dump"):
        return obj.model_dump()
    return dict(getattr(obj, "__dict__", {}) or {})


def user_from_token(access_token: str) -> Dict[str, Any]:
    """Normalise l'utilisateur renvoyé par supabase.auth.get_user(access_token)."""
    res = supabase_client.get_supabase().auth.get_user(access_token)
    raw = _as_dict(getattr(res, "user", None) if not isinstance(res, dict) else res.get("user"))
    metadata = raw.get("user_metadata") or {}
    app_metadata = raw.get("app_metadata") or {}
    role = determine_role(app_metadata) if app_metadata.get("role") else determine_role(metadata)
    return {
        "id": raw.get("id"),
        "email": raw.get("email"),
        "name": metadata.get("full_name") or metadata.get("display_name") or metadata.get("name"),
        "metadata": metadata,
        "role": role,
        "token": access_token,
    }


def token_from_request(request: Request) -> Optional[str]:
    auth_header = request.headers.get("Authorization", "")
    if auth_header.startswith("Bearer "):
        token = auth_header[7:].strip()
        if token:
            return token
    return request.cookies.get(COOKIE_NAME)


def get_current_user(request: Request) -> Dict[str, Any]:
    token = token_from_request(request)
    if not token:
        raise HTTPException(status_code=401, detail="Non authentifié")
    try:
        user = user_from_token(token)
    except Exception:
        raise HTTPException(status_code=401, detail="Session expirée, veuillez vous connecter")
    if not user.get("id"):
        raise HTTPException(status_code=401, detail="Session expirée, veuillez vous connecter")
    return user


def require_user(user: Dict[str, Any] = Depends(get_current_user)) -> Dict[str, Any]:
    return user


def require_admin(user: Dict[str, Any] = Depends(get_current_user)) -> Dict[str, Any]:
    if user.get("role") != "admin":
        raise HTTPException(status_code=403, detail="Accès interdit")
    return user
