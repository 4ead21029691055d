from types import SimpleNamespace
from unittest.mock import MagicMock

from fastapi import Depends, FastAPI
from fastapi.testclient import TestClient

from farmvet.utils import security
from farmvet.utils.security import COOKIE_NAME, determine_role, get_current_user, require_admin


def _make_app():
    app = FastAPI()

    @app.get("/me")
    def me(user=Depends(get_current_user)):
        return {k: user[k] for k in ("id", "email", "name", "role")}

    @app.get("/admin")
    def admin(user=Depends(require_admin)):
        return {"ok": True}

    return app


def _stub_supabase(monkeypatch, user=None, error=None):
    client = MagicMock()
    if error:
        client.auth.get_user.side_effect = error
    else:
        client.auth.get_user.return_value = SimpleNamespace(user=user)
    monkeypatch.setattr(security.supabase_client, "get_supabase", lambda: client)
    return client


def test_determine_role():
    assert determine_role({"role": "ADMIN"}) == "admin"
    assert determine_role({"role": "vet"}) == "user"
    assert determine_role(None) == "user"


def test_bearer_token_resolves_user(monkeypatch):
    sb = _stub_supabase(monkeypatch, {"id": "u1", "email": "a@b.eg", "user_metadata": {"full_name": "Amr"}})
    r = TestClient(_make_app()).get("/me", headers={"Authorization": "Bearer tok-1"})
    assert r.status_code == 200
    assert r.json() == {"id": "u1", "email": "a@b.eg", "name": "Amr", "role": "user"}
    sb.auth.get_user.assert_called_once_with("tok-1")


def test_cookie_token_and_app_metadata_role(monkeypatch):
    _stub_supabase(monkeypatch, {"id": "u2", "email": "x@y", "app_metadata": {"role": "admin"}, "user_metadata": {}})
    client = TestClient(_make_app())
    client.cookies.set(COOKIE_NAME, "cookie-token")
    assert client.get("/me").json()["role"] == "admin"
    assert client.get("/admin").json() == {"ok": True}


def test_missing_token_is_401(monkeypatch):
    _stub_supabase(monkeypatch, {"id": "u1"})
    r = TestClient(_make_app()).get("/me")
    assert r.status_code == 401
    assert "Non authentifié" in r.text


def test_invalid_token_is_401(monkeypatch):
    _stub_supabase(monkeypatch, error=RuntimeError("jwt expired"))
    r = TestClient(_make_app()).get("/me", headers={"Authorization": "Bearer bad"})
    assert r.status_code == 401
    assert "Session expirée" in r.text


def test_require_admin_forbids_users(monkeypatch):
    _stub_supabase(monkeypatch, {"id": "u1", "user_metadata": {"role": "user"}})
    r = TestClient(_make_app()).get("/admin", headers={"Authorization": "Bearer t"})
    assert r.status_code == 403
