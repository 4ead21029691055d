import time

from fastapi import Depends, FastAPI, Request
from fastapi.testclient import TestClient

from farmvet.utils import rate_limit
from farmvet.utils.rate_limit import optional_rate_limit, rate_limit_health_info


def _make_app(times=2, seconds=60):
    app = FastAPI()

    @app.post("/session", dependencies=[Depends(optional_rate_limit(times, seconds))])
    def session():
        return {"ok": True}

    @app.post("/other", dependencies=[Depends(optional_rate_limit(times, seconds))])
    def other():
        return {"ok": True}

    @app.get("/rl_info")
    def rl_info(request: Request):
        return rate_limit_health_info(request)

    return app


def test_local_fallback_blocks_after_limit(monkeypatch):
    monkeypatch.setenv("LOCAL_RATE_LIMIT_FALLBACK", "1")
    client = TestClient(_make_app(times=2))
    assert client.post("/session").status_code == 200
    assert client.post("/session").status_code == 200
    assert client.post("/session").status_code == 429


def test_limit_is_per_path_and_session(monkeypatch):
    monkeypatch.setenv("LOCAL_RATE_LIMIT_FALLBACK", "1")
    client = TestClient(_make_app(times=1))
    client.cookies.set("sb_access", "session-a")
    assert client.post("/session").status_code == 200
    assert client.post("/session").status_code == 429
    assert client.post("/other").status_code == 200

    client.cookies.set("sb_access", "session-b")
    assert client.post("/session").status_code == 200


def test_window_resets(monkeypatch):
    monkeypatch.setenv("LOCAL_RATE_LIMIT_FALLBACK", "1")
    client = TestClient(_make_app(times=1, seconds=1))
    assert client.post("/session").status_code == 200
    assert client.post("/session").status_code == 429
    time.sleep(1.1)
    assert client.post("/session").status_code == 200


def test_disabled_flag_and_uninitialized_limiter_never_block(monkeypatch):
    monkeypatch.delenv("LOCAL_RATE_LIMIT_FALLBACK", raising=False)
    app = _make_app(times=1)
    client = TestClient(app)
    app.state.rate_limit_enabled = False
    assert all(client.post("/session").status_code == 200 for _ in range(3))

    app.state.rate_limit_enabled = True
    monkeypatch.setattr(rate_limit.FastAPILimiter, "redis", None, raising=False)
    assert all(client.post("/session").status_code == 200 for _ in range(3))


def test_health_info_reports_backend(monkeypatch):
    monkeypatch.delenv("LOCAL_RATE_LIMIT_FALLBACK", raising=False)
    app = _make_app()
    client = TestClient(app)
    app.state.rate_limit_enabled = True

    monkeypatch.setattr(rate_limit.FastAPILimiter, "redis", None, raising=False)
    info = client.get("/rl_info").json()
    assert info == {"enabled": True, "ready": False, "backend": None, "localFallback": False}

    monkeypatch.setattr(rate_limit.FastAPILimiter, "redis", object(), raising=False)
    monkeypatch.setenv("RATE_LIMIT_REDIS_URL", "redis://cache.local:6380/0")
    info = client.get("/rl_info").json()
    assert info["backend"] == "redis"
    assert info["redis"] == {"scheme": "redis", "host": "cache.local", "port": 6380}


def test_bearer_clients_are_limited_per_token(monkeypatch):
    monkeypatch.setenv("LOCAL_RATE_LIMIT_FALLBACK", "1")
    client = TestClient(_make_app(times=1))
    alice = {"Authorization": "Bearer token-alice"}
    bob = {"Authorization": "Bearer token-bob"}
    assert client.post("/session", headers=alice).status_code == 200
    assert client.post("/session", headers=alice).status_code == 429
    # Même IP, autre jeton: compteur distinct
    assert client.post("/session", headers=bob).status_code == 200
