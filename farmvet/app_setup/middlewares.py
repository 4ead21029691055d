"""
Middlewares transverses.
- register_basic_middlewares: CORS et TrustedHost.
- register_security_middleware: en-têtes de sécurité et CSP autorisant l'iframe Paymob et PayPal.
- register_no_cache_middleware: pas de cache sur les réponses checkout/commandes.
"""
from urllib.parse import urlparse

from fastapi import FastAPI, Request
from fastapi.middleware.cors import CORSMiddleware
from starlette.middleware.trustedhost import TrustedHostMiddleware

from farmvet.config import ALLOWED_HOSTS, COOKIE_SECURE, CORS_ORIGINS, PAYMOB_API_BASE, PAYPAL_BASE, SUPABASE_URL

PAYPAL_WEB_SOURCES = ["https://www.paypal.com", "https://www.sandbox.paypal.com"]
NO_CACHE_PREFIXES = ("/api/v1/checkout", "/api/v1/orders", "/api/v1/admin")


def _origin(url: str) -> str:
    p = urlparse(url or "")
    return f"{p.scheme}://{p.netloc}" if p.scheme and p.netloc else ""


def content_security_policy() -> str:
    paymob = _origin(PAYMOB_API_BASE)
    frames = " ".join(s for s in [paymob, *PAYPAL_WEB_SOURCES] if s)
    connect = " ".join(s for s in ["'self'", SUPABASE_URL, paymob, _origin(PAYPAL_BASE)] if s)
    return (
        "default-src 'self'; "
        "base-uri 'self'; object-src 'none'; frame-ancestors 'none'; "
        "img-src 'self' data: blob: https:; "
        "style-src 'self' 'unsafe-inline' https://cdn.jsdelivr.net; "
        f"script-src 'self' 'unsafe-inline' https://cdn.jsdelivr.net https://www.paypal.com; "
        f"frame-src {frames}; "
        f"connect-src {connect}"
    )


def register_basic_middlewares(app: FastAPI) -> None:
    app.add_middleware(
        CORSMiddleware,
        allow_origins=CORS_ORIGINS,
        allow_credentials=True,
        allow_methods=["*"],
        allow_headers=["*"],
    )
    app.add_middleware(
        TrustedHostMiddleware,
        allowed_hosts=ALLOWED_HOSTS + ["*"] if "*" in CORS_ORIGINS else ALLOWED_HOSTS,
    )


def register_security_middleware(app: FastAPI) -> None:
    csp = content_security_policy()

    @app.middleware("http")
    async def security_headers(request: Request, call_next):
        response = await call_next(request)
        response.headers.setdefault("X-Frame-Options", "DENY")
        response.headers.setdefault("X-Content-Type-Options", "nosniff")
        response.headers.setdefault("Referrer-Policy", "no-referrer")
        response.headers.setdefault("Permissions-Policy", "geolocation=(), microphone=(), camera=()")
        if COOKIE_SECURE:
            response.headers.setdefault("Strict-Transport-Security", "max-age=63072000; includeSubDomains; preload")
        response.headers["Content-Security-Policy"] = csp
        return response


def register_no_cache_middleware(app: FastAPI) -> None:
    @app.middleware("http")
    async def no_cache_for_checkout(request: Request, call_next):
        response = await call_next(request)
        if request.url.path.startswith(NO_CACHE_PREFIXES):
            response.headers["Cache-Control"] = "no-store, no-cache, must-revalidate, max-age=0"
            response.headers["Pragma"] = "no-cache"
        return response
