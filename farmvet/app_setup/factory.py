"""
Factory d'application utilisée par les entrypoints (farmvet.asgi, python -m farmvet).
"""
from fastapi import FastAPI

from .exceptions import register_exception_handlers
from .lifespan import lifespan
from .middlewares import register_basic_middlewares, register_no_cache_middleware, register_security_middleware
from .routers import register_routers


def create_app() -> FastAPI:
    """
    Construit l'app FastAPI avec le lifespan et enregistre:
      - middlewares (CORS, TrustedHost, sécurité/CSP, no-cache)
      - gestionnaires d'exceptions (CheckoutError, HTTPException)
      - routers (passerelles, checkout, commandes, health)
    """
    app = FastAPI(title="FarmVet Checkout API", lifespan=lifespan)
    register_basic_middlewares(app)
    register_security_middleware(app)
    register_no_cache_middleware(app)
    register_exception_handlers(app)
    register_routers(app)
    return app
