"""
Registre central des routers.
- Proxy passerelles: /api/paymob/*, /api/paypal/*
- API v1: checkout, commandes (client et admin)
- Health
"""
from fastapi import FastAPI

from farmvet.checkout import views as checkout_views
from farmvet.health.router import router as health_router
from farmvet.orders import views as orders_views
from farmvet.payments import views as payments_views


def register_routers(app: FastAPI) -> None:
    app.include_router(payments_views.router)
    app.include_router(checkout_views.router)
    app.include_router(orders_views.router)
    app.include_router(orders_views.admin_router)
    app.include_router(health_router)
