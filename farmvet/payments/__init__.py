"""
Module 'payments' (feature-first): point d'entrée public.
Réunit réconciliation des montants, clients Paymob/PayPal et services.
"""

from .amounts import calculate_amount_cents, cart_total_cents, to_cents, to_settlement_amount
from .paymob_client import parse_paymob_redirect
from .paypal_client import parse_paypal_redirect
from .service import capture_paypal_order, create_paymob_session, create_paypal_order, gateways_status

__all__ = [
    # amounts
    "calculate_amount_cents",
    "cart_total_cents",
    "to_cents",
    "to_settlement_amount",
    # redirects
    "parse_paymob_redirect",
    "parse_paypal_redirect",
    # service
    "create_paymob_session",
    "create_paypal_order",
    "capture_paypal_order",
    "gateways_status",
]
