# farmvet.config
from pathlib import Path
import os
from dotenv import load_dotenv

# Calculer le chemin du projet puis charger .env de manière explicite
BASE_DIR = Path(__file__).resolve().parent.parent
ENV_PATH = BASE_DIR / ".env"
load_dotenv(dotenv_path=ENV_PATH, override=True)

"""
Configuration centrale du service checkout.

- Charge le fichier .env à la racine du projet (BASE_DIR/.env)
- Normalise et expose les secrets/URLs (Supabase, Paymob, PayPal), sécurité cookies, CORS/hosts
- Expose les constantes métier du checkout (frais de livraison, plancher de charge, taux EGP->USD)
Les clés des processeurs de paiement ne sont jamais renvoyées au client.
"""

def _clean_env(v: str) -> str:
    """
    Nettoie une valeur d'environnement:
    - supprime les espaces et guillemets (simples, doubles) et backticks
    - retourne toujours une chaîne (jamais None)
    """
    return (v or "").strip().strip("'").strip('"').strip("`")

def _float_env(name: str, default: float) -> float:
    raw = _clean_env(os.getenv(name) or "")
    try:
        return float(raw) if raw else default
    except ValueError:
        return default

# Supabase: URL et clés (anon/service)
SUPABASE_URL = _clean_env(os.getenv("SUPABASE_URL") or "")
SUPABASE_ANON = _clean_env(os.getenv("SUPABASE_ANON_KEY") or os.getenv("SUPABASE_KEY") or "")
SUPABASE_SERVICE_KEY = _clean_env(os.getenv("SUPABASE_SERVICE_KEY") or "")

if SUPABASE_URL and not SUPABASE_URL.startswith("http"):
    SUPABASE_URL = "https://" + SUPABASE_URL
if SUPABASE_URL.endswith("/"):
    SUPABASE_URL = SUPABASE_URL.rstrip("/")

# Cookies / sécurité
COOKIE_SECURE = (os.getenv("COOKIE_SECURE", "false").lower() == "true")
CORS_ORIGINS = [o.strip() for o in os.getenv("CORS_ORIGINS", "*").split(",") if o.strip()]
ALLOWED_HOSTS = [h.strip() for h in os.getenv("ALLOWED_HOSTS", "localhost,127.0.0.1,testserver").split(",") if h.strip()]

# Paymob: API de base, clé secrète, iframe et intégrations (carte / wallet)
PAYMOB_API_BASE = _clean_env(os.getenv("PAYMOB_API_BASE") or "https://accept.paymob.com/api").rstrip("/")
PAYMOB_API_KEY = _clean_env(os.getenv("PAYMOB_API_KEY") or "")
PAYMOB_IFRAME_ID = _clean_env(os.getenv("PAYMOB_IFRAME_ID") or "")
PAYMOB_CARD_INTEGRATION_ID = _clean_env(os.getenv("PAYMOB_CARD_INTEGRATION_ID") or "")
PAYMOB_WALLET_INTEGRATION_ID = _clean_env(os.getenv("PAYMOB_WALLET_INTEGRATION_ID") or "")
# Secret HMAC des callbacks Paymob (vérification hors périmètre de ce service)
PAYMOB_HMAC_SECRET = _clean_env(os.getenv("PAYMOB_HMAC_SECRET") or "")
PAYMOB_CURRENCY = _clean_env(os.getenv("PAYMOB_CURRENCY") or "EGP")

# PayPal: client REST v2 (sandbox par défaut)
PAYPAL_BASE = _clean_env(os.getenv("PAYPAL_BASE") or "https://api-m.sandbox.paypal.com").rstrip("/")
PAYPAL_CLIENT_ID = _clean_env(os.getenv("PAYPAL_CLIENT_ID") or "")
PAYPAL_SECRET = _clean_env(os.getenv("PAYPAL_SECRET") or "")
PAYPAL_CURRENCY = _clean_env(os.getenv("PAYPAL_CURRENCY") or "USD")
PAYPAL_RETURN_URL = _clean_env(os.getenv("PAYPAL_RETURN_URL") or "http://localhost:5173/paypal/callback?status=success")
PAYPAL_CANCEL_URL = _clean_env(os.getenv("PAYPAL_CANCEL_URL") or "http://localhost:5173/paypal/callback?status=cancel")

# Conversion fixe EGP -> USD pour le règlement PayPal
EGP_TO_USD_RATE = _float_env("EGP_TO_USD_RATE", 0.02)

# Checkout: frais de livraison (EGP) et plancher de charge en unités mineures
SHIPPING_FEE = _float_env("SHIPPING_FEE", 50.0)
MIN_CHARGE_CENTS = 100

# Timeout réseau des appels processeurs (secondes)
GATEWAY_TIMEOUT_SECONDS = _float_env("GATEWAY_TIMEOUT_SECONDS", 15.0)
