# marketplace.config
from pathlib import Path
import os
from dotenv import load_dotenv

# Calculer le chemin du projet puis charger .env de manière explicite
BASE_DIR = Path(__file__).resolve().parent.parent
ENV_PATH = BASE_DIR / ".env"
load_dotenv(dotenv_path=ENV_PATH, override=True)

"""
Configuration centrale du backend marketplace.

- Charge le fichier .env à la racine du projet (BASE_DIR/.env)
- Normalise et expose les secrets/URLs (Supabase, Stripe, SMTP)
- Fournit les URLs de redirection du checkout et les paramètres du webhook
"""

def _clean_env(v: str) -> str:
    """
    Nettoie une valeur d'environnement:
    - supprime les espaces et guillemets (simples, doubles) et backticks
    - retourne toujours une chaîne (jamais None)
    """
    return (v or "").strip().strip("'").strip('"').strip("`")

def _int_env(name: str, default: int) -> int:
    try:
        return int(_clean_env(os.getenv(name) or "") or default)
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

# Cookies / CORS / hôtes
COOKIE_SECURE = (os.getenv("COOKIE_SECURE", "false").lower() == "true")
CORS_ORIGINS = [o.strip() for o in os.getenv("CORS_ORIGINS", "*").split(",") if o.strip()]
ALLOWED_HOSTS = [h.strip() for h in os.getenv("ALLOWED_HOSTS", "localhost,127.0.0.1").split(",") if h.strip()]

# Stripe: clé secrète, secret webhook, devise unique
STRIPE_SECRET_KEY = _clean_env(os.getenv("STRIPE_SECRET_KEY") or "")
STRIPE_WEBHOOK_SECRET = _clean_env(os.getenv("STRIPE_WEBHOOK_SECRET") or "")
STRIPE_WEBHOOK_TOLERANCE = _int_env("STRIPE_WEBHOOK_TOLERANCE", 300)
STRIPE_CURRENCY = (_clean_env(os.getenv("STRIPE_CURRENCY") or "") or "usd").lower()

# Limites metadata imposées par Stripe (50 clés, 500 caractères par valeur)
STRIPE_METADATA_MAX_KEYS = 50
STRIPE_METADATA_MAX_VALUE_LENGTH = 500

# Front: pages de retour du checkout hébergé
FRONTEND_URL = _clean_env(os.getenv("FRONTEND_URL") or "http://localhost:3000").rstrip("/")
CHECKOUT_SUCCESS_PATH = os.getenv("CHECKOUT_SUCCESS_PATH", "/order-confirmation")
CHECKOUT_CANCEL_PATH = os.getenv("CHECKOUT_CANCEL_PATH", "/checkout")

# Balayage de réconciliation (sessions Stripe sans enregistrement local)
RECONCILE_LOOKBACK_HOURS = _int_env("RECONCILE_LOOKBACK_HOURS", 24)

# SMTP: confirmation de réservation (best-effort)
SMTP_HOST = _clean_env(os.getenv("SMTP_HOST") or "")
SMTP_PORT = _int_env("SMTP_PORT", 587)
SMTP_USERNAME = _clean_env(os.getenv("SMTP_USERNAME") or "")
SMTP_PASSWORD = _clean_env(os.getenv("SMTP_PASSWORD") or "")
SMTP_USE_TLS = (os.getenv("SMTP_USE_TLS", "true").lower() == "true")
EMAIL_FROM = _clean_env(os.getenv("EMAIL_FROM") or "noreply@mehfil.com")
