# salon_booking.config
from pathlib import Path
import os
from dotenv import load_dotenv

# Calculer le chemin du projet puis charger .env de manière explicite
BASE_DIR = Path(__file__).resolve().parent.parent
ENV_PATH = BASE_DIR / ".env"
load_dotenv(dotenv_path=ENV_PATH, override=True)

"""
Configuration centrale du moteur de réservation.

- Charge le fichier .env à la racine du projet (BASE_DIR/.env)
- Normalise et expose les secrets/URLs (Supabase, Stripe, Paystack), CORS/hosts
- Expose les valeurs par défaut du calcul de créneaux (capacité, pas, tampon)
- Borne les appels externes (timeouts) et la fenêtre d'idempotence des débits
"""

def _clean_env(v: str) -> str:
    """
    Nettoie une valeur d'environnement:
    - supprime les espaces et guillemets (simples, doubles) et backticks
    - retourne toujours une chaîne (jamais None)
    """
    return (v or "").strip().strip("'").strip('"').strip("`")

def _int_env(name: str, default: int) -> int:
    raw = _clean_env(os.getenv(name) or "")
    try:
        return int(raw) if raw else default
    except ValueError:
        return default

# Supabase: URL et clés (anon/service)
# - SUPABASE_URL peut parfois être sans schéma: on préfixe en https:// si nécessaire
SUPABASE_URL = _clean_env(os.getenv("SUPABASE_URL") or os.getenv("NEXT_PUBLIC_SUPABASE_URL") or "")
SUPABASE_ANON = _clean_env(os.getenv("SUPABASE_ANON_KEY") or os.getenv("SUPABASE_KEY") or "")
SUPABASE_SERVICE_KEY = _clean_env(os.getenv("SUPABASE_SERVICE_KEY") or os.getenv("SUPABASE_SERVICE_ROLE_KEY") or "")

if SUPABASE_URL and not SUPABASE_URL.startswith("http"):
    SUPABASE_URL = "https://" + SUPABASE_URL
if SUPABASE_URL.endswith("/"):
    SUPABASE_URL = SUPABASE_URL.rstrip("/")

# CORS / hôtes autorisés
CORS_ORIGINS = [o.strip() for o in os.getenv("CORS_ORIGINS", "*").split(",") if o.strip()]
ALLOWED_HOSTS = [h.strip() for h in os.getenv("ALLOWED_HOSTS", "localhost,127.0.0.1,testserver").split(",") if h.strip()]
# Proxys (Render, Nginx) dont les en-têtes X-Forwarded-* sont acceptés
TRUSTED_PROXIES = [p.strip() for p in os.getenv("FORWARDED_ALLOW_IPS", "*").split(",") if p.strip()]

# Stripe: clé secrète et secret webhook
STRIPE_SECRET_KEY = _clean_env(os.getenv("STRIPE_SECRET_KEY") or "")
STRIPE_WEBHOOK_SECRET = _clean_env(os.getenv("STRIPE_WEBHOOK_SECRET") or "")

# Paystack: clé secrète (sert aussi à signer les webhooks) et URL de l'API
PAYSTACK_SECRET_KEY = _clean_env(os.getenv("PAYSTACK_SECRET_KEY") or "")
PAYSTACK_API_URL = _clean_env(os.getenv("PAYSTACK_API_URL") or "https://api.paystack.co").rstrip("/")

# URLs de retour après paiement
BASE_URL = _clean_env(os.getenv("BASE_URL") or "http://localhost:8000")
CHECKOUT_SUCCESS_PATH = os.getenv("CHECKOUT_SUCCESS_PATH", "/booking?payment=success")
CHECKOUT_CANCEL_PATH = os.getenv("CHECKOUT_CANCEL_PATH", "/booking?payment=cancel")

# Créneaux: valeurs par défaut quand le salon ne les précise pas
DEFAULT_SLOT_GRANULARITY_MINUTES = _int_env("DEFAULT_SLOT_GRANULARITY_MINUTES", 30)
DEFAULT_SLOT_CAPACITY = _int_env("DEFAULT_SLOT_CAPACITY", 1)
DEFAULT_BUFFER_MINUTES = _int_env("DEFAULT_BUFFER_MINUTES", 0)
# Durée retenue pour un rendez-vous existant sans heure de fin
DEFAULT_APPOINTMENT_MINUTES = _int_env("DEFAULT_APPOINTMENT_MINUTES", 60)
# Statuts de rendez-vous qui occupent un créneau
BLOCKING_APPOINTMENT_STATUSES = ["scheduled", "started", "paused"]

# Appels externes (Supabase, Stripe, Paystack): délai maximum en secondes
EXTERNAL_CALL_TIMEOUT_SECONDS = _int_env("EXTERNAL_CALL_TIMEOUT_SECONDS", 10)

# Fenêtre (secondes) de la clé d'idempotence des débits de porte-monnaie
IDEMPOTENCY_BUCKET_SECONDS = _int_env("IDEMPOTENCY_BUCKET_SECONDS", 300)

# Régions où Paystack est la passerelle recommandée
PAYSTACK_COUNTRIES = ["NG", "GH", "Nigeria", "Ghana"]
PAYSTACK_CURRENCIES = ["NGN", "GHS"]

# Sessions de checkout en mémoire: durée de vie sans activité (secondes)
CHECKOUT_SESSION_TTL_SECONDS = _int_env("CHECKOUT_SESSION_TTL_SECONDS", 3600)
