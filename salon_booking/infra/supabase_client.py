from typing import Optional
from supabase import create_client, Client, ClientOptions
from salon_booking.config import (
    SUPABASE_URL,
    SUPABASE_ANON,
    SUPABASE_SERVICE_KEY,
    EXTERNAL_CALL_TIMEOUT_SECONDS,
)

_supabase: Optional[Client] = None
_service_supabase: Optional[Client] = None

def _options() -> ClientOptions:
    # Borne les appels PostgREST: un Supabase lent doit remonter une erreur, pas bloquer le checkout
    return ClientOptions(postgrest_client_timeout=EXTERNAL_CALL_TIMEOUT_SECONDS)

def get_supabase() -> Client:
    """Client 'anon' (lectures publiques: salons, lieux, créneaux occupés)."""
    global _supabase
    if _supabase is None:
        _supabase = create_client(SUPABASE_URL, SUPABASE_ANON, options=_options())
    return _supabase

def get_service_supabase() -> Client:
    """Client service-role (écritures du checkout: rendez-vous, débits, intents de paiement)."""
    global _service_supabase
    if not SUPABASE_SERVICE_KEY:
        raise RuntimeError("SUPABASE_SERVICE_KEY manquant pour get_service_supabase()")
    if _service_supabase is None:
        _service_supabase = create_client(SUPABASE_URL, SUPABASE_SERVICE_KEY, options=_options())
    return _service_supabase
