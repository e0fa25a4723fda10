from fastapi import APIRouter, Request

from salon_booking.config import SUPABASE_URL, STRIPE_SECRET_KEY, PAYSTACK_SECRET_KEY
from salon_booking.utils.rate_limit import rate_limit_health_info

router = APIRouter(prefix="/health", tags=["Health"])

@router.get("")
def health_root():
    return {"ok": True}

@router.get("/details")
def health_details(request: Request):
    # Présence de la configuration uniquement: aucun appel externe
    return {
        "ok": True,
        "supabase_configured": bool(SUPABASE_URL),
        "gateways": {"stripe": bool(STRIPE_SECRET_KEY), "paystack": bool(PAYSTACK_SECRET_KEY)},
        "rate_limit": rate_limit_health_info(request),
    }
