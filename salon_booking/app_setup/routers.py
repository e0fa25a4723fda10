"""
Registre central des routers (API v1, health).
- API v1: availability, checkout, payments (webhooks)
- Health: health_router
"""
from fastapi import FastAPI
from salon_booking.availability import views as availability_views
from salon_booking.checkout import views as checkout_views
from salon_booking.payments import views as payments_views
from salon_booking.health.router import router as health_router

def register_routers(app: FastAPI) -> None:
    # API v1
    app.include_router(availability_views.router)
    app.include_router(checkout_views.router)
    app.include_router(payments_views.router)
    # Health & monitoring
    app.include_router(health_router)
