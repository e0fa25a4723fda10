"""
Factory d'application utilisée par les entrypoints (ex: salon_booking.asgi).
Ordonne les étapes d'initialisation de manière lisible et testable.
"""
from fastapi import FastAPI
from .lifespan import lifespan
from .middlewares import register_basic_middlewares
from .exceptions import register_exception_handlers
from .routers import register_routers

def create_app() -> FastAPI:
    """
    Construit l'app FastAPI avec le lifespan et enregistre:
      - middlewares de base (CORS, hôtes)
      - gestionnaires d'exceptions (HTTP + erreurs du checkout)
      - tous les routers (availability, checkout, payments, health)
    """
    app = FastAPI(title="Salon Booking Checkout", lifespan=lifespan)
    register_basic_middlewares(app)
    register_exception_handlers(app)
    register_routers(app)
    return app
