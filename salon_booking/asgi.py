"""
Point d'entrée ASGI pour les process managers: `salon_booking.asgi:app`.
La construction de l'app (middlewares, routers, lifespan) vit dans salon_booking.app_setup.
"""
from salon_booking.app import app

__all__ = ["app"]
