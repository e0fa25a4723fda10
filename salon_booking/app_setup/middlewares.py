"""
Middlewares transverses.
- CORS: le widget de réservation est intégré au site de chaque salon
- TrustedHost: hôtes acceptés
- ProxyHeaders: IP client réelle derrière le proxy (clé du rate limiting)
"""
from fastapi import FastAPI
from fastapi.middleware.cors import CORSMiddleware
from starlette.middleware.trustedhost import TrustedHostMiddleware
from uvicorn.middleware.proxy_headers import ProxyHeadersMiddleware

from salon_booking.config import ALLOWED_HOSTS, CORS_ORIGINS, TRUSTED_PROXIES
from salon_booking.utils.rate_limit import SESSION_HEADER

CHECKOUT_METHODS = ["GET", "POST", "PUT", "PATCH", "DELETE", "OPTIONS"]


def register_basic_middlewares(app: FastAPI) -> None:
    open_cors = "*" in CORS_ORIGINS
    app.add_middleware(
        CORSMiddleware,
        allow_origins=CORS_ORIGINS,
        # Visiteurs anonymes: pas de cookies quand toutes les origines sont admises
        allow_credentials=not open_cors,
        allow_methods=CHECKOUT_METHODS,
        allow_headers=["content-type", SESSION_HEADER],
    )
    app.add_middleware(TrustedHostMiddleware, allowed_hosts=ALLOWED_HOSTS + ["*"] if open_cors else ALLOWED_HOSTS)
    app.add_middleware(ProxyHeadersMiddleware, trusted_hosts=TRUSTED_PROXIES)
