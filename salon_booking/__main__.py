"""
Lancement local du moteur de réservation: python -m salon_booking

Variables d'environnement:
- HOST / PORT: interface et port d'écoute (0.0.0.0:8000)
- UVICORN_RELOAD: reload auto en dev ("1"/"true"/"yes")
- LOG_LEVEL: niveau de logs uvicorn
- FORWARDED_ALLOW_IPS: proxys dont on accepte les X-Forwarded-*
"""
import os

import uvicorn


def main() -> None:
    uvicorn.run(
        "salon_booking.asgi:app",
        host=os.environ.get("HOST", "0.0.0.0"),
        port=int(os.environ.get("PORT", 8000)),
        reload=os.environ.get("UVICORN_RELOAD", "").lower() in ("1", "true", "yes"),
        log_level=os.environ.get("LOG_LEVEL", "info"),
        proxy_headers=True,
        forwarded_allow_ips=os.environ.get("FORWARDED_ALLOW_IPS", "*"),
    )


if __name__ == "__main__":
    main()
