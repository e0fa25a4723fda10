"""
Lifespan FastAPI.
Démarrage: rate limiting (fastapi-limiter sur Redis). Arrêt: sessions de checkout vidées.

Variables d'environnement:
- DISABLE_FASTAPI_LIMITER_INIT_FOR_TESTS=1: pas de limiter (tests)
- USE_FAKE_REDIS_FOR_TESTS=1: fakeredis à la place de Redis
- RATE_LIMIT_REDIS_URL: URL Redis (redis://127.0.0.1:6379/0)
- LOCAL_RATE_LIMIT_FALLBACK=1: compteur en mémoire si Redis est injoignable
"""
import logging
import os
from contextlib import asynccontextmanager

import redis.asyncio as aioredis
from fastapi import FastAPI
from fastapi_limiter import FastAPILimiter

from salon_booking.checkout.registry import registry

try:
    from fakeredis.aioredis import FakeRedis  # tests only
except ImportError:
    FakeRedis = None

logger = logging.getLogger("uvicorn.error")


def _redis_connection():
    if os.getenv("USE_FAKE_REDIS_FOR_TESTS") == "1":
        if FakeRedis is None:
            raise RuntimeError("USE_FAKE_REDIS_FOR_TESTS=1 mais fakeredis n'est pas installé")
        return FakeRedis(decode_responses=True)
    url = os.getenv("RATE_LIMIT_REDIS_URL", "redis://127.0.0.1:6379/0")
    return aioredis.from_url(url, encoding="utf-8", decode_responses=True)


async def _init_rate_limiter(app: FastAPI) -> None:
    """Positionne app.state.rate_limit_enabled; ne bloque jamais le démarrage."""
    if os.getenv("DISABLE_FASTAPI_LIMITER_INIT_FOR_TESTS") == "1":
        app.state.rate_limit_enabled = False
        logger.info("rate limiting désactivé (DISABLE_FASTAPI_LIMITER_INIT_FOR_TESTS)")
        return
    try:
        await FastAPILimiter.init(_redis_connection())
    except Exception as e:
        fallback = os.getenv("LOCAL_RATE_LIMIT_FALLBACK") == "1"
        app.state.rate_limit_enabled = fallback
        logger.warning("rate limiting %s (init Redis impossible: %s)", "en mémoire" if fallback else "désactivé", e)
        return
    app.state.rate_limit_enabled = True
    logger.info("rate limiting actif (redis)")


@asynccontextmanager
async def lifespan(app: FastAPI):
    await _init_rate_limiter(app)
    yield
    registry.clear()
    logger.info("sessions de checkout vidées")
