"""
Rate limiting optionnel des routes publiques.

Les visiteurs du checkout sont anonymes: la session de checkout (paramètre de
chemin ou en-tête x-checkout-session) tient lieu d'identité, sinon l'IP.
La clé inclut toujours le chemin.
"""
import hashlib
import os
import time
from typing import Any, Dict, List
from urllib.parse import urlparse

from fastapi import HTTPException, Request

SESSION_HEADER = "x-checkout-session"


def _client_key(req: Request) -> str:
    path = req.url.path
    session_id = req.path_params.get("session_id") or req.headers.get(SESSION_HEADER)
    if session_id:
        digest = hashlib.sha256(session_id.encode("utf-8")).hexdigest()[:16]
        return f"session:{digest}:{path}"
    ip = req.client.host if req.client else "local"
    return f"ip:{ip}:{path}"


async def _identifier(req: Request) -> str:
    return _client_key(req)


def _memory_hit(request: Request, times: int, seconds: int) -> None:
    """Fenêtre glissante en mémoire (app.state), pour le dev sans Redis."""
    now = time.time()
    key = _client_key(request)
    store: Dict[str, List[float]] = getattr(request.app.state, "_rl_store", {})
    hits = [t for t in store.get(key, []) if now - t < seconds]
    if len(hits) >= times:
        raise HTTPException(status_code=429, detail="Too Many Requests")
    hits.append(now)
    store[key] = hits
    request.app.state._rl_store = store


def optional_rate_limit(times: int, seconds: int):
    """
    Dépendance FastAPI: limite à `times` appels par `seconds` et par clé.
    - LOCAL_RATE_LIMIT_FALLBACK=1: compteur mémoire
    - app.state.rate_limit_enabled False: aucune limite
    - sinon fastapi-limiter; une panne Redis ne produit jamais de 429
    """
    async def _dep(request: Request):
        if os.getenv("LOCAL_RATE_LIMIT_FALLBACK") == "1":
            _memory_hit(request, times, seconds)
            return
        if getattr(request.app.state, "rate_limit_enabled", None) is False:
            return
        try:
            from fastapi_limiter.depends import RateLimiter
            return await RateLimiter(times=times, seconds=seconds, identifier=_identifier)(request)
        except HTTPException:
            raise
        except Exception:
            return
    return _dep


def rate_limit_health_info(request: Request) -> Dict[str, Any]:
    enabled = getattr(request.app.state, "rate_limit_enabled", None)
    try:
        from fastapi_limiter import FastAPILimiter
        ready = getattr(FastAPILimiter, "redis", None) is not None
    except ImportError:
        ready = False

    backend = "redis" if ready else None
    if os.getenv("LOCAL_RATE_LIMIT_FALLBACK") == "1":
        backend = "memory"

    info: Dict[str, Any] = {
        "enabled": bool(enabled) if enabled is not None else None,
        "ready": ready,
        "backend": backend,
    }
    redis_url = os.getenv("RATE_LIMIT_REDIS_URL")
    if backend == "redis" and redis_url:
        p = urlparse(redis_url)
        info["redis"] = {"scheme": p.scheme, "host": p.hostname, "port": p.port}
    return info
