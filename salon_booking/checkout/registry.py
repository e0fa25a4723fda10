"""
Registre en mémoire des sessions de checkout.
- Une session = un assistant + un verrou: deux appels sur la même session ne s'entrelacent jamais
- Les sessions inactives au-delà de CHECKOUT_SESSION_TTL_SECONDS sont purgées à la création suivante
"""
import threading
import time
from contextlib import contextmanager
from typing import Dict, Iterator, Optional
from uuid import uuid4

from salon_booking.config import CHECKOUT_SESSION_TTL_SECONDS
from salon_booking.salons.models import TenantSettings
from .wizard import CheckoutWizard


class _Entry:
    __slots__ = ("wizard", "lock", "touched_at")

    def __init__(self, wizard: CheckoutWizard):
        self.wizard = wizard
        self.lock = threading.Lock()
        self.touched_at = time.monotonic()


class SessionRegistry:
    def __init__(self, ttl_seconds: int = CHECKOUT_SESSION_TTL_SECONDS):
        self._ttl = ttl_seconds
        self._entries: Dict[str, _Entry] = {}
        self._lock = threading.Lock()

    def create(self, tenant: TenantSettings) -> str:
        session_id = uuid4().hex
        with self._lock:
            self._purge_expired()
            self._entries[session_id] = _Entry(CheckoutWizard(tenant))
        return session_id

    def exists(self, session_id: str) -> bool:
        with self._lock:
            return session_id in self._entries

    @contextmanager
    def session(self, session_id: str) -> Iterator[CheckoutWizard]:
        """Donne l'assistant sous le verrou de la session. Lève KeyError si inconnue."""
        with self._lock:
            entry = self._entries[session_id]
        with entry.lock:
            entry.touched_at = time.monotonic()
            yield entry.wizard

    def discard(self, session_id: str) -> Optional[CheckoutWizard]:
        with self._lock:
            entry = self._entries.pop(session_id, None)
        return entry.wizard if entry else None

    def clear(self) -> None:
        with self._lock:
            self._entries.clear()

    def _purge_expired(self) -> None:
        now = time.monotonic()
        expired = [k for k, e in self._entries.items() if now - e.touched_at > self._ttl and not e.lock.locked()]
        for key in expired:
            del self._entries[key]


registry = SessionRegistry()
