"""Almacenamiento de sesiones de verificación (memoria o Redis)"""
from contextlib import asynccontextmanager
from datetime import datetime, timedelta, timezone
from typing import AsyncIterator, Dict, Optional, Tuple
import asyncio
import logging

from app.core.config import settings
from shared.cache.redis_client import (
    DistributedLock, cache_delete, cache_get, cache_set
)
from services.ticket_verification.errors import OperationInProgress, SessionNotFound
from services.ticket_verification.services.verification_session import VerificationSession

logger = logging.getLogger(__name__)

SESSION_KEY_PREFIX = "verification:session:"


class InMemorySessionStore:
    """Sesiones en memoria del proceso (un solo worker)"""

    def __init__(self, ttl_seconds: int = 3600):
        self.ttl = timedelta(seconds=ttl_seconds)
        self._sessions: Dict[str, Tuple[dict, datetime]] = {}
        self._locks: Dict[str, asyncio.Lock] = {}

    def _purge_expired(self):
        """Descartar sesiones vencidas (abandonadas sin DELETE)"""
        now = datetime.now(timezone.utc)
        expired = [sid for sid, (_, expires_at) in self._sessions.items() if expires_at <= now]
        for session_id in expired:
            del self._sessions[session_id]
        if expired:
            logger.info(f"{len(expired)} sesión(es) de verificación expiradas descartadas")

    async def save(self, session: VerificationSession):
        self._purge_expired()
        expires_at = datetime.now(timezone.utc) + self.ttl
        self._sessions[session.session_id] = (session.to_snapshot(), expires_at)

    async def load(self, session_id: str) -> VerificationSession:
        self._purge_expired()
        entry = self._sessions.get(session_id)
        if entry is None:
            raise SessionNotFound()
        return VerificationSession.from_snapshot(entry[0])

    async def delete(self, session_id: str):
        self._sessions.pop(session_id, None)

    @asynccontextmanager
    async def lock(self, session_id: str) -> AsyncIterator[None]:
        """
        Una operación a la vez por sesión; la segunda se rechaza.

        El lock solo vive mientras hay una operación en curso.
        """
        session_lock = self._locks.setdefault(session_id, asyncio.Lock())
        if session_lock.locked():
            raise OperationInProgress()
        try:
            async with session_lock:
                yield
        finally:
            if not session_lock.locked():
                self._locks.pop(session_id, None)


class RedisSessionStore:
    """Sesiones compartidas entre workers vía Redis, con TTL"""

    def __init__(self, ttl_seconds: int = 3600):
        self.ttl_seconds = ttl_seconds

    def _key(self, session_id: str) -> str:
        return f"{SESSION_KEY_PREFIX}{session_id}"

    async def save(self, session: VerificationSession):
        await cache_set(self._key(session.session_id), session.to_snapshot(), expire=self.ttl_seconds)

    async def load(self, session_id: str) -> VerificationSession:
        snapshot = await cache_get(self._key(session_id))
        if not snapshot or not isinstance(snapshot, dict):
            raise SessionNotFound()
        return VerificationSession.from_snapshot(snapshot)

    async def delete(self, session_id: str):
        await cache_delete(self._key(session_id))

    @asynccontextmanager
    async def lock(self, session_id: str) -> AsyncIterator[None]:
        distributed_lock = DistributedLock(f"verification:{session_id}", expire=30)
        if not await distributed_lock.acquire():
            raise OperationInProgress()
        try:
            yield
        finally:
            await distributed_lock.release()


_session_store = None


def get_session_store():
    """Dependency: store de sesiones según SESSION_BACKEND"""
    global _session_store
    if _session_store is None:
        if settings.SESSION_BACKEND == "redis":
            _session_store = RedisSessionStore(settings.SESSION_TTL_SECONDS)
        else:
            _session_store = InMemorySessionStore(settings.SESSION_TTL_SECONDS)
        logger.info(f"Sesiones de verificación en backend: {settings.SESSION_BACKEND}")
    return _session_store
