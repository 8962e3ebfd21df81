"""
Session Store

Conversation history storage for chat sessions.

Two backends share one interface:

- ``RedisSessionStore``: durable cache. Each session is two keys,
  ``session:<id>`` and ``messages:<id>``, each written with ``SETEX`` so every
  write slides its own TTL forward.
- ``InMemorySessionStore``: process-local fallback used when the cache is not
  reachable at startup. A background sweep evicts idle sessions because there
  is no cache-side expiry.

The backend is picked once by ``create_session_store``; callers never branch on
which one they hold.

Design choices
--------------
- History is a bounded ring: the most recent ``max_messages`` are kept and the
  oldest are discarded on overflow.
- ``get_session_info`` creates a missing session (read with a write side
  effect). ``get_session`` is the pure read.
- Appends are read-modify-write without locking; two concurrent appends to
  the same session may lose one update.
- A failed backend read is not a miss. Reads raise ``SessionStoreError``
  internally; public reads degrade to "missing", and an append whose reads
  failed is skipped rather than written over the stored history.
"""

from __future__ import annotations

import asyncio
import json
import logging
import time
from abc import ABC, abstractmethod
from datetime import datetime, timedelta
from typing import Any, Dict, List, Optional

from pydantic import ValidationError
from redis.asyncio import Redis
from redis.exceptions import RedisError

from .models import Message, Session, utc_now
from ..config import settings
from ..core.logging_setup import short_id

logger = logging.getLogger("news_rag.sessions")


def _session_key(session_id: str) -> str:
    return f"session:{session_id}"


def _messages_key(session_id: str) -> str:
    return f"messages:{session_id}"


class SessionStoreError(RuntimeError):
    """Raised by a storage primitive when the backend could not be read."""


class SessionStore(ABC):
    """
    Backend-independent session operations.

    Subclasses implement the four storage primitives; the public operations
    (creation, bounded append, pagination) live here once for both backends.
    """

    backend: str = "abstract"

    def __init__(
        self,
        ttl_seconds: Optional[int] = None,
        max_messages: Optional[int] = None,
    ) -> None:
        """
        Parameters
        ----------
        ttl_seconds : Optional[int]
            Sliding expiry for both keys of a session.
            Defaults to settings.chat_history_ttl.

        max_messages : Optional[int]
            History cap per session. Defaults to
            settings.chat_history_max_messages.
        """
        self.ttl_seconds = ttl_seconds or settings.chat_history_ttl
        self.max_messages = max_messages or settings.chat_history_max_messages

    # ------------------------------------------------------------------
    # Storage primitives
    # ------------------------------------------------------------------

    # Read primitives return None / [] for a miss and raise SessionStoreError
    # when the backend failed.

    @abstractmethod
    async def _read_session(self, session_id: str) -> Optional[Session]:
        ...

    @abstractmethod
    async def _write_session(self, session: Session) -> None:
        ...

    @abstractmethod
    async def _read_messages(self, session_id: str) -> List[Message]:
        ...

    @abstractmethod
    async def _write_messages(self, session_id: str, messages: List[Message]) -> None:
        ...

    @abstractmethod
    async def _delete(self, session_id: str) -> None:
        ...

    # ------------------------------------------------------------------
    # Lifecycle
    # ------------------------------------------------------------------

    def start(self) -> None:
        """Start background work, if the backend has any."""

    async def close(self) -> None:
        """Release backend resources."""

    @abstractmethod
    async def health_check(self) -> Dict[str, Any]:
        """Report backend status as ``healthy``, ``degraded`` or ``unhealthy``."""

    # ------------------------------------------------------------------
    # Core operations
    # ------------------------------------------------------------------

    async def create_session(self, session_id: str) -> Session:
        """
        Write a fresh session record and an empty history.

        Re-creating an existing session overwrites it.
        """
        now = utc_now()
        session = Session(id=session_id, created=now, last_activity=now, message_count=0)

        await self._write_session(session)
        await self._write_messages(session_id, [])

        logger.info("Session created: %s", short_id(session_id))
        return session

    async def get_session(self, session_id: str) -> Optional[Session]:
        """Return the session record, or None if it does not exist or cannot be read."""
        try:
            return await self._read_session(session_id)
        except SessionStoreError:
            return None

    async def get_session_info(self, session_id: str) -> Session:
        """
        Return the session record, creating it first if it does not exist.

        When the backend cannot be read, a fresh record is returned without
        writing anything, so an existing session is never overwritten.
        """
        try:
            session = await self._read_session(session_id)
        except SessionStoreError:
            now = utc_now()
            return Session(id=session_id, created=now, last_activity=now, message_count=0)
        if session is None:
            return await self.create_session(session_id)
        return session

    async def add_message(self, session_id: str, message: Message) -> None:
        """
        Append a message to the session history.

        The session is created if needed, the history is truncated to the
        most recent ``max_messages``, and the session's ``lastActivity`` and
        ``messageCount`` are refreshed. Both keys get a fresh TTL.

        If either record cannot be read, the append is dropped.
        """
        try:
            session = await self._read_session(session_id)
            messages = await self._read_messages(session_id)
        except SessionStoreError:
            logger.warning(
                "Skipping message for session %s: store unreadable",
                short_id(session_id),
            )
            return

        now = utc_now()
        if session is None:
            session = Session(id=session_id, created=now, last_activity=now, message_count=0)

        messages.append(message)

        excess = len(messages) - self.max_messages
        if excess > 0:
            messages = messages[excess:]

        await self._write_messages(session_id, messages)

        session = session.model_copy(
            update={"last_activity": now, "message_count": len(messages)}
        )
        await self._write_session(session)

        logger.debug(
            "Message added to session %s (id=%s, role=%s)",
            short_id(session_id),
            message.id,
            message.role,
        )

    async def get_messages(
        self,
        session_id: str,
        limit: int = 50,
        offset: int = 0,
    ) -> List[Message]:
        """
        Return up to ``limit`` messages, skipping the ``offset`` newest ones.

        Pagination counts back from the newest message; the returned slice
        is in chronological order.
        """
        try:
            messages = await self._read_messages(session_id)
        except SessionStoreError:
            return []

        limit = max(0, limit)
        offset = max(0, offset)
        end = max(0, len(messages) - offset)
        start = max(0, end - limit)

        return messages[start:end]

    async def delete_session(self, session_id: str) -> None:
        """Remove the session record and its history."""
        await self._delete(session_id)
        logger.info("Session deleted: %s", short_id(session_id))


# ---------------------------------------------------------------------
# In-memory backend
# ---------------------------------------------------------------------

class InMemorySessionStore(SessionStore):
    """
    Process-local store mapping cache-style keys to records.

    Records are copied on read and on write so callers cannot mutate stored
    state. Nothing survives a restart.
    """

    backend = "memory"

    def __init__(
        self,
        ttl_seconds: Optional[int] = None,
        max_messages: Optional[int] = None,
        cleanup_interval: Optional[float] = None,
    ) -> None:
        super().__init__(ttl_seconds, max_messages)
        self.cleanup_interval = cleanup_interval or settings.session_cleanup_interval
        self._store: Dict[str, Any] = {}
        self._cleanup_task: Optional[asyncio.Task] = None

    async def _read_session(self, session_id: str) -> Optional[Session]:
        session = self._store.get(_session_key(session_id))
        return session.model_copy() if session is not None else None

    async def _write_session(self, session: Session) -> None:
        self._store[_session_key(session.id)] = session.model_copy()

    async def _read_messages(self, session_id: str) -> List[Message]:
        return list(self._store.get(_messages_key(session_id), []))

    async def _write_messages(self, session_id: str, messages: List[Message]) -> None:
        self._store[_messages_key(session_id)] = list(messages)

    async def _delete(self, session_id: str) -> None:
        self._store.pop(_session_key(session_id), None)
        self._store.pop(_messages_key(session_id), None)

    # ------------------------------------------------------------------
    # Expiry
    # ------------------------------------------------------------------

    def sweep_expired(self, now: Optional[datetime] = None) -> int:
        """
        Evict sessions idle for longer than the TTL, with their messages.

        Idle time is measured from ``lastActivity``, matching the sliding
        expiry of the cache backend.

        Returns
        -------
        int
            Number of sessions evicted.
        """
        now = now or utc_now()
        cutoff = now - timedelta(seconds=self.ttl_seconds)

        expired = [
            session.id
            for key, session in self._store.items()
            if key.startswith("session:") and session.last_activity < cutoff
        ]

        for session_id in expired:
            self._store.pop(_session_key(session_id), None)
            self._store.pop(_messages_key(session_id), None)

        if expired:
            logger.info("Cleaned up %d expired sessions", len(expired))
        return len(expired)

    async def _cleanup_loop(self) -> None:
        while True:
            await asyncio.sleep(self.cleanup_interval)
            self.sweep_expired()

    def start(self) -> None:
        if self._cleanup_task is None:
            self._cleanup_task = asyncio.create_task(self._cleanup_loop())

    async def close(self) -> None:
        if self._cleanup_task is not None:
            self._cleanup_task.cancel()
            try:
                await self._cleanup_task
            except asyncio.CancelledError:
                pass
            self._cleanup_task = None
        self._store.clear()

    async def health_check(self) -> Dict[str, Any]:
        return {
            "status": "degraded",
            "backend": self.backend,
            "message": "Sessions are process-local and lost on restart",
            "sessions": len(self),
        }

    def __len__(self) -> int:
        """Return the number of stored sessions."""
        return sum(1 for key in self._store if key.startswith("session:"))


# ---------------------------------------------------------------------
# Redis backend
# ---------------------------------------------------------------------

class RedisSessionStore(SessionStore):
    """
    Session store backed by a shared Redis client.

    The client is created and closed by the application; this class only
    borrows it. Cache errors are logged; reads surface them as
    ``SessionStoreError`` and writes become no-ops, so a cache outage never
    fails a request.
    """

    backend = "redis"

    def __init__(
        self,
        client: Redis,
        ttl_seconds: Optional[int] = None,
        max_messages: Optional[int] = None,
    ) -> None:
        super().__init__(ttl_seconds, max_messages)
        self._client = client

    async def _get_json(self, key: str) -> Any:
        try:
            raw = await self._client.get(key)
        except RedisError as exc:
            logger.warning("Cache read failed for %s: %s", key.split(":")[0], exc)
            raise SessionStoreError(f"Cache read failed: {exc}") from exc
        if raw is None:
            return None
        try:
            return json.loads(raw)
        except ValueError:
            logger.warning("Discarding unreadable cache value for %s", key.split(":")[0])
            return None

    async def _set_json(self, key: str, value: Any) -> None:
        try:
            await self._client.setex(key, self.ttl_seconds, json.dumps(value))
        except RedisError as exc:
            logger.warning("Cache write failed for %s: %s", key.split(":")[0], exc)

    async def _read_session(self, session_id: str) -> Optional[Session]:
        data = await self._get_json(_session_key(session_id))
        if data is None:
            return None
        try:
            return Session.model_validate(data)
        except ValidationError:
            logger.warning("Discarding malformed session record %s", short_id(session_id))
            return None

    async def _write_session(self, session: Session) -> None:
        await self._set_json(
            _session_key(session.id),
            session.model_dump(mode="json", by_alias=True),
        )

    async def _read_messages(self, session_id: str) -> List[Message]:
        data = await self._get_json(_messages_key(session_id))
        if not isinstance(data, list):
            return []
        try:
            return [Message.model_validate(item) for item in data]
        except ValidationError:
            logger.warning("Discarding malformed history for %s", short_id(session_id))
            return []

    async def _write_messages(self, session_id: str, messages: List[Message]) -> None:
        await self._set_json(
            _messages_key(session_id),
            [m.model_dump(mode="json", by_alias=True, exclude_none=True) for m in messages],
        )

    async def _delete(self, session_id: str) -> None:
        try:
            await self._client.delete(_session_key(session_id), _messages_key(session_id))
        except RedisError as exc:
            logger.warning("Cache delete failed for %s: %s", short_id(session_id), exc)

    async def health_check(self) -> Dict[str, Any]:
        """PING the cache and report the round trip in milliseconds."""
        started = time.perf_counter()
        try:
            await self._client.ping()
        except (RedisError, OSError) as exc:
            logger.warning("Cache health check failed: %s", exc)
            return {"status": "unhealthy", "backend": self.backend, "error": str(exc)}

        latency_ms = round((time.perf_counter() - started) * 1000, 2)
        return {"status": "healthy", "backend": self.backend, "latencyMs": latency_ms}


# ---------------------------------------------------------------------
# Factory
# ---------------------------------------------------------------------

def create_session_store(
    redis_client: Optional[Redis],
    ttl_seconds: Optional[int] = None,
    max_messages: Optional[int] = None,
) -> SessionStore:
    """
    Pick the backend once: Redis when a connected client is given, otherwise
    the in-memory fallback.
    """
    if redis_client is not None:
        logger.info("Using Redis session storage")
        return RedisSessionStore(redis_client, ttl_seconds, max_messages)

    logger.warning("Redis unavailable, using in-memory session storage")
    return InMemorySessionStore(ttl_seconds, max_messages)
