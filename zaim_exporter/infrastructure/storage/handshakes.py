"""Short-lived storage for OAuth request tokens between handshake start and callback"""

import logging
import threading
from datetime import datetime, timedelta, timezone
from typing import Callable, Dict, Protocol

import redis

from zaim_exporter.config import Settings
from zaim_exporter.domain.exceptions import HandshakeNotFoundError, HandshakeStoreError
from zaim_exporter.domain.models import HandshakeState

logger = logging.getLogger(__name__)

DEFAULT_TTL = timedelta(minutes=10)
KEY_PREFIX = "zaim:request_token:"


class HandshakeStore(Protocol):
    """Request token secrets keyed by request token; entries expire after a TTL"""

    def put(self, handshake_id: str, secret: str) -> None: ...

    def get(self, handshake_id: str) -> str: ...

    def delete(self, handshake_id: str) -> None: ...

    def close(self) -> None: ...


def _utcnow() -> datetime:
    return datetime.now(timezone.utc)


class MemoryHandshakeStore:
    """
    Process-local handshake store.

    Only valid for a single instance: a callback routed to another replica
    will not find the handshake.
    """

    def __init__(self, ttl: timedelta = DEFAULT_TTL, clock: Callable[[], datetime] = _utcnow):
        self.ttl = ttl
        self._clock = clock
        self._lock = threading.Lock()
        self._entries: Dict[str, HandshakeState] = {}

    def put(self, handshake_id: str, secret: str) -> None:
        state = HandshakeState(
            handshake_id=handshake_id,
            handshake_secret=secret,
            expires_at=self._clock() + self.ttl,
        )
        with self._lock:
            self._purge_expired_locked()
            self._entries[handshake_id] = state
        logger.debug("Stored handshake in memory", extra={"handshake_id": handshake_id})

    def _purge_expired_locked(self) -> int:
        now = self._clock()
        expired = [key for key, state in self._entries.items() if now >= state.expires_at]
        for key in expired:
            del self._entries[key]
        return len(expired)

    def purge_expired(self) -> int:
        """Drop abandoned handshakes; returns how many were removed"""
        with self._lock:
            return self._purge_expired_locked()

    def count(self) -> int:
        with self._lock:
            return len(self._entries)

    def get(self, handshake_id: str) -> str:
        with self._lock:
            state = self._entries.get(handshake_id)
            if state is not None and self._clock() >= state.expires_at:
                del self._entries[handshake_id]
                state = None

        if state is None:
            raise HandshakeNotFoundError(f"Handshake {handshake_id} not found")
        return state.handshake_secret

    def delete(self, handshake_id: str) -> None:
        with self._lock:
            self._entries.pop(handshake_id, None)

    def close(self) -> None:
        with self._lock:
            self._entries.clear()


class RedisHandshakeStore:
    """Handshake store shared by every instance; Redis enforces the TTL"""

    def __init__(self, client: redis.Redis, ttl: timedelta = DEFAULT_TTL):
        self.client = client
        self.ttl = ttl

    @classmethod
    def from_url(cls, url: str, ttl: timedelta = DEFAULT_TTL) -> "RedisHandshakeStore":
        """
        Connect and verify the connection with a PING.

        Raises:
            HandshakeStoreError: If the URL is invalid or Redis is unreachable
        """
        try:
            client = redis.Redis.from_url(
                url,
                decode_responses=True,
                socket_timeout=5.0,
                socket_connect_timeout=5.0,
            )
            client.ping()
        except (ValueError, redis.exceptions.RedisError) as e:
            raise HandshakeStoreError(f"Failed to connect to redis: {e}") from e

        logger.info("Connected to redis for handshake storage")
        return cls(client, ttl)

    @staticmethod
    def _key(handshake_id: str) -> str:
        return f"{KEY_PREFIX}{handshake_id}"

    def put(self, handshake_id: str, secret: str) -> None:
        try:
            self.client.set(self._key(handshake_id), secret, ex=int(self.ttl.total_seconds()))
        except redis.exceptions.RedisError as e:
            raise HandshakeStoreError(f"Failed to store handshake: {e}") from e
        logger.debug("Stored handshake in redis", extra={"handshake_id": handshake_id})

    def get(self, handshake_id: str) -> str:
        try:
            secret = self.client.get(self._key(handshake_id))
        except redis.exceptions.RedisError as e:
            raise HandshakeStoreError(f"Failed to read handshake: {e}") from e

        if secret is None:
            raise HandshakeNotFoundError(f"Handshake {handshake_id} not found")
        if isinstance(secret, bytes):
            secret = secret.decode("utf-8")
        return secret

    def delete(self, handshake_id: str) -> None:
        try:
            self.client.delete(self._key(handshake_id))
        except redis.exceptions.RedisError as e:
            raise HandshakeStoreError(f"Failed to delete handshake: {e}") from e

    def close(self) -> None:
        self.client.close()


def build_handshake_store(app_settings: Settings) -> HandshakeStore:
    """Pick the backend once at startup: Redis when configured, memory otherwise"""
    ttl = timedelta(seconds=app_settings.handshake_ttl_seconds)
    redis_url = app_settings.resolved_redis_url

    if redis_url:
        store = RedisHandshakeStore.from_url(redis_url, ttl)
        logger.info("Using redis for handshake storage")
        return store

    logger.warning("Using in-memory handshake storage (not suitable for multiple instances)")
    return MemoryHandshakeStore(ttl)
