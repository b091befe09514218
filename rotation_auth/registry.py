"""
Session registry for the Rotation Auth service.

The registry maps a session family ``(user_id, family_id)`` to the single
refresh token id (jti) currently honoured for it. Every entry expires after
the refresh token lifetime, so the registry and the token never disagree on
how long a session lives. A missing entry means the family was revoked or
has expired.

Two backends are provided: Redis for shared deployments and an in-process
store for single-process use and tests.
"""
import abc
import logging
import math
import threading
import time
from contextlib import contextmanager
from typing import Callable, Dict, Iterator, Optional, Tuple
from urllib.parse import quote

import redis
from redis.exceptions import RedisError

from rotation_auth.config.settings import (REGISTRY_BACKEND_MEMORY, Settings,
                                           get_settings)
from rotation_auth.exceptions import RegistryUnavailableError

# Configure logger
logger = logging.getLogger(__name__)

DEFAULT_KEY_PREFIX = "RT"

# Sets KEYS[1] to ARGV[2] with a TTL of ARGV[3] seconds only while it still holds ARGV[1]
COMPARE_AND_SWAP_SCRIPT = """
local current = redis.call('GET', KEYS[1])
if current == ARGV[1] then
    redis.call('SET', KEYS[1], ARGV[2], 'EX', tonumber(ARGV[3]))
    return 1
end
return 0
"""


# PUBLIC_INTERFACE
def make_registry_key(user_id: str, family_id: str, prefix: str = DEFAULT_KEY_PREFIX) -> str:
    """
    Build the registry key for a session family.

    Both parts are percent-escaped so a ':' inside a user id can never make two
    different families share a key. Plain ids such as ``alice`` and UUIDs are
    left unchanged, giving ``RT:alice:<family uuid>``.

    Args:
        user_id: User identifier (token subject).
        family_id: Family id of the session.
        prefix: Key namespace.

    Returns:
        Registry key string.
    """
    if not user_id or not family_id:
        raise ValueError("user_id and family_id are required for a registry key")
    return f"{prefix}:{quote(str(user_id), safe='')}:{quote(str(family_id), safe='')}"


def _check_ttl(ttl_seconds: int) -> int:
    ttl_seconds = int(ttl_seconds)
    if ttl_seconds <= 0:
        raise ValueError("Registry TTL must be a positive number of seconds")
    return ttl_seconds


class SessionRegistry(abc.ABC):
    """Key-value store of the current refresh token id per session family."""

    def __init__(self, key_prefix: str = DEFAULT_KEY_PREFIX):
        self.key_prefix = key_prefix

    def key_for(self, user_id: str, family_id: str) -> str:
        return make_registry_key(user_id, family_id, self.key_prefix)

    # PUBLIC_INTERFACE
    @abc.abstractmethod
    def put(self, user_id: str, family_id: str, jti: str, ttl_seconds: int) -> None:
        """Store ``jti`` for the family, unconditionally overwriting any previous value."""

    # PUBLIC_INTERFACE
    @abc.abstractmethod
    def get(self, user_id: str, family_id: str) -> Optional[str]:
        """Return the current jti for the family, or None if there is no live entry."""

    # PUBLIC_INTERFACE
    @abc.abstractmethod
    def delete(self, user_id: str, family_id: str) -> None:
        """Remove the family entry. Deleting an absent entry succeeds."""

    # PUBLIC_INTERFACE
    @abc.abstractmethod
    def ttl(self, user_id: str, family_id: str) -> Optional[int]:
        """Return the remaining lifetime of the entry in seconds, or None if absent or not expiring."""

    # PUBLIC_INTERFACE
    @abc.abstractmethod
    def compare_and_swap(
        self,
        user_id: str,
        family_id: str,
        expected_jti: str,
        new_jti: str,
        ttl_seconds: int,
    ) -> bool:
        """
        Atomically replace the jti only while the entry still holds ``expected_jti``.

        Returns:
            True if the swap happened, False if the entry changed or vanished.
        """

    def ping(self) -> bool:
        """Check whether the backing store is reachable."""
        return True


class RedisSessionRegistry(SessionRegistry):
    """
    Session registry stored in Redis.

    Entries are plain string keys with a native Redis expiry. Connection
    failures and timeouts are reported as ``RegistryUnavailableError``.
    """

    def __init__(self, client: "redis.Redis", key_prefix: str = DEFAULT_KEY_PREFIX):
        """
        Initialize the registry.

        Args:
            client: Redis client created with ``decode_responses=True``.
            key_prefix: Key namespace.
        """
        super().__init__(key_prefix)
        self.client = client
        self._cas_script = client.register_script(COMPARE_AND_SWAP_SCRIPT)

    @classmethod
    def from_url(
        cls,
        url: str,
        socket_timeout: Optional[float] = None,
        key_prefix: str = DEFAULT_KEY_PREFIX,
    ) -> "RedisSessionRegistry":
        """Create a registry with its own client for ``url``."""
        client = redis.Redis.from_url(
            url,
            decode_responses=True,
            socket_timeout=socket_timeout,
            socket_connect_timeout=socket_timeout,
        )
        return cls(client, key_prefix=key_prefix)

    @contextmanager
    def _translate_errors(self, operation: str) -> Iterator[None]:
        try:
            yield
        except RedisError as e:
            logger.error(f"Session registry {operation} failed: {str(e)}")
            raise RegistryUnavailableError(f"Session registry unavailable during {operation}") from e

    def put(self, user_id: str, family_id: str, jti: str, ttl_seconds: int) -> None:
        key = self.key_for(user_id, family_id)
        ttl_seconds = _check_ttl(ttl_seconds)
        with self._translate_errors("put"):
            self.client.set(key, jti, ex=ttl_seconds)

    def get(self, user_id: str, family_id: str) -> Optional[str]:
        key = self.key_for(user_id, family_id)
        with self._translate_errors("get"):
            value = self.client.get(key)
        if isinstance(value, bytes):
            value = value.decode("utf-8")
        return value

    def delete(self, user_id: str, family_id: str) -> None:
        key = self.key_for(user_id, family_id)
        with self._translate_errors("delete"):
            self.client.delete(key)

    def ttl(self, user_id: str, family_id: str) -> Optional[int]:
        key = self.key_for(user_id, family_id)
        with self._translate_errors("ttl"):
            remaining = self.client.ttl(key)
        # -2: no such key
        if remaining is None or remaining == -2:
            return None
        # -1: key without expiry, which put() never writes
        if remaining == -1:
            logger.warning(f"Session registry key {key} has no expiry")
            return None
        return remaining

    def compare_and_swap(
        self,
        user_id: str,
        family_id: str,
        expected_jti: str,
        new_jti: str,
        ttl_seconds: int,
    ) -> bool:
        key = self.key_for(user_id, family_id)
        ttl_seconds = _check_ttl(ttl_seconds)
        with self._translate_errors("compare_and_swap"):
            swapped = self._cas_script(keys=[key], args=[expected_jti, new_jti, ttl_seconds])
        return int(swapped) == 1

    def ping(self) -> bool:
        try:
            return bool(self.client.ping())
        except RedisError as e:
            logger.warning(f"Session registry ping failed: {str(e)}")
            return False


class InMemorySessionRegistry(SessionRegistry):
    """
    Session registry held in process memory.

    Suitable for a single process only. Expiry is evaluated lazily against the
    injected clock whenever an entry is touched.
    """

    def __init__(
        self,
        clock: Optional[Callable[[], float]] = None,
        key_prefix: str = DEFAULT_KEY_PREFIX,
    ):
        super().__init__(key_prefix)
        self._clock = clock or time.time
        self._entries: Dict[str, Tuple[str, float]] = {}
        self._lock = threading.Lock()

    def __len__(self) -> int:
        with self._lock:
            self._purge_expired()
            return len(self._entries)

    def _purge_expired(self) -> None:
        now = self._clock()
        expired = [key for key, (_, expires_at) in self._entries.items() if expires_at <= now]
        for key in expired:
            del self._entries[key]

    def _live_entry(self, key: str) -> Optional[Tuple[str, float]]:
        entry = self._entries.get(key)
        if entry is None:
            return None
        if entry[1] <= self._clock():
            del self._entries[key]
            return None
        return entry

    def put(self, user_id: str, family_id: str, jti: str, ttl_seconds: int) -> None:
        key = self.key_for(user_id, family_id)
        ttl_seconds = _check_ttl(ttl_seconds)
        with self._lock:
            self._entries[key] = (jti, self._clock() + ttl_seconds)

    def get(self, user_id: str, family_id: str) -> Optional[str]:
        key = self.key_for(user_id, family_id)
        with self._lock:
            entry = self._live_entry(key)
        return entry[0] if entry else None

    def delete(self, user_id: str, family_id: str) -> None:
        key = self.key_for(user_id, family_id)
        with self._lock:
            self._entries.pop(key, None)

    def ttl(self, user_id: str, family_id: str) -> Optional[int]:
        key = self.key_for(user_id, family_id)
        with self._lock:
            entry = self._live_entry(key)
            if entry is None:
                return None
            return int(math.ceil(entry[1] - self._clock()))

    def compare_and_swap(
        self,
        user_id: str,
        family_id: str,
        expected_jti: str,
        new_jti: str,
        ttl_seconds: int,
    ) -> bool:
        key = self.key_for(user_id, family_id)
        ttl_seconds = _check_ttl(ttl_seconds)
        with self._lock:
            entry = self._live_entry(key)
            if entry is None or entry[0] != expected_jti:
                return False
            self._entries[key] = (new_jti, self._clock() + ttl_seconds)
            return True


# PUBLIC_INTERFACE
def create_session_registry(
    settings: Optional[Settings] = None,
    clock: Optional[Callable[[], float]] = None,
) -> SessionRegistry:
    """
    Create the session registry selected by ``REGISTRY_BACKEND``.

    Args:
        settings: Settings to read. Defaults to the global settings.
        clock: Time source for entry expiry. Only the in-memory backend uses
            it; Redis expires keys on its own clock.

    Returns:
        A SessionRegistry implementation.
    """
    settings = settings or get_settings()
    if settings.REGISTRY_BACKEND == REGISTRY_BACKEND_MEMORY:
        logger.warning("Using in-memory session registry; sessions are not shared between processes")
        return InMemorySessionRegistry(clock=clock, key_prefix=settings.REGISTRY_KEY_PREFIX)

    logger.info("Using Redis session registry")
    return RedisSessionRegistry.from_url(
        settings.REDIS_URL,
        socket_timeout=settings.REDIS_SOCKET_TIMEOUT_SECONDS,
        key_prefix=settings.REGISTRY_KEY_PREFIX,
    )
