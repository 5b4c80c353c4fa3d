from __future__ import annotations

import logging
import threading
from abc import ABC, abstractmethod
from typing import Callable, Dict, Tuple
from uuid import uuid4

from redis import Redis
from redis.exceptions import RedisError

from .logging_utils import get_logger, log_json
from .utils import now_ms

LOCK_PREFIX = "event_consumer_lock:"
DEFAULT_TTL_SEC = 30

# Delete the key only if it still carries our token.
RELEASE_SCRIPT = """
if redis.call("get", KEYS[1]) == ARGV[1] then
    return redis.call("del", KEYS[1])
else
    return 0
end
"""


class LockManager(ABC):
    @abstractmethod
    def acquire(self, key: str, ttl_sec: int | None = None) -> bool:
        """Create the claim if absent; expires after ttl_sec. False if already held."""
        ...

    @abstractmethod
    def release(self, key: str) -> bool:
        """Drop the claim; True if something was actually removed."""
        ...


class RedisLockManager(LockManager):
    """SET NX EX claims with owner-token compare-and-delete release."""

    def __init__(self, client: Redis, ttl_sec: int = DEFAULT_TTL_SEC, prefix: str = LOCK_PREFIX):
        self.client = client
        self.ttl_sec = ttl_sec
        self.prefix = prefix
        self._tokens: Dict[str, str] = {}
        self._release_script = client.register_script(RELEASE_SCRIPT)
        self._log = get_logger(__name__)

    def _key(self, key: str) -> str:
        return f"{self.prefix}{key}"

    def acquire(self, key: str, ttl_sec: int | None = None) -> bool:
        ttl = ttl_sec or self.ttl_sec
        token = uuid4().hex
        try:
            ok = self.client.set(self._key(key), token, nx=True, ex=ttl)
        except RedisError as e:
            log_json(self._log, logging.WARNING, "lock_acquire_failed", lock_key=key, error=str(e))
            return False
        if not ok:
            return False
        self._tokens[key] = token
        return True

    def release(self, key: str) -> bool:
        token = self._tokens.pop(key, None)
        if token is None:
            return False
        return bool(self._release_script(keys=[self._key(key)], args=[token]))


class InMemoryLockManager(LockManager):
    """Process-local claims with TTL expiry, for single-process runs and tests."""

    def __init__(self, ttl_sec: int = DEFAULT_TTL_SEC, clock: Callable[[], float] = now_ms):
        self.ttl_sec = ttl_sec
        self.clock = clock
        self._held: Dict[str, Tuple[str, float]] = {}
        self._tokens: Dict[str, str] = {}
        self._mutex = threading.Lock()

    def acquire(self, key: str, ttl_sec: int | None = None) -> bool:
        ttl = ttl_sec or self.ttl_sec
        now = self.clock()
        with self._mutex:
            held = self._held.get(key)
            if held is not None and held[1] > now:
                return False
            token = uuid4().hex
            self._held[key] = (token, now + ttl * 1000.0)
            self._tokens[key] = token
            return True

    def release(self, key: str) -> bool:
        with self._mutex:
            token = self._tokens.pop(key, None)
            held = self._held.get(key)
            if token is None or held is None or held[0] != token:
                return False
            del self._held[key]
            return held[1] > self.clock()

    def is_held(self, key: str) -> bool:
        with self._mutex:
            held = self._held.get(key)
            return held is not None and held[1] > self.clock()
