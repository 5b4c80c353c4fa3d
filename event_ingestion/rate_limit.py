from __future__ import annotations

import threading
from abc import ABC, abstractmethod
from typing import Dict

from redis import Redis

REQUEST_TIME_PREFIX = "last_request_time:"


class RequestTimeStore(ABC):
    @abstractmethod
    def get_last_request_time(self, source_name: str) -> float:
        """Milliseconds since the epoch of the last attempt; 0.0 if never polled."""
        ...

    @abstractmethod
    def update_last_request_time(self, source_name: str, timestamp_ms: float) -> None:
        ...


class RedisRequestTimeStore(RequestTimeStore):
    def __init__(self, client: Redis, prefix: str = REQUEST_TIME_PREFIX):
        self.client = client
        self.prefix = prefix

    def get_last_request_time(self, source_name: str) -> float:
        value = self.client.get(f"{self.prefix}{source_name}")
        if value is None:
            return 0.0
        if isinstance(value, bytes):
            value = value.decode("utf-8")
        return float(value)

    def update_last_request_time(self, source_name: str, timestamp_ms: float) -> None:
        self.client.set(f"{self.prefix}{source_name}", repr(float(timestamp_ms)))


class InMemoryRequestTimeStore(RequestTimeStore):
    def __init__(self) -> None:
        self._times: Dict[str, float] = {}
        self._mutex = threading.Lock()

    def get_last_request_time(self, source_name: str) -> float:
        with self._mutex:
            return self._times.get(source_name, 0.0)

    def update_last_request_time(self, source_name: str, timestamp_ms: float) -> None:
        with self._mutex:
            self._times[source_name] = float(timestamp_ms)
