from __future__ import annotations

import threading
from abc import ABC, abstractmethod
from typing import Dict, Tuple

import psycopg

from . import checkpoints
from .db import connect, execute
from .exceptions import StorageError
from .models import Event
from .utils import stable_json_dumps

SQL_SCHEMA = (
    """
CREATE TABLE IF NOT EXISTS consumed_events (
  source_name     TEXT        NOT NULL,
  event_id        BIGINT      NOT NULL,
  payload_json    JSONB       NOT NULL,
  stored_at_utc   TIMESTAMPTZ NOT NULL DEFAULT now(),
  PRIMARY KEY (source_name, event_id)
);
""",
    """
CREATE TABLE IF NOT EXISTS consumer_cursors (
  source_name     TEXT        PRIMARY KEY,
  last_event_id   BIGINT      NOT NULL DEFAULT 0,
  updated_at_utc  TIMESTAMPTZ NOT NULL DEFAULT now()
);
""",
)

SQL_INSERT = """
INSERT INTO consumed_events (source_name, event_id, payload_json)
VALUES (%s, %s, %s::jsonb)
ON CONFLICT (source_name, event_id) DO NOTHING
"""


class EventStorage(ABC):
    """Durable event sink plus per-source watermark.

    store_event must tolerate being called twice for the same (source, id):
    a crash between storing a batch and saving its cursor replays the batch.
    """

    @abstractmethod
    def store_event(self, event: Event) -> bool:
        """Persist the event; True if it was new, False if already stored."""
        ...

    @abstractmethod
    def get_cursor(self, source_name: str) -> int:
        ...

    @abstractmethod
    def save_cursor(self, source_name: str, last_event_id: int) -> bool:
        ...


class PostgresEventStorage(EventStorage):
    """One short transaction per call; each call is durable on return."""

    def __init__(self, dsn: str):
        self.dsn = dsn

    def ensure_schema(self) -> None:
        try:
            with connect(self.dsn) as conn:
                for statement in SQL_SCHEMA:
                    execute(conn, statement)
        except psycopg.Error as e:
            raise StorageError(f"Schema creation failed: {e}") from e

    def store_event(self, event: Event) -> bool:
        try:
            with connect(self.dsn) as conn:
                inserted = execute(
                    conn,
                    SQL_INSERT,
                    (event.source_name, event.id, stable_json_dumps(dict(event.payload))),
                )
        except psycopg.Error as e:
            raise StorageError(f"Storing event {event.source_name}:{event.id} failed: {e}") from e
        return inserted > 0

    def get_cursor(self, source_name: str) -> int:
        try:
            with connect(self.dsn) as conn:
                return checkpoints.get_cursor(conn, source_name)
        except psycopg.Error as e:
            raise StorageError(f"Reading cursor for {source_name} failed: {e}") from e

    def save_cursor(self, source_name: str, last_event_id: int) -> bool:
        try:
            with connect(self.dsn) as conn:
                checkpoints.save_cursor(conn, source_name, last_event_id)
        except psycopg.Error as e:
            raise StorageError(f"Saving cursor for {source_name} failed: {e}") from e
        return True


class InMemoryEventStorage(EventStorage):
    def __init__(self) -> None:
        self.events: Dict[Tuple[str, int], Event] = {}
        self.cursors: Dict[str, int] = {}
        self._mutex = threading.Lock()

    def store_event(self, event: Event) -> bool:
        key = (event.source_name, event.id)
        with self._mutex:
            if key in self.events:
                return False
            self.events[key] = event
            return True

    def get_cursor(self, source_name: str) -> int:
        with self._mutex:
            return self.cursors.get(source_name, 0)

    def save_cursor(self, source_name: str, last_event_id: int) -> bool:
        with self._mutex:
            self.cursors[source_name] = max(self.cursors.get(source_name, 0), last_event_id)
            return True

    def events_for(self, source_name: str) -> list[Event]:
        with self._mutex:
            return sorted((e for (s, _), e in self.events.items() if s == source_name), key=lambda e: e.id)
