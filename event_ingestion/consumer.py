from __future__ import annotations

import logging
import threading
from typing import Callable, Optional

from .locks import LockManager
from .logging_utils import get_logger, log_json
from .models import Event, OutcomeState, RoundStats, SourceOutcome
from .rate_limit import RequestTimeStore
from .source_base import EventSource
from .storage import EventStorage
from .utils import now_ms


class EventConsumer:
    """Polls every registered source in turn, one round at a time.

    Per source: rate-limit gate, then a `source:cursor` lock, then fetch,
    store and cursor advance. Failures are contained to the source that
    raised them; the lock is always released.
    """

    def __init__(
        self,
        storage: EventStorage,
        lock_manager: LockManager,
        request_time_store: RequestTimeStore,
        min_request_interval_ms: float = 200,
        round_delay_sec: float = 1.0,
        lock_ttl_sec: Optional[int] = None,
        clock: Callable[[], float] = now_ms,
        logger: Optional[logging.Logger] = None,
    ):
        self.storage = storage
        self.lock_manager = lock_manager
        self.request_time_store = request_time_store
        self.min_request_interval_ms = min_request_interval_ms
        self.round_delay_sec = round_delay_sec
        self.lock_ttl_sec = lock_ttl_sec
        self.clock = clock
        self.logger = logger or get_logger(__name__)
        self._sources: list[EventSource] = []
        self._stop = threading.Event()

    def register_source(self, source: EventSource) -> None:
        self._sources.append(source)

    @property
    def sources(self) -> tuple[EventSource, ...]:
        return tuple(self._sources)

    def stop(self) -> None:
        self._stop.set()

    def run(self, stop_event: Optional[threading.Event] = None) -> None:
        if stop_event is not None:
            self._stop = stop_event

        if not self._sources:
            log_json(self.logger, logging.WARNING, "consumer_no_sources", message="No event sources configured. Consumer will exit.")
            return

        log_json(
            self.logger,
            logging.INFO,
            "consumer_started",
            sources=[s.name for s in self._sources],
            min_request_interval_ms=self.min_request_interval_ms,
            round_delay_sec=self.round_delay_sec,
        )

        rounds = 0
        while not self._stop.is_set():
            self.run_one_round()
            rounds += 1
            self._stop.wait(self.round_delay_sec)

        log_json(self.logger, logging.INFO, "consumer_stopped", rounds=rounds)

    def run_one_round(self) -> RoundStats:
        stats = RoundStats()
        for source in self._sources:
            if self._stop.is_set():
                break
            stats.outcomes.append(self._process_source(source))
        return stats

    def _process_source(self, source: EventSource) -> SourceOutcome:
        name = source.name
        now = self.clock()
        last_request = self.request_time_store.get_last_request_time(name)
        if now - last_request < self.min_request_interval_ms:
            log_json(self.logger, logging.DEBUG, "source_rate_limited", source=name, since_last_ms=now - last_request)
            return SourceOutcome(source_name=name, state=OutcomeState.RATE_LIMITED)

        cursor = self.storage.get_cursor(name)
        lock_key = f"{name}:{cursor}"
        if not self.lock_manager.acquire(lock_key, self.lock_ttl_sec):
            log_json(self.logger, logging.DEBUG, "source_lock_contended", source=name, lock_key=lock_key)
            return SourceOutcome(source_name=name, state=OutcomeState.LOCK_CONTENDED, cursor_before=cursor, cursor_after=cursor)

        outcome = SourceOutcome(source_name=name, state=OutcomeState.FAILED, cursor_before=cursor, cursor_after=cursor)
        try:
            # Counted before the call so a hanging source is still throttled.
            try:
                self.request_time_store.update_last_request_time(name, now)
            except Exception as e:
                outcome.error = str(e)
                log_json(self.logger, logging.ERROR, "request_time_update_failed", source=name, error=str(e), error_type=type(e).__name__)
                return outcome

            try:
                events = source.fetch_events(cursor)
            except Exception as e:
                outcome.error = str(e)
                log_json(self.logger, logging.ERROR, "fetch_failed", source=name, cursor=cursor, error=str(e), error_type=type(e).__name__)
                return outcome

            outcome.fetched = len(events)
            log_json(self.logger, logging.INFO, "events_fetched", source=name, count=len(events), cursor=cursor)

            try:
                self._commit(name, cursor, events, outcome)
            except Exception as e:
                outcome.error = str(e)
                log_json(
                    self.logger,
                    logging.ERROR,
                    "store_failed",
                    source=name,
                    cursor=cursor,
                    stored=outcome.stored,
                    replayed=outcome.replayed,
                    error=str(e),
                    error_type=type(e).__name__,
                )
                return outcome

            outcome.state = OutcomeState.COMMITTED
            return outcome
        finally:
            self._release(lock_key)

    def _commit(self, name: str, cursor: int, events: list[Event], outcome: SourceOutcome) -> None:
        max_id = cursor
        for event in events:
            if event.id <= cursor:
                outcome.skipped += 1
                log_json(self.logger, logging.WARNING, "event_out_of_order", source=name, event_id=event.id, cursor=cursor)
                continue
            if self.storage.store_event(event):
                outcome.stored += 1
            else:
                outcome.replayed += 1
            max_id = max(max_id, event.id)

        if max_id > cursor:
            self.storage.save_cursor(name, max_id)
            outcome.cursor_after = max_id
            log_json(
                self.logger,
                logging.INFO,
                "cursor_advanced",
                source=name,
                cursor=cursor,
                new_cursor=max_id,
                stored=outcome.stored,
                replayed=outcome.replayed,
            )

    def _release(self, lock_key: str) -> None:
        try:
            released = self.lock_manager.release(lock_key)
        except Exception as e:
            log_json(self.logger, logging.WARNING, "lock_release_failed", lock_key=lock_key, error=str(e))
            return
        if not released:
            log_json(self.logger, logging.DEBUG, "lock_already_gone", lock_key=lock_key)
