from __future__ import annotations

from redis import Redis

from .config import Settings
from .consumer import EventConsumer
from .http_client import HttpClient, HttpConfig
from .locks import InMemoryLockManager, LockManager, RedisLockManager
from .rate_limit import InMemoryRequestTimeStore, RedisRequestTimeStore, RequestTimeStore
from .sources.api_source import ApiEventSource
from .storage import EventStorage, InMemoryEventStorage, PostgresEventStorage


def build_sources(settings: Settings, client: HttpClient | None = None) -> list[ApiEventSource]:
    client = client or HttpClient(HttpConfig(user_agent=settings.user_agent, timeout=settings.fetch_timeout_sec))
    return [
        ApiEventSource(
            name=cfg.name,
            url=cfg.url,
            client=client,
            page_size=settings.fetch_page_size,
            timeout=settings.fetch_timeout_sec,
        )
        for cfg in settings.sources
    ]


def build_storage(settings: Settings) -> EventStorage:
    if settings.storage_backend == "memory":
        return InMemoryEventStorage()
    return PostgresEventStorage(settings.database_url or "")


def build_coordination(settings: Settings) -> tuple[LockManager, RequestTimeStore]:
    if settings.coordination_backend == "memory":
        return InMemoryLockManager(ttl_sec=settings.lock_ttl_sec), InMemoryRequestTimeStore()
    client = Redis.from_url(settings.redis_url, socket_connect_timeout=5, socket_timeout=5)
    return RedisLockManager(client, ttl_sec=settings.lock_ttl_sec), RedisRequestTimeStore(client)


def build_consumer(settings: Settings, storage: EventStorage | None = None) -> EventConsumer:
    lock_manager, request_time_store = build_coordination(settings)
    consumer = EventConsumer(
        storage=storage or build_storage(settings),
        lock_manager=lock_manager,
        request_time_store=request_time_store,
        min_request_interval_ms=settings.min_request_interval_ms,
        round_delay_sec=settings.round_delay_sec,
        lock_ttl_sec=settings.lock_ttl_sec,
    )
    for source in build_sources(settings):
        consumer.register_source(source)
    return consumer
