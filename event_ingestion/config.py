from __future__ import annotations

import json
import os
from dataclasses import dataclass, field

from .exceptions import ConfigError
from .models import SourceConfig

STORAGE_BACKENDS = ("postgres", "memory")
COORDINATION_BACKENDS = ("redis", "memory")


def env(name: str, default: str | None = None) -> str | None:
    v = os.getenv(name)
    return v if v is not None else default


def _env_number(name: str, default: str, cast):
    raw = env(name, default) or default
    try:
        return cast(raw)
    except ValueError as e:
        raise ConfigError(f"{name} must be a number, got {raw!r}") from e


@dataclass(frozen=True)
class Settings:
    sources: tuple[SourceConfig, ...] = field(default_factory=tuple)
    log_level: str = "INFO"

    # Polling cadence
    min_request_interval_ms: int = 200
    round_delay_sec: float = 1.0
    lock_ttl_sec: int = 30

    # Fetch request
    fetch_timeout_sec: float = 5.0
    fetch_page_size: int = 1000
    user_agent: str = "event-ingestion/0.1"

    storage_backend: str = "postgres"
    coordination_backend: str = "redis"
    database_url: str | None = None
    redis_url: str = "redis://localhost:6379/0"


def parse_sources(raw: str | None) -> tuple[SourceConfig, ...]:
    """Parse the EVENT_SOURCES JSON list of {"name", "url"} descriptors."""
    if not raw or not raw.strip():
        return ()
    try:
        data = json.loads(raw)
    except json.JSONDecodeError as e:
        raise ConfigError(f"EVENT_SOURCES is not valid JSON: {e}") from e
    if not isinstance(data, list):
        raise ConfigError("EVENT_SOURCES must be a JSON list.")

    sources: list[SourceConfig] = []
    seen: set[str] = set()
    for i, item in enumerate(data):
        if not isinstance(item, dict):
            raise ConfigError(f"EVENT_SOURCES[{i}] must be an object with name and url.")
        name = str(item.get("name") or "").strip()
        url = str(item.get("url") or "").strip()
        if not name or not url:
            raise ConfigError(f"EVENT_SOURCES[{i}] is missing name or url.")
        if name in seen:
            raise ConfigError(f"Duplicate source name: {name}")
        seen.add(name)
        sources.append(SourceConfig(name=name, url=url))
    return tuple(sources)


def load_settings() -> Settings:
    storage_backend = (env("STORAGE_BACKEND", "postgres") or "postgres").lower()
    if storage_backend not in STORAGE_BACKENDS:
        raise ConfigError(f"STORAGE_BACKEND must be one of {STORAGE_BACKENDS}, got {storage_backend!r}")

    coordination_backend = (env("COORDINATION_BACKEND", "redis") or "redis").lower()
    if coordination_backend not in COORDINATION_BACKENDS:
        raise ConfigError(
            f"COORDINATION_BACKEND must be one of {COORDINATION_BACKENDS}, got {coordination_backend!r}"
        )

    db = env("DATABASE_URL") or env("POSTGRES_DSN") or None
    if storage_backend == "postgres" and not db:
        raise ConfigError("Missing DATABASE_URL (or POSTGRES_DSN).")

    return Settings(
        sources=parse_sources(env("EVENT_SOURCES")),
        log_level=env("LOG_LEVEL", "INFO") or "INFO",
        min_request_interval_ms=_env_number("MIN_REQUEST_INTERVAL_MS", "200", int),
        round_delay_sec=_env_number("ROUND_DELAY_SEC", "1.0", float),
        lock_ttl_sec=_env_number("LOCK_TTL_SEC", "30", int),
        fetch_timeout_sec=_env_number("FETCH_TIMEOUT_SEC", "5.0", float),
        fetch_page_size=_env_number("FETCH_PAGE_SIZE", "1000", int),
        user_agent=env("HTTP_USER_AGENT", "event-ingestion/0.1") or "event-ingestion/0.1",
        storage_backend=storage_backend,
        coordination_backend=coordination_backend,
        database_url=db,
        redis_url=env("REDIS_URL", "redis://localhost:6379/0") or "redis://localhost:6379/0",
    )
