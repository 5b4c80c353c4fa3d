from __future__ import annotations

from typing import Any

from ..exceptions import ApiRequestError, InvalidApiResponseError
from ..http_client import HttpClient, HttpConfig
from ..models import Event
from ..source_base import EventSource
from ..utils import parse_event_id

DEFAULT_PAGE_SIZE = 1000
DEFAULT_TIMEOUT_SEC = 5.0


class ApiEventSource(EventSource):
    """JSON feed polled as `GET {url}?lastId=<cursor>&limit=<n>`."""

    def __init__(
        self,
        name: str,
        url: str,
        client: HttpClient | None = None,
        page_size: int = DEFAULT_PAGE_SIZE,
        timeout: float = DEFAULT_TIMEOUT_SEC,
    ):
        self._name = name
        self.url = url
        self.client = client or HttpClient(HttpConfig(user_agent="event-ingestion/0.1", timeout=timeout))
        self.page_size = page_size
        self.timeout = timeout

    @property
    def name(self) -> str:
        return self._name

    def fetch_events(self, since_id: int) -> list[Event]:
        resp = self.client.get(
            self.url,
            params={"lastId": since_id, "limit": self.page_size},
            timeout=self.timeout,
        )
        if resp.status_code != 200:
            raise ApiRequestError(resp.status_code, self.url)

        try:
            data = resp.json()
        except ValueError as e:
            raise InvalidApiResponseError(f"Response from {self.url} is not valid JSON") from e

        entries = data.get("events") if isinstance(data, dict) else None
        if not isinstance(entries, list):
            raise InvalidApiResponseError(f"Invalid response format from API for URL: {self.url}")

        return [ev for ev in (self._to_event(e) for e in entries) if ev is not None]

    def _to_event(self, entry: Any) -> Event | None:
        # Entries without a usable numeric id are dropped, not fatal.
        if not isinstance(entry, dict):
            return None
        event_id = parse_event_id(entry.get("id"))
        if event_id is None:
            return None
        return Event(id=event_id, source_name=self._name, payload=dict(entry))
