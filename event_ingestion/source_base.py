from __future__ import annotations

from abc import ABC, abstractmethod

from .models import Event


class EventSource(ABC):
    @property
    @abstractmethod
    def name(self) -> str:
        ...

    @abstractmethod
    def fetch_events(self, since_id: int) -> list[Event]:
        """Return events after `since_id` in source order.

        The batch may still contain ids <= since_id; the consumer filters them.
        Raises FetchError subclasses on transport or format failures.
        """
        ...
