from __future__ import annotations

from dataclasses import dataclass
from typing import Any

import requests

from .exceptions import TransportError


@dataclass
class HttpConfig:
    user_agent: str
    timeout: float = 5.0


class HttpClient:
    """Thin wrapper over a shared requests.Session.

    No retries: a failed request is retried on the next polling round, which
    the request-time store already throttles.
    """

    def __init__(self, cfg: HttpConfig, session: requests.Session | None = None):
        self.cfg = cfg
        self.session = session or requests.Session()
        self.session.headers.update({"User-Agent": cfg.user_agent, "Accept": "application/json"})

    def request(self, method: str, url: str, **kwargs: Any) -> requests.Response:
        timeout = kwargs.pop("timeout", self.cfg.timeout)
        try:
            return self.session.request(method, url, timeout=timeout, **kwargs)
        except requests.Timeout as e:
            raise TransportError(f"Request to {url} timed out after {timeout}s") from e
        except requests.RequestException as e:
            raise TransportError(f"Request to {url} failed: {e}") from e

    def get(self, url: str, **kwargs: Any) -> requests.Response:
        return self.request("GET", url, **kwargs)

    def close(self) -> None:
        self.session.close()
