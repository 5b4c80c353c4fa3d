class IngestionError(RuntimeError):
    """Base error for the event consumer."""


class ConfigError(IngestionError):
    """Raised when settings cannot be loaded or are inconsistent."""


class FetchError(IngestionError):
    """A source could not deliver a usable batch."""


class TransportError(FetchError):
    """Connection failure, timeout, or unexpected HTTP status."""


class ApiRequestError(TransportError):
    def __init__(self, status_code: int, url: str):
        super().__init__(f"API request to {url} failed with status {status_code}")
        self.status_code = status_code
        self.url = url


class InvalidApiResponseError(FetchError):
    """Response body is not the expected `{"events": [...]}` document."""


class StorageError(IngestionError):
    """Event or cursor persistence failed."""
