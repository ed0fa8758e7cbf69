"""Exception taxonomy for journey_sync.

- ``RemoteAPIError``: non-2xx response from the remote workflow engine.
- ``RateLimitError``: the transient (HTTP 429) case, retried by the
  rate limiter.
- ``RecordDataError``: a local Record that cannot be synced as-is.
- ``ConfigError``: invalid or incomplete configuration.
"""

from __future__ import annotations


class JourneySyncError(Exception):
    """Base exception for all journey_sync errors."""


class RemoteAPIError(JourneySyncError):
    """Error returned by the remote workflow API.

    Attributes:
        status_code: HTTP status of the failed response, if any.
        retry_after: ``Retry-After`` hint in seconds, if the server sent one.
    """

    def __init__(
        self,
        message: str,
        status_code: int | None = None,
        retry_after: int | None = None,
    ) -> None:
        super().__init__(message)
        self.status_code = status_code
        self.retry_after = retry_after


class RateLimitError(RemoteAPIError):
    """The remote API rejected the call with HTTP 429."""

    def __init__(
        self, message: str = "Rate limited (429)", retry_after: int | None = None
    ) -> None:
        super().__init__(message, status_code=429, retry_after=retry_after)


class RecordDataError(JourneySyncError):
    """A Record is missing required data or is otherwise malformed."""


class ConfigError(JourneySyncError, ValueError):
    """Configuration is missing or invalid."""
