"""Retry policy for calls to a throttled remote API.

- ``RateLimiter.execute()`` retries an async operation while it fails with
  a rate-limit signal (HTTP 429), sleeping with exponential backoff plus
  jitter, or for exactly the server's ``Retry-After`` hint when present.
  Any other failure propagates on the first attempt.  When the attempt
  budget runs out the last failure is re-raised unchanged.
- ``RequestThrottle`` enforces a minimum interval between successive
  requests issued through one API facade.

Sleeping goes through an injected coroutine function taking milliseconds,
so tests can substitute a no-op.
"""

from __future__ import annotations

import asyncio
import logging
import random
import time
from typing import TYPE_CHECKING, Any, Awaitable, Callable, TypeVar

if TYPE_CHECKING:
    from journey_sync.config_schema import RateLimitConfig

T = TypeVar("T")
logger = logging.getLogger(__name__)

SleepFn = Callable[[float], Awaitable[None]]

DEFAULT_BASE_DELAY_MS = 1000
DEFAULT_MAX_DELAY_MS = 60000
DEFAULT_MAX_RETRIES = 5


async def sleep_ms(delay_ms: float) -> None:
    """Suspend the current task for *delay_ms* milliseconds."""
    await asyncio.sleep(delay_ms / 1000)


# ---------------------------------------------------------------------------
# Error classification
# ---------------------------------------------------------------------------


def is_rate_limit_error(exc: BaseException) -> bool:
    """Return ``True`` if *exc* signals HTTP 429.

    Looks at a ``status_code`` / ``status`` attribute on the exception and
    at ``response.status_code`` (as on ``requests.HTTPError``). Only when
    none of those carries a status is ``429`` in the message trusted.
    """
    statuses = [getattr(exc, attr, None) for attr in ("status_code", "status")]
    response = getattr(exc, "response", None)
    if response is not None:
        statuses.append(getattr(response, "status_code", None))
    statuses = [status for status in statuses if status is not None]
    if statuses:
        return 429 in statuses
    return "429" in str(exc)


def parse_retry_after(value: Any) -> int | None:
    if value is None or isinstance(value, bool):
        return None
    if isinstance(value, (int, float)):
        return int(value)
    try:
        return int(str(value).strip())
    except ValueError:
        return None


def extract_retry_after(exc: BaseException) -> int | None:
    """Return the ``Retry-After`` hint carried by *exc*, in seconds.

    Looks at an explicit ``retry_after`` attribute first, then at the
    ``Retry-After`` header of ``exc.response``.  Non-numeric header values
    (e.g. HTTP dates) are ignored.
    """
    explicit = parse_retry_after(getattr(exc, "retry_after", None))
    if explicit is not None:
        return explicit

    response = getattr(exc, "response", None)
    headers = getattr(response, "headers", None)
    if not headers:
        return None
    raw = headers.get("Retry-After")
    if raw is None:
        raw = headers.get("retry-after")
    return parse_retry_after(raw)


# ---------------------------------------------------------------------------
# Rate limiter
# ---------------------------------------------------------------------------


class RateLimiter:
    """Exponential-backoff retry wrapper for rate-limited remote calls.

    Configuration is fixed at construction; the limiter keeps no state
    between ``execute()`` calls.

    Args:
        base_delay_ms: Initial backoff unit.
        max_delay_ms: Backoff ceiling.
        max_retries: Total attempt cap (including the first call).
        sleep: Coroutine function awaited with the delay in milliseconds.
        jitter: ``(low, high) -> float`` source of jitter.
    """

    def __init__(
        self,
        base_delay_ms: float = DEFAULT_BASE_DELAY_MS,
        max_delay_ms: float = DEFAULT_MAX_DELAY_MS,
        max_retries: int = DEFAULT_MAX_RETRIES,
        *,
        sleep: SleepFn | None = None,
        jitter: Callable[[float, float], float] | None = None,
    ) -> None:
        if max_retries < 1:
            raise ValueError(f"max_retries must be >= 1, got {max_retries}")
        if base_delay_ms < 0 or max_delay_ms < 0:
            raise ValueError("backoff delays must be non-negative")
        self._base_delay_ms = base_delay_ms
        self._max_delay_ms = max_delay_ms
        self._max_retries = max_retries
        self._sleep = sleep or sleep_ms
        self._jitter = jitter or random.uniform

    @classmethod
    def from_config(
        cls, config: RateLimitConfig, **kwargs: Any
    ) -> RateLimiter:
        """Build a limiter from the ``rate_limit`` config section."""
        return cls(
            base_delay_ms=config.base_delay_ms,
            max_delay_ms=config.max_delay_ms,
            max_retries=config.max_retries,
            **kwargs,
        )

    @property
    def base_delay_ms(self) -> float:
        return self._base_delay_ms

    @property
    def max_delay_ms(self) -> float:
        return self._max_delay_ms

    @property
    def max_retries(self) -> int:
        return self._max_retries

    def get_config(self) -> dict[str, float]:
        return {
            "base_delay_ms": self._base_delay_ms,
            "max_delay_ms": self._max_delay_ms,
            "max_retries": self._max_retries,
        }

    # ------------------------------------------------------------------
    # Delay calculation
    # ------------------------------------------------------------------

    def backoff_floor(self, attempt: int) -> float:
        """Non-jittered delay for *attempt* (0-indexed), capped."""
        return min(
            self._base_delay_ms * (2**attempt), self._max_delay_ms
        )

    def calculate_delay(
        self, attempt: int, retry_after: int | None = None
    ) -> float:
        """Delay in milliseconds before retrying after *attempt* failed.

        A positive *retry_after* (seconds) wins over the exponential
        schedule.  Otherwise ``base * 2**attempt`` plus uniform jitter in
        ``[0, base]``, capped at ``max_delay_ms``.
        """
        if retry_after is not None and retry_after > 0:
            return min(retry_after * 1000, self._max_delay_ms)

        exponential = self._base_delay_ms * (2**attempt)
        jitter = self._jitter(0, self._base_delay_ms)
        return min(exponential + jitter, self._max_delay_ms)

    # ------------------------------------------------------------------
    # Execution
    # ------------------------------------------------------------------

    async def execute(
        self, operation: Callable[[], Awaitable[T]], context: str = ""
    ) -> T:
        """Await *operation*, retrying while it is rate limited.

        Args:
            operation: Zero-argument coroutine function.
            context: Label used in log messages (e.g. ``"createEntity"``).

        Returns:
            The operation's result.

        Raises:
            Exception: The operation's own exception, unchanged, when it is
                not a rate-limit error or when attempts are exhausted.
        """
        attempt = 0
        while True:
            try:
                return await operation()
            except Exception as exc:
                attempt += 1
                if (
                    not is_rate_limit_error(exc)
                    or attempt >= self._max_retries
                ):
                    raise

                retry_after = extract_retry_after(exc)
                delay = self.calculate_delay(attempt - 1, retry_after)
                logger.warning(
                    "Rate limited [%s], retry %d/%d after %dms (retry-after=%s)",
                    context,
                    attempt,
                    self._max_retries,
                    round(delay),
                    retry_after,
                )
                await self._sleep(delay)


class RequestThrottle:
    """Minimum spacing between successive remote requests.

    ``last_request_time`` is the only mutable field; callers issue
    requests sequentially, so it is read and written without locking.

    Args:
        interval_ms: Minimum gap between two requests.
        clock: Monotonic clock in seconds.
        sleep: Coroutine function awaited with the wait in milliseconds.
    """

    def __init__(
        self,
        interval_ms: float = 250,
        *,
        clock: Callable[[], float] = time.monotonic,
        sleep: SleepFn | None = None,
    ) -> None:
        self.interval_ms = interval_ms
        self.last_request_time: float | None = None
        self._clock = clock
        self._sleep = sleep or sleep_ms

    async def wait(self) -> None:
        """Sleep until the interval since the previous request has passed."""
        if self.last_request_time is not None and self.interval_ms > 0:
            elapsed_ms = (self._clock() - self.last_request_time) * 1000
            remaining = self.interval_ms - elapsed_ms
            if remaining > 0:
                await self._sleep(remaining)
        self.last_request_time = self._clock()
