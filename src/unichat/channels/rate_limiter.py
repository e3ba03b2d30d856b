"""Fixed-window rate limiting keyed by operation name."""

import logging
import threading
import time
from collections.abc import Callable
from typing import Optional

from unichat.channels.models import RateLimitResult

logger = logging.getLogger(__name__)


def _monotonic_ms() -> int:
    return int(time.monotonic() * 1000)


class RateLimiter:
    """Fixed-window request counter.

    Each key owns a window that opens on the first ``check`` after the
    previous window has fully elapsed. Within a window the first
    ``max_attempts`` checks are allowed; later ones are denied until the
    window resets.

    Used both for per-user inbound throttling and for repeated invocations
    of the same outbound operation. Instances are created and owned by the
    caller; there is no process-wide limiter.
    """

    def __init__(
        self,
        max_attempts: int = 10,
        window_ms: int = 60_000,
        clock: Optional[Callable[[], int]] = None,
    ):
        """Initialize rate limiter.

        Args:
            max_attempts: Checks allowed per window
            window_ms: Window length in milliseconds
            clock: Millisecond clock (default: monotonic time)

        Example:
            max_attempts=5, window_ms=60000
            = 5 checks per key per minute
        """
        if max_attempts < 1:
            raise ValueError("max_attempts must be at least 1")
        if window_ms < 1:
            raise ValueError("window_ms must be at least 1")

        self._max_attempts = max_attempts
        self._window_ms = window_ms
        self._clock = clock or _monotonic_ms

        # Windows: {key: (window_start_ms, count)}
        self._windows: dict[str, tuple[int, int]] = {}
        self._last_sweep = self._clock()

        self._lock = threading.Lock()

    @property
    def max_attempts(self) -> int:
        return self._max_attempts

    @property
    def window_ms(self) -> int:
        return self._window_ms

    def check(self, key: str) -> RateLimitResult:
        """Record an attempt for ``key`` and report whether it is allowed.

        Args:
            key: Operation or user key

        Returns:
            RateLimitResult with allowed flag and milliseconds until reset
        """
        with self._lock:
            now = self._clock()
            start, count = self._windows.get(key, (now, 0))

            if now - start >= self._window_ms:
                start, count = now, 0

            if count >= self._max_attempts:
                retry_after = start + self._window_ms - now
                logger.debug(f"Rate limit hit for {key}, retry in {retry_after}ms")
                return RateLimitResult(allowed=False, retry_after_ms=max(1, retry_after))

            self._windows[key] = (start, count + 1)
            return RateLimitResult(allowed=True, retry_after_ms=0)

    def reset(self, key: str) -> None:
        """Forget the window for a key.

        Args:
            key: Operation or user key
        """
        with self._lock:
            self._windows.pop(key, None)

    def purge(self) -> int:
        """Drop keys whose window has elapsed.

        Returns:
            Number of keys removed
        """
        with self._lock:
            now = self._clock()
            expired = [
                key
                for key, (start, _) in self._windows.items()
                if now - start >= self._window_ms
            ]
            for key in expired:
                del self._windows[key]

        if expired:
            logger.info(f"Purged {len(expired)} expired rate limit windows")
        return len(expired)

    def sweep(self) -> int:
        """Purge expired windows if a full window has passed since the last sweep.

        Safe to call before every check; long-running callers use it to keep
        one-off senders from accumulating.

        Returns:
            Number of keys removed
        """
        with self._lock:
            now = self._clock()
            if now - self._last_sweep < self._window_ms:
                return 0
            self._last_sweep = now
        return self.purge()

    def __len__(self) -> int:
        return len(self._windows)
