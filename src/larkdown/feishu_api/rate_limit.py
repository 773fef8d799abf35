"""Client-side request pacing.

Feishu enforces per-app quotas (roughly five requests per second for most
docx endpoints).  :class:`TokenBucket` keeps the transport under that
rate so that the phase-2 worker pools do not immediately trip the
server-side limiter.  It refills at *rate_rps* tokens per second up to a
*burst* ceiling; a caller that finds the bucket empty sleeps for the
deficit.
"""

from __future__ import annotations

import threading
import time


class TokenBucket:
    """Thread-safe token bucket.

    Parameters
    ----------
    rate_rps:
        Refill rate in tokens per second.
    burst:
        Maximum number of tokens held.
    """

    __slots__ = ("_lock", "burst", "last_refill", "rate", "tokens")

    def __init__(self, rate_rps: float, burst: int = 5) -> None:
        if rate_rps <= 0:
            raise ValueError(f"rate_rps must be > 0, got {rate_rps}")
        if burst < 1:
            raise ValueError(f"burst must be >= 1, got {burst}")

        self.rate: float = rate_rps
        self.burst: int = burst
        self.tokens: float = float(burst)
        self.last_refill: float = time.monotonic()
        self._lock = threading.Lock()

    def _refill(self, now: float) -> None:
        self.tokens = min(self.burst, self.tokens + (now - self.last_refill) * self.rate)
        self.last_refill = now

    def acquire(self, tokens: int = 1) -> float:
        """Take *tokens*, sleeping if the bucket is short.

        Returns the seconds slept (``0.0`` when tokens were available).
        """
        with self._lock:
            self._refill(time.monotonic())
            if self.tokens >= tokens:
                self.tokens -= tokens
                return 0.0
            wait = (tokens - self.tokens) / self.rate
            # Reserve the deficit so concurrent callers queue behind us.
            self.tokens -= tokens

        time.sleep(wait)
        return wait
