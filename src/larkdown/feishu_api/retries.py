"""Retry engine: error classification, backoff and the retry loop.

Every call site that needs retry semantics goes through
:func:`do_with_retry` with a :class:`RetryConfig`; backoff math lives here
and nowhere else.

Classification
--------------
:func:`classify_error` sorts an exception into one of four classes,
checking the typed error hierarchy first and falling back to message
patterns for errors raised by foreign code:

* **permanent** -- syntax/parse errors, invalid parameters.  Never retried.
* **rate limited** -- HTTP 429 or Feishu code ``99991400``.  Retried; when
  ``retry_on_rate_limit`` is set it does not count against ``max_retries``.
* **retryable** -- 5xx-class and transport failures.  Retried and counted.
* **unknown** -- anything else.  Not retried.

Backoff
-------
With an ``x-ogw-ratelimit-reset`` header the wait is the reset time with
±10 % jitter, capped at :data:`MAX_WAIT_SECONDS`.  Without it, full jitter:
a uniform draw from ``[0, min(2**attempt, MAX_WAIT_SECONDS))``.
"""

from __future__ import annotations

import random
import threading
from collections.abc import Callable, Mapping
from dataclasses import dataclass, field
from typing import Generic, TypeVar

from larkdown.errors import (
    LarkdownCancelledError,
    LarkdownError,
    LarkdownNetworkError,
    LarkdownPermanentError,
    LarkdownRateLimitError,
    LarkdownRetryableServerError,
    LarkdownRetryExhaustedError,
    LarkdownUnknownError,
)
from larkdown.observability import get_logger

log = get_logger("larkdown.retries")

T = TypeVar("T")

MAX_WAIT_SECONDS = 30.0
DEFAULT_MAX_TOTAL_ATTEMPTS = 20
RATE_LIMIT_RESET_HEADER = "x-ogw-ratelimit-reset"

_RATE_LIMIT_PATTERNS: tuple[str, ...] = ("429", "rate limit", "99991400", "frequency limit")
_PERMANENT_PATTERNS: tuple[str, ...] = (
    "parse error",
    "syntax",
    "invalid request parameter",
    "invalid param",
)
_RETRYABLE_PATTERNS: tuple[str, ...] = (
    "500",
    "502",
    "503",
    "504",
    "internal error",
    "bad gateway",
    "service unavailable",
    "timeout",
)


# ---------------------------------------------------------------------------
# Classification
# ---------------------------------------------------------------------------

@dataclass(frozen=True)
class RetryDecision:
    """Outcome of :func:`classify_error`.

    Attributes
    ----------
    should_retry:
        Whether another attempt may be made.
    is_real_failure:
        Whether the attempt counts against ``max_retries``.
    """

    should_retry: bool
    is_real_failure: bool


def is_rate_limit(exc: BaseException) -> bool:
    if isinstance(exc, LarkdownRateLimitError):
        return True
    message = str(exc).lower()
    return any(p in message for p in _RATE_LIMIT_PATTERNS)


def is_permanent(exc: BaseException) -> bool:
    """Default permanent-error predicate."""
    if isinstance(exc, LarkdownPermanentError):
        return True
    if isinstance(exc, LarkdownError):
        return False
    message = str(exc).lower()
    return any(p in message for p in _PERMANENT_PATTERNS)


def classify_error(exc: BaseException, retry_on_rate_limit: bool = False) -> RetryDecision:
    """Classify *exc* for the retry loop.

    Examples
    --------
    >>> classify_error(RuntimeError("HTTP 503 service unavailable"))
    RetryDecision(should_retry=True, is_real_failure=True)
    >>> classify_error(RuntimeError("something odd"))
    RetryDecision(should_retry=False, is_real_failure=True)
    """
    if isinstance(exc, LarkdownPermanentError):
        return RetryDecision(should_retry=False, is_real_failure=True)
    if isinstance(exc, LarkdownRateLimitError):
        return RetryDecision(should_retry=True, is_real_failure=not retry_on_rate_limit)
    if isinstance(exc, (LarkdownRetryableServerError, LarkdownNetworkError)):
        return RetryDecision(should_retry=True, is_real_failure=True)
    if isinstance(exc, LarkdownUnknownError):
        return RetryDecision(should_retry=False, is_real_failure=True)

    message = str(exc).lower()
    if any(p in message for p in _RATE_LIMIT_PATTERNS):
        return RetryDecision(should_retry=True, is_real_failure=not retry_on_rate_limit)
    if any(p in message for p in _PERMANENT_PATTERNS):
        return RetryDecision(should_retry=False, is_real_failure=True)
    if any(p in message for p in _RETRYABLE_PATTERNS):
        return RetryDecision(should_retry=True, is_real_failure=True)
    return RetryDecision(should_retry=False, is_real_failure=True)


# ---------------------------------------------------------------------------
# Backoff
# ---------------------------------------------------------------------------

def retry_wait_seconds(headers: Mapping[str, str] | None, attempt: int) -> float:
    """Seconds to wait before attempt ``attempt + 1``.

    Parameters
    ----------
    headers:
        Response headers of the failed call, if any.
    attempt:
        Number of attempts made so far (1 after the first failure).
    """
    reset = _reset_hint(headers)
    if reset is not None:
        return min(reset * (0.9 + random.random() * 0.2), MAX_WAIT_SECONDS)
    ceiling = min(2.0 ** attempt, MAX_WAIT_SECONDS)
    return random.random() * ceiling


def _reset_hint(headers: Mapping[str, str] | None) -> float | None:
    if not headers:
        return None
    raw = None
    for key, value in headers.items():
        if key.lower() == RATE_LIMIT_RESET_HEADER:
            raw = value
            break
    if raw is None:
        return None
    try:
        reset = float(raw)
    except (TypeError, ValueError):
        return None
    return reset if reset > 0 else None


def linear_wait(step: float) -> Callable[[Mapping[str, str] | None, int], float]:
    """Wait function giving ``step * attempt`` seconds, ignoring headers."""

    def wait(headers: Mapping[str, str] | None, attempt: int) -> float:
        return step * attempt

    return wait


# ---------------------------------------------------------------------------
# Retry loop
# ---------------------------------------------------------------------------

@dataclass
class RetryConfig:
    """Parameters of one :func:`do_with_retry` call.

    Attributes
    ----------
    max_retries:
        Real failures tolerated before giving up.
    max_total_attempts:
        Hard ceiling on attempts regardless of classification.  Values
        ``<= 0`` mean :data:`DEFAULT_MAX_TOTAL_ATTEMPTS`.
    retry_on_rate_limit:
        Exclude rate-limit responses from the real-failure count.
    is_permanent:
        Predicate that short-circuits the loop when it returns true.
    on_retry:
        ``(attempt, exc, wait_seconds)`` callback before each wait.
    cancel_event:
        Set to abort; observed before each attempt and during waits.
    wait:
        ``(headers, attempt) -> seconds`` backoff function.
    """

    max_retries: int = 3
    max_total_attempts: int = DEFAULT_MAX_TOTAL_ATTEMPTS
    retry_on_rate_limit: bool = False
    is_permanent: Callable[[BaseException], bool] = is_permanent
    on_retry: Callable[[int, BaseException, float], None] | None = None
    cancel_event: threading.Event | None = None
    wait: Callable[[Mapping[str, str] | None, int], float] = field(
        default=lambda headers, attempt: retry_wait_seconds(headers, attempt)
    )

    @property
    def attempt_ceiling(self) -> int:
        return self.max_total_attempts if self.max_total_attempts > 0 else DEFAULT_MAX_TOTAL_ATTEMPTS


@dataclass
class RetryResult(Generic[T]):
    """Outcome of :func:`do_with_retry`."""

    value: T | None = None
    error: BaseException | None = None
    attempts: int = 0
    rate_limit_hits: int = 0

    @property
    def ok(self) -> bool:
        return self.error is None


def _cancelled(config: RetryConfig) -> bool:
    return config.cancel_event is not None and config.cancel_event.is_set()


def do_with_retry(fn: Callable[[], T], config: RetryConfig | None = None) -> RetryResult[T]:
    """Call *fn* until it succeeds or the retry policy gives up.

    Exceptions derived from :class:`Exception` raised by *fn* are
    classified, never propagated; the final one (or the engine's own
    exhaustion/cancellation error) is returned in :attr:`RetryResult.error`.

    Parameters
    ----------
    fn:
        Zero-argument callable performing one attempt.
    config:
        Retry policy; defaults to :class:`RetryConfig()`.

    Returns
    -------
    RetryResult
        ``value`` on success, otherwise ``error``; always the number of
        attempts made and rate-limit responses seen.
    """
    config = config or RetryConfig()
    ceiling = config.attempt_ceiling
    result: RetryResult[T] = RetryResult()
    failures = 0

    while result.attempts < ceiling:
        if _cancelled(config):
            result.error = LarkdownCancelledError(
                "retry cancelled", context={"attempts": result.attempts},
            )
            return result

        result.attempts += 1
        try:
            result.value = fn()
        except Exception as exc:
            result.error = exc
        else:
            result.error = None
            return result

        exc = result.error
        if config.is_permanent(exc):
            return result

        rate_limited = is_rate_limit(exc)
        if rate_limited:
            result.rate_limit_hits += 1
        decision = classify_error(exc, config.retry_on_rate_limit)
        if decision.is_real_failure:
            failures += 1
        if not decision.should_retry:
            return result
        if failures > config.max_retries:
            result.error = LarkdownRetryExhaustedError(
                f"failed after {config.max_retries} retries: {exc}",
                context={
                    "attempts": result.attempts,
                    "rate_limit_hits": result.rate_limit_hits,
                    "limit": config.max_retries,
                },
                cause=exc,
            )
            return result
        if result.attempts >= ceiling:
            break

        headers = exc.headers if isinstance(exc, LarkdownError) else None
        wait = max(0.0, config.wait(headers, result.attempts))
        if config.on_retry is not None:
            config.on_retry(result.attempts, exc, wait)
        log.debug(
            "retrying after failure",
            extra={
                "extra_fields": {
                    "attempt": result.attempts,
                    "wait_seconds": round(wait, 3),
                    "rate_limited": rate_limited,
                    "error": str(exc),
                }
            },
        )

        if config.cancel_event is not None:
            if config.cancel_event.wait(wait):
                result.error = LarkdownCancelledError(
                    "retry wait cancelled", context={"attempts": result.attempts}, cause=exc,
                )
                return result
        elif wait > 0:
            threading.Event().wait(wait)

    last = result.error
    result.error = LarkdownRetryExhaustedError(
        f"reached max total attempts {ceiling}: {last}",
        context={
            "attempts": ceiling,
            "rate_limit_hits": result.rate_limit_hits,
            "limit": ceiling,
        },
        cause=last if isinstance(last, Exception) else None,
    )
    return result


def call_with_retry(fn: Callable[[], T], config: RetryConfig | None = None) -> T:
    """Like :func:`do_with_retry` but return the value or raise the error."""
    result = do_with_retry(fn, config)
    if result.error is not None:
        raise result.error
    return result.value  # type: ignore[return-value]
