"""Metrics hook protocol and no-op default implementation.

larkdown reports counters and timings for HTTP requests, retries, block
creation and the phase-2 tasks.  The default :class:`NoopMetricsHook`
discards everything; pass any object satisfying :class:`MetricsHook` as
``LarkdownConfig.metrics`` to route them to StatsD, Prometheus, etc.

Emitted metric names:

* ``larkdown.requests_total``            -- counter, tags ``method``, ``status``
* ``larkdown.request_duration_ms``       -- timing
* ``larkdown.rate_limit_wait_ms``        -- timing (client-side pacing)
* ``larkdown.rate_limited_total``        -- counter (server 429 / 99991400)
* ``larkdown.retries_total``             -- counter, tag ``reason``
* ``larkdown.blocks_created_total``      -- counter
* ``larkdown.diagram_success_total``     -- counter
* ``larkdown.diagram_failure_total``     -- counter
* ``larkdown.table_fill_total``          -- counter, tag ``outcome``
* ``larkdown.fallback_total``            -- counter, tag ``outcome``
* ``larkdown.conversion_warnings_total`` -- counter
* ``larkdown.phase_duration_ms``         -- timing, tag ``phase``
"""

from __future__ import annotations

from typing import Protocol, runtime_checkable


@runtime_checkable
class MetricsHook(Protocol):
    """Protocol that any metrics backend must satisfy.

    Implementations must be thread-safe: phase-2 workers report
    concurrently.
    """

    def increment(
        self,
        name: str,
        value: int = 1,
        tags: dict[str, str] | None = None,
    ) -> None:
        """Increment a counter metric by *value*."""
        ...

    def timing(
        self,
        name: str,
        ms: float,
        tags: dict[str, str] | None = None,
    ) -> None:
        """Record a duration in milliseconds."""
        ...

    def gauge(
        self,
        name: str,
        value: float,
        tags: dict[str, str] | None = None,
    ) -> None:
        """Set a gauge metric to an absolute value."""
        ...


class NoopMetricsHook:
    """Default metrics implementation that silently discards all data points."""

    __slots__ = ()

    def increment(
        self,
        name: str,
        value: int = 1,
        tags: dict[str, str] | None = None,
    ) -> None:
        pass

    def timing(
        self,
        name: str,
        ms: float,
        tags: dict[str, str] | None = None,
    ) -> None:
        pass

    def gauge(
        self,
        name: str,
        value: float,
        tags: dict[str, str] | None = None,
    ) -> None:
        pass
