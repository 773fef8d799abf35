"""Three-phase Markdown import pipeline.

* :func:`parse_segments` -- split raw Markdown into import segments.
* :class:`ImportOrchestrator` -- sequential creation, concurrent diagram
  and table processing, diagram fallback.
* :class:`ImportStats`, :class:`ConsoleReporter` -- thread-safe counters
  and progress output.
"""

from __future__ import annotations

from .orchestrator import ImportOrchestrator, fallback_code
from .segments import parse_segments
from .stats import ConsoleReporter, ImportStats

__all__ = [
    "ConsoleReporter",
    "ImportOrchestrator",
    "ImportStats",
    "fallback_code",
    "parse_segments",
]
