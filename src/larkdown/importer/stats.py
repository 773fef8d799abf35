"""Run statistics and console progress for the import pipeline.

Both classes are shared by the phase-2 worker threads, so every mutation
happens under a lock.
"""

from __future__ import annotations

import sys
import threading
from typing import TextIO

from larkdown.models import ConversionWarning, ImportSummary


class ImportStats:
    """Lock-guarded counters accumulated over one import run.

    Counter names are the fields of :class:`~larkdown.models.ImportSummary`.
    """

    def __init__(self) -> None:
        self._lock = threading.Lock()
        self._summary = ImportSummary()

    def add(self, name: str, value: int = 1) -> None:
        """Add *value* to the integer counter *name*."""
        with self._lock:
            current = getattr(self._summary, name)
            if not isinstance(current, int) or isinstance(current, bool):
                raise AttributeError(f"{name!r} is not a counter")
            setattr(self._summary, name, current + value)

    def set(self, name: str, value: object) -> None:
        with self._lock:
            if not hasattr(self._summary, name):
                raise AttributeError(f"unknown summary field {name!r}")
            setattr(self._summary, name, value)

    def get(self, name: str) -> object:
        with self._lock:
            return getattr(self._summary, name)

    def extend_warnings(self, warnings: list[ConversionWarning]) -> None:
        with self._lock:
            self._summary.warnings.extend(warnings)

    def snapshot(self) -> ImportSummary:
        """A copy of the current counters."""
        with self._lock:
            copy = ImportSummary(**{
                name: getattr(self._summary, name)
                for name in self._summary.__dataclass_fields__
            })
            copy.warnings = list(self._summary.warnings)
            return copy


class ConsoleReporter:
    """Serialised, verbosity-gated progress lines.

    Parameters
    ----------
    verbose:
        Print :meth:`detail` lines as well as :meth:`info` lines.
    stream:
        Destination; *stdout* by default.
    quiet:
        Suppress everything, including :meth:`info`.
    """

    def __init__(
        self,
        verbose: bool = False,
        stream: TextIO | None = None,
        quiet: bool = False,
    ) -> None:
        self.verbose = verbose
        self.quiet = quiet
        self._stream = stream
        self._lock = threading.Lock()

    def _write(self, line: str) -> None:
        stream = self._stream if self._stream is not None else sys.stdout
        with self._lock:
            stream.write(line + "\n")
            stream.flush()

    def info(self, message: str) -> None:
        """A line shown unless quiet."""
        if not self.quiet:
            self._write(message)

    def detail(self, message: str) -> None:
        """A line shown only in verbose mode."""
        if self.verbose and not self.quiet:
            self._write(message)

    def summary(self, summary: ImportSummary) -> None:
        """Print the end-of-run summary."""
        if self.quiet:
            return
        lines = [
            f"Document: {summary.url or summary.document_id}",
            f"Segments: {summary.segments}  Blocks: {summary.blocks}  "
            f"Phase-1 API calls: {summary.api_calls_phase1}",
            f"Diagrams: {summary.diagram_success}/{summary.diagram_total} imported"
            f" ({summary.diagram_failed} failed, {summary.diagram_retries} retries,"
            f" {summary.diagram_placeholder_failed} placeholders failed)",
            f"Tables: {summary.table_success}/{summary.table_total} filled"
            f" ({summary.table_failed} failed)",
            f"Images: {summary.images_uploaded} uploaded, {summary.images_skipped} skipped,"
            f" {summary.images_failed} failed",
            f"Rate-limit hits: {summary.rate_limit_hits}",
            f"Timing: phase 1 {summary.phase1_seconds:.2f}s,"
            f" phase 2 {summary.phase2_seconds:.2f}s,"
            f" phase 3 {summary.phase3_seconds:.2f}s",
        ]
        if summary.phase3_ran:
            lines.append(
                f"Fallback: {summary.fallback_success} diagrams replaced by code blocks,"
                f" {summary.fallback_failed} failed"
            )
        if summary.warnings:
            lines.append(f"Warnings: {len(summary.warnings)}")
            if self.verbose:
                lines.extend(f"  [{w.code}] {w.message}" for w in summary.warnings)
        self._write("\n".join(lines))
