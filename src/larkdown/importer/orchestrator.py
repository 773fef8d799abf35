"""Three-phase Markdown import.

Phase 1 -- sequential creation
    Segments are created in document order.  Markdown segments are
    converted and created in batches, children recursively under their
    just-created parent; table blocks are queued as :class:`TableTask`.
    Equation segments become a text block with one equation element.
    Diagram segments create an empty board placeholder and are queued as
    :class:`DiagramTask`.  A failed placeholder is skipped; a failed batch
    aborts the run with :class:`~larkdown.errors.LarkdownImportError`.

Phase 2 -- bounded concurrent processing
    Two thread pools (diagrams, tables) run side by side.  Each diagram
    import goes through the retry engine with syntax errors treated as
    permanent; each table fetches its cell ids and fills them, both steps
    retried on rate limiting with linear backoff.

Phase 3 -- degrade and recover
    Every diagram that still failed has its placeholder deleted and
    replaced, at the same position, by a code block holding the source.
    Positions are looked up fresh and processed from the highest index
    down so that earlier deletions do not shift later ones.  A retried
    delete locates the placeholder again before it deletes anything.

Every create request carries a fresh ``client_token`` that its retries
reuse, so a create the server applied but answered with an error is not
applied twice.
"""

from __future__ import annotations

import threading
import time
import uuid
from collections.abc import Callable
from concurrent.futures import ThreadPoolExecutor, wait
from typing import TypeVar

from larkdown.config import LarkdownConfig
from larkdown.converter.block_builder import board_block, code_block, equation_block
from larkdown.converter.languages import PLAINTEXT
from larkdown.converter.md_to_block import MarkdownToBlockConverter
from larkdown.errors import (
    LarkdownDiagramSyntaxError,
    LarkdownError,
    LarkdownImportError,
)
from larkdown.feishu_api.boards import BoardAPI
from larkdown.feishu_api.documents import DocumentAPI
from larkdown.feishu_api.retries import (
    RetryConfig,
    call_with_retry,
    do_with_retry,
    is_rate_limit,
    linear_wait,
)
from larkdown.models import (
    BlockNode,
    DiagramTask,
    ImportSummary,
    Segment,
    SegmentKind,
    TableTask,
)
from larkdown.observability import NoopMetricsHook, get_logger
from larkdown.utils.chunk import chunk_blocks

from .segments import parse_segments
from .stats import ConsoleReporter, ImportStats

log = get_logger("larkdown.importer")

T = TypeVar("T")

DEFAULT_TITLE = "Untitled"

# Phase-1 and phase-3 calls retry server errors and rate limiting.
PHASE1_MAX_RETRIES = 3

FALLBACK_HEADERS: dict[str, str] = {
    "mermaid": "%% mermaid diagram (import failed)",
    "plantuml": "' plantuml diagram (import failed)",
}


def fallback_code(syntax: str, source: str) -> str:
    """Content of the code block that replaces a failed diagram."""
    header = FALLBACK_HEADERS.get(syntax, f"{syntax} diagram (import failed)")
    return f"{header}\n{source}"


def is_diagram_syntax_error(exc: BaseException) -> bool:
    return isinstance(exc, LarkdownDiagramSyntaxError)


def _not_rate_limited(exc: BaseException) -> bool:
    return not is_rate_limit(exc)

def _client_token() -> str:
    """Idempotency key for one create request, reused across its retries."""
    return str(uuid.uuid4())



class ImportOrchestrator:
    """Drive one Markdown import through the three phases.

    Parameters
    ----------
    config:
        Batch size, worker counts, retry budgets and throttles.
    documents:
        Docx API wrapper.
    boards:
        Whiteboard API wrapper.
    converter:
        Markdown converter; its image uploader (if any) is used as is.
    reporter:
        Progress output; a silent reporter when omitted.
    cancel_event:
        Set it to stop retry loops promptly.
    """

    def __init__(
        self,
        config: LarkdownConfig,
        documents: DocumentAPI,
        boards: BoardAPI,
        converter: MarkdownToBlockConverter,
        reporter: ConsoleReporter | None = None,
        cancel_event: threading.Event | None = None,
    ) -> None:
        self._config = config
        self._documents = documents
        self._boards = boards
        self._converter = converter
        self._reporter = reporter or ConsoleReporter(quiet=True)
        self._cancel = cancel_event or threading.Event()
        self._metrics = config.metrics if config.metrics is not None else NoopMetricsHook()
        self._stats = ImportStats()
        self._diagrams: list[DiagramTask] = []
        self._tables: list[TableTask] = []

    # -- public API --------------------------------------------------------

    @property
    def diagram_tasks(self) -> list[DiagramTask]:
        return list(self._diagrams)

    @property
    def table_tasks(self) -> list[TableTask]:
        return list(self._tables)

    def run(
        self,
        markdown: str,
        document_id: str | None = None,
        title: str = DEFAULT_TITLE,
        folder: str | None = None,
    ) -> ImportSummary:
        """Import *markdown* into *document_id*, creating a document if absent.

        Returns
        -------
        ImportSummary
            Statistics of the run; partial failures of phases 2 and 3 are
            counted there, not raised.

        Raises
        ------
        LarkdownImportError
            When a phase-1 batch creation fails.
        """
        self._stats = ImportStats()
        self._diagrams = []
        self._tables = []

        t0 = time.monotonic()
        if not document_id:
            document_id = self._call(
                lambda: self._documents.create_document(title or DEFAULT_TITLE, folder),
            )
            self._reporter.info(f"Created document: {document_id}")
        self._stats.set("document_id", document_id)

        segments = parse_segments(markdown)
        self._stats.set("segments", len(segments))
        self._phase1(document_id, segments)
        self._stats.set("phase1_seconds", time.monotonic() - t0)

        t1 = time.monotonic()
        self._cooldown()
        self._phase2(document_id)
        self._stats.set("phase2_seconds", time.monotonic() - t1)

        failed = [task for task in self._diagrams if not task.succeeded]
        if failed:
            t2 = time.monotonic()
            self._phase3(document_id, failed)
            self._stats.set("phase3_seconds", time.monotonic() - t2)

        summary = self._stats.snapshot()
        self._metrics.timing("larkdown.phase_duration_ms", summary.phase1_seconds * 1000,
                             tags={"phase": "1"})
        self._metrics.timing("larkdown.phase_duration_ms", summary.phase2_seconds * 1000,
                             tags={"phase": "2"})
        if summary.phase3_ran:
            self._metrics.timing("larkdown.phase_duration_ms", summary.phase3_seconds * 1000,
                                 tags={"phase": "3"})
        log.info(
            "Import finished",
            extra={"extra_fields": {"op": "import", **summary.to_dict(), "warnings": len(summary.warnings)}},
        )
        return summary

    # -- helpers -----------------------------------------------------------

    def _retry_config(self) -> RetryConfig:
        return RetryConfig(
            max_retries=PHASE1_MAX_RETRIES,
            max_total_attempts=self._config.retry_max_total_attempts,
            cancel_event=self._cancel,
        )

    def _call(self, fn: Callable[[], T]) -> T:
        """One phase-1 API call, retried on transient failures."""
        self._stats.add("api_calls_phase1")
        return call_with_retry(fn, self._retry_config())

    def _abort(self, message: str, exc: Exception, **context: object) -> LarkdownImportError:
        summary = self._stats.snapshot()
        context["summary"] = summary.to_dict()
        log.error(
            "Import aborted",
            extra={"extra_fields": {"op": "import", "error": str(exc), **context}},
        )
        return LarkdownImportError(f"{message}: {exc}", context=dict(context), cause=exc)

    # -- phase 1 -----------------------------------------------------------

    def _phase1(self, document_id: str, segments: list[Segment]) -> None:
        for index, segment in enumerate(segments):
            if segment.kind is SegmentKind.MARKDOWN:
                self._import_markdown(document_id, index, segment)
            elif segment.kind is SegmentKind.EQUATION:
                self._import_equation(document_id, index, segment)
            else:
                self._import_diagram_placeholder(document_id, segment)

    def _import_markdown(self, document_id: str, index: int, segment: Segment) -> None:
        result = self._converter.convert(segment.content)
        self._stats.extend_warnings(result.warnings)
        if result.warnings:
            self._metrics.increment("larkdown.conversion_warnings_total", len(result.warnings))
            for warning in result.warnings:
                self._reporter.detail(f"[warning] {warning.code}: {warning.message}")
        self._stats.add("images_uploaded", result.images.uploaded)
        self._stats.add("images_skipped", result.images.skipped)
        self._stats.add("images_failed", result.images.failed)
        try:
            self._create_nodes(document_id, document_id, result.nodes)
        except LarkdownError as exc:
            raise self._abort(
                "block creation failed", exc, document_id=document_id, segment_index=index,
                blocks_created=self._stats.get("blocks"),
            ) from exc

    def _create_nodes(self, document_id: str, parent_id: str, nodes: list[BlockNode]) -> None:
        for batch in chunk_blocks(nodes, self._config.batch_size):
            token = _client_token()
            created = self._call(
                lambda batch=batch, token=token: self._documents.create_children(
                    document_id, parent_id, [node.block for node in batch], client_token=token,
                ),
            )
            if len(created) != len(batch):
                raise LarkdownImportError(
                    f"created {len(created)} blocks for a batch of {len(batch)}",
                    context={"document_id": document_id, "parent_id": parent_id},
                )
            self._stats.add("blocks", len(created))
            self._metrics.increment("larkdown.blocks_created_total", len(created))

            for node, block in zip(batch, created):
                block_id = block["block_id"]
                if node.table is not None:
                    self._tables.append(TableTask(
                        index=len(self._tables), table_block_id=block_id, data=node.table,
                    ))
                if node.children:
                    self._create_nodes(document_id, block_id, node.children)

    def _import_equation(self, document_id: str, index: int, segment: Segment) -> None:
        try:
            token = _client_token()
            created = self._call(lambda: self._documents.create_children(
                document_id, document_id, [equation_block(segment.content)], client_token=token,
            ))
        except LarkdownError as exc:
            raise self._abort(
                "equation creation failed", exc, document_id=document_id, segment_index=index,
                blocks_created=self._stats.get("blocks"),
            ) from exc
        self._stats.add("blocks", len(created))

    def _import_diagram_placeholder(self, document_id: str, segment: Segment) -> None:
        syntax = segment.kind.value
        ordinal = self._stats.get("diagram_total")
        self._stats.add("diagram_total")
        try:
            token = _client_token()
            created = self._call(lambda: self._documents.create_children(
                document_id, document_id, [board_block()], client_token=token,
            ))
            block = created[0]
            whiteboard_id = block.get("board", {}).get("token", "")
            if not whiteboard_id:
                raise LarkdownImportError(
                    "board block created without a whiteboard token",
                    context={"document_id": document_id, "block_id": block.get("block_id")},
                )
        except (LarkdownError, IndexError) as exc:
            self._stats.add("diagram_placeholder_failed")
            log.warning(
                "Diagram placeholder creation failed",
                extra={"extra_fields": {"op": "placeholder", "syntax": syntax, "error": str(exc)}},
            )
            self._reporter.detail(f"[diagram {ordinal + 1}] placeholder failed: {exc}")
            return

        self._stats.add("blocks")
        self._diagrams.append(DiagramTask(
            index=ordinal,
            syntax=syntax,
            source=segment.content,
            block_id=block["block_id"],
            whiteboard_id=whiteboard_id,
        ))

    # -- phase 2 -----------------------------------------------------------

    def _cooldown(self) -> None:
        calls = self._stats.get("api_calls_phase1")
        if not (self._diagrams or self._tables):
            return
        if calls >= self._config.cooldown_call_threshold and self._config.cooldown_seconds > 0:
            self._reporter.detail(
                f"Phase 1 issued {calls} calls, cooling down {self._config.cooldown_seconds}s",
            )
            self._cancel.wait(self._config.cooldown_seconds)

    def _phase2(self, document_id: str) -> None:
        self._stats.set("table_total", len(self._tables))
        if not (self._diagrams or self._tables):
            return
        self._reporter.info(
            f"Processing {len(self._diagrams)} diagrams and {len(self._tables)} tables",
        )
        with ThreadPoolExecutor(
            max_workers=self._config.diagram_workers, thread_name_prefix="larkdown-diagram",
        ) as diagram_pool, ThreadPoolExecutor(
            max_workers=self._config.table_workers, thread_name_prefix="larkdown-table",
        ) as table_pool:
            futures = [diagram_pool.submit(self._run_diagram, task) for task in self._diagrams]
            futures += [
                table_pool.submit(self._run_table, document_id, task) for task in self._tables
            ]
            wait(futures)
            for future in futures:
                # Task bodies record their own outcome; anything escaping is a bug.
                future.result()

    def _run_diagram(self, task: DiagramTask) -> None:
        def on_retry(attempt: int, exc: BaseException, delay: float) -> None:
            self._stats.add("diagram_retries")
            self._metrics.increment("larkdown.retries_total", tags={"reason": "diagram"})
            self._reporter.detail(
                f"[diagram {task.index + 1}] attempt {attempt} failed, retrying in {delay:.1f}s: {exc}",
            )

        result = do_with_retry(
            lambda: self._boards.import_diagram(task.whiteboard_id, task.source, task.syntax),
            RetryConfig(
                max_retries=self._config.diagram_max_retries,
                max_total_attempts=self._config.retry_max_total_attempts,
                retry_on_rate_limit=True,
                is_permanent=is_diagram_syntax_error,
                on_retry=on_retry,
                cancel_event=self._cancel,
            ),
        )
        task.attempts = result.attempts
        self._stats.add("rate_limit_hits", result.rate_limit_hits)
        if result.ok:
            task.succeeded = True
            self._stats.add("diagram_success")
            self._metrics.increment("larkdown.diagram_success_total")
            self._reporter.detail(f"[diagram {task.index + 1}] imported ({task.syntax})")
            return

        task.error = str(result.error)
        self._stats.add("diagram_failed")
        self._metrics.increment("larkdown.diagram_failure_total")
        log.warning(
            "Diagram import failed",
            extra={
                "extra_fields": {
                    "op": "diagram",
                    "index": task.index,
                    "syntax": task.syntax,
                    "attempts": result.attempts,
                    "error": task.error,
                }
            },
        )
        self._reporter.detail(f"[diagram {task.index + 1}] failed: {task.error}")

    def _table_retry(self) -> RetryConfig:
        retries = self._config.table_max_retries
        return RetryConfig(
            max_retries=retries,
            max_total_attempts=retries + 1,
            is_permanent=_not_rate_limited,
            wait=linear_wait(self._config.table_retry_step_seconds),
            cancel_event=self._cancel,
        )

    def _run_table(self, document_id: str, task: TableTask) -> None:
        data = task.data
        cells = do_with_retry(
            lambda: self._documents.get_table_cell_ids(document_id, task.table_block_id),
            self._table_retry(),
        )
        self._stats.add("rate_limit_hits", cells.rate_limit_hits)
        if cells.ok:
            if data.cell_elements and any(data.cell_elements):
                fill = lambda: self._documents.fill_cells_rich(  # noqa: E731
                    document_id, cells.value, data.cell_elements, data.cell_contents, self._cancel,
                )
            else:
                fill = lambda: self._documents.fill_cells(  # noqa: E731
                    document_id, cells.value, data.cell_contents, self._cancel,
                )
            filled = do_with_retry(fill, self._table_retry())
            self._stats.add("rate_limit_hits", filled.rate_limit_hits)
            error = filled.error
        else:
            error = cells.error

        if error is None:
            task.succeeded = True
            self._stats.add("table_success")
            self._metrics.increment("larkdown.table_fill_total", tags={"outcome": "success"})
            self._reporter.detail(f"[table {task.index + 1}] filled {data.rows}x{data.cols}")
            return

        task.error = str(error)
        self._stats.add("table_failed")
        self._metrics.increment("larkdown.table_fill_total", tags={"outcome": "failure"})
        log.warning(
            "Table fill failed",
            extra={"extra_fields": {"op": "table", "index": task.index, "error": task.error}},
        )
        self._reporter.detail(f"[table {task.index + 1}] failed: {task.error}")

    # -- phase 3 -----------------------------------------------------------

    def _phase3(self, document_id: str, failed: list[DiagramTask]) -> None:
        self._stats.set("phase3_ran", True)
        self._reporter.info(f"Replacing {len(failed)} failed diagrams with code blocks")
        try:
            children = call_with_retry(
                lambda: self._documents.list_children(document_id, document_id),
                self._retry_config(),
            )
        except LarkdownError as exc:
            self._stats.add("fallback_failed", len(failed))
            log.error(
                "Fallback aborted: cannot list document children",
                extra={"extra_fields": {"op": "fallback", "error": str(exc)}},
            )
            return

        positions = {child.get("block_id"): i for i, child in enumerate(children)}
        located: list[tuple[int, DiagramTask]] = []
        for task in failed:
            position = positions.get(task.block_id)
            if position is None:
                self._stats.add("fallback_failed")
                self._metrics.increment("larkdown.fallback_total", tags={"outcome": "missing"})
                self._reporter.detail(
                    f"[diagram {task.index + 1}] placeholder {task.block_id} no longer present",
                )
                continue
            located.append((position, task))

        for position, task in sorted(located, key=lambda item: item[0], reverse=True):
            try:
                self._replace_with_code(document_id, position, task)
            except LarkdownError as exc:
                self._stats.add("fallback_failed")
                self._metrics.increment("larkdown.fallback_total", tags={"outcome": "failure"})
                log.warning(
                    "Diagram fallback failed",
                    extra={
                        "extra_fields": {
                            "op": "fallback",
                            "index": task.index,
                            "position": position,
                            "error": str(exc),
                        }
                    },
                )
                self._reporter.detail(f"[diagram {task.index + 1}] fallback failed: {exc}")
                continue
            self._stats.add("fallback_success")
            self._metrics.increment("larkdown.fallback_total", tags={"outcome": "success"})
            self._reporter.detail(f"[diagram {task.index + 1}] replaced by a code block")

    def _replace_with_code(self, document_id: str, position: int, task: DiagramTask) -> None:
        retry = self._retry_config()
        position = call_with_retry(
            self._placeholder_deleter(document_id, position, task), retry,
        )
        token = _client_token()
        call_with_retry(
            lambda: self._documents.create_children(
                document_id,
                document_id,
                [code_block(fallback_code(task.syntax, task.source), PLAINTEXT)],
                index=position,
                client_token=token,
            ),
            retry,
        )

    def _placeholder_deleter(
        self, document_id: str, position: int, task: DiagramTask,
    ) -> Callable[[], int]:
        """One delete attempt of *task*'s placeholder, safe to repeat.

        Every attempt after the first lists the document again and deletes
        at the placeholder's current index; when it is already gone the
        earlier delete was applied and its index is returned.
        """
        state = {"position": position, "attempted": False}

        def attempt() -> int:
            if state["attempted"]:
                children = self._documents.list_children(document_id, document_id)
                ids = [child.get("block_id") for child in children]
                if task.block_id not in ids:
                    return state["position"]
                state["position"] = ids.index(task.block_id)
            state["attempted"] = True
            self._documents.delete_children(
                document_id, document_id, state["position"], state["position"] + 1,
            )
            return state["position"]

        return attempt
