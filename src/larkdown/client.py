"""Synchronous larkdown client.

:class:`LarkdownClient` wires the transport, the API wrappers, the
converters and the import pipeline together behind two calls.

Usage::

    from larkdown import LarkdownClient, LarkdownConfig

    config = LarkdownConfig(app_id="cli_xxx", app_secret="...")
    with LarkdownClient(config) as client:
        summary = client.import_markdown("notes.md", title="Notes")
        print(summary.url)

        result = client.export_markdown(summary.document_id)
        print(result.markdown)
"""

from __future__ import annotations

import threading
from pathlib import Path
from typing import Any

import httpx

from larkdown.config import LarkdownConfig
from larkdown.converter.md_to_block import MarkdownToBlockConverter
from larkdown.errors import LarkdownConversionError
from larkdown.exporter import MarkdownExporter, parse_document_id
from larkdown.feishu_api.boards import BoardAPI
from larkdown.feishu_api.documents import DocumentAPI
from larkdown.feishu_api.media import MediaAPI
from larkdown.feishu_api.retries import RetryConfig, call_with_retry
from larkdown.feishu_api.transport import FeishuTransport
from larkdown.importer.orchestrator import DEFAULT_TITLE, ImportOrchestrator
from larkdown.importer.stats import ConsoleReporter
from larkdown.models import ExportResult, ImportSummary
from larkdown.observability import get_logger

log = get_logger("larkdown.client")

IMAGE_PARENT_TYPE = "docx_image"


def read_markdown(path: str | Path) -> str:
    """Read a UTF-8 Markdown file (a BOM is tolerated)."""
    file_path = Path(path)
    try:
        return file_path.read_text(encoding="utf-8-sig")
    except UnicodeDecodeError as exc:
        raise LarkdownConversionError(
            f"{file_path} is not valid UTF-8: {exc}",
            context={"source": str(file_path)},
            cause=exc,
        ) from exc
    except OSError as exc:
        raise LarkdownConversionError(
            f"cannot read {file_path}: {exc}",
            context={"source": str(file_path)},
            cause=exc,
        ) from exc


class LarkdownClient:
    """Markdown import/export client for Feishu documents.

    Parameters
    ----------
    config:
        Full configuration; built from *kwargs* when omitted.
    http_client:
        Optional pre-built :class:`httpx.Client` for the transport.
    **kwargs:
        Forwarded to :class:`LarkdownConfig` when *config* is ``None``.
    """

    def __init__(
        self,
        config: LarkdownConfig | None = None,
        *,
        http_client: httpx.Client | None = None,
        **kwargs: Any,
    ) -> None:
        self._config = config if config is not None else LarkdownConfig(**kwargs)
        self._transport = FeishuTransport(self._config, client=http_client)
        self._documents = DocumentAPI(self._transport, self._config)
        self._boards = BoardAPI(self._transport)
        self._media = MediaAPI(self._transport)
        self.cancel_event = threading.Event()

    @property
    def config(self) -> LarkdownConfig:
        return self._config

    # ------------------------------------------------------------------
    # Import
    # ------------------------------------------------------------------

    def import_markdown(
        self,
        path: str | Path,
        document_id: str | None = None,
        title: str | None = None,
        folder: str | None = None,
        reporter: ConsoleReporter | None = None,
    ) -> ImportSummary:
        """Import a Markdown file.

        Parameters
        ----------
        path:
            The Markdown file.  Relative image paths resolve against its
            directory.
        document_id:
            Append to this document instead of creating one.
        title:
            Title of the new document; defaults to the file name without
            extension.
        folder:
            Drive folder token for the new document.
        reporter:
            Progress output.

        Raises
        ------
        LarkdownConversionError
            When the file cannot be read as UTF-8.
        LarkdownImportError
            When phase 1 fails.
        """
        file_path = Path(path)
        markdown = read_markdown(file_path)
        return self.import_text(
            markdown,
            document_id=document_id,
            title=title or file_path.stem or DEFAULT_TITLE,
            folder=folder,
            base_dir=file_path.parent,
            reporter=reporter,
        )

    def import_text(
        self,
        markdown: str,
        document_id: str | None = None,
        title: str = DEFAULT_TITLE,
        folder: str | None = None,
        base_dir: str | Path | None = None,
        reporter: ConsoleReporter | None = None,
    ) -> ImportSummary:
        """Import Markdown text; see :meth:`import_markdown`."""
        reporter = reporter or ConsoleReporter(quiet=True)
        if not document_id:
            document_id = call_with_retry(
                lambda: self._documents.create_document(title or DEFAULT_TITLE, folder),
                RetryConfig(max_total_attempts=self._config.retry_max_total_attempts),
            )
            reporter.info(f"Created document: {document_id}")

        converter = MarkdownToBlockConverter(self._config, base_dir=base_dir)
        if self._config.upload_images:
            target = document_id
            converter.image_uploader = lambda local: self._media.upload(
                local, IMAGE_PARENT_TYPE, target,
            )

        orchestrator = ImportOrchestrator(
            self._config,
            self._documents,
            self._boards,
            converter,
            reporter=reporter,
            cancel_event=self.cancel_event,
        )
        return orchestrator.run(markdown, document_id=document_id)

    # ------------------------------------------------------------------
    # Export
    # ------------------------------------------------------------------

    def export_markdown(
        self,
        document: str,
        output: str | Path | None = None,
    ) -> ExportResult:
        """Export a document to Markdown.

        Parameters
        ----------
        document:
            Document id or URL.
        output:
            Write the Markdown to this file as well.
        """
        document_id = parse_document_id(document)
        exporter = MarkdownExporter(
            self._config, self._documents, boards=self._boards, media=self._media,
        )
        result = exporter.export(document_id)
        if output is not None:
            target = Path(output)
            target.parent.mkdir(parents=True, exist_ok=True)
            target.write_text(result.markdown, encoding="utf-8")
            log.info(
                "Wrote export",
                extra={"extra_fields": {"op": "export", "path": str(target)}},
            )
        return result

    # ------------------------------------------------------------------
    # Lifecycle
    # ------------------------------------------------------------------

    def close(self) -> None:
        self._transport.close()

    def __enter__(self) -> LarkdownClient:
        return self

    def __exit__(self, *exc_info: object) -> None:
        self.close()
