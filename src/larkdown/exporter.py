"""Export a Feishu document to Markdown.

Fetches the flat block list of a document and hands it to
:class:`~larkdown.converter.block_to_md.BlockToMarkdownRenderer`.  Image
and whiteboard downloads are wired to the media and board APIs when
``download_images`` is enabled.
"""

from __future__ import annotations

import re
from urllib.parse import urlparse

from larkdown.config import LarkdownConfig
from larkdown.converter.block_to_md import BlockToMarkdownRenderer, front_matter
from larkdown.feishu_api.boards import BoardAPI
from larkdown.feishu_api.documents import DocumentAPI
from larkdown.feishu_api.media import MediaAPI
from larkdown.feishu_api.retries import RetryConfig, call_with_retry
from larkdown.models import ExportResult
from larkdown.observability import get_logger

log = get_logger("larkdown.exporter")

_DOC_PATH_RE = re.compile(r"/(?:docx|docs|wiki)/([A-Za-z0-9]+)")
_DOC_ID_RE = re.compile(r"^[A-Za-z0-9]+$")


def parse_document_id(value: str) -> str:
    """Return the document id from a bare id or a document URL.

    Raises
    ------
    ValueError
        When *value* is neither.

    Examples
    --------
    >>> parse_document_id("https://example.feishu.cn/docx/AbC123?from=x")
    'AbC123'
    >>> parse_document_id("AbC123")
    'AbC123'
    """
    value = value.strip()
    if _DOC_ID_RE.match(value):
        return value
    match = _DOC_PATH_RE.search(urlparse(value).path)
    if match is None:
        raise ValueError(f"not a document id or URL: {value!r}")
    return match.group(1)


class MarkdownExporter:
    """Render a remote document as Markdown.

    Parameters
    ----------
    config:
        Export options (``download_images``, ``assets_dir``, ``highlight``,
        ``front_matter``, ``degrade_deep_headings``).
    documents:
        Docx API wrapper.
    boards, media:
        Needed only when ``download_images`` is set.
    """

    def __init__(
        self,
        config: LarkdownConfig,
        documents: DocumentAPI,
        boards: BoardAPI | None = None,
        media: MediaAPI | None = None,
    ) -> None:
        self._config = config
        self._documents = documents
        self._boards = boards
        self._media = media

    def _retry(self) -> RetryConfig:
        return RetryConfig(max_total_attempts=self._config.retry_max_total_attempts)

    def export(self, document_id: str) -> ExportResult:
        """Fetch *document_id* and render it."""
        blocks = call_with_retry(lambda: self._documents.list_blocks(document_id), self._retry())
        renderer = BlockToMarkdownRenderer(
            self._config,
            media_fetcher=self._media.download if self._media is not None else None,
            board_fetcher=self._boards.download_image if self._boards is not None else None,
        )
        markdown = renderer.render(blocks)

        title = ""
        for block in blocks:
            if block.get("block_type") == 1:
                title = "".join(
                    e.get("text_run", {}).get("content", "")
                    for e in block.get("page", {}).get("elements", [])
                )
                break
        if self._config.front_matter:
            if not title:
                document = call_with_retry(
                    lambda: self._documents.get_document(document_id), self._retry(),
                )
                title = str(document.get("title", ""))
            markdown = front_matter(title, document_id) + markdown

        log.info(
            "Exported document",
            extra={
                "extra_fields": {
                    "op": "export",
                    "document_id": document_id,
                    "blocks": len(blocks),
                    "warnings": len(renderer.warnings),
                }
            },
        )
        return ExportResult(
            document_id=document_id,
            title=title,
            markdown=markdown,
            blocks=len(blocks),
            warnings=list(renderer.warnings),
        )
