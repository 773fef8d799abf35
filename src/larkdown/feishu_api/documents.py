"""Docx document and block API wrappers.

:class:`DocumentAPI` is a thin layer over ``/open-apis/docx/v1``: every
method is one endpoint (or one paginated listing), except the cell-fill
helpers which walk the cells of a table and issue one update per cell.

Blocks travel as plain dicts in Feishu's wire shape.
"""

from __future__ import annotations

import re
import threading
from typing import Any

from larkdown.config import LarkdownConfig
from larkdown.converter.block_builder import heading_block, text_block
from larkdown.converter.rich_text import elements_text, text_run
from larkdown.errors import LarkdownCancelledError, LarkdownUnknownError
from larkdown.models import BlockType
from larkdown.observability import get_logger

from .transport import FeishuTransport

log = get_logger("larkdown.documents")

DOCX = "/open-apis/docx/v1/documents"
PAGE_SIZE = 500

_CELL_HEADING_RE = re.compile(r"^(#{1,9}) +")
_CELL_BULLET_PREFIX = "- "


def extract_block_ids(children: list[dict[str, Any]]) -> list[str]:
    """Return the ``block_id`` of each created child, in order."""
    return [c["block_id"] for c in children if "block_id" in c]


# ---------------------------------------------------------------------------
# Cell content helpers
# ---------------------------------------------------------------------------

def split_element_lines(elements: list[dict]) -> list[list[dict]]:
    """Split an element list on ``\\n`` inside text runs.

    Styles are kept on both halves of a split run; empty runs are dropped.
    """
    lines: list[list[dict]] = [[]]
    for element in elements:
        run = element.get("text_run")
        if run is None:
            lines[-1].append(element)
            continue
        pieces = run.get("content", "").split("\n")
        for i, piece in enumerate(pieces):
            if i > 0:
                lines.append([])
            if piece:
                lines[-1].append({"text_run": {**run, "content": piece}})
    return lines


def _strip_prefix(elements: list[dict], count: int) -> list[dict]:
    """Drop the first *count* characters of text from *elements*."""
    out: list[dict] = []
    for element in elements:
        run = element.get("text_run")
        if count > 0 and run is not None:
            content = run.get("content", "")
            if len(content) <= count:
                count -= len(content)
                continue
            element = {"text_run": {**run, "content": content[count:]}}
            count = 0
        out.append(element)
    return out


def cell_line_block(elements: list[dict]) -> dict:
    """Block for one extra line of cell content.

    A ``"- "`` prefix gives a bullet item and ``#`` x n plus a space gives
    a heading of level n; anything else is a text block.
    """
    plain = elements_text(elements)
    if plain.startswith(_CELL_BULLET_PREFIX):
        return {
            "block_type": int(BlockType.BULLET),
            "bullet": {"elements": _strip_prefix(elements, len(_CELL_BULLET_PREFIX))},
        }
    match = _CELL_HEADING_RE.match(plain)
    if match:
        return heading_block(len(match.group(1)), _strip_prefix(elements, match.end()))
    return text_block(elements)


# ---------------------------------------------------------------------------
# API
# ---------------------------------------------------------------------------

class DocumentAPI:
    """Synchronous wrapper for the Feishu docx API.

    Parameters
    ----------
    transport:
        A configured :class:`FeishuTransport` instance.
    config:
        Supplies the cell-fill throttle.
    """

    def __init__(self, transport: FeishuTransport, config: LarkdownConfig) -> None:
        self._transport = transport
        self._config = config

    @property
    def call_count(self) -> int:
        return self._transport.call_count

    # -- documents ---------------------------------------------------------

    def create_document(self, title: str, folder_token: str | None = None) -> str:
        """Create an empty document and return its id."""
        body: dict[str, Any] = {"title": title}
        if folder_token:
            body["folder_token"] = folder_token
        data = self._transport.request("POST", DOCX, json=body)
        document_id = data.get("document", {}).get("document_id")
        if not document_id:
            raise LarkdownUnknownError(
                "document creation returned no document_id",
                context={"body": data},
            )
        log.info(
            "Created document",
            extra={"extra_fields": {"op": "create_document", "document_id": document_id}},
        )
        return str(document_id)

    def get_document(self, document_id: str) -> dict[str, Any]:
        """Return the document metadata (``document_id``, ``title``, ...)."""
        data = self._transport.request("GET", f"{DOCX}/{document_id}")
        return data.get("document", {})

    # -- blocks ------------------------------------------------------------

    def list_blocks(self, document_id: str) -> list[dict[str, Any]]:
        """Return every block of the document as a flat list."""
        return list(self._transport.paginate(
            f"{DOCX}/{document_id}/blocks",
            params={"page_size": PAGE_SIZE, "document_revision_id": -1},
        ))

    def get_block(self, document_id: str, block_id: str) -> dict[str, Any]:
        data = self._transport.request("GET", f"{DOCX}/{document_id}/blocks/{block_id}")
        return data.get("block", {})

    def list_children(self, document_id: str, block_id: str) -> list[dict[str, Any]]:
        """Return the direct children of *block_id* in order."""
        return list(self._transport.paginate(
            f"{DOCX}/{document_id}/blocks/{block_id}/children",
            params={"page_size": PAGE_SIZE, "document_revision_id": -1},
        ))

    def create_children(
        self,
        document_id: str,
        parent_id: str,
        children: list[dict[str, Any]],
        index: int | None = None,
        client_token: str | None = None,
    ) -> list[dict[str, Any]]:
        """Create *children* under *parent_id* and return the created blocks.

        Parameters
        ----------
        children:
            Block payloads without nested children.
        index:
            Insert position among the parent's children; appended when
            ``None``.
        client_token:
            Idempotency key.  Feishu applies a request carrying a token it
            has already seen only once, so a retry must reuse the token of
            the attempt it repeats.

        Returns
        -------
        list[dict]
            The created blocks, each carrying its new ``block_id``.
        """
        body: dict[str, Any] = {"children": children}
        if index is not None:
            body["index"] = index
        params: dict[str, Any] = {"document_revision_id": -1}
        if client_token:
            params["client_token"] = client_token
        data = self._transport.request(
            "POST",
            f"{DOCX}/{document_id}/blocks/{parent_id}/children",
            params=params,
            json=body,
        )
        return list(data.get("children") or [])

    def delete_children(
        self, document_id: str, parent_id: str, start_index: int, end_index: int,
    ) -> None:
        """Delete the children of *parent_id* in ``[start_index, end_index)``."""
        self._transport.request(
            "DELETE",
            f"{DOCX}/{document_id}/blocks/{parent_id}/children/batch_delete",
            params={"document_revision_id": -1},
            json={"start_index": start_index, "end_index": end_index},
        )

    def update_text_elements(
        self, document_id: str, block_id: str, elements: list[dict[str, Any]],
    ) -> dict[str, Any]:
        """Replace the text elements of a text-bearing block."""
        data = self._transport.request(
            "PATCH",
            f"{DOCX}/{document_id}/blocks/{block_id}",
            params={"document_revision_id": -1},
            json={"update_text_elements": {"elements": elements}},
        )
        return data.get("block", {})

    # -- tables ------------------------------------------------------------

    def get_table_cell_ids(self, document_id: str, table_block_id: str) -> list[str]:
        """Return the cell block ids of a table in row-major order."""
        block = self.get_block(document_id, table_block_id)
        return list(block.get("table", {}).get("cells") or [])

    def fill_cells(
        self,
        document_id: str,
        cell_ids: list[str],
        contents: list[str],
        cancel_event: threading.Event | None = None,
    ) -> int:
        """Fill cells with plain text.

        Returns the number of cells written.
        """
        lines = [[[text_run(line)] if line else [] for line in c.split("\n")] for c in contents]
        return self._fill(document_id, cell_ids, lines, cancel_event)

    def fill_cells_rich(
        self,
        document_id: str,
        cell_ids: list[str],
        elements: list[list[dict]],
        contents: list[str] | None = None,
        cancel_event: threading.Event | None = None,
    ) -> int:
        """Fill cells with styled elements, using *contents* for cells without any.

        Returns the number of cells written.
        """
        contents = contents or []
        lines: list[list[list[dict]]] = []
        for i in range(len(cell_ids)):
            cell = elements[i] if i < len(elements) else []
            if cell:
                lines.append(split_element_lines(cell))
            else:
                text = contents[i] if i < len(contents) else ""
                lines.append([[text_run(line)] if line else [] for line in text.split("\n")])
        return self._fill(document_id, cell_ids, lines, cancel_event)

    def _fill(
        self,
        document_id: str,
        cell_ids: list[str],
        cells: list[list[list[dict]]],
        cancel_event: threading.Event | None,
    ) -> int:
        every = self._config.cell_throttle_every
        pause = self._config.cell_throttle_seconds
        throttle = cancel_event or threading.Event()
        written = 0
        for cell_id, cell_lines in zip(cell_ids, cells):
            if not any(cell_lines):
                continue
            self._fill_cell(document_id, cell_id, cell_lines)
            written += 1
            if pause > 0 and written % every == 0 and throttle.wait(pause):
                raise LarkdownCancelledError(
                    "cell fill cancelled", context={"cells_written": written},
                )
        return written

    def _fill_cell(self, document_id: str, cell_id: str, lines: list[list[dict]]) -> None:
        # Rewrites the whole cell, so filling it again yields the same children.
        first, rest = lines[0], lines[1:]
        children = self.list_children(document_id, cell_id)
        if children:
            self.update_text_elements(document_id, children[0]["block_id"], first)
            if len(children) > 1:
                self.delete_children(document_id, cell_id, 1, len(children))
        else:
            self.create_children(document_id, cell_id, [text_block(first)])
        extra = [cell_line_block(line) for line in rest if line]
        if extra:
            self.create_children(document_id, cell_id, extra)
