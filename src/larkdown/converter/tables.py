"""Table conversion: Markdown table AST to Feishu table blocks.

Builds one or more ``table`` blocks from the normalised table token
produced by mistune's ``table`` plugin::

    {
        "type": "table",
        "children": [
            {"type": "table_head", "children": [table_cell, ...]},
            {"type": "table_body", "children": [
                {"type": "table_row", "children": [table_cell, ...]},
                ...
            ]},
        ],
    }

Feishu creates a table block empty; its cells are filled by a separate
call.  Each block is therefore paired with a :class:`TableData` carrying
the geometry and the per-cell content.  The API caps a table at
``max_table_rows`` rows including the header, so larger tables are split
into sibling tables that repeat the header row.

The resulting block::

    {
        "block_type": 31,
        "table": {
            "property": {
                "row_size": 3,
                "column_size": 2,
                "column_width": [350, 350],
                "header_row": True,
            }
        },
    }
"""

from __future__ import annotations

from typing import Any

from larkdown.config import LarkdownConfig
from larkdown.models import BlockNode, BlockType, ConversionWarning, TableData

from .rich_text import build_elements, elements_text

# Column width heuristics, in pixels.
CJK_CHAR_WIDTH = 14
ASCII_CHAR_WIDTH = 8
COLUMN_PADDING = 16


def text_width(text: str) -> int:
    """Estimated display width of *text*, padding included."""
    width = sum(CJK_CHAR_WIDTH if ord(ch) > 127 else ASCII_CHAR_WIDTH for ch in text)
    return width + COLUMN_PADDING


def column_widths(
    rows: list[list[str]],
    cols: int,
    *,
    min_width: int = 80,
    max_width: int = 400,
    total_width: int = 700,
) -> list[int]:
    """Compute per-column widths from cell text.

    Each column is as wide as its widest cell, clamped to
    ``[min_width, max_width]``.  When the sum falls short of
    *total_width* the remainder is spread evenly, still capped at
    *max_width*.

    Examples
    --------
    >>> column_widths([["a", "b"]], 2)
    [350, 350]
    """
    if cols <= 0:
        return []
    widths = [0] * cols
    for row in rows:
        for i, content in enumerate(row[:cols]):
            widths[i] = max(widths[i], text_width(content))
    widths = [min(max(w, min_width), max_width) for w in widths]

    total = sum(widths)
    if total < total_width:
        extra = (total_width - total) // cols
        widths = [min(w + extra, max_width) for w in widths]
    return widths


def split_rows(rows: list[Any], max_rows: int, has_header: bool) -> list[list[Any]]:
    """Partition data *rows* so each chunk plus an optional header fits *max_rows*.

    Always returns at least one chunk (possibly empty).
    """
    per_table = max_rows - 1 if has_header else max_rows
    if per_table < 1:
        raise ValueError(f"max_rows={max_rows} leaves no room for data rows")
    if not rows:
        return [[]]
    return [rows[i:i + per_table] for i in range(0, len(rows), per_table)]


def table_block(rows: int, cols: int, widths: list[int], has_header: bool) -> dict:
    return {
        "block_type": int(BlockType.TABLE),
        "table": {
            "property": {
                "row_size": rows,
                "column_size": cols,
                "column_width": list(widths),
                "header_row": has_header,
            }
        },
    }


# ---------------------------------------------------------------------------
# AST extraction
# ---------------------------------------------------------------------------

def _read_cells(cells: list[dict], warnings: list[ConversionWarning]) -> list[list[dict]]:
    return [
        build_elements(cell.get("children", []), warnings=warnings)
        for cell in cells
        if cell.get("type") == "table_cell"
    ]


def _read_table(
    token: dict, warnings: list[ConversionWarning]
) -> tuple[list[list[dict]], list[list[list[dict]]]]:
    """Return ``(header_cells, body_rows)`` as element lists."""
    header: list[list[dict]] = []
    body: list[list[list[dict]]] = []
    for child in token.get("children", []):
        kind = child.get("type")
        if kind == "table_head":
            header = _read_cells(child.get("children", []), warnings)
        elif kind == "table_body":
            for row in child.get("children", []):
                if row.get("type") == "table_row":
                    body.append(_read_cells(row.get("children", []), warnings))
    return header, body


def _fit(row: list[list[dict]], cols: int) -> list[list[dict]]:
    return (row + [[] for _ in range(cols)])[:cols]


# ---------------------------------------------------------------------------
# Public API
# ---------------------------------------------------------------------------

def build_tables(
    token: dict,
    config: LarkdownConfig,
    warnings: list[ConversionWarning],
) -> list[BlockNode]:
    """Build table block nodes (split at the row cap) from a table token.

    A header row whose cells are all empty is treated as absent: the table
    then consists of the body rows only.

    Returns
    -------
    list[BlockNode]
        One node per resulting table, each with its :class:`TableData`.
        Empty when the table has no rows or no columns.
    """
    header, body = _read_table(token, warnings)
    has_header = any(elements_text(cell).strip() for cell in header)
    cols = len(header) or max((len(r) for r in body), default=0)
    if cols == 0:
        return []

    header = _fit(header, cols) if has_header else []
    body = [_fit(row, cols) for row in body]
    if not header and not body:
        return []

    plain_rows = [[elements_text(c) for c in row] for row in ([header] if header else []) + body]
    widths = column_widths(
        plain_rows,
        cols,
        min_width=config.table_min_column_width,
        max_width=config.table_max_column_width,
        total_width=config.table_total_width,
    )

    chunks = split_rows(body, config.max_table_rows, has_header)
    if len(chunks) > 1:
        warnings.append(
            ConversionWarning(
                code="TABLE_SPLIT",
                message=(
                    f"Table with {len(body)} data rows split into {len(chunks)} tables"
                ),
                context={"rows": len(body), "tables": len(chunks)},
            )
        )

    nodes: list[BlockNode] = []
    for chunk in chunks:
        grid = ([header] if has_header else []) + chunk
        if not grid:
            continue
        cell_elements = [cell for row in grid for cell in row]
        data = TableData(
            rows=len(grid),
            cols=cols,
            cell_contents=[elements_text(cell) for cell in cell_elements],
            cell_elements=cell_elements,
            has_header=has_header,
        )
        nodes.append(
            BlockNode(block=table_block(data.rows, cols, widths, has_header), table=data)
        )
    return nodes
