"""Data models shared by the converters and the import pipeline.

Blocks and text elements travel as plain dicts in Feishu's wire shape so
that they can be sent to (and read back from) the docx API without a
translation layer.  The types here describe the structure *around* those
dicts: block kinds, converter output nodes, table geometry, import tasks
and result summaries.
"""

from __future__ import annotations

from dataclasses import dataclass, field
from enum import Enum, IntEnum
from typing import Any


# ---------------------------------------------------------------------------
# Block kinds
# ---------------------------------------------------------------------------

class BlockType(IntEnum):
    """Numeric block kinds of the Feishu docx model."""

    PAGE = 1
    TEXT = 2
    HEADING1 = 3
    HEADING2 = 4
    HEADING3 = 5
    HEADING4 = 6
    HEADING5 = 7
    HEADING6 = 8
    HEADING7 = 9
    HEADING8 = 10
    HEADING9 = 11
    BULLET = 12
    ORDERED = 13
    CODE = 14
    QUOTE = 15
    EQUATION = 16
    TODO = 17
    BITABLE = 18
    CALLOUT = 19
    CHAT_CARD = 20
    DIAGRAM = 21
    DIVIDER = 22
    FILE = 23
    GRID = 24
    GRID_COLUMN = 25
    IFRAME = 26
    IMAGE = 27
    ISV = 28
    MINDNOTE = 29
    SHEET = 30
    TABLE = 31
    TABLE_CELL = 32
    VIEW = 33
    QUOTE_CONTAINER = 34
    TASK = 35
    OKR = 36
    OKR_OBJECTIVE = 37
    OKR_KEY_RESULT = 38
    OKR_PROGRESS = 39
    ADD_ONS = 40
    JIRA_ISSUE = 41
    WIKI_CATALOG = 42
    BOARD = 43
    AGENDA = 44
    AGENDA_ITEM = 45
    AGENDA_ITEM_TITLE = 46
    AGENDA_ITEM_CONTENT = 47
    LINK_PREVIEW = 48
    SYNC_SOURCE = 49
    SYNC_REFERENCE = 50
    WIKI_CATALOG_V2 = 51
    AI_TEMPLATE = 52
    UNDEFINED = 999

    @classmethod
    def coerce(cls, value: Any) -> BlockType | None:
        """Return the member for *value*, or ``None`` for unknown kinds."""
        try:
            return cls(int(value))
        except (TypeError, ValueError):
            return None

    @classmethod
    def heading(cls, level: int) -> BlockType:
        """Heading kind for *level* (clamped to 1..9)."""
        return cls(cls.HEADING1 + max(1, min(level, 9)) - 1)

    @property
    def heading_level(self) -> int:
        """1..9 for heading kinds, 0 otherwise."""
        if BlockType.HEADING1 <= self <= BlockType.HEADING9:
            return int(self) - int(BlockType.HEADING1) + 1
        return 0


# Wire key carrying the kind-specific payload.
_PAYLOAD_KEYS: dict[BlockType, str] = {
    BlockType.PAGE: "page",
    BlockType.TEXT: "text",
    BlockType.BULLET: "bullet",
    BlockType.ORDERED: "ordered",
    BlockType.CODE: "code",
    BlockType.QUOTE: "quote",
    BlockType.EQUATION: "equation",
    BlockType.TODO: "todo",
    BlockType.BITABLE: "bitable",
    BlockType.CALLOUT: "callout",
    BlockType.CHAT_CARD: "chat_card",
    BlockType.DIAGRAM: "diagram",
    BlockType.DIVIDER: "divider",
    BlockType.FILE: "file",
    BlockType.GRID: "grid",
    BlockType.GRID_COLUMN: "grid_column",
    BlockType.IFRAME: "iframe",
    BlockType.IMAGE: "image",
    BlockType.ISV: "isv",
    BlockType.MINDNOTE: "mindnote",
    BlockType.SHEET: "sheet",
    BlockType.TABLE: "table",
    BlockType.TABLE_CELL: "table_cell",
    BlockType.VIEW: "view",
    BlockType.QUOTE_CONTAINER: "quote_container",
    BlockType.TASK: "task",
    BlockType.ADD_ONS: "add_ons",
    BlockType.JIRA_ISSUE: "jira_issue",
    BlockType.WIKI_CATALOG: "wiki_catalog",
    BlockType.BOARD: "board",
    BlockType.AGENDA_ITEM_TITLE: "agenda_item_title",
    BlockType.LINK_PREVIEW: "link_preview",
}
_PAYLOAD_KEYS.update({
    BlockType.heading(level): f"heading{level}" for level in range(1, 10)
})


def payload_key(kind: BlockType | int) -> str:
    """Return the wire key of the payload for block *kind*."""
    member = BlockType.coerce(kind)
    if member is None:
        return ""
    return _PAYLOAD_KEYS.get(member, member.name.lower())


# ---------------------------------------------------------------------------
# Conversion
# ---------------------------------------------------------------------------

@dataclass
class ConversionWarning:
    """A non-fatal issue encountered during Markdown/block conversion.

    Attributes
    ----------
    code:
        A machine-readable warning code (e.g. ``"IMAGE_PLACEHOLDER"``).
    message:
        A human-readable description of the issue.
    context:
        Arbitrary structured data for diagnostics.
    """

    code: str
    message: str
    context: dict = field(default_factory=dict)


@dataclass
class TableData:
    """Geometry and content of one (possibly split) table.

    Produced by the Markdown converter alongside the table block and
    consumed by the phase-2 cell fill.

    Attributes
    ----------
    rows, cols:
        Row and column counts of the table block, header included.
    cell_contents:
        Plain text of every cell in row-major order.
    cell_elements:
        Text elements of every cell in row-major order, preserving styles.
    has_header:
        Whether the first row is a header row.
    """

    rows: int
    cols: int
    cell_contents: list[str] = field(default_factory=list)
    cell_elements: list[list[dict]] = field(default_factory=list)
    has_header: bool = True

    @property
    def data_rows(self) -> list[list[str]]:
        """Plain-text rows excluding the header row."""
        grid = [
            self.cell_contents[i * self.cols:(i + 1) * self.cols]
            for i in range(self.rows)
        ]
        return grid[1:] if self.has_header else grid


@dataclass
class BlockNode:
    """A block produced by the Markdown converter, with embedded children.

    ``block`` is the creation payload (no ``children`` key); ``children``
    are created under this block once it has an id.  ``table`` is set for
    table blocks whose cells are filled in phase 2.
    """

    block: dict
    children: list[BlockNode] = field(default_factory=list)
    table: TableData | None = None

    @property
    def block_type(self) -> int:
        return int(self.block.get("block_type", 0))


@dataclass
class ImageStats:
    """Counts of images handled during one conversion."""

    uploaded: int = 0
    skipped: int = 0
    failed: int = 0


@dataclass
class ConversionResult:
    """Output of :meth:`MarkdownToBlockConverter.convert`.

    Attributes
    ----------
    nodes:
        Top-level block nodes in document order.
    tables:
        Table data for every table node, in document order.
    warnings:
        Non-fatal issues.
    images:
        Image handling counts.
    """

    nodes: list[BlockNode] = field(default_factory=list)
    tables: list[TableData] = field(default_factory=list)
    warnings: list[ConversionWarning] = field(default_factory=list)
    images: ImageStats = field(default_factory=ImageStats)


# ---------------------------------------------------------------------------
# Import pipeline
# ---------------------------------------------------------------------------

class SegmentKind(str, Enum):
    """Classification of a contiguous span of source Markdown."""

    MARKDOWN = "markdown"
    MERMAID = "mermaid"
    PLANTUML = "plantuml"
    EQUATION = "equation"


@dataclass
class Segment:
    """A span of the source document and how it is imported."""

    kind: SegmentKind
    content: str


@dataclass
class DiagramTask:
    """A whiteboard placeholder waiting for its diagram import.

    Attributes
    ----------
    index:
        Ordinal of the diagram in the source document.
    syntax:
        ``"mermaid"`` or ``"plantuml"``.
    source:
        The diagram source text.
    block_id:
        Id of the placeholder board block.
    whiteboard_id:
        Whiteboard token the diagram is imported into.
    """

    index: int
    syntax: str
    source: str
    block_id: str
    whiteboard_id: str
    succeeded: bool = False
    attempts: int = 0
    error: str | None = None


@dataclass
class TableTask:
    """A created table block waiting for its cells to be filled."""

    index: int
    table_block_id: str
    data: TableData
    succeeded: bool = False
    error: str | None = None


@dataclass
class ImportSummary:
    """Final statistics of one import run.

    Printed as text or serialised with :meth:`to_dict`.
    """

    document_id: str = ""
    segments: int = 0
    blocks: int = 0
    api_calls_phase1: int = 0
    diagram_total: int = 0
    diagram_success: int = 0
    diagram_failed: int = 0
    diagram_placeholder_failed: int = 0
    diagram_retries: int = 0
    rate_limit_hits: int = 0
    table_total: int = 0
    table_success: int = 0
    table_failed: int = 0
    fallback_success: int = 0
    fallback_failed: int = 0
    images_uploaded: int = 0
    images_skipped: int = 0
    images_failed: int = 0
    phase1_seconds: float = 0.0
    phase2_seconds: float = 0.0
    phase3_seconds: float = 0.0
    phase3_ran: bool = False
    warnings: list[ConversionWarning] = field(default_factory=list)

    @property
    def url(self) -> str:
        return f"https://feishu.cn/docx/{self.document_id}" if self.document_id else ""

    @property
    def has_failures(self) -> bool:
        return bool(
            self.diagram_failed
            or self.diagram_placeholder_failed
            or self.table_failed
            or self.fallback_failed
        )

    def to_dict(self) -> dict[str, Any]:
        """Machine-readable summary."""
        return {
            "document_id": self.document_id,
            "url": self.url,
            "segments": self.segments,
            "blocks": self.blocks,
            "api_calls_phase1": self.api_calls_phase1,
            "diagram_total": self.diagram_total,
            "diagram_success": self.diagram_success,
            "diagram_failed": self.diagram_failed,
            "diagram_placeholder_failed": self.diagram_placeholder_failed,
            "diagram_retries": self.diagram_retries,
            "rate_limit_hits": self.rate_limit_hits,
            "table_total": self.table_total,
            "table_success": self.table_success,
            "table_failed": self.table_failed,
            "fallback_success": self.fallback_success,
            "fallback_failed": self.fallback_failed,
            "images_uploaded": self.images_uploaded,
            "images_skipped": self.images_skipped,
            "images_failed": self.images_failed,
            "phase1_seconds": round(self.phase1_seconds, 3),
            "phase2_seconds": round(self.phase2_seconds, 3),
            "phase3_seconds": round(self.phase3_seconds, 3),
            "phase3_ran": self.phase3_ran,
            "warnings": [
                {"code": w.code, "message": w.message} for w in self.warnings
            ],
        }


# ---------------------------------------------------------------------------
# Export
# ---------------------------------------------------------------------------

@dataclass
class ExportResult:
    """Output of one document export.

    Attributes
    ----------
    document_id:
        The exported document.
    title:
        Document title as reported by Feishu.
    markdown:
        Rendered Markdown, front matter included when requested.
    blocks:
        Number of blocks fetched.
    warnings:
        Non-fatal rendering issues.
    """

    document_id: str
    title: str = ""
    markdown: str = ""
    blocks: int = 0
    warnings: list[ConversionWarning] = field(default_factory=list)
