"""Feishu block list to Markdown renderer.

Converts the flat block list returned by the docx API into a Markdown
string.  The list is first indexed by :class:`~.block_tree.BlockTree`;
top-level blocks are then walked in order and dispatched by kind.

Usage::

    from larkdown.config import LarkdownConfig
    from larkdown.converter.block_to_md import BlockToMarkdownRenderer

    renderer = BlockToMarkdownRenderer(LarkdownConfig())
    md = renderer.render(blocks)
"""

from __future__ import annotations

import re
from collections.abc import Callable
from pathlib import Path

from larkdown.config import LarkdownConfig
from larkdown.errors import LarkdownError
from larkdown.models import BlockType, ConversionWarning, payload_key
from larkdown.observability import get_logger

from .block_tree import MAX_DEPTH, BlockTree, block_kind, block_payload
from .inline_renderer import link_target, plain_text, render_elements
from .languages import PLAINTEXT, language_name

logger = get_logger("larkdown.exporter")

MediaFetcher = Callable[[str], bytes]

_LIST_TYPES: frozenset[int] = frozenset({
    BlockType.BULLET,
    BlockType.ORDERED,
    BlockType.TODO,
})

# Callout background colour -> GitHub admonition type.
CALLOUT_TYPES: dict[int, str] = {
    2: "WARNING",
    3: "CAUTION",
    4: "TIP",
    5: "SUCCESS",
    6: "NOTE",
    7: "IMPORTANT",
}

_DIAGRAM_NAMES: dict[int, str] = {
    1: "Flowchart",
    2: "UML",
}

# ISV component type ids with a known rendering.
ISV_TEXT_DRAWING = "blk_631fefbbae02400430b8f9f4"
ISV_TIMELINE = "blk_6358a421bca0001c22536e4c"

_IFRAME_SANDBOX = (
    "allow-scripts allow-same-origin allow-presentation allow-forms allow-popups"
)

_DEPTH_EXCEEDED = "<!-- max nesting depth exceeded -->\n"

_BLANK_LINES_RE = re.compile(r"\n{3,}")
# Text that would be re-read as a list item or a thematic break.
_LIST_MARKER_RE = re.compile(r"^([-+])(\s)")
_ORDERED_MARKER_RE = re.compile(r"^(\d+)([.)])(\s)")
_RULE_RE = re.compile(r"^(-)(-{2,}\s*)$")
_UNESCAPED_PIPE_RE = re.compile(r"(?<!\\)\|")
_BACKTICK_RUN_RE = re.compile(r"`+")


def _escape_line_start(text: str) -> str:
    text = _LIST_MARKER_RE.sub(r"\\\1\2", text)
    text = _ORDERED_MARKER_RE.sub(r"\1\\\2\3", text)
    return _RULE_RE.sub(r"\\\1\2", text)


def _prefix_lines(text: str) -> str:
    lines = text.rstrip("\n").split("\n")
    return "".join(f"> {line}\n" if line else ">\n" for line in lines)


def code_fence(code: str) -> str:
    """Backtick fence longer than any backtick run inside *code*."""
    longest = max((len(run) for run in _BACKTICK_RUN_RE.findall(code)), default=0)
    return "`" * max(3, longest + 1)


def front_matter(title: str, document_id: str) -> str:
    """Return a YAML front matter block for an exported document."""
    safe_title = title.replace("\\", "\\\\").replace('"', '\\"')
    return f'---\ntitle: "{safe_title}"\ndocument_id: {document_id}\n---\n\n'


class BlockToMarkdownRenderer:
    """Stateful renderer that converts Feishu blocks to Markdown.

    Non-fatal issues (malformed blocks, failed downloads) are collected
    in :attr:`warnings` during a :meth:`render` call.

    Parameters
    ----------
    config:
        Export options: ``degrade_deep_headings``, ``download_images``,
        ``assets_dir``, ``highlight``.
    media_fetcher:
        ``token -> bytes`` used to download images when
        ``download_images`` is enabled.
    board_fetcher:
        ``whiteboard_id -> bytes`` used to download whiteboard snapshots.
    """

    def __init__(
        self,
        config: LarkdownConfig,
        media_fetcher: MediaFetcher | None = None,
        board_fetcher: MediaFetcher | None = None,
    ) -> None:
        self._config = config
        self._media_fetcher = media_fetcher
        self._board_fetcher = board_fetcher
        self.warnings: list[ConversionWarning] = []
        self._tree = BlockTree([])
        self._image_count = 0
        self._board_count = 0
        self._heading_numbers: list[int] = []

    # ------------------------------------------------------------------
    # Public API
    # ------------------------------------------------------------------

    def render(self, blocks: list[dict]) -> str:
        """Render a flat Feishu block list to Markdown.

        Parameters
        ----------
        blocks:
            Every block of the document, in API order, page block included.

        Returns
        -------
        str
            Markdown ending in exactly one newline (empty string for an
            empty document).
        """
        self.warnings = []
        self._tree = BlockTree(blocks, MAX_DEPTH)
        self._image_count = 0
        self._board_count = 0
        self._heading_numbers = []

        parts: list[str] = []
        prev_kind = 0
        for block in self._tree.roots():
            kind = block_kind(block)
            md = self._dispatch(block, 0, 0)
            if not md:
                continue
            if prev_kind:
                parts.append(self._separator(prev_kind, kind))
            parts.append(md if md.endswith("\n") else md + "\n")
            prev_kind = kind

        output = "".join(parts).rstrip("\n")
        if not output:
            return ""
        return _BLANK_LINES_RE.sub("\n\n", output + "\n")

    @staticmethod
    def _separator(prev_kind: int, kind: int) -> str:
        """Consecutive items of one list kind stay tight; all else gets a blank line."""
        if prev_kind == kind and kind in _LIST_TYPES:
            return ""
        return "\n"

    # ------------------------------------------------------------------
    # Dispatch
    # ------------------------------------------------------------------

    def _dispatch(self, block: dict, depth: int, indent: int) -> str:
        if depth > self._tree.max_depth:
            return _DEPTH_EXCEEDED

        kind = block_kind(block)
        member = BlockType.coerce(kind)
        if member is None or member is BlockType.UNDEFINED:
            return self._render_unsupported(block, kind)

        key = payload_key(member)
        if key in block and not isinstance(block[key], dict):
            return self._render_malformed(block, kind)

        renderer = _BLOCK_RENDERERS.get(member)
        if renderer is None:
            return self._render_unsupported(block, kind)

        try:
            return renderer(self, block, depth, indent)
        except (AttributeError, KeyError, TypeError, ValueError) as exc:
            logger.debug(
                "malformed block %s: %s", block.get("block_id"), exc,
                extra={"extra_fields": {"block_type": kind}},
            )
            return self._render_malformed(block, kind)

    def _render_children(self, block: dict, depth: int, indent: int) -> str:
        return "".join(
            self._dispatch(child, depth + 1, indent)
            for child in self._tree.children(block)
        )

    # ------------------------------------------------------------------
    # Text blocks
    # ------------------------------------------------------------------

    def _text(self, elements: list[dict] | None) -> str:
        return render_elements(elements, highlight=self._config.highlight)

    def _render_text(self, block: dict, depth: int, indent: int) -> str:
        text = self._text(block_payload(block).get("elements"))
        return "  " * indent + _escape_line_start(text) + "\n"

    def _render_heading(self, block: dict, depth: int, indent: int) -> str:
        level = BlockType(block_kind(block)).heading_level
        payload = block_payload(block)
        text = self._number_heading(level, payload.get("style") or {}) + self._text(
            payload.get("elements")
        )
        if level > 6 and self._config.degrade_deep_headings:
            return f"**{text}**\n"
        return f"{'#' * level} {text}\n"

    def _number_heading(self, level: int, style: dict) -> str:
        """Heading auto-numbering prefix from ``style.sequence``."""
        sequence = str(style.get("sequence") or "")
        del self._heading_numbers[level:]
        if not sequence:
            return ""
        while len(self._heading_numbers) < level:
            self._heading_numbers.append(0)
        if sequence == "auto":
            self._heading_numbers[level - 1] += 1
        else:
            try:
                self._heading_numbers[level - 1] = int(sequence)
            except ValueError:
                return ""
        return f"{self._heading_numbers[level - 1]}. "

    def _render_bullet(self, block: dict, depth: int, indent: int) -> str:
        text = self._text(block_payload(block).get("elements"))
        result = f"{'  ' * indent}- {text}\n"
        return result + self._render_children(block, depth, indent + 1)

    def _render_ordered(self, block: dict, depth: int, indent: int) -> str:
        payload = block_payload(block)
        sequence = str((payload.get("style") or {}).get("sequence") or "")
        number = sequence if sequence and sequence != "auto" else "1"
        text = self._text(payload.get("elements"))
        result = f"{'  ' * indent}{number}. {text}\n"
        return result + self._render_children(block, depth, indent + 1)

    def _render_todo(self, block: dict, depth: int, indent: int) -> str:
        payload = block_payload(block)
        checkbox = "[x]" if (payload.get("style") or {}).get("done") else "[ ]"
        text = self._text(payload.get("elements"))
        result = f"{'  ' * indent}- {checkbox} {text}\n"
        return result + self._render_children(block, depth, indent + 1)

    def _render_code(self, block: dict, depth: int, indent: int) -> str:
        payload = block_payload(block)
        code = plain_text(payload.get("elements"))
        language = (payload.get("style") or {}).get("language") or PLAINTEXT
        info = "" if language == PLAINTEXT else language_name(language)
        fence = code_fence(code)
        return f"{fence}{info}\n{code}\n{fence}\n"

    def _render_quote(self, block: dict, depth: int, indent: int) -> str:
        text = self._text(block_payload(block).get("elements"))
        return _prefix_lines(text)

    def _render_equation(self, block: dict, depth: int, indent: int) -> str:
        content = plain_text(block_payload(block).get("elements")).strip()
        return f"$$\n{content}\n$$\n"

    def _render_divider(self, block: dict, depth: int, indent: int) -> str:
        return "---\n"

    # ------------------------------------------------------------------
    # Containers
    # ------------------------------------------------------------------

    def _render_callout(self, block: dict, depth: int, indent: int) -> str:
        color = block_payload(block).get("background_color") or 0
        kind = CALLOUT_TYPES.get(color, "NOTE")
        result = f"> [!{kind}]\n"
        for child in self._tree.children(block):
            md = self._dispatch(child, depth + 1, 0).rstrip()
            if md:
                result += _prefix_lines(md)
        return result

    def _render_quote_container(self, block: dict, depth: int, indent: int) -> str:
        result = ""
        for child in self._tree.children(block):
            md = self._dispatch(child, depth + 1, 0).rstrip()
            if md:
                result += _prefix_lines(md)
        return result

    def _render_passthrough(self, block: dict, depth: int, indent: int) -> str:
        """Grid, add-ons, sync and agenda containers expand their children."""
        return self._render_children(block, depth, indent)

    def _render_agenda(self, block: dict, depth: int, indent: int) -> str:
        return "---\n" + self._render_children(block, depth, indent)

    def _render_agenda_item_title(self, block: dict, depth: int, indent: int) -> str:
        payload = block_payload(block) or block.get("text") or {}
        text = self._text(payload.get("elements"))
        return f"**{text}**\n" if text else ""

    def _render_link_preview(self, block: dict, depth: int, indent: int) -> str:
        return self._render_children(block, depth, indent) or "[Link preview]\n"

    # ------------------------------------------------------------------
    # Tables
    # ------------------------------------------------------------------

    def _render_table(self, block: dict, depth: int, indent: int) -> str:
        prop = block_payload(block).get("property") or {}
        rows = int(prop.get("row_size") or 0)
        cols = int(prop.get("column_size") or 0)
        cells = self._tree.cell_ids(block)
        if cols <= 0 or not cells:
            return ""
        if len(cells) < rows * cols:
            rows = len(cells) // cols
        if rows <= 0:
            return ""

        lines: list[str] = []
        for r in range(rows):
            row = [self._cell_text(cells[r * cols + c], depth) for c in range(cols)]
            lines.append("| " + " | ".join(row) + " |")
            if r == 0:
                lines.append("|" + " --- |" * cols)
        return "\n".join(lines) + "\n"

    def _cell_text(self, cell_id: str, depth: int) -> str:
        cell = self._tree.get(cell_id)
        if cell is None:
            return ""
        parts = []
        for child in self._tree.children(cell):
            md = self._dispatch(child, depth + 1, 0).strip()
            if md:
                parts.append(md)
        text = "<br>".join(parts)
        text = text.replace("\r", "").replace("\n", "<br>")
        return _UNESCAPED_PIPE_RE.sub(r"\\|", text)

    # ------------------------------------------------------------------
    # Media
    # ------------------------------------------------------------------

    def _render_image(self, block: dict, depth: int, indent: int) -> str:
        token = block_payload(block).get("token") or ""
        alt = "image"
        for child in self._tree.children(block):
            if block_kind(child) == BlockType.TEXT:
                alt = plain_text(block_payload(child).get("elements")) or alt
                break

        if not token:
            return f"![{alt}]()\n"
        if self._config.download_images and self._media_fetcher is not None:
            self._image_count += 1
            path = self._download(
                self._media_fetcher, token, f"image_{self._image_count}.png"
            )
            if path:
                return f"![{alt}]({path})\n"
        return f"![{alt}](feishu://media/{token})\n"

    def _render_board(self, block: dict, depth: int, indent: int) -> str:
        token = block_payload(block).get("token") or ""
        if not token:
            return ""
        if self._config.download_images and self._board_fetcher is not None:
            self._board_count += 1
            path = self._download(
                self._board_fetcher, token, f"board_{self._board_count}.png"
            )
            if path:
                return f"![Whiteboard]({path})\n"
        return f"[Whiteboard](feishu://board/{token})\n"

    def _download(self, fetcher: MediaFetcher, token: str, filename: str) -> str:
        """Save the fetched bytes under ``assets_dir``; ``""`` on failure."""
        target = Path(self._config.assets_dir) / filename
        try:
            data = fetcher(token)
            target.parent.mkdir(parents=True, exist_ok=True)
            target.write_bytes(data)
        except (LarkdownError, OSError) as exc:
            self.warnings.append(
                ConversionWarning(
                    code="DOWNLOAD_FAILED",
                    message=f"Could not download {token}: {exc}",
                    context={"token": token, "filename": filename},
                )
            )
            logger.warning(
                "download failed for %s", token,
                extra={"extra_fields": {"token": token, "error": str(exc)}},
            )
            return ""
        return target.as_posix()

    # ------------------------------------------------------------------
    # Embedded resources
    # ------------------------------------------------------------------

    def _render_file(self, block: dict, depth: int, indent: int) -> str:
        payload = block_payload(block)
        token = payload.get("token") or ""
        if not token:
            return ""
        name = payload.get("name") or "file"
        return f"[{name}](feishu://file/{token})\n"

    def _render_bitable(self, block: dict, depth: int, indent: int) -> str:
        token = block_payload(block).get("token") or ""
        return f"[Bitable: {token}](https://feishu.cn/base/{token})\n" if token else ""

    def _render_sheet(self, block: dict, depth: int, indent: int) -> str:
        token = block_payload(block).get("token") or ""
        return f"[Sheet: {token}](https://feishu.cn/sheets/{token})\n" if token else ""

    def _render_chat_card(self, block: dict, depth: int, indent: int) -> str:
        chat_id = block_payload(block).get("chat_id") or ""
        return f"[ChatCard: {chat_id}]\n" if chat_id else ""

    def _render_diagram(self, block: dict, depth: int, indent: int) -> str:
        diagram_type = int(block_payload(block).get("diagram_type") or 0)
        name = _DIAGRAM_NAMES.get(diagram_type, "Unknown")
        return (
            "```mermaid\n"
            f"%% Feishu {name} Diagram (type: {diagram_type})\n"
            "%% Note: Mermaid source code is not accessible via API\n"
            "```\n"
        )

    def _render_iframe(self, block: dict, depth: int, indent: int) -> str:
        url = (block_payload(block).get("component") or {}).get("url") or ""
        if not url:
            return ""
        return (
            f'<iframe src="{link_target(url)}" sandbox="{_IFRAME_SANDBOX}" '
            'allowfullscreen frameborder="0" '
            'style="width:100%; min-height:400px;"></iframe>\n'
        )

    def _render_mindnote(self, block: dict, depth: int, indent: int) -> str:
        token = block_payload(block).get("token") or ""
        return f"[MindNote](feishu://mindnote/{token})\n" if token else ""

    def _render_isv(self, block: dict, depth: int, indent: int) -> str:
        payload = block_payload(block)
        type_id = payload.get("component_type_id") or ""
        component_id = payload.get("component_id") or ""
        if type_id == ISV_TEXT_DRAWING:
            return (
                "```mermaid\n"
                f"%% Feishu TextDrawing (component: {component_id})\n"
                "%% Mermaid source code is not accessible via API\n"
                "```\n"
            )
        if type_id == ISV_TIMELINE:
            return (
                "```mermaid\n"
                f"%% Feishu Timeline (component: {component_id})\n"
                "%% Timeline data is not accessible via API\n"
                "timeline\n    title Timeline\n"
                "```\n"
            )
        return f"[ISV block (type: {type_id}, id: {component_id})]\n"

    def _render_wiki_catalog(self, block: dict, depth: int, indent: int) -> str:
        return "[Wiki catalog]\n"

    def _render_ai_template(self, block: dict, depth: int, indent: int) -> str:
        return "<!-- AI template block -->\n"

    def _render_skip(self, block: dict, depth: int, indent: int) -> str:
        return ""

    # ------------------------------------------------------------------
    # Fallbacks
    # ------------------------------------------------------------------

    def _render_unsupported(self, block: dict, kind: int) -> str:
        member = BlockType.coerce(kind)
        name = member.name.lower() if member is not None else "unknown"
        return f"<!-- unsupported block type: {name} (type={kind}) -->\n"

    def _render_malformed(self, block: dict, kind: int) -> str:
        block_id = block.get("block_id") or ""
        self.warnings.append(
            ConversionWarning(
                code="MALFORMED_BLOCK",
                message=f"Block {block_id} has an unreadable payload",
                context={"block_id": block_id, "block_type": kind},
            )
        )
        return f"<!-- malformed block: {block_id} (type={kind}) -->\n"


# ------------------------------------------------------------------
# Block renderer dispatch table
# ------------------------------------------------------------------

_BlockRenderer = Callable[[BlockToMarkdownRenderer, dict, int, int], str]

_BLOCK_RENDERERS: dict[BlockType, _BlockRenderer] = {
    BlockType.PAGE: BlockToMarkdownRenderer._render_skip,
    BlockType.TEXT: BlockToMarkdownRenderer._render_text,
    BlockType.BULLET: BlockToMarkdownRenderer._render_bullet,
    BlockType.ORDERED: BlockToMarkdownRenderer._render_ordered,
    BlockType.TODO: BlockToMarkdownRenderer._render_todo,
    BlockType.CODE: BlockToMarkdownRenderer._render_code,
    BlockType.QUOTE: BlockToMarkdownRenderer._render_quote,
    BlockType.EQUATION: BlockToMarkdownRenderer._render_equation,
    BlockType.DIVIDER: BlockToMarkdownRenderer._render_divider,
    BlockType.CALLOUT: BlockToMarkdownRenderer._render_callout,
    BlockType.QUOTE_CONTAINER: BlockToMarkdownRenderer._render_quote_container,
    BlockType.GRID: BlockToMarkdownRenderer._render_passthrough,
    BlockType.GRID_COLUMN: BlockToMarkdownRenderer._render_passthrough,
    BlockType.ADD_ONS: BlockToMarkdownRenderer._render_passthrough,
    BlockType.SYNC_SOURCE: BlockToMarkdownRenderer._render_passthrough,
    BlockType.SYNC_REFERENCE: BlockToMarkdownRenderer._render_passthrough,
    BlockType.AGENDA: BlockToMarkdownRenderer._render_agenda,
    BlockType.AGENDA_ITEM: BlockToMarkdownRenderer._render_passthrough,
    BlockType.AGENDA_ITEM_TITLE: BlockToMarkdownRenderer._render_agenda_item_title,
    BlockType.AGENDA_ITEM_CONTENT: BlockToMarkdownRenderer._render_passthrough,
    BlockType.LINK_PREVIEW: BlockToMarkdownRenderer._render_link_preview,
    BlockType.TABLE: BlockToMarkdownRenderer._render_table,
    BlockType.TABLE_CELL: BlockToMarkdownRenderer._render_skip,
    BlockType.IMAGE: BlockToMarkdownRenderer._render_image,
    BlockType.BOARD: BlockToMarkdownRenderer._render_board,
    BlockType.FILE: BlockToMarkdownRenderer._render_file,
    BlockType.BITABLE: BlockToMarkdownRenderer._render_bitable,
    BlockType.SHEET: BlockToMarkdownRenderer._render_sheet,
    BlockType.CHAT_CARD: BlockToMarkdownRenderer._render_chat_card,
    BlockType.DIAGRAM: BlockToMarkdownRenderer._render_diagram,
    BlockType.IFRAME: BlockToMarkdownRenderer._render_iframe,
    BlockType.MINDNOTE: BlockToMarkdownRenderer._render_mindnote,
    BlockType.ISV: BlockToMarkdownRenderer._render_isv,
    BlockType.WIKI_CATALOG: BlockToMarkdownRenderer._render_wiki_catalog,
    BlockType.WIKI_CATALOG_V2: BlockToMarkdownRenderer._render_wiki_catalog,
    BlockType.AI_TEMPLATE: BlockToMarkdownRenderer._render_ai_template,
}
_BLOCK_RENDERERS.update({
    BlockType.heading(level): BlockToMarkdownRenderer._render_heading
    for level in range(1, 10)
})
