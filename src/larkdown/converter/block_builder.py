"""Convert normalised AST tokens to Feishu block nodes.

Handles every block-level token the normaliser emits:

- heading -> heading1..heading6; a paragraph starting with 7 to 9 ``#``
  and a space -> heading7..heading9
- paragraph -> text block, or image handling for a lone image
- block_quote -> quote container, or a callout for ``[!TYPE]`` quotes
- list -> bullet / ordered / todo blocks with nested children
- block_code -> code block with a numeric language
- thematic_break -> divider
- table -> one or more table blocks (see :mod:`.tables`)
- block_math -> text block carrying an equation element
- html_block -> skipped with a warning

Each handler returns :class:`~larkdown.models.BlockNode` objects whose
``children`` are created under the node once it has an id.
"""

from __future__ import annotations

import re
from collections.abc import Callable
from pathlib import Path

from larkdown.config import LarkdownConfig
from larkdown.errors import LarkdownError
from larkdown.models import BlockNode, BlockType, ConversionWarning, ImageStats

from .languages import language_code
from .rich_text import (
    build_elements,
    equation,
    has_content,
    is_absolute_http,
    text_run,
)
from .tables import build_tables

ImageUploader = Callable[[str], str]

# Admonition type -> callout background colour.
CALLOUT_COLORS: dict[str, int] = {
    "WARNING": 2,
    "CAUTION": 3,
    "TIP": 4,
    "SUCCESS": 5,
    "NOTE": 6,
    "INFO": 6,
    "IMPORTANT": 7,
}
DEFAULT_CALLOUT_COLOR = 6

_CALLOUT_MARKER_RE = re.compile(r"^\s*\[!(\w+)\]")
_DEEP_HEADING_RE = re.compile(r"^(#{7,9}) +")

_LINE_BREAKS: frozenset[str] = frozenset({"softbreak", "linebreak"})


# ---------------------------------------------------------------------------
# Public API
# ---------------------------------------------------------------------------

def build_blocks(
    tokens: list[dict],
    config: LarkdownConfig,
    *,
    base_dir: Path | None = None,
    uploader: ImageUploader | None = None,
) -> tuple[list[BlockNode], list[ConversionWarning], ImageStats]:
    """Convert normalised AST tokens to block nodes.

    Parameters
    ----------
    tokens:
        Canonical tokens from :class:`~.ast_normalizer.ASTNormalizer`.
    config:
        Conversion options (``upload_images``, table limits).
    base_dir:
        Directory that relative image paths are resolved against.
    uploader:
        ``local_path -> media token``; images are left as text
        placeholders when absent.

    Returns
    -------
    tuple[list[BlockNode], list[ConversionWarning], ImageStats]
        ``(nodes, warnings, image_stats)``
    """
    ctx = _BuildContext(config, base_dir, uploader)
    nodes = _process_tokens(tokens, ctx)
    return nodes, ctx.warnings, ctx.images


class _BuildContext:
    """Mutable accumulator for one build pass."""

    __slots__ = ("base_dir", "config", "images", "uploader", "warnings")

    def __init__(
        self,
        config: LarkdownConfig,
        base_dir: Path | None,
        uploader: ImageUploader | None,
    ) -> None:
        self.config = config
        self.base_dir = base_dir
        self.uploader = uploader
        self.warnings: list[ConversionWarning] = []
        self.images = ImageStats()

    def add_warning(self, code: str, message: str, **context: object) -> None:
        self.warnings.append(ConversionWarning(
            code=code, message=message, context=dict(context),
        ))


# ---------------------------------------------------------------------------
# Block constructors
# ---------------------------------------------------------------------------

def text_block(elements: list[dict]) -> dict:
    return {"block_type": int(BlockType.TEXT), "text": {"elements": elements}}


def heading_block(level: int, elements: list[dict]) -> dict:
    return {
        "block_type": int(BlockType.heading(level)),
        f"heading{level}": {"elements": elements},
    }


def code_block(content: str, language: int) -> dict:
    return {
        "block_type": int(BlockType.CODE),
        "code": {
            "elements": [text_run(content)],
            "style": {"language": language},
        },
    }


def board_block() -> dict:
    """An empty whiteboard, the placeholder for an imported diagram."""
    return {"block_type": int(BlockType.BOARD), "board": {}}


def equation_block(content: str) -> dict:
    """A text block holding a single equation element."""
    return text_block([equation(content.strip())])


# ---------------------------------------------------------------------------
# Token dispatch
# ---------------------------------------------------------------------------

def _process_tokens(tokens: list[dict], ctx: _BuildContext) -> list[BlockNode]:
    nodes: list[BlockNode] = []
    for token in tokens:
        nodes.extend(_process_token(token, ctx))
    return nodes


def _process_token(token: dict, ctx: _BuildContext) -> list[BlockNode]:
    token_type = token.get("type", "")
    handler = _BLOCK_HANDLERS.get(token_type)
    if handler is not None:
        return handler(token, ctx)
    if token_type:
        ctx.add_warning(
            "UNKNOWN_TOKEN",
            f"Unknown token type '{token_type}' was skipped.",
        )
    return []


# ---------------------------------------------------------------------------
# Block builders
# ---------------------------------------------------------------------------

def _build_heading(token: dict, ctx: _BuildContext) -> list[BlockNode]:
    level = (token.get("attrs") or {}).get("level", 1)
    elements = build_elements(token.get("children", []), warnings=ctx.warnings)
    return [BlockNode(heading_block(level, elements))]


def _deep_heading(children: list[dict]) -> tuple[int, list[dict]] | None:
    """Detect a ``####### text`` paragraph; return ``(level, children)``."""
    if not children or children[0].get("type") != "text":
        return None
    raw = children[0].get("raw", "")
    match = _DEEP_HEADING_RE.match(raw)
    if match is None:
        return None
    first = {"type": "text", "raw": raw[match.end():]}
    return len(match.group(1)), [first, *children[1:]]


def _build_paragraph(token: dict, ctx: _BuildContext) -> list[BlockNode]:
    children = token.get("children", [])

    if len(children) == 1 and children[0].get("type") == "image":
        return [_build_image(children[0], ctx)]

    deep = _deep_heading(children)
    if deep is not None:
        level, children = deep
        elements = build_elements(children, warnings=ctx.warnings)
        return [BlockNode(heading_block(level, elements))]

    elements = build_elements(children, warnings=ctx.warnings)
    if not has_content(elements):
        return []
    return [BlockNode(text_block(elements))]


def _split_lines(children: list[dict]) -> list[list[dict]]:
    """Split inline tokens at soft and hard line breaks."""
    lines: list[list[dict]] = [[]]
    for child in children:
        if child.get("type") in _LINE_BREAKS:
            lines.append([])
        else:
            lines[-1].append(child)
    return lines


def _line_nodes(children: list[dict], ctx: _BuildContext) -> list[BlockNode]:
    nodes = []
    for line in _split_lines(children):
        elements = build_elements(line, warnings=ctx.warnings)
        if has_content(elements):
            nodes.append(BlockNode(text_block(elements)))
    return nodes


def _container_children(tokens: list[dict], ctx: _BuildContext) -> list[BlockNode]:
    """Children of a quote or callout: one text block per source line."""
    nodes: list[BlockNode] = []
    for child in tokens:
        if child.get("type") == "paragraph":
            inline = child.get("children", [])
            if len(inline) == 1 and inline[0].get("type") == "image":
                nodes.append(_build_image(inline[0], ctx))
            else:
                nodes.extend(_line_nodes(inline, ctx))
        else:
            nodes.extend(_process_token(child, ctx))
    return nodes


def _strip_callout_marker(children: list[dict]) -> tuple[str, list[dict]] | None:
    """Match a leading ``[!TYPE]`` across text tokens and remove it.

    mistune may split ``[!NOTE]`` over several text tokens, so the leading
    run of text tokens is joined before matching.
    """
    joined = ""
    for child in children:
        if child.get("type") != "text":
            break
        joined += child.get("raw", "")
    match = _CALLOUT_MARKER_RE.match(joined)
    if match is None:
        return None

    to_skip = match.end()
    remaining: list[dict] = []
    for index, child in enumerate(children):
        if to_skip <= 0:
            remaining = children[index:]
            break
        raw = child.get("raw", "")
        if len(raw) > to_skip:
            remaining = [{"type": "text", "raw": raw[to_skip:]}, *children[index + 1:]]
            break
        to_skip -= len(raw)

    # Drop the line break and whitespace that followed the marker.
    while remaining:
        first = remaining[0]
        if first.get("type") in _LINE_BREAKS:
            remaining = remaining[1:]
            continue
        if first.get("type") == "text":
            stripped = first.get("raw", "").lstrip()
            if not stripped:
                remaining = remaining[1:]
                continue
            remaining = [{"type": "text", "raw": stripped}, *remaining[1:]]
        break
    return match.group(1).upper(), remaining


def _build_block_quote(token: dict, ctx: _BuildContext) -> list[BlockNode]:
    children = token.get("children", [])

    if children and children[0].get("type") == "paragraph":
        marker = _strip_callout_marker(children[0].get("children", []))
        if marker is not None:
            kind, first_inline = marker
            body = [{"type": "paragraph", "children": first_inline}, *children[1:]]
            callout = {
                "block_type": int(BlockType.CALLOUT),
                "callout": {
                    "background_color": CALLOUT_COLORS.get(kind, DEFAULT_CALLOUT_COLOR),
                },
            }
            return [BlockNode(callout, _container_children(body, ctx))]

    nodes = _container_children(children, ctx)
    if not nodes:
        nodes = [BlockNode(text_block([]))]
    container = {"block_type": int(BlockType.QUOTE_CONTAINER), "quote_container": {}}
    return [BlockNode(container, nodes)]


def _build_list(token: dict, ctx: _BuildContext) -> list[BlockNode]:
    """Build list item nodes; nested lists become the item's children."""
    attrs = token.get("attrs") or {}
    ordered = bool(attrs.get("ordered"))
    start = attrs.get("start")
    nodes: list[BlockNode] = []

    for item in token.get("children", []):
        item_type = item.get("type", "")
        if item_type not in ("list_item", "task_list_item"):
            continue
        node = _build_list_item(item, ordered, ctx)
        if node is None:
            continue
        if ordered and not nodes and start not in (None, 1):
            node.block["ordered"]["style"] = {"sequence": str(start)}
        nodes.append(node)
    return nodes


def _build_list_item(token: dict, ordered: bool, ctx: _BuildContext) -> BlockNode | None:
    elements: list[dict] = []
    nested: list[BlockNode] = []

    for child in token.get("children", []):
        if child.get("type") == "paragraph":
            paragraph = build_elements(child.get("children", []), warnings=ctx.warnings)
            if elements and paragraph:
                elements.append(text_run("\n"))
            elements.extend(paragraph)
        else:
            nested.extend(_process_token(child, ctx))

    if not has_content(elements):
        if not nested:
            return None
        elements = [text_run("")]

    if token.get("type") == "task_list_item":
        done = bool((token.get("attrs") or {}).get("checked"))
        block = {
            "block_type": int(BlockType.TODO),
            "todo": {"elements": elements, "style": {"done": done}},
        }
    elif ordered:
        block = {"block_type": int(BlockType.ORDERED), "ordered": {"elements": elements}}
    else:
        block = {"block_type": int(BlockType.BULLET), "bullet": {"elements": elements}}
    return BlockNode(block, nested)


def _build_code_block(token: dict, ctx: _BuildContext) -> list[BlockNode]:
    info = (token.get("attrs") or {}).get("info")
    return [BlockNode(code_block(token.get("raw", ""), language_code(info)))]


def _build_divider(token: dict, ctx: _BuildContext) -> list[BlockNode]:
    return [BlockNode({"block_type": int(BlockType.DIVIDER), "divider": {}})]


def _build_table(token: dict, ctx: _BuildContext) -> list[BlockNode]:
    return build_tables(token, ctx.config, ctx.warnings)


def _build_block_math(token: dict, ctx: _BuildContext) -> list[BlockNode]:
    content = token.get("raw", "").strip()
    if not content:
        return []
    return [BlockNode(equation_block(content))]


def _build_html_block(token: dict, ctx: _BuildContext) -> list[BlockNode]:
    ctx.add_warning(
        "HTML_BLOCK_SKIPPED",
        "Raw HTML block has no Feishu equivalent and was skipped.",
        html=token.get("raw", "")[:80],
    )
    return []


# ---------------------------------------------------------------------------
# Images
# ---------------------------------------------------------------------------

def _image_placeholder(url: str) -> BlockNode:
    return BlockNode(text_block([text_run(f"[Image: {url}]")]))


def _resolve_image_path(url: str, base_dir: Path | None) -> Path:
    path = Path(url.removeprefix("file://"))
    if not path.is_absolute() and base_dir is not None:
        path = base_dir / path
    return path


def _build_image(token: dict, ctx: _BuildContext) -> BlockNode:
    """Upload a local image, or degrade to a ``[Image: src]`` text block."""
    url = (token.get("attrs") or {}).get("url", "")

    if (
        not url
        or url.startswith("feishu://media/")
        or is_absolute_http(url)
        or not ctx.config.upload_images
        or ctx.uploader is None
    ):
        ctx.images.skipped += 1
        return _image_placeholder(url)

    path = _resolve_image_path(url, ctx.base_dir)
    if not path.is_file():
        ctx.images.failed += 1
        ctx.add_warning("IMAGE_NOT_FOUND", f"Image file not found: {path}", src=url)
        return _image_placeholder(url)

    try:
        token_id = ctx.uploader(str(path))
    except LarkdownError as exc:
        ctx.images.failed += 1
        ctx.add_warning("IMAGE_UPLOAD_FAILED", f"Image upload failed: {exc.message}", src=url)
        return _image_placeholder(url)

    ctx.images.uploaded += 1
    return BlockNode({"block_type": int(BlockType.IMAGE), "image": {"token": token_id}})


# ---------------------------------------------------------------------------
# Handler dispatch table
# ---------------------------------------------------------------------------

_BlockHandler = Callable[[dict, _BuildContext], list[BlockNode]]

_BLOCK_HANDLERS: dict[str, _BlockHandler] = {
    "heading": _build_heading,
    "paragraph": _build_paragraph,
    "block_quote": _build_block_quote,
    "list": _build_list,
    "block_code": _build_code_block,
    "thematic_break": _build_divider,
    "table": _build_table,
    "block_math": _build_block_math,
    "html_block": _build_html_block,
}
