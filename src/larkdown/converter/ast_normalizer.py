"""Parse Markdown into canonical AST tokens.

Wraps mistune v3's AST renderer (with the GFM table, strikethrough and
task-list plugins, bare-URL autolinks and ``$``/``$$`` math) and rewrites
its token stream into the small vocabulary the block builder dispatches
on.

Block tokens:
    heading, paragraph, block_quote, list, list_item, task_list_item,
    block_code, table, table_head, table_body, table_row, table_cell,
    thematic_break, block_math, html_block

Inline tokens:
    text, strong, emphasis, codespan, strikethrough, link, image,
    inline_math, softbreak, linebreak, html_inline
"""

from __future__ import annotations

import mistune

# mistune type -> canonical type.  Anything absent is dropped.
_TYPE_MAP: dict[str, str] = {
    "heading": "heading",
    "paragraph": "paragraph",
    "block_text": "paragraph",
    "block_quote": "block_quote",
    "list": "list",
    "list_item": "list_item",
    "task_list_item": "task_list_item",
    "block_code": "block_code",
    "table": "table",
    "table_head": "table_head",
    "table_body": "table_body",
    "table_row": "table_row",
    "table_cell": "table_cell",
    "thematic_break": "thematic_break",
    "block_math": "block_math",
    "block_html": "html_block",
    "text": "text",
    "raw": "text",
    "strong": "strong",
    "emphasis": "emphasis",
    "codespan": "codespan",
    "strikethrough": "strikethrough",
    "link": "link",
    "image": "image",
    "inline_math": "inline_math",
    "softbreak": "softbreak",
    "linebreak": "linebreak",
    "inline_html": "html_inline",
}

# Canonical types whose payload is the ``raw`` string.
_RAW_TYPES: frozenset[str] = frozenset({
    "text",
    "codespan",
    "inline_math",
    "block_math",
    "html_block",
    "html_inline",
})

PLUGINS: tuple[str, ...] = ("strikethrough", "table", "task_lists", "url", "math")


class ASTNormalizer:
    """Parse Markdown and normalise mistune tokens.

    Examples
    --------
    >>> ASTNormalizer().parse("# Title")[0]["type"]
    'heading'
    """

    def __init__(self) -> None:
        self._parser = mistune.create_markdown(renderer="ast", plugins=list(PLUGINS))

    def parse(self, markdown: str) -> list[dict]:
        """Parse *markdown* and return the canonical token list."""
        tokens = self._parser(markdown)
        if not isinstance(tokens, list):
            return []
        return normalize_tokens(tokens)


def normalize_tokens(tokens: list[dict]) -> list[dict]:
    """Normalise a mistune token list, dropping blank lines and unknown types."""
    result = []
    for token in tokens:
        normalized = _normalize(token)
        if normalized is not None:
            result.append(normalized)
    return result


def _normalize(token: dict) -> dict | None:
    kind = _TYPE_MAP.get(token.get("type", ""))
    if kind is None:
        return None

    result: dict = {"type": kind}
    attrs = token.get("attrs")
    if attrs:
        result["attrs"] = dict(attrs)

    if kind == "block_code":
        # mistune keeps the newline before the closing fence.
        raw = token.get("raw", "")
        result["raw"] = raw[:-1] if raw.endswith("\n") else raw
        return result

    if kind in _RAW_TYPES:
        result["raw"] = token.get("raw", "")
        return result

    children = token.get("children")
    if children:
        result["children"] = normalize_tokens(children)
    return result
