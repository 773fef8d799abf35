"""Markdown ↔ Feishu block conversion.

Public API:

- :class:`MarkdownToBlockConverter` -- Markdown → block nodes.
- :class:`BlockToMarkdownRenderer` -- flat block list → Markdown.
- :class:`BlockTree` -- id lookup and ownership for a flat block list.
- :class:`ASTNormalizer` -- parse and normalise Markdown to canonical AST.
- :func:`build_blocks` -- convert normalised AST to block nodes.
- :func:`build_elements` -- convert inline AST tokens to text elements.
- :func:`render_elements` -- render text elements to Markdown.
"""

from larkdown.converter.ast_normalizer import ASTNormalizer
from larkdown.converter.block_builder import build_blocks
from larkdown.converter.block_to_md import BlockToMarkdownRenderer, front_matter
from larkdown.converter.block_tree import BlockTree
from larkdown.converter.inline_renderer import render_elements
from larkdown.converter.md_to_block import MarkdownToBlockConverter
from larkdown.converter.rich_text import build_elements

__all__ = [
    "ASTNormalizer",
    "BlockToMarkdownRenderer",
    "BlockTree",
    "MarkdownToBlockConverter",
    "build_blocks",
    "build_elements",
    "front_matter",
    "render_elements",
]
