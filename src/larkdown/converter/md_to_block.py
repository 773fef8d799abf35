"""Full Markdown-to-Feishu conversion pipeline.

:class:`MarkdownToBlockConverter` runs three stages:

1. **Parse** -- mistune parses raw Markdown into an AST.
2. **Normalize** -- :class:`ASTNormalizer` maps token types to canonical names.
3. **Build** -- :func:`build_blocks` turns tokens into block nodes,
   uploading local images and collecting warnings along the way.

Diagram fences and top-level ``$$`` equations are expected to have been
split off by :func:`larkdown.importer.segments.parse_segments` first; a
diagram fence that reaches this converter is imported as a plain code
block.
"""

from __future__ import annotations

import json
import sys
from pathlib import Path

from larkdown.config import LarkdownConfig
from larkdown.models import BlockNode, ConversionResult, TableData
from larkdown.utils.redact import redact

from .ast_normalizer import ASTNormalizer
from .block_builder import ImageUploader, build_blocks


def iter_nodes(nodes: list[BlockNode]):
    """Yield *nodes* and all their descendants, depth first, in document order."""
    for node in nodes:
        yield node
        yield from iter_nodes(node.children)


def count_nodes(nodes: list[BlockNode]) -> int:
    return sum(1 for _ in iter_nodes(nodes))


class MarkdownToBlockConverter:
    """Convert Markdown text to Feishu block nodes.

    Parameters
    ----------
    config:
        Conversion options: image upload toggle and table limits.
    base_dir:
        Directory relative image paths are resolved against, normally the
        directory of the Markdown file.
    image_uploader:
        ``local_path -> media token``.  Without one, every image becomes a
        ``[Image: src]`` text placeholder.

    Examples
    --------
    >>> from larkdown.config import LarkdownConfig
    >>> converter = MarkdownToBlockConverter(LarkdownConfig())
    >>> result = converter.convert("# Hello\\n\\nWorld")
    >>> [node.block_type for node in result.nodes]
    [3, 2]
    """

    def __init__(
        self,
        config: LarkdownConfig,
        base_dir: str | Path | None = None,
        image_uploader: ImageUploader | None = None,
    ) -> None:
        self._config = config
        self._base_dir = Path(base_dir) if base_dir is not None else None
        self._uploader = image_uploader
        self._normalizer = ASTNormalizer()

    @property
    def image_uploader(self) -> ImageUploader | None:
        return self._uploader

    @image_uploader.setter
    def image_uploader(self, uploader: ImageUploader | None) -> None:
        self._uploader = uploader

    def convert(self, markdown: str) -> ConversionResult:
        """Full pipeline: parse -> normalize -> build nodes.

        Parameters
        ----------
        markdown:
            Raw Markdown text to convert.

        Returns
        -------
        ConversionResult
            Top-level ``nodes`` (children embedded), ``tables`` (the
            :class:`TableData` of every table node in document order),
            ``warnings`` and image counts.
        """
        tokens = self._normalizer.parse(markdown)
        nodes, warnings, images = build_blocks(
            tokens,
            self._config,
            base_dir=self._base_dir,
            uploader=self._uploader,
        )
        tables = [node.table for node in iter_nodes(nodes) if node.table is not None]

        if self._config.debug_dump_payload:
            safe = redact({"blocks": [_dump_node(n) for n in nodes]})
            print(
                "[larkdown] Block payload:",
                json.dumps(safe["blocks"], indent=2, ensure_ascii=False),
                file=sys.stderr,
            )

        return ConversionResult(nodes=nodes, tables=tables, warnings=warnings, images=images)

    def convert_with_table_data(self, markdown: str) -> tuple[list[BlockNode], list[TableData]]:
        """Return ``(nodes, tables)``; the pairing used by the import pipeline."""
        result = self.convert(markdown)
        return result.nodes, result.tables


def _dump_node(node: BlockNode) -> dict:
    dumped = dict(node.block)
    if node.children:
        dumped["children"] = [_dump_node(child) for child in node.children]
    return dumped
