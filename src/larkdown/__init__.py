"""larkdown -- Markdown / Feishu (Lark) docx converter and import pipeline.

Public re-exports
-----------------

* **Client:** :class:`LarkdownClient`
* **Configuration:** :class:`LarkdownConfig`
* **Converters:** :class:`MarkdownToBlockConverter`,
  :class:`BlockToMarkdownRenderer`
* **Errors:** Every :class:`LarkdownError` subclass and :class:`ErrorCode`
* **Models:** Result dataclasses and enums

Usage::

    from larkdown import LarkdownClient, LarkdownConfig

    with LarkdownClient(LarkdownConfig.from_env()) as client:
        summary = client.import_markdown("notes.md")
"""

from __future__ import annotations

# ── Client ─────────────────────────────────────────────────────────────
from larkdown.client import LarkdownClient

# ── Configuration ───────────────────────────────────────────────────────
from larkdown.config import LarkdownConfig

# ── Converters ──────────────────────────────────────────────────────────
from larkdown.converter import BlockToMarkdownRenderer, MarkdownToBlockConverter

# ── Errors ──────────────────────────────────────────────────────────────
from larkdown.errors import (
    ErrorCode,
    LarkdownAuthError,
    LarkdownCancelledError,
    LarkdownConversionError,
    LarkdownDiagramSyntaxError,
    LarkdownError,
    LarkdownImageError,
    LarkdownImportError,
    LarkdownNetworkError,
    LarkdownNotFoundError,
    LarkdownPermanentError,
    LarkdownPermissionError,
    LarkdownRateLimitError,
    LarkdownRetryableServerError,
    LarkdownRetryExhaustedError,
    LarkdownUnknownError,
    LarkdownUploadError,
    LarkdownValidationError,
)

# ── Models ──────────────────────────────────────────────────────────────
from larkdown.models import (
    BlockNode,
    BlockType,
    ConversionResult,
    ConversionWarning,
    ExportResult,
    ImportSummary,
    Segment,
    SegmentKind,
    TableData,
)

# ── Public surface ──────────────────────────────────────────────────────

__all__ = [
    # Client
    "LarkdownClient",
    # Configuration
    "LarkdownConfig",
    # Converters
    "BlockToMarkdownRenderer",
    "MarkdownToBlockConverter",
    # Error base + code enum
    "LarkdownError",
    "ErrorCode",
    # Permanent errors
    "LarkdownPermanentError",
    "LarkdownValidationError",
    "LarkdownAuthError",
    "LarkdownPermissionError",
    "LarkdownNotFoundError",
    "LarkdownDiagramSyntaxError",
    # Transient errors
    "LarkdownRateLimitError",
    "LarkdownRetryableServerError",
    "LarkdownNetworkError",
    "LarkdownUnknownError",
    # Retry outcomes
    "LarkdownRetryExhaustedError",
    "LarkdownCancelledError",
    # Conversion, media and import errors
    "LarkdownConversionError",
    "LarkdownImageError",
    "LarkdownUploadError",
    "LarkdownImportError",
    # Models
    "BlockNode",
    "BlockType",
    "ConversionResult",
    "ConversionWarning",
    "ExportResult",
    "ImportSummary",
    "Segment",
    "SegmentKind",
    "TableData",
]
