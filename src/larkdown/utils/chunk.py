"""Split a list of block payloads into batches of at most *size* items.

The docx ``create children`` endpoint accepts at most 50 blocks per call,
so the import pipeline creates every sibling list through
:func:`chunk_blocks`.
"""

from __future__ import annotations

from collections.abc import Sequence
from typing import TypeVar

T = TypeVar("T")


def chunk_blocks(items: Sequence[T], size: int = 50) -> list[list[T]]:
    """Split *items* into consecutive batches of at most *size* items.

    Parameters
    ----------
    items:
        Block payloads (or block nodes) in document order.
    size:
        Maximum batch length.  Defaults to **50**, the Feishu limit.

    Returns
    -------
    list[list]
        Batches in order.  An empty input returns ``[]`` (not ``[[]]``).

    Raises
    ------
    ValueError
        If *size* is less than 1.
    """
    if size < 1:
        raise ValueError(f"size must be >= 1, got {size}")

    return [list(items[i:i + size]) for i in range(0, len(items), size)]
