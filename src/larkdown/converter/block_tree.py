"""Reconstruct a block tree from Feishu's flat block list.

The docx API returns every block of a document as one flat, paginated
list in which parents reference children by id.  :class:`BlockTree` builds
the ``id -> block`` lookup once, computes the set of ids that are owned by
a container (and therefore must not be rendered at top level), and then
serves lookups for the duration of one conversion.
"""

from __future__ import annotations

from collections.abc import Iterator

from larkdown.models import BlockType, payload_key

MAX_DEPTH = 100

# Containers whose children are rendered by the container itself and must
# be excluded from the top-level walk.  List items own their nested items;
# add-on, sync, agenda and link-preview blocks expand their children inline.
_CLAIMING_TYPES: frozenset[int] = frozenset({
    BlockType.TABLE,
    BlockType.CALLOUT,
    BlockType.QUOTE_CONTAINER,
    BlockType.GRID,
    BlockType.GRID_COLUMN,
    BlockType.BULLET,
    BlockType.ORDERED,
    BlockType.TODO,
    BlockType.ADD_ONS,
    BlockType.SYNC_SOURCE,
    BlockType.SYNC_REFERENCE,
    BlockType.AGENDA,
    BlockType.AGENDA_ITEM,
    BlockType.AGENDA_ITEM_CONTENT,
    BlockType.LINK_PREVIEW,
})


def block_kind(block: dict) -> int:
    """Return the numeric kind of *block* (``0`` when missing or malformed)."""
    try:
        return int(block.get("block_type", 0))
    except (TypeError, ValueError):
        return 0


def block_payload(block: dict) -> dict:
    """Return the kind-specific payload of *block* (``{}`` when absent)."""
    data = block.get(payload_key(block_kind(block)))
    return data if isinstance(data, dict) else {}


def _child_ids(block: dict) -> list[str]:
    children = block.get("children") or []
    return [c for c in children if isinstance(c, str)]


def _table_cell_ids(block: dict) -> list[str]:
    cells = (block.get("table") or {}).get("cells") or []
    return [c for c in cells if isinstance(c, str)]


class BlockTree:
    """Id lookup and ownership information for one flat block list.

    Parameters
    ----------
    blocks:
        Blocks in API order.
    max_depth:
        Depth at which recursive traversal stops.
    """

    def __init__(self, blocks: list[dict], max_depth: int = MAX_DEPTH) -> None:
        self.blocks = [b for b in blocks if isinstance(b, dict)]
        self.max_depth = max_depth
        self.by_id: dict[str, dict] = {}
        for block in self.blocks:
            block_id = block.get("block_id")
            if isinstance(block_id, str) and block_id not in self.by_id:
                self.by_id[block_id] = block
        self.claimed: frozenset[str] = self._collect_claimed()

    def _collect_claimed(self) -> frozenset[str]:
        """Ids owned by a claiming container, at any depth.

        Iterative so that cyclic references terminate.
        """
        claimed: set[str] = set()
        visited: set[str] = set()
        stack: list[str] = []

        for block in self.blocks:
            if block_kind(block) in _CLAIMING_TYPES:
                stack.extend(self._owned_ids(block))

        while stack:
            child_id = stack.pop()
            claimed.add(child_id)
            if child_id in visited:
                continue
            visited.add(child_id)
            child = self.by_id.get(child_id)
            if child is not None:
                stack.extend(_child_ids(child))

        return frozenset(claimed)

    @staticmethod
    def _owned_ids(block: dict) -> list[str]:
        ids = _child_ids(block)
        if block_kind(block) == BlockType.TABLE:
            ids = ids + [c for c in _table_cell_ids(block) if c not in ids]
        return ids

    # ------------------------------------------------------------------

    def roots(self) -> Iterator[dict]:
        """Yield top-level blocks in order (page block and claimed ids skipped)."""
        for block in self.blocks:
            if block_kind(block) == BlockType.PAGE:
                continue
            if block.get("block_id") in self.claimed:
                continue
            yield block

    def get(self, block_id: str) -> dict | None:
        return self.by_id.get(block_id)

    def children(self, block: dict) -> list[dict]:
        """Resolve *block*'s child ids, skipping ids that are not present."""
        return [self.by_id[c] for c in _child_ids(block) if c in self.by_id]

    def cell_ids(self, block: dict) -> list[str]:
        """Cell ids of a table block (``table.cells``, else ``children``)."""
        return _table_cell_ids(block) or _child_ids(block)
