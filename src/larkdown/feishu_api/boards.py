"""Whiteboard API wrappers.

A diagram is imported by posting its Mermaid or PlantUML source to the
whiteboard behind a ``board`` block; Feishu renders it server side.
"""

from __future__ import annotations

from typing import Any

from larkdown.errors import (
    LarkdownDiagramSyntaxError,
    LarkdownPermanentError,
    LarkdownUnknownError,
    LarkdownValidationError,
)
from larkdown.observability import get_logger

from .transport import FeishuTransport

log = get_logger("larkdown.boards")

BOARDS = "/open-apis/board/v1/whiteboards"

SYNTAX_TYPES: dict[str, int] = {"plantuml": 1, "mermaid": 2}

_SYNTAX_MARKERS: tuple[str, ...] = ("syntax", "parse error", "parse failed")


def _is_syntax_failure(exc: Exception) -> bool:
    return any(marker in str(exc).lower() for marker in _SYNTAX_MARKERS)


class BoardAPI:
    """Synchronous wrapper for the whiteboard API.

    Parameters
    ----------
    transport:
        A configured :class:`FeishuTransport` instance.
    """

    def __init__(self, transport: FeishuTransport) -> None:
        self._transport = transport

    def import_diagram(self, whiteboard_id: str, source: str, syntax: str) -> dict[str, Any]:
        """Render *source* into the whiteboard *whiteboard_id*.

        Parameters
        ----------
        whiteboard_id:
            Token of the whiteboard behind the placeholder board block.
        source:
            Diagram source text.
        syntax:
            ``"mermaid"`` or ``"plantuml"``.

        Raises
        ------
        LarkdownDiagramSyntaxError
            When the service rejects the source as unparseable.
        LarkdownValidationError
            For an unsupported *syntax*.
        """
        syntax_type = SYNTAX_TYPES.get(syntax.lower())
        if syntax_type is None:
            raise LarkdownValidationError(
                f"unsupported diagram syntax: {syntax!r}",
                context={"whiteboard_id": whiteboard_id, "syntax": syntax},
            )
        body = {
            "plant_uml_code": source,
            "syntax_type": syntax_type,
            "style_type": 1,
            "diagram_type": 0,
        }
        try:
            return self._transport.request(
                "POST", f"{BOARDS}/{whiteboard_id}/nodes/plantuml", json=body,
            )
        except (LarkdownPermanentError, LarkdownUnknownError) as exc:
            if isinstance(exc, LarkdownDiagramSyntaxError) or not _is_syntax_failure(exc):
                raise
            raise LarkdownDiagramSyntaxError(
                f"{syntax} diagram rejected: {exc.message}",
                context={
                    "whiteboard_id": whiteboard_id,
                    "syntax": syntax,
                    "api_code": exc.context.get("api_code"),
                },
                cause=exc,
            ) from exc

    def download_image(self, whiteboard_id: str) -> bytes:
        """Return the whiteboard rendered as a PNG."""
        return self._transport.request_raw(
            "GET", f"{BOARDS}/{whiteboard_id}/download_as_image",
        )
