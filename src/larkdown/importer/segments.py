"""Split raw Markdown into import segments.

Diagram fences and top-level ``$$`` equations have no block counterpart
that the Markdown converter could produce, so they are cut out of the
text before parsing.  The scan is line based and tracks ordinary fenced
code blocks so that a literal ```` ```mermaid ```` inside an example code
block is left alone.
"""

from __future__ import annotations

import re

from larkdown.models import Segment, SegmentKind

_FENCE_RE = re.compile(r"^ {0,3}(`{3,}|~{3,})(.*)$")
_DIAGRAM_INFO: dict[str, SegmentKind] = {
    "mermaid": SegmentKind.MERMAID,
    "plantuml": SegmentKind.PLANTUML,
    "puml": SegmentKind.PLANTUML,
}
_INLINE_EQUATION_RE = re.compile(r"^\$\$(.+)\$\$$")


def _indent(line: str) -> int:
    return len(line) - len(line.lstrip(" "))


def _fence(line: str) -> tuple[str, str] | None:
    """``(marker, info)`` when *line* opens or closes a fence."""
    match = _FENCE_RE.match(line)
    if match is None:
        return None
    marker, info = match.group(1), match.group(2).strip()
    if marker[0] == "`" and "`" in info:
        return None
    return marker, info


def _closes(line: str, marker: str) -> bool:
    match = _FENCE_RE.match(line)
    return (
        match is not None
        and match.group(1)[0] == marker[0]
        and len(match.group(1)) >= len(marker)
        and not match.group(2).strip()
    )


def parse_segments(markdown: str) -> list[Segment]:
    """Split *markdown* into ordered :class:`~larkdown.models.Segment` objects.

    Rules:

    * a fence whose info string starts with ``mermaid`` gives a MERMAID
      segment, ``plantuml`` or ``puml`` a PLANTUML segment; the body runs
      to the closing fence or to the end of input; an empty body is
      dropped;
    * other fences are copied to the surrounding Markdown untouched;
    * a ``$$`` line indented less than four spaces outside any fence opens
      an EQUATION segment closed by the next ``$$`` line; a single
      ``$$...$$`` line is a complete equation; an unclosed ``$$`` stays
      Markdown;
    * whitespace-only Markdown segments are dropped.

    Examples
    --------
    >>> [s.kind.value for s in parse_segments("a\\n\\n```mermaid\\ngraph TD\\n```\\nb")]
    ['markdown', 'mermaid', 'markdown']
    """
    lines = markdown.split("\n")
    segments: list[Segment] = []
    buf: list[str] = []

    def flush() -> None:
        text = "\n".join(buf)
        if text.strip():
            segments.append(Segment(SegmentKind.MARKDOWN, text))
        buf.clear()

    i = 0
    open_fence: str | None = None
    while i < len(lines):
        line = lines[i]

        if open_fence is not None:
            buf.append(line)
            if _closes(line, open_fence):
                open_fence = None
            i += 1
            continue

        fence = _fence(line)
        if fence is not None:
            marker, info = fence
            word = info.split()[0].lower() if info else ""
            kind = _DIAGRAM_INFO.get(word)
            if kind is None:
                open_fence = marker
                buf.append(line)
                i += 1
                continue

            flush()
            i += 1
            body: list[str] = []
            while i < len(lines) and not _closes(lines[i], marker):
                body.append(lines[i])
                i += 1
            i += 1  # closing fence
            source = "\n".join(body)
            if source.strip():
                segments.append(Segment(kind, source))
            continue

        stripped = line.strip()
        if _indent(line) < 4 and stripped.startswith("$$"):
            single = _INLINE_EQUATION_RE.match(stripped)
            if single is not None and single.group(1).strip():
                flush()
                segments.append(Segment(SegmentKind.EQUATION, single.group(1).strip()))
                i += 1
                continue
            if stripped == "$$":
                end = i + 1
                while end < len(lines) and lines[end].strip() != "$$":
                    end += 1
                if end < len(lines):
                    flush()
                    content = "\n".join(lines[i + 1:end]).strip()
                    if content:
                        segments.append(Segment(SegmentKind.EQUATION, content))
                    i = end + 1
                    continue

        buf.append(line)
        i += 1

    flush()
    return segments
