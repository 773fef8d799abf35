"""Inline rendering: Feishu text elements to Markdown strings.

Styles are applied innermost first::

    inline code -> bold -> italic -> strikethrough -> underline -> link

Inline code suppresses the other marks on its span.  The hyperlink always
wraps outermost so that a link inside bold text renders as
``[**text**](url)``.  Colour spans (``highlight``) wrap the whole result.
"""

from __future__ import annotations

import re
from urllib.parse import unquote

# Characters that must be escaped in inline Markdown context.
ESCAPE_CHARS = "\\*_[]#~`$|>"

_ESCAPE_RE = re.compile(r"([\\*_\[\]#~`$|>])")

# Feishu font colour enum -> CSS colour.
FONT_COLORS: dict[int, str] = {
    1: "#ef4444",
    2: "#f97316",
    3: "#eab308",
    4: "#22c55e",
    5: "#3b82f6",
    6: "#a855f7",
    7: "#6b7280",
}

# Feishu background colour enum -> CSS colour.
BACKGROUND_COLORS: dict[int, str] = {
    1: "#fef2f2",
    2: "#fff7ed",
    3: "#fefce8",
    4: "#f0fdf4",
    5: "#eff6ff",
    6: "#faf5ff",
    7: "#f9fafb",
    8: "#fecaca",
    9: "#fed7aa",
    10: "#fef08a",
    11: "#bbf7d0",
    12: "#bfdbfe",
    13: "#e9d5ff",
    14: "#e5e7eb",
}

_STYLE_KEYS = (
    "bold",
    "italic",
    "strikethrough",
    "underline",
    "inline_code",
    "text_color",
    "background_color",
)


def markdown_escape(text: str, context: str = "inline") -> str:
    """Escape special Markdown characters.

    Parameters
    ----------
    text:
        The raw text to escape.
    context:
        One of ``"inline"``, ``"code"``, or ``"url"``.

        * ``"inline"`` -- backslash-escape every character in
          :data:`ESCAPE_CHARS`.
        * ``"code"`` -- no escaping (content is inside a code span/block).
        * ``"url"`` -- percent-encode parentheses so links parse correctly.
    """
    if context == "code":
        return text
    if context == "url":
        return text.replace("(", "%28").replace(")", "%29")
    return _ESCAPE_RE.sub(r"\\\1", text)


def link_target(url: str) -> str:
    """Prepare a stored link URL for a Markdown link destination.

    Fully percent-encoded URLs (``https%3A%2F%2F...``) are decoded for
    readability; parentheses are then re-encoded.
    """
    decoded = unquote(url)
    return markdown_escape(decoded, "url")


# ---------------------------------------------------------------------------
# Element helpers
# ---------------------------------------------------------------------------

def _style_signature(style: dict | None) -> tuple:
    style = style or {}
    link = (style.get("link") or {}).get("url")
    return tuple(bool(style.get(k)) if k not in ("text_color", "background_color")
                 else style.get(k) or 0 for k in _STYLE_KEYS) + (link,)


def merge_adjacent_runs(elements: list[dict]) -> list[dict]:
    """Merge consecutive ``text_run`` elements that carry the same style.

    Returns new element dicts; the input is not mutated.
    """
    merged: list[dict] = []
    for element in elements:
        run = element.get("text_run") if isinstance(element, dict) else None
        if run is None:
            merged.append(element)
            continue
        if merged and "text_run" in merged[-1]:
            last = merged[-1]["text_run"]
            if _style_signature(last.get("text_element_style")) == _style_signature(
                run.get("text_element_style")
            ):
                merged[-1] = {
                    "text_run": {
                        **last,
                        "content": (last.get("content") or "") + (run.get("content") or ""),
                    }
                }
                continue
        merged.append({"text_run": dict(run)})
    return merged


def _highlight(style: dict, text: str) -> str:
    css: list[str] = []
    color = FONT_COLORS.get(style.get("text_color") or 0)
    background = BACKGROUND_COLORS.get(style.get("background_color") or 0)
    if color:
        css.append(f"color: {color}")
    if background:
        css.append(f"background-color: {background}")
    if not css:
        return text
    return f'<span style="{"; ".join(css)}">{text}</span>'


def _render_text_run(run: dict, highlight: bool) -> str:
    text = run.get("content") or ""
    style = run.get("text_element_style") or {}

    if style.get("inline_code"):
        text = f"`{text}`"
    else:
        text = markdown_escape(text)
        # Emphasis markers must touch non-space characters to parse back.
        core = text.strip()
        lead = text[: len(text) - len(text.lstrip())]
        trail = text[len(text.rstrip()):]
        if core:
            if style.get("bold"):
                core = f"**{core}**"
            if style.get("italic"):
                core = f"*{core}*"
            if style.get("strikethrough"):
                core = f"~~{core}~~"
            if style.get("underline"):
                core = f"<u>{core}</u>"
        text = f"{lead}{core}{trail}"

    url = (style.get("link") or {}).get("url")
    if url:
        text = f"[{text}]({link_target(url)})"

    if highlight:
        text = _highlight(style, text)
    return text


def _render_mention_doc(mention: dict) -> str:
    title = markdown_escape(mention.get("title") or "")
    url = mention.get("url")
    if url:
        return f"[{title}]({markdown_escape(url, 'url')})"
    return f"[{title}](feishu://doc/{mention.get('token') or ''})"


# ---------------------------------------------------------------------------
# Public API
# ---------------------------------------------------------------------------

def render_elements(elements: list[dict] | None, *, highlight: bool = False) -> str:
    """Render a Feishu text element list to a Markdown string.

    Parameters
    ----------
    elements:
        ``text_run``, ``mention_user``, ``mention_doc`` and ``equation``
        element dicts.
    highlight:
        Wrap coloured runs in ``<span style="...">``.
    """
    if not elements:
        return ""

    parts: list[str] = []
    for element in merge_adjacent_runs(elements):
        if not isinstance(element, dict):
            continue
        if "text_run" in element:
            parts.append(_render_text_run(element["text_run"] or {}, highlight))
        elif "mention_user" in element:
            user_id = (element["mention_user"] or {}).get("user_id") or ""
            parts.append(f"@[user:{user_id}]")
        elif "mention_doc" in element:
            parts.append(_render_mention_doc(element["mention_doc"] or {}))
        elif "equation" in element:
            content = (element["equation"] or {}).get("content") or ""
            parts.append(f"${content.strip()}$")
    return "".join(parts)


def plain_text(elements: list[dict] | None) -> str:
    """Concatenate the raw text of *elements* with no Markdown markup.

    Used for code blocks and image alt text.
    """
    parts: list[str] = []
    for element in elements or []:
        if not isinstance(element, dict):
            continue
        if "text_run" in element:
            parts.append((element["text_run"] or {}).get("content") or "")
        elif "mention_user" in element:
            parts.append((element["mention_user"] or {}).get("user_id") or "")
        elif "mention_doc" in element:
            parts.append((element["mention_doc"] or {}).get("title") or "")
        elif "equation" in element:
            parts.append((element["equation"] or {}).get("content") or "")
    return "".join(parts)
