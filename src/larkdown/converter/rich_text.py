"""Build Feishu text element lists from normalised inline AST tokens.

A text run element::

    {
        "text_run": {
            "content": "hello",
            "text_element_style": {"bold": True, "link": {"url": "https://..."}}
        }
    }

An inline equation element::

    {"equation": {"content": "E=mc^2"}}

Only the style flags that are set are written.  Styles are OR-merged on
the way down so that nested emphasis, strikethrough and links overlay
each other instead of replacing.
"""

from __future__ import annotations

import re
from urllib.parse import unquote

from larkdown.models import ConversionWarning

from .inline_renderer import merge_adjacent_runs

_STYLE_FLAGS: tuple[str, ...] = (
    "bold",
    "italic",
    "strikethrough",
    "underline",
    "inline_code",
)

_UNDERLINE_OPEN_RE = re.compile(r"^<u\s*>$", re.IGNORECASE)
_UNDERLINE_CLOSE_RE = re.compile(r"^</u\s*>$", re.IGNORECASE)
_BREAK_RE = re.compile(r"^<br\s*/?>$", re.IGNORECASE)

# Rewrites of the internal scheme emitted by the exporter.
_FEISHU_SCHEME_REWRITES: tuple[tuple[str, str], ...] = (
    ("feishu://doc/", "https://feishu.cn/docx/"),
    ("feishu://wiki/", "https://feishu.cn/wiki/"),
    ("feishu://", "https://feishu.cn/"),
)


# ---------------------------------------------------------------------------
# Links
# ---------------------------------------------------------------------------

def normalize_url(raw_url: str) -> str:
    """Turn an exported link target back into a URL the API accepts.

    ``feishu://`` references become ``https://feishu.cn/...`` links and
    percent-encoded URLs are decoded.

    Examples
    --------
    >>> normalize_url("feishu://doc/abc")
    'https://feishu.cn/docx/abc'
    >>> normalize_url("https%3A%2F%2Fexample.com")
    'https://example.com'
    """
    for prefix, replacement in _FEISHU_SCHEME_REWRITES:
        if raw_url.startswith(prefix):
            return replacement + raw_url[len(prefix):]
    return unquote(raw_url)


def is_absolute_http(url: str) -> bool:
    return url.startswith(("http://", "https://"))


# ---------------------------------------------------------------------------
# Element constructors
# ---------------------------------------------------------------------------

def text_run(content: str, style: dict | None = None) -> dict:
    """Return a ``text_run`` element carrying only the set style flags."""
    run: dict = {"content": content}
    if style:
        clean = {k: True for k in _STYLE_FLAGS if style.get(k)}
        if style.get("link"):
            clean["link"] = {"url": style["link"]}
        if clean:
            run["text_element_style"] = clean
    return {"text_run": run}


def equation(content: str) -> dict:
    return {"equation": {"content": content}}


def elements_text(elements: list[dict]) -> str:
    """Plain text of an element list (equations contribute their source)."""
    parts = []
    for element in elements:
        if "text_run" in element:
            parts.append(element["text_run"].get("content", ""))
        elif "equation" in element:
            parts.append(element["equation"].get("content", ""))
    return "".join(parts)


def has_content(elements: list[dict]) -> bool:
    """True when any element carries non-whitespace text or is an equation."""
    for element in elements:
        if "equation" in element:
            return True
        if element.get("text_run", {}).get("content", "").strip():
            return True
    return False


def _overlay(style: dict, **flags: object) -> dict:
    merged = dict(style)
    for key, value in flags.items():
        if key == "link":
            merged["link"] = value or merged.get("link")
        else:
            merged[key] = bool(merged.get(key)) or bool(value)
    return merged


def _plain(tokens: list[dict]) -> str:
    parts = []
    for token in tokens:
        if "raw" in token:
            parts.append(token["raw"])
        parts.append(_plain(token.get("children") or []))
    return "".join(parts)


# ---------------------------------------------------------------------------
# Public API
# ---------------------------------------------------------------------------

def build_elements(
    children: list[dict],
    *,
    style: dict | None = None,
    warnings: list[ConversionWarning] | None = None,
) -> list[dict]:
    """Convert inline AST tokens to a Feishu text element list.

    Parameters
    ----------
    children:
        Normalised inline tokens.
    style:
        Style inherited from enclosing tokens (``bold``, ``italic``,
        ``strikethrough``, ``underline``, ``link``).
    warnings:
        Optional list collecting degraded links and images.

    Returns
    -------
    list[dict]
        Elements with adjacent equally-styled runs merged.
    """
    return merge_adjacent_runs(_build(children, dict(style or {}), warnings))


def _build(
    children: list[dict],
    style: dict,
    warnings: list[ConversionWarning] | None,
) -> list[dict]:
    elements: list[dict] = []
    # <u> and </u> arrive as sibling html_inline tokens.
    underline = False

    for token in children:
        kind = token.get("type", "")
        current = _overlay(style, underline=True) if underline else style

        if kind == "text":
            if token.get("raw"):
                elements.append(text_run(token["raw"], current))

        elif kind == "strong":
            elements.extend(_build(token.get("children", []), _overlay(current, bold=True), warnings))

        elif kind == "emphasis":
            elements.extend(_build(token.get("children", []), _overlay(current, italic=True), warnings))

        elif kind == "strikethrough":
            elements.extend(
                _build(token.get("children", []), _overlay(current, strikethrough=True), warnings)
            )

        elif kind == "codespan":
            elements.append(text_run(token.get("raw", ""), _overlay(current, inline_code=True)))

        elif kind == "link":
            elements.extend(_build_link(token, current, warnings))

        elif kind == "image":
            elements.append(_inline_image(token, current, warnings))

        elif kind == "inline_math":
            content = token.get("raw", "").strip()
            if content:
                elements.append(equation(content))

        elif kind == "softbreak":
            elements.append(text_run(" ", current))

        elif kind == "linebreak":
            elements.append(text_run("\n", current))

        elif kind == "html_inline":
            raw = token.get("raw", "").strip()
            if _UNDERLINE_OPEN_RE.match(raw):
                underline = True
            elif _UNDERLINE_CLOSE_RE.match(raw):
                underline = False
            elif _BREAK_RE.match(raw):
                elements.append(text_run("\n", current))
            # Other inline HTML tags carry no text.

    return elements


def _build_link(
    token: dict,
    style: dict,
    warnings: list[ConversionWarning] | None,
) -> list[dict]:
    raw_url = (token.get("attrs") or {}).get("url", "")
    url = normalize_url(raw_url)
    children = token.get("children") or [{"type": "text", "raw": raw_url}]
    if is_absolute_http(url):
        return _build(children, _overlay(style, link=url), warnings)

    if warnings is not None:
        warnings.append(
            ConversionWarning(
                code="LINK_DEGRADED",
                message=f"Link target {raw_url!r} is not an absolute http(s) URL",
                context={"url": raw_url},
            )
        )
    return _build(children, style, warnings)


def _inline_image(
    token: dict,
    style: dict,
    warnings: list[ConversionWarning] | None,
) -> dict:
    """Images inside running text cannot be blocks; keep a textual trace."""
    url = (token.get("attrs") or {}).get("url", "")
    alt = _plain(token.get("children") or []) or "image"
    if warnings is not None:
        warnings.append(
            ConversionWarning(
                code="INLINE_IMAGE",
                message="Inline image rendered as text",
                context={"url": url},
            )
        )
    target = normalize_url(url)
    if is_absolute_http(target):
        return text_run(f"[Image: {alt}]", _overlay(style, link=target))
    return text_run(f"[Image: {url or alt}]", style)
