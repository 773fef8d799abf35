"""Code-block language table.

Feishu stores a code block's language as a small integer.  Both converter
directions share this table: the exporter turns the code into a fence
info string, the importer maps info strings (and common aliases) back.
"""

from __future__ import annotations

import re

PLAINTEXT = 1

# Index i holds the language with code i + 1.
_LANGUAGES: tuple[str, ...] = (
    "plaintext", "abap", "ada", "apache", "apex", "assembly", "bash",
    "csharp", "cpp", "c", "cobol", "css", "coffeescript", "d", "dart",
    "delphi", "django", "dockerfile", "erlang", "fortran", "foxpro", "go",
    "groovy", "html", "htmlbars", "http", "haskell", "json", "java",
    "javascript", "julia", "kotlin", "latex", "lisp", "lua", "matlab",
    "makefile", "markdown", "nginx", "objectivec", "openedgeabl", "php",
    "perl", "powershell", "prolog", "protobuf", "python", "r", "rpm", "ruby",
    "rust", "sas", "scss", "sql", "scala", "scheme", "shell", "swift",
    "thrift", "typescript", "vbscript", "verilog", "vhdl", "visualbasic",
    "xml", "yaml",
)

_CODE_BY_NAME: dict[str, int] = {name: i + 1 for i, name in enumerate(_LANGUAGES)}

_LANGUAGE_ALIASES: dict[str, str] = {
    "text": "plaintext",
    "txt": "plaintext",
    "plain": "plaintext",
    "sh": "bash",
    "zsh": "shell",
    "console": "shell",
    "cs": "csharp",
    "c#": "csharp",
    "c++": "cpp",
    "cc": "cpp",
    "h": "c",
    "coffee": "coffeescript",
    "docker": "dockerfile",
    "golang": "go",
    "js": "javascript",
    "jsx": "javascript",
    "mjs": "javascript",
    "jsonc": "json",
    "kt": "kotlin",
    "tex": "latex",
    "make": "makefile",
    "md": "markdown",
    "objc": "objectivec",
    "objective-c": "objectivec",
    "ps1": "powershell",
    "pwsh": "powershell",
    "proto": "protobuf",
    "py": "python",
    "python3": "python",
    "rb": "ruby",
    "rs": "rust",
    "ts": "typescript",
    "tsx": "typescript",
    "vb": "visualbasic",
    "yml": "yaml",
    "htm": "html",
}


def language_code(info: str | None) -> int:
    """Map a fence info string to a Feishu language code.

    Only the first word of *info* is considered.  Unknown languages map to
    :data:`PLAINTEXT`.

    Examples
    --------
    >>> language_code("py")
    47
    >>> language_code("brainfuck")
    1
    """
    if not info or not info.strip():
        return PLAINTEXT
    lang = info.strip().split()[0].lower()
    lang = _LANGUAGE_ALIASES.get(lang, lang)
    if lang in _CODE_BY_NAME:
        return _CODE_BY_NAME[lang]
    stripped = re.sub(r"\d+$", "", lang)
    stripped = _LANGUAGE_ALIASES.get(stripped, stripped)
    return _CODE_BY_NAME.get(stripped, PLAINTEXT)


def language_name(code: int | None) -> str:
    """Map a Feishu language code to its name (``"plaintext"`` if unknown)."""
    if isinstance(code, int) and 1 <= code <= len(_LANGUAGES):
        return _LANGUAGES[code - 1]
    return _LANGUAGES[0]
