"""Credential and payload redaction for debug dumps.

:func:`redact` is applied to every request/response pair before it is
written by ``debug_dump_payload``.  Rules:

* values under credential-like keys (``app_secret``,
  ``tenant_access_token``, ``Authorization``...) are masked, keeping the
  last four characters;
* ``Bearer <token>`` fragments inside any string are masked;
* every occurrence of the explicit *secrets* passed by the caller is
  scrubbed from every string in the tree;
* raw bytes (media uploads, whiteboard images) become ``<binary:N_bytes>``.
"""

from __future__ import annotations

import copy
import re
from collections.abc import Iterable
from typing import Any

# If any of these appear in a key (case-insensitive) the value is masked.
_SENSITIVE_KEY_PATTERNS: frozenset[str] = frozenset({
    "secret",
    "token",
    "authorization",
    "password",
    "cookie",
})

# Keys that contain "token" but carry document identifiers, not credentials.
_IDENTIFIER_KEYS: frozenset[str] = frozenset({
    "file_token",
    "page_token",
    "token",
    "obj_token",
})

_BEARER_RE = re.compile(r"(Bearer\s+)\S+")


def _mask(value: str) -> str:
    if len(value) >= 8:
        return f"<redacted:...{value[-4:]}>"
    return "<redacted>"


def _scrub(value: str, secrets: tuple[str, ...]) -> str:
    for secret in secrets:
        if secret and secret in value:
            value = value.replace(secret, _mask(secret))
    return _BEARER_RE.sub(lambda m: f"{m.group(1)}<redacted>", value)


def _is_sensitive(key: Any) -> bool:
    if not isinstance(key, str):
        return False
    lowered = key.lower()
    if lowered in _IDENTIFIER_KEYS:
        return False
    return any(pat in lowered for pat in _SENSITIVE_KEY_PATTERNS)


def _redact_value(value: Any, secrets: tuple[str, ...]) -> Any:
    if isinstance(value, dict):
        return {
            k: (_mask(v) if isinstance(v, str) else "<redacted>")
            if _is_sensitive(k)
            else _redact_value(v, secrets)
            for k, v in value.items()
        }
    if isinstance(value, (list, tuple)):
        return [_redact_value(item, secrets) for item in value]
    if isinstance(value, (bytes, bytearray)):
        return f"<binary:{len(value)}_bytes>"
    if isinstance(value, str):
        return _scrub(value, secrets)
    return value


def redact(payload: dict, secrets: Iterable[str | None] = ()) -> dict:
    """Return a deep copy of *payload* with sensitive data removed.

    Parameters
    ----------
    payload:
        A request/response dump, header mapping or API body.
    secrets:
        Exact strings (app secret, tenant token) to scrub wherever they
        appear.

    Returns
    -------
    dict
        A new dictionary; *payload* is never mutated.

    Examples
    --------
    >>> redact({"Authorization": "Bearer t-abcdefgh1234"})
    {'Authorization': '<redacted:...1234>'}
    """
    clean_secrets = tuple(s for s in secrets if s)
    return _redact_value(copy.deepcopy(payload), clean_secrets)
