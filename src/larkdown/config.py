"""Configuration for larkdown.

:class:`LarkdownConfig` is a plain dataclass that captures every tuneable
knob of the converters, the Feishu transport and the import pipeline.  A
single instance is shared by :class:`~larkdown.client.LarkdownClient` and
everything it builds.
"""

from __future__ import annotations

import dataclasses
import os
from dataclasses import dataclass
from typing import Any

# Fields whose values must never appear in logs or reprs.
_SECRET_FIELDS: frozenset[str] = frozenset({"app_secret", "tenant_access_token"})


@dataclass
class LarkdownConfig:
    """Complete configuration for a larkdown client.

    Parameters
    ----------
    app_id:
        Feishu application id used to obtain a tenant access token.
    app_secret:
        Feishu application secret.  Never logged.
    tenant_access_token:
        A pre-issued tenant token.  When set, ``app_id``/``app_secret`` are
        not used.  Never logged.
    base_url:
        Open-platform root URL.  Override for Lark (``open.larksuite.com``)
        or for testing.
    timeout_seconds:
        HTTP request timeout in seconds.
    http_proxy:
        Optional HTTP/HTTPS proxy URL.
    rate_limit_rps:
        Target requests per second for client-side pacing (token bucket).
    retry_max_total_attempts:
        Hard ceiling on attempts for any retried call.
    batch_size:
        Maximum children per block-creation call.
    upload_images:
        Upload local images referenced by the Markdown.  When disabled the
        image becomes a text placeholder.
    diagram_workers, table_workers:
        Sizes of the two phase-2 worker pools.
    diagram_max_retries:
        Real-failure budget for each diagram import.  Rate limiting does
        not consume it.
    table_max_retries:
        Rate-limit retries for each table cell-id fetch and cell fill.
    table_retry_step_seconds:
        Linear backoff step for table retries (``step * attempt``).
    cooldown_call_threshold, cooldown_seconds:
        Pause before phase 2 once phase 1 issued at least this many calls.
    cell_throttle_every, cell_throttle_seconds:
        While filling cells, sleep ``cell_throttle_seconds`` after every
        ``cell_throttle_every`` cells.
    max_table_rows:
        Feishu's row cap for one table, header included.
    table_min_column_width, table_max_column_width, table_total_width:
        Column width heuristics in pixels.
    degrade_deep_headings:
        On export, render headings 7 to 9 as bold paragraphs.
    download_images:
        On export, download images and whiteboards into ``assets_dir``.
    assets_dir:
        Directory for downloaded assets.
    highlight:
        On export, render text colours as ``<span style=...>``.
    front_matter:
        On export, prepend a YAML front matter block.
    metrics:
        A :class:`~larkdown.observability.MetricsHook` implementation.
    debug_dump_payload:
        Write redacted request/response payloads to *stderr*.
    """

    # ── Core ────────────────────────────────────────────────────────────
    app_id: str = ""

    app_secret: str = ""

    tenant_access_token: str = ""

    base_url: str = "https://open.feishu.cn"

    # ── HTTP ────────────────────────────────────────────────────────────
    timeout_seconds: float = 30.0

    http_proxy: str | None = None

    # ── Retry & rate ────────────────────────────────────────────────────
    rate_limit_rps: float = 5.0

    retry_max_total_attempts: int = 20

    # ── Import ──────────────────────────────────────────────────────────
    batch_size: int = 50

    upload_images: bool = True

    diagram_workers: int = 5

    table_workers: int = 3

    diagram_max_retries: int = 10

    table_max_retries: int = 5

    table_retry_step_seconds: float = 1.0

    cooldown_call_threshold: int = 50

    cooldown_seconds: float = 2.0

    cell_throttle_every: int = 3

    cell_throttle_seconds: float = 0.5

    # ── Tables ──────────────────────────────────────────────────────────
    max_table_rows: int = 9

    table_min_column_width: int = 80

    table_max_column_width: int = 400

    table_total_width: int = 700

    # ── Export ──────────────────────────────────────────────────────────
    degrade_deep_headings: bool = False

    download_images: bool = False

    assets_dir: str = "./assets"

    highlight: bool = False

    front_matter: bool = False

    # ── Observability ──────────────────────────────────────────────────
    metrics: Any | None = None

    # ── Debug ───────────────────────────────────────────────────────────
    debug_dump_payload: bool = False

    def __post_init__(self) -> None:
        """Validate configuration after initialization."""
        from urllib.parse import urlparse

        parsed = urlparse(self.base_url)
        if parsed.scheme == "http" and parsed.hostname not in (
            "localhost",
            "127.0.0.1",
            "::1",
        ):
            raise ValueError(
                f"base_url uses insecure HTTP for non-local host '{parsed.hostname}'. "
                "Use HTTPS to protect your app secret, or target localhost for testing."
            )

        if self.timeout_seconds <= 0:
            raise ValueError(f"timeout_seconds must be > 0, got {self.timeout_seconds}")
        if self.rate_limit_rps <= 0:
            raise ValueError(f"rate_limit_rps must be > 0, got {self.rate_limit_rps}")
        if self.retry_max_total_attempts < 1:
            raise ValueError(
                f"retry_max_total_attempts must be >= 1, got {self.retry_max_total_attempts}"
            )
        if self.batch_size < 1:
            raise ValueError(f"batch_size must be >= 1, got {self.batch_size}")
        if self.diagram_workers < 1:
            raise ValueError(f"diagram_workers must be >= 1, got {self.diagram_workers}")
        if self.table_workers < 1:
            raise ValueError(f"table_workers must be >= 1, got {self.table_workers}")
        if self.diagram_max_retries < 0:
            raise ValueError(
                f"diagram_max_retries must be >= 0, got {self.diagram_max_retries}"
            )
        if self.table_max_retries < 0:
            raise ValueError(f"table_max_retries must be >= 0, got {self.table_max_retries}")
        if self.max_table_rows < 2:
            raise ValueError(f"max_table_rows must be >= 2, got {self.max_table_rows}")
        if self.table_min_column_width > self.table_max_column_width:
            raise ValueError(
                "table_min_column_width must not exceed table_max_column_width "
                f"({self.table_min_column_width} > {self.table_max_column_width})"
            )
        if self.cell_throttle_every < 1:
            raise ValueError(
                f"cell_throttle_every must be >= 1, got {self.cell_throttle_every}"
            )

    @classmethod
    def from_env(cls, **overrides: Any) -> LarkdownConfig:
        """Build a config from ``FEISHU_*`` environment variables.

        Explicit keyword *overrides* win over the environment.
        """
        values: dict[str, Any] = {}
        env_map = {
            "FEISHU_APP_ID": "app_id",
            "FEISHU_APP_SECRET": "app_secret",
            "FEISHU_TENANT_ACCESS_TOKEN": "tenant_access_token",
            "FEISHU_BASE_URL": "base_url",
        }
        for env_name, field_name in env_map.items():
            value = os.environ.get(env_name)
            if value:
                values[field_name] = value
        values.update({k: v for k, v in overrides.items() if v is not None})
        return cls(**values)

    def __repr__(self) -> str:
        """Mask secrets to prevent accidental credential leakage."""
        parts: list[str] = []
        for f in dataclasses.fields(self):
            val = getattr(self, f.name)
            if f.name in _SECRET_FIELDS:
                masked = f"...{val[-4:]}" if len(val) >= 4 else "****"
                parts.append(f"{f.name}='{masked}'")
            else:
                parts.append(f"{f.name}={val!r}")
        return f"LarkdownConfig({', '.join(parts)})"
