"""Shared test fixtures for the larkdown test suite."""

from __future__ import annotations

import pytest

from larkdown.config import LarkdownConfig
from larkdown.converter.block_to_md import BlockToMarkdownRenderer
from larkdown.converter.md_to_block import MarkdownToBlockConverter


@pytest.fixture
def config() -> LarkdownConfig:
    """Default test configuration with a dummy tenant token and no sleeps."""
    return LarkdownConfig(
        tenant_access_token="t-test-token-1234",
        rate_limit_rps=10_000.0,
        cooldown_seconds=0.0,
        cell_throttle_seconds=0.0,
        table_retry_step_seconds=0.0,
    )


@pytest.fixture
def converter(config: LarkdownConfig) -> MarkdownToBlockConverter:
    """Markdown-to-block converter using the default test config."""
    return MarkdownToBlockConverter(config)


@pytest.fixture
def renderer(config: LarkdownConfig) -> BlockToMarkdownRenderer:
    """Block-to-Markdown renderer using the default test config."""
    return BlockToMarkdownRenderer(config)
