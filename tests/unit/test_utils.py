"""Tests for utils/chunk.py and utils/redact.py."""

from __future__ import annotations

import pytest

from larkdown.utils import chunk_blocks, redact


class TestChunkBlocks:
    def test_even_split(self):
        assert chunk_blocks([1, 2, 3, 4], 2) == [[1, 2], [3, 4]]

    def test_remainder(self):
        assert chunk_blocks(list(range(5)), 2) == [[0, 1], [2, 3], [4]]

    def test_default_size_is_feishu_limit(self):
        batches = chunk_blocks(list(range(120)))
        assert [len(b) for b in batches] == [50, 50, 20]

    def test_empty(self):
        assert chunk_blocks([], 3) == []

    def test_invalid_size(self):
        with pytest.raises(ValueError):
            chunk_blocks([1], 0)


class TestRedact:
    def test_credential_keys_masked(self):
        out = redact({"app_secret": "abcdefgh1234", "Authorization": "Bearer t-xyz"})
        assert out["app_secret"] == "<redacted:...1234>"
        assert out["Authorization"] == "<redacted:...-xyz>"

    def test_short_values_fully_masked(self):
        assert redact({"password": "pw"}) == {"password": "<redacted>"}

    def test_non_string_secret_masked(self):
        assert redact({"tenant_access_token": {"v": 1}}) == {"tenant_access_token": "<redacted>"}

    def test_identifier_keys_kept(self):
        payload = {"file_token": "boxcn1", "page_token": "p2", "board": {"token": "wb1"}}
        assert redact(payload) == payload

    def test_nested_and_lists(self):
        out = redact({"items": [{"app_secret": "abcdefgh1234"}, "plain"]})
        assert out == {"items": [{"app_secret": "<redacted:...1234>"}, "plain"]}

    def test_bearer_fragment_in_text(self):
        out = redact({"message": "sent Bearer t-abcdefg to server"})
        assert out["message"] == "sent Bearer <redacted> to server"

    def test_explicit_secrets_scrubbed(self):
        out = redact({"url": "https://x/?s=my-app-secret"}, secrets=["my-app-secret", None])
        assert "my-app-secret" not in out["url"]
        assert out["url"].endswith("<redacted:...cret>")

    def test_bytes_summarised(self):
        assert redact({"file": b"\x00" * 10}) == {"file": "<binary:10_bytes>"}

    def test_input_not_mutated(self):
        payload = {"app_secret": "abcdefgh1234", "nested": {"cookie": "c" * 10}}
        redact(payload)
        assert payload == {"app_secret": "abcdefgh1234", "nested": {"cookie": "c" * 10}}
