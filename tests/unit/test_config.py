"""Tests for config.py."""

from __future__ import annotations

import pytest

from larkdown.config import LarkdownConfig


class TestDefaults:
    def test_defaults(self):
        config = LarkdownConfig()
        assert config.base_url == "https://open.feishu.cn"
        assert config.batch_size == 50
        assert config.diagram_workers == 5
        assert config.table_workers == 3
        assert config.diagram_max_retries == 10
        assert config.max_table_rows == 9
        assert config.retry_max_total_attempts == 20


class TestValidation:
    @pytest.mark.parametrize(
        "overrides",
        [
            {"timeout_seconds": 0},
            {"rate_limit_rps": -1},
            {"retry_max_total_attempts": 0},
            {"batch_size": 0},
            {"diagram_workers": 0},
            {"table_workers": 0},
            {"diagram_max_retries": -1},
            {"table_max_retries": -1},
            {"max_table_rows": 1},
            {"table_min_column_width": 500, "table_max_column_width": 400},
            {"cell_throttle_every": 0},
        ],
    )
    def test_rejected(self, overrides):
        with pytest.raises(ValueError):
            LarkdownConfig(**overrides)

    def test_insecure_remote_base_url(self):
        with pytest.raises(ValueError, match="insecure HTTP"):
            LarkdownConfig(base_url="http://open.feishu.cn")

    def test_http_localhost_allowed(self):
        assert LarkdownConfig(base_url="http://localhost:8080").base_url == "http://localhost:8080"


class TestFromEnv:
    def test_reads_environment(self, monkeypatch):
        monkeypatch.setenv("FEISHU_APP_ID", "cli_env")
        monkeypatch.setenv("FEISHU_APP_SECRET", "env-secret")
        monkeypatch.delenv("FEISHU_TENANT_ACCESS_TOKEN", raising=False)
        monkeypatch.delenv("FEISHU_BASE_URL", raising=False)
        config = LarkdownConfig.from_env()
        assert config.app_id == "cli_env"
        assert config.app_secret == "env-secret"

    def test_overrides_win_and_none_ignored(self, monkeypatch):
        monkeypatch.setenv("FEISHU_APP_ID", "cli_env")
        config = LarkdownConfig.from_env(app_id="cli_arg", batch_size=None)
        assert config.app_id == "cli_arg"
        assert config.batch_size == 50

    def test_empty_variable_ignored(self, monkeypatch):
        monkeypatch.setenv("FEISHU_BASE_URL", "")
        assert LarkdownConfig.from_env().base_url == "https://open.feishu.cn"


class TestRepr:
    def test_secrets_masked(self):
        text = repr(LarkdownConfig(app_secret="supersecret9876", tenant_access_token="t-1"))
        assert "supersecret9876" not in text
        assert "app_secret='...9876'" in text
        assert "tenant_access_token='****'" in text
