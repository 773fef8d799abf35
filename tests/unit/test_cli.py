"""Tests for cli.py.

:class:`LarkdownClient` is replaced by a mock so the tests exercise
argument handling, output formats and exit codes only.
"""

from __future__ import annotations

import json
from unittest.mock import MagicMock

import pytest

from larkdown import cli
from larkdown.errors import LarkdownAuthError, LarkdownImportError
from larkdown.models import ConversionWarning, ExportResult, ImportSummary


@pytest.fixture
def client_cls(monkeypatch) -> MagicMock:
    monkeypatch.setenv("FEISHU_TENANT_ACCESS_TOKEN", "t-env-token-1234")
    monkeypatch.delenv("FEISHU_APP_ID", raising=False)
    monkeypatch.delenv("FEISHU_APP_SECRET", raising=False)
    monkeypatch.delenv("FEISHU_BASE_URL", raising=False)
    mock_cls = MagicMock()
    mock_cls.return_value.__enter__.return_value = mock_cls.return_value
    monkeypatch.setattr(cli, "LarkdownClient", mock_cls)
    return mock_cls


def _client(client_cls: MagicMock) -> MagicMock:
    return client_cls.return_value


class TestParser:
    def test_command_required(self):
        with pytest.raises(SystemExit):
            cli.build_parser().parse_args([])

    def test_import_defaults(self):
        args = cli.build_parser().parse_args(["import", "notes.md"])
        assert args.upload_images is True
        assert args.output == "text"
        assert args.verbose is False

    def test_no_upload_images(self):
        args = cli.build_parser().parse_args(["import", "notes.md", "--no-upload-images"])
        assert args.upload_images is False


class TestImportCommand:
    def test_text_summary(self, client_cls, capsys):
        _client(client_cls).import_markdown.return_value = ImportSummary(
            document_id="dox1", blocks=3,
        )
        code = cli.main(["import", "notes.md", "--title", "Notes", "--diagram-workers", "2"])
        assert code == 0
        config = client_cls.call_args.args[0]
        assert config.tenant_access_token == "t-env-token-1234"
        assert config.diagram_workers == 2
        assert config.table_workers == 3
        kwargs = _client(client_cls).import_markdown.call_args.kwargs
        assert kwargs["title"] == "Notes"
        assert "Document: https://feishu.cn/docx/dox1" in capsys.readouterr().out

    def test_json_summary(self, client_cls, capsys):
        _client(client_cls).import_markdown.return_value = ImportSummary(document_id="dox1")
        assert cli.main(["import", "notes.md", "-o", "json"]) == 0
        payload = json.loads(capsys.readouterr().out)
        assert payload["document_id"] == "dox1"
        assert payload["phase3_ran"] is False

    def test_partial_failures_still_exit_zero(self, client_cls, capsys):
        _client(client_cls).import_markdown.return_value = ImportSummary(
            document_id="dox1", diagram_failed=1,
        )
        assert cli.main(["import", "notes.md"]) == 0
        assert "completed with failures" in capsys.readouterr().err

    def test_aborted_import_exits_one(self, client_cls, capsys):
        _client(client_cls).import_markdown.side_effect = LarkdownImportError(
            "block creation failed: invalid param",
        )
        assert cli.main(["import", "notes.md"]) == 1
        assert "import aborted" in capsys.readouterr().err

    def test_api_error_exits_one(self, client_cls, capsys):
        _client(client_cls).import_markdown.side_effect = LarkdownAuthError("token expired")
        assert cli.main(["import", "notes.md"]) == 1
        assert "error: token expired" in capsys.readouterr().err

    def test_invalid_configuration(self, client_cls, capsys):
        assert cli.main(["import", "notes.md", "--table-workers", "0"]) == 1
        assert "invalid configuration" in capsys.readouterr().err
        client_cls.assert_not_called()


class TestExportCommand:
    def test_markdown_to_stdout(self, client_cls, capsys):
        _client(client_cls).export_markdown.return_value = ExportResult(
            document_id="dox1",
            markdown="# Hi\n",
            warnings=[ConversionWarning("UNSUPPORTED_BLOCK", "skipped a sheet")],
        )
        assert cli.main(["export", "dox1", "--front-matter"]) == 0
        out, err = capsys.readouterr()
        assert out == "# Hi\n"
        assert "[warning] UNSUPPORTED_BLOCK: skipped a sheet" in err
        assert client_cls.call_args.args[0].front_matter is True

    def test_output_file(self, client_cls, capsys, tmp_path):
        target = str(tmp_path / "out.md")
        _client(client_cls).export_markdown.return_value = ExportResult(
            document_id="dox1", markdown="x\n",
        )
        assert cli.main(["export", "dox1", "-o", target]) == 0
        _client(client_cls).export_markdown.assert_called_once_with("dox1", output=target)
        assert capsys.readouterr().out == ""

    def test_download_options(self, client_cls):
        _client(client_cls).export_markdown.return_value = ExportResult(document_id="dox1")
        cli.main(["export", "dox1", "--download-images", "--assets-dir", "img"])
        config = client_cls.call_args.args[0]
        assert config.download_images is True
        assert config.assets_dir == "img"

    def test_bad_reference_exits_one(self, client_cls, capsys):
        _client(client_cls).export_markdown.side_effect = ValueError("not a document id or URL")
        assert cli.main(["export", "nope/nope"]) == 1
        assert "not a document id" in capsys.readouterr().err
