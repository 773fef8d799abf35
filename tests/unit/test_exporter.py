"""Tests for exporter.py."""

from __future__ import annotations

from dataclasses import replace
from pathlib import Path
from unittest.mock import MagicMock

import pytest

from larkdown.errors import LarkdownNotFoundError
from larkdown.exporter import MarkdownExporter, parse_document_id
from larkdown.feishu_api.boards import BoardAPI
from larkdown.feishu_api.documents import DocumentAPI
from larkdown.feishu_api.media import MediaAPI


def _run(text: str) -> list[dict]:
    return [{"text_run": {"content": text}}]


BLOCKS = [
    {"block_id": "dox1", "block_type": 1, "page": {"elements": _run("Notes")},
     "children": ["h", "p", "img"]},
    {"block_id": "h", "block_type": 3, "heading1": {"elements": _run("Intro")}},
    {"block_id": "p", "block_type": 2, "text": {"elements": _run("Body")}},
    {"block_id": "img", "block_type": 27, "image": {"token": "boxcn1"}},
]


@pytest.fixture
def documents() -> MagicMock:
    mock = MagicMock(spec=DocumentAPI)
    mock.list_blocks.return_value = BLOCKS
    mock.get_document.return_value = {"title": "Remote title"}
    return mock


class TestParseDocumentId:
    @pytest.mark.parametrize(
        "value",
        [
            "AbC123",
            "  AbC123 ",
            "https://example.feishu.cn/docx/AbC123",
            "https://example.feishu.cn/docx/AbC123?from=from_copylink",
            "https://example.larksuite.com/wiki/AbC123#heading",
        ],
    )
    def test_accepted(self, value):
        assert parse_document_id(value) == "AbC123"

    @pytest.mark.parametrize("value", ["", "https://example.feishu.cn/drive/home", "a b"])
    def test_rejected(self, value):
        with pytest.raises(ValueError):
            parse_document_id(value)


class TestMarkdownExporter:
    def test_export(self, config, documents):
        result = MarkdownExporter(config, documents).export("dox1")
        documents.list_blocks.assert_called_once_with("dox1")
        assert result.markdown == "# Intro\n\nBody\n\n![image](feishu://media/boxcn1)\n"
        assert result.title == "Notes"
        assert result.blocks == 4
        assert result.warnings == []

    def test_front_matter_uses_page_title(self, config, documents):
        result = MarkdownExporter(replace(config, front_matter=True), documents).export("dox1")
        assert result.markdown.startswith('---\ntitle: "Notes"\ndocument_id: dox1\n---\n\n# Intro')
        documents.get_document.assert_not_called()

    def test_front_matter_falls_back_to_document_title(self, config, documents):
        documents.list_blocks.return_value = BLOCKS[1:]
        result = MarkdownExporter(replace(config, front_matter=True), documents).export("dox1")
        assert result.title == "Remote title"
        assert 'title: "Remote title"' in result.markdown

    def test_images_downloaded(self, config, documents, tmp_path: Path):
        media = MagicMock(spec=MediaAPI)
        media.download.return_value = b"\x89PNG"
        export_config = replace(config, download_images=True, assets_dir=str(tmp_path))
        result = MarkdownExporter(
            export_config, documents, boards=MagicMock(spec=BoardAPI), media=media,
        ).export("dox1")
        media.download.assert_called_once_with("boxcn1")
        assert (tmp_path / "image_1.png").read_bytes() == b"\x89PNG"
        assert f"]({(tmp_path / 'image_1.png').as_posix()})" in result.markdown

    def test_missing_document_propagates(self, config, documents):
        documents.list_blocks.side_effect = LarkdownNotFoundError("document not found")
        with pytest.raises(LarkdownNotFoundError):
            MarkdownExporter(config, documents).export("dox1")
        assert documents.list_blocks.call_count == 1
