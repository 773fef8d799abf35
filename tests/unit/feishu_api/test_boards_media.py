"""Tests for feishu_api/boards.py and feishu_api/media.py."""

from __future__ import annotations

from pathlib import Path
from unittest.mock import MagicMock

import pytest

from larkdown.errors import (
    LarkdownDiagramSyntaxError,
    LarkdownImageError,
    LarkdownRateLimitError,
    LarkdownUnknownError,
    LarkdownUploadError,
    LarkdownValidationError,
)
from larkdown.feishu_api import media as media_module
from larkdown.feishu_api.boards import BOARDS, BoardAPI
from larkdown.feishu_api.media import MEDIAS, MediaAPI
from larkdown.feishu_api.transport import FeishuTransport


@pytest.fixture
def transport() -> MagicMock:
    mock = MagicMock(spec=FeishuTransport)
    mock.request.return_value = {}
    return mock


class TestImportDiagram:
    def test_mermaid_body(self, transport):
        BoardAPI(transport).import_diagram("wb1", "graph TD\nA-->B", "mermaid")
        transport.request.assert_called_once_with(
            "POST",
            f"{BOARDS}/wb1/nodes/plantuml",
            json={
                "plant_uml_code": "graph TD\nA-->B",
                "syntax_type": 2,
                "style_type": 1,
                "diagram_type": 0,
            },
        )

    def test_plantuml_syntax_type(self, transport):
        BoardAPI(transport).import_diagram("wb1", "@startuml\n@enduml", "PlantUML")
        assert transport.request.call_args.kwargs["json"]["syntax_type"] == 1

    def test_unsupported_syntax(self, transport):
        with pytest.raises(LarkdownValidationError):
            BoardAPI(transport).import_diagram("wb1", "x", "graphviz")
        transport.request.assert_not_called()

    def test_parse_failure_becomes_syntax_error(self, transport):
        transport.request.side_effect = LarkdownUnknownError(
            "unexpected response: code=2890002 parse error at line 1",
            context={"api_code": 2890002},
        )
        with pytest.raises(LarkdownDiagramSyntaxError) as exc_info:
            BoardAPI(transport).import_diagram("wb1", "graph ???", "mermaid")
        assert exc_info.value.context["api_code"] == 2890002

    def test_other_permanent_errors_propagate(self, transport):
        transport.request.side_effect = LarkdownValidationError("invalid request: bad token")
        with pytest.raises(LarkdownValidationError):
            BoardAPI(transport).import_diagram("wb1", "graph TD", "mermaid")

    def test_rate_limit_propagates_unchanged(self, transport):
        transport.request.side_effect = LarkdownRateLimitError("syntax of rate limit")
        with pytest.raises(LarkdownRateLimitError):
            BoardAPI(transport).import_diagram("wb1", "graph TD", "mermaid")

    def test_download_image(self, transport):
        transport.request_raw.return_value = b"PNG"
        assert BoardAPI(transport).download_image("wb1") == b"PNG"
        transport.request_raw.assert_called_once_with("GET", f"{BOARDS}/wb1/download_as_image")


class TestMediaUpload:
    def test_upload(self, transport, tmp_path: Path):
        image = tmp_path / "pic.png"
        image.write_bytes(b"1234")
        transport.request.return_value = {"file_token": "boxcn1"}
        assert MediaAPI(transport).upload(image, "docx_image", "dox1") == "boxcn1"
        args, kwargs = transport.request.call_args
        assert args == ("POST", f"{MEDIAS}/upload_all")
        assert kwargs["data"] == {
            "file_name": "pic.png",
            "parent_type": "docx_image",
            "parent_node": "dox1",
            "size": "4",
        }
        assert kwargs["files"] == {"file": ("pic.png", b"1234")}

    def test_missing_file(self, transport, tmp_path: Path):
        with pytest.raises(LarkdownImageError):
            MediaAPI(transport).upload(tmp_path / "nope.png", "docx_image", "dox1")

    def test_oversized_file(self, transport, tmp_path: Path, monkeypatch):
        monkeypatch.setattr(media_module, "MAX_UPLOAD_BYTES", 3)
        image = tmp_path / "big.png"
        image.write_bytes(b"1234")
        with pytest.raises(LarkdownImageError, match="upload limit"):
            MediaAPI(transport).upload(image, "docx_image", "dox1")
        transport.request.assert_not_called()

    def test_no_token(self, transport, tmp_path: Path):
        image = tmp_path / "pic.png"
        image.write_bytes(b"1")
        with pytest.raises(LarkdownUploadError):
            MediaAPI(transport).upload(image, "docx_image", "dox1")

    def test_download(self, transport):
        transport.request_raw.return_value = b"data"
        assert MediaAPI(transport).download("boxcn1") == b"data"
        transport.request_raw.assert_called_once_with("GET", f"{MEDIAS}/boxcn1/download")
