"""Drive media upload and download.

Images referenced by imported Markdown are uploaded with ``upload_all``
(single multipart request, files up to 20 MB) and attached to a docx
block through the returned file token.
"""

from __future__ import annotations

from pathlib import Path

from larkdown.errors import LarkdownImageError, LarkdownUploadError
from larkdown.observability import get_logger

from .transport import FeishuTransport

log = get_logger("larkdown.media")

MEDIAS = "/open-apis/drive/v1/medias"

# Upload size ceiling of the single-request endpoint.
MAX_UPLOAD_BYTES = 20 * 1024 * 1024


class MediaAPI:
    """Synchronous wrapper for the drive media API.

    Parameters
    ----------
    transport:
        A configured :class:`FeishuTransport` instance.
    """

    def __init__(self, transport: FeishuTransport) -> None:
        self._transport = transport

    def upload(self, path: str | Path, parent_type: str, parent_id: str) -> str:
        """Upload a local file and return its file token.

        Parameters
        ----------
        path:
            Local file to upload.
        parent_type:
            Attachment point kind, ``"docx_image"`` for document images.
        parent_id:
            Id of the block (or document) the media belongs to.

        Raises
        ------
        LarkdownImageError
            When the file cannot be read or exceeds the size ceiling.
        LarkdownUploadError
            When the response carries no file token.
        """
        file_path = Path(path)
        try:
            content = file_path.read_bytes()
        except OSError as exc:
            raise LarkdownImageError(
                f"cannot read {file_path}: {exc}",
                context={"src": str(path), "resolved_path": str(file_path)},
                cause=exc,
            ) from exc
        if len(content) > MAX_UPLOAD_BYTES:
            raise LarkdownImageError(
                f"{file_path.name} is {len(content)} bytes, over the "
                f"{MAX_UPLOAD_BYTES} byte upload limit",
                context={"src": str(path), "resolved_path": str(file_path)},
            )

        data = self._transport.request(
            "POST",
            f"{MEDIAS}/upload_all",
            data={
                "file_name": file_path.name,
                "parent_type": parent_type,
                "parent_node": parent_id,
                "size": str(len(content)),
            },
            files={"file": (file_path.name, content)},
        )
        token = data.get("file_token")
        if not token:
            raise LarkdownUploadError(
                f"upload of {file_path.name} returned no file token",
                context={"file_name": file_path.name, "parent_node": parent_id},
            )
        log.debug(
            "Uploaded media",
            extra={
                "extra_fields": {
                    "op": "upload",
                    "file_name": file_path.name,
                    "size": len(content),
                }
            },
        )
        return str(token)

    def download(self, token: str) -> bytes:
        """Download the media identified by *token*."""
        return self._transport.request_raw("GET", f"{MEDIAS}/{token}/download")
