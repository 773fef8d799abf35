"""larkdown.feishu_api -- Feishu open-platform transport and endpoint wrappers.

This sub-package provides:

* :mod:`.rate_limit` -- Token bucket request pacing.
* :mod:`.retries` -- Error classification, backoff and the retry loop.
* :mod:`.transport` -- HTTP transport with tenant auth and envelope decoding.
* :mod:`.documents` -- Docx document and block wrappers, table cell fill.
* :mod:`.boards` -- Whiteboard diagram import and image download.
* :mod:`.media` -- Drive media upload and download.
"""

from __future__ import annotations

from .boards import BoardAPI
from .documents import DocumentAPI
from .media import MediaAPI
from .rate_limit import TokenBucket
from .retries import (
    RetryConfig,
    RetryDecision,
    RetryResult,
    call_with_retry,
    classify_error,
    do_with_retry,
    linear_wait,
    retry_wait_seconds,
)
from .transport import FeishuTransport

__all__ = [
    "BoardAPI",
    "DocumentAPI",
    "FeishuTransport",
    "MediaAPI",
    "RetryConfig",
    "RetryDecision",
    "RetryResult",
    "TokenBucket",
    "call_with_retry",
    "classify_error",
    "do_with_retry",
    "linear_wait",
    "retry_wait_seconds",
]
