"""Tests for errors.py: codes, hierarchy, context and chaining."""

from __future__ import annotations

import pytest

from larkdown.errors import (
    ErrorCode,
    LarkdownAuthError,
    LarkdownCancelledError,
    LarkdownConversionError,
    LarkdownDiagramSyntaxError,
    LarkdownError,
    LarkdownImageError,
    LarkdownImportError,
    LarkdownNetworkError,
    LarkdownNotFoundError,
    LarkdownPermanentError,
    LarkdownPermissionError,
    LarkdownRateLimitError,
    LarkdownRetryableServerError,
    LarkdownRetryExhaustedError,
    LarkdownUnknownError,
    LarkdownUploadError,
    LarkdownValidationError,
)


@pytest.mark.parametrize(
    ("cls", "code"),
    [
        (LarkdownValidationError, ErrorCode.VALIDATION_ERROR),
        (LarkdownAuthError, ErrorCode.AUTH_ERROR),
        (LarkdownPermissionError, ErrorCode.PERMISSION_ERROR),
        (LarkdownNotFoundError, ErrorCode.NOT_FOUND),
        (LarkdownDiagramSyntaxError, ErrorCode.DIAGRAM_SYNTAX_ERROR),
        (LarkdownRateLimitError, ErrorCode.RATE_LIMITED),
        (LarkdownRetryableServerError, ErrorCode.SERVER_ERROR),
        (LarkdownNetworkError, ErrorCode.NETWORK_ERROR),
        (LarkdownUnknownError, ErrorCode.UNKNOWN_ERROR),
        (LarkdownRetryExhaustedError, ErrorCode.RETRY_EXHAUSTED),
        (LarkdownCancelledError, ErrorCode.CANCELLED),
        (LarkdownConversionError, ErrorCode.CONVERSION_ERROR),
        (LarkdownImageError, ErrorCode.IMAGE_ERROR),
        (LarkdownUploadError, ErrorCode.UPLOAD_ERROR),
        (LarkdownImportError, ErrorCode.IMPORT_ABORTED),
    ],
)
def test_codes(cls, code):
    error = cls("message")
    assert error.code == code
    assert error.message == "message"
    assert str(error) == "message"
    assert isinstance(error, LarkdownError)


class TestHierarchy:
    @pytest.mark.parametrize(
        "cls",
        [
            LarkdownValidationError,
            LarkdownAuthError,
            LarkdownPermissionError,
            LarkdownNotFoundError,
            LarkdownDiagramSyntaxError,
        ],
    )
    def test_permanent_family(self, cls):
        assert issubclass(cls, LarkdownPermanentError)

    def test_network_is_retryable_server(self):
        assert issubclass(LarkdownNetworkError, LarkdownRetryableServerError)

    def test_transient_not_permanent(self):
        for cls in (LarkdownRateLimitError, LarkdownRetryableServerError, LarkdownUnknownError):
            assert not issubclass(cls, LarkdownPermanentError)


class TestContext:
    def test_default_context_empty(self):
        assert LarkdownUnknownError("x").context == {}

    def test_headers_from_context(self):
        error = LarkdownRateLimitError("slow", context={"headers": {"x-ogw-ratelimit-reset": "3"}})
        assert error.headers == {"x-ogw-ratelimit-reset": "3"}
        assert LarkdownRateLimitError("slow").headers == {}

    def test_cause_chained(self):
        root = OSError("reset")
        error = LarkdownNetworkError("network failure", cause=root)
        assert error.cause is root
        assert error.__cause__ is root

    def test_repr(self):
        error = LarkdownNotFoundError("gone", context={"path": "/x"})
        text = repr(error)
        assert text.startswith("LarkdownNotFoundError(code=")
        assert text.endswith("message='gone', context={'path': '/x'})")

    def test_catchable_as_base(self):
        with pytest.raises(LarkdownError):
            raise LarkdownImportError("aborted", context={"segment_index": 2})
