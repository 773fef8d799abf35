"""Full error hierarchy for larkdown.

Every public error class inherits from LarkdownError. Each carries a
machine-readable ``code`` (from :class:`ErrorCode`), a human-readable
``message``, an optional structured ``context`` dict, and an optional
``cause`` (chained exception).

The retry engine classifies failures into four families, each with its own
base class:

* :class:`LarkdownPermanentError` -- malformed input or invalid parameters.
  Never retried.
* :class:`LarkdownRateLimitError` -- the remote quota was exceeded.  Always
  eligible for another attempt, bounded only by the total-attempt ceiling.
* :class:`LarkdownRetryableServerError` -- 5xx-class and transport failures.
  Retried up to the failure budget.
* :class:`LarkdownUnknownError` -- anything the classifier does not
  recognise.  Treated as fatal for the unit of work.
"""

from __future__ import annotations

from enum import Enum
from typing import Any

# ---------------------------------------------------------------------------
# Error code enum
# ---------------------------------------------------------------------------

class ErrorCode(str, Enum):
    """Machine-readable error codes for every error larkdown can raise."""

    PERMANENT_ERROR = "PERMANENT_ERROR"
    VALIDATION_ERROR = "VALIDATION_ERROR"
    AUTH_ERROR = "AUTH_ERROR"
    PERMISSION_ERROR = "PERMISSION_ERROR"
    NOT_FOUND = "NOT_FOUND"
    DIAGRAM_SYNTAX_ERROR = "DIAGRAM_SYNTAX_ERROR"
    RATE_LIMITED = "RATE_LIMITED"
    SERVER_ERROR = "SERVER_ERROR"
    NETWORK_ERROR = "NETWORK_ERROR"
    UNKNOWN_ERROR = "UNKNOWN_ERROR"
    RETRY_EXHAUSTED = "RETRY_EXHAUSTED"
    CANCELLED = "CANCELLED"
    CONVERSION_ERROR = "CONVERSION_ERROR"
    IMAGE_ERROR = "IMAGE_ERROR"
    UPLOAD_ERROR = "UPLOAD_ERROR"
    IMPORT_ABORTED = "IMPORT_ABORTED"


# ---------------------------------------------------------------------------
# Base error
# ---------------------------------------------------------------------------

class LarkdownError(Exception):
    """Base exception for all larkdown errors.

    Parameters
    ----------
    code:
        A value from :class:`ErrorCode` (or any string) identifying the
        error category.
    message:
        A developer-friendly description of what went wrong.
    context:
        Arbitrary structured data providing extra diagnostic detail.
        Keys and expected types are documented per subclass.
    cause:
        The underlying exception, if this error wraps another.
    """

    def __init__(
        self,
        code: str,
        message: str,
        context: dict[str, Any] | None = None,
        cause: Exception | None = None,
    ) -> None:
        self.code: str = code
        self.message: str = message
        self.context: dict[str, Any] = context or {}
        self.cause: Exception | None = cause
        super().__init__(message)
        if cause is not None:
            self.__cause__ = cause

    @property
    def headers(self) -> dict[str, str]:
        """Response headers captured when the error came from an HTTP call."""
        return self.context.get("headers") or {}

    def __repr__(self) -> str:
        ctx = f", context={self.context!r}" if self.context else ""
        return f"{type(self).__name__}(code={self.code!r}, message={self.message!r}{ctx})"


# ---------------------------------------------------------------------------
# Permanent errors (never retried)
# ---------------------------------------------------------------------------

class LarkdownPermanentError(LarkdownError):
    """The request can never succeed as sent.

    Context keys: ``status_code``, ``api_code``, ``path``.
    """

    def __init__(
        self,
        message: str,
        context: dict[str, Any] | None = None,
        cause: Exception | None = None,
        *,
        code: str = ErrorCode.PERMANENT_ERROR,
    ) -> None:
        super().__init__(
            code=code,
            message=message,
            context=context,
            cause=cause,
        )


class LarkdownValidationError(LarkdownPermanentError):
    """Feishu returned 400 or an invalid-parameter envelope code.

    Context keys: ``status_code``, ``api_code``, ``body``.
    """

    def __init__(
        self,
        message: str,
        context: dict[str, Any] | None = None,
        cause: Exception | None = None,
    ) -> None:
        super().__init__(message, context, cause, code=ErrorCode.VALIDATION_ERROR)


class LarkdownAuthError(LarkdownPermanentError):
    """Feishu returned 401, or the tenant token could not be obtained.

    Context keys: ``status_code``, ``api_code``.
    """

    def __init__(
        self,
        message: str,
        context: dict[str, Any] | None = None,
        cause: Exception | None = None,
    ) -> None:
        super().__init__(message, context, cause, code=ErrorCode.AUTH_ERROR)


class LarkdownPermissionError(LarkdownPermanentError):
    """Feishu returned 403: the app lacks access to the document.

    Context keys: ``status_code``, ``api_code``, ``operation``.
    """

    def __init__(
        self,
        message: str,
        context: dict[str, Any] | None = None,
        cause: Exception | None = None,
    ) -> None:
        super().__init__(message, context, cause, code=ErrorCode.PERMISSION_ERROR)


class LarkdownNotFoundError(LarkdownPermanentError):
    """Feishu returned 404: the document or block does not exist.

    Context keys: ``status_code``, ``api_code``, ``path``.
    """

    def __init__(
        self,
        message: str,
        context: dict[str, Any] | None = None,
        cause: Exception | None = None,
    ) -> None:
        super().__init__(message, context, cause, code=ErrorCode.NOT_FOUND)


class LarkdownDiagramSyntaxError(LarkdownPermanentError):
    """The whiteboard service rejected the diagram source as unparseable.

    Context keys: ``whiteboard_id``, ``syntax``, ``api_code``.
    """

    def __init__(
        self,
        message: str,
        context: dict[str, Any] | None = None,
        cause: Exception | None = None,
    ) -> None:
        super().__init__(message, context, cause, code=ErrorCode.DIAGRAM_SYNTAX_ERROR)


# ---------------------------------------------------------------------------
# Transient errors
# ---------------------------------------------------------------------------

class LarkdownRateLimitError(LarkdownError):
    """Feishu returned 429 or the frequency-limit envelope code 99991400.

    Context keys: ``status_code``, ``api_code``, ``headers``.
    """

    def __init__(
        self,
        message: str,
        context: dict[str, Any] | None = None,
        cause: Exception | None = None,
    ) -> None:
        super().__init__(
            code=ErrorCode.RATE_LIMITED,
            message=message,
            context=context,
            cause=cause,
        )


class LarkdownRetryableServerError(LarkdownError):
    """Feishu returned a 5xx-class response.

    Context keys: ``status_code``, ``api_code``, ``headers``.
    """

    def __init__(
        self,
        message: str,
        context: dict[str, Any] | None = None,
        cause: Exception | None = None,
        *,
        code: str = ErrorCode.SERVER_ERROR,
    ) -> None:
        super().__init__(
            code=code,
            message=message,
            context=context,
            cause=cause,
        )


class LarkdownNetworkError(LarkdownRetryableServerError):
    """A transport-level failure occurred (timeout, DNS, connection reset).

    Context keys: ``url``, ``method``.
    """

    def __init__(
        self,
        message: str,
        context: dict[str, Any] | None = None,
        cause: Exception | None = None,
    ) -> None:
        super().__init__(message, context, cause, code=ErrorCode.NETWORK_ERROR)


class LarkdownUnknownError(LarkdownError):
    """A failure that matches no known class.  Never retried.

    Context keys: ``status_code``, ``api_code``, ``body``.
    """

    def __init__(
        self,
        message: str,
        context: dict[str, Any] | None = None,
        cause: Exception | None = None,
    ) -> None:
        super().__init__(
            code=ErrorCode.UNKNOWN_ERROR,
            message=message,
            context=context,
            cause=cause,
        )


# ---------------------------------------------------------------------------
# Retry engine outcomes
# ---------------------------------------------------------------------------

class LarkdownRetryExhaustedError(LarkdownError):
    """The retry budget or the total-attempt ceiling was reached.

    Context keys: ``attempts``, ``rate_limit_hits``, ``limit``.
    """

    def __init__(
        self,
        message: str,
        context: dict[str, Any] | None = None,
        cause: Exception | None = None,
    ) -> None:
        super().__init__(
            code=ErrorCode.RETRY_EXHAUSTED,
            message=message,
            context=context,
            cause=cause,
        )


class LarkdownCancelledError(LarkdownError):
    """A retry loop or a cell fill observed a cancellation request.

    Context keys: ``attempts`` (retry loop), ``cells_written`` (cell fill).
    """

    def __init__(
        self,
        message: str,
        context: dict[str, Any] | None = None,
        cause: Exception | None = None,
    ) -> None:
        super().__init__(
            code=ErrorCode.CANCELLED,
            message=message,
            context=context,
            cause=cause,
        )


# ---------------------------------------------------------------------------
# Conversion and media errors
# ---------------------------------------------------------------------------

class LarkdownConversionError(LarkdownError):
    """Markdown or block-tree input could not be converted.

    Context keys: ``source``.
    """

    def __init__(
        self,
        message: str,
        context: dict[str, Any] | None = None,
        cause: Exception | None = None,
    ) -> None:
        super().__init__(
            code=ErrorCode.CONVERSION_ERROR,
            message=message,
            context=context,
            cause=cause,
        )


class LarkdownImageError(LarkdownError):
    """A local image could not be read.

    Context keys: ``src``, ``resolved_path``.
    """

    def __init__(
        self,
        message: str,
        context: dict[str, Any] | None = None,
        cause: Exception | None = None,
    ) -> None:
        super().__init__(
            code=ErrorCode.IMAGE_ERROR,
            message=message,
            context=context,
            cause=cause,
        )


class LarkdownUploadError(LarkdownError):
    """The media upload endpoint did not return a file token.

    Context keys: ``file_name``, ``parent_node``.
    """

    def __init__(
        self,
        message: str,
        context: dict[str, Any] | None = None,
        cause: Exception | None = None,
    ) -> None:
        super().__init__(
            code=ErrorCode.UPLOAD_ERROR,
            message=message,
            context=context,
            cause=cause,
        )


# ---------------------------------------------------------------------------
# Import pipeline
# ---------------------------------------------------------------------------

class LarkdownImportError(LarkdownError):
    """Phase 1 of an import failed and the run was aborted.

    Context keys: ``document_id``, ``segment_index``, ``blocks_created``.
    """

    def __init__(
        self,
        message: str,
        context: dict[str, Any] | None = None,
        cause: Exception | None = None,
    ) -> None:
        super().__init__(
            code=ErrorCode.IMPORT_ABORTED,
            message=message,
            context=context,
            cause=cause,
        )
