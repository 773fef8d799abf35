"""HTTP transport for the Feishu open platform.

Each request goes through the same lifecycle:

1. Acquire a token-bucket slot (wait if needed).
2. Attach ``Authorization: Bearer <tenant token>``; the token is fetched
   from the app credentials on first use and cached in memory until
   shortly before it expires.
3. Send the request.
4. Decode the ``{"code", "msg", "data"}`` envelope and return ``data``.
5. On a non-zero code or a non-2xx status, raise the typed error from
   :mod:`larkdown.errors`.

The transport never retries.  Retry policy belongs to the caller and is
expressed with :func:`larkdown.feishu_api.retries.do_with_retry`.
"""

from __future__ import annotations

import json as _json
import sys
import threading
import time
from collections.abc import Iterator
from typing import Any

import httpx

from larkdown.config import LarkdownConfig
from larkdown.errors import (
    LarkdownAuthError,
    LarkdownError,
    LarkdownNetworkError,
    LarkdownNotFoundError,
    LarkdownPermissionError,
    LarkdownRateLimitError,
    LarkdownRetryableServerError,
    LarkdownUnknownError,
    LarkdownValidationError,
)
from larkdown.observability import NoopMetricsHook, get_logger

from .rate_limit import TokenBucket

log = get_logger("larkdown.transport")

TOKEN_PATH = "/open-apis/auth/v3/tenant_access_token/internal"

# Seconds subtracted from the advertised token lifetime.
TOKEN_EXPIRY_MARGIN = 60

RATE_LIMIT_CODE = 99991400
AUTH_CODES: frozenset[int] = frozenset({99991661, 99991663, 99991664, 99991665, 99991668})
VALIDATION_CODES: frozenset[int] = frozenset({1770001, 99992402})
NOT_FOUND_CODES: frozenset[int] = frozenset({1770002})
PERMISSION_CODES: frozenset[int] = frozenset({1770032, 99991672})


# ---------------------------------------------------------------------------
# Helpers
# ---------------------------------------------------------------------------

def _decode_body(response: httpx.Response) -> dict:
    try:
        body = response.json()
    except ValueError:
        return {}
    return body if isinstance(body, dict) else {}


def map_error(
    status: int,
    api_code: int,
    message: str,
    *,
    method: str,
    path: str,
    headers: dict[str, str] | None = None,
    body: Any = None,
) -> LarkdownError:
    """Build the typed error for a failed Feishu call.

    Parameters
    ----------
    status:
        HTTP status code of the response.
    api_code:
        The envelope ``code`` (``0`` when the body carried none).
    message:
        The envelope ``msg`` or a fallback description.

    Returns
    -------
    LarkdownError
        Never raised here; the caller decides.
    """
    context: dict[str, Any] = {
        "status_code": status,
        "api_code": api_code,
        "path": path,
        "headers": dict(headers or {}),
    }
    where = f"{method} {path}"
    lowered = message.lower()

    if status == 429 or api_code == RATE_LIMIT_CODE or "frequency limit" in lowered:
        return LarkdownRateLimitError(f"rate limited on {where}: {message}", context)
    if status >= 500:
        return LarkdownRetryableServerError(f"server error {status} on {where}: {message}", context)
    if status == 401 or api_code in AUTH_CODES:
        return LarkdownAuthError(f"authentication failed on {where}: {message}", context)
    if status == 403 or api_code in PERMISSION_CODES or "permission" in lowered:
        context["operation"] = where
        return LarkdownPermissionError(f"permission denied on {where}: {message}", context)
    if status == 404 or api_code in NOT_FOUND_CODES:
        return LarkdownNotFoundError(f"not found on {where}: {message}", context)
    if (
        status == 400
        or api_code in VALIDATION_CODES
        or "invalid param" in lowered
        or "invalid request parameter" in lowered
    ):
        context["body"] = body
        return LarkdownValidationError(f"invalid request on {where}: {message}", context)
    context["body"] = body
    return LarkdownUnknownError(
        f"unexpected response on {where}: status={status} code={api_code} {message}",
        context,
    )


def _dump_payload(
    method: str,
    url: str,
    payload: Any,
    response_status: int | None,
    response_body: Any,
    secrets: tuple[str, ...],
) -> None:
    """Write a redacted debug dump of the request/response to stderr."""
    from larkdown.utils.redact import redact

    dump: dict[str, Any] = {"method": method, "url": url}
    if payload is not None:
        dump["request_body"] = payload
    if response_status is not None:
        dump["response_status"] = response_status
    if response_body is not None:
        dump["response_body"] = response_body
    print(_json.dumps(redact(dump, secrets), indent=2, default=str), file=sys.stderr)


# ---------------------------------------------------------------------------
# Transport
# ---------------------------------------------------------------------------

class FeishuTransport:
    """Synchronous HTTP transport with tenant auth and rate limiting.

    Thread-safe: the phase-2 worker pools share one instance.

    Parameters
    ----------
    config:
        Credentials, base URL, timeout, proxy and pacing.
    client:
        A pre-built :class:`httpx.Client` (tests pass one wired to
        :class:`httpx.MockTransport`).  Its ``base_url`` is used as is.
    """

    def __init__(self, config: LarkdownConfig, client: httpx.Client | None = None) -> None:
        self._config = config
        self._bucket = TokenBucket(rate_rps=config.rate_limit_rps, burst=5)
        self._metrics = config.metrics if config.metrics is not None else NoopMetricsHook()
        self._token_lock = threading.Lock()
        self._token: str = config.tenant_access_token
        self._token_expires_at: float = float("inf") if self._token else 0.0
        self._calls = 0
        self._calls_lock = threading.Lock()

        if client is None:
            client = httpx.Client(
                base_url=config.base_url,
                timeout=httpx.Timeout(config.timeout_seconds),
                proxy=config.http_proxy,
            )
        self._client = client

    # -- bookkeeping -------------------------------------------------------

    @property
    def call_count(self) -> int:
        """Number of API requests sent (token requests excluded)."""
        with self._calls_lock:
            return self._calls

    def _count_call(self) -> None:
        with self._calls_lock:
            self._calls += 1

    @property
    def _secrets(self) -> tuple[str, ...]:
        return tuple(s for s in (self._config.app_secret, self._token) if s)

    # -- auth --------------------------------------------------------------

    def tenant_token(self) -> str:
        """Return a valid tenant access token, fetching one if needed.

        Raises
        ------
        LarkdownAuthError
            When no credentials are configured or Feishu refuses them.
        """
        with self._token_lock:
            if self._token and time.monotonic() < self._token_expires_at:
                return self._token
            if not (self._config.app_id and self._config.app_secret):
                raise LarkdownAuthError(
                    "no tenant access token and no app credentials configured",
                )
            self._token, lifetime = self._fetch_token()
            self._token_expires_at = time.monotonic() + max(0, lifetime - TOKEN_EXPIRY_MARGIN)
            log.info(
                "Obtained tenant access token",
                extra={"extra_fields": {"op": "auth", "expires_in": lifetime}},
            )
            return self._token

    def _fetch_token(self) -> tuple[str, int]:
        payload = {"app_id": self._config.app_id, "app_secret": self._config.app_secret}
        try:
            response = self._client.post(TOKEN_PATH, json=payload)
        except (httpx.TimeoutException, httpx.NetworkError) as exc:
            raise LarkdownNetworkError(
                f"network error while fetching tenant token: {exc}",
                context={"url": TOKEN_PATH, "method": "POST"},
                cause=exc,
            ) from exc

        body = _decode_body(response)
        if self._config.debug_dump_payload:
            _dump_payload(
                "POST", str(response.url), payload, response.status_code, body, self._secrets,
            )
        code = int(body.get("code", -1)) if body else -1
        token = body.get("tenant_access_token")
        if response.status_code >= 400 or code != 0 or not token:
            if response.status_code >= 500 or response.status_code == 429:
                raise map_error(
                    response.status_code,
                    code,
                    str(body.get("msg", "")),
                    method="POST",
                    path=TOKEN_PATH,
                    headers=dict(response.headers),
                )
            raise LarkdownAuthError(
                f"failed to obtain tenant access token: {body.get('msg', response.status_code)}",
                context={"status_code": response.status_code, "api_code": code},
            )
        return str(token), int(body.get("expire", 7200))

    def invalidate_token(self) -> None:
        """Drop the cached token so the next call fetches a fresh one."""
        with self._token_lock:
            if self._config.app_id and self._config.app_secret:
                self._token = ""
                self._token_expires_at = 0.0

    # -- requests ----------------------------------------------------------

    def _send(self, method: str, path: str, **kwargs: Any) -> httpx.Response:
        wait = self._bucket.acquire()
        if wait > 0:
            self._metrics.timing("larkdown.rate_limit_wait_ms", wait * 1000, tags={"method": method})

        headers = dict(kwargs.pop("headers", None) or {})
        headers["Authorization"] = f"Bearer {self.tenant_token()}"

        self._count_call()
        t0 = time.monotonic()
        try:
            response = self._client.request(method, path, headers=headers, **kwargs)
        except (httpx.TimeoutException, httpx.NetworkError) as exc:
            self._metrics.increment(
                "larkdown.requests_total", tags={"method": method, "status": "error"},
            )
            log.warning(
                "Request network error",
                extra={
                    "extra_fields": {
                        "op": "request",
                        "method": method,
                        "path": path,
                        "error": str(exc),
                    }
                },
            )
            raise LarkdownNetworkError(
                f"network error on {method} {path}: {exc}",
                context={"url": path, "method": method},
                cause=exc,
            ) from exc

        elapsed_ms = (time.monotonic() - t0) * 1000
        status = str(response.status_code)
        self._metrics.increment("larkdown.requests_total", tags={"method": method, "status": status})
        self._metrics.timing(
            "larkdown.request_duration_ms", elapsed_ms, tags={"method": method, "status": status},
        )
        log.debug(
            "Request completed",
            extra={
                "extra_fields": {
                    "op": "request",
                    "method": method,
                    "path": path,
                    "status_code": response.status_code,
                    "duration_ms": round(elapsed_ms, 1),
                }
            },
        )
        return response

    def _raise_for_envelope(
        self, response: httpx.Response, body: dict, method: str, path: str,
    ) -> None:
        code = body.get("code", 0)
        try:
            api_code = int(code)
        except (TypeError, ValueError):
            api_code = -1
        if 200 <= response.status_code < 300 and api_code == 0:
            return

        message = str(body.get("msg") or response.text[:500] or response.reason_phrase)
        error = map_error(
            response.status_code,
            api_code,
            message,
            method=method,
            path=path,
            headers=dict(response.headers),
            body=body,
        )
        if isinstance(error, LarkdownRateLimitError):
            self._metrics.increment("larkdown.rate_limited_total", tags={"method": method})
            log.warning(
                "Rate limited by Feishu",
                extra={
                    "extra_fields": {
                        "op": "request",
                        "method": method,
                        "path": path,
                        "status_code": response.status_code,
                        "api_code": api_code,
                    }
                },
            )
        elif isinstance(error, LarkdownAuthError):
            self.invalidate_token()
        raise error

    def request(self, method: str, path: str, **kwargs: Any) -> dict:
        """Execute one API call and return the envelope's ``data``.

        Parameters
        ----------
        method:
            HTTP method.
        path:
            API path relative to ``base_url``.
        **kwargs:
            Forwarded to :meth:`httpx.Client.request` (``json=``,
            ``params=``, ``files=``, ``data=``).

        Returns
        -------
        dict
            The ``data`` member (``{}`` when absent or null).

        Raises
        ------
        LarkdownRateLimitError
            On 429 or code 99991400.
        LarkdownRetryableServerError
            On 5xx responses.
        LarkdownNetworkError
            On timeouts and connection failures.
        LarkdownPermanentError
            On 400/401/403/404 and the matching envelope codes.
        LarkdownUnknownError
            On any other non-zero envelope code.
        """
        payload = kwargs.get("json")
        response = self._send(method, path, **kwargs)
        body = _decode_body(response)
        if self._config.debug_dump_payload:
            _dump_payload(
                method, str(response.url), payload, response.status_code, body, self._secrets,
            )
        self._raise_for_envelope(response, body, method, path)
        data = body.get("data")
        return data if isinstance(data, dict) else {}

    def request_raw(self, method: str, path: str, **kwargs: Any) -> bytes:
        """Execute a call whose success body is binary (downloads)."""
        response = self._send(method, path, **kwargs)
        content_type = response.headers.get("content-type", "")
        if 200 <= response.status_code < 300 and "application/json" not in content_type:
            if self._config.debug_dump_payload:
                _dump_payload(
                    method, str(response.url), None, response.status_code,
                    response.content, self._secrets,
                )
            return response.content
        body = _decode_body(response)
        if self._config.debug_dump_payload:
            _dump_payload(method, str(response.url), None, response.status_code, body, self._secrets)
        self._raise_for_envelope(response, body, method, path)
        # A JSON success envelope where bytes were expected.
        raise LarkdownUnknownError(
            f"expected binary content from {method} {path}",
            context={"status_code": response.status_code, "path": path, "body": body},
        )

    def paginate(self, path: str, params: dict[str, Any] | None = None) -> Iterator[dict]:
        """Yield every item of a paginated ``GET`` list endpoint.

        Follows ``page_token`` while ``has_more`` is true.
        """
        query: dict[str, Any] = dict(params or {})
        while True:
            data = self.request("GET", path, params=query)
            yield from data.get("items") or []
            token = data.get("page_token")
            if not data.get("has_more") or not token:
                return
            query["page_token"] = token

    # -- lifecycle ---------------------------------------------------------

    def close(self) -> None:
        self._client.close()

    def __enter__(self) -> FeishuTransport:
        return self

    def __exit__(self, *exc_info: object) -> None:
        self.close()
