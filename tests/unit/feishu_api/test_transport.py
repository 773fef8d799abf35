"""Tests for feishu_api/transport.py.

Uses :class:`httpx.MockTransport` so that the real request/response path
(headers, JSON envelopes, status codes) is exercised without a network.
Covers error mapping, tenant-token caching and invalidation, envelope
decoding, binary downloads, pagination and metrics.
"""

from __future__ import annotations

import json
from unittest.mock import MagicMock

import httpx
import pytest

from larkdown.config import LarkdownConfig
from larkdown.errors import (
    LarkdownAuthError,
    LarkdownNetworkError,
    LarkdownNotFoundError,
    LarkdownPermissionError,
    LarkdownRateLimitError,
    LarkdownRetryableServerError,
    LarkdownUnknownError,
    LarkdownValidationError,
)
from larkdown.feishu_api.transport import TOKEN_PATH, FeishuTransport, map_error

BASE_URL = "https://open.feishu.cn"


def make_config(**overrides) -> LarkdownConfig:
    defaults = {
        "app_id": "cli_test",
        "app_secret": "secret_test_1234",
        "rate_limit_rps": 10_000.0,
    }
    defaults.update(overrides)
    return LarkdownConfig(**defaults)


def make_transport(handler, **overrides) -> FeishuTransport:
    client = httpx.Client(transport=httpx.MockTransport(handler), base_url=BASE_URL)
    return FeishuTransport(make_config(**overrides), client=client)


def ok(data: dict | None = None) -> httpx.Response:
    return httpx.Response(200, json={"code": 0, "msg": "success", "data": data or {}})


def token_response(token: str = "t-fresh", expire: int = 7200) -> httpx.Response:
    return httpx.Response(
        200,
        json={"code": 0, "msg": "ok", "tenant_access_token": token, "expire": expire},
    )


class _Router:
    """Serve the token endpoint and delegate API calls to *api*."""

    def __init__(self, api) -> None:
        self.api = api
        self.token_calls = 0
        self.requests: list[httpx.Request] = []

    def __call__(self, request: httpx.Request) -> httpx.Response:
        if request.url.path == TOKEN_PATH:
            self.token_calls += 1
            return token_response(f"t-{self.token_calls}")
        self.requests.append(request)
        return self.api(request)


# ---------------------------------------------------------------------------
# Error mapping
# ---------------------------------------------------------------------------

class TestMapError:
    def _map(self, status, code=0, message="msg"):
        return map_error(status, code, message, method="POST", path="/x")

    def test_rate_limit_by_status_code_and_message(self):
        assert isinstance(self._map(429), LarkdownRateLimitError)
        assert isinstance(self._map(200, 99991400), LarkdownRateLimitError)
        assert isinstance(self._map(400, 1, "request trigger frequency limit"), LarkdownRateLimitError)

    def test_server_error(self):
        assert isinstance(self._map(503), LarkdownRetryableServerError)

    def test_auth(self):
        assert isinstance(self._map(401), LarkdownAuthError)
        assert isinstance(self._map(200, 99991663), LarkdownAuthError)

    def test_permission(self):
        assert isinstance(self._map(403), LarkdownPermissionError)
        assert isinstance(self._map(200, 1770032), LarkdownPermissionError)
        assert isinstance(self._map(200, 5, "no permission to edit"), LarkdownPermissionError)

    def test_not_found(self):
        assert isinstance(self._map(404), LarkdownNotFoundError)
        assert isinstance(self._map(200, 1770002), LarkdownNotFoundError)

    def test_validation(self):
        assert isinstance(self._map(400), LarkdownValidationError)
        assert isinstance(self._map(200, 1770001), LarkdownValidationError)
        assert isinstance(self._map(200, 7, "invalid param xyz"), LarkdownValidationError)

    def test_unknown(self):
        error = self._map(200, 12345, "weird")
        assert isinstance(error, LarkdownUnknownError)
        assert error.context["api_code"] == 12345

    def test_headers_in_context(self):
        error = map_error(
            429, 0, "slow", method="GET", path="/x", headers={"x-ogw-ratelimit-reset": "3"},
        )
        assert error.headers == {"x-ogw-ratelimit-reset": "3"}


# ---------------------------------------------------------------------------
# Authentication
# ---------------------------------------------------------------------------

class TestTenantToken:
    def test_token_fetched_once_and_cached(self):
        router = _Router(lambda request: ok())
        transport = make_transport(router)
        transport.request("GET", "/open-apis/a")
        transport.request("GET", "/open-apis/b")
        assert router.token_calls == 1
        assert router.requests[0].headers["Authorization"] == "Bearer t-1"

    def test_token_request_carries_credentials_without_auth(self):
        seen: list[httpx.Request] = []

        def handler(request):
            seen.append(request)
            return token_response()

        transport = make_transport(handler)
        assert transport.tenant_token() == "t-fresh"
        assert "Authorization" not in seen[0].headers
        assert json.loads(seen[0].content) == {"app_id": "cli_test", "app_secret": "secret_test_1234"}

    def test_expired_token_refetched(self):
        router = _Router(lambda request: ok())
        transport = make_transport(router)
        transport.request("GET", "/open-apis/a")
        transport._token_expires_at = 0.0
        transport.request("GET", "/open-apis/a")
        assert router.token_calls == 2

    def test_short_lifetime_expires_immediately(self):
        calls: list[int] = []

        def handler(request):
            calls.append(1)
            return token_response(expire=30)

        transport = make_transport(handler)
        transport.tenant_token()
        transport.tenant_token()
        assert len(calls) == 2

    def test_preset_token_used_directly(self):
        router = _Router(lambda request: ok())
        transport = make_transport(router, app_id="", app_secret="", tenant_access_token="t-preset")
        transport.request("GET", "/open-apis/a")
        assert router.token_calls == 0
        assert router.requests[0].headers["Authorization"] == "Bearer t-preset"

    def test_no_credentials(self):
        transport = make_transport(lambda request: ok(), app_id="", app_secret="")
        with pytest.raises(LarkdownAuthError):
            transport.tenant_token()

    def test_refused_credentials(self):
        def handler(request):
            return httpx.Response(200, json={"code": 10014, "msg": "app secret invalid"})

        with pytest.raises(LarkdownAuthError, match="app secret invalid"):
            make_transport(handler).tenant_token()

    def test_token_endpoint_overloaded_is_retryable(self):
        transport = make_transport(lambda request: httpx.Response(503, json={}))
        with pytest.raises(LarkdownRetryableServerError):
            transport.tenant_token()

    def test_auth_error_invalidates_token(self):
        responses = iter([
            httpx.Response(200, json={"code": 99991663, "msg": "token expired"}),
            ok({"x": 1}),
        ])
        router = _Router(lambda request: next(responses))
        transport = make_transport(router)
        with pytest.raises(LarkdownAuthError):
            transport.request("GET", "/open-apis/a")
        assert transport.request("GET", "/open-apis/a") == {"x": 1}
        assert router.token_calls == 2

    def test_invalidate_keeps_preset_token(self):
        transport = make_transport(lambda request: ok(), app_id="", app_secret="",
                                   tenant_access_token="t-preset")
        transport.invalidate_token()
        assert transport.tenant_token() == "t-preset"


# ---------------------------------------------------------------------------
# Requests
# ---------------------------------------------------------------------------

class TestRequest:
    def test_returns_data(self):
        transport = make_transport(_Router(lambda request: ok({"document": {"id": "d"}})))
        assert transport.request("GET", "/open-apis/x") == {"document": {"id": "d"}}

    def test_null_data_is_empty_dict(self):
        def api(request):
            return httpx.Response(200, json={"code": 0, "msg": "ok", "data": None})

        assert make_transport(_Router(api)).request("GET", "/open-apis/x") == {}

    def test_json_body_and_params_sent(self):
        router = _Router(lambda request: ok())
        make_transport(router).request(
            "POST", "/open-apis/x", params={"a": "1"}, json={"children": []},
        )
        sent = router.requests[0]
        assert sent.url.params["a"] == "1"
        assert json.loads(sent.content) == {"children": []}

    def test_error_envelope_on_200(self):
        def api(request):
            return httpx.Response(200, json={"code": 1770002, "msg": "not found"})

        with pytest.raises(LarkdownNotFoundError):
            make_transport(_Router(api)).request("GET", "/open-apis/x")

    def test_rate_limit_carries_headers(self):
        def api(request):
            return httpx.Response(
                429,
                json={"code": 99991400, "msg": "frequency limit"},
                headers={"x-ogw-ratelimit-reset": "2"},
            )

        with pytest.raises(LarkdownRateLimitError) as exc_info:
            make_transport(_Router(api)).request("GET", "/open-apis/x")
        assert exc_info.value.headers.get("x-ogw-ratelimit-reset") == "2"

    def test_non_json_error_body(self):
        def api(request):
            return httpx.Response(502, text="<html>bad gateway</html>")

        with pytest.raises(LarkdownRetryableServerError, match="bad gateway"):
            make_transport(_Router(api)).request("GET", "/open-apis/x")

    def test_transport_never_retries(self):
        router = _Router(lambda request: httpx.Response(503, json={"code": 1, "msg": "busy"}))
        with pytest.raises(LarkdownRetryableServerError):
            make_transport(router).request("GET", "/open-apis/x")
        assert len(router.requests) == 1

    def test_network_error_mapped(self):
        def api(request):
            raise httpx.ConnectError("refused", request=request)

        with pytest.raises(LarkdownNetworkError):
            make_transport(_Router(api)).request("GET", "/open-apis/x")

    def test_timeout_mapped(self):
        def api(request):
            raise httpx.ReadTimeout("slow", request=request)

        with pytest.raises(LarkdownNetworkError):
            make_transport(_Router(api)).request("GET", "/open-apis/x")

    def test_call_count(self):
        transport = make_transport(_Router(lambda request: ok()))
        for _ in range(3):
            transport.request("GET", "/open-apis/x")
        assert transport.call_count == 3

    def test_metrics_hook(self):
        metrics = MagicMock()
        transport = make_transport(_Router(lambda request: ok()), metrics=metrics)
        transport.request("GET", "/open-apis/x")
        metrics.increment.assert_any_call(
            "larkdown.requests_total", tags={"method": "GET", "status": "200"},
        )

    def test_debug_dump_redacts_secret(self, capsys):
        transport = make_transport(_Router(lambda request: ok({"v": 1})), debug_dump_payload=True)
        transport.request("POST", "/open-apis/x", json={"a": 1})
        err = capsys.readouterr().err
        assert "secret_test_1234" not in err
        assert '"request_body"' in err


class TestRequestRaw:
    def test_binary_content(self):
        def api(request):
            return httpx.Response(200, content=b"\x89PNG", headers={"content-type": "image/png"})

        assert make_transport(_Router(api)).request_raw("GET", "/open-apis/m") == b"\x89PNG"

    def test_json_error(self):
        def api(request):
            return httpx.Response(404, json={"code": 1770002, "msg": "gone"})

        with pytest.raises(LarkdownNotFoundError):
            make_transport(_Router(api)).request_raw("GET", "/open-apis/m")

    def test_json_success_is_unexpected(self):
        with pytest.raises(LarkdownUnknownError):
            make_transport(_Router(lambda request: ok())).request_raw("GET", "/open-apis/m")


class TestPaginate:
    def test_follows_page_token(self):
        pages = {
            None: {"items": [1, 2], "has_more": True, "page_token": "p2"},
            "p2": {"items": [3], "has_more": False},
        }

        def api(request):
            return ok(pages[request.url.params.get("page_token")])

        router = _Router(api)
        items = list(make_transport(router).paginate("/open-apis/list", {"page_size": 2}))
        assert items == [1, 2, 3]
        assert router.requests[1].url.params["page_size"] == "2"

    def test_stops_without_token(self):
        def api(request):
            return ok({"items": [1], "has_more": True})

        assert list(make_transport(_Router(api)).paginate("/open-apis/list")) == [1]


class TestLifecycle:
    def test_context_manager_closes_client(self):
        client = httpx.Client(transport=httpx.MockTransport(lambda r: ok()), base_url=BASE_URL)
        with FeishuTransport(make_config(), client=client):
            pass
        assert client.is_closed
