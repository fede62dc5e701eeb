"""Tests for services/cms/base.py — Result, request helpers, publish wrapper."""

from __future__ import annotations

from typing import ClassVar

import httpx
import pytest

from core.config import Settings
from core.exceptions import CMSError, ErrorCode, ErrorInfo
from services.cms.base import (
    CMSAdapter,
    CMSPost,
    CMSUser,
    PublishResult,
    Result,
    build_params,
    error_body,
    parse_retry_after,
    validate_post,
)
from tests.conftest import MakeClient

# ---------------------------------------------------------------------------
# Helpers
# ---------------------------------------------------------------------------


class _EchoAdapter(CMSAdapter):
    """Minimal adapter: publishes by POSTing the title to a fake endpoint."""

    name: ClassVar[str] = "Echo"

    def __init__(self, http_client: httpx.AsyncClient | None = None, *, settings: Settings | None = None) -> None:
        super().__init__(http_client, settings=settings)
        self.calls = 0

    def is_configured(self) -> bool:
        return True

    async def _publish(self, post: CMSPost) -> PublishResult:
        self.calls += 1
        response = await self._send("POST", "https://echo.test/posts", json={"title": post.title})
        if response.is_error:
            raise self._api_error(response, None, None)
        body = self._json(response)
        return PublishResult(success=True, post_id=str(body["id"]), url=body["url"])

    async def get_user(self) -> CMSUser:
        return CMSUser(id="1", username="echo", name="Echo")


# ---------------------------------------------------------------------------
# Result
# ---------------------------------------------------------------------------


class TestResult:
    def test_ok_unwraps(self) -> None:
        assert Result.ok(5).unwrap() == 5

    def test_fail_raises_carried_error(self) -> None:
        result: Result[int] = Result.fail(ErrorInfo(message="gone", code=ErrorCode.NOT_FOUND, status_code=404))
        with pytest.raises(CMSError) as exc_info:
            result.unwrap(ErrorCode.PUBLISH_ERROR)
        assert exc_info.value.code == ErrorCode.NOT_FOUND
        assert exc_info.value.status_code == 404

    def test_fail_unknown_takes_default_code(self) -> None:
        result: Result[int] = Result.fail(ErrorInfo(message="?"))
        with pytest.raises(CMSError) as exc_info:
            result.unwrap(ErrorCode.CREATE_ERROR)
        assert exc_info.value.code == ErrorCode.CREATE_ERROR

    def test_ok_has_no_error(self) -> None:
        result = Result.ok({"id": 1})
        assert result.success is True
        assert result.error is None


# ---------------------------------------------------------------------------
# Module helpers
# ---------------------------------------------------------------------------


class TestValidatePost:
    @pytest.mark.parametrize("title", ["", "   "])
    def test_blank_title_rejected(self, title: str) -> None:
        with pytest.raises(CMSError) as exc_info:
            validate_post(CMSPost(title=title, content="x"))
        assert exc_info.value.code == ErrorCode.VALIDATION_ERROR

    def test_valid_post_passes(self) -> None:
        validate_post(CMSPost(title="T", content=""))


class TestParseRetryAfter:
    def test_numeric(self) -> None:
        assert parse_retry_after(httpx.Response(429, headers={"Retry-After": "7"})) == 7.0

    def test_capped(self) -> None:
        assert parse_retry_after(httpx.Response(429, headers={"Retry-After": "600"})) == 60.0

    def test_missing_or_invalid(self) -> None:
        assert parse_retry_after(httpx.Response(429)) is None
        assert parse_retry_after(httpx.Response(429, headers={"Retry-After": "soon"})) is None


class TestErrorBody:
    def test_dict_body(self) -> None:
        assert error_body(httpx.Response(400, json={"message": "bad"})) == {"message": "bad"}

    def test_non_dict_and_invalid(self) -> None:
        assert error_body(httpx.Response(400, json=["x"])) == {}
        assert error_body(httpx.Response(500, text="<html>oops</html>")) == {}


class TestBuildParams:
    def test_drops_none_and_lowercases_bools(self) -> None:
        assert build_params({"a": None, "b": True, "c": False, "d": 3}) == {"b": "true", "c": "false", "d": 3}

    def test_empty(self) -> None:
        assert build_params(None) == {}


# ---------------------------------------------------------------------------
# CMSAdapter
# ---------------------------------------------------------------------------


class TestPublishWrapper:
    async def test_success(self, make_client: MakeClient, settings: Settings) -> None:
        client = make_client(lambda request: httpx.Response(201, json={"id": 9, "url": "https://echo.test/9"}))
        adapter = _EchoAdapter(client, settings=settings)
        result = await adapter.publish(CMSPost(title="Hello", content="x"))
        assert result == PublishResult(success=True, post_id="9", url="https://echo.test/9")

    async def test_blank_title_skips_network(self, make_client: MakeClient, settings: Settings) -> None:
        def handler(request: httpx.Request) -> httpx.Response:
            raise AssertionError("no request expected")

        adapter = _EchoAdapter(make_client(handler), settings=settings)
        with pytest.raises(CMSError):
            await adapter.publish(CMSPost(title="", content="x"))
        assert adapter.calls == 0

    async def test_api_error_carries_status_and_retry_after(self, make_client: MakeClient, settings: Settings) -> None:
        client = make_client(lambda request: httpx.Response(429, headers={"Retry-After": "3"}))
        adapter = _EchoAdapter(client, settings=settings)
        with pytest.raises(CMSError) as exc_info:
            await adapter.publish(CMSPost(title="T", content="x"))
        assert exc_info.value.code == ErrorCode.API_ERROR
        assert exc_info.value.status_code == 429
        assert exc_info.value.retry_after == 3.0

    async def test_transport_failure_is_network_error(self, make_client: MakeClient, settings: Settings) -> None:
        def handler(request: httpx.Request) -> httpx.Response:
            raise httpx.ConnectError("refused")

        adapter = _EchoAdapter(make_client(handler), settings=settings)
        with pytest.raises(CMSError) as exc_info:
            await adapter.publish(CMSPost(title="T", content="x"))
        assert exc_info.value.code == ErrorCode.NETWORK_ERROR
        assert exc_info.value.status_code is None

    async def test_get_publications_not_supported(self, make_client: MakeClient, settings: Settings) -> None:
        adapter = _EchoAdapter(make_client(lambda r: httpx.Response(200)), settings=settings)
        with pytest.raises(CMSError) as exc_info:
            await adapter.get_publications()
        assert exc_info.value.code == ErrorCode.NOT_SUPPORTED


class TestJsonAndGuard:
    async def test_empty_body_is_empty_dict(self, make_client: MakeClient, settings: Settings) -> None:
        adapter = _EchoAdapter(make_client(lambda r: httpx.Response(204)), settings=settings)
        assert adapter._json(httpx.Response(204)) == {}

    async def test_invalid_json_raises(self, make_client: MakeClient, settings: Settings) -> None:
        adapter = _EchoAdapter(make_client(lambda r: httpx.Response(200)), settings=settings)
        with pytest.raises(CMSError) as exc_info:
            adapter._json(httpx.Response(200, text="not json"))
        assert exc_info.value.code == ErrorCode.API_ERROR

    async def test_guard_converts_cms_error(self, make_client: MakeClient, settings: Settings) -> None:
        adapter = _EchoAdapter(make_client(lambda r: httpx.Response(200)), settings=settings)

        async def _boom() -> int:
            raise CMSError("nope", ErrorCode.NOT_FOUND, 404)

        result = await adapter._guard(_boom())
        assert result.success is False
        assert result.error is not None
        assert result.error.code == ErrorCode.NOT_FOUND

    async def test_guard_converts_shape_errors(self, make_client: MakeClient, settings: Settings) -> None:
        adapter = _EchoAdapter(make_client(lambda r: httpx.Response(200)), settings=settings)

        async def _missing_key() -> int:
            return {}["id"]

        result = await adapter._guard(_missing_key())
        assert result.success is False
        assert result.error is not None
        assert result.error.code == ErrorCode.UNKNOWN_ERROR


class TestLifecycle:
    async def test_injected_client_left_open(self, make_client: MakeClient, settings: Settings) -> None:
        client = make_client(lambda r: httpx.Response(200))
        async with _EchoAdapter(client, settings=settings):
            pass
        assert client.is_closed is False
        await client.aclose()

    async def test_owned_client_closed(self, settings: Settings) -> None:
        adapter = _EchoAdapter(settings=settings)
        await adapter.aclose()
        assert adapter._client.is_closed is True
