"""Tests for services/cms/medium.py — Medium integration-token adapter."""

from __future__ import annotations

import httpx
import pytest

from core.config import Settings
from core.exceptions import CMSError, ErrorCode
from services.cms.base import CMSPost
from services.cms.medium import MediumAdapter, MediumConfig, create_medium_adapter, map_medium_status
from tests.conftest import MakeClient, request_json

ME = {"id": "u1", "username": "writer", "name": "Writer", "url": "https://medium.com/@writer", "imageUrl": "i.png"}

# ---------------------------------------------------------------------------
# Helpers
# ---------------------------------------------------------------------------


class _FakeMedium:
    """Records requests; answers /me and the post endpoints."""

    def __init__(self, post_response: httpx.Response | None = None) -> None:
        self.requests: list[httpx.Request] = []
        self.post_response = post_response

    def __call__(self, request: httpx.Request) -> httpx.Response:
        self.requests.append(request)
        if request.url.path == "/v1/me":
            return httpx.Response(200, json={"data": ME})
        if request.url.path.endswith("/publications"):
            return httpx.Response(200, json={"data": [{"id": "pub1", "name": "Pub", "description": "d"}]})
        if self.post_response is not None:
            return self.post_response
        return httpx.Response(
            201,
            json={"data": {"id": "m1", "url": "https://medium.com/@writer/m1", "publishStatus": "draft"}},
        )

    def paths(self) -> list[str]:
        return [r.url.path for r in self.requests]


def _adapter(handler: _FakeMedium, make_client: MakeClient, settings: Settings, **config: object) -> MediumAdapter:
    data: dict = {"access_token": "tok"}
    data.update(config)
    return MediumAdapter(MediumConfig(**data), make_client(handler), settings=settings)


# ---------------------------------------------------------------------------
# Config
# ---------------------------------------------------------------------------


class TestConfig:
    def test_is_configured(self, settings: Settings) -> None:
        assert MediumAdapter(MediumConfig(access_token="tok"), settings=settings).is_configured() is True
        assert MediumAdapter(MediumConfig(), settings=settings).is_configured() is False

    @pytest.mark.parametrize(
        ("status", "expected"),
        [("public", "public"), ("unlisted", "unlisted"), ("draft", "draft"), (None, "draft")],
    )
    def test_status(self, status: str | None, expected: str) -> None:
        assert map_medium_status(status) == expected

    async def test_unconfigured_request_raises(self, make_client: MakeClient, settings: Settings) -> None:
        handler = _FakeMedium()
        adapter = MediumAdapter(MediumConfig(), make_client(handler), settings=settings)
        with pytest.raises(CMSError) as exc_info:
            await adapter.get_user()
        assert exc_info.value.code == ErrorCode.NOT_CONFIGURED
        assert handler.requests == []


class TestFactoryHelper:
    def test_explicit_token(self, settings: Settings) -> None:
        adapter = create_medium_adapter("tok", "pub", settings=settings)
        assert adapter.is_configured() is True
        assert adapter._config.publication_id == "pub"

    def test_settings_fallback(self) -> None:
        s = Settings(_env_file=None, medium_access_token="env-tok", medium_publication_id="p9")  # type: ignore[call-arg]
        adapter = create_medium_adapter(settings=s)
        assert adapter._config.access_token.get_secret_value() == "env-tok"
        assert adapter._config.publication_id == "p9"

    def test_missing_token(self, settings: Settings) -> None:
        with pytest.raises(CMSError) as exc_info:
            create_medium_adapter(settings=settings)
        assert exc_info.value.code == ErrorCode.MISSING_TOKEN


# ---------------------------------------------------------------------------
# user / publications
# ---------------------------------------------------------------------------


class TestGetUser:
    async def test_cached_after_first_call(self, make_client: MakeClient, settings: Settings) -> None:
        handler = _FakeMedium()
        adapter = _adapter(handler, make_client, settings)

        first = await adapter.get_user()
        second = await adapter.get_user()

        assert first is second
        assert first.username == "writer"
        assert first.image_url == "i.png"
        assert handler.paths() == ["/v1/me"]
        assert handler.requests[0].headers["Authorization"] == "Bearer tok"

    async def test_error_status(self, make_client: MakeClient, settings: Settings) -> None:
        body = {"errors": [{"message": "Token was invalid.", "code": 6003}]}
        client = make_client(lambda r: httpx.Response(401, json=body))
        adapter = MediumAdapter(MediumConfig(access_token="bad"), client, settings=settings)

        with pytest.raises(CMSError) as exc_info:
            await adapter.get_user()
        assert exc_info.value.code == ErrorCode.MEDIUM_API_ERROR
        assert exc_info.value.status_code == 401
        assert exc_info.value.message == "Token was invalid."

    async def test_publications(self, make_client: MakeClient, settings: Settings) -> None:
        handler = _FakeMedium()
        pubs = await _adapter(handler, make_client, settings).get_publications()
        assert [(p.id, p.name, p.description) for p in pubs] == [("pub1", "Pub", "d")]
        assert handler.paths() == ["/v1/me", "/v1/users/u1/publications"]


# ---------------------------------------------------------------------------
# publish
# ---------------------------------------------------------------------------


class TestPublish:
    async def test_user_endpoint_and_body(self, make_client: MakeClient, settings: Settings) -> None:
        handler = _FakeMedium()
        adapter = _adapter(handler, make_client, settings)

        result = await adapter.publish(
            CMSPost(
                title="  Title ",
                content="# Head",
                tags=["SEO", "seo", "  ", "a!!b", "t1", "t2", "t3", "t4", "t5", "t6"],
                canonical_url="https://blog/x",
            ),
        )

        assert result.post_id == "m1"
        assert result.url == "https://medium.com/@writer/m1"
        assert handler.paths() == ["/v1/me", "/v1/users/u1/posts"]
        body = request_json(handler.requests[-1])
        assert body == {
            "title": "Title",
            "contentFormat": "html",
            "content": "<h1>Head</h1>",
            "tags": ["SEO", "ab", "t1", "t2", "t3"],
            "publishStatus": "draft",
            "notifyFollowers": True,
            "canonicalUrl": "https://blog/x",
        }

    async def test_publication_endpoint(self, make_client: MakeClient, settings: Settings) -> None:
        handler = _FakeMedium()
        adapter = _adapter(handler, make_client, settings, publication_id="pub1")
        await adapter.publish(CMSPost(title="T", content="x", publish_status="public", notify_followers=False))

        assert handler.paths()[-1] == "/v1/publications/pub1/posts"
        body = request_json(handler.requests[-1])
        assert body["publishStatus"] == "public"
        assert body["notifyFollowers"] is False

    async def test_empty_content_rejected(self, make_client: MakeClient, settings: Settings) -> None:
        handler = _FakeMedium()
        with pytest.raises(CMSError) as exc_info:
            await _adapter(handler, make_client, settings).publish(CMSPost(title="T", content="  "))
        assert exc_info.value.code == ErrorCode.VALIDATION_ERROR
        assert handler.requests == []

    async def test_errors_array_in_success_body(self, make_client: MakeClient, settings: Settings) -> None:
        handler = _FakeMedium(httpx.Response(200, json={"errors": [{"message": "Title too long", "code": 2002}]}))
        with pytest.raises(CMSError) as exc_info:
            await _adapter(handler, make_client, settings).publish(CMSPost(title="T", content="x"))
        assert exc_info.value.code == ErrorCode.MEDIUM_PUBLISH_ERROR
        assert exc_info.value.message == "Title too long"
        assert exc_info.value.details == {"medium_code": 2002, "title": "T"}
