"""Tests for services/publish.py — retry and multi-platform fan-out."""

from __future__ import annotations

from typing import ClassVar

import pytest

from core.config import Settings
from core.exceptions import CMSError, ErrorCode
from services.cms.base import CMSAdapter, CMSPost, CMSUser, PublishResult
from services.publish import PlatformPublishOutcome, PublishService

# ---------------------------------------------------------------------------
# Helpers
# ---------------------------------------------------------------------------


class _ScriptedAdapter(CMSAdapter):
    """Adapter whose _publish replays a script of results/exceptions."""

    name: ClassVar[str] = "Scripted"

    def __init__(self, *script: PublishResult | BaseException, configured: bool = True) -> None:
        super().__init__(settings=Settings(_env_file=None))  # type: ignore[call-arg]
        self._script = list(script)
        self._configured = configured
        self.calls = 0

    def is_configured(self) -> bool:
        return self._configured

    async def _publish(self, post: CMSPost) -> PublishResult:
        self.calls += 1
        step = self._script.pop(0)
        if isinstance(step, BaseException):
            raise step
        return step

    async def get_user(self) -> CMSUser:
        return CMSUser(id="1", username="s", name="S")


def _ok(post_id: str = "1") -> PublishResult:
    return PublishResult(success=True, post_id=post_id, url=f"https://x/{post_id}")


def _service(**overrides: object) -> PublishService:
    values: dict = {"publish_base_delay": 0.0, "publish_max_retries": 2}
    values.update(overrides)
    return PublishService(Settings(_env_file=None, **values))  # type: ignore[arg-type]


POST = CMSPost(title="Hello", content="body")


# ---------------------------------------------------------------------------
# publish
# ---------------------------------------------------------------------------


class TestPublish:
    async def test_success(self) -> None:
        adapter = _ScriptedAdapter(_ok("9"))
        result = await _service().publish(adapter, POST)
        assert result.post_id == "9"
        assert adapter.calls == 1

    async def test_retries_transient_failure(self) -> None:
        adapter = _ScriptedAdapter(CMSError("busy", ErrorCode.API_ERROR, 503), _ok())
        result = await _service().publish(adapter, POST)
        assert result.success is True
        assert adapter.calls == 2

    async def test_no_retry_on_auth_failure(self) -> None:
        adapter = _ScriptedAdapter(CMSError("denied", ErrorCode.API_ERROR, 401), _ok())
        with pytest.raises(CMSError):
            await _service().publish(adapter, POST)
        assert adapter.calls == 1

    async def test_respects_max_retries_setting(self) -> None:
        errors = [CMSError("down", ErrorCode.NETWORK_ERROR) for _ in range(3)]
        adapter = _ScriptedAdapter(*errors)
        with pytest.raises(CMSError):
            await _service(publish_max_retries=1).publish(adapter, POST)
        assert adapter.calls == 2


# ---------------------------------------------------------------------------
# publish_many
# ---------------------------------------------------------------------------


class TestPublishMany:
    async def test_outcomes_per_platform(self) -> None:
        adapters = {
            "ghost": _ScriptedAdapter(_ok("g1")),
            "medium": _ScriptedAdapter(CMSError("Token was invalid.", ErrorCode.MEDIUM_API_ERROR, 401)),
            "notion": _ScriptedAdapter(configured=False),
        }
        outcomes = await _service().publish_many(adapters, POST)

        assert list(outcomes) == ["ghost", "medium", "notion"]
        assert outcomes["ghost"] == PlatformPublishOutcome(
            platform="ghost",
            status="ok",
            post_id="g1",
            url="https://x/g1",
        )
        assert outcomes["medium"].status == "error"
        assert outcomes["medium"].code == ErrorCode.MEDIUM_API_ERROR
        assert outcomes["medium"].error == "Token was invalid."
        assert outcomes["notion"].status == "skipped"
        assert outcomes["notion"].code == ErrorCode.NOT_CONFIGURED
        assert adapters["notion"].calls == 0

    async def test_unexpected_exception_isolated(self) -> None:
        adapters = {
            "webflow": _ScriptedAdapter(RuntimeError("bug in adapter")),
            "wordpress": _ScriptedAdapter(_ok("w1")),
        }
        outcomes = await _service().publish_many(adapters, POST)
        assert outcomes["webflow"].status == "error"
        assert outcomes["webflow"].code == ErrorCode.UNKNOWN_ERROR
        assert outcomes["webflow"].error == "bug in adapter"
        assert outcomes["wordpress"].status == "ok"

    async def test_validation_error_reported(self) -> None:
        adapters = {"ghost": _ScriptedAdapter(_ok())}
        outcomes = await _service().publish_many(adapters, CMSPost(title=" ", content="x"))
        assert outcomes["ghost"].code == ErrorCode.VALIDATION_ERROR
        assert adapters["ghost"].calls == 0

    async def test_empty(self) -> None:
        assert await _service().publish_many({}, POST) == {}
