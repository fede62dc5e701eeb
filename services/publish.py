"""Publish service — caller-side orchestration over CMS adapters.

Adds what the adapters deliberately leave out: retry with backoff on
transient failures, and fan-out of one post to several platforms.
A failure on one platform never cancels the others.
"""

from __future__ import annotations

import asyncio
from collections.abc import Mapping
from dataclasses import dataclass
from typing import Literal

import structlog

from core.config import Settings, get_settings
from core.exceptions import CMSError, ErrorCode
from services.cms.base import CMSAdapter, CMSPost, PublishResult
from services.http_retry import retry_with_backoff

log = structlog.get_logger()


@dataclass
class PlatformPublishOutcome:
    """Result of publishing to one platform."""

    platform: str
    status: Literal["ok", "error", "skipped"]
    post_id: str = ""
    url: str = ""
    error: str = ""
    code: str = ""


class PublishService:
    """Publish a post through one or many adapters."""

    def __init__(self, settings: Settings | None = None) -> None:
        settings = settings or get_settings()
        self._max_retries = settings.publish_max_retries
        self._base_delay = settings.publish_base_delay
        self._concurrency = max(settings.publish_concurrency, 1)

    async def publish(self, adapter: CMSAdapter, post: CMSPost) -> PublishResult:
        """Publish with retry on 429/5xx/network errors. Raises CMSError."""
        return await retry_with_backoff(
            lambda: adapter.publish(post),
            max_retries=self._max_retries,
            base_delay=self._base_delay,
            operation=f"{adapter.name.lower()}_publish",
        )

    async def publish_many(
        self,
        adapters: Mapping[str, CMSAdapter],
        post: CMSPost,
    ) -> dict[str, PlatformPublishOutcome]:
        """Publish to every adapter concurrently; one outcome per key of ``adapters``."""
        semaphore = asyncio.Semaphore(self._concurrency)

        async def _one(key: str, adapter: CMSAdapter) -> PlatformPublishOutcome:
            if not adapter.is_configured():
                log.warning("publish_skipped_not_configured", platform=key)
                return PlatformPublishOutcome(
                    platform=key,
                    status="skipped",
                    error=f"{adapter.name} adapter is not configured",
                    code=ErrorCode.NOT_CONFIGURED,
                )
            async with semaphore:
                try:
                    result = await self.publish(adapter, post)
                except CMSError as exc:
                    return PlatformPublishOutcome(platform=key, status="error", error=exc.message, code=exc.code)
                except Exception as exc:
                    log.exception("publish_unexpected_error", platform=key)
                    return PlatformPublishOutcome(
                        platform=key,
                        status="error",
                        error=str(exc) or type(exc).__name__,
                        code=ErrorCode.UNKNOWN_ERROR,
                    )
            return PlatformPublishOutcome(platform=key, status="ok", post_id=result.post_id, url=result.url)

        keys = list(adapters)
        outcomes = await asyncio.gather(*(_one(key, adapters[key]) for key in keys))

        ok = sum(1 for o in outcomes if o.status == "ok")
        log.info("publish_many_done", platforms=len(keys), ok=ok, failed=len(keys) - ok)
        return dict(zip(keys, outcomes, strict=True))
