"""Adapter factory: platform identifier -> configured adapter instance."""

from __future__ import annotations

from collections.abc import Callable, Mapping
from typing import Any, Literal

import httpx
from pydantic import BaseModel, ValidationError

from core.config import Settings
from core.exceptions import CMSError, ErrorCode

from .base import CMSAdapter
from .ghost import GhostAdapter, GhostConfig
from .medium import MediumAdapter, MediumConfig
from .notion import NotionAdapter, NotionConfig
from .shopify import ShopifyAdapter, ShopifyConfig
from .webflow import WebflowAdapter, WebflowConfig
from .wordpress import WordPressAdapter, WordPressConfig

CMSPlatform = Literal["ghost", "medium", "notion", "wordpress", "webflow", "shopify"]

SUPPORTED_CMS_PLATFORMS: tuple[str, ...] = ("ghost", "medium", "notion", "wordpress", "webflow", "shopify")

_REGISTRY: dict[str, tuple[type[BaseModel], Callable[..., CMSAdapter]]] = {
    "ghost": (GhostConfig, GhostAdapter),
    "medium": (MediumConfig, MediumAdapter),
    "notion": (NotionConfig, NotionAdapter),
    "wordpress": (WordPressConfig, WordPressAdapter),
    "webflow": (WebflowConfig, WebflowAdapter),
    "shopify": (ShopifyConfig, ShopifyAdapter),
}


def is_supported_platform(platform: str) -> bool:
    return platform in _REGISTRY


def create_cms_adapter(
    platform: CMSPlatform | str,
    config: BaseModel | Mapping[str, Any],
    *,
    http_client: httpx.AsyncClient | None = None,
    settings: Settings | None = None,
) -> CMSAdapter:
    """Build the adapter for ``platform``.

    ``config`` is the platform's config model or a mapping validated into it.
    Raises CMSError(UNSUPPORTED_PLATFORM) for unknown platforms and
    CMSError(VALIDATION_ERROR) for config of the wrong shape.
    """
    entry = _REGISTRY.get(platform)
    if entry is None:
        raise CMSError(
            f"Unsupported CMS platform: {platform!r}. Expected one of {', '.join(SUPPORTED_CMS_PLATFORMS)}",
            ErrorCode.UNSUPPORTED_PLATFORM,
        )

    config_model, adapter_cls = entry
    if not isinstance(config, config_model):
        if isinstance(config, BaseModel):
            config = config.model_dump()
        try:
            config = config_model.model_validate(config)
        except ValidationError as exc:
            raise CMSError(
                f"Invalid {platform} configuration",
                ErrorCode.VALIDATION_ERROR,
                details={"errors": exc.errors(include_url=False, include_input=False)},
            ) from exc

    return adapter_cls(config, http_client, settings=settings)
