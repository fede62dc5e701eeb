"""Medium adapter: integration-token API (v1).

Publishes to a publication when one is configured, otherwise to the
authenticated user's profile. The user record is cached per instance.
"""

from __future__ import annotations

from typing import Any, ClassVar

import httpx
import structlog
from pydantic import BaseModel, ConfigDict, SecretStr

from core.config import Settings, get_settings
from core.exceptions import CMSError, ErrorCode

from .base import CMSAdapter, CMSPost, CMSPublication, CMSUser, PublishResult, error_body
from .markdown import markdown_to_html
from .text import sanitize_tags

log = structlog.get_logger()

MEDIUM_API_URL = "https://api.medium.com/v1"

# Medium rejects posts with more than five tags
MEDIUM_MAX_TAGS = 5


class MediumConfig(BaseModel):
    """Medium connection credentials."""

    model_config = ConfigDict(frozen=True)

    access_token: SecretStr = SecretStr("")
    publication_id: str | None = None


def map_medium_status(status: str | None) -> str:
    return status if status in ("public", "unlisted") else "draft"


class MediumAdapter(CMSAdapter):
    """Medium API client."""

    name: ClassVar[str] = "Medium"

    def __init__(
        self,
        config: MediumConfig,
        http_client: httpx.AsyncClient | None = None,
        *,
        settings: Settings | None = None,
    ) -> None:
        super().__init__(http_client, settings=settings)
        self._config = config
        self._cached_user: CMSUser | None = None

    def is_configured(self) -> bool:
        return bool(self._config.access_token.get_secret_value())

    async def _request(self, method: str, endpoint: str, *, json: Any = None) -> dict[str, Any]:
        if not self.is_configured():
            raise CMSError(
                "Medium adapter is not configured. Please provide an access token.",
                ErrorCode.NOT_CONFIGURED,
            )

        headers = {
            "Authorization": f"Bearer {self._config.access_token.get_secret_value()}",
            "Accept": "application/json",
            "Accept-Charset": "utf-8",
        }
        response = await self._send(method, f"{MEDIUM_API_URL}{endpoint}", headers=headers, json=json)
        if not response.is_success:
            body = error_body(response)
            errors = body.get("errors")
            message = errors[0].get("message") if isinstance(errors, list) and errors else None
            raise self._api_error(response, message, ErrorCode.MEDIUM_API_ERROR, body or None)
        return self._json(response)

    @staticmethod
    def _data(body: dict[str, Any], code: str, details: Any = None) -> Any:
        """Medium may answer 2xx with an ``errors`` array; treat it as failure."""
        errors = body.get("errors")
        if errors:
            first = errors[0] if isinstance(errors[0], dict) else {}
            raise CMSError(
                first.get("message") or "Medium request failed",
                code,
                details={"medium_code": first.get("code"), **(details or {})},
            )
        return body["data"]

    # ------------------------------------------------------------------
    # adapter interface
    # ------------------------------------------------------------------

    async def get_user(self) -> CMSUser:
        if self._cached_user is not None:
            return self._cached_user

        data = self._data(await self._request("GET", "/me"), ErrorCode.MEDIUM_API_ERROR)
        self._cached_user = CMSUser(
            id=str(data["id"]),
            username=data.get("username", ""),
            name=data.get("name", ""),
            url=data.get("url"),
            image_url=data.get("imageUrl"),
        )
        log.debug("medium_user_cached", user_id=self._cached_user.id)
        return self._cached_user

    async def get_publications(self) -> list[CMSPublication]:
        user = await self.get_user()
        data = self._data(
            await self._request("GET", f"/users/{user.id}/publications"),
            ErrorCode.MEDIUM_API_ERROR,
        )
        return [
            CMSPublication(
                id=str(pub["id"]),
                name=pub.get("name", ""),
                description=pub.get("description"),
                url=pub.get("url"),
                image_url=pub.get("imageUrl"),
            )
            for pub in data
        ]

    async def _publish(self, post: CMSPost) -> PublishResult:
        if not post.content or not post.content.strip():
            raise CMSError("Post content is required", ErrorCode.VALIDATION_ERROR)

        user = await self.get_user()
        body = {
            "title": post.title.strip(),
            "contentFormat": "html",
            "content": post.content_html or markdown_to_html(post.content),
            "tags": sanitize_tags(post.tags, MEDIUM_MAX_TAGS),
            "publishStatus": map_medium_status(post.publish_status),
            "notifyFollowers": True if post.notify_followers is None else post.notify_followers,
        }
        if post.canonical_url:
            body["canonicalUrl"] = post.canonical_url

        if self._config.publication_id:
            endpoint = f"/publications/{self._config.publication_id}/posts"
        else:
            endpoint = f"/users/{user.id}/posts"

        data = self._data(
            await self._request("POST", endpoint, json=body),
            ErrorCode.MEDIUM_PUBLISH_ERROR,
            {"title": post.title},
        )
        return PublishResult(
            success=True,
            post_id=str(data["id"]),
            url=data["url"],
            metadata={
                "published_at": data.get("publishedAt"),
                "publish_status": data.get("publishStatus"),
                "author_id": data.get("authorId"),
                "tags": data.get("tags", []),
            },
        )


def create_medium_adapter(
    access_token: str | None = None,
    publication_id: str | None = None,
    *,
    http_client: httpx.AsyncClient | None = None,
    settings: Settings | None = None,
) -> MediumAdapter:
    """Build a Medium adapter, falling back to MEDIUM_* settings."""
    settings = settings or get_settings()
    token = access_token or settings.medium_access_token.get_secret_value()
    if not token:
        raise CMSError(
            "Medium access token is required. Set MEDIUM_ACCESS_TOKEN or pass it directly.",
            ErrorCode.MISSING_TOKEN,
        )
    config = MediumConfig(
        access_token=SecretStr(token),
        publication_id=publication_id or settings.medium_publication_id or None,
    )
    return MediumAdapter(config, http_client, settings=settings)
