"""Ghost adapter: Admin API v5 with short-lived HS256 JWTs.

The Admin API key has the form ``{id}:{secret}``; the secret is hex and
signs a token valid for five minutes. A fresh token is generated for
every request, so nothing is cached.
"""

from __future__ import annotations

import time
from datetime import UTC, datetime
from typing import Any, ClassVar

import httpx
import jwt
import structlog
from pydantic import BaseModel, ConfigDict, SecretStr

from core.config import Settings
from core.exceptions import CMSError, ErrorCode

from .base import CMSAdapter, CMSPost, CMSUser, PublishResult, Result, build_params, error_body
from .markdown import markdown_to_html
from .text import slugify

log = structlog.get_logger()

GhostPost = dict[str, Any]
GhostTag = dict[str, Any]
GhostAuthor = dict[str, Any]

# Token lifetime accepted by Ghost (max 5 minutes)
_TOKEN_TTL = 300
_TOKEN_AUDIENCE = "/admin/"

_STATUS_MAP = {"public": "published", "unlisted": "published"}


class GhostConfig(BaseModel):
    """Ghost connection credentials."""

    model_config = ConfigDict(frozen=True)

    url: str = ""
    admin_api_key: SecretStr = SecretStr("")
    version: str | None = None


def map_ghost_status(status: str | None) -> str:
    """public/unlisted -> published, anything else -> draft."""
    return _STATUS_MAP.get(status or "", "draft")


class GhostAdapter(CMSAdapter):
    """Ghost Admin API client."""

    name: ClassVar[str] = "Ghost"

    def __init__(
        self,
        config: GhostConfig,
        http_client: httpx.AsyncClient | None = None,
        *,
        settings: Settings | None = None,
    ) -> None:
        super().__init__(http_client, settings=settings)
        self._config = config
        self._api_version = config.version or self._settings.ghost_api_version
        self._site_url = config.url.rstrip("/")
        self._base_url = f"{self._site_url}/ghost/api/admin"

    def is_configured(self) -> bool:
        return bool(self._config.url and self._config.admin_api_key.get_secret_value())

    # ------------------------------------------------------------------
    # auth / transport
    # ------------------------------------------------------------------

    def generate_token(self) -> str:
        """Sign a five-minute Admin API JWT with the hex-decoded secret."""
        key_id, _, secret = self._config.admin_api_key.get_secret_value().partition(":")
        if not key_id or not secret:
            raise CMSError("Invalid Admin API key format. Expected format: {id}:{secret}", ErrorCode.INVALID_API_KEY)
        try:
            key = bytes.fromhex(secret)
        except ValueError as exc:
            raise CMSError("Admin API key secret must be hex-encoded", ErrorCode.INVALID_API_KEY) from exc

        now = int(time.time())
        payload = {"iat": now, "exp": now + _TOKEN_TTL, "aud": _TOKEN_AUDIENCE}
        return jwt.encode(payload, key, algorithm="HS256", headers={"kid": key_id})

    async def _request(
        self,
        method: str,
        endpoint: str,
        *,
        params: dict[str, Any] | None = None,
        json: Any = None,
    ) -> dict[str, Any]:
        headers = {
            "Authorization": f"Ghost {self.generate_token()}",
            "Accept-Version": self._api_version,
        }
        response = await self._send(
            method,
            f"{self._base_url}{endpoint}",
            headers=headers,
            params=build_params(params),
            json=json,
        )
        if not response.is_success:
            errors = error_body(response).get("errors")
            error = errors[0] if isinstance(errors, list) and errors and isinstance(errors[0], dict) else {}
            raise self._api_error(
                response,
                error.get("message"),
                error.get("type"),
                {"context": error.get("context"), "details": error.get("details")},
            )
        return self._json(response)

    async def _first(self, method: str, endpoint: str, key: str, **kwargs: Any) -> dict[str, Any]:
        body = await self._request(method, endpoint, **kwargs)
        return body[key][0]

    async def _delete(self, endpoint: str) -> None:
        await self._request("DELETE", endpoint)

    # ------------------------------------------------------------------
    # adapter interface
    # ------------------------------------------------------------------

    async def _publish(self, post: CMSPost) -> PublishResult:
        ghost_post: GhostPost = {
            "title": post.title,
            "html": post.content_html or markdown_to_html(post.content),
            "status": map_ghost_status(post.publish_status),
            "tags": [{"name": tag} for tag in post.tags],
        }
        if post.canonical_url:
            ghost_post["canonical_url"] = post.canonical_url

        created = (await self.create_post(ghost_post)).unwrap(ErrorCode.PUBLISH_ERROR)
        return PublishResult(
            success=True,
            post_id=str(created["id"]),
            url=created.get("url") or f"{self._site_url}/{created.get('slug', '')}/",
            metadata={
                "slug": created.get("slug"),
                "status": created.get("status"),
                "published_at": created.get("published_at"),
            },
        )

    async def get_user(self) -> CMSUser:
        user = await self._first("GET", "/users/me/", "users", params={"include": "roles"})
        return CMSUser(
            id=str(user["id"]),
            username=user.get("slug", ""),
            name=user.get("name", ""),
            url=user.get("url"),
            image_url=user.get("profile_image") or None,
        )

    # ------------------------------------------------------------------
    # posts
    # ------------------------------------------------------------------

    async def create_post(self, post: GhostPost) -> Result[GhostPost]:
        return await self._guard(
            self._first("POST", "/posts/", "posts", params={"source": "html"}, json={"posts": [post]}),
        )

    async def update_post(self, post_id: str, post: GhostPost, updated_at: str) -> Result[GhostPost]:
        """Ghost requires the last seen ``updated_at`` for collision detection."""
        return await self._guard(
            self._first(
                "PUT",
                f"/posts/{post_id}/",
                "posts",
                params={"source": "html"},
                json={"posts": [{**post, "updated_at": updated_at}]},
            ),
        )

    async def delete_post(self, post_id: str) -> Result[None]:
        return await self._guard(self._delete(f"/posts/{post_id}/"))

    async def get_post(self, post_id: str, *, include: str = "tags,authors") -> Result[GhostPost]:
        return await self._guard(self._first("GET", f"/posts/{post_id}/", "posts", params={"include": include}))

    async def get_post_by_slug(self, slug: str, *, include: str = "tags,authors") -> Result[GhostPost]:
        return await self._guard(self._first("GET", f"/posts/slug/{slug}/", "posts", params={"include": include}))

    async def list_posts(
        self,
        *,
        page: int | None = None,
        limit: int | None = None,
        order: str | None = None,
        filter: str | None = None,
        fields: str | None = None,
        include: str = "tags,authors",
    ) -> Result[dict[str, Any]]:
        """List posts; data is the raw ``{"posts": [...], "meta": {...}}`` body."""
        params = {"page": page, "limit": limit, "order": order, "filter": filter, "fields": fields, "include": include}
        return await self._guard(self._request("GET", "/posts/", params=params))

    # ------------------------------------------------------------------
    # scheduling
    # ------------------------------------------------------------------

    async def schedule_post(self, post: GhostPost, publish_at: datetime) -> Result[GhostPost]:
        return await self.create_post({**post, "status": "scheduled", "published_at": _iso(publish_at)})

    async def reschedule_post(self, post_id: str, publish_at: datetime, updated_at: str) -> Result[GhostPost]:
        return await self.update_post(
            post_id,
            {"status": "scheduled", "published_at": _iso(publish_at)},
            updated_at,
        )

    async def unschedule_post(self, post_id: str, updated_at: str) -> Result[GhostPost]:
        return await self.update_post(post_id, {"status": "draft", "published_at": None}, updated_at)

    async def publish_now(self, post_id: str, updated_at: str) -> Result[GhostPost]:
        return await self.update_post(
            post_id,
            {"status": "published", "published_at": _iso(datetime.now(UTC))},
            updated_at,
        )

    # ------------------------------------------------------------------
    # tags
    # ------------------------------------------------------------------

    async def create_tag(self, tag: GhostTag) -> Result[GhostTag]:
        return await self._guard(self._first("POST", "/tags/", "tags", json={"tags": [tag]}))

    async def update_tag(self, tag_id: str, tag: GhostTag) -> Result[GhostTag]:
        return await self._guard(self._first("PUT", f"/tags/{tag_id}/", "tags", json={"tags": [tag]}))

    async def delete_tag(self, tag_id: str) -> Result[None]:
        return await self._guard(self._delete(f"/tags/{tag_id}/"))

    async def get_tag(self, tag_id: str) -> Result[GhostTag]:
        return await self._guard(self._first("GET", f"/tags/{tag_id}/", "tags"))

    async def get_tag_by_slug(self, slug: str) -> Result[GhostTag]:
        return await self._guard(self._first("GET", f"/tags/slug/{slug}/", "tags"))

    async def list_tags(
        self,
        *,
        page: int | None = None,
        limit: int | None = None,
        order: str | None = None,
        filter: str | None = None,
    ) -> Result[dict[str, Any]]:
        params = {"page": page, "limit": limit, "order": order, "filter": filter}
        return await self._guard(self._request("GET", "/tags/", params=params))

    async def get_or_create_tag(self, name: str) -> Result[GhostTag]:
        """Look the tag up by slug; create it only when Ghost reports 404."""
        existing = await self.get_tag_by_slug(slugify(name))
        if existing.success or (existing.error and existing.error.status_code != 404):
            return existing
        log.info("ghost_tag_created", tag=name)
        return await self.create_tag({"name": name})

    # ------------------------------------------------------------------
    # authors
    # ------------------------------------------------------------------

    async def get_author(self, author_id: str, *, include: str = "roles") -> Result[GhostAuthor]:
        return await self._guard(self._first("GET", f"/users/{author_id}/", "users", params={"include": include}))

    async def get_author_by_slug(self, slug: str, *, include: str = "roles") -> Result[GhostAuthor]:
        return await self._guard(self._first("GET", f"/users/slug/{slug}/", "users", params={"include": include}))

    async def get_author_by_email(self, email: str, *, include: str = "roles") -> Result[GhostAuthor]:
        return await self._guard(self._first("GET", f"/users/email/{email}/", "users", params={"include": include}))

    async def list_authors(
        self,
        *,
        page: int | None = None,
        limit: int | None = None,
        filter: str | None = None,
        include: str = "roles",
    ) -> Result[dict[str, Any]]:
        params = {"page": page, "limit": limit, "filter": filter, "include": include}
        return await self._guard(self._request("GET", "/users/", params=params))


def _iso(value: datetime) -> str:
    if value.tzinfo is None:
        value = value.replace(tzinfo=UTC)
    return value.astimezone(UTC).isoformat().replace("+00:00", "Z")


def validate_ghost_config(config: GhostConfig) -> bool:
    """URL present and API key shaped like ``{id}:{secret}``."""
    if not config.url:
        return False
    parts = config.admin_api_key.get_secret_value().split(":")
    return len(parts) == 2 and all(parts)
