"""WordPress adapter: WP REST API v2.

Auth is an OAuth2 bearer token when one is configured, otherwise HTTP
Basic with an application password (encoded once at construction).
The OAuth2 authorization-code flow itself lives in two static helpers
outside the adapter instance.
"""

from __future__ import annotations

import base64
import binascii
import re
from datetime import UTC, datetime
from typing import Any, ClassVar

import httpx
import structlog
from pydantic import BaseModel, ConfigDict, SecretStr

from core.config import Settings
from core.exceptions import CMSError, ErrorCode, ErrorInfo

from .base import (
    CMSAdapter,
    CMSPost,
    CMSUser,
    PublishResult,
    Result,
    build_params,
    create_http_client,
    error_body,
)
from .markdown import markdown_to_html
from .text import slugify

log = structlog.get_logger()

WordPressPost = dict[str, Any]
WordPressTerm = dict[str, Any]
WordPressMedia = dict[str, Any]
WordPressUser = dict[str, Any]

_STATUS_MAP = {"public": "publish", "unlisted": "private"}
_DATA_URL_RE = re.compile(r"^data:([^;,]+)?(?:;base64)?,", re.IGNORECASE)

_YOAST_META_KEYS = {
    "title": "yoast_title",
    "description": "yoast_meta_desc",
    "focus_keyword": "yoast_focuskw",
    "canonical": "yoast_canonical",
    "opengraph_title": "yoast_opengraph_title",
    "opengraph_description": "yoast_opengraph_description",
    "opengraph_image": "yoast_opengraph_image",
    "twitter_title": "yoast_twitter_title",
    "twitter_description": "yoast_twitter_description",
    "twitter_image": "yoast_twitter_image",
}


class WordPressConfig(BaseModel):
    """WordPress site credentials: application password or OAuth2 token."""

    model_config = ConfigDict(frozen=True)

    url: str = ""
    username: str | None = None
    password: SecretStr | None = None
    access_token: SecretStr | None = None
    api_version: str | None = None


class WordPressOAuth2Config(BaseModel):
    """OAuth2 client registered with the WP REST OAuth2 plugin."""

    model_config = ConfigDict(frozen=True)

    url: str
    client_id: str
    client_secret: SecretStr
    redirect_uri: str
    scope: str = "global"


def map_wordpress_status(status: str | None) -> str:
    """public -> publish, unlisted -> private, anything else -> draft."""
    return _STATUS_MAP.get(status or "", "draft")


def _iso(value: datetime) -> str:
    if value.tzinfo is None:
        value = value.replace(tzinfo=UTC)
    return value.astimezone(UTC).isoformat()


def _existing_term(created: Result[WordPressTerm], name: str) -> Result[WordPressTerm]:
    """Resolve a create rejected with ``term_exists`` to the existing term id."""
    if created.error is None or created.error.code != "term_exists":
        return created
    data = (created.error.details or {}).get("details") or {}
    term_id = data.get("term_id") if isinstance(data, dict) else None
    if term_id is None:
        return created
    return Result.ok({"id": int(term_id), "name": name})


def _decode_data_url(value: str) -> tuple[bytes, str]:
    """Decode ``data:<mime>;base64,<payload>`` (or bare base64) to bytes + mime."""
    mime = "image/jpeg"
    payload = value
    if match := _DATA_URL_RE.match(value):
        mime = match.group(1) or mime
        payload = value[match.end() :]
    try:
        return base64.b64decode(payload, validate=True), mime
    except (binascii.Error, ValueError) as exc:
        raise CMSError("Image is not valid base64 data", ErrorCode.UPLOAD_ERROR) from exc


class WordPressAdapter(CMSAdapter):
    """WP REST API client."""

    name: ClassVar[str] = "WordPress"

    def __init__(
        self,
        config: WordPressConfig,
        http_client: httpx.AsyncClient | None = None,
        *,
        settings: Settings | None = None,
    ) -> None:
        super().__init__(http_client, settings=settings)
        self._config = config
        api_version = config.api_version or self._settings.wordpress_api_version
        self._base_url = f"{config.url.rstrip('/')}/wp-json/{api_version}"

        self._basic_token: str | None = None
        password = config.password.get_secret_value() if config.password else ""
        if config.username and password:
            self._basic_token = base64.b64encode(f"{config.username}:{password}".encode()).decode()

    def is_configured(self) -> bool:
        return bool(self._config.url and (self._basic_token or self._access_token))

    @property
    def _access_token(self) -> str:
        return self._config.access_token.get_secret_value() if self._config.access_token else ""

    def _auth_headers(self) -> dict[str, str]:
        if self._access_token:
            return {"Authorization": f"Bearer {self._access_token}"}
        if self._basic_token:
            return {"Authorization": f"Basic {self._basic_token}"}
        return {}

    async def _send_checked(
        self,
        method: str,
        endpoint: str,
        *,
        params: dict[str, Any] | None = None,
        json: Any = None,
        data: dict[str, Any] | None = None,
        files: dict[str, Any] | None = None,
        default_code: str | None = None,
    ) -> httpx.Response:
        response = await self._send(
            method,
            f"{self._base_url}{endpoint}",
            headers=self._auth_headers(),
            params=build_params(params),
            json=json,
            data=data,
            files=files,
        )
        if not response.is_success:
            body = error_body(response)
            raise self._api_error(
                response,
                body.get("message"),
                body.get("code") or default_code,
                {"details": body.get("data")},
            )
        return response

    async def _request(self, method: str, endpoint: str, **kwargs: Any) -> Any:
        return self._json(await self._send_checked(method, endpoint, **kwargs))

    async def _list(self, endpoint: str, params: dict[str, Any]) -> dict[str, Any]:
        """List endpoint wrapped as ``{"items": [...], "meta": {...}}``."""
        response = await self._send_checked("GET", endpoint, params=params)
        items = self._json(response) or []
        meta: dict[str, Any] = {"total": len(items), "total_pages": 1 if items else 0}
        if "X-WP-Total" in response.headers:
            meta["wp_total"] = int(response.headers["X-WP-Total"])
        if "X-WP-TotalPages" in response.headers:
            meta["wp_total_pages"] = int(response.headers["X-WP-TotalPages"])
        return {"items": items, "meta": meta}

    async def _first_by_slug(self, endpoint: str, slug: str, label: str) -> dict[str, Any]:
        found = await self._request("GET", endpoint, params={"slug": slug})
        if not found:
            raise CMSError(f"{label} not found", ErrorCode.NOT_FOUND, 404)
        return found[0]

    async def _delete(self, endpoint: str, force: bool) -> None:
        await self._request("DELETE", endpoint, params={"force": force})

    # ------------------------------------------------------------------
    # adapter interface
    # ------------------------------------------------------------------

    async def _publish(self, post: CMSPost) -> PublishResult:
        wp_post: WordPressPost = {
            "title": post.title,
            "content": post.content_html or markdown_to_html(post.content),
            "status": map_wordpress_status(post.publish_status),
        }
        if post.tags:
            wp_post["tags"] = await self.get_or_create_tag_ids(post.tags)
        if post.canonical_url:
            wp_post["meta"] = {"canonical_url": post.canonical_url}

        created = (await self.create_post(wp_post)).unwrap(ErrorCode.PUBLISH_ERROR)
        return PublishResult(
            success=True,
            post_id=str(created["id"]),
            url=created["link"],
            metadata={"slug": created.get("slug"), "status": created.get("status"), "date": created.get("date")},
        )

    async def get_user(self) -> CMSUser:
        user = await self._request("GET", "/users/me")
        return CMSUser(
            id=str(user["id"]),
            username=user.get("slug") or user.get("name", ""),
            name=user.get("name", ""),
            url=user.get("url") or user.get("link"),
            image_url=(user.get("avatar_urls") or {}).get("96"),
        )

    # ------------------------------------------------------------------
    # posts
    # ------------------------------------------------------------------

    async def create_post(self, post: WordPressPost) -> Result[WordPressPost]:
        return await self._guard(self._request("POST", "/posts", json=post))

    async def update_post(self, post_id: int, post: WordPressPost) -> Result[WordPressPost]:
        return await self._guard(self._request("POST", f"/posts/{post_id}", json=post))

    async def delete_post(self, post_id: int, *, force: bool = False) -> Result[None]:
        """Move to trash, or delete permanently with ``force``."""
        return await self._guard(self._delete(f"/posts/{post_id}", force))

    async def get_post(self, post_id: int) -> Result[WordPressPost]:
        return await self._guard(self._request("GET", f"/posts/{post_id}", params={"context": "edit"}))

    async def get_post_by_slug(self, slug: str) -> Result[WordPressPost]:
        return await self._guard(self._first_by_slug("/posts", slug, "Post"))

    async def list_posts(
        self,
        *,
        page: int | None = None,
        per_page: int | None = None,
        search: str | None = None,
        status: str | None = None,
        order: str | None = None,
        orderby: str | None = None,
    ) -> Result[dict[str, Any]]:
        params = {
            "page": page,
            "per_page": per_page,
            "search": search,
            "status": status,
            "order": order,
            "orderby": orderby,
        }
        return await self._guard(self._list("/posts", params))

    # ------------------------------------------------------------------
    # scheduling
    # ------------------------------------------------------------------

    async def schedule_post(self, post: WordPressPost, publish_at: datetime) -> Result[WordPressPost]:
        return await self.create_post({**post, "status": "future", "date": _iso(publish_at)})

    async def reschedule_post(self, post_id: int, publish_at: datetime) -> Result[WordPressPost]:
        return await self.update_post(post_id, {"status": "future", "date": _iso(publish_at)})

    async def unschedule_post(self, post_id: int) -> Result[WordPressPost]:
        return await self.update_post(post_id, {"status": "draft"})

    async def publish_now(self, post_id: int) -> Result[WordPressPost]:
        return await self.update_post(post_id, {"status": "publish", "date": _iso(datetime.now(UTC))})

    # ------------------------------------------------------------------
    # categories
    # ------------------------------------------------------------------

    async def create_category(self, category: WordPressTerm) -> Result[WordPressTerm]:
        return await self._guard(self._request("POST", "/categories", json=category))

    async def update_category(self, category_id: int, category: WordPressTerm) -> Result[WordPressTerm]:
        return await self._guard(self._request("POST", f"/categories/{category_id}", json=category))

    async def delete_category(self, category_id: int) -> Result[None]:
        # terms cannot be trashed
        return await self._guard(self._delete(f"/categories/{category_id}", True))

    async def get_category(self, category_id: int) -> Result[WordPressTerm]:
        return await self._guard(self._request("GET", f"/categories/{category_id}"))

    async def get_category_by_slug(self, slug: str) -> Result[WordPressTerm]:
        return await self._guard(self._first_by_slug("/categories", slug, "Category"))

    async def list_categories(
        self,
        *,
        page: int | None = None,
        per_page: int | None = None,
        search: str | None = None,
    ) -> Result[dict[str, Any]]:
        return await self._guard(self._list("/categories", {"page": page, "per_page": per_page, "search": search}))

    async def get_or_create_category(self, name: str) -> Result[WordPressTerm]:
        existing = await self.get_category_by_slug(slugify(name))
        if existing.success or (existing.error and existing.error.code != ErrorCode.NOT_FOUND):
            return existing
        log.info("wordpress_category_created", category=name)
        return _existing_term(await self.create_category({"name": name}), name)

    # ------------------------------------------------------------------
    # tags
    # ------------------------------------------------------------------

    async def create_tag(self, tag: WordPressTerm) -> Result[WordPressTerm]:
        return await self._guard(self._request("POST", "/tags", json=tag))

    async def update_tag(self, tag_id: int, tag: WordPressTerm) -> Result[WordPressTerm]:
        return await self._guard(self._request("POST", f"/tags/{tag_id}", json=tag))

    async def delete_tag(self, tag_id: int) -> Result[None]:
        return await self._guard(self._delete(f"/tags/{tag_id}", True))

    async def get_tag(self, tag_id: int) -> Result[WordPressTerm]:
        return await self._guard(self._request("GET", f"/tags/{tag_id}"))

    async def get_tag_by_slug(self, slug: str) -> Result[WordPressTerm]:
        return await self._guard(self._first_by_slug("/tags", slug, "Tag"))

    async def list_tags(
        self,
        *,
        page: int | None = None,
        per_page: int | None = None,
        search: str | None = None,
    ) -> Result[dict[str, Any]]:
        return await self._guard(self._list("/tags", {"page": page, "per_page": per_page, "search": search}))

    async def get_or_create_tag(self, name: str) -> Result[WordPressTerm]:
        """Look the tag up by slug; create it only on NOT_FOUND.

        A create rejected with ``term_exists`` resolves to the existing term id.
        """
        existing = await self.get_tag_by_slug(slugify(name))
        if existing.success or (existing.error and existing.error.code != ErrorCode.NOT_FOUND):
            return existing
        log.info("wordpress_tag_created", tag=name)
        return _existing_term(await self.create_tag({"name": name}), name)

    async def get_or_create_tag_ids(self, names: list[str]) -> list[int]:
        """Resolve tag names to unique IDs. Raises CMSError on the first failure."""
        ids: list[int] = []
        seen: set[str] = set()
        for raw in names:
            name = raw.strip()
            if not name or name.lower() in seen:
                continue
            seen.add(name.lower())
            tag = (await self.get_or_create_tag(name)).unwrap()
            if tag["id"] not in ids:
                ids.append(tag["id"])
        return ids

    # ------------------------------------------------------------------
    # media
    # ------------------------------------------------------------------

    async def upload_image(
        self,
        file: bytes | str,
        filename: str,
        *,
        mime_type: str | None = None,
        alt_text: str | None = None,
        caption: str | None = None,
        description: str | None = None,
    ) -> Result[WordPressMedia]:
        """Upload raw bytes or a base64 data URL to the media library."""

        async def _upload() -> WordPressMedia:
            if isinstance(file, str):
                content, detected = _decode_data_url(file)
            else:
                content, detected = file, "image/jpeg"
            fields = build_params({"alt_text": alt_text, "caption": caption, "description": description})
            return await self._request(
                "POST",
                "/media",
                data=fields or None,
                files={"file": (filename, content, mime_type or detected)},
                default_code=ErrorCode.UPLOAD_ERROR,
            )

        return await self._guard(_upload())

    async def get_media(self, media_id: int) -> Result[WordPressMedia]:
        return await self._guard(self._request("GET", f"/media/{media_id}"))

    async def delete_media(self, media_id: int, *, force: bool = False) -> Result[None]:
        return await self._guard(self._delete(f"/media/{media_id}", force))

    # ------------------------------------------------------------------
    # users
    # ------------------------------------------------------------------

    async def get_user_by_id(self, user_id: int) -> Result[WordPressUser]:
        return await self._guard(self._request("GET", f"/users/{user_id}", params={"context": "edit"}))

    async def list_users(
        self,
        *,
        page: int | None = None,
        per_page: int | None = None,
        search: str | None = None,
    ) -> Result[dict[str, Any]]:
        params = {"page": page, "per_page": per_page, "search": search, "context": "edit"}
        return await self._guard(self._list("/users", params))

    # ------------------------------------------------------------------
    # Yoast SEO
    # ------------------------------------------------------------------

    async def update_yoast_seo(self, post_id: int, **seo: str | int | None) -> Result[WordPressPost]:
        """Write Yoast meta fields (title, description, focus_keyword, canonical, ...)."""
        unknown = set(seo) - set(_YOAST_META_KEYS)
        if unknown:
            return Result.fail(
                ErrorInfo(
                    message=f"Unknown Yoast fields: {', '.join(sorted(unknown))}",
                    code=ErrorCode.VALIDATION_ERROR,
                ),
            )
        meta = {_YOAST_META_KEYS[key]: value for key, value in seo.items() if value not in (None, "")}
        return await self.update_post(post_id, {"meta": meta})

    # ------------------------------------------------------------------
    # OAuth2 (authorization-code flow)
    # ------------------------------------------------------------------

    @staticmethod
    def get_oauth2_authorization_url(oauth: WordPressOAuth2Config, state: str | None = None) -> str:
        params = {
            "response_type": "code",
            "client_id": oauth.client_id,
            "redirect_uri": oauth.redirect_uri,
            "scope": oauth.scope,
        }
        if state:
            params["state"] = state
        url = httpx.URL(f"{oauth.url.rstrip('/')}/wp-json/wordpress-rest-oauth2/authorize", params=params)
        return str(url)

    @staticmethod
    async def exchange_code_for_token(
        oauth: WordPressOAuth2Config,
        code: str,
        *,
        http_client: httpx.AsyncClient | None = None,
    ) -> str:
        """Trade an authorization code for an access token. Raises CMSError."""
        client = http_client or create_http_client()
        try:
            response = await client.post(
                f"{oauth.url.rstrip('/')}/wp-json/wordpress-rest-oauth2/token",
                data={
                    "grant_type": "authorization_code",
                    "code": code,
                    "client_id": oauth.client_id,
                    "client_secret": oauth.client_secret.get_secret_value(),
                    "redirect_uri": oauth.redirect_uri,
                },
            )
        except httpx.HTTPError as exc:
            raise CMSError(str(exc) or "OAuth token exchange failed", ErrorCode.NETWORK_ERROR) from exc
        finally:
            if http_client is None:
                await client.aclose()

        if not response.is_success:
            log.warning("wordpress_oauth_exchange_failed", status=response.status_code)
            raise CMSError(
                f"OAuth token exchange failed: {response.reason_phrase}",
                ErrorCode.OAUTH_ERROR,
                response.status_code,
                error_body(response) or None,
            )
        token = error_body(response).get("access_token")
        if not token:
            raise CMSError("OAuth token response has no access_token", ErrorCode.OAUTH_ERROR, response.status_code)
        return token


def validate_wordpress_config(config: WordPressConfig) -> bool:
    """URL plus either username/password or an access token."""
    if not config.url:
        return False
    has_basic = bool(config.username and config.password and config.password.get_secret_value())
    has_token = bool(config.access_token and config.access_token.get_secret_value())
    return has_basic or has_token
