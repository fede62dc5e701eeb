"""Webflow adapter: Data API v2 (sites, CMS collections and items).

Posts become collection items. The target collection and the mapping of
post fields onto its schema are both chosen heuristically from the
schema discovered at runtime; the matching rules are pure functions so
they can be exercised without HTTP.

Per-instance caches (site, collection list, collection schemas) are not
locked; one adapter instance must not run mutating calls concurrently.
"""

from __future__ import annotations

import asyncio
from collections.abc import Iterable, Sequence
from dataclasses import dataclass, field
from typing import Any, ClassVar

import httpx
import structlog
from pydantic import BaseModel, ConfigDict, SecretStr

from core.config import Settings
from core.exceptions import CMSError, ErrorCode, ErrorInfo

from .base import CMSAdapter, CMSPost, CMSUser, PublishResult, Result, build_params, error_body
from .markdown import markdown_to_html
from .text import html_to_plain_text, slugify, truncate_text

log = structlog.get_logger()

WebflowItem = dict[str, Any]
WebflowSite = dict[str, Any]

EXCERPT_MAX_LENGTH = 200

_TITLE_CANDIDATES = ("name", "title")
_BODY_CANDIDATES = ("body", "content")
_EXCERPT_CANDIDATES = ("excerpt", "summary")
_TAG_CANDIDATES = ("tags", "tag")
_CANONICAL_CANDIDATES = ("canonical-url", "canonical")
_PLAIN_TEXT_TYPES = frozenset({"PlainText", "PlainTextField"})
_LIST_TAG_TYPES = frozenset({"Set", "MultiReference"})


class WebflowConfig(BaseModel):
    """Webflow site credentials."""

    model_config = ConfigDict(frozen=True)

    site_id: str = ""
    access_token: SecretStr = SecretStr("")
    version: str | None = None


# ---------------------------------------------------------------------------
# schema records
# ---------------------------------------------------------------------------


@dataclass(frozen=True, slots=True)
class WebflowField:
    """One field of a collection schema."""

    id: str
    slug: str
    name: str
    type: str
    required: bool = False
    validations: tuple[dict[str, Any], ...] = ()

    @classmethod
    def from_api(cls, data: dict[str, Any]) -> WebflowField:
        raw = data.get("validations") or ()
        validations = (raw,) if isinstance(raw, dict) else tuple(v for v in raw if isinstance(v, dict))
        return cls(
            id=str(data.get("id") or data.get("_id") or ""),
            slug=data.get("slug", ""),
            name=data.get("displayName") or data.get("name") or "",
            type=data.get("type", ""),
            required=bool(data.get("isRequired", data.get("required", False))),
            validations=validations,
        )


@dataclass(frozen=True, slots=True)
class WebflowCollection:
    """A CMS collection; ``fields`` is empty when only the listing was fetched."""

    id: str
    slug: str
    name: str
    fields: tuple[WebflowField, ...] = field(default_factory=tuple)

    @classmethod
    def from_api(cls, data: dict[str, Any]) -> WebflowCollection:
        return cls(
            id=str(data.get("id") or data.get("_id") or ""),
            slug=data.get("slug", ""),
            name=data.get("displayName") or data.get("name") or "",
            fields=tuple(WebflowField.from_api(f) for f in data.get("fields") or ()),
        )


# ---------------------------------------------------------------------------
# mapping heuristics
# ---------------------------------------------------------------------------


def pick_field(
    fields: Sequence[WebflowField],
    candidates: Sequence[str],
    exclude: Iterable[str] = (),
) -> WebflowField | None:
    """First field matching a candidate keyword.

    Exact slug matches win, in candidate order; otherwise the first field
    whose slug or lower-cased name contains a candidate. Slugs in
    ``exclude`` are never returned.
    """
    excluded = set(exclude)
    usable = [f for f in fields if f.slug not in excluded]

    for candidate in candidates:
        for f in usable:
            if f.slug == candidate:
                return f

    for candidate in candidates:
        for f in usable:
            if candidate in f.slug or candidate in f.name.lower():
                return f
    return None


def select_blog_collection(collections: Sequence[WebflowCollection]) -> WebflowCollection | None:
    """Prefer a collection named like ``blog``, then ``post``, else the first."""
    for keyword in ("blog", "post"):
        for collection in collections:
            if keyword in collection.slug.lower() or keyword in collection.name.lower():
                return collection
    return collections[0] if collections else None


def post_to_field_data(post: CMSPost, fields: Sequence[WebflowField]) -> dict[str, Any]:
    """Map a post onto a collection schema. Unmatched post fields are dropped."""
    data: dict[str, Any] = {}
    used: set[str] = set()

    title_field = pick_field(fields, _TITLE_CANDIDATES) or next(
        (f for f in fields if f.type in _PLAIN_TEXT_TYPES and f.slug != "slug"),
        None,
    )
    if title_field:
        data[title_field.slug] = post.title
        used.add(title_field.slug)

    if any(f.slug == "slug" for f in fields):
        data["slug"] = slugify(post.title)
        used.add("slug")

    html = post.content_html or markdown_to_html(post.content)

    body_field = pick_field(fields, _BODY_CANDIDATES, used)
    if body_field and html:
        data[body_field.slug] = html
        used.add(body_field.slug)

    excerpt_field = pick_field(fields, _EXCERPT_CANDIDATES, used)
    if excerpt_field and html:
        data[excerpt_field.slug] = truncate_text(html_to_plain_text(html), EXCERPT_MAX_LENGTH)
        used.add(excerpt_field.slug)

    tag_field = pick_field(fields, _TAG_CANDIDATES, used)
    if tag_field and post.tags:
        data[tag_field.slug] = list(post.tags) if tag_field.type in _LIST_TAG_TYPES else ", ".join(post.tags)
        used.add(tag_field.slug)

    canonical_field = pick_field(fields, _CANONICAL_CANDIDATES, used)
    if canonical_field and post.canonical_url:
        data[canonical_field.slug] = post.canonical_url

    return data


def _validate_value(f: WebflowField, value: Any) -> str | None:
    for rule in f.validations:
        min_length = rule.get("minLength")
        if min_length is not None and isinstance(value, str) and len(value) < min_length:
            return f"Minimum length is {min_length}"

        max_length = rule.get("maxLength")
        if max_length is not None and isinstance(value, str) and len(value) > max_length:
            return f"Maximum length is {max_length}"

        options = rule.get("options")
        if isinstance(options, list):
            allowed = {o.get("id") for o in options if isinstance(o, dict)}
            values = value if isinstance(value, list) else [value]
            if any(v not in allowed for v in values):
                return "Invalid option selected"
    return None


def validate_field_values(fields: Sequence[WebflowField], data: dict[str, Any]) -> dict[str, str]:
    """Per-field error messages for ``data``; empty when valid."""
    errors: dict[str, str] = {}
    for f in fields:
        value = data.get(f.slug)
        if value is None or value in ("", []):
            if f.required:
                errors[f.slug] = f"Field '{f.name}' is required"
            continue
        if message := _validate_value(f, value):
            errors[f.slug] = message
    return errors


def site_domain(site: WebflowSite) -> str:
    """Public host of a site: default domain, else first custom domain, else webflow.io."""
    if site.get("defaultDomain"):
        return site["defaultDomain"]
    custom = site.get("customDomains") or []
    if custom and isinstance(custom[0], dict) and custom[0].get("url"):
        return custom[0]["url"]
    return f"{site.get('shortName', '')}.webflow.io"


def format_collection_url(domain: str, collection_slug: str, item_slug: str) -> str:
    return f"https://{domain}/{collection_slug}/{item_slug}"


# ---------------------------------------------------------------------------
# adapter
# ---------------------------------------------------------------------------


class WebflowAdapter(CMSAdapter):
    """Webflow Data API client with per-instance schema caches."""

    name: ClassVar[str] = "Webflow"

    def __init__(
        self,
        config: WebflowConfig,
        http_client: httpx.AsyncClient | None = None,
        *,
        settings: Settings | None = None,
    ) -> None:
        super().__init__(http_client, settings=settings)
        self._config = config
        self._base_url = f"https://api.webflow.com/{config.version or self._settings.webflow_api_version}"
        self._site: WebflowSite | None = None
        self._collections: list[WebflowCollection] | None = None
        self._schemas: dict[str, WebflowCollection] = {}

    def is_configured(self) -> bool:
        return bool(self._config.site_id and self._config.access_token.get_secret_value())

    async def _request(
        self,
        method: str,
        endpoint: str,
        *,
        params: dict[str, Any] | None = None,
        json: Any = None,
        files: dict[str, Any] | None = None,
        default_code: str | None = None,
    ) -> dict[str, Any]:
        headers = {
            "Authorization": f"Bearer {self._config.access_token.get_secret_value()}",
            "accept": "application/json",
        }
        response = await self._send(
            method,
            f"{self._base_url}{endpoint}",
            headers=headers,
            params=build_params(params),
            json=json,
            files=files,
        )
        if not response.is_success:
            body = error_body(response)
            raise self._api_error(
                response,
                body.get("message"),
                body.get("name") or default_code,
                {"code": body.get("code"), "problems": body.get("problems"), "details": body.get("err")},
            )
        return self._json(response)

    def _invalidate(self, collection_id: str) -> None:
        self._schemas.pop(collection_id, None)
        self._collections = None
        log.debug("webflow_cache_invalidated", collection_id=collection_id)

    # ------------------------------------------------------------------
    # adapter interface
    # ------------------------------------------------------------------

    async def _publish(self, post: CMSPost) -> PublishResult:
        target = select_blog_collection(await self.list_collections())
        if target is None:
            raise CMSError("No suitable collection found for publishing posts", ErrorCode.NO_COLLECTION)
        if not target.fields:
            target = (await self.get_collection(target.id)).unwrap()

        field_data = post_to_field_data(post, target.fields)
        is_draft = post.publish_status == "draft"
        item = (await self.create_item(target.id, {"fieldData": field_data, "isDraft": is_draft})).unwrap(
            ErrorCode.CREATE_ERROR,
        )
        item_id = str(item.get("id") or item["_id"])

        if not is_draft:
            (await self.publish_items(target.id, [item_id])).unwrap(ErrorCode.PUBLISH_ERROR)

        site = await self.get_site()
        item_slug = field_data.get("slug") or (item.get("fieldData") or {}).get("slug") or slugify(post.title)
        return PublishResult(
            success=True,
            post_id=item_id,
            url=format_collection_url(site_domain(site), target.slug, item_slug),
            metadata={
                "collection_id": target.id,
                "collection_name": target.name,
                "slug": item_slug,
                "is_draft": is_draft,
            },
        )

    async def get_user(self) -> CMSUser:
        site = await self.get_site()
        return CMSUser(
            id=str(site.get("id") or site.get("_id") or self._config.site_id),
            username=site.get("shortName", ""),
            name=site.get("displayName") or site.get("name") or "",
            url=f"https://{site_domain(site)}",
        )

    # ------------------------------------------------------------------
    # sites
    # ------------------------------------------------------------------

    async def get_site(self) -> WebflowSite:
        """Configured site (cached). Raises CMSError."""
        if self._site is None:
            self._site = await self._request("GET", f"/sites/{self._config.site_id}")
        return self._site

    async def list_sites(self) -> Result[list[WebflowSite]]:
        async def _sites() -> list[WebflowSite]:
            body = await self._request("GET", "/sites")
            return body["sites"]

        return await self._guard(_sites())

    # ------------------------------------------------------------------
    # collections
    # ------------------------------------------------------------------

    async def list_collections(self) -> list[WebflowCollection]:
        """Collections of the site (cached until a mutating item call). Raises CMSError."""
        if self._collections is not None:
            log.debug("webflow_collections_cache_hit", site_id=self._config.site_id)
            return self._collections

        body = await self._request("GET", f"/sites/{self._config.site_id}/collections")
        self._collections = [WebflowCollection.from_api(c) for c in body.get("collections", [])]
        return self._collections

    async def get_collection(self, collection_id: str) -> Result[WebflowCollection]:
        """Collection with its field schema (cached per collection)."""
        if cached := self._schemas.get(collection_id):
            return Result.ok(cached)

        async def _fetch() -> WebflowCollection:
            body = await self._request("GET", f"/collections/{collection_id}")
            collection = WebflowCollection.from_api(body.get("collection", body))
            self._schemas[collection_id] = collection
            return collection

        return await self._guard(_fetch())

    async def get_field(self, collection_id: str, field_slug: str) -> Result[WebflowField]:
        collection = await self.get_collection(collection_id)
        if not collection.success:
            return Result.fail(collection.error)  # type: ignore[arg-type]
        for f in collection.data.fields:
            if f.slug == field_slug:
                return Result.ok(f)
        return Result.fail(
            ErrorInfo(message=f"Field '{field_slug}' not found in collection", code=ErrorCode.NOT_FOUND, status_code=404),
        )

    async def validate_field_data(self, collection_id: str, field_data: dict[str, Any]) -> Result[dict[str, Any]]:
        """Check field data against the collection schema before sending it."""
        collection = await self.get_collection(collection_id)
        if not collection.success:
            return Result.fail(collection.error)  # type: ignore[arg-type]
        errors = validate_field_values(collection.data.fields, field_data)
        if errors:
            return Result.fail(
                ErrorInfo(message="Field validation failed", code=ErrorCode.VALIDATION_ERROR, details=errors),
            )
        return Result.ok(field_data)

    # ------------------------------------------------------------------
    # items
    # ------------------------------------------------------------------

    async def create_item(self, collection_id: str, item: WebflowItem) -> Result[WebflowItem]:
        async def _create() -> WebflowItem:
            body = await self._request("POST", f"/collections/{collection_id}/items", json=item)
            self._invalidate(collection_id)
            return body.get("item", body)

        return await self._guard(_create())

    async def update_item(self, collection_id: str, item_id: str, item: WebflowItem) -> Result[WebflowItem]:
        async def _update() -> WebflowItem:
            body = await self._request("PATCH", f"/collections/{collection_id}/items/{item_id}", json=item)
            self._invalidate(collection_id)
            return body.get("item", body)

        return await self._guard(_update())

    async def delete_item(self, collection_id: str, item_id: str) -> Result[None]:
        async def _delete() -> None:
            await self._request("DELETE", f"/collections/{collection_id}/items/{item_id}")
            self._invalidate(collection_id)

        return await self._guard(_delete())

    async def get_item(self, collection_id: str, item_id: str) -> Result[WebflowItem]:
        async def _get() -> WebflowItem:
            body = await self._request("GET", f"/collections/{collection_id}/items/{item_id}")
            return body.get("item", body)

        return await self._guard(_get())

    async def list_items(
        self,
        collection_id: str,
        *,
        limit: int | None = None,
        offset: int | None = None,
    ) -> Result[dict[str, Any]]:
        """Raw ``{"items": [...], "pagination": {...}}`` body."""
        params = {"limit": limit, "offset": offset}
        return await self._guard(self._request("GET", f"/collections/{collection_id}/items", params=params))

    async def publish_items(self, collection_id: str, item_ids: list[str]) -> Result[dict[str, Any]]:
        return await self._guard(
            self._request("POST", f"/collections/{collection_id}/items/publish", json={"itemIds": item_ids}),
        )

    async def unpublish_items(self, collection_id: str, item_ids: list[str]) -> Result[list[WebflowItem]]:
        """Flip items back to draft; the updates run concurrently."""
        results = await asyncio.gather(
            *(self.update_item(collection_id, item_id, {"isDraft": True, "fieldData": {}}) for item_id in item_ids),
        )
        failed = [r.error for r in results if not r.success and r.error]
        if failed:
            return Result.fail(
                ErrorInfo(
                    message=f"Failed to unpublish {len(failed)} of {len(item_ids)} items",
                    code=failed[0].code,
                    details={"errors": [e.message for e in failed]},
                ),
            )
        return Result.ok([r.data for r in results])

    # ------------------------------------------------------------------
    # assets
    # ------------------------------------------------------------------

    async def upload_image(
        self,
        content: bytes,
        file_name: str = "upload",
        content_type: str = "application/octet-stream",
    ) -> Result[dict[str, Any]]:
        """Upload an asset to the site (multipart)."""

        async def _upload() -> dict[str, Any]:
            body = await self._request(
                "POST",
                f"/sites/{self._config.site_id}/assets",
                files={"file": (file_name, content, content_type)},
                default_code=ErrorCode.UPLOAD_ERROR,
            )
            asset = body.get("asset", body)
            if not asset:
                raise CMSError("Invalid upload response", ErrorCode.UPLOAD_ERROR)
            return asset

        return await self._guard(_upload())


def validate_webflow_config(config: WebflowConfig) -> bool:
    return bool(config.site_id and config.access_token.get_secret_value())
