"""Notion adapter: publishes posts as pages in a database.

Post fields are written to database properties through a configurable
property mapping; the markdown body becomes the page's child blocks.
"""

from __future__ import annotations

import re
from datetime import UTC, datetime
from typing import Any, ClassVar

import httpx
import structlog
from pydantic import BaseModel, ConfigDict, Field, SecretStr

from core.config import Settings
from core.exceptions import CMSError, ErrorCode

from .base import CMSAdapter, CMSPost, CMSPublication, CMSUser, PublishResult, Result, build_params, error_body
from .markdown import markdown_to_html
from .notion_blocks import NotionBlock, markdown_to_blocks, rich_text_to_plain_text, text_to_rich_text
from .text import html_to_plain_text, truncate_text

log = structlog.get_logger()

NOTION_API_URL = "https://api.notion.com/v1"

# Notion accepts at most this many children per request
MAX_BLOCKS_PER_REQUEST = 100

# Plain-text excerpt written to the content property
MAX_EXCERPT_LENGTH = 2000

NotionPage = dict[str, Any]
NotionDatabase = dict[str, Any]

_STATUS_NAMES = {"draft": "Draft", "public": "Published", "unlisted": "Unlisted"}

_NOTION_ID_RE = re.compile(r"([a-f0-9]{32}|[a-f0-9]{8}-[a-f0-9]{4}-[a-f0-9]{4}-[a-f0-9]{4}-[a-f0-9]{12})$", re.IGNORECASE)


class NotionPropertyMapping(BaseModel):
    """Database property names that receive each post field; None disables one."""

    model_config = ConfigDict(frozen=True)

    title_property: str = "Name"
    content_property: str | None = None
    tags_property: str | None = "Tags"
    status_property: str | None = "Status"
    canonical_url_property: str | None = "Canonical URL"
    published_date_property: str | None = "Published"


class NotionConfig(BaseModel):
    """Notion integration credentials."""

    model_config = ConfigDict(frozen=True)

    integration_token: SecretStr = SecretStr("")
    default_database_id: str | None = None
    version: str | None = None
    property_mapping: NotionPropertyMapping = Field(default_factory=NotionPropertyMapping)


class NotionAdapter(CMSAdapter):
    """Notion API client."""

    name: ClassVar[str] = "Notion"

    def __init__(
        self,
        config: NotionConfig,
        http_client: httpx.AsyncClient | None = None,
        *,
        settings: Settings | None = None,
    ) -> None:
        super().__init__(http_client, settings=settings)
        self._config = config
        self._api_version = config.version or self._settings.notion_api_version
        self._property_mapping = config.property_mapping

    def is_configured(self) -> bool:
        return bool(self._config.integration_token.get_secret_value() and self._config.default_database_id)

    @property
    def property_mapping(self) -> NotionPropertyMapping:
        return self._property_mapping

    def set_property_mapping(self, **changes: str | None) -> None:
        """Override individual property names, keeping the rest."""
        self._property_mapping = self._property_mapping.model_copy(update=changes)

    async def _request(
        self,
        method: str,
        endpoint: str,
        *,
        params: dict[str, Any] | None = None,
        json: Any = None,
    ) -> dict[str, Any]:
        headers = {
            "Authorization": f"Bearer {self._config.integration_token.get_secret_value()}",
            "Notion-Version": self._api_version,
        }
        response = await self._send(
            method,
            f"{NOTION_API_URL}{endpoint}",
            headers=headers,
            params=build_params(params),
            json=json,
        )
        if not response.is_success:
            body = error_body(response)
            raise self._api_error(response, body.get("message"), body.get("code"), body or None)
        return self._json(response)

    # ------------------------------------------------------------------
    # adapter interface
    # ------------------------------------------------------------------

    async def _publish(self, post: CMSPost) -> PublishResult:
        database_id = self._config.default_database_id
        if not database_id:
            raise CMSError("Default database ID is required to publish", ErrorCode.MISSING_DATABASE_ID)

        blocks = markdown_to_blocks(post.content)
        page = (
            await self.create_page(
                database_id,
                self.map_post_to_properties(post),
                children=blocks[:MAX_BLOCKS_PER_REQUEST],
            )
        ).unwrap(ErrorCode.PUBLISH_ERROR)

        for start in range(MAX_BLOCKS_PER_REQUEST, len(blocks), MAX_BLOCKS_PER_REQUEST):
            appended = await self.append_blocks(page["id"], blocks[start : start + MAX_BLOCKS_PER_REQUEST])
            if not appended.success:
                log.warning("notion_append_failed", page_id=page["id"], offset=start, total=len(blocks))
                appended.unwrap(ErrorCode.PUBLISH_ERROR)

        return PublishResult(
            success=True,
            post_id=str(page["id"]),
            url=page["url"],
            metadata={
                "public_url": page.get("public_url"),
                "created_time": page.get("created_time"),
                "last_edited_time": page.get("last_edited_time"),
                "block_count": len(blocks),
            },
        )

    async def get_user(self) -> CMSUser:
        user = await self._request("GET", "/users/me")
        bot = user.get("bot") or {}
        return CMSUser(
            id=str(user["id"]),
            username=bot.get("workspace_name") or "notion-integration",
            name=user.get("name") or "Notion Integration",
            image_url=user.get("avatar_url") or None,
        )

    async def get_publications(self) -> list[CMSPublication]:
        """Databases shared with the integration."""
        found = (await self.search_databases()).unwrap()
        publications = []
        for db in found.get("results", []):
            icon = db.get("icon") or {}
            publications.append(
                CMSPublication(
                    id=str(db["id"]),
                    name=rich_text_to_plain_text(db.get("title")),
                    description=rich_text_to_plain_text(db.get("description")) or None,
                    url=db.get("url"),
                    image_url=(icon.get("external") or {}).get("url") if icon.get("type") == "external" else None,
                ),
            )
        return publications

    def map_post_to_properties(self, post: CMSPost) -> dict[str, Any]:
        """Database property values for a post, following the property mapping."""
        mapping = self._property_mapping
        properties: dict[str, Any] = {
            mapping.title_property: {"type": "title", "title": text_to_rich_text(post.title)},
        }
        if mapping.content_property:
            plain = html_to_plain_text(post.content_html or markdown_to_html(post.content))
            excerpt = truncate_text(plain, MAX_EXCERPT_LENGTH)
            properties[mapping.content_property] = {"type": "rich_text", "rich_text": text_to_rich_text(excerpt)}
        if post.tags and mapping.tags_property:
            properties[mapping.tags_property] = {
                "type": "multi_select",
                "multi_select": [{"name": tag} for tag in post.tags],
            }
        if post.publish_status and mapping.status_property:
            properties[mapping.status_property] = {
                "type": "select",
                "select": {"name": _STATUS_NAMES.get(post.publish_status, "Draft")},
            }
        if post.canonical_url and mapping.canonical_url_property:
            properties[mapping.canonical_url_property] = {"type": "url", "url": post.canonical_url}
        if mapping.published_date_property:
            properties[mapping.published_date_property] = {
                "type": "date",
                "date": {"start": datetime.now(UTC).isoformat()},
            }
        return properties

    # ------------------------------------------------------------------
    # pages
    # ------------------------------------------------------------------

    async def create_page(
        self,
        database_id: str,
        properties: dict[str, Any],
        *,
        children: list[NotionBlock] | None = None,
        icon: dict[str, Any] | None = None,
        cover: dict[str, Any] | None = None,
    ) -> Result[NotionPage]:
        body: dict[str, Any] = {
            "parent": {"type": "database_id", "database_id": database_id},
            "properties": properties,
        }
        if children:
            body["children"] = children
        if icon:
            body["icon"] = icon
        if cover:
            body["cover"] = cover
        return await self._guard(self._request("POST", "/pages", json=body))

    async def update_page(
        self,
        page_id: str,
        *,
        properties: dict[str, Any] | None = None,
        archived: bool | None = None,
        icon: dict[str, Any] | None = None,
        cover: dict[str, Any] | None = None,
    ) -> Result[NotionPage]:
        body: dict[str, Any] = {}
        if properties:
            body["properties"] = properties
        if archived is not None:
            body["archived"] = archived
        if icon is not None:
            body["icon"] = icon
        if cover is not None:
            body["cover"] = cover
        return await self._guard(self._request("PATCH", f"/pages/{page_id}", json=body))

    async def get_page(self, page_id: str) -> Result[NotionPage]:
        return await self._guard(self._request("GET", f"/pages/{page_id}"))

    async def archive_page(self, page_id: str) -> Result[NotionPage]:
        return await self.update_page(page_id, archived=True)

    async def restore_page(self, page_id: str) -> Result[NotionPage]:
        return await self.update_page(page_id, archived=False)

    # ------------------------------------------------------------------
    # databases
    # ------------------------------------------------------------------

    async def get_database(self, database_id: str) -> Result[NotionDatabase]:
        return await self._guard(self._request("GET", f"/databases/{database_id}"))

    async def query_database(
        self,
        database_id: str,
        *,
        filter: dict[str, Any] | None = None,
        sorts: list[dict[str, Any]] | None = None,
        start_cursor: str | None = None,
        page_size: int | None = None,
    ) -> Result[dict[str, Any]]:
        body = build_params({"filter": filter, "sorts": sorts, "start_cursor": start_cursor, "page_size": page_size})
        return await self._guard(self._request("POST", f"/databases/{database_id}/query", json=body))

    async def search_databases(self, query: str | None = None) -> Result[dict[str, Any]]:
        body: dict[str, Any] = {"filter": {"property": "object", "value": "database"}}
        if query:
            body["query"] = query
        return await self._guard(self._request("POST", "/search", json=body))

    # ------------------------------------------------------------------
    # blocks
    # ------------------------------------------------------------------

    async def append_blocks(self, block_id: str, blocks: list[NotionBlock]) -> Result[dict[str, Any]]:
        return await self._guard(self._request("PATCH", f"/blocks/{block_id}/children", json={"children": blocks}))

    async def get_blocks(
        self,
        block_id: str,
        *,
        start_cursor: str | None = None,
        page_size: int | None = None,
    ) -> Result[dict[str, Any]]:
        params = {"start_cursor": start_cursor, "page_size": page_size}
        return await self._guard(self._request("GET", f"/blocks/{block_id}/children", params=params))


def validate_notion_config(config: NotionConfig) -> bool:
    """Integration tokens start with ``secret_`` (legacy) or ``ntn_``."""
    token = config.integration_token.get_secret_value()
    return token.startswith(("secret_", "ntn_"))


def format_notion_id(notion_id: str) -> str:
    return notion_id.replace("-", "")


def parse_notion_url(url: str) -> str | None:
    """Extract the page/database ID from a Notion URL (dashes removed)."""
    path = url.split("?", 1)[0].split("#", 1)[0].rstrip("/")
    match = _NOTION_ID_RE.search(path)
    return format_notion_id(match.group(1)) if match else None
