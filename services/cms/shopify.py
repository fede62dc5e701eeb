"""Shopify adapter: Admin REST API (blogs, articles, products, collections).

Posts become blog articles. A store without any blog gets a default
one created on first publish. The list-then-create sequence has no
concurrency guard: two simultaneous first publishes can create two blogs.
"""

from __future__ import annotations

import json as jsonlib
import re
from typing import Any, ClassVar

import httpx
import structlog
from pydantic import BaseModel, ConfigDict, SecretStr

from core.config import Settings
from core.exceptions import CMSError, ErrorCode, ErrorInfo

from .base import CMSAdapter, CMSPost, CMSPublication, CMSUser, PublishResult, Result, build_params, error_body
from .markdown import markdown_to_html

log = structlog.get_logger()

ShopifyBlog = dict[str, Any]
ShopifyArticle = dict[str, Any]
ShopifyProduct = dict[str, Any]
ShopifyCollection = dict[str, Any]
ShopifyCollect = dict[str, Any]
ShopifyImage = dict[str, Any]

DEFAULT_BLOG_TITLE = "Blog"

_SHOP_DOMAIN_RE = re.compile(r"^[a-z0-9][\w-]*(\.[\w-]+)+$", re.IGNORECASE)


class ShopifyConfig(BaseModel):
    """Shopify Admin API credentials."""

    model_config = ConfigDict(frozen=True)

    shop_domain: str = ""
    access_token: SecretStr = SecretStr("")
    api_version: str | None = None
    author: str = "Shopify Admin"


def shopify_error_message(body: dict[str, Any]) -> str | None:
    """Shopify reports ``error`` or ``errors`` (string, list or field map)."""
    if body.get("error"):
        return str(body["error"])
    errors = body.get("errors")
    if not errors:
        return None
    if isinstance(errors, str):
        return errors
    if isinstance(errors, list):
        return ", ".join(str(e) for e in errors)
    return jsonlib.dumps(errors)


class ShopifyAdapter(CMSAdapter):
    """Shopify Admin API client."""

    name: ClassVar[str] = "Shopify"

    def __init__(
        self,
        config: ShopifyConfig,
        http_client: httpx.AsyncClient | None = None,
        *,
        settings: Settings | None = None,
    ) -> None:
        super().__init__(http_client, settings=settings)
        self._config = config
        self._api_version = config.api_version or self._settings.shopify_api_version
        self._base_url = f"https://{config.shop_domain}/admin/api/{self._api_version}"

    def is_configured(self) -> bool:
        return bool(self._config.shop_domain and self._config.access_token.get_secret_value())

    async def _request(
        self,
        method: str,
        endpoint: str,
        *,
        params: dict[str, Any] | None = None,
        json: Any = None,
    ) -> dict[str, Any]:
        headers = {"X-Shopify-Access-Token": self._config.access_token.get_secret_value()}
        response = await self._send(
            method,
            f"{self._base_url}{endpoint}",
            headers=headers,
            params=build_params(params),
            json=json,
        )
        if not response.is_success:
            body = error_body(response)
            raise self._api_error(
                response,
                shopify_error_message(body),
                ErrorCode.SHOPIFY_API_ERROR,
                {"context": body},
            )
        return self._json(response)

    async def _get_key(self, method: str, endpoint: str, key: str, **kwargs: Any) -> Any:
        body = await self._request(method, endpoint, **kwargs)
        return body[key]

    async def _delete(self, endpoint: str) -> None:
        await self._request("DELETE", endpoint)

    # ------------------------------------------------------------------
    # adapter interface
    # ------------------------------------------------------------------

    async def _publish(self, post: CMSPost) -> PublishResult:
        blog = await self._get_or_create_default_blog()
        article = (
            await self.create_article(
                blog["id"],
                {
                    "title": post.title,
                    "body_html": post.content_html or markdown_to_html(post.content),
                    "author": self._config.author,
                    "tags": ", ".join(post.tags),
                    "published": post.publish_status == "public",
                },
            )
        ).unwrap(ErrorCode.PUBLISH_ERROR)

        blog_handle = blog.get("handle") or "news"
        return PublishResult(
            success=True,
            post_id=str(article["id"]),
            url=f"https://{self._config.shop_domain}/blogs/{blog_handle}/{article.get('handle', '')}",
            metadata={
                "blog_id": blog["id"],
                "handle": article.get("handle"),
                "published_at": article.get("published_at"),
            },
        )

    async def _get_or_create_default_blog(self) -> ShopifyBlog:
        blogs = (await self.list_blogs(limit=1)).unwrap()
        if blogs:
            return blogs[0]

        created = await self.create_blog({"title": DEFAULT_BLOG_TITLE, "commentable": "moderate"})
        if not created.success:
            raise CMSError(
                "No blog found and failed to create default blog",
                ErrorCode.BLOG_ERROR,
                created.error.status_code if created.error else None,
                {"cause": created.error.message if created.error else None},
            )
        log.info("shopify_default_blog_created", shop=self._config.shop_domain, blog_id=created.data["id"])
        return created.data

    async def get_user(self) -> CMSUser:
        shop = await self.get_shop()
        return CMSUser(
            id=str(shop["id"]),
            username=shop.get("myshopify_domain", "").removesuffix(".myshopify.com"),
            name=shop.get("name", ""),
            url=f"https://{shop.get('domain') or self._config.shop_domain}",
        )

    async def get_publications(self) -> list[CMSPublication]:
        """Blogs of the store."""
        blogs = (await self.list_blogs()).unwrap()
        return [
            CMSPublication(
                id=str(blog["id"]),
                name=blog.get("title", ""),
                url=f"https://{self._config.shop_domain}/blogs/{blog.get('handle', '')}",
            )
            for blog in blogs
        ]

    async def get_shop(self) -> dict[str, Any]:
        return await self._get_key("GET", "/shop.json", "shop")

    # ------------------------------------------------------------------
    # blogs
    # ------------------------------------------------------------------

    async def list_blogs(self, *, limit: int | None = None, since_id: int | None = None) -> Result[list[ShopifyBlog]]:
        params = {"limit": limit, "since_id": since_id}
        return await self._guard(self._get_key("GET", "/blogs.json", "blogs", params=params))

    async def get_blog(self, blog_id: int) -> Result[ShopifyBlog]:
        return await self._guard(self._get_key("GET", f"/blogs/{blog_id}.json", "blog"))

    async def create_blog(self, blog: ShopifyBlog) -> Result[ShopifyBlog]:
        return await self._guard(self._get_key("POST", "/blogs.json", "blog", json={"blog": blog}))

    async def update_blog(self, blog_id: int, blog: ShopifyBlog) -> Result[ShopifyBlog]:
        return await self._guard(self._get_key("PUT", f"/blogs/{blog_id}.json", "blog", json={"blog": blog}))

    async def delete_blog(self, blog_id: int) -> Result[None]:
        return await self._guard(self._delete(f"/blogs/{blog_id}.json"))

    # ------------------------------------------------------------------
    # articles
    # ------------------------------------------------------------------

    async def list_articles(
        self,
        blog_id: int,
        *,
        limit: int | None = None,
        since_id: int | None = None,
        published_status: str | None = None,
    ) -> Result[list[ShopifyArticle]]:
        params = {"limit": limit, "since_id": since_id, "published_status": published_status}
        return await self._guard(self._get_key("GET", f"/blogs/{blog_id}/articles.json", "articles", params=params))

    async def get_article(self, blog_id: int, article_id: int) -> Result[ShopifyArticle]:
        return await self._guard(self._get_key("GET", f"/blogs/{blog_id}/articles/{article_id}.json", "article"))

    async def get_article_by_handle(self, blog_id: int, handle: str) -> Result[ShopifyArticle]:
        """First article of the blog with the given handle (NOT_FOUND if none)."""

        async def _find() -> ShopifyArticle:
            articles = await self._get_key(
                "GET",
                f"/blogs/{blog_id}/articles.json",
                "articles",
                params={"handle": handle, "limit": 1},
            )
            if not articles:
                raise CMSError(f"Article with handle {handle!r} not found", ErrorCode.NOT_FOUND, 404)
            return articles[0]

        return await self._guard(_find())

    async def create_article(self, blog_id: int, article: ShopifyArticle) -> Result[ShopifyArticle]:
        return await self._guard(
            self._get_key("POST", f"/blogs/{blog_id}/articles.json", "article", json={"article": article}),
        )

    async def update_article(self, blog_id: int, article_id: int, article: ShopifyArticle) -> Result[ShopifyArticle]:
        return await self._guard(
            self._get_key(
                "PUT",
                f"/blogs/{blog_id}/articles/{article_id}.json",
                "article",
                json={"article": article},
            ),
        )

    async def delete_article(self, blog_id: int, article_id: int) -> Result[None]:
        return await self._guard(self._delete(f"/blogs/{blog_id}/articles/{article_id}.json"))

    async def list_all_articles(
        self,
        *,
        limit: int | None = None,
        since_id: int | None = None,
    ) -> Result[list[ShopifyArticle]]:
        """Articles across every blog of the store."""
        params = {"limit": limit, "since_id": since_id}
        return await self._guard(self._get_key("GET", "/articles.json", "articles", params=params))

    # ------------------------------------------------------------------
    # products
    # ------------------------------------------------------------------

    async def list_products(
        self,
        *,
        limit: int | None = None,
        since_id: int | None = None,
        status: str | None = None,
        vendor: str | None = None,
        product_type: str | None = None,
    ) -> Result[list[ShopifyProduct]]:
        params = {
            "limit": limit,
            "since_id": since_id,
            "status": status,
            "vendor": vendor,
            "product_type": product_type,
        }
        return await self._guard(self._get_key("GET", "/products.json", "products", params=params))

    async def get_product(self, product_id: int) -> Result[ShopifyProduct]:
        return await self._guard(self._get_key("GET", f"/products/{product_id}.json", "product"))

    async def create_product(self, product: ShopifyProduct) -> Result[ShopifyProduct]:
        return await self._guard(self._get_key("POST", "/products.json", "product", json={"product": product}))

    async def update_product(self, product_id: int, product: ShopifyProduct) -> Result[ShopifyProduct]:
        return await self._guard(
            self._get_key("PUT", f"/products/{product_id}.json", "product", json={"product": product}),
        )

    async def delete_product(self, product_id: int) -> Result[None]:
        return await self._guard(self._delete(f"/products/{product_id}.json"))

    async def count_products(
        self,
        *,
        status: str | None = None,
        vendor: str | None = None,
        product_type: str | None = None,
    ) -> Result[int]:
        params = {"status": status, "vendor": vendor, "product_type": product_type}
        return await self._guard(self._get_key("GET", "/products/count.json", "count", params=params))

    # ------------------------------------------------------------------
    # product images
    # ------------------------------------------------------------------

    async def add_product_image(self, product_id: int, image: ShopifyImage) -> Result[ShopifyImage]:
        """Attach an image given as ``src`` URL or base64 ``attachment``."""
        return await self._guard(
            self._get_key("POST", f"/products/{product_id}/images.json", "image", json={"image": image}),
        )

    async def update_product_image(self, product_id: int, image_id: int, image: ShopifyImage) -> Result[ShopifyImage]:
        return await self._guard(
            self._get_key(
                "PUT",
                f"/products/{product_id}/images/{image_id}.json",
                "image",
                json={"image": image},
            ),
        )

    async def delete_product_image(self, product_id: int, image_id: int) -> Result[None]:
        return await self._guard(self._delete(f"/products/{product_id}/images/{image_id}.json"))

    async def upload_product_images(self, product_id: int, images: list[ShopifyImage]) -> Result[list[ShopifyImage]]:
        """Upload images one by one; fails if any upload failed (after trying all)."""
        uploaded: list[ShopifyImage] = []
        errors: list[ErrorInfo] = []
        for image in images:
            result = await self.add_product_image(product_id, image)
            if result.success:
                uploaded.append(result.data)
            elif result.error:
                errors.append(result.error)

        if errors:
            log.warning("shopify_image_upload_failed", product_id=product_id, failed=len(errors), total=len(images))
            return Result.fail(
                ErrorInfo(
                    message=f"Failed to upload {len(errors)} of {len(images)} images",
                    code=ErrorCode.UPLOAD_ERROR,
                    details={"errors": [e.message for e in errors], "uploaded": uploaded},
                ),
            )
        return Result.ok(uploaded)

    # ------------------------------------------------------------------
    # custom collections
    # ------------------------------------------------------------------

    async def list_collections(
        self,
        *,
        limit: int | None = None,
        since_id: int | None = None,
    ) -> Result[list[ShopifyCollection]]:
        params = {"limit": limit, "since_id": since_id}
        return await self._guard(
            self._get_key("GET", "/custom_collections.json", "custom_collections", params=params),
        )

    async def get_collection(self, collection_id: int) -> Result[ShopifyCollection]:
        return await self._guard(
            self._get_key("GET", f"/custom_collections/{collection_id}.json", "custom_collection"),
        )

    async def create_collection(self, collection: ShopifyCollection) -> Result[ShopifyCollection]:
        return await self._guard(
            self._get_key(
                "POST",
                "/custom_collections.json",
                "custom_collection",
                json={"custom_collection": collection},
            ),
        )

    async def update_collection(self, collection_id: int, collection: ShopifyCollection) -> Result[ShopifyCollection]:
        return await self._guard(
            self._get_key(
                "PUT",
                f"/custom_collections/{collection_id}.json",
                "custom_collection",
                json={"custom_collection": collection},
            ),
        )

    async def delete_collection(self, collection_id: int) -> Result[None]:
        return await self._guard(self._delete(f"/custom_collections/{collection_id}.json"))

    async def count_collections(self) -> Result[int]:
        return await self._guard(self._get_key("GET", "/custom_collections/count.json", "count"))

    # ------------------------------------------------------------------
    # collects (product <-> collection links)
    # ------------------------------------------------------------------

    async def add_product_to_collection(self, collection_id: int, product_id: int) -> Result[ShopifyCollect]:
        collect = {"collection_id": collection_id, "product_id": product_id}
        return await self._guard(self._get_key("POST", "/collects.json", "collect", json={"collect": collect}))

    async def remove_product_from_collection(self, collect_id: int) -> Result[None]:
        return await self._guard(self._delete(f"/collects/{collect_id}.json"))

    async def list_collection_collects(self, collection_id: int) -> Result[list[ShopifyCollect]]:
        return await self._guard(
            self._get_key("GET", "/collects.json", "collects", params={"collection_id": collection_id}),
        )

    async def get_collection_products(
        self,
        collection_id: int,
        *,
        limit: int | None = None,
    ) -> Result[list[ShopifyProduct]]:
        return await self._guard(
            self._get_key(
                "GET",
                f"/custom_collections/{collection_id}/products.json",
                "products",
                params={"limit": limit},
            ),
        )


def validate_shopify_config(config: ShopifyConfig) -> bool:
    if not config.shop_domain or not config.access_token.get_secret_value():
        return False
    return bool(_SHOP_DOMAIN_RE.match(config.shop_domain))
