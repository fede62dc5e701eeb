"""CMS adapters — publish posts to Ghost, Medium, Notion, Shopify, Webflow, WordPress."""

from .base import CMSAdapter, CMSPost, CMSPublication, CMSUser, PublishResult, PublishStatus, Result
from .factory import SUPPORTED_CMS_PLATFORMS, CMSPlatform, create_cms_adapter, is_supported_platform
from .ghost import GhostAdapter, GhostConfig, validate_ghost_config
from .markdown import markdown_to_html
from .medium import MediumAdapter, MediumConfig, create_medium_adapter
from .notion import NotionAdapter, NotionConfig, NotionPropertyMapping, validate_notion_config
from .shopify import ShopifyAdapter, ShopifyConfig, validate_shopify_config
from .text import sanitize_tags
from .webflow import WebflowAdapter, WebflowCollection, WebflowConfig, WebflowField, validate_webflow_config
from .wordpress import WordPressAdapter, WordPressConfig, WordPressOAuth2Config, validate_wordpress_config

__all__ = [
    "SUPPORTED_CMS_PLATFORMS",
    "CMSAdapter",
    "CMSPlatform",
    "CMSPost",
    "CMSPublication",
    "CMSUser",
    "GhostAdapter",
    "GhostConfig",
    "MediumAdapter",
    "MediumConfig",
    "NotionAdapter",
    "NotionConfig",
    "NotionPropertyMapping",
    "PublishResult",
    "PublishStatus",
    "Result",
    "ShopifyAdapter",
    "ShopifyConfig",
    "WebflowAdapter",
    "WebflowCollection",
    "WebflowConfig",
    "WebflowField",
    "WordPressAdapter",
    "WordPressConfig",
    "WordPressOAuth2Config",
    "create_cms_adapter",
    "create_medium_adapter",
    "is_supported_platform",
    "markdown_to_html",
    "sanitize_tags",
    "validate_ghost_config",
    "validate_notion_config",
    "validate_shopify_config",
    "validate_webflow_config",
    "validate_wordpress_config",
]
