"""Unified error carrier for all CMS adapters.

Request helpers raise CMSError, CRUD methods convert it into a failed
Result (carrying ErrorInfo), and publish()/get_user() raise it again.
"""

from __future__ import annotations

from dataclasses import dataclass
from typing import Any


class ErrorCode:
    """Error codes shared across adapters.

    Remote platforms may report their own codes (Ghost ``type``, Notion
    ``code``, Webflow ``name``); those are passed through unchanged.
    """

    # setup
    NOT_CONFIGURED = "NOT_CONFIGURED"
    INVALID_API_KEY = "INVALID_API_KEY"
    MISSING_TOKEN = "MISSING_TOKEN"
    MISSING_DATABASE_ID = "MISSING_DATABASE_ID"
    UNSUPPORTED_PLATFORM = "UNSUPPORTED_PLATFORM"
    NOT_SUPPORTED = "NOT_SUPPORTED"

    # remote
    API_ERROR = "API_ERROR"
    MEDIUM_API_ERROR = "MEDIUM_API_ERROR"
    MEDIUM_PUBLISH_ERROR = "MEDIUM_PUBLISH_ERROR"
    SHOPIFY_API_ERROR = "SHOPIFY_API_ERROR"
    OAUTH_ERROR = "OAUTH_ERROR"
    NOT_FOUND = "NOT_FOUND"

    # local / transport
    VALIDATION_ERROR = "VALIDATION_ERROR"
    NETWORK_ERROR = "NETWORK_ERROR"
    UNKNOWN_ERROR = "UNKNOWN_ERROR"

    # business
    NO_COLLECTION = "NO_COLLECTION"
    BLOG_ERROR = "BLOG_ERROR"
    PUBLISH_ERROR = "PUBLISH_ERROR"
    CREATE_ERROR = "CREATE_ERROR"
    UPLOAD_ERROR = "UPLOAD_ERROR"


@dataclass(frozen=True, slots=True)
class ErrorInfo:
    """Plain-data form of a CMSError, carried by failed results."""

    message: str
    code: str = ErrorCode.UNKNOWN_ERROR
    status_code: int | None = None
    details: Any = None
    retry_after: float | None = None

    def to_error(self, default_code: str | None = None) -> CMSError:
        code = self.code
        if default_code and code == ErrorCode.UNKNOWN_ERROR:
            code = default_code
        return CMSError(self.message, code, self.status_code, self.details, retry_after=self.retry_after)


class CMSError(Exception):
    """Base exception for every adapter failure."""

    def __init__(
        self,
        message: str = "CMS operation failed",
        code: str = ErrorCode.UNKNOWN_ERROR,
        status_code: int | None = None,
        details: Any = None,
        *,
        retry_after: float | None = None,
    ) -> None:
        super().__init__(message)
        self.message = message
        self.code = code
        self.status_code = status_code
        self.details = details
        self.retry_after = retry_after

    def to_info(self) -> ErrorInfo:
        return ErrorInfo(
            message=self.message,
            code=self.code,
            status_code=self.status_code,
            details=self.details,
            retry_after=self.retry_after,
        )

    def __repr__(self) -> str:
        return f"CMSError(code={self.code!r}, status_code={self.status_code!r}, message={self.message!r})"
