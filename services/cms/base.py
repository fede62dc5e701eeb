"""Base adapter interface and data models shared by every CMS platform.

Error policy (three tiers):
  - ``_request`` helpers raise CMSError
  - CRUD methods return Result[T] and never raise for remote failures
  - publish() / get_user() / get_publications() raise CMSError
"""

from __future__ import annotations

from abc import ABC, abstractmethod
from collections.abc import Awaitable
from dataclasses import dataclass, field
from types import TracebackType
from typing import Any, ClassVar, Generic, Literal, Self, TypeVar

import httpx
import structlog

from core.config import Settings, get_settings
from core.exceptions import CMSError, ErrorCode, ErrorInfo

log = structlog.get_logger()

T = TypeVar("T")

PublishStatus = Literal["draft", "public", "unlisted"]

# Maximum time honoured from a Retry-After header (seconds)
_MAX_RETRY_AFTER = 60.0


@dataclass(frozen=True, slots=True)
class CMSPost:
    """Platform-agnostic input to publish(). Content is markdown."""

    title: str
    content: str
    content_html: str | None = None
    tags: list[str] = field(default_factory=list)
    publish_status: PublishStatus | None = None
    canonical_url: str | None = None
    notify_followers: bool | None = None


@dataclass(frozen=True, slots=True)
class PublishResult:
    """Normalized result of a successful publish."""

    success: bool
    post_id: str
    url: str
    metadata: dict[str, Any] = field(default_factory=dict)


@dataclass(frozen=True, slots=True)
class CMSUser:
    """Identity of the authenticated account, integration or site."""

    id: str
    username: str
    name: str
    url: str | None = None
    image_url: str | None = None


@dataclass(frozen=True, slots=True)
class CMSPublication:
    """A publish target owned by the account (publication, database, blog)."""

    id: str
    name: str
    description: str | None = None
    url: str | None = None
    image_url: str | None = None


@dataclass(frozen=True, slots=True)
class Result(Generic[T]):
    """Outcome of a mid-level CRUD call: either data or error, never both."""

    success: bool
    data: T | None = None
    error: ErrorInfo | None = None

    @classmethod
    def ok(cls, data: T) -> Result[T]:
        return cls(success=True, data=data)

    @classmethod
    def fail(cls, error: ErrorInfo) -> Result[T]:
        return cls(success=False, error=error)

    def unwrap(self, default_code: str | None = None) -> T:
        """Return data or raise the carried error as CMSError."""
        if self.success:
            return self.data  # type: ignore[return-value]
        error = self.error or ErrorInfo(message="An unknown error occurred")
        raise error.to_error(default_code)


def create_http_client(settings: Settings | None = None) -> httpx.AsyncClient:
    """Create an httpx client with limits and timeouts from settings."""
    settings = settings or get_settings()
    return httpx.AsyncClient(
        limits=httpx.Limits(
            max_connections=settings.http_max_connections,
            max_keepalive_connections=settings.http_max_keepalive_connections,
        ),
        timeout=httpx.Timeout(settings.http_timeout, connect=settings.http_connect_timeout),
    )


def validate_post(post: CMSPost) -> None:
    """Local checks applied before any network call."""
    if not post.title or not post.title.strip():
        raise CMSError("Post title is required", ErrorCode.VALIDATION_ERROR)


def parse_retry_after(response: httpx.Response) -> float | None:
    """Extract Retry-After header value as seconds, capped at 60."""
    raw = response.headers.get("Retry-After")
    if raw is None:
        return None
    try:
        return min(float(raw), _MAX_RETRY_AFTER)
    except ValueError:
        return None


def error_body(response: httpx.Response) -> dict[str, Any]:
    """Parse an error response body; anything but a JSON object becomes {}."""
    try:
        body = response.json()
    except ValueError:
        return {}
    return body if isinstance(body, dict) else {}


class CMSAdapter(ABC):
    """Abstract base for all CMS platform adapters.

    An adapter that creates its own httpx client closes it in aclose();
    an injected client is left to its owner.
    """

    name: ClassVar[str]

    def __init__(
        self,
        http_client: httpx.AsyncClient | None = None,
        *,
        settings: Settings | None = None,
    ) -> None:
        self._settings = settings or get_settings()
        self._owns_client = http_client is None
        self._client = http_client or create_http_client(self._settings)

    # ------------------------------------------------------------------
    # lifecycle
    # ------------------------------------------------------------------

    async def aclose(self) -> None:
        if self._owns_client:
            await self._client.aclose()

    async def __aenter__(self) -> Self:
        return self

    async def __aexit__(
        self,
        exc_type: type[BaseException] | None,
        exc: BaseException | None,
        tb: TracebackType | None,
    ) -> None:
        await self.aclose()

    # ------------------------------------------------------------------
    # public API
    # ------------------------------------------------------------------

    @abstractmethod
    def is_configured(self) -> bool:
        """Whether all mandatory credential fields are present (no network call)."""
        ...

    async def publish(self, post: CMSPost) -> PublishResult:
        """Publish a generic post. Raises CMSError on any failure."""
        validate_post(post)
        log.info("cms_publish_started", platform=self.name, title=post.title[:100])
        try:
            result = await self._publish(post)
        except CMSError as exc:
            log.error(
                "cms_publish_failed",
                platform=self.name,
                code=exc.code,
                status=exc.status_code,
                error=exc.message,
            )
            raise
        log.info("cms_publish_succeeded", platform=self.name, post_id=result.post_id, url=result.url)
        return result

    @abstractmethod
    async def _publish(self, post: CMSPost) -> PublishResult:
        """Map the generic post onto platform-native create calls."""
        ...

    @abstractmethod
    async def get_user(self) -> CMSUser:
        """Return the authenticated identity. Raises CMSError."""
        ...

    async def get_publications(self) -> list[CMSPublication]:
        """List publish targets. Only some platforms support this."""
        raise CMSError(f"{self.name} does not expose publications", ErrorCode.NOT_SUPPORTED)

    # ------------------------------------------------------------------
    # helpers
    # ------------------------------------------------------------------

    async def _send(
        self,
        method: str,
        url: str,
        *,
        headers: dict[str, str] | None = None,
        params: dict[str, Any] | list[tuple[str, Any]] | None = None,
        json: Any = None,
        data: dict[str, Any] | None = None,
        files: dict[str, Any] | None = None,
    ) -> httpx.Response:
        """Perform one HTTP call; transport failures become NETWORK_ERROR."""
        try:
            return await self._client.request(
                method,
                url,
                headers=headers,
                params=params,
                json=json,
                data=data,
                files=files,
            )
        except httpx.HTTPError as exc:
            log.warning("cms_network_error", platform=self.name, method=method, url=url, error=str(exc))
            raise CMSError(
                str(exc) or f"{self.name} request failed",
                ErrorCode.NETWORK_ERROR,
                details={"url": url, "method": method},
            ) from exc

    def _api_error(
        self,
        response: httpx.Response,
        message: str | None,
        code: str | None,
        details: Any = None,
    ) -> CMSError:
        """Build the unified error for a non-2xx response."""
        return CMSError(
            message or f"{self.name} API error: {response.reason_phrase}",
            code or ErrorCode.API_ERROR,
            response.status_code,
            details,
            retry_after=parse_retry_after(response),
        )

    def _json(self, response: httpx.Response) -> Any:
        """Decode a successful response body ({} for empty bodies such as 204)."""
        if not response.content:
            return {}
        try:
            return response.json()
        except ValueError as exc:
            raise CMSError(
                f"{self.name} returned an invalid JSON response",
                ErrorCode.API_ERROR,
                response.status_code,
                {"body": response.text[:500]},
            ) from exc

    async def _guard(self, operation: Awaitable[T]) -> Result[T]:
        """Await a request and convert failures into a failed Result."""
        try:
            return Result.ok(await operation)
        except CMSError as exc:
            return Result.fail(exc.to_info())
        except (KeyError, IndexError, TypeError) as exc:
            log.warning("cms_unexpected_response", platform=self.name, error=repr(exc))
            return Result.fail(
                ErrorInfo(message=f"Unexpected {self.name} response: {exc!r}", code=ErrorCode.UNKNOWN_ERROR),
            )


def build_params(params: dict[str, Any] | None) -> dict[str, Any]:
    """Drop unset values; booleans become lowercase strings."""
    if not params:
        return {}
    cleaned: dict[str, Any] = {}
    for key, value in params.items():
        if value is None:
            continue
        if isinstance(value, bool):
            cleaned[key] = "true" if value else "false"
        else:
            cleaned[key] = value
    return cleaned
