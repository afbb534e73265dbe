"""Internal data models for gh-request.

All models use Pydantic v2 and are immutable once built. Retries and
pagination derive new values instead of editing existing ones.
"""

from __future__ import annotations

import copy
import json
from dataclasses import dataclass
from enum import Enum
from typing import Any
from urllib.parse import parse_qsl, urlsplit, urlunsplit

import httpx
from pydantic import BaseModel, ConfigDict, Field, field_validator


DEFAULT_BASE_URL = "https://api.github.com"
DEFAULT_WEB_URL = "https://github.com"
DEFAULT_ACCEPT = "application/vnd.github+json"
DEFAULT_API_VERSION = "2022-11-28"
DEFAULT_USER_AGENT = "gh-request"
ENTERPRISE_API_SUFFIX = "/api/v3"


# =============================================================================
# Request Models
# =============================================================================


class CallDescriptor(BaseModel):
    """One logical API request before it becomes a concrete HTTP request.

    Query parameters are ordered (key, value) pairs so repeated keys and
    caller ordering survive into the URL. A mapping is accepted and converted
    in insertion order.

    Query values and the body are deep-copied on construction, so later
    changes to the caller's objects never reach a descriptor or the pages
    derived from it.
    """

    model_config = ConfigDict(extra="forbid", frozen=True)

    method: str = Field(description="HTTP method (GET, POST, PATCH, PUT, DELETE)")
    path: str = Field(description="API path relative to base_url, or an absolute URL")
    query: tuple[tuple[str, Any], ...] = Field(
        default=(), description="Ordered query parameters"
    )
    body: Any = Field(default=None, description="JSON-serializable payload")
    accept: str | None = Field(default=None, description="Accept media type override")
    token: str | None = Field(default=None, repr=False, description="Bearer token for this call")

    @field_validator("query", mode="before")
    @classmethod
    def coerce_query(cls, value: Any) -> Any:
        if value is None:
            return ()
        if isinstance(value, dict):
            return copy.deepcopy(tuple(value.items()))
        if isinstance(value, (list, tuple)):
            return copy.deepcopy(tuple(tuple(pair) for pair in value))
        return value

    @field_validator("body")
    @classmethod
    def copy_body(cls, value: Any) -> Any:
        return copy.deepcopy(value)

    def with_target(self, url: str) -> CallDescriptor:
        """Return a new descriptor aimed at ``url`` (path and query taken from it).

        Method, body, accept and token carry over unchanged.
        """
        parts = urlsplit(url)
        path = urlunsplit((parts.scheme, parts.netloc, parts.path, "", ""))
        query = tuple(parse_qsl(parts.query, keep_blank_values=True))
        return self.model_copy(update={"path": path, "query": query})


class ConcreteRequest(BaseModel):
    """A fully assembled HTTP request ready for the transport."""

    model_config = ConfigDict(extra="forbid", frozen=True)

    method: str
    url: str
    # Carries Authorization, kept out of repr so it never reaches logs.
    headers: dict[str, str] = Field(default_factory=dict, repr=False)
    content: bytes | None = Field(default=None, repr=False)


# =============================================================================
# Response Models
# =============================================================================


@dataclass(frozen=True)
class RawPage:
    """One HTTP response, owned by the engine for a single round trip."""

    status_code: int
    headers: httpx.Headers
    content: bytes
    url: str

    @classmethod
    def from_response(cls, response: httpx.Response) -> RawPage:
        return cls(
            status_code=response.status_code,
            headers=response.headers,
            content=response.content,
            url=str(response.url),
        )

    @property
    def is_success(self) -> bool:
        return 200 <= self.status_code < 300

    @property
    def text(self) -> str:
        return self.content.decode("utf-8", errors="replace")

    def json(self) -> Any:
        """Decode the body as JSON. Empty bodies (e.g. 204) decode to None."""
        if not self.content.strip():
            return None
        return json.loads(self.content)


class ResultRecord(BaseModel):
    """A decoded JSON item plus the fields derived by the normalizer."""

    model_config = ConfigDict(extra="forbid", frozen=True)

    data: Any = Field(description="Decoded JSON item (a private copy)")
    canonical_url: str | None = Field(default=None, description="Web URL of the resource")
    repository_url: str | None = Field(default=None, description="Web URL of the owning repository")
    resource_id: int | None = Field(default=None, description="Numeric id when the item has one")


class ResourceContext(BaseModel):
    """Owner/repository information used to derive canonical URLs."""

    model_config = ConfigDict(extra="forbid", frozen=True)

    owner: str | None = None
    repo: str | None = None
    collection: str | None = None
    web_url: str = DEFAULT_WEB_URL

    @classmethod
    def from_path(cls, path: str, web_url: str = DEFAULT_WEB_URL) -> ResourceContext:
        """Derive a context from an API path such as ``/repos/o/r/issues``.

        Works on absolute URLs too, including Enterprise ``/api/v3`` prefixes.
        Paths that name no owner produce an empty context.
        """
        segments = [s for s in urlsplit(path).path.split("/") if s]
        web_url = web_url.rstrip("/")

        if "repos" in segments:
            index = segments.index("repos")
            rest = segments[index + 1:]
            if len(rest) >= 2:
                return cls(
                    owner=rest[0],
                    repo=rest[1],
                    collection=rest[2] if len(rest) > 2 else None,
                    web_url=web_url,
                )

        for prefix in ("users", "orgs"):
            if prefix in segments:
                index = segments.index(prefix)
                if index + 1 < len(segments):
                    return cls(owner=segments[index + 1], web_url=web_url)

        return cls(web_url=web_url)

    @property
    def repository_url(self) -> str | None:
        if self.owner and self.repo:
            return f"{self.web_url}/{self.owner}/{self.repo}"
        return None


# =============================================================================
# Retry and Error Models
# =============================================================================


class RetryDecision(BaseModel):
    """Whether to retry a response, and after how long."""

    model_config = ConfigDict(extra="forbid", frozen=True)

    should_retry: bool
    wait: float = Field(default=0.0, ge=0, description="Seconds to wait before the next attempt")
    reason: str = ""


class ErrorKind(str, Enum):
    """Failure categories that drive retry and propagation."""

    UNAUTHORIZED = "unauthorized"
    NOT_FOUND = "not_found"
    VALIDATION = "validation"
    RATE_LIMITED = "rate_limited"
    SERVER_ERROR = "server_error"
    NETWORK = "network"
    UNKNOWN = "unknown"


class ClassifiedError(BaseModel):
    """Typed categorization of a failed response or transport failure."""

    model_config = ConfigDict(extra="forbid", frozen=True)

    kind: ErrorKind
    message: str
    status: int | None = Field(default=None, description="HTTP status, None for transport failures")
    retryable: bool = False


class RateLimitStatus(BaseModel):
    """Rate-limit budget observed from X-RateLimit-* response headers.

    Advisory only. GitHub enforces the limit server-side regardless.
    """

    model_config = ConfigDict(extra="forbid", frozen=True)

    limit: int
    remaining: int | None = None
    used: int | None = None
    reset_at: int | None = Field(default=None, description="Reset time, epoch seconds")
    resource: str | None = None

    @classmethod
    def from_headers(cls, headers: httpx.Headers) -> RateLimitStatus | None:
        limit = _int_or_none(headers.get("x-ratelimit-limit"))
        if limit is None:
            return None
        return cls(
            limit=limit,
            remaining=_int_or_none(headers.get("x-ratelimit-remaining")),
            used=_int_or_none(headers.get("x-ratelimit-used")),
            reset_at=_int_or_none(headers.get("x-ratelimit-reset")),
            resource=headers.get("x-ratelimit-resource"),
        )


def _int_or_none(value: str | None) -> int | None:
    if value is None:
        return None
    try:
        return int(value.strip())
    except ValueError:
        return None


# =============================================================================
# Configuration Models
# =============================================================================


class RetryConfig(BaseModel):
    """Retry and backoff settings. All durations are in seconds."""

    model_config = ConfigDict(extra="forbid")

    max_retries: int = Field(default=3, ge=0, description="Retries after the first attempt")
    min_backoff: float = Field(default=1.0, ge=0, description="Floor for header-derived waits")
    base_delay: float = Field(default=1.0, ge=0, description="First exponential backoff delay")
    max_backoff: float = Field(default=60.0, ge=0, description="Ceiling for exponential backoff")
    max_rate_limit_wait: float = Field(
        default=300.0, ge=0, description="Give up instead of waiting longer than this for a reset"
    )


class EngineConfig(BaseModel):
    """Top-level runtime configuration."""

    model_config = ConfigDict(extra="forbid")

    base_url: str = Field(default=DEFAULT_BASE_URL, description="REST API root")
    web_url: str | None = Field(default=None, description="Web root, derived from base_url if unset")
    graphql_url: str | None = Field(default=None, description="GraphQL endpoint, derived if unset")
    token: str | None = Field(default=None, repr=False, description="Default bearer token")
    accept: str = Field(default=DEFAULT_ACCEPT, description="Default Accept media type")
    api_version: str | None = Field(default=DEFAULT_API_VERSION, description="X-GitHub-Api-Version")
    user_agent: str = Field(default=DEFAULT_USER_AGENT)
    timeout: float = Field(default=30.0, gt=0, description="Per round trip timeout")
    verify_ssl: bool = Field(default=True)
    ca_bundle: str | None = Field(default=None, description="Path to a CA bundle")
    retry: RetryConfig = Field(default_factory=RetryConfig)

    @field_validator("base_url")
    @classmethod
    def check_base_url(cls, value: str) -> str:
        if not value.startswith(("http://", "https://")):
            raise ValueError(f"base_url must be an http(s) URL, got '{value}'")
        return value.rstrip("/")

    @property
    def web_endpoint(self) -> str:
        """Web root: github.com for the public API, the host for Enterprise."""
        if self.web_url:
            return self.web_url.rstrip("/")
        parts = urlsplit(self.base_url)
        if parts.netloc == "api.github.com":
            return DEFAULT_WEB_URL
        path = parts.path.rstrip("/")
        if path.endswith(ENTERPRISE_API_SUFFIX):
            path = path[: -len(ENTERPRISE_API_SUFFIX)]
        return urlunsplit((parts.scheme, parts.netloc, path, "", ""))

    @property
    def graphql_endpoint(self) -> str:
        if self.graphql_url:
            return self.graphql_url
        if self.base_url.endswith(ENTERPRISE_API_SUFFIX):
            return self.base_url[: -len("/v3")] + "/graphql"
        return f"{self.base_url}/graphql"
