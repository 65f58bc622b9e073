"""Pydantic models for envelopes, client status, and platform resources."""

from __future__ import annotations

from datetime import datetime, timezone
from enum import Enum
from typing import Any, Generic, TypeVar

from pydantic import BaseModel, ConfigDict, Field, model_validator
from pydantic.alias_generators import to_camel

T = TypeVar("T")


def utc_now() -> str:
    return datetime.now(timezone.utc).isoformat()


class WireModel(BaseModel):
    """Base for server payloads: camelCase on the wire, unknown keys kept."""

    model_config = ConfigDict(alias_generator=to_camel, populate_by_name=True, extra="allow")


# ── Envelopes ─────────────────────────────────────────────────────────

class ApiResponse(WireModel, Generic[T]):
    """Success envelope ``{data, success, message?, timestamp}``."""

    data: T
    success: bool = True
    message: str | None = None
    timestamp: str = Field(default_factory=utc_now)
    cached: bool = Field(default=False, exclude=True)


class PaginatedResponse(WireModel, Generic[T]):
    """Paginated envelope.

    Accepts the flat form ``{data, total, page, limit, hasNext, hasPrev}`` as
    well as the metadata nested under ``pagination``.
    """

    data: list[T]
    success: bool = True
    message: str | None = None
    timestamp: str = Field(default_factory=utc_now)
    total: int = Field(ge=0)
    page: int = Field(ge=1)
    limit: int = Field(gt=0)
    has_next: bool
    has_prev: bool
    total_pages: int | None = None
    cached: bool = Field(default=False, exclude=True)

    @model_validator(mode="before")
    @classmethod
    def _flatten_pagination(cls, values: Any) -> Any:
        if isinstance(values, dict) and isinstance(values.get("pagination"), dict):
            flat = {k: v for k, v in values.items() if k != "pagination"}
            flat.update(values["pagination"])
            return flat
        return values

    def is_consistent(self) -> bool:
        """Check ``has_next``/``has_prev`` against ``page``, ``limit`` and ``total``."""
        return (
            self.has_next == (self.page * self.limit < self.total)
            and self.has_prev == (self.page > 1)
        )


# ── Client status ─────────────────────────────────────────────────────

class ClientState(str, Enum):
    UNINITIALIZED = "uninitialized"
    READY = "ready"
    DEGRADED = "degraded"


class ClientStatus(BaseModel):
    name: str
    healthy: bool
    last_checked_at: str = Field(default_factory=utc_now)
    latency_ms: int | None = None
    error: str | None = None
    state: ClientState = ClientState.READY


class HealthSummary(BaseModel):
    total: int = 0
    healthy: int = 0
    unhealthy: int = 0
    average_latency_ms: int = 0


class SystemHealth(BaseModel):
    status: str = "healthy"  # "healthy", "degraded" or "unhealthy"
    services: list[ClientStatus] = []
    summary: HealthSummary = Field(default_factory=HealthSummary)


class ClientStats(BaseModel):
    service: str
    state: ClientState
    authenticated: bool
    cache_size: int = 0
    cache_max_size: int = 0
    cache_hit_rate: float = 0.0
    requests: dict[str, int] = {}


# ── Batch results ─────────────────────────────────────────────────────

class BatchItemError(BaseModel):
    index: int
    code: str
    error: str


class BatchResult(BaseModel):
    recorded: int = 0
    failed: int = 0
    errors: list[BatchItemError] = []


# ── Content ───────────────────────────────────────────────────────────

class User(WireModel):
    id: str
    email: str | None = None
    username: str | None = None
    display_name: str | None = None
    avatar: str | None = None
    bio: str | None = None
    location: str | None = None
    website: str | None = None
    is_verified: bool = False
    is_active: bool = True
    role: str = "user"
    created_at: str | None = None
    updated_at: str | None = None


class Post(WireModel):
    id: str
    author_id: str | None = None
    title: str = ""
    content: str = ""
    excerpt: str | None = None
    slug: str | None = None
    status: str = "draft"
    visibility: str = "public"
    type: str = "text"
    category: str = ""
    tags: list[str] = []
    created_at: str | None = None
    updated_at: str | None = None
    published_at: str | None = None


class Comment(WireModel):
    id: str
    post_id: str | None = None
    author_id: str | None = None
    content: str = ""
    parent_id: str | None = None
    status: str = "active"
    likes: int = 0
    is_liked: bool | None = None
    created_at: str | None = None


class MediaFile(WireModel):
    id: str
    filename: str = ""
    original_name: str | None = None
    mime_type: str | None = None
    size: int = 0
    url: str | None = None
    thumbnail_url: str | None = None
    alt_text: str | None = None
    uploaded_at: str | None = None


# ── Community ─────────────────────────────────────────────────────────

class Group(WireModel):
    id: str
    name: str = ""
    description: str = ""
    slug: str | None = None
    type: str = "public"
    category: str = ""
    owner_id: str | None = None
    created_at: str | None = None


class EventLocation(WireModel):
    name: str = ""
    address: str = ""
    coordinates: dict[str, float] | None = None
    virtual_link: str | None = None


class Event(WireModel):
    id: str
    title: str = ""
    description: str = ""
    slug: str | None = None
    type: str = "offline"
    status: str = "draft"
    organizer_id: str | None = None
    group_id: str | None = None
    start_date: str | None = None
    end_date: str | None = None
    timezone: str | None = None
    location: EventLocation | None = None
    capacity: int | None = None
    tags: list[str] = []


class Notification(WireModel):
    id: str
    user_id: str | None = None
    type: str = "system"
    title: str = ""
    message: str = ""
    is_read: bool = False
    action_url: str | None = None
    created_at: str | None = None


# ── Analytics / admin ────────────────────────────────────────────────

class Metric(WireModel):
    id: str | None = None
    name: str
    value: float
    unit: str = ""
    category: str = ""
    tags: dict[str, str] = {}
    timestamp: str | None = None


class AnalyticsReport(WireModel):
    id: str
    name: str = ""
    description: str = ""
    type: str = "user"
    config: dict[str, Any] = {}
    schedule: dict[str, Any] | None = None
    created_at: str | None = None
    updated_at: str | None = None


class ModerationAction(WireModel):
    id: str
    type: str
    reason: str = ""
    moderator_id: str | None = None
    target_type: str | None = None
    target_id: str | None = None
    duration: int | None = None
    created_at: str | None = None


# ── Search ────────────────────────────────────────────────────────────

class SearchFilters(WireModel):
    category: list[str] | None = None
    tags: list[str] | None = None
    date_range: dict[str, str] | None = None  # {"from": ..., "to": ...}
    location: dict[str, float] | None = None  # {"lat", "lng", "radius"}
    author: str | None = None
    group: str | None = None

    def is_empty(self) -> bool:
        return not any(
            getattr(self, name) for name in ("category", "tags", "date_range", "location", "author", "group")
        )


class SearchQuery(WireModel):
    q: str = ""
    type: str = "all"
    filters: SearchFilters | None = None
    sort: str = "relevance"
    page: int | None = None
    limit: int | None = None


class SearchResult(WireModel):
    id: str
    type: str
    title: str = ""
    description: str = ""
    url: str = ""
    thumbnail: str | None = None
    metadata: Any = None
    score: float = 0.0
    highlights: dict[str, list[str]] | None = None


class SearchResponse(PaginatedResponse[SearchResult]):
    query: SearchQuery | None = None
    took: float = 0.0
    suggestions: list[str] = []
    facets: dict[str, list[dict[str, Any]]] | None = None
