"""Pydantic models describing normalized content and tracking payloads."""

from __future__ import annotations

from datetime import date
from typing import Any, Literal, get_args

from pydantic import (
    BaseModel,
    ConfigDict,
    Field,
    ValidationError,
    field_validator,
    model_validator,
)
from pydantic.alias_generators import to_camel

Source = Literal["tmdb", "anilist"]
ItemType = Literal["movie", "series", "anime"]
SearchType = Literal["all", "movie", "series", "anime"]
ContentStatus = Literal["ongoing", "ended", "upcoming", "cancelled", "hiatus"]
TrackingStatus = Literal["watched", "watching", "want_to_watch", "dropped", "paused"]

SOURCES: tuple[str, ...] = get_args(Source)
ITEM_TYPES: tuple[str, ...] = get_args(ItemType)
SEARCH_TYPES: tuple[str, ...] = get_args(SearchType)
TRACKING_STATUSES: tuple[str, ...] = get_args(TrackingStatus)

SOURCE_TYPES: dict[str, tuple[str, ...]] = {
    "tmdb": ("movie", "series"),
    "anilist": ("anime",),
}

TRACKED_FIELDS: tuple[str, ...] = (
    "status",
    "rating",
    "episodes_watched",
    "watched_at",
    "notes",
)


class SourceError(RuntimeError):
    """Raised when an upstream catalog cannot satisfy a request."""

    def __init__(self, source: str, message: str):
        super().__init__(f"{source}: {message}")
        self.source = source


class UnifiedContent(BaseModel):
    """Source-agnostic view of a movie, series or anime title."""

    model_config = ConfigDict(alias_generator=to_camel, populate_by_name=True)

    external_id: str
    source: Source
    type: ItemType
    title: str = Field(min_length=1)
    original_title: str
    year: int | None = None
    poster_url: str | None = None
    backdrop_url: str | None = None
    overview: str = ""
    genres: list[str] = Field(default_factory=list)
    rating: float | None = Field(default=None, ge=0, le=10)
    episode_count: int | None = None
    season_count: int | None = None
    status: ContentStatus | None = None
    raw_data: dict[str, Any] = Field(default_factory=dict)

    @classmethod
    def from_source(cls, source: str, **fields: Any) -> "UnifiedContent":
        """Build normalized content, reporting malformed fields as a source error."""

        try:
            return cls(source=source, **fields)
        except ValidationError as exc:
            fields_in_error = ", ".join(
                ".".join(str(part) for part in error["loc"]) for error in exc.errors()
            )
            raise SourceError(
                source, f"malformed payload ({fields_in_error})"
            ) from exc

    def to_payload(self) -> dict[str, Any]:
        """Return the camelCase JSON shape served to clients."""

        return self.model_dump(mode="json", by_alias=True)

    def to_record_values(self) -> dict[str, Any]:
        """Return column values for a persisted content cache row."""

        return {
            "external_id": self.external_id,
            "source": self.source,
            "type": self.type,
            "title": self.title,
            "original_title": self.original_title,
            "year": self.year,
            "poster_url": self.poster_url,
            "backdrop_url": self.backdrop_url,
            "overview": self.overview,
            "genres": list(self.genres),
            "rating": self.rating,
            "episode_count": self.episode_count,
            "season_count": self.season_count,
            "status": self.status,
            "raw_data": self.raw_data,
        }


class _TrackingFields(BaseModel):
    model_config = ConfigDict(
        alias_generator=to_camel, populate_by_name=True, extra="ignore"
    )

    rating: float | None = Field(default=None, ge=1, le=10)
    episodes_watched: int | None = Field(default=None, ge=0)
    watched_at: date | None = None
    notes: str | None = None

    @model_validator(mode="after")
    def _reject_explicit_nulls(self):
        for name in ("status", "episodes_watched"):
            if name in self.model_fields_set and getattr(self, name) is None:
                raise ValueError(f"{name} may not be null")
        return self

    def changes(self) -> dict[str, Any]:
        """Return only the tracked fields present in the request."""

        return {
            name: getattr(self, name)
            for name in TRACKED_FIELDS
            if name in self.model_fields_set
        }


class TrackingRequest(_TrackingFields):
    """Body of an "add to library" request."""

    external_id: str = Field(min_length=1, max_length=64)
    source: Source
    type: ItemType
    status: TrackingStatus

    @field_validator("external_id", mode="before")
    @classmethod
    def _coerce_external_id(cls, value: object) -> object:
        if isinstance(value, int) and not isinstance(value, bool):
            return str(value)
        if isinstance(value, str):
            return value.strip()
        return value

    @model_validator(mode="after")
    def _check_source_type(self) -> "TrackingRequest":
        if self.type not in SOURCE_TYPES[self.source]:
            allowed = ", ".join(SOURCE_TYPES[self.source])
            raise ValueError(f"type for source {self.source} must be one of: {allowed}")
        return self

    def initial_values(self) -> dict[str, Any]:
        """Return tracked values for a newly created record."""

        return {
            "status": self.status,
            "rating": self.rating,
            "episodes_watched": self.episodes_watched or 0,
            "watched_at": self.watched_at,
            "notes": self.notes,
        }


class TrackingUpdate(_TrackingFields):
    """Body of a partial tracking update; absent keys are left untouched."""

    status: TrackingStatus | None = None
