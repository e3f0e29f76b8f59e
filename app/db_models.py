"""SQLAlchemy ORM models backing the persistent state."""

from __future__ import annotations

import uuid
from datetime import date, datetime
from typing import Any

from sqlalchemy import (
    JSON,
    Date,
    DateTime,
    Float,
    ForeignKey,
    Integer,
    String,
    Text,
    UniqueConstraint,
)
from sqlalchemy.orm import Mapped, mapped_column, relationship

from .database import Base


def _new_id() -> str:
    return str(uuid.uuid4())


def _isoformat(value: date | datetime | None) -> str | None:
    return value.isoformat() if value is not None else None


class Content(Base):
    """Shared cache of a normalized title, unique per source identity."""

    __tablename__ = "content"
    __table_args__ = (
        UniqueConstraint("source", "external_id", name="uq_content_source_external"),
    )

    id: Mapped[str] = mapped_column(String(36), primary_key=True, default=_new_id)
    external_id: Mapped[str] = mapped_column(String(64))
    source: Mapped[str] = mapped_column(String(16))
    type: Mapped[str] = mapped_column(String(16))
    title: Mapped[str] = mapped_column(String(512))
    original_title: Mapped[str | None] = mapped_column(String(512), nullable=True)
    year: Mapped[int | None] = mapped_column(Integer, nullable=True)
    poster_url: Mapped[str | None] = mapped_column(String(1024), nullable=True)
    backdrop_url: Mapped[str | None] = mapped_column(String(1024), nullable=True)
    overview: Mapped[str | None] = mapped_column(Text, nullable=True)
    genres: Mapped[list[str]] = mapped_column(JSON, default=list)
    rating: Mapped[float | None] = mapped_column(Float, nullable=True)
    episode_count: Mapped[int | None] = mapped_column(Integer, nullable=True)
    season_count: Mapped[int | None] = mapped_column(Integer, nullable=True)
    status: Mapped[str | None] = mapped_column(String(32), nullable=True)
    raw_data: Mapped[dict[str, Any] | None] = mapped_column(JSON, nullable=True)
    created_at: Mapped[datetime] = mapped_column(
        DateTime, default=datetime.utcnow
    )
    updated_at: Mapped[datetime] = mapped_column(
        DateTime, default=datetime.utcnow, onupdate=datetime.utcnow
    )

    def to_payload(self) -> dict[str, Any]:
        return {
            "id": self.id,
            "external_id": self.external_id,
            "source": self.source,
            "type": self.type,
            "title": self.title,
            "original_title": self.original_title,
            "year": self.year,
            "poster_url": self.poster_url,
            "backdrop_url": self.backdrop_url,
            "overview": self.overview,
            "genres": list(self.genres or []),
            "rating": self.rating,
            "episode_count": self.episode_count,
            "season_count": self.season_count,
            "status": self.status,
            "raw_data": self.raw_data,
            "created_at": _isoformat(self.created_at),
            "updated_at": _isoformat(self.updated_at),
        }


class UserContent(Base):
    """A user's personal tracking state for one cached title."""

    __tablename__ = "user_content"
    __table_args__ = (
        UniqueConstraint("user_id", "content_id", name="uq_user_content"),
    )

    id: Mapped[str] = mapped_column(String(36), primary_key=True, default=_new_id)
    user_id: Mapped[str] = mapped_column(String(64), index=True)
    content_id: Mapped[str] = mapped_column(
        String(36), ForeignKey("content.id", ondelete="CASCADE")
    )
    status: Mapped[str] = mapped_column(String(32))
    rating: Mapped[float | None] = mapped_column(Float, nullable=True)
    episodes_watched: Mapped[int] = mapped_column(Integer, default=0)
    watched_at: Mapped[date | None] = mapped_column(Date, nullable=True)
    notes: Mapped[str | None] = mapped_column(Text, nullable=True)
    created_at: Mapped[datetime] = mapped_column(
        DateTime, default=datetime.utcnow
    )
    updated_at: Mapped[datetime] = mapped_column(
        DateTime, default=datetime.utcnow, onupdate=datetime.utcnow
    )

    content: Mapped[Content] = relationship()

    def to_payload(self, *, include_content: bool = False) -> dict[str, Any]:
        payload: dict[str, Any] = {
            "id": self.id,
            "user_id": self.user_id,
            "content_id": self.content_id,
            "status": self.status,
            "rating": self.rating,
            "episodes_watched": self.episodes_watched,
            "watched_at": _isoformat(self.watched_at),
            "notes": self.notes,
            "created_at": _isoformat(self.created_at),
            "updated_at": _isoformat(self.updated_at),
        }
        if include_content:
            payload["content"] = self.content.to_payload()
        return payload
