"""Per-user tracking of watch status against cached content."""

from __future__ import annotations

import logging
from datetime import datetime

from sqlalchemy import delete, select
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker
from sqlalchemy.orm import selectinload

from ..database import dialect_insert
from ..db_models import UserContent
from ..models import TrackingRequest, TrackingUpdate
from .content_cache import ContentCache
from .search import SearchService

logger = logging.getLogger(__name__)


class TrackingService:
    """Creates, lists, updates and removes a user's tracking records."""

    def __init__(
        self,
        search_service: SearchService,
        content_cache: ContentCache,
        session_factory: async_sessionmaker[AsyncSession],
    ):
        self._search = search_service
        self._cache = content_cache
        self._session_factory = session_factory

    async def add_or_update(
        self, user_id: str, request: TrackingRequest
    ) -> UserContent:
        """Track a title for ``user_id``, creating the record on first add.

        The title is fetched fresh from its source and cached before the
        tracking record is upserted. Repeated adds update the existing record
        in place, touching only the fields present in ``request``.
        """

        canonical = await self._search.resolve_by_id(
            request.source, request.external_id, request.type
        )
        content = await self._cache.get_or_create(canonical)

        now = datetime.utcnow()
        async with self._session_factory() as session:
            stmt = dialect_insert(session, UserContent).values(
                user_id=user_id,
                content_id=content.id,
                created_at=now,
                updated_at=now,
                **request.initial_values(),
            )
            changes = {name: stmt.excluded[name] for name in request.changes()}
            changes["updated_at"] = stmt.excluded.updated_at
            stmt = stmt.on_conflict_do_update(
                index_elements=["user_id", "content_id"], set_=changes
            )
            await session.execute(stmt)
            await session.commit()

            result = await session.execute(
                select(UserContent).where(
                    UserContent.user_id == user_id,
                    UserContent.content_id == content.id,
                )
            )
            record = result.scalar_one()
        logger.info(
            "User %s tracked %s:%s as %s",
            user_id,
            request.source,
            request.external_id,
            record.status,
        )
        return record

    async def list(
        self, user_id: str, status: str | None = None
    ) -> list[UserContent]:
        """Return the user's records with content, most recently updated first."""

        stmt = (
            select(UserContent)
            .options(selectinload(UserContent.content))
            .where(UserContent.user_id == user_id)
            .order_by(UserContent.updated_at.desc(), UserContent.id)
        )
        if status:
            stmt = stmt.where(UserContent.status == status)
        async with self._session_factory() as session:
            result = await session.execute(stmt)
            return list(result.scalars().all())

    async def update(
        self, user_content_id: str, user_id: str, update: TrackingUpdate
    ) -> UserContent | None:
        """Apply a partial update; ``None`` when the record is not the user's."""

        async with self._session_factory() as session:
            result = await session.execute(
                select(UserContent).where(
                    UserContent.id == user_content_id,
                    UserContent.user_id == user_id,
                )
            )
            record = result.scalar_one_or_none()
            if record is None:
                return None
            for name, value in update.changes().items():
                setattr(record, name, value)
            record.updated_at = datetime.utcnow()
            await session.commit()
            return record

    async def remove(self, user_content_id: str, user_id: str) -> bool:
        """Delete the user's record; other users' records are never touched."""

        async with self._session_factory() as session:
            result = await session.execute(
                delete(UserContent).where(
                    UserContent.id == user_content_id,
                    UserContent.user_id == user_id,
                )
            )
            await session.commit()
        return bool(result.rowcount)
