"""Persistent, deduplicated cache of normalized content."""

from __future__ import annotations

import logging

from sqlalchemy import select
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker

from ..database import dialect_insert
from ..db_models import Content
from ..models import UnifiedContent

logger = logging.getLogger(__name__)


class ContentCache:
    """Maps normalized content onto one ``Content`` row per source identity."""

    def __init__(self, session_factory: async_sessionmaker[AsyncSession]):
        self._session_factory = session_factory

    async def get_or_create(self, content: UnifiedContent) -> Content:
        """Return the cached row for ``content``, inserting it on first sight.

        Existing rows are returned untouched. The insert ignores conflicts on
        ``(source, external_id)`` so concurrent first sightings all resolve to
        the single row that won.
        """

        async with self._session_factory() as session:
            existing = await self._find(session, content.source, content.external_id)
            if existing is not None:
                return existing

            stmt = (
                dialect_insert(session, Content)
                .values(**content.to_record_values())
                .on_conflict_do_nothing(index_elements=["source", "external_id"])
            )
            result = await session.execute(stmt)
            await session.commit()
            if result.rowcount:
                logger.info(
                    "Cached %s content %s (%s)",
                    content.source,
                    content.external_id,
                    content.title,
                )

            record = await self._find(session, content.source, content.external_id)
        if record is None:
            raise RuntimeError(
                f"Content {content.source}:{content.external_id} missing after insert"
            )
        return record

    @staticmethod
    async def _find(
        session: AsyncSession, source: str, external_id: str
    ) -> Content | None:
        stmt = select(Content).where(
            Content.source == source, Content.external_id == external_id
        )
        result = await session.execute(stmt)
        return result.scalar_one_or_none()
