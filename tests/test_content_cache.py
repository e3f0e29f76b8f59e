"""Tests for the persistent content cache."""

from __future__ import annotations

import asyncio

from sqlalchemy import func, select

from app.database import Database
from app.db_models import Content
from app.models import UnifiedContent
from app.services.content_cache import ContentCache


def make_content(**overrides: object) -> UnifiedContent:
    data: dict[str, object] = {
        "external_id": "603",
        "source": "tmdb",
        "type": "movie",
        "title": "The Matrix",
        "original_title": "The Matrix",
        "year": 1999,
        "poster_url": "https://image.tmdb.org/t/p/w500/matrix.jpg",
        "backdrop_url": None,
        "overview": "A hacker learns the truth.",
        "genres": ["Action", "Science Fiction"],
        "rating": 8.2,
        "status": "ended",
        "raw_data": {"id": 603, "title": "The Matrix"},
    }
    data.update(overrides)
    return UnifiedContent(**data)


async def _count_rows(database: Database) -> int:
    async with database.session() as session:
        result = await session.execute(select(func.count()).select_from(Content))
        return result.scalar_one()


def test_get_or_create_inserts_every_field(tmp_path) -> None:
    async def runner() -> None:
        database = Database(f"sqlite+aiosqlite:///{tmp_path / 'cache.db'}")
        await database.create_all()
        cache = ContentCache(database.session_factory)

        record = await cache.get_or_create(make_content())

        assert record.id
        assert record.source == "tmdb"
        assert record.external_id == "603"
        assert record.title == "The Matrix"
        assert record.year == 1999
        assert record.genres == ["Action", "Science Fiction"]
        assert record.rating == 8.2
        assert record.status == "ended"
        assert record.raw_data == {"id": 603, "title": "The Matrix"}
        assert record.created_at is not None

        payload = record.to_payload()
        assert payload["poster_url"] == "https://image.tmdb.org/t/p/w500/matrix.jpg"
        assert payload["season_count"] is None

        await database.dispose()

    asyncio.run(runner())


def test_get_or_create_is_idempotent(tmp_path) -> None:
    """Repeated sightings reuse the cached row without refreshing it."""

    async def runner() -> None:
        database = Database(f"sqlite+aiosqlite:///{tmp_path / 'idempotent.db'}")
        await database.create_all()
        cache = ContentCache(database.session_factory)

        first = await cache.get_or_create(make_content())
        second = await cache.get_or_create(make_content(title="The Matrix (Remastered)"))

        assert first.id == second.id
        assert second.title == "The Matrix"
        assert await _count_rows(database) == 1

        await database.dispose()

    asyncio.run(runner())


def test_same_external_id_from_other_source_is_distinct(tmp_path) -> None:
    async def runner() -> None:
        database = Database(f"sqlite+aiosqlite:///{tmp_path / 'sources.db'}")
        await database.create_all()
        cache = ContentCache(database.session_factory)

        tmdb_record = await cache.get_or_create(make_content())
        anilist_record = await cache.get_or_create(
            make_content(source="anilist", type="anime", title="Other")
        )

        assert tmdb_record.id != anilist_record.id
        assert anilist_record.source == "anilist"
        assert anilist_record.title == "Other"
        assert await _count_rows(database) == 2

        again = await cache.get_or_create(make_content(source="anilist", type="anime"))
        assert again.id == anilist_record.id

        await database.dispose()

    asyncio.run(runner())


def test_concurrent_first_sightings_create_one_row(tmp_path) -> None:
    async def runner() -> None:
        database = Database(f"sqlite+aiosqlite:///{tmp_path / 'race.db'}")
        await database.create_all()
        cache = ContentCache(database.session_factory)

        records = await asyncio.gather(
            *(cache.get_or_create(make_content(external_id="777")) for _ in range(5))
        )

        assert len({record.id for record in records}) == 1
        assert await _count_rows(database) == 1

        await database.dispose()

    asyncio.run(runner())
