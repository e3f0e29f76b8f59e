"""Tests for the unified search aggregator."""

from __future__ import annotations

import asyncio

import httpx
import pytest

from app.config import Settings
from app.models import SourceError, UnifiedContent
from app.services.anilist import AniListClient
from app.services.search import SearchService
from app.services.tmdb import TMDBClient


def make_content(source: str, external_id: str, content_type: str) -> UnifiedContent:
    return UnifiedContent(
        external_id=external_id,
        source=source,
        type=content_type,
        title=f"{source} {external_id}",
        original_title=f"{source} {external_id}",
    )


class FakeTMDB(TMDBClient):
    """TMDB stub recording calls without touching the network."""

    def __init__(self, *, fail: bool = False) -> None:
        # Deliberately skip super().__init__ to avoid requiring settings.
        self.fail = fail
        self.calls: list[tuple[str, tuple]] = []
        self.started = asyncio.Event()
        self.wait_for: asyncio.Event | None = None

    async def search(self, query: str, page: int = 1) -> list[UnifiedContent]:  # type: ignore[override]
        self.calls.append(("search", (query, page)))
        self.started.set()
        if self.wait_for is not None:
            await asyncio.wait_for(self.wait_for.wait(), timeout=1)
        if self.fail:
            return []
        return [make_content("tmdb", "1", "movie"), make_content("tmdb", "2", "series")]

    async def search_movies(self, query: str, page: int = 1) -> list[UnifiedContent]:  # type: ignore[override]
        self.calls.append(("search_movies", (query, page)))
        if self.fail:
            raise SourceError("tmdb", "down")
        return [make_content("tmdb", "1", "movie")]

    async def search_series(self, query: str, page: int = 1) -> list[UnifiedContent]:  # type: ignore[override]
        self.calls.append(("search_series", (query, page)))
        if self.fail:
            raise SourceError("tmdb", "down")
        return [make_content("tmdb", "2", "series")]

    async def get_by_id(self, external_id: str, content_type: str | None = None) -> UnifiedContent:  # type: ignore[override]
        self.calls.append(("get_by_id", (external_id, content_type)))
        return make_content("tmdb", external_id, content_type or "series")


class FakeAniList(AniListClient):
    def __init__(self, *, fail: bool = False) -> None:
        self.fail = fail
        self.calls: list[tuple[str, tuple]] = []
        self.started = asyncio.Event()
        self.wait_for: asyncio.Event | None = None

    async def search(self, query: str, page: int = 1, per_page: int | None = None) -> list[UnifiedContent]:  # type: ignore[override]
        self.calls.append(("search", (query, page)))
        self.started.set()
        if self.wait_for is not None:
            await asyncio.wait_for(self.wait_for.wait(), timeout=1)
        if self.fail:
            raise SourceError("anilist", "unreachable")
        return [make_content("anilist", "10", "anime")]

    async def get_by_id(self, external_id: str) -> UnifiedContent:  # type: ignore[override]
        self.calls.append(("get_by_id", (external_id,)))
        return make_content("anilist", external_id, "anime")


def test_blank_query_short_circuits() -> None:
    tmdb, anilist = FakeTMDB(), FakeAniList()
    service = SearchService(tmdb, anilist)

    assert asyncio.run(service.search("   ")) == []
    assert asyncio.run(service.search("")) == []
    assert tmdb.calls == [] and anilist.calls == []


def test_search_all_concatenates_tmdb_first() -> None:
    service = SearchService(FakeTMDB(), FakeAniList())

    results = asyncio.run(service.search("titan", "all", 2))

    assert [(item.source, item.external_id) for item in results] == [
        ("tmdb", "1"),
        ("tmdb", "2"),
        ("anilist", "10"),
    ]


def test_search_all_survives_anilist_outage() -> None:
    service = SearchService(FakeTMDB(), FakeAniList(fail=True))

    results = asyncio.run(service.search("titan"))

    assert [item.source for item in results] == ["tmdb", "tmdb"]


def test_search_all_survives_both_sources_failing() -> None:
    service = SearchService(FakeTMDB(fail=True), FakeAniList(fail=True))

    assert asyncio.run(service.search("titan")) == []


def test_search_all_runs_sources_concurrently() -> None:
    """Each source waits for the other to start, which only works in parallel."""

    async def runner() -> list[UnifiedContent]:
        tmdb, anilist = FakeTMDB(), FakeAniList()
        tmdb.wait_for = anilist.started
        anilist.wait_for = tmdb.started
        return await SearchService(tmdb, anilist).search("titan")

    assert len(asyncio.run(runner())) == 3


def test_typed_searches_route_to_single_source() -> None:
    tmdb, anilist = FakeTMDB(), FakeAniList()
    service = SearchService(tmdb, anilist)

    movies = asyncio.run(service.search("x", "movie"))
    series = asyncio.run(service.search("x", "series"))
    anime = asyncio.run(service.search("x", "anime"))

    assert [item.type for item in movies] == ["movie"]
    assert [item.type for item in series] == ["series"]
    assert [item.type for item in anime] == ["anime"]
    assert [name for name, _ in tmdb.calls] == ["search_movies", "search_series"]
    assert [name for name, _ in anilist.calls] == ["search"]


def test_typed_searches_propagate_errors() -> None:
    service = SearchService(FakeTMDB(fail=True), FakeAniList(fail=True))

    with pytest.raises(SourceError):
        asyncio.run(service.search("x", "movie"))
    with pytest.raises(SourceError):
        asyncio.run(service.search("x", "anime"))


def test_unknown_search_type_is_rejected() -> None:
    service = SearchService(FakeTMDB(), FakeAniList())

    with pytest.raises(ValueError):
        asyncio.run(service.search("x", "podcast"))


def test_resolve_by_id_routes_by_source() -> None:
    tmdb, anilist = FakeTMDB(), FakeAniList()
    service = SearchService(tmdb, anilist)

    series = asyncio.run(service.resolve_by_id("tmdb", "1399"))
    anime = asyncio.run(service.resolve_by_id("anilist", "16498", "anime"))

    assert tmdb.calls == [("get_by_id", ("1399", None))]
    assert anilist.calls == [("get_by_id", ("16498",))]
    assert series.source == "tmdb"
    assert anime.source == "anilist"

    with pytest.raises(ValueError):
        asyncio.run(service.resolve_by_id("imdb", "tt1"))


MALFORMED_TMDB_ITEMS = [
    {"id": 2, "media_type": "movie", "title": "Bad overview", "overview": 12},
    {"id": 3, "media_type": "movie", "title": 404},
    {"id": 4, "media_type": "tv", "name": "Bad genres", "genre_ids": [[18]]},
    {"media_type": "movie", "title": "No id"},
]

MALFORMED_ANILIST_ITEMS = [
    {"id": 20, "title": "Flat title string"},
    {"id": 21, "title": {"english": "Bad cover"}, "coverImage": {"extraLarge": 5}},
    {"id": 22, "title": {"romaji": "Bad description"}, "description": ["<b>x</b>"]},
]


def build_real_service() -> tuple[httpx.AsyncClient, httpx.AsyncClient, SearchService]:
    def tmdb_handler(request: httpx.Request) -> httpx.Response:
        return httpx.Response(
            200,
            json={
                "results": [
                    {"id": 1, "media_type": "movie", "title": "Good movie"},
                    *MALFORMED_TMDB_ITEMS,
                ]
            },
        )

    def anilist_handler(request: httpx.Request) -> httpx.Response:
        media = [{"id": 10, "title": {"romaji": "Good anime"}}, *MALFORMED_ANILIST_ITEMS]
        return httpx.Response(200, json={"data": {"Page": {"media": media}}})

    settings = Settings(_env_file=None, TMDB_API_KEY="tmdb-key")
    tmdb_http = httpx.AsyncClient(
        transport=httpx.MockTransport(tmdb_handler), base_url="https://api.themoviedb.org/3"
    )
    anilist_http = httpx.AsyncClient(
        transport=httpx.MockTransport(anilist_handler), base_url="https://graphql.anilist.co"
    )
    service = SearchService(
        TMDBClient(settings, tmdb_http), AniListClient(settings, anilist_http)
    )
    return tmdb_http, anilist_http, service


def test_search_all_skips_malformed_upstream_items() -> None:
    """Badly shaped items are dropped one by one; the rest of each page survives."""

    async def runner() -> list[UnifiedContent]:
        tmdb_http, anilist_http, service = build_real_service()
        async with tmdb_http, anilist_http:
            return await service.search("x", "all")

    results = asyncio.run(runner())

    assert [(item.source, item.external_id) for item in results] == [
        ("tmdb", "1"),
        ("tmdb", "2"),
        ("tmdb", "4"),
        ("anilist", "10"),
        ("anilist", "22"),
    ]
    assert results[1].overview == ""
    assert results[2].genres == []
    assert results[4].overview == ""


def test_typed_search_skips_malformed_upstream_items() -> None:
    async def runner() -> list[UnifiedContent]:
        tmdb_http, anilist_http, service = build_real_service()
        async with tmdb_http, anilist_http:
            return await service.search("x", "anime")

    assert [item.external_id for item in asyncio.run(runner())] == ["10", "22"]
