"""Unified search across the TMDB and AniList catalogs."""

from __future__ import annotations

import asyncio
import logging
from typing import Awaitable

from ..models import SourceError, UnifiedContent
from .anilist import AniListClient
from .tmdb import TMDBClient

logger = logging.getLogger(__name__)


class SearchService:
    """Fans searches out to the source adapters and resolves single titles."""

    def __init__(self, tmdb_client: TMDBClient, anilist_client: AniListClient):
        self._tmdb = tmdb_client
        self._anilist = anilist_client

    async def search(
        self, query: str, content_type: str = "all", page: int = 1
    ) -> list[UnifiedContent]:
        """Search by free text, optionally restricted to one content type.

        ``all`` queries both sources concurrently and never fails: a source
        that errors contributes no results. Type-scoped searches hit a single
        source and propagate its :class:`SourceError`.
        """

        if not query or not query.strip():
            return []

        if content_type == "all":
            tmdb_results, anilist_results = await asyncio.gather(
                self._lenient("tmdb", self._tmdb.search(query, page)),
                self._lenient("anilist", self._anilist.search(query, page)),
            )
            return [*tmdb_results, *anilist_results]
        if content_type == "movie":
            return await self._tmdb.search_movies(query, page)
        if content_type == "series":
            return await self._tmdb.search_series(query, page)
        if content_type == "anime":
            return await self._anilist.search(query, page)
        raise ValueError(f"Unsupported content type: {content_type}")

    async def resolve_by_id(
        self, source: str, external_id: str, content_type: str | None = None
    ) -> UnifiedContent:
        """Fetch one title fresh from its source."""

        if source == "tmdb":
            return await self._tmdb.get_by_id(external_id, content_type)
        if source == "anilist":
            return await self._anilist.get_by_id(external_id)
        raise ValueError(f"Unsupported source: {source}")

    @staticmethod
    async def _lenient(
        source: str, call: Awaitable[list[UnifiedContent]]
    ) -> list[UnifiedContent]:
        try:
            return await call
        except SourceError as exc:
            logger.warning("%s search failed, continuing without it: %s", source, exc)
            return []
