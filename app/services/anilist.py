"""Client and normalizer for the AniList GraphQL API."""

from __future__ import annotations

import logging
from typing import Any

import httpx

from ..config import Settings
from ..models import SourceError, UnifiedContent
from ..utils import positive_int, round_rating, strip_html, unique_ordered

logger = logging.getLogger(__name__)

SOURCE = "anilist"

STATUS_MAP: dict[str, str] = {
    "finished": "ended",
    "releasing": "ongoing",
    "not_yet_released": "upcoming",
    "cancelled": "cancelled",
    "hiatus": "hiatus",
}

MEDIA_FIELDS = """
      id
      title {
        romaji
        english
        native
      }
      description
      coverImage {
        large
        extraLarge
      }
      bannerImage
      startDate {
        year
        month
        day
      }
      genres
      averageScore
      episodes
      status
      format
"""

SEARCH_ANIME_QUERY = (
    """
query ($search: String, $page: Int, $perPage: Int) {
  Page(page: $page, perPage: $perPage) {
    pageInfo {
      total
      currentPage
      lastPage
      hasNextPage
      perPage
    }
    media(search: $search, type: ANIME) {"""
    + MEDIA_FIELDS
    + """    }
  }
}
"""
)

GET_ANIME_QUERY = (
    """
query ($id: Int) {
  Media(id: $id, type: ANIME) {"""
    + MEDIA_FIELDS
    + """  }
}
"""
)


class AniListClient:
    """Searches AniList anime and normalizes them.

    Unlike the TMDB search, both operations raise :class:`SourceError` on
    failure; there is no sibling source to fall back on for anime.
    """

    def __init__(self, settings: Settings, http_client: httpx.AsyncClient):
        self._settings = settings
        self._client = http_client

    async def search(
        self, query: str, page: int = 1, per_page: int | None = None
    ) -> list[UnifiedContent]:
        variables = {
            "search": query,
            "page": page,
            "perPage": per_page or self._settings.anilist_page_size,
        }
        data = await self._post(SEARCH_ANIME_QUERY, variables)
        media = _mapping(data.get("Page")).get("media")
        if not isinstance(media, list):
            raise SourceError(SOURCE, "search payload is missing media")
        results: list[UnifiedContent] = []
        for item in media:
            if not isinstance(item, dict):
                continue
            try:
                results.append(self.normalize_anime(item))
            except SourceError as exc:
                logger.warning("Skipping AniList result %r: %s", item.get("id"), exc)
        return results

    async def get_by_id(self, external_id: str) -> UnifiedContent:
        try:
            anilist_id = int(str(external_id).strip())
        except ValueError as exc:
            raise SourceError(SOURCE, f"invalid id {external_id!r}") from exc
        data = await self._post(GET_ANIME_QUERY, {"id": anilist_id})
        media = data.get("Media")
        if not isinstance(media, dict):
            raise SourceError(SOURCE, f"anime {anilist_id} not found")
        return self.normalize_anime(media)

    def normalize_anime(self, anime: dict[str, Any]) -> UnifiedContent:
        anilist_id = anime.get("id")
        if isinstance(anilist_id, bool) or not isinstance(anilist_id, int):
            raise SourceError(SOURCE, "payload is missing a numeric id")

        titles = _mapping(anime.get("title"))
        romaji = titles.get("romaji") or ""
        cover = _mapping(anime.get("coverImage"))
        start = _mapping(anime.get("startDate"))
        raw_genres = anime.get("genres")
        genres = [
            genre
            for genre in (raw_genres if isinstance(raw_genres, list) else [])
            if isinstance(genre, str)
        ]

        return UnifiedContent.from_source(
            SOURCE,
            external_id=str(anilist_id),
            type="anime",
            title=titles.get("english") or romaji,
            original_title=titles.get("native") or romaji,
            year=positive_int(start.get("year")),
            poster_url=cover.get("extraLarge") or cover.get("large") or None,
            backdrop_url=anime.get("bannerImage") or None,
            overview=strip_html(anime.get("description")),
            genres=unique_ordered(genres),
            rating=round_rating(anime.get("averageScore"), scale=10),
            episode_count=positive_int(anime.get("episodes")),
            season_count=None,
            status=self._map_status(anime.get("status")),
            raw_data=anime,
        )

    async def _post(self, query: str, variables: dict[str, Any]) -> dict[str, Any]:
        try:
            response = await self._client.post(
                "",
                json={"query": query, "variables": variables},
                headers={"Content-Type": "application/json", "Accept": "application/json"},
            )
        except httpx.HTTPError as exc:
            raise SourceError(
                SOURCE, f"request failed: {exc.__class__.__name__}"
            ) from exc
        if response.status_code >= 400:
            logger.warning(
                "AniList request failed (%s): %s", response.status_code, response.text
            )
            raise SourceError(SOURCE, f"HTTP {response.status_code}")
        try:
            payload = response.json()
        except ValueError as exc:
            raise SourceError(SOURCE, "invalid JSON response") from exc
        if not isinstance(payload, dict):
            raise SourceError(SOURCE, "unexpected response payload")
        if payload.get("errors"):
            logger.warning("AniList returned errors: %s", payload["errors"])
            raise SourceError(SOURCE, "query returned errors")
        data = payload.get("data")
        if not isinstance(data, dict):
            raise SourceError(SOURCE, "response is missing data")
        return data

    @staticmethod
    def _map_status(value: Any) -> str | None:
        if not isinstance(value, str):
            return None
        return STATUS_MAP.get(value.strip().casefold())


def _mapping(value: Any) -> dict[str, Any]:
    return value if isinstance(value, dict) else {}
