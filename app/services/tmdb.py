"""Client and normalizer for The Movie Database (TMDB)."""

from __future__ import annotations

import asyncio
import logging
from typing import Any, Callable, Mapping

import httpx

from ..config import Settings
from ..models import SourceError, UnifiedContent
from ..utils import (
    build_image_url,
    parse_year,
    positive_int,
    round_rating,
    strip_html,
    unique_ordered,
)

logger = logging.getLogger(__name__)

SOURCE = "tmdb"
POSTER_BASE_URL = "https://image.tmdb.org/t/p/w500"
BACKDROP_BASE_URL = "https://image.tmdb.org/t/p/original"

STATUS_MAP: dict[str, str] = {
    "released": "ended",
    "ended": "ended",
    "returning series": "ongoing",
    "canceled": "cancelled",
    "cancelled": "cancelled",
    "in production": "upcoming",
    "post production": "upcoming",
    "planned": "upcoming",
    "rumored": "upcoming",
    "pilot": "upcoming",
}


class TMDBClient:
    """Searches TMDB movies and series and normalizes them."""

    def __init__(self, settings: Settings, http_client: httpx.AsyncClient):
        if not settings.tmdb_api_key:
            raise ValueError("TMDB API key is required when initialising TMDBClient")
        self._settings = settings
        self._client = http_client
        self._genres: dict[int, str] = {}
        self._genres_loaded = False

    @property
    def genres(self) -> Mapping[int, str]:
        return self._genres

    async def load_genres(self) -> None:
        """Populate the genre id lookup from both TMDB genre taxonomies.

        Runs at most once successfully; failures are logged and leave the
        lookup empty so normalized results simply carry no genre names.
        """

        if self._genres_loaded:
            return
        try:
            payloads = await asyncio.gather(
                self._get("/genre/movie/list"),
                self._get("/genre/tv/list"),
            )
        except SourceError as exc:
            logger.warning("Failed to load TMDB genres: %s", exc)
            return

        for payload in payloads:
            genres = payload.get("genres")
            for genre in genres if isinstance(genres, list) else []:
                if not isinstance(genre, dict):
                    continue
                genre_id = genre.get("id")
                name = genre.get("name")
                if isinstance(genre_id, int) and isinstance(name, str) and name:
                    self._genres[genre_id] = name
        self._genres_loaded = True
        logger.info("Loaded %s TMDB genres", len(self._genres))

    async def search(self, query: str, page: int = 1) -> list[UnifiedContent]:
        """Search movies and series together, returning ``[]`` on failure."""

        try:
            payload = await self._get("/search/multi", params=self._search_params(query, page))
            items = [
                item
                for item in self._results(payload)
                if item.get("media_type") in ("movie", "tv")
            ]
        except SourceError as exc:
            logger.warning("TMDB search for %r failed: %s", query, exc)
            return []
        return self._normalize_each(items, self._normalize_multi)

    async def search_movies(self, query: str, page: int = 1) -> list[UnifiedContent]:
        payload = await self._get("/search/movie", params=self._search_params(query, page))
        return self._normalize_each(self._results(payload), self.normalize_movie)

    async def search_series(self, query: str, page: int = 1) -> list[UnifiedContent]:
        payload = await self._get("/search/tv", params=self._search_params(query, page))
        return self._normalize_each(self._results(payload), self.normalize_series)

    async def get_movie(self, tmdb_id: int) -> UnifiedContent:
        return self.normalize_movie(await self._get(f"/movie/{tmdb_id}"))

    async def get_series(self, tmdb_id: int) -> UnifiedContent:
        return self.normalize_series(await self._get(f"/tv/{tmdb_id}"))

    async def get_by_id(
        self, external_id: str, content_type: str | None = None
    ) -> UnifiedContent:
        """Fetch a single title.

        Movie and series ids live in separate TMDB id spaces. Without a type
        hint the movie lookup is tried first and the series lookup second;
        when both fail the series error is raised.
        """

        tmdb_id = self._parse_id(external_id)
        if content_type == "movie":
            return await self.get_movie(tmdb_id)
        if content_type == "series":
            return await self.get_series(tmdb_id)
        if content_type is not None:
            raise SourceError(SOURCE, f"unsupported content type {content_type!r}")

        try:
            return await self.get_movie(tmdb_id)
        except SourceError as exc:
            logger.debug("TMDB movie %s not found, trying series: %s", tmdb_id, exc)
        return await self.get_series(tmdb_id)

    def normalize_movie(self, movie: dict[str, Any]) -> UnifiedContent:
        title = movie.get("title") or movie.get("original_title") or ""
        return UnifiedContent.from_source(
            SOURCE,
            external_id=self._external_id(movie),
            type="movie",
            title=title,
            original_title=movie.get("original_title") or title,
            year=parse_year(movie.get("release_date")),
            poster_url=build_image_url(movie.get("poster_path"), POSTER_BASE_URL),
            backdrop_url=build_image_url(movie.get("backdrop_path"), BACKDROP_BASE_URL),
            overview=strip_html(movie.get("overview")),
            genres=self._genre_names(movie),
            rating=round_rating(movie.get("vote_average")),
            episode_count=None,
            season_count=None,
            status=self._map_status(movie.get("status")),
            raw_data=movie,
        )

    def normalize_series(self, series: dict[str, Any]) -> UnifiedContent:
        title = series.get("name") or series.get("original_name") or ""
        return UnifiedContent.from_source(
            SOURCE,
            external_id=self._external_id(series),
            type="series",
            title=title,
            original_title=series.get("original_name") or title,
            year=parse_year(series.get("first_air_date")),
            poster_url=build_image_url(series.get("poster_path"), POSTER_BASE_URL),
            backdrop_url=build_image_url(series.get("backdrop_path"), BACKDROP_BASE_URL),
            overview=strip_html(series.get("overview")),
            genres=self._genre_names(series),
            rating=round_rating(series.get("vote_average")),
            episode_count=positive_int(series.get("number_of_episodes")),
            season_count=positive_int(series.get("number_of_seasons")),
            status=self._map_status(series.get("status")),
            raw_data=series,
        )

    def _genre_names(self, item: dict[str, Any]) -> list[str]:
        genre_ids = item.get("genre_ids")
        if genre_ids is None:
            genres = item.get("genres")
            genre_ids = [
                genre.get("id")
                for genre in (genres if isinstance(genres, list) else [])
                if isinstance(genre, dict)
            ]
        if not isinstance(genre_ids, list):
            return []
        names = (
            self._genres.get(genre_id)
            for genre_id in genre_ids
            if isinstance(genre_id, int) and not isinstance(genre_id, bool)
        )
        return unique_ordered(name for name in names if name is not None)

    def _normalize_multi(self, item: dict[str, Any]) -> UnifiedContent:
        if item.get("media_type") == "tv":
            return self.normalize_series(item)
        return self.normalize_movie(item)

    def _normalize_each(
        self,
        items: list[dict[str, Any]],
        normalizer: Callable[[dict[str, Any]], UnifiedContent],
    ) -> list[UnifiedContent]:
        """Normalize search results, skipping items that are malformed."""

        results: list[UnifiedContent] = []
        for item in items:
            try:
                results.append(normalizer(item))
            except SourceError as exc:
                logger.warning("Skipping TMDB result %r: %s", item.get("id"), exc)
        return results

    def _search_params(self, query: str, page: int) -> dict[str, Any]:
        return {"query": query, "page": page, "include_adult": "false"}

    async def _get(
        self, path: str, *, params: dict[str, Any] | None = None
    ) -> dict[str, Any]:
        query = {"api_key": self._settings.tmdb_api_key, **(params or {})}
        try:
            response = await self._client.get(path, params=query)
        except httpx.HTTPError as exc:
            raise SourceError(
                SOURCE, f"request to {path} failed: {exc.__class__.__name__}"
            ) from exc
        if response.status_code >= 400:
            logger.warning(
                "TMDB request %s failed (%s): %s",
                path,
                response.status_code,
                response.text,
            )
            raise SourceError(SOURCE, f"{path} returned HTTP {response.status_code}")
        try:
            data = response.json()
        except ValueError as exc:
            raise SourceError(SOURCE, f"{path} returned invalid JSON") from exc
        if not isinstance(data, dict):
            raise SourceError(SOURCE, f"{path} returned an unexpected payload")
        return data

    @staticmethod
    def _results(payload: dict[str, Any]) -> list[dict[str, Any]]:
        results = payload.get("results")
        if not isinstance(results, list):
            raise SourceError(SOURCE, "search payload is missing results")
        return [item for item in results if isinstance(item, dict)]

    @staticmethod
    def _external_id(item: dict[str, Any]) -> str:
        tmdb_id = item.get("id")
        if isinstance(tmdb_id, bool) or not isinstance(tmdb_id, int):
            raise SourceError(SOURCE, "payload is missing a numeric id")
        return str(tmdb_id)

    @staticmethod
    def _parse_id(external_id: str) -> int:
        try:
            return int(str(external_id).strip())
        except ValueError as exc:
            raise SourceError(SOURCE, f"invalid id {external_id!r}") from exc

    @staticmethod
    def _map_status(value: Any) -> str | None:
        if not isinstance(value, str):
            return None
        return STATUS_MAP.get(value.strip().casefold())
