"""Entry point for the FastAPI-powered Owlist API."""

from __future__ import annotations

import logging
from contextlib import AsyncExitStack, asynccontextmanager
from datetime import datetime, timezone
from typing import Any

import httpx
from fastapi import FastAPI, HTTPException, Request, Response
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse
from pydantic import ValidationError
from sqlalchemy.exc import SQLAlchemyError

from .config import settings
from .database import Database
from .models import (
    ITEM_TYPES,
    SEARCH_TYPES,
    SOURCES,
    TRACKING_STATUSES,
    SourceError,
    TrackingRequest,
    TrackingUpdate,
)
from .services.anilist import AniListClient
from .services.auth import SupabaseAuthClient
from .services.content_cache import ContentCache
from .services.search import SearchService
from .services.tmdb import TMDBClient
from .services.tracking import TrackingService

logging.basicConfig(level=logging.INFO)
logger = logging.getLogger(__name__)

API_VERSION = "1.0.0"

app: FastAPI


@asynccontextmanager
async def lifespan(_: FastAPI):
    exit_stack = AsyncExitStack()
    timeout = httpx.Timeout(settings.http_timeout_seconds)
    tmdb_http_client = await exit_stack.enter_async_context(
        httpx.AsyncClient(base_url=str(settings.tmdb_api_url), timeout=timeout)
    )
    anilist_http_client = await exit_stack.enter_async_context(
        httpx.AsyncClient(base_url=str(settings.anilist_api_url), timeout=timeout)
    )
    auth_client_kwargs: dict[str, Any] = {"timeout": timeout}
    if settings.supabase_url:
        auth_client_kwargs["base_url"] = str(settings.supabase_url)
    auth_http_client = await exit_stack.enter_async_context(
        httpx.AsyncClient(**auth_client_kwargs)
    )
    database = Database(settings.database_url)
    await database.create_all()

    tmdb = TMDBClient(settings, tmdb_http_client)
    # Awaited so that no search is served before genre names are known.
    await tmdb.load_genres()
    anilist = AniListClient(settings, anilist_http_client)
    search_service = SearchService(tmdb, anilist)
    content_cache = ContentCache(database.session_factory)

    app.state.search_service = search_service
    app.state.tracking_service = TrackingService(
        search_service, content_cache, database.session_factory
    )
    app.state.auth_client = SupabaseAuthClient(settings, auth_http_client)
    app.state.database = database

    try:
        yield
    finally:  # pragma: no cover - teardown path exercised at runtime
        await database.dispose()
        await exit_stack.aclose()


def create_app() -> FastAPI:
    fastapi_app = FastAPI(
        title=settings.app_name,
        description="Unified movie, series and anime search with personal tracking",
        version=API_VERSION,
        lifespan=lifespan,
    )

    fastapi_app.add_middleware(
        CORSMiddleware,
        allow_origins=settings.cors_origin_list,
        allow_credentials=True,
        allow_methods=["GET", "POST", "PUT", "PATCH", "DELETE", "OPTIONS"],
        allow_headers=["Content-Type", "Authorization"],
    )

    register_routes(fastapi_app)
    return fastapi_app


def get_search_service(app: FastAPI) -> SearchService:
    service = getattr(app.state, "search_service", None)
    if not isinstance(service, SearchService):
        raise RuntimeError("Search service not initialised")
    return service


def get_tracking_service(app: FastAPI) -> TrackingService:
    service = getattr(app.state, "tracking_service", None)
    if not isinstance(service, TrackingService):
        raise RuntimeError("Tracking service not initialised")
    return service


def get_auth_client(app: FastAPI) -> SupabaseAuthClient:
    client = getattr(app.state, "auth_client", None)
    if not isinstance(client, SupabaseAuthClient):
        raise RuntimeError("Auth client not initialised")
    return client


def register_routes(fastapi_app: FastAPI) -> None:
    async def _require_user(request: Request) -> str:
        header = request.headers.get("authorization") or ""
        scheme, _, token = header.partition(" ")
        token = token.strip()
        if scheme.lower() != "bearer" or not token:
            raise HTTPException(
                status_code=401, detail="Missing or invalid authorization header"
            )
        auth_client = get_auth_client(fastapi_app)
        try:
            user_id = await auth_client.resolve_user_id(token)
        except httpx.HTTPError as exc:
            logger.warning("Token verification failed: %s", exc)
            raise HTTPException(status_code=500, detail="Authentication failed") from exc
        if user_id is None:
            raise HTTPException(status_code=401, detail="Invalid or expired token")
        return user_id

    async def _json_body(request: Request) -> dict[str, Any]:
        try:
            payload = await request.json()
        except ValueError:
            payload = None
        if not isinstance(payload, dict):
            raise HTTPException(status_code=400, detail="Invalid payload")
        return payload

    def _validation_error(exc: ValidationError) -> HTTPException:
        return HTTPException(
            status_code=400,
            detail=exc.errors(include_url=False, include_context=False),
        )

    @fastapi_app.get("/health")
    async def healthcheck() -> dict[str, str]:
        return {
            "status": "ok",
            "timestamp": datetime.now(timezone.utc).isoformat(),
            "version": API_VERSION,
            "service": "owlist-api",
        }

    @fastapi_app.get("/api/search")
    async def search(request: Request) -> JSONResponse:
        params = request.query_params
        query = params.get("q")
        if not query:
            raise HTTPException(status_code=400, detail="Search query is required")
        content_type = params.get("type") or "all"
        if content_type not in SEARCH_TYPES:
            raise HTTPException(
                status_code=400,
                detail="Invalid content type. Must be one of: "
                + ", ".join(SEARCH_TYPES),
            )
        page = _coerce_int(params.get("page"), default=1)
        if page is None or page < 1:
            raise HTTPException(
                status_code=400, detail="Page number must be greater than 0"
            )

        service = get_search_service(fastapi_app)
        try:
            results = await service.search(query, content_type, page)
        except SourceError as exc:
            logger.warning("Search for %r (%s) failed: %s", query, content_type, exc)
            raise HTTPException(
                status_code=500, detail="Failed to search content"
            ) from exc

        return JSONResponse(
            {
                "query": query,
                "type": content_type,
                "page": page,
                "results": [item.to_payload() for item in results],
                "count": len(results),
            }
        )

    @fastapi_app.get("/api/search/{source}/{external_id}")
    async def content_details(
        request: Request, source: str, external_id: str
    ) -> JSONResponse:
        if source not in SOURCES:
            raise HTTPException(
                status_code=400,
                detail="Invalid source. Must be one of: " + ", ".join(SOURCES),
            )
        content_type = request.query_params.get("type") or None
        if content_type is not None and content_type not in ITEM_TYPES:
            raise HTTPException(status_code=400, detail="Invalid content type")

        service = get_search_service(fastapi_app)
        try:
            content = await service.resolve_by_id(source, external_id, content_type)
        except SourceError as exc:
            logger.info("Lookup of %s:%s failed: %s", source, external_id, exc)
            raise HTTPException(status_code=404, detail="Content not found") from exc
        return JSONResponse(content.to_payload())

    @fastapi_app.post("/api/content", status_code=201)
    async def add_content(request: Request) -> JSONResponse:
        user_id = await _require_user(request)
        payload = await _json_body(request)
        try:
            tracking_request = TrackingRequest.model_validate(payload)
        except ValidationError as exc:
            raise _validation_error(exc) from exc

        service = get_tracking_service(fastapi_app)
        try:
            record = await service.add_or_update(user_id, tracking_request)
        except (SourceError, SQLAlchemyError) as exc:
            logger.warning(
                "Adding %s:%s for %s failed: %s",
                tracking_request.source,
                tracking_request.external_id,
                user_id,
                exc,
            )
            raise HTTPException(
                status_code=500, detail="Failed to add content to library"
            ) from exc
        return JSONResponse(record.to_payload(), status_code=201)

    @fastapi_app.get("/api/content")
    async def list_content(request: Request) -> JSONResponse:
        user_id = await _require_user(request)
        status = request.query_params.get("status") or None
        if status is not None and status not in TRACKING_STATUSES:
            raise HTTPException(status_code=400, detail="Invalid status filter")

        service = get_tracking_service(fastapi_app)
        records = await service.list(user_id, status)
        return JSONResponse(
            {
                "userId": user_id,
                "status": status or "all",
                "count": len(records),
                "items": [record.to_payload(include_content=True) for record in records],
            }
        )

    @fastapi_app.put("/api/content/{user_content_id}")
    async def update_content(request: Request, user_content_id: str) -> JSONResponse:
        user_id = await _require_user(request)
        payload = await _json_body(request)
        try:
            update = TrackingUpdate.model_validate(payload)
        except ValidationError as exc:
            raise _validation_error(exc) from exc

        service = get_tracking_service(fastapi_app)
        record = await service.update(user_content_id, user_id, update)
        if record is None:
            raise HTTPException(status_code=404, detail="Content not found")
        return JSONResponse(record.to_payload())

    @fastapi_app.delete("/api/content/{user_content_id}", status_code=204)
    async def delete_content(request: Request, user_content_id: str) -> Response:
        user_id = await _require_user(request)
        service = get_tracking_service(fastapi_app)
        removed = await service.remove(user_content_id, user_id)
        if not removed:
            logger.debug("Nothing to delete for %s owned by %s", user_content_id, user_id)
        return Response(status_code=204)


def _coerce_int(value: Any, *, default: int | None = None) -> int | None:
    try:
        return int(value)
    except (TypeError, ValueError):
        return default


app = create_app()


if __name__ == "__main__":  # pragma: no cover - manual execution
    import uvicorn

    uvicorn.run(
        "app.main:app",
        host=settings.server_host,
        port=settings.server_port,
        reload=settings.environment == "development",
    )
