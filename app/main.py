"""Entry point for the FastAPI host exposing the recommendation tray."""

from __future__ import annotations

import logging
from contextlib import AsyncExitStack, asynccontextmanager
from typing import Any

import httpx
from fastapi import FastAPI, HTTPException, Query, Request
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse
from pydantic import ValidationError

from .config import Settings, settings
from .controller import TrayController, TrayView, parse_command
from .database import Database
from .pagination import PAGE_SIZE_OPTIONS, DEFAULT_PAGE_SIZE, paginate
from .services.anilist import AniListClient, AniListProvider
from .services.cache import RecommendationCache
from .services.engine import RecommendationEngine
from .services.reconciler import IdReconciler
from .services.sprout import SproutProvider
from .storage import DatabaseStore, KeyValueStore

logging.basicConfig(level=settings.log_level)
logger = logging.getLogger(__name__)

app: FastAPI


def build_engine(
    config: Settings,
    store: KeyValueStore,
    anilist_http: httpx.AsyncClient,
    sprout_http: httpx.AsyncClient,
) -> RecommendationEngine:
    """Wire the recommendation engine from its collaborators."""

    anilist = AniListClient(config, anilist_http)
    return RecommendationEngine(
        store,
        anilist,
        AniListProvider(anilist),
        SproutProvider(sprout_http, config.anilist_username),
        IdReconciler(anilist),
        RecommendationCache(store),
        username=config.anilist_username,
    )


@asynccontextmanager
async def lifespan(fastapi_app: FastAPI):
    exit_stack = AsyncExitStack()
    timeout = httpx.Timeout(settings.http_timeout_seconds, connect=10.0)
    anilist_http = await exit_stack.enter_async_context(
        httpx.AsyncClient(base_url=str(settings.anilist_api_url), timeout=timeout)
    )
    sprout_http = await exit_stack.enter_async_context(
        httpx.AsyncClient(base_url=str(settings.sprout_api_url), timeout=timeout)
    )
    database = Database(settings.database_url)
    await database.create_all()

    engine = build_engine(
        settings, DatabaseStore(database.session_factory), anilist_http, sprout_http
    )
    fastapi_app.state.engine = engine
    fastapi_app.state.controller = TrayController(engine)
    fastapi_app.state.database = database
    if not settings.anilist_username:
        logger.warning("ANILIST_USERNAME is not set; recommendations cannot be fetched")

    try:
        yield
    finally:  # pragma: no cover - teardown path exercised at runtime
        await database.dispose()
        await exit_stack.aclose()


def create_app() -> FastAPI:
    fastapi_app = FastAPI(
        title=settings.app_name,
        description="Anime recommendations picked from your AniList history",
        version="1.0.0",
        lifespan=lifespan,
    )

    fastapi_app.add_middleware(
        CORSMiddleware,
        allow_origins=["*"],
        allow_methods=["GET", "POST"],
        allow_headers=["*"],
    )

    register_routes(fastapi_app)
    return fastapi_app


def get_controller(fastapi_app: FastAPI) -> TrayController:
    controller = getattr(fastapi_app.state, "controller", None)
    if not isinstance(controller, TrayController):
        raise RuntimeError("Tray controller not initialised")
    return controller


def get_engine(fastapi_app: FastAPI) -> RecommendationEngine:
    engine = getattr(fastapi_app.state, "engine", None)
    if not isinstance(engine, RecommendationEngine):
        raise RuntimeError("Recommendation engine not initialised")
    return engine


def _view_response(view: TrayView) -> JSONResponse:
    return JSONResponse(view.model_dump(mode="json", by_alias=True))


def register_routes(fastapi_app: FastAPI) -> None:
    @fastapi_app.get("/healthz")
    async def healthcheck() -> dict[str, str]:
        return {"status": "ok"}

    @fastapi_app.get("/api/tray")
    async def tray_view() -> JSONResponse:
        return _view_response(get_controller(fastapi_app).view())

    @fastapi_app.post("/api/tray/commands")
    async def tray_command(request: Request) -> JSONResponse:
        try:
            payload: Any = await request.json()
        except ValueError as exc:
            raise HTTPException(status_code=400, detail="Body must be JSON") from exc
        try:
            command = parse_command(payload)
        except ValidationError as exc:
            raise HTTPException(status_code=400, detail=exc.errors()) from exc

        controller = get_controller(fastapi_app)
        try:
            view = await controller.dispatch(command)
        except ValueError as exc:
            raise HTTPException(status_code=400, detail=str(exc)) from exc
        return _view_response(view)

    @fastapi_app.get("/api/recommendations")
    async def recommendations(
        page: int = Query(default=1, ge=1),
        page_size: int = Query(default=DEFAULT_PAGE_SIZE, alias="pageSize"),
        genre: str | None = Query(default=None),
    ) -> JSONResponse:
        if page_size not in PAGE_SIZE_OPTIONS:
            raise HTTPException(
                status_code=400,
                detail=f"pageSize must be one of {', '.join(map(str, PAGE_SIZE_OPTIONS))}",
            )
        result = await get_engine(fastapi_app).run()
        window = paginate(result.items, page_size, page, genre)
        return JSONResponse(
            {
                "setupRequired": result.setup_required,
                "fromCache": result.from_cache,
                "error": result.error,
                "page": page,
                "pageSize": page_size,
                "totalPages": window.total_pages,
                "items": [
                    item.model_dump(mode="json", by_alias=True)
                    for item in window.visible
                ],
            }
        )


app = create_app()
