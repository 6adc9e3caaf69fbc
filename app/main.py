"""Entry point for the FastAPI-powered recommendation service."""

from __future__ import annotations

import logging
from contextlib import AsyncExitStack, asynccontextmanager
from typing import Any

import httpx
from fastapi import FastAPI, HTTPException
from fastapi.middleware.cors import CORSMiddleware
from pydantic import BaseModel

from .config import settings
from .database import Database
from .models import UserProfile, ViewName, WatchlistActivityItem
from .services.cache import DatabaseStore, KeyValueStore, MemoryStore
from .services.openai import OpenAIRecommendationClient
from .services.recommendations import RecommendationCoordinator
from .services.sessions import CoordinatorRegistry

logging.basicConfig(level=logging.INFO)
logger = logging.getLogger(__name__)

app: FastAPI


class ViewChange(BaseModel):
    view: ViewName


@asynccontextmanager
async def lifespan(fastapi_app: FastAPI):
    exit_stack = AsyncExitStack()
    openai_http_client = await exit_stack.enter_async_context(
        httpx.AsyncClient(
            base_url=str(settings.openai_api_url),
            timeout=httpx.Timeout(60.0, connect=10.0),
        )
    )

    database: Database | None = None
    store: KeyValueStore
    if settings.cache_backend == "database":
        database = Database(settings.database_url)
        await database.create_all()
        store = DatabaseStore(database.session_factory)
    else:
        store = MemoryStore()

    client = OpenAIRecommendationClient(settings, openai_http_client)
    if not settings.openai_api_key:
        logger.warning("OPENAI_API_KEY is not set; recommendations will be empty")
    registry = CoordinatorRegistry(
        settings, client.get_personalized_recommendations, store
    )

    fastapi_app.state.registry = registry
    fastapi_app.state.database = database

    try:
        yield
    finally:  # pragma: no cover - teardown path exercised at runtime
        await registry.close()
        if database is not None:
            await database.dispose()
        await exit_stack.aclose()


def create_app() -> FastAPI:
    fastapi_app = FastAPI(
        title=settings.app_name,
        description="AI-personalized anime recommendations with cached refreshes",
        version="1.0.0",
        lifespan=lifespan,
    )

    fastapi_app.add_middleware(
        CORSMiddleware,
        allow_origins=["*"],
        allow_methods=["GET", "POST", "PUT"],
        allow_headers=["*"],
    )

    register_routes(fastapi_app)
    return fastapi_app


def get_registry(fastapi_app: FastAPI) -> CoordinatorRegistry:
    registry = getattr(fastapi_app.state, "registry", None)
    if not isinstance(registry, CoordinatorRegistry):
        raise RuntimeError("Coordinator registry not initialised")
    return registry


def _snapshot(user_id: str, coordinator: RecommendationCoordinator) -> dict[str, Any]:
    outcome = coordinator.last_outcome
    return {
        "userId": user_id,
        "state": coordinator.state.value,
        "view": coordinator.view,
        "fetchInProgress": coordinator.fetch_in_progress,
        "lastOutcome": outcome.to_payload() if outcome else None,
        "categories": [category.to_payload() for category in coordinator.categories],
    }


def register_routes(fastapi_app: FastAPI) -> None:
    async def _coordinator(user_id: str) -> RecommendationCoordinator:
        registry = get_registry(fastapi_app)
        try:
            return await registry.get(user_id)
        except ValueError as exc:
            raise HTTPException(status_code=400, detail=str(exc)) from exc

    @fastapi_app.get("/healthz")
    async def healthcheck() -> dict[str, str]:
        return {"status": "ok"}

    @fastapi_app.put("/users/{user_id}/profile")
    async def update_profile(user_id: str, profile: UserProfile) -> dict[str, Any]:
        coordinator = await _coordinator(user_id)
        coordinator.update_profile(profile)
        return _snapshot(user_id, coordinator)

    @fastapi_app.put("/users/{user_id}/watchlist")
    async def update_watchlist(
        user_id: str, activity: list[WatchlistActivityItem]
    ) -> dict[str, Any]:
        coordinator = await _coordinator(user_id)
        coordinator.update_watchlist(activity)
        return _snapshot(user_id, coordinator)

    @fastapi_app.post("/users/{user_id}/view")
    async def change_view(user_id: str, change: ViewChange) -> dict[str, Any]:
        coordinator = await _coordinator(user_id)
        coordinator.navigate(change.view)
        return _snapshot(user_id, coordinator)

    @fastapi_app.get("/users/{user_id}/recommendations")
    async def list_recommendations(user_id: str) -> dict[str, Any]:
        coordinator = await _coordinator(user_id)
        return _snapshot(user_id, coordinator)

    @fastapi_app.post("/users/{user_id}/recommendations/refresh")
    async def refresh_recommendations(user_id: str) -> dict[str, Any]:
        coordinator = await _coordinator(user_id)
        outcome = await coordinator.refresh()
        payload = _snapshot(user_id, coordinator)
        payload["outcome"] = outcome.to_payload()
        return payload

    @fastapi_app.get("/users/{user_id}/notifications")
    async def drain_notifications(user_id: str) -> dict[str, Any]:
        coordinator = await _coordinator(user_id)
        return {
            "notifications": [
                notification.to_payload()
                for notification in coordinator.notifier.drain()
            ]
        }


app = create_app()
