from __future__ import annotations

from fastapi import FastAPI
from fastapi.testclient import TestClient

from app.config import Settings
from app.main import register_routes
from app.models import RecommendationResult
from app.services.cache import MemoryStore
from app.services.sessions import CoordinatorRegistry


class StaticFetcher:
    def __init__(self) -> None:
        self.calls = 0

    async def __call__(self, *, user_profile, watchlist_activity, count, message_id):
        self.calls += 1
        return RecommendationResult(
            recommendations=[{"title": "Frieren", "genres": ["Fantasy"], "rating": 9.1}]
        )


def _build_app(fetcher: StaticFetcher, store: MemoryStore | None = None) -> FastAPI:
    app = FastAPI()
    register_routes(app)
    app.state.registry = CoordinatorRegistry(
        Settings(_env_file=None, DEBOUNCE_SECONDS=0, CACHE_BACKEND="memory"),
        fetcher,
        store or MemoryStore(),
    )
    return app


def test_healthcheck() -> None:
    with TestClient(_build_app(StaticFetcher())) as client:
        response = client.get("/healthz")

    assert response.json() == {"status": "ok"}


def test_manual_refresh_returns_outcome_and_categories() -> None:
    fetcher = StaticFetcher()
    store = MemoryStore()

    with TestClient(_build_app(fetcher, store)) as client:
        client.post("/users/rin/view", json={"view": "browse"})
        response = client.put(
            "/users/rin/profile",
            json={"name": "Rin", "onboardingCompleted": True, "genres": ["Fantasy"]},
        )
        assert response.status_code == 200
        response = client.post("/users/rin/recommendations/refresh")
        notifications = client.get("/users/rin/notifications").json()
        empty = client.get("/users/rin/notifications").json()

    assert response.status_code == 200
    payload = response.json()
    assert payload["outcome"] == {"status": "success", "count": 1, "message": ""}
    [category] = payload["categories"]
    assert category["id"] == "generalPersonalized"
    assert category["recommendations"][0]["title"] == "Frieren"
    assert category["recommendations"][0]["moodMatchScore"] == 9.1
    assert fetcher.calls == 1
    assert store.raw("forYouCategories:rin") is not None
    assert [note["message"] for note in notifications["notifications"]] == [
        "Updated with 1 fresh recommendations!"
    ]
    assert empty == {"notifications": []}


def test_recommendations_snapshot_for_new_user() -> None:
    with TestClient(_build_app(StaticFetcher())) as client:
        response = client.get("/users/new-user/recommendations")

    payload = response.json()
    assert payload["userId"] == "new-user"
    assert payload["categories"] == []
    assert payload["view"] == "dashboard"
    assert payload["lastOutcome"] is None


def test_unknown_view_is_rejected() -> None:
    with TestClient(_build_app(StaticFetcher())) as client:
        response = client.post("/users/rin/view", json={"view": "nowhere"})

    assert response.status_code == 422


def test_blank_user_id_is_rejected() -> None:
    with TestClient(_build_app(StaticFetcher())) as client:
        response = client.get("/users/%20/recommendations")

    assert response.status_code == 400


def test_watchlist_update_is_accepted() -> None:
    with TestClient(_build_app(StaticFetcher())) as client:
        response = client.put(
            "/users/rin/watchlist",
            json=[{"animeTitle": "Frieren", "status": "Completed", "userRating": 9}],
        )

    assert response.status_code == 200
