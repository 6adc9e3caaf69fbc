from __future__ import annotations

import asyncio
import json

import pytest

from app.database import Database
from app.models import RecommendationCategory, RecommendationItem
from app.services.cache import (
    CacheDecodeError,
    CategoryCache,
    DatabaseStore,
    JsonStore,
    MemoryStore,
)

KEY = "forYouCategories:test-user"


def _category(**overrides: object) -> RecommendationCategory:
    payload: dict[str, object] = {
        "id": "generalPersonalized",
        "title": "Personalized For You",
        "recommendations": [{"title": "Mob Psycho 100", "genres": ["Action"]}],
        "lastFetched": 1_700_000_000_000,
    }
    payload.update(overrides)
    return RecommendationCategory.model_validate(payload)


def test_memory_store_rejects_corrupt_json() -> None:
    store = MemoryStore({KEY: "{not json"})

    with pytest.raises(CacheDecodeError):
        asyncio.run(store.get(KEY))


def test_category_cache_round_trip() -> None:
    store = MemoryStore()
    cache = CategoryCache(store, KEY)
    category = _category()

    async def scenario() -> list[RecommendationCategory]:
        await cache.save([category])
        return await cache.load()

    restored = asyncio.run(scenario())

    assert restored == [category]
    stored = json.loads(store.raw(KEY) or "[]")
    assert stored[0]["recommendations"][0]["title"] == "Mob Psycho 100"
    assert stored[0]["isLoading"] is False


@pytest.mark.parametrize(
    "raw",
    [
        "{corrupt",
        json.dumps({"not": "a list"}),
        json.dumps([{"title": "missing id"}]),
        json.dumps([{"id": "x", "title": "X", "recommendations": "nope"}]),
    ],
)
def test_unreadable_cache_is_discarded(raw: str) -> None:
    store = MemoryStore({KEY: raw})
    cache = CategoryCache(store, KEY)

    restored = asyncio.run(cache.load())

    assert restored == []
    assert store.raw(KEY) is None


def test_restore_clears_loading_flag() -> None:
    store = MemoryStore({KEY: json.dumps([_category(isLoading=True).to_payload()])})

    [restored] = asyncio.run(CategoryCache(store, KEY).load())

    assert restored.is_loading is False
    assert restored.recommendations == [
        RecommendationItem.from_raw({"title": "Mob Psycho 100", "genres": ["Action"]})
    ]


def test_database_store_persists_entries(tmp_path) -> None:
    database = Database(f"sqlite+aiosqlite:///{tmp_path / 'cache.db'}")

    async def scenario() -> tuple[object, object, object]:
        await database.create_all()
        store = DatabaseStore(database.session_factory)
        try:
            await store.set(KEY, [{"id": 1}])
            await store.set(KEY, [{"id": 2}])
            first = await store.get(KEY)
            missing = await store.get("other")
            await store.remove(KEY)
            removed = await store.get(KEY)
        finally:
            await database.dispose()
        return first, missing, removed

    first, missing, removed = asyncio.run(scenario())

    assert first == [{"id": 2}]
    assert missing is None
    assert removed is None


def test_category_cache_over_database(tmp_path) -> None:
    database = Database(f"sqlite+aiosqlite:///{tmp_path / 'categories.db'}")
    category = _category()

    async def scenario() -> list[RecommendationCategory]:
        await database.create_all()
        try:
            cache = CategoryCache(DatabaseStore(database.session_factory), KEY)
            await cache.save([category])
            return await CategoryCache(DatabaseStore(database.session_factory), KEY).load()
        finally:
            await database.dispose()

    assert asyncio.run(scenario()) == [category]


def test_restore_tolerates_oversized_numbers() -> None:
    huge = "1" + "0" * 400
    raw = (
        '[{"id": "generalPersonalized", "title": "Personalized For You", '
        f'"recommendations": [{{"title": "Big", "rating": {huge}}}]}}]'
    )
    store = MemoryStore({KEY: raw})

    [restored] = asyncio.run(CategoryCache(store, KEY).load())

    [item] = restored.recommendations
    assert item.title == "Big"
    assert item.rating is None
    assert item.mood_match_score == 7.0


def test_incomplete_json_store_cannot_be_created() -> None:
    class ReadOnlyStore(JsonStore):
        async def _read(self, key: str) -> str | None:
            return None

    with pytest.raises(TypeError):
        ReadOnlyStore()
