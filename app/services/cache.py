"""Key-value persistence for recommendation categories."""

from __future__ import annotations

import json
import logging
from abc import ABC, abstractmethod
from datetime import datetime
from typing import Any, Mapping, Protocol, Sequence

from pydantic import ValidationError
from sqlalchemy import delete
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker

from ..db_models import CacheEntry
from ..models import RecommendationCategory

logger = logging.getLogger(__name__)


class CacheDecodeError(ValueError):
    """Raised when a stored value is not valid JSON."""


class KeyValueStore(Protocol):
    """Async key-value storage with a JSON codec."""

    async def get(self, key: str) -> Any | None: ...

    async def set(self, key: str, value: Any) -> None: ...

    async def remove(self, key: str) -> None: ...


class JsonStore(ABC):
    """Base class encoding values as JSON text around raw string storage."""

    async def get(self, key: str) -> Any | None:
        raw = await self._read(key)
        if raw is None:
            return None
        try:
            return json.loads(raw)
        except json.JSONDecodeError as exc:
            raise CacheDecodeError(f"Corrupt cache entry for {key!r}") from exc

    async def set(self, key: str, value: Any) -> None:
        await self._write(key, json.dumps(value, separators=(",", ":")))

    async def remove(self, key: str) -> None:
        await self._delete(key)

    @abstractmethod
    async def _read(self, key: str) -> str | None: ...

    @abstractmethod
    async def _write(self, key: str, raw: str) -> None: ...

    @abstractmethod
    async def _delete(self, key: str) -> None: ...


class MemoryStore(JsonStore):
    """Process-local store, used for ephemeral runs and tests."""

    def __init__(self, initial: Mapping[str, str] | None = None):
        self._entries: dict[str, str] = dict(initial or {})

    def raw(self, key: str) -> str | None:
        return self._entries.get(key)

    async def _read(self, key: str) -> str | None:
        return self._entries.get(key)

    async def _write(self, key: str, raw: str) -> None:
        self._entries[key] = raw

    async def _delete(self, key: str) -> None:
        self._entries.pop(key, None)


class DatabaseStore(JsonStore):
    """Store backed by the ``cache_entries`` table."""

    def __init__(self, session_factory: async_sessionmaker[AsyncSession]):
        self._session_factory = session_factory

    async def _read(self, key: str) -> str | None:
        async with self._session_factory() as session:
            entry = await session.get(CacheEntry, key)
            return entry.value if entry is not None else None

    async def _write(self, key: str, raw: str) -> None:
        now = datetime.utcnow()
        async with self._session_factory() as session:
            entry = await session.get(CacheEntry, key)
            if entry is None:
                session.add(
                    CacheEntry(key=key, value=raw, created_at=now, updated_at=now)
                )
            else:
                entry.value = raw
                entry.updated_at = now
            await session.commit()

    async def _delete(self, key: str) -> None:
        async with self._session_factory() as session:
            await session.execute(delete(CacheEntry).where(CacheEntry.key == key))
            await session.commit()


class CategoryCache:
    """Serialize the full category list under a single key."""

    def __init__(self, store: KeyValueStore, key: str):
        self._store = store
        self._key = key

    @property
    def key(self) -> str:
        return self._key

    async def load(self) -> list[RecommendationCategory]:
        """Restore categories; unreadable entries are discarded."""

        try:
            payload = await self._store.get(self._key)
        except CacheDecodeError as exc:
            logger.error("Discarding unreadable recommendation cache %s: %s", self._key, exc)
            await self._store.remove(self._key)
            return []
        if payload is None:
            return []
        if not isinstance(payload, list):
            logger.error(
                "Discarding recommendation cache %s with unexpected shape %s",
                self._key,
                type(payload).__name__,
            )
            await self._store.remove(self._key)
            return []

        try:
            categories = [
                RecommendationCategory.model_validate(entry) for entry in payload
            ]
        except (ValidationError, OverflowError) as exc:
            logger.error("Discarding invalid recommendation cache %s: %s", self._key, exc)
            await self._store.remove(self._key)
            return []

        # Nothing is fetching right after a restore.
        return [
            category.model_copy(update={"is_loading": False})
            for category in categories
        ]

    async def save(self, categories: Sequence[RecommendationCategory]) -> None:
        await self._store.set(
            self._key, [category.to_payload() for category in categories]
        )
