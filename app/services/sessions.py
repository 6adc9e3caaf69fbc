"""Per-user coordinator management."""

from __future__ import annotations

import asyncio
import logging
import time
from typing import Callable

from ..config import Settings
from .cache import CategoryCache, KeyValueStore
from .recommendations import RecommendationCoordinator, RecommendationFetcher

logger = logging.getLogger(__name__)


class CoordinatorRegistry:
    """Create, start and dispose one coordinator per user id."""

    def __init__(
        self,
        settings: Settings,
        fetcher: RecommendationFetcher,
        store: KeyValueStore,
        *,
        clock: Callable[[], float] = time.time,
    ):
        self._settings = settings
        self._fetcher = fetcher
        self._store = store
        self._clock = clock
        self._coordinators: dict[str, RecommendationCoordinator] = {}
        self._lock = asyncio.Lock()

    def cache_key(self, user_id: str) -> str:
        return f"{self._settings.cache_key}:{user_id}"

    async def get(self, user_id: str) -> RecommendationCoordinator:
        """Return the running coordinator for ``user_id``, starting it if needed."""

        cleaned = user_id.strip()
        if not cleaned:
            raise ValueError("User id must not be blank")

        existing = self._coordinators.get(cleaned)
        if existing is not None:
            return existing
        async with self._lock:
            existing = self._coordinators.get(cleaned)
            if existing is not None:
                return existing
            coordinator = RecommendationCoordinator.from_settings(
                self._settings,
                self._fetcher,
                CategoryCache(self._store, self.cache_key(cleaned)),
                clock=self._clock,
                user_id=cleaned,
            )
            await coordinator.start()
            self._coordinators[cleaned] = coordinator
            logger.info("Started recommendation coordinator for %s", cleaned)
            return coordinator

    def __contains__(self, user_id: object) -> bool:
        return user_id in self._coordinators

    def __len__(self) -> int:
        return len(self._coordinators)

    async def close(self) -> None:
        """Dispose every coordinator and wait for refreshes already running."""

        coordinators = list(self._coordinators.values())
        self._coordinators.clear()
        for coordinator in coordinators:
            await coordinator.dispose()
        for coordinator in coordinators:
            await coordinator.join()
