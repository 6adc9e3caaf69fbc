"""Freshness rules for cached recommendation lists."""

from __future__ import annotations

from dataclasses import dataclass
from enum import Enum


class Freshness(str, Enum):
    ABSENT = "absent"
    STALE = "stale"
    FRESH = "fresh"
    RECENT = "recent"


@dataclass(frozen=True)
class StalenessPolicy:
    """Decide whether a category fetched at ``last_fetched`` needs a refresh.

    Timestamps are epoch milliseconds. Anything fetched within
    ``recent_window_seconds`` is reported as ``RECENT`` so rapid navigation
    never re-fetches, regardless of the refresh interval.
    """

    refresh_interval_seconds: int = 43_200
    recent_window_seconds: int = 300

    def evaluate(self, last_fetched: int | None, now_ms: int) -> Freshness:
        if last_fetched is None:
            return Freshness.ABSENT
        elapsed_ms = now_ms - last_fetched
        if elapsed_ms < self.recent_window_seconds * 1000:
            return Freshness.RECENT
        if elapsed_ms >= self.refresh_interval_seconds * 1000:
            return Freshness.STALE
        return Freshness.FRESH

    def needs_refresh(self, last_fetched: int | None, now_ms: int) -> bool:
        return self.evaluate(last_fetched, now_ms) in {Freshness.ABSENT, Freshness.STALE}
