"""Fetch, cache and refresh personalized recommendations for one user."""

from __future__ import annotations

import logging
import time
from dataclasses import dataclass
from enum import Enum
from typing import Any, Callable, Iterable, Mapping, Protocol, Sequence

from ..config import Settings
from ..models import (
    PERSONALIZED_CATEGORY_ID,
    RecommendationCategory,
    RecommendationResult,
    UserProfile,
    WatchlistActivityItem,
    normalize_recommendations,
)
from ..utils import generate_message_id
from .cache import CategoryCache
from .notifications import Notifier
from .scheduling import SingleFlightScheduler
from .staleness import Freshness, StalenessPolicy

logger = logging.getLogger(__name__)

DASHBOARD_VIEW = "dashboard"


class RecommendationFetcher(Protocol):
    async def __call__(
        self,
        *,
        user_profile: Mapping[str, Any],
        watchlist_activity: Sequence[Mapping[str, Any]] | None,
        count: int | None,
        message_id: str | None,
    ) -> RecommendationResult: ...


class CoordinatorState(str, Enum):
    IDLE = "idle"
    DEBOUNCING = "debouncing"
    FETCHING = "fetching"
    SETTLED = "settled"


class FetchStatus(str, Enum):
    SUCCESS = "success"
    EMPTY = "empty"
    FAILED = "failed"
    REJECTED = "rejected"
    SKIPPED = "skipped"


@dataclass(slots=True)
class RefreshOutcome:
    """Result of a single check or refresh attempt."""

    status: FetchStatus
    count: int = 0
    message: str = ""

    def to_payload(self) -> dict[str, Any]:
        return {"status": self.status.value, "count": self.count, "message": self.message}


class RecommendationCoordinator:
    """Own the recommendation categories of a single user session.

    Triggers (``start``, ``update_profile``, ``update_watchlist``,
    ``navigate``, ``trigger``) schedule a debounced check. The check only
    fetches for an onboarded user looking at the dashboard whose cached data
    is missing or stale, and never while another fetch is running. Every
    change to the category list is mirrored into the cache.
    """

    def __init__(
        self,
        fetcher: RecommendationFetcher,
        cache: CategoryCache,
        *,
        policy: StalenessPolicy | None = None,
        debounce_seconds: float = 0.5,
        count: int = 10,
        watchlist_limit: int = 5,
        notifier: Notifier | None = None,
        clock: Callable[[], float] = time.time,
        user_id: str | None = None,
    ):
        self._fetcher = fetcher
        self._cache = cache
        self._policy = policy or StalenessPolicy()
        self._scheduler = SingleFlightScheduler(debounce_seconds)
        self._count = count
        self._watchlist_limit = watchlist_limit
        self._notifier = notifier or Notifier(owner=user_id)
        self._clock = clock
        self._user_id = user_id or "anonymous"

        self._categories: list[RecommendationCategory] = []
        self._profile: UserProfile | None = None
        self._watchlist: list[WatchlistActivityItem] = []
        self._view: str = DASHBOARD_VIEW
        self._last_outcome: RefreshOutcome | None = None
        self._started = False

    @classmethod
    def from_settings(
        cls,
        settings: Settings,
        fetcher: RecommendationFetcher,
        cache: CategoryCache,
        **kwargs: Any,
    ) -> "RecommendationCoordinator":
        kwargs.setdefault(
            "policy",
            StalenessPolicy(
                refresh_interval_seconds=settings.refresh_interval_seconds,
                recent_window_seconds=settings.recent_fetch_seconds,
            ),
        )
        kwargs.setdefault("debounce_seconds", settings.debounce_seconds)
        kwargs.setdefault("count", settings.recommendation_count)
        kwargs.setdefault("watchlist_limit", settings.watchlist_activity_limit)
        if "notifier" not in kwargs:
            kwargs["notifier"] = Notifier(
                settings.notification_history, owner=kwargs.get("user_id")
            )
        return cls(fetcher, cache, **kwargs)

    # ------------------------------------------------------------------
    # Lifecycle

    async def start(self) -> None:
        """Restore cached categories and schedule the initial check."""

        if self._started:
            return
        self._categories = await self._cache.load()
        self._started = True
        logger.info(
            "Restored %s cached categories for %s", len(self._categories), self._user_id
        )
        self.trigger()

    async def dispose(self) -> None:
        """Cancel any pending check. A fetch already running is left to finish."""

        await self._scheduler.dispose()
        self._started = False

    async def join(self) -> None:
        """Wait until pending checks and background refreshes complete."""

        await self._scheduler.join()

    # ------------------------------------------------------------------
    # Read-only views

    @property
    def state(self) -> CoordinatorState:
        if self._scheduler.busy:
            return CoordinatorState.FETCHING
        if self._scheduler.pending:
            return CoordinatorState.DEBOUNCING
        if self._last_outcome is not None:
            return CoordinatorState.SETTLED
        return CoordinatorState.IDLE

    @property
    def fetch_in_progress(self) -> bool:
        return self._scheduler.busy

    @property
    def last_outcome(self) -> RefreshOutcome | None:
        return self._last_outcome

    @property
    def categories(self) -> list[RecommendationCategory]:
        return [category.model_copy(deep=True) for category in self._categories]

    @property
    def notifier(self) -> Notifier:
        return self._notifier

    @property
    def profile(self) -> UserProfile | None:
        return self._profile

    @property
    def view(self) -> str:
        return self._view

    def get_category(self, category_id: str) -> RecommendationCategory | None:
        for category in self._categories:
            if category.id == category_id:
                return category
        return None

    # ------------------------------------------------------------------
    # Triggers

    def trigger(self) -> None:
        """Schedule a debounced check, replacing any pending one."""

        self._scheduler.debounce(self.check)

    def update_profile(self, profile: UserProfile) -> None:
        """Store a new profile snapshot and re-evaluate.

        A changed profile seen on the dashboard also starts a manual refresh
        so new preferences show up without waiting for the refresh interval.
        """

        previous = self._profile
        self._profile = profile
        if previous is not None and previous != profile and self._view == DASHBOARD_VIEW:
            logger.info("Detected profile update for %s, refreshing", self._user_id)
            self._scheduler.spawn(self.refresh())
        self.trigger()

    def update_watchlist(self, activity: Iterable[WatchlistActivityItem]) -> None:
        self._watchlist = list(activity)
        self.trigger()

    def navigate(self, view: str) -> None:
        self._view = view
        self.trigger()

    # ------------------------------------------------------------------
    # Fetching

    async def check(self) -> RefreshOutcome:
        """Run the guarded staleness check and fetch when required."""

        if self._view != DASHBOARD_VIEW:
            return RefreshOutcome(FetchStatus.SKIPPED, message="not on dashboard")
        profile = self._profile
        if profile is None or not profile.onboarding_completed:
            return RefreshOutcome(FetchStatus.SKIPPED, message="onboarding incomplete")

        category = self.get_category(PERSONALIZED_CATEGORY_ID)
        last_fetched = category.last_fetched if category is not None else None
        freshness = self._policy.evaluate(last_fetched, self._now_ms())

        reasons: list[str] = []
        if freshness not in {Freshness.ABSENT, Freshness.STALE}:
            reasons.append("data is still fresh")
        if category is not None and category.is_loading:
            reasons.append("already loading")
        if self._scheduler.busy:
            reasons.append("fetch in progress")
        if freshness is Freshness.RECENT:
            reasons.append("very recent data exists")
        if reasons:
            message = "; ".join(reasons)
            logger.info("Skipping fetch for %s: %s", self._user_id, message)
            return RefreshOutcome(FetchStatus.SKIPPED, message=message)

        logger.info(
            "%s for personalized recommendations of %s",
            "Initial fetch" if freshness is Freshness.ABSENT else "Scheduled refresh",
            self._user_id,
        )
        return await self._run_fetch(profile, manual=False)

    async def refresh(self) -> RefreshOutcome:
        """Manually refresh, bypassing staleness but not the in-flight guard."""

        if self._scheduler.busy:
            self._notifier.info("Refresh already in progress...")
            return RefreshOutcome(
                FetchStatus.REJECTED, message="Refresh already in progress"
            )
        profile = self._profile
        if profile is None:
            self._notifier.error("Unable to refresh at this time")
            return RefreshOutcome(FetchStatus.FAILED, message="User profile not ready")
        logger.info("Starting manual refresh for %s", self._user_id)
        return await self._run_fetch(profile, manual=True)

    async def _run_fetch(self, profile: UserProfile, *, manual: bool) -> RefreshOutcome:
        # The guard is taken before the first await so two callers in the
        # same loop iteration cannot both pass.
        if not self._scheduler.try_acquire():
            return RefreshOutcome(FetchStatus.REJECTED, message="fetch in progress")
        try:
            outcome = await self._fetch_personalized(profile, manual=manual)
        finally:
            self._scheduler.release()
        self._last_outcome = outcome
        return outcome

    async def _fetch_personalized(
        self, profile: UserProfile, *, manual: bool
    ) -> RefreshOutcome:
        category = self._ensure_personalized_category()
        message_id = generate_message_id(
            "manual-refresh" if manual else "foryou-optimized", self._now_ms()
        )
        fetch_args = {"count": self._count, "messageId": message_id}
        self._replace(category.id, is_loading=True, error=None, fetch_args=fetch_args)
        await self._persist()

        activity = [
            item.to_payload() for item in self._watchlist[: self._watchlist_limit]
        ]
        try:
            result = await self._fetcher(
                user_profile=profile.to_ai_payload(),
                watchlist_activity=activity or None,
                count=self._count,
                message_id=message_id,
            )
            items = normalize_recommendations(result.recommendations)
            error = result.error
            configuration_warning = result.is_configuration_warning
        except Exception as exc:
            logger.exception("Personalized fetch %s failed: %s", message_id, exc)
            reason = str(exc) or ("Refresh failed" if manual else "Unknown fetch error")
            self._replace(category.id, is_loading=False, error=reason)
            await self._persist()
            if manual:
                self._notifier.error("Failed to refresh recommendations")
            else:
                self._notifier.error(f'Failed personalized fetch for "{category.title}".')
            return RefreshOutcome(FetchStatus.FAILED, message=reason)

        now = self._now_ms()
        logger.info(
            "Fetch %s completed with %s recommendations (error=%s)",
            message_id,
            len(items),
            error,
        )

        if error and not configuration_warning:
            previous = self.get_category(category.id)
            kept = items or (previous.recommendations if previous else [])
            self._replace(
                category.id,
                recommendations=kept,
                is_loading=False,
                error=error,
                last_fetched=now,
            )
            await self._persist()
            prefix = "Refresh failed" if manual else "Personalized"
            self._notifier.error(f"{prefix}: {error[:60]}")
            return RefreshOutcome(FetchStatus.FAILED, message=error)

        # A missing API key is expected in some deployments; it is kept on the
        # category for diagnostics but never shown as a failure.
        self._replace(
            category.id,
            recommendations=items,
            is_loading=False,
            error=error,
            last_fetched=now,
        )
        await self._persist()
        if items:
            if manual:
                self._notifier.success(
                    f"Updated with {len(items)} fresh recommendations!"
                )
            else:
                self._notifier.success(
                    f"Loaded {len(items)} personalized recommendations"
                )
            return RefreshOutcome(
                FetchStatus.SUCCESS, count=len(items), message=error or ""
            )
        if manual:
            self._notifier.info("Refresh completed, but no new recommendations found")
        else:
            self._notifier.info("No personalized recommendations found right now")
        return RefreshOutcome(FetchStatus.EMPTY, message=error or "")

    # ------------------------------------------------------------------
    # State helpers

    def _ensure_personalized_category(self) -> RecommendationCategory:
        category = self.get_category(PERSONALIZED_CATEGORY_ID)
        if category is None:
            category = RecommendationCategory.personalized()
            self._categories.append(category)
        return category

    def _replace(self, category_id: str, **updates: Any) -> None:
        self._categories = [
            category.model_copy(update=updates) if category.id == category_id else category
            for category in self._categories
        ]

    async def _persist(self) -> None:
        # The in-memory list is authoritative; the cache only mirrors it.
        try:
            await self._cache.save(self._categories)
        except Exception as exc:
            logger.exception(
                "Failed to persist recommendations for %s: %s", self._user_id, exc
            )

    def _now_ms(self) -> int:
        return int(self._clock() * 1000)
