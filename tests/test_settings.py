"""Configuration settings behaviour tests."""

from __future__ import annotations

import pytest

from app.config import DEFAULT_CACHE_KEY, Settings


def test_defaults_match_refresh_rules() -> None:
    settings = Settings(_env_file=None)

    assert settings.refresh_interval_seconds == 12 * 60 * 60
    assert settings.recent_fetch_seconds == 5 * 60
    assert settings.debounce_seconds == 0.5
    assert settings.recommendation_count == 10
    assert settings.watchlist_activity_limit == 5
    assert settings.cache_key == DEFAULT_CACHE_KEY


def test_blank_api_key_is_treated_as_missing() -> None:
    settings = Settings(_env_file=None, OPENAI_API_KEY="   ")

    assert settings.openai_api_key is None


def test_recent_window_must_be_shorter_than_interval() -> None:
    with pytest.raises(ValueError, match="RECENT_FETCH_WINDOW must be shorter"):
        Settings(_env_file=None, REFRESH_INTERVAL=300, RECENT_FETCH_WINDOW=300)


def test_blank_cache_key_is_rejected() -> None:
    with pytest.raises(ValueError, match="CACHE_KEY must not be blank"):
        Settings(_env_file=None, CACHE_KEY="  ")


def test_cache_backend_is_restricted() -> None:
    assert Settings(_env_file=None, CACHE_BACKEND="memory").cache_backend == "memory"
    with pytest.raises(ValueError):
        Settings(_env_file=None, CACHE_BACKEND="redis")
