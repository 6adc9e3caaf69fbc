"""Pydantic models describing recommendation payloads."""

from __future__ import annotations

from typing import Any, Iterable, Literal, Mapping

from pydantic import BaseModel, ConfigDict, Field, field_validator
from pydantic.alias_generators import to_camel

from .utils import is_number

UNKNOWN_TITLE = "Unknown Title"
DEFAULT_DESCRIPTION = "No description available."
DEFAULT_REASONING = "AI recommendation"
DEFAULT_MOOD_MATCH_SCORE = 7.0
API_KEY_WARNING = "OpenAI API key not configured."

PERSONALIZED_CATEGORY_ID = "generalPersonalized"
PERSONALIZED_CATEGORY_TITLE = "Personalized For You"
PERSONALIZED_CATEGORY_REASON = (
    "Tailored based on your profile and activity • Refreshes every 12 hours"
)

ViewName = Literal[
    "dashboard",
    "ai_assistant",
    "anime_detail",
    "my_list",
    "browse",
    "admin_dashboard",
    "profile_settings",
    "custom_lists_overview",
    "custom_list_detail",
    "moodboard_page",
    "character_detail",
]

# Loosely typed AI output; only ``RecommendationItem.from_raw`` consumes it.
RawRecommendation = Mapping[str, Any]

_LIST_FIELDS = ("genres", "emotionalTags", "studios", "themes")
_PASSTHROUGH_FIELDS = (
    "_id",
    "characterHighlights",
    "plotTropes",
    "artStyleTags",
    "surpriseFactors",
    "foundInDatabase",
)


class CamelModel(BaseModel):
    """Base model serializing with the camelCase keys used by clients."""

    model_config = ConfigDict(alias_generator=to_camel, populate_by_name=True)

    def to_payload(self) -> dict[str, Any]:
        return self.model_dump(mode="json", by_alias=True, exclude_none=True)


class RecommendationItem(CamelModel):
    """A fully populated anime recommendation."""

    title: str = UNKNOWN_TITLE
    description: str = DEFAULT_DESCRIPTION
    poster_url: str = ""
    genres: list[str] = Field(default_factory=list)
    year: int | None = None
    rating: float | None = None
    emotional_tags: list[str] = Field(default_factory=list)
    trailer_url: str | None = None
    studios: list[str] = Field(default_factory=list)
    themes: list[str] = Field(default_factory=list)
    reasoning: str = DEFAULT_REASONING
    mood_match_score: float = DEFAULT_MOOD_MATCH_SCORE

    database_id: Any = Field(default=None, alias="_id")
    character_highlights: Any = None
    plot_tropes: Any = None
    art_style_tags: Any = None
    surprise_factors: Any = None
    found_in_database: Any = None

    @classmethod
    def from_raw(cls, raw: object) -> "RecommendationItem":
        """Coerce an arbitrary AI record into a complete recommendation.

        Fields that are missing or of the wrong type are treated as absent and
        replaced by their defaults. This never raises.
        """

        if isinstance(raw, RecommendationItem):
            raw = raw.to_payload()
        if not isinstance(raw, Mapping):
            raw = {}

        data: dict[str, Any] = {
            "title": _text(raw.get("title"), UNKNOWN_TITLE),
            "description": _text(raw.get("description"), DEFAULT_DESCRIPTION),
            "posterUrl": _text(raw.get("posterUrl"), ""),
            "reasoning": _text(raw.get("reasoning"), DEFAULT_REASONING),
            "moodMatchScore": _mood_match_score(raw),
        }
        for key in _LIST_FIELDS:
            data[key] = _string_list(raw.get(key))

        year = raw.get("year")
        if is_number(year) and float(year).is_integer() and year > 0:
            data["year"] = int(year)
        rating = raw.get("rating")
        if is_number(rating):
            data["rating"] = float(rating)
        trailer = raw.get("trailerUrl")
        if isinstance(trailer, str) and trailer:
            data["trailerUrl"] = trailer

        for key in _PASSTHROUGH_FIELDS:
            value = raw.get(key)
            if value is not None:
                data[key] = value

        return cls.model_validate(data)


def _text(value: object, default: str) -> str:
    if isinstance(value, str) and value:
        return value
    return default


def _string_list(value: object) -> list[str]:
    if not isinstance(value, list):
        return []
    cleaned: list[str] = []
    for entry in value:
        if isinstance(entry, str):
            cleaned.append(entry)
        elif is_number(entry):
            cleaned.append(str(entry))
    return cleaned


def _mood_match_score(raw: Mapping[str, Any]) -> float:
    for key in ("moodMatchScore", "similarityScore"):
        value = raw.get(key)
        if is_number(value):
            return float(value)
    rating = raw.get("rating")
    if is_number(rating):
        return float(min(10, max(1, rating)))
    return DEFAULT_MOOD_MATCH_SCORE


def normalize_recommendations(raw_items: Iterable[object] | None) -> list[RecommendationItem]:
    """Normalize a list of loosely typed AI records."""

    if raw_items is None or isinstance(raw_items, (str, bytes, Mapping)):
        return []
    return [RecommendationItem.from_raw(entry) for entry in raw_items]


class RecommendationCategory(CamelModel):
    """A titled list of recommendations and its fetch bookkeeping."""

    id: str
    title: str
    reason: str | None = None
    recommendations: list[RecommendationItem] = Field(default_factory=list)
    is_loading: bool = False
    error: str | None = None
    last_fetched: int | None = None
    fetch_args: dict[str, Any] = Field(default_factory=dict)

    @field_validator("recommendations", mode="before")
    @classmethod
    def _normalize_items(cls, value: object) -> list[RecommendationItem]:
        if value is None:
            return []
        if not isinstance(value, list):
            raise ValueError("recommendations must be a list")
        return normalize_recommendations(value)

    @classmethod
    def personalized(cls) -> "RecommendationCategory":
        return cls(
            id=PERSONALIZED_CATEGORY_ID,
            title=PERSONALIZED_CATEGORY_TITLE,
            reason=PERSONALIZED_CATEGORY_REASON,
        )


class UserProfile(CamelModel):
    """Read-only snapshot of the preferences a user stored during onboarding."""

    name: str | None = None
    onboarding_completed: bool = False
    moods: list[str] = Field(default_factory=list)
    genres: list[str] = Field(default_factory=list)
    favorite_animes: list[str] = Field(default_factory=list)
    experience_level: str | None = None
    disliked_genres: list[str] = Field(default_factory=list)
    disliked_tags: list[str] = Field(default_factory=list)
    character_archetypes: list[str] = Field(default_factory=list)
    tropes: list[str] = Field(default_factory=list)
    art_styles: list[str] = Field(default_factory=list)
    narrative_pacing: str | None = None

    def to_ai_payload(self) -> dict[str, Any]:
        """Return the preference subset forwarded to the recommendation function."""

        return self.model_dump(
            mode="json",
            by_alias=True,
            exclude_none=True,
            exclude={"onboarding_completed"},
        )


class WatchlistActivityItem(CamelModel):
    """Recent watchlist entry used as a taste signal."""

    anime_title: str = "Unknown"
    status: str
    user_rating: float | None = None


class RecommendationResult(BaseModel):
    """Response contract of the upstream recommendation function."""

    recommendations: list[Any] = Field(default_factory=list)
    error: str | None = None
    debug: Any = None

    @field_validator("recommendations", mode="before")
    @classmethod
    def _coerce_list(cls, value: object) -> object:
        if value is None or not isinstance(value, list):
            return []
        return value

    @property
    def is_configuration_warning(self) -> bool:
        return self.error == API_KEY_WARNING
