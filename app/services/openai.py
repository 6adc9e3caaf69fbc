"""Integration helpers for the OpenAI chat completions API."""

from __future__ import annotations

import logging
from typing import Any, Mapping, Sequence

import httpx

from ..config import Settings
from ..models import API_KEY_WARNING, RecommendationResult
from ..utils import extract_json_payload

logger = logging.getLogger(__name__)

SYSTEM_PROMPT = """You are AniMuse, an AI anime concierge.
Recommend anime tailored to the user's stored preferences and recent watchlist activity.
Provide recommendations as a JSON object {{"recommendations": [...]}}. Each recommendation includes:
- title (string)
- description (string, a brief 2-3 sentence summary)
- reasoning (string, why this anime fits the user's profile, max 1-2 sentences)
- posterUrl (string, use "https://via.placeholder.com/200x300.png?text=[ANIME_TITLE]" if unknown)
- genres (array of strings)
- year (number, if known)
- rating (number, if known, scale 1-10)
- emotionalTags (array of strings)
- trailerUrl (string, use "https://www.youtube.com/results?search_query=[ANIME_TITLE]+trailer" if unknown)
- studios (array of strings, optional)
- themes (array of strings, optional)
- moodMatchScore (number, 1-10, how well this fits the user's moods)

User profile:
{profile_lines}

Recent watchlist activity:
{activity_lines}

Recommend EXACTLY {count} anime. Never recommend anything listed as a favorite or in the watchlist.
Avoid disliked genres and tags entirely.
Return ONLY the JSON object. No additional text or formatting.
"""

_PROFILE_LABELS: tuple[tuple[str, str], ...] = (
    ("name", "Name"),
    ("moods", "Current Moods"),
    ("genres", "Preferred Genres"),
    ("favoriteAnimes", "Favorite Anime"),
    ("experienceLevel", "Experience Level"),
    ("dislikedGenres", "Disliked Genres (AVOID THESE)"),
    ("dislikedTags", "Disliked Tags (AVOID THESE)"),
    ("characterArchetypes", "Favorite Character Archetypes"),
    ("tropes", "Favorite Tropes"),
    ("artStyles", "Preferred Art Styles"),
    ("narrativePacing", "Narrative Pacing"),
)


class OpenAIRecommendationClient:
    """Client responsible for talking to OpenAI's /chat/completions endpoint.

    Failures are reported through ``RecommendationResult.error`` rather than
    raised, mirroring the contract of the hosted recommendation function.
    """

    def __init__(self, settings: Settings, http_client: httpx.AsyncClient):
        self._settings = settings
        self._client = http_client

    async def get_personalized_recommendations(
        self,
        *,
        user_profile: Mapping[str, Any],
        watchlist_activity: Sequence[Mapping[str, Any]] | None = None,
        count: int | None = None,
        message_id: str | None = None,
    ) -> RecommendationResult:
        api_key = self._settings.openai_api_key
        if not api_key:
            return RecommendationResult(recommendations=[], error=API_KEY_WARNING)

        target = count or self._settings.recommendation_count
        prompt = self.build_prompt(user_profile, watchlist_activity or [], count=target)
        payload = {
            "model": self._settings.openai_model,
            "temperature": 0.9,
            "response_format": {"type": "json_object"},
            "messages": [
                {"role": "system", "content": prompt},
                {
                    "role": "user",
                    "content": f"Recommend {target} anime for me.",
                },
            ],
        }
        headers = {
            "Authorization": f"Bearer {api_key}",
            "Content-Type": "application/json",
        }
        if message_id:
            headers["X-Request-Id"] = message_id

        logger.info(
            "Requesting %s personalized recommendations (message %s)",
            target,
            message_id,
        )
        try:
            response = await self._client.post(
                "/chat/completions", json=payload, headers=headers
            )
        except httpx.HTTPError as exc:
            logger.warning("Recommendation request %s failed: %s", message_id, exc)
            return RecommendationResult(
                error=f"Failed to get recommendations from AI: {exc}",
                debug={"messageId": message_id, "rawError": repr(exc)},
            )
        if response.status_code >= 400:
            return RecommendationResult(
                error=(
                    "Failed to get recommendations from AI: "
                    f"HTTP {response.status_code}"
                ),
                debug={"messageId": message_id, "status": response.status_code, "body": response.text[:500]},
            )

        try:
            data = response.json()
        except ValueError:
            return RecommendationResult(
                error="AI response was not valid JSON.",
                debug={"messageId": message_id},
            )
        choices = data.get("choices") if isinstance(data, dict) else None
        content = None
        if isinstance(choices, list) and choices and isinstance(choices[0], dict):
            message = choices[0].get("message") or {}
            content = message.get("content") if isinstance(message, dict) else None
        if not isinstance(content, str) or not content.strip():
            return RecommendationResult(
                error="No content from AI.", debug={"messageId": message_id}
            )

        try:
            parsed = extract_json_payload(content)
        except ValueError as exc:
            return RecommendationResult(
                error=f"Failed to parse AI response: {exc}",
                debug={"messageId": message_id},
            )

        items = self._extract_items(parsed)
        if items is None:
            return RecommendationResult(
                error=(
                    "AI response format error. Expected an array or "
                    "{recommendations: []}."
                ),
                debug={"messageId": message_id},
            )
        return RecommendationResult(
            recommendations=items[:target],
            debug={"messageId": message_id, "model": data.get("model")},
        )

    @staticmethod
    def _extract_items(parsed: Any) -> list[Any] | None:
        if isinstance(parsed, list):
            return parsed
        if not isinstance(parsed, dict):
            return None
        candidate = parsed.get("recommendations")
        if isinstance(candidate, list):
            return candidate
        for value in parsed.values():
            if isinstance(value, list):
                return value
        return None

    @staticmethod
    def build_prompt(
        user_profile: Mapping[str, Any],
        watchlist_activity: Sequence[Mapping[str, Any]],
        *,
        count: int,
    ) -> str:
        profile_lines: list[str] = []
        for key, label in _PROFILE_LABELS:
            value = user_profile.get(key)
            if isinstance(value, (list, tuple)):
                entries = [str(entry) for entry in value if entry]
                if entries:
                    profile_lines.append(f"- {label}: {', '.join(entries)}")
            elif value:
                profile_lines.append(f"- {label}: {value}")

        activity_lines: list[str] = []
        for entry in watchlist_activity:
            title = entry.get("animeTitle") or "Unknown"
            line = f"- {title} ({entry.get('status') or 'unknown status'})"
            rating = entry.get("userRating")
            if rating is not None:
                line += f", rated {rating}/10"
            activity_lines.append(line)

        return SYSTEM_PROMPT.format(
            profile_lines="\n".join(profile_lines) or "- No preferences recorded",
            activity_lines="\n".join(activity_lines) or "- No recent activity",
            count=count,
        )
