"""Client for the Sprout (anime.ameo.dev) recommendation service."""

from __future__ import annotations

import logging
from dataclasses import dataclass, field
from typing import Any, Collection, Sequence

import httpx

from ..errors import ProviderError
from ..models import SECONDARY_PROVIDER, GenreWeight, ProviderName

logger = logging.getLogger(__name__)


@dataclass(slots=True)
class SproutCandidate:
    """A Sprout suggestion, still identified by its MyAnimeList id."""

    mal_id: int
    title: str
    cover_image: str | None = None
    genres: list[str] = field(default_factory=list)


class SproutProvider:
    """Fetches Sprout's own recommendations for an AniList username.

    Sprout scores titles itself, so the affinity ranking is ignored and the
    result size is whatever Sprout returns. Candidates come back with
    MyAnimeList ids and must be reconciled before use.
    """

    name: ProviderName = SECONDARY_PROVIDER

    def __init__(self, http_client: httpx.AsyncClient, username: str | None):
        self._client = http_client
        self._username = username

    async def fetch_candidates(
        self,
        affinity: Sequence[GenreWeight],
        exclude_ids: Collection[int],
        limit: int,
    ) -> list[SproutCandidate]:
        if not self._username:
            raise ProviderError(SECONDARY_PROVIDER, "an AniList username is required")

        url = f"/user/{self._username}/recommendations/__data.json"
        try:
            response = await self._client.get(url, params={"source": "anilist"})
        except httpx.HTTPError as exc:
            raise ProviderError(
                SECONDARY_PROVIDER, f"request failed ({exc.__class__.__name__})"
            ) from exc

        if not response.is_success:
            logger.error(
                "An error occurred while retrieving data from Sprout. ERROR: %s %s",
                response.status_code,
                response.reason_phrase,
            )
            return []

        try:
            payload = response.json()
        except ValueError as exc:
            raise ProviderError(SECONDARY_PROVIDER, "response is not valid JSON") from exc

        candidates = self._parse_candidates(payload)
        logger.info("Sprout returned %s candidates", len(candidates))
        return candidates

    @staticmethod
    def _parse_candidates(payload: Any) -> list[SproutCandidate]:
        try:
            anime_data = payload["initialRecommendations"]["animeData"]
        except (KeyError, TypeError) as exc:
            raise ProviderError(
                SECONDARY_PROVIDER, "response is missing recommendation data"
            ) from exc
        if not isinstance(anime_data, dict):
            raise ProviderError(SECONDARY_PROVIDER, "recommendation data is not a mapping")

        candidates: list[SproutCandidate] = []
        for key, record in anime_data.items():
            if not isinstance(record, dict):
                logger.debug("Ignoring malformed Sprout record %s", key)
                continue
            mal_id = record.get("id")
            title = record.get("title")
            if not isinstance(mal_id, int) or not title:
                logger.debug("Ignoring Sprout record %s without id or title", key)
                continue
            picture = record.get("main_picture") or {}
            raw_genres = record.get("genres")
            genres = [
                genre.get("name")
                for genre in (raw_genres if isinstance(raw_genres, list) else [])
                if isinstance(genre, dict) and isinstance(genre.get("name"), str)
            ]
            candidates.append(
                SproutCandidate(
                    mal_id=mal_id,
                    title=str(title),
                    cover_image=picture.get("medium") if isinstance(picture, dict) else None,
                    genres=genres,
                )
            )
        return candidates
