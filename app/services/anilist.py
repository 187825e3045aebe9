"""Utilities for communicating with the AniList GraphQL API."""

from __future__ import annotations

import logging
from typing import Any, Collection, Sequence

import httpx
from pydantic import ValidationError

from ..config import Settings
from ..errors import ProviderError
from ..models import (
    PRIMARY_PROVIDER,
    GenreWeight,
    ProviderName,
    Recommendation,
    WatchedEntry,
    WatchStatus,
)

logger = logging.getLogger(__name__)

WATCH_HISTORY_QUERY = """
query ($userName: String) {
    MediaListCollection(userName: $userName, type: ANIME) {
        lists {
            status
            entries {
                media {
                    id
                    genres
                }
            }
        }
    }
}
"""

RECOMMENDATION_QUERY = """
query ($genreIn: [String], $perPage: Int, $sort: [MediaSort], $idNotIn: [Int]) {
    Page(perPage: $perPage) {
        media(genre_in: $genreIn, sort: $sort, id_not_in: $idNotIn, type: ANIME) {
            id
            title {
                english
                romaji
            }
            coverImage {
                medium
            }
            genres
        }
    }
}
"""

MAL_ID_QUERY = """
query ($perPage: Int, $idMalIn: [Int]) {
    Page(perPage: $perPage) {
        media(idMal_in: $idMalIn, type: ANIME) {
            id
            idMal
        }
    }
}
"""

# AniList caps Page.perPage at 50.
MAX_PAGE_SIZE = 50


class AniListClient:
    """Thin wrapper around the AniList GraphQL endpoint."""

    def __init__(self, settings: Settings, http_client: httpx.AsyncClient):
        self._settings = settings
        self._client = http_client

    def _headers(self) -> dict[str, str]:
        headers = {
            "Accept": "application/json",
            "Content-Type": "application/json",
            "User-Agent": f"{self._settings.app_name} (pickedforyou)",
        }
        if self._settings.anilist_token:
            headers["Authorization"] = f"Bearer {self._settings.anilist_token}"
        return headers

    async def query(self, query: str, variables: dict[str, Any]) -> dict[str, Any]:
        """Execute a GraphQL query and return its ``data`` object."""

        try:
            response = await self._client.post(
                "",
                json={"query": query, "variables": variables},
                headers=self._headers(),
            )
        except httpx.HTTPError as exc:
            raise ProviderError(
                PRIMARY_PROVIDER, f"request failed ({exc.__class__.__name__})"
            ) from exc

        if response.status_code >= 400:
            logger.warning(
                "AniList query failed with status %s: %s",
                response.status_code,
                response.text[:200],
            )
            raise ProviderError(
                PRIMARY_PROVIDER, f"unexpected status {response.status_code}"
            )

        try:
            payload = response.json()
        except ValueError as exc:
            raise ProviderError(PRIMARY_PROVIDER, "response is not valid JSON") from exc

        errors = payload.get("errors") if isinstance(payload, dict) else None
        if errors:
            messages = ", ".join(
                str(error.get("message", error)) if isinstance(error, dict) else str(error)
                for error in errors
            )
            raise ProviderError(PRIMARY_PROVIDER, messages)

        data = payload.get("data") if isinstance(payload, dict) else None
        if not isinstance(data, dict):
            raise ProviderError(PRIMARY_PROVIDER, "response is missing data")
        return data

    async def fetch_watch_history(self, username: str) -> list[WatchedEntry]:
        """Return every entry of the user's anime list with its list status."""

        data = await self.query(WATCH_HISTORY_QUERY, {"userName": username})
        collection = data.get("MediaListCollection")
        if collection is None:
            collection = {}
        if not isinstance(collection, dict):
            raise ProviderError(PRIMARY_PROVIDER, "MediaListCollection is not an object")
        entries: list[WatchedEntry] = []
        for media_list in _as_list(collection.get("lists")):
            if not isinstance(media_list, dict):
                continue
            status = self._normalise_status(media_list.get("status"))
            for entry in _as_list(media_list.get("entries")):
                media = entry.get("media") if isinstance(entry, dict) else None
                if not isinstance(media, dict):
                    continue
                media_id = media.get("id")
                if not isinstance(media_id, int):
                    continue
                entries.append(
                    WatchedEntry(
                        media_id=media_id,
                        genres=tuple(_as_list(media.get("genres"))),
                        status=status,
                    )
                )
        logger.debug("Loaded %s list entries for %s", len(entries), username)
        return entries

    async def search_by_genres(
        self,
        genres: Sequence[str],
        exclude_ids: Collection[int],
        limit: int,
    ) -> list[dict[str, Any]]:
        """Return top-scored anime matching any of ``genres``."""

        variables: dict[str, Any] = {
            "perPage": limit,
            "sort": "SCORE_DESC",
            "idNotIn": sorted(exclude_ids),
        }
        if genres:
            variables["genreIn"] = list(genres)
        data = await self.query(RECOMMENDATION_QUERY, variables)
        return _page_media(data)

    async def resolve_mal_ids(self, mal_ids: Sequence[int]) -> dict[int, int]:
        """Map MyAnimeList ids to AniList ids; unknown ids are absent."""

        if not mal_ids:
            return {}
        resolved: dict[int, int] = {}
        unique_ids = list(dict.fromkeys(mal_ids))
        for start in range(0, len(unique_ids), MAX_PAGE_SIZE):
            batch = unique_ids[start : start + MAX_PAGE_SIZE]
            data = await self.query(
                MAL_ID_QUERY, {"idMalIn": batch, "perPage": len(batch)}
            )
            for media in _page_media(data):
                if not isinstance(media, dict):
                    continue
                mal_id = media.get("idMal")
                anilist_id = media.get("id")
                if isinstance(mal_id, int) and isinstance(anilist_id, int):
                    resolved.setdefault(mal_id, anilist_id)
        return resolved

    @staticmethod
    def _normalise_status(value: object) -> WatchStatus:
        if value == "COMPLETED":
            return "COMPLETED"
        if value == "CURRENT":
            return "CURRENT"
        return "OTHER"


class AniListProvider:
    """Recommends AniList's best-scored anime in the user's favourite genres."""

    name: ProviderName = PRIMARY_PROVIDER

    def __init__(self, client: AniListClient):
        self._client = client

    async def fetch_candidates(
        self,
        affinity: Sequence[GenreWeight],
        exclude_ids: Collection[int],
        limit: int,
    ) -> list[Recommendation]:
        genres = [weight.genre for weight in affinity]
        media_items = await self._client.search_by_genres(genres, exclude_ids, limit)
        recommendations: list[Recommendation] = []
        for media in media_items:
            recommendation = self._to_recommendation(media)
            if recommendation is not None:
                recommendations.append(recommendation)
        logger.info(
            "AniList returned %s candidates for genres %s",
            len(recommendations),
            ", ".join(genres) or "(any)",
        )
        return recommendations

    @staticmethod
    def _to_recommendation(media: Any) -> Recommendation | None:
        media_id = media.get("id") if isinstance(media, dict) else None
        if not isinstance(media_id, int):
            logger.debug("Ignoring AniList record without an id")
            return None
        title_block = media.get("title")
        if not isinstance(title_block, dict):
            logger.debug("Ignoring AniList record %s with malformed title", media_id)
            return None
        title = title_block.get("english") or title_block.get("romaji")
        if not isinstance(title, str) or not title:
            return None
        cover_block = media.get("coverImage")
        cover = cover_block.get("medium") if isinstance(cover_block, dict) else None
        try:
            return Recommendation(
                id=media_id,
                title=title,
                cover_image=cover if isinstance(cover, str) and cover else None,
                genres=media.get("genres") or [],
            )
        except ValidationError as exc:
            logger.debug("Ignoring malformed AniList record %s: %s", media_id, exc)
            return None


def _as_list(value: object) -> list[Any]:
    return value if isinstance(value, list) else []


def _page_media(data: dict[str, Any]) -> list[Any]:
    page = data.get("Page")
    if not isinstance(page, dict):
        raise ProviderError(PRIMARY_PROVIDER, "response is missing Page")
    return _as_list(page.get("media"))
