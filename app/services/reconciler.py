"""Mapping of MyAnimeList identifiers onto the AniList catalog."""

from __future__ import annotations

import logging
from typing import Protocol, Sequence

from ..models import Recommendation
from ..utils import unique_by_id
from .sprout import SproutCandidate

logger = logging.getLogger(__name__)


class MalIdResolver(Protocol):
    async def resolve_mal_ids(self, mal_ids: Sequence[int]) -> dict[int, int]: ...


class IdReconciler:
    """Rewrite Sprout candidates to AniList ids, dropping unknown titles."""

    def __init__(self, resolver: MalIdResolver):
        self._resolver = resolver

    async def reconcile(
        self, candidates: Sequence[SproutCandidate]
    ) -> list[Recommendation]:
        if not candidates:
            return []

        resolved = await self._resolver.resolve_mal_ids(
            [candidate.mal_id for candidate in candidates]
        )

        recommendations: list[Recommendation] = []
        for candidate in candidates:
            anilist_id = resolved.get(candidate.mal_id)
            if anilist_id is None:
                continue
            recommendations.append(
                Recommendation(
                    id=anilist_id,
                    title=candidate.title,
                    cover_image=candidate.cover_image,
                    genres=candidate.genres,
                )
            )

        unique = unique_by_id(recommendations)
        dropped = len(candidates) - len(unique)
        if dropped:
            logger.debug("Dropped %s Sprout candidates without an AniList match", dropped)
        return unique
