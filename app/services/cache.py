"""Day-based caching of recommendation lists per provider."""

from __future__ import annotations

import logging
from datetime import datetime, timedelta, timezone
from typing import Callable, Sequence

from pydantic import ValidationError

from ..models import (
    PROVIDERS,
    CacheEntry,
    ProviderName,
    Recommendation,
    RecommendationSettings,
)
from ..storage import KeyValueStore
from ..utils import add_days, cache_key, days_between

logger = logging.getLogger(__name__)

Clock = Callable[[], datetime]


def utcnow() -> datetime:
    return datetime.now(timezone.utc)


class RecommendationCache:
    """Decides when a provider's cached list is stale and persists new ones.

    Each provider owns its own key, so switching providers never touches the
    other provider's list; it simply becomes current again when reselected.
    """

    def __init__(self, store: KeyValueStore, *, clock: Clock = utcnow):
        self._store = store
        self._clock = clock

    def now(self) -> datetime:
        return self._clock()

    async def load(self, provider: ProviderName) -> CacheEntry | None:
        payload = await self._store.get(cache_key(provider))
        try:
            return CacheEntry.from_storage(provider, payload)
        except (TypeError, ValidationError) as exc:
            logger.warning("Ignoring unreadable cache for %s: %s", provider, exc)
            return None

    async def store(
        self, provider: ProviderName, items: Sequence[Recommendation]
    ) -> CacheEntry:
        entry = CacheEntry(provider=provider, items=list(items), saved_at=self.now())
        await self._store.set(cache_key(provider), entry.to_storage())
        logger.debug("Saved %s recommendations for %s", len(entry.items), provider)
        return entry

    async def clear(self) -> None:
        """Remove the cached lists of every provider."""

        for provider in PROVIDERS:
            await self._store.remove(cache_key(provider))

    def should_refresh(
        self, settings: RecommendationSettings, entry: CacheEntry | None
    ) -> bool:
        days = settings.refresh_interval_days
        if days == 0:
            return True
        if entry is None or not entry.items:
            return True
        anchor = self._reference_time(settings, entry)
        if anchor is None:
            return True
        return days_between(anchor, self.now()) >= days

    def mark_refreshed(self, settings: RecommendationSettings) -> RecommendationSettings:
        """Return settings whose next refresh is one interval from now."""

        if not settings.caching_enabled:
            return settings.model_copy(update={"next_refresh_at": None})
        return settings.model_copy(
            update={
                "next_refresh_at": add_days(self.now(), settings.refresh_interval_days)
            }
        )

    async def apply_settings_change(
        self,
        previous: RecommendationSettings | None,
        draft: RecommendationSettings,
    ) -> RecommendationSettings:
        """Recompute the refresh deadline when the day count was edited."""

        if previous is not None and previous.refresh_interval_days == draft.refresh_interval_days:
            return draft
        if not draft.caching_enabled:
            await self.clear()
            return draft.model_copy(update={"next_refresh_at": None})
        return self.mark_refreshed(draft)

    @staticmethod
    def _reference_time(
        settings: RecommendationSettings, entry: CacheEntry
    ) -> datetime | None:
        # ``next_refresh_at`` lies one interval after the moment it was set.
        if settings.next_refresh_at is not None:
            return settings.next_refresh_at - timedelta(
                days=settings.refresh_interval_days
            )
        return entry.saved_at
