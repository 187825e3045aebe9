"""High level orchestration of recommendation refreshes."""

from __future__ import annotations

import asyncio
import logging
from dataclasses import dataclass, field

from pydantic import ValidationError

from ..errors import ProviderError, SettingsValidationError
from ..models import (
    PRIMARY_PROVIDER,
    ProviderName,
    Recommendation,
    RecommendationSettings,
)
from ..storage import SETTINGS_KEY, KeyValueStore
from ..utils import unique_by_id
from .affinity import score_affinity, watched_ids
from .anilist import AniListClient
from .cache import RecommendationCache
from .providers import ProviderClient
from .reconciler import IdReconciler
from .sprout import SproutCandidate

logger = logging.getLogger(__name__)


@dataclass
class RecommendationResult:
    """Outcome of a single engine run."""

    items: list[Recommendation] = field(default_factory=list)
    setup_required: bool = False
    from_cache: bool = False
    error: str | None = None


@dataclass
class SaveOutcome:
    """Result of saving edited settings."""

    changed: bool
    settings: RecommendationSettings
    rescheduled: bool = False


class RecommendationEngine:
    """Coordinates history scoring, provider queries and caching."""

    def __init__(
        self,
        store: KeyValueStore,
        anilist: AniListClient,
        primary: ProviderClient[Recommendation],
        secondary: ProviderClient[SproutCandidate],
        reconciler: IdReconciler,
        cache: RecommendationCache,
        *,
        username: str | None,
    ):
        self._store = store
        self._anilist = anilist
        self._primary = primary
        self._secondary = secondary
        self._reconciler = reconciler
        self._cache = cache
        self._username = username
        self._locks: dict[ProviderName, asyncio.Lock] = {}

    @property
    def cache(self) -> RecommendationCache:
        return self._cache

    async def load_settings(self) -> RecommendationSettings | None:
        """Return the saved settings, or ``None`` when setup is still required."""

        payload = await self._store.get(SETTINGS_KEY)
        if not payload:
            return None
        try:
            settings = RecommendationSettings.model_validate(payload)
        except ValidationError as exc:
            logger.warning("Stored settings are invalid: %s", exc)
            return None
        if not settings.is_valid():
            logger.warning("Stored settings are out of range, setup required")
            return None
        return settings

    async def run(self) -> RecommendationResult:
        settings = await self.load_settings()
        if settings is None:
            return RecommendationResult(setup_required=True)

        while True:
            provider = settings.provider
            lock = self._locks.setdefault(provider, asyncio.Lock())
            async with lock:
                # Settings may have been refreshed by a run we waited on.
                current = await self.load_settings()
                if current is None:
                    return RecommendationResult(setup_required=True)
                if current.provider == provider:
                    return await self._refresh_locked(current)
            logger.debug(
                "Provider switched from %s to %s while waiting", provider, current.provider
            )
            settings = current

    async def _refresh_locked(
        self, settings: RecommendationSettings
    ) -> RecommendationResult:
        provider = settings.provider
        entry = await self._cache.load(provider)
        if not self._cache.should_refresh(settings, entry):
            logger.debug("Serving cached recommendations for %s", provider)
            return RecommendationResult(items=list(entry.items), from_cache=True)

        logger.info("Refreshing recommendations from %s", provider)
        try:
            items = await self._fetch(settings)
        except ProviderError as exc:
            logger.error("Fetching recommendations from %s failed: %s", provider, exc)
            stale = list(entry.items) if entry is not None else []
            return RecommendationResult(
                items=stale, from_cache=bool(stale), error=str(exc)
            )

        if settings.caching_enabled and items:
            await self._cache.store(provider, items)
            await self._store.set(
                SETTINGS_KEY, self._cache.mark_refreshed(settings).to_storage()
            )
        return RecommendationResult(items=items)

    async def save_settings(self, draft: RecommendationSettings) -> SaveOutcome:
        """Persist edited settings, recomputing the refresh deadline if needed."""

        if not draft.is_valid():
            raise SettingsValidationError(
                "Recommendation count must be positive and refresh days non-negative"
            )
        previous = await self.load_settings()
        if previous is not None and not draft.differs_from(previous):
            return SaveOutcome(changed=False, settings=previous)

        updated = draft
        if previous is not None:
            updated = draft.model_copy(update={"next_refresh_at": previous.next_refresh_at})
        rescheduled = (
            previous is None
            or previous.refresh_interval_days != draft.refresh_interval_days
        )
        updated = await self._cache.apply_settings_change(previous, updated)
        await self._store.set(SETTINGS_KEY, updated.to_storage())
        logger.info(
            "Saved settings: %s recommendations from %s, refresh every %s days",
            updated.recommendation_count,
            updated.provider,
            updated.refresh_interval_days,
        )
        return SaveOutcome(changed=True, settings=updated, rescheduled=rescheduled)

    async def _fetch(self, settings: RecommendationSettings) -> list[Recommendation]:
        if not self._username:
            raise ProviderError(settings.provider, "no AniList username configured")

        history = await self._anilist.fetch_watch_history(self._username)
        exclude_ids = watched_ids(history)

        if settings.provider == PRIMARY_PROVIDER:
            affinity = score_affinity(history)
            logger.debug(
                "Top genres: %s",
                ", ".join(f"{weight.genre} ({weight.weight})" for weight in affinity),
            )
            items = await self._primary.fetch_candidates(
                affinity, exclude_ids, settings.recommendation_count
            )
        else:
            candidates = await self._secondary.fetch_candidates(
                [], exclude_ids, settings.recommendation_count
            )
            reconciled = await self._reconciler.reconcile(candidates)
            items = [item for item in reconciled if item.id not in exclude_ids]

        return unique_by_id(items)
