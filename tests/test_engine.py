"""Tests for the recommendation engine orchestration."""

from __future__ import annotations

import asyncio
from datetime import datetime, timedelta, timezone
from typing import Any, Collection, Sequence

import pytest

from app.errors import ProviderError, SettingsValidationError
from app.models import GenreWeight, Recommendation, RecommendationSettings, WatchedEntry
from app.services.cache import RecommendationCache
from app.services.engine import RecommendationEngine
from app.services.reconciler import IdReconciler
from app.services.sprout import SproutCandidate
from app.storage import MemoryStore

DAY_ZERO = datetime(2024, 5, 1, 12, 0, tzinfo=timezone.utc)


class FakeClock:
    def __init__(self) -> None:
        self.now = DAY_ZERO

    def __call__(self) -> datetime:
        return self.now


class FakeAniList:
    def __init__(self, history: list[WatchedEntry], mal_map: dict[int, int] | None = None):
        self.history = history
        self.mal_map = mal_map or {}
        self.history_calls = 0

    async def fetch_watch_history(self, username: str) -> list[WatchedEntry]:
        self.history_calls += 1
        return list(self.history)

    async def resolve_mal_ids(self, mal_ids: Sequence[int]) -> dict[int, int]:
        return {mal_id: self.mal_map[mal_id] for mal_id in mal_ids if mal_id in self.mal_map}


class FakePrimary:
    name = "anilist"

    def __init__(self, items: list[Recommendation] | None = None, error: Exception | None = None):
        self.items = items or []
        self.error = error
        self.calls: list[dict[str, Any]] = []
        self.delay = 0.0

    async def fetch_candidates(
        self, affinity: Sequence[GenreWeight], exclude_ids: Collection[int], limit: int
    ) -> list[Recommendation]:
        self.calls.append(
            {"affinity": list(affinity), "exclude_ids": set(exclude_ids), "limit": limit}
        )
        if self.delay:
            await asyncio.sleep(self.delay)
        if self.error:
            raise self.error
        return list(self.items)


class FakeSecondary:
    name = "sprout"

    def __init__(self, candidates: list[SproutCandidate]):
        self.candidates = candidates
        self.calls = 0

    async def fetch_candidates(self, affinity, exclude_ids, limit) -> list[SproutCandidate]:
        self.calls += 1
        return list(self.candidates)


HISTORY = [
    WatchedEntry(media_id=1, genres=("Action", "Drama"), status="COMPLETED"),
    WatchedEntry(media_id=2, genres=("Action",), status="CURRENT"),
    WatchedEntry(media_id=3, genres=("Comedy",), status="COMPLETED"),
    WatchedEntry(media_id=4, genres=("Horror",), status="OTHER"),
]

PRIMARY_ITEMS = [
    Recommendation(id=20, title="Vinland Saga", genres=["Action", "Drama"]),
    Recommendation(id=21, title="Mob Psycho 100", genres=["Action", "Comedy"]),
]


def _build(
    store: MemoryStore,
    *,
    primary: FakePrimary | None = None,
    secondary: FakeSecondary | None = None,
    anilist: FakeAniList | None = None,
    clock: FakeClock | None = None,
    username: str | None = "kaze",
) -> RecommendationEngine:
    anilist = anilist or FakeAniList(HISTORY)
    return RecommendationEngine(
        store,
        anilist,  # type: ignore[arg-type]
        primary or FakePrimary(PRIMARY_ITEMS),  # type: ignore[arg-type]
        secondary or FakeSecondary([]),  # type: ignore[arg-type]
        IdReconciler(anilist),
        RecommendationCache(store, clock=clock or FakeClock()),
        username=username,
    )


def _saved_settings(**overrides: Any) -> dict[str, Any]:
    return RecommendationSettings(**overrides).to_storage()


def test_missing_settings_require_setup() -> None:
    primary = FakePrimary(PRIMARY_ITEMS)
    result = asyncio.run(_build(MemoryStore(), primary=primary).run())

    assert result.setup_required is True
    assert result.items == []
    assert primary.calls == []


def test_invalid_settings_require_setup() -> None:
    store = MemoryStore({"settings": {"numberOfRecommendations": -1}})

    assert asyncio.run(_build(store).run()).setup_required is True


def test_primary_refresh_scores_history_and_caches() -> None:
    store = MemoryStore({"settings": _saved_settings(refresh_interval_days=2)})
    primary = FakePrimary(PRIMARY_ITEMS)

    result = asyncio.run(_build(store, primary=primary).run())

    assert result.items == PRIMARY_ITEMS
    assert result.from_cache is False
    call = primary.calls[0]
    assert [(weight.genre, weight.weight) for weight in call["affinity"]] == [
        ("Action", 2),
        ("Drama", 1),
        ("Comedy", 1),
    ]
    assert call["exclude_ids"] == {1, 2, 3}
    assert call["limit"] == 15
    assert store._data["recommendations.anilist"]["items"][0]["id"] == 20
    saved = RecommendationSettings.model_validate(store._data["settings"])
    assert saved.next_refresh_at == DAY_ZERO + timedelta(days=2)


def test_cached_list_is_served_until_stale() -> None:
    store = MemoryStore({"settings": _saved_settings(refresh_interval_days=3)})
    clock = FakeClock()
    primary = FakePrimary(PRIMARY_ITEMS)
    engine = _build(store, primary=primary, clock=clock)

    asyncio.run(engine.run())
    clock.now = DAY_ZERO + timedelta(days=2)
    second = asyncio.run(engine.run())
    clock.now = DAY_ZERO + timedelta(days=3)
    asyncio.run(engine.run())

    assert second.from_cache is True
    assert second.items == PRIMARY_ITEMS
    assert len(primary.calls) == 2


def test_run_follows_provider_switch_made_while_waiting() -> None:
    store = MemoryStore({"settings": _saved_settings(refresh_interval_days=0)})
    primary = FakePrimary(PRIMARY_ITEMS)
    primary.delay = 0.02
    secondary = FakeSecondary([])
    engine = _build(store, primary=primary, secondary=secondary)

    async def switch_provider() -> None:
        await asyncio.sleep(0.005)
        await store.set(
            "settings", _saved_settings(refresh_interval_days=0, provider="sprout")
        )

    async def scenario():
        return await asyncio.gather(engine.run(), engine.run(), switch_provider())

    first, second, _ = asyncio.run(scenario())

    assert first.items == PRIMARY_ITEMS
    assert second.items == []
    assert len(primary.calls) == 1
    assert secondary.calls == 1


def test_zero_days_never_writes_cache() -> None:
    store = MemoryStore({"settings": _saved_settings(refresh_interval_days=0)})
    primary = FakePrimary(PRIMARY_ITEMS)
    engine = _build(store, primary=primary)

    asyncio.run(engine.run())
    asyncio.run(engine.run())

    assert len(primary.calls) == 2
    assert "recommendations.anilist" not in store
    assert store._data["settings"]["nextRefresh"] is None


def test_secondary_reconciles_and_excludes_watched() -> None:
    store = MemoryStore({"settings": _saved_settings(provider="sprout")})
    anilist = FakeAniList(HISTORY, mal_map={10: 110, 11: 2, 12: 112})
    secondary = FakeSecondary(
        [
            SproutCandidate(mal_id=12, title="Made in Abyss", genres=["Adventure"]),
            SproutCandidate(mal_id=999, title="Unmatched"),
            SproutCandidate(mal_id=11, title="Already watched"),
            SproutCandidate(mal_id=10, title="Ping Pong", genres=["Sports"]),
        ]
    )
    primary = FakePrimary(PRIMARY_ITEMS)

    result = asyncio.run(
        _build(store, primary=primary, secondary=secondary, anilist=anilist).run()
    )

    assert [(item.id, item.title) for item in result.items] == [
        (112, "Made in Abyss"),
        (110, "Ping Pong"),
    ]
    assert primary.calls == []
    assert "recommendations.sprout" in store
    assert "recommendations.anilist" not in store


def test_switching_provider_leaves_other_cache_untouched() -> None:
    store = MemoryStore({"settings": _saved_settings(refresh_interval_days=5)})
    anilist = FakeAniList(HISTORY, mal_map={10: 110})
    secondary = FakeSecondary([SproutCandidate(mal_id=10, title="Ping Pong")])
    engine = _build(store, secondary=secondary, anilist=anilist)

    asyncio.run(engine.run())
    primary_cache = store._data["recommendations.anilist"]
    store._data["settings"]["recommendationsProvider"] = "sprout"
    asyncio.run(engine.run())

    assert store._data["recommendations.anilist"] == primary_cache
    assert store._data["recommendations.sprout"]["items"][0]["id"] == 110


def test_provider_error_falls_back_to_stale_list() -> None:
    stale_settings = _saved_settings(
        refresh_interval_days=1, next_refresh_at=DAY_ZERO - timedelta(days=1)
    )
    stale_entry = {
        "provider": "anilist",
        "items": [{"id": 99, "title": "Old pick"}],
        "savedAt": (DAY_ZERO - timedelta(days=2)).isoformat(),
    }
    store = MemoryStore({"settings": stale_settings, "recommendations.anilist": stale_entry})
    primary = FakePrimary(error=ProviderError("anilist", "down"))

    result = asyncio.run(_build(store, primary=primary).run())

    assert [item.id for item in result.items] == [99]
    assert result.error is not None
    assert store._data["settings"] == stale_settings


def test_provider_error_without_cache_returns_empty() -> None:
    store = MemoryStore({"settings": _saved_settings()})
    primary = FakePrimary(error=ProviderError("anilist", "down"))

    result = asyncio.run(_build(store, primary=primary).run())

    assert result.items == []
    assert result.setup_required is False
    assert result.error == "anilist: down"


def test_missing_username_reports_error() -> None:
    store = MemoryStore({"settings": _saved_settings()})

    result = asyncio.run(_build(store, username=None).run())

    assert result.items == []
    assert result.error is not None


def test_empty_result_is_not_cached() -> None:
    store = MemoryStore({"settings": _saved_settings(refresh_interval_days=4)})
    secondary = FakeSecondary([])
    store._data["settings"]["recommendationsProvider"] = "sprout"

    result = asyncio.run(_build(store, secondary=secondary).run())

    assert result.items == []
    assert "recommendations.sprout" not in store
    assert store._data["settings"]["nextRefresh"] is None


def test_concurrent_runs_share_one_fetch() -> None:
    store = MemoryStore({"settings": _saved_settings(refresh_interval_days=1)})
    primary = FakePrimary(PRIMARY_ITEMS)
    primary.delay = 0.01
    engine = _build(store, primary=primary)

    async def scenario():
        return await asyncio.gather(engine.run(), engine.run())

    first, second = asyncio.run(scenario())

    assert len(primary.calls) == 1
    assert first.items == second.items == PRIMARY_ITEMS
    assert second.from_cache is True


def test_save_settings_rejects_invalid_draft() -> None:
    engine = _build(MemoryStore())

    with pytest.raises(SettingsValidationError):
        asyncio.run(engine.save_settings(RecommendationSettings(recommendation_count=-1)))


def test_first_save_schedules_refresh() -> None:
    store = MemoryStore()
    engine = _build(store)

    outcome = asyncio.run(engine.save_settings(RecommendationSettings(refresh_interval_days=3)))

    assert outcome.changed is True
    assert outcome.rescheduled is True
    assert outcome.settings.next_refresh_at == DAY_ZERO + timedelta(days=3)
    assert store._data["settings"]["daysBeforeRefreshing"] == 3


def test_unchanged_save_is_a_no_op() -> None:
    saved = _saved_settings(next_refresh_at=DAY_ZERO)
    store = MemoryStore({"settings": saved})
    engine = _build(store)

    outcome = asyncio.run(engine.save_settings(RecommendationSettings()))

    assert outcome.changed is False
    assert store._data["settings"] == saved


def test_provider_change_keeps_refresh_deadline() -> None:
    store = MemoryStore({"settings": _saved_settings(next_refresh_at=DAY_ZERO)})
    engine = _build(store)

    outcome = asyncio.run(engine.save_settings(RecommendationSettings(provider="sprout")))

    assert outcome.changed is True
    assert outcome.rescheduled is False
    assert outcome.settings.next_refresh_at == DAY_ZERO


def test_disabling_cache_on_save_clears_lists() -> None:
    store = MemoryStore(
        {
            "settings": _saved_settings(next_refresh_at=DAY_ZERO),
            "recommendations.anilist": [{"id": 1, "title": "A"}],
        }
    )
    engine = _build(store)

    outcome = asyncio.run(
        engine.save_settings(RecommendationSettings(refresh_interval_days=0))
    )

    assert outcome.settings.next_refresh_at is None
    assert "recommendations.anilist" not in store
