"""Tests for genre affinity scoring."""

from __future__ import annotations

from app.models import WatchedEntry
from app.services.affinity import score_affinity, watched_ids


def _entry(media_id: int, genres, status: str = "COMPLETED") -> WatchedEntry:
    return WatchedEntry(media_id=media_id, genres=genres, status=status)  # type: ignore[arg-type]


def _pairs(ranking):
    return [(weight.genre, weight.weight) for weight in ranking]


def test_ties_keep_first_seen_order() -> None:
    history = [
        _entry(1, ["Action", "Drama"]),
        _entry(2, ["Action"]),
        _entry(3, ["Comedy"]),
    ]

    assert _pairs(score_affinity(history)) == [
        ("Action", 2),
        ("Drama", 1),
        ("Comedy", 1),
    ]


def test_only_top_three_genres_are_kept() -> None:
    history = [
        _entry(1, ["Romance", "Drama", "Sports", "Mecha"]),
        _entry(2, ["Mecha", "Sports"]),
        _entry(3, ["Mecha"]),
    ]

    ranking = score_affinity(history)

    assert _pairs(ranking) == [("Mecha", 3), ("Sports", 2), ("Romance", 1)]


def test_fewer_genres_than_limit() -> None:
    assert _pairs(score_affinity([_entry(1, ["Horror"])])) == [("Horror", 1)]


def test_empty_history_yields_empty_ranking() -> None:
    assert score_affinity([]) == []


def test_only_completed_and_current_entries_count() -> None:
    history = [
        _entry(1, ["Action"], status="OTHER"),
        _entry(2, ["Action"], status="OTHER"),
        _entry(3, ["Slice of Life"], status="CURRENT"),
    ]

    assert _pairs(score_affinity(history)) == [("Slice of Life", 1)]
    assert watched_ids(history) == {3}


def test_malformed_genres_are_skipped() -> None:
    history = [
        _entry(1, ["Action", None, 42, ""]),
        _entry(2, 17),
        _entry(3, ["Action", "Fantasy"]),
    ]

    assert _pairs(score_affinity(history)) == [("Action", 2), ("Fantasy", 1)]


def test_ranking_is_sorted_descending() -> None:
    history = [
        _entry(index, genres)
        for index, genres in enumerate(
            [["A", "B", "C"], ["C"], ["B", "C"], ["D"], ["D"], ["D"], ["A"]]
        )
    ]

    weights = [weight.weight for weight in score_affinity(history)]

    assert len(weights) <= 3
    assert weights == sorted(weights, reverse=True)
    assert _pairs(score_affinity(history)) == [("C", 3), ("D", 3), ("A", 2)]
