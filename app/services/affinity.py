"""Genre affinity derived from a user's watch history."""

from __future__ import annotations

import logging
from collections import Counter
from typing import Iterable

from ..models import GenreWeight, WatchedEntry

logger = logging.getLogger(__name__)

AFFINITY_STATUSES = frozenset({"COMPLETED", "CURRENT"})
TOP_GENRE_COUNT = 3


def watched_entries(entries: Iterable[WatchedEntry]) -> list[WatchedEntry]:
    """Return the entries that count as watched (completed or in progress)."""

    return [entry for entry in entries if entry.status in AFFINITY_STATUSES]


def watched_ids(entries: Iterable[WatchedEntry]) -> set[int]:
    return {entry.media_id for entry in watched_entries(entries)}


def score_affinity(
    entries: Iterable[WatchedEntry], *, limit: int = TOP_GENRE_COUNT
) -> list[GenreWeight]:
    """Rank genres by how often they appear in the watched titles.

    Counting happens in history order, and ``Counter.most_common`` orders equal
    counts by first insertion, so ties keep the genre that was seen first.
    Malformed genres are logged and skipped.
    """

    counts: Counter[str] = Counter()
    for entry in watched_entries(entries):
        try:
            genres = list(entry.genres or ())
        except TypeError:
            logger.warning("Skipping unreadable genres for media %s", entry.media_id)
            continue
        for genre in genres:
            if not isinstance(genre, str) or not genre:
                logger.warning(
                    "Skipping malformed genre %r for media %s", genre, entry.media_id
                )
                continue
            counts[genre] += 1

    return [GenreWeight(genre, weight) for genre, weight in counts.most_common(limit)]
