"""Utility helpers for the Picked For You service."""

from __future__ import annotations

import re
from datetime import datetime, timedelta
from typing import Iterable, Protocol, TypeVar


NON_DIGIT_TAIL_RE = re.compile(r"\D.*$")
SECONDS_PER_DAY = 24 * 60 * 60


class _HasId(Protocol):
    id: int


T = TypeVar("T", bound=_HasId)


def parse_numeric_field(raw: str, *, sentinel: int = -1) -> int:
    """Parse a numeric form value, dropping everything from the first non-digit.

    Returns ``sentinel`` when nothing numeric is left, which marks the field as
    being edited.
    """

    cleaned = NON_DIGIT_TAIL_RE.sub("", raw or "")
    if not cleaned:
        return sentinel
    return int(cleaned)


def days_between(first: datetime, second: datetime) -> int:
    """Return the number of whole days separating two instants."""

    delta = abs((second - first).total_seconds())
    return int(delta // SECONDS_PER_DAY)


def add_days(moment: datetime, days: int) -> datetime:
    return moment + timedelta(days=days)


def unique_by_id(items: Iterable[T]) -> list[T]:
    """Drop later items whose ``id`` was already seen, keeping order."""

    seen: set[int] = set()
    unique: list[T] = []
    for item in items:
        if item.id in seen:
            continue
        seen.add(item.id)
        unique.append(item)
    return unique


def cache_key(provider: str) -> str:
    """Return the storage key holding a provider's cached recommendations."""

    return f"recommendations.{provider}"
