"""Pydantic models describing recommendations, settings and cache payloads."""

from __future__ import annotations

from dataclasses import dataclass
from datetime import datetime, timezone
from typing import Any, Literal, Sequence

from pydantic import BaseModel, ConfigDict, Field, field_validator

from .utils import unique_by_id

ProviderName = Literal["anilist", "sprout"]
WatchStatus = Literal["COMPLETED", "CURRENT", "OTHER"]

PRIMARY_PROVIDER: ProviderName = "anilist"
SECONDARY_PROVIDER: ProviderName = "sprout"
PROVIDERS: tuple[ProviderName, ...] = (PRIMARY_PROVIDER, SECONDARY_PROVIDER)

EDIT_SENTINEL = -1
DEFAULT_RECOMMENDATION_COUNT = 15
DEFAULT_REFRESH_DAYS = 1


@dataclass(slots=True, frozen=True)
class WatchedEntry:
    """A single title from the user's list, as reported by AniList."""

    media_id: int
    genres: Sequence[Any]
    status: WatchStatus


@dataclass(slots=True, frozen=True)
class GenreWeight:
    """One genre of an affinity ranking with its occurrence count."""

    genre: str
    weight: int


class Recommendation(BaseModel):
    """A recommended title, always identified by its AniList id."""

    model_config = ConfigDict(populate_by_name=True)

    id: int
    title: str
    cover_image: str | None = Field(default=None, alias="coverImage")
    genres: list[str] = Field(default_factory=list)

    @field_validator("genres", mode="before")
    @classmethod
    def _unique_genres(cls, value: object) -> list[str]:
        if value is None:
            return []
        if isinstance(value, str) or not isinstance(value, (list, tuple, set)):
            raise ValueError("genres must be a list of strings")
        cleaned: list[str] = []
        for genre in value:
            if isinstance(genre, str) and genre and genre not in cleaned:
                cleaned.append(genre)
        return cleaned

    def has_genre(self, genre: str) -> bool:
        return genre in self.genres


def _as_utc(value: datetime | None) -> datetime | None:
    if value is not None and value.tzinfo is None:
        return value.replace(tzinfo=timezone.utc)
    return value


class RecommendationSettings(BaseModel):
    """User preferences persisted under the ``settings`` key.

    Field aliases match the keys written by earlier releases so existing
    stores keep loading. ``-1`` marks a field that is being edited and holds
    no usable number yet.
    """

    model_config = ConfigDict(populate_by_name=True)

    recommendation_count: int = Field(
        default=DEFAULT_RECOMMENDATION_COUNT,
        alias="numberOfRecommendations",
        ge=EDIT_SENTINEL,
    )
    refresh_interval_days: int = Field(
        default=DEFAULT_REFRESH_DAYS, alias="daysBeforeRefreshing", ge=EDIT_SENTINEL
    )
    provider: ProviderName = Field(
        default=PRIMARY_PROVIDER, alias="recommendationsProvider"
    )
    next_refresh_at: datetime | None = Field(default=None, alias="nextRefresh")

    @field_validator("recommendation_count", "refresh_interval_days", mode="before")
    @classmethod
    def _missing_as_sentinel(cls, value: object) -> object:
        if value is None or value == "":
            return EDIT_SENTINEL
        return value

    @field_validator("next_refresh_at")
    @classmethod
    def _assume_utc(cls, value: datetime | None) -> datetime | None:
        return _as_utc(value)

    def is_valid(self) -> bool:
        """Return whether these settings may be saved and used."""

        return self.recommendation_count > 0 and self.refresh_interval_days >= 0

    @property
    def caching_enabled(self) -> bool:
        return self.refresh_interval_days != 0

    def differs_from(self, other: "RecommendationSettings | None") -> bool:
        """Return whether any user-editable field changed compared to ``other``."""

        if other is None:
            return True
        return (
            self.recommendation_count != other.recommendation_count
            or self.refresh_interval_days != other.refresh_interval_days
            or self.provider != other.provider
        )

    def to_storage(self) -> dict[str, Any]:
        return self.model_dump(mode="json", by_alias=True)


class CacheEntry(BaseModel):
    """The last computed recommendation list of one provider."""

    model_config = ConfigDict(populate_by_name=True)

    provider: ProviderName
    items: list[Recommendation] = Field(default_factory=list)
    saved_at: datetime | None = Field(default=None, alias="savedAt")

    @field_validator("items")
    @classmethod
    def _unique_items(cls, value: list[Recommendation]) -> list[Recommendation]:
        return unique_by_id(value)

    @field_validator("saved_at")
    @classmethod
    def _assume_utc(cls, value: datetime | None) -> datetime | None:
        return _as_utc(value)

    @classmethod
    def from_storage(cls, provider: ProviderName, payload: object) -> "CacheEntry | None":
        """Rebuild an entry from its stored form.

        Older stores kept only the bare list of items under the key; those load
        with an unknown save time.
        """

        if payload is None:
            return None
        if isinstance(payload, list):
            return cls(provider=provider, items=payload)
        if isinstance(payload, dict):
            data = {**payload}
            data["provider"] = provider
            return cls.model_validate(data)
        raise TypeError(f"Unexpected cache payload type {type(payload).__name__}")

    def to_storage(self) -> dict[str, Any]:
        return self.model_dump(mode="json", by_alias=True)
