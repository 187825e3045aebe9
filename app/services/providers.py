"""Common contract shared by recommendation providers."""

from __future__ import annotations

from typing import Collection, Protocol, Sequence, TypeVar

from ..models import GenreWeight, ProviderName

CandidateT_co = TypeVar("CandidateT_co", covariant=True)


class ProviderClient(Protocol[CandidateT_co]):
    """Source of candidate titles for the recommendation engine.

    The primary provider yields ready ``Recommendation`` objects; the secondary
    one yields candidates keyed by a foreign id that still need reconciling.
    """

    name: ProviderName

    async def fetch_candidates(
        self,
        affinity: Sequence[GenreWeight],
        exclude_ids: Collection[int],
        limit: int,
    ) -> list[CandidateT_co]:
        """Return candidates, raising ``ProviderError`` when the source fails."""
        ...
