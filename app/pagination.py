"""Paging and genre filtering over a recommendation list.

Everything here works on an already computed list, so changing page, page
size or genre never triggers a provider call.
"""

from __future__ import annotations

import logging
import math
from dataclasses import dataclass, field
from typing import Sequence

from .models import Recommendation

logger = logging.getLogger(__name__)

ALL_GENRES = "all"
PAGE_SIZE_OPTIONS: tuple[int, ...] = (6, 15, 30)
DEFAULT_PAGE_SIZE = PAGE_SIZE_OPTIONS[0]
PAGE_WINDOW_SIZE = 3


@dataclass(slots=True)
class Page:
    visible: list[Recommendation]
    total_pages: int


def filter_by_genre(
    items: Sequence[Recommendation], genre: str | None
) -> list[Recommendation]:
    if genre is None or genre == ALL_GENRES:
        return list(items)
    return [item for item in items if item.has_genre(genre)]


def count_pages(item_count: int, page_size: int) -> int:
    if page_size <= 0:
        raise ValueError("page_size must be positive")
    return math.ceil(item_count / page_size)


def paginate(
    items: Sequence[Recommendation],
    page_size: int,
    page_number: int,
    genre: str | None = None,
) -> Page:
    """Return the slice of ``items`` shown on ``page_number`` (1-based).

    The genre filter is applied before counting pages. Pages past the end
    are simply empty.
    """

    filtered = filter_by_genre(items, genre)
    total_pages = count_pages(len(filtered), page_size)
    start = max(page_size * (page_number - 1), 0)
    end = max(page_size * page_number, 0)
    return Page(visible=filtered[start:end], total_pages=total_pages)


def available_genres(items: Sequence[Recommendation]) -> list[str]:
    """Genres present in ``items``, in first-seen order, for the filter menu."""

    genres: dict[str, None] = {}
    for item in items:
        for genre in item.genres:
            genres.setdefault(genre, None)
    return list(genres)


def page_window(
    current_page: int, total_pages: int, size: int = PAGE_WINDOW_SIZE
) -> list[int]:
    """Return the page numbers offered as direct links around ``current_page``."""

    start = max(1, current_page - 1)
    end = min(total_pages, start + size - 1)
    return list(range(start, end + 1))


@dataclass
class PageState:
    """Which page, page size and genre the viewer currently has selected."""

    current_page: int = 1
    page_size: int = DEFAULT_PAGE_SIZE
    selected_genre: str | None = None
    page_size_options: tuple[int, ...] = field(default=PAGE_SIZE_OPTIONS)

    def go_to(self, page_number: int, total_pages: int) -> bool:
        """Move to ``page_number`` clamped to the valid range.

        Returns ``False`` when the page does not change.
        """

        target = min(max(page_number, 1), max(total_pages, 1))
        if target == self.current_page:
            return False
        logger.debug("Page requested: %s", target)
        self.current_page = target
        return True

    def next(self, total_pages: int) -> bool:
        if self.current_page >= total_pages:
            return False
        return self.go_to(self.current_page + 1, total_pages)

    def previous(self, total_pages: int) -> bool:
        if self.current_page <= 1:
            return False
        return self.go_to(self.current_page - 1, total_pages)

    def first(self, total_pages: int) -> bool:
        return self.go_to(1, total_pages)

    def last(self, total_pages: int) -> bool:
        return self.go_to(total_pages, total_pages)

    def select_genre(self, genre: str | None) -> None:
        self.selected_genre = genre or None
        self.current_page = 1

    def set_page_size(self, page_size: int) -> None:
        if page_size not in self.page_size_options:
            raise ValueError(
                f"page size must be one of {', '.join(map(str, self.page_size_options))}"
            )
        self.page_size = page_size
        self.current_page = 1

    def page(self, items: Sequence[Recommendation]) -> Page:
        return paginate(items, self.page_size, self.current_page, self.selected_genre)
