"""Command handling for the recommendation tray.

Every user action in the tray arrives as a typed command and is handled by a
single controller that owns the session state: the edited settings draft, the
current recommendation list and the paging state.
"""

from __future__ import annotations

import logging
from typing import Annotated, Any, Awaitable, Callable, Literal, Union

from pydantic import BaseModel, ConfigDict, Field, TypeAdapter
from pydantic.alias_generators import to_camel

from .models import (
    ProviderName,
    Recommendation,
    RecommendationSettings,
)
from .pagination import PageState, available_genres, page_window
from .services.engine import RecommendationEngine
from .utils import parse_numeric_field

logger = logging.getLogger(__name__)

Screen = Literal["setup", "settings", "recommendations"]

GENERIC_SAVE_ERROR = (
    "An error occurred on saving settings. Check the logs for more information"
)
GENERIC_REFRESH_ERROR = (
    "Recommendations could not be refreshed. Check the logs for more information"
)


class OpenTray(BaseModel):
    type: Literal["open_tray"] = "open_tray"


class OpenSettings(BaseModel):
    type: Literal["open_settings"] = "open_settings"


class EditRecommendationCount(BaseModel):
    type: Literal["edit_recommendation_count"] = "edit_recommendation_count"
    value: str = ""


class EditRefreshDays(BaseModel):
    type: Literal["edit_refresh_days"] = "edit_refresh_days"
    value: str = ""


class SelectProvider(BaseModel):
    type: Literal["select_provider"] = "select_provider"
    provider: ProviderName


class SaveSettings(BaseModel):
    type: Literal["save_settings"] = "save_settings"


class CancelSettings(BaseModel):
    type: Literal["cancel_settings"] = "cancel_settings"


class ToggleFilters(BaseModel):
    type: Literal["toggle_filters"] = "toggle_filters"


class SelectGenre(BaseModel):
    type: Literal["select_genre"] = "select_genre"
    genre: str | None = None


class GoToPage(BaseModel):
    type: Literal["go_to_page"] = "go_to_page"
    page: int


class NextPage(BaseModel):
    type: Literal["next_page"] = "next_page"


class PreviousPage(BaseModel):
    type: Literal["previous_page"] = "previous_page"


class FirstPage(BaseModel):
    type: Literal["first_page"] = "first_page"


class LastPage(BaseModel):
    type: Literal["last_page"] = "last_page"


class ChangePageSize(BaseModel):
    type: Literal["change_page_size"] = "change_page_size"
    page_size: int = Field(alias="pageSize")

    model_config = ConfigDict(populate_by_name=True)


TrayCommand = Annotated[
    Union[
        OpenTray,
        OpenSettings,
        EditRecommendationCount,
        EditRefreshDays,
        SelectProvider,
        SaveSettings,
        CancelSettings,
        ToggleFilters,
        SelectGenre,
        GoToPage,
        NextPage,
        PreviousPage,
        FirstPage,
        LastPage,
        ChangePageSize,
    ],
    Field(discriminator="type"),
]

COMMAND_ADAPTER: TypeAdapter[TrayCommand] = TypeAdapter(TrayCommand)


def parse_command(payload: Any) -> TrayCommand:
    """Validate a raw command payload (raises ``pydantic.ValidationError``)."""

    return COMMAND_ADAPTER.validate_python(payload)


class Notification(BaseModel):
    level: Literal["info", "success", "error"]
    message: str


class TrayView(BaseModel):
    """Snapshot of everything the host needs to draw the tray."""

    model_config = ConfigDict(alias_generator=to_camel, populate_by_name=True)

    screen: Screen
    items: list[Recommendation] = Field(default_factory=list)
    total_items: int = 0
    current_page: int = 1
    total_pages: int = 0
    page_size: int
    page_size_options: list[int]
    page_links: list[int] = Field(default_factory=list)
    genres: list[str] = Field(default_factory=list)
    selected_genre: str | None = None
    filters_open: bool = False
    settings: RecommendationSettings
    can_save: bool
    notifications: list[Notification] = Field(default_factory=list)


class TrayController:
    """Owns one user's tray session and applies commands to it."""

    def __init__(self, engine: RecommendationEngine):
        self._engine = engine
        self.page_state = PageState()
        self.recommendations: list[Recommendation] = []
        self.screen: Screen = "setup"
        self.draft = RecommendationSettings()
        self.filters_open = False
        self._notifications: list[Notification] = []
        self._handlers: dict[type[BaseModel], Callable[[Any], Awaitable[None]]] = {
            OpenTray: self._open_tray,
            OpenSettings: self._open_settings,
            EditRecommendationCount: self._edit_recommendation_count,
            EditRefreshDays: self._edit_refresh_days,
            SelectProvider: self._select_provider,
            SaveSettings: self._save_settings,
            CancelSettings: self._cancel_settings,
            ToggleFilters: self._toggle_filters,
            SelectGenre: self._select_genre,
            GoToPage: self._go_to_page,
            NextPage: self._next_page,
            PreviousPage: self._previous_page,
            FirstPage: self._first_page,
            LastPage: self._last_page,
            ChangePageSize: self._change_page_size,
        }

    async def dispatch(self, command: BaseModel) -> TrayView:
        handler = self._handlers.get(type(command))
        if handler is None:
            raise ValueError(f"Unsupported command {type(command).__name__}")
        await handler(command)
        return self.view()

    def notify(self, level: Literal["info", "success", "error"], message: str) -> None:
        self._notifications.append(Notification(level=level, message=message))

    def view(self) -> TrayView:
        page = self.page_state.page(self.recommendations)
        notifications, self._notifications = self._notifications, []
        return TrayView(
            screen=self.screen,
            items=page.visible,
            total_items=len(self.recommendations),
            current_page=self.page_state.current_page,
            total_pages=page.total_pages,
            page_size=self.page_state.page_size,
            page_size_options=list(self.page_state.page_size_options),
            page_links=page_window(self.page_state.current_page, page.total_pages),
            genres=available_genres(self.recommendations),
            selected_genre=self.page_state.selected_genre,
            filters_open=self.filters_open,
            settings=self.draft,
            can_save=self.draft.is_valid(),
            notifications=notifications,
        )

    def _total_pages(self) -> int:
        return self.page_state.page(self.recommendations).total_pages

    async def refresh(self) -> None:
        result = await self._engine.run()
        if result.setup_required:
            self.screen = "setup"
            self.draft = RecommendationSettings()
            return
        if result.items != self.recommendations:
            self.recommendations = result.items
            self.page_state.current_page = 1
        self.screen = "recommendations"
        if result.error:
            self.notify("error", GENERIC_REFRESH_ERROR)

    async def _open_tray(self, _: OpenTray) -> None:
        await self.refresh()

    async def _open_settings(self, _: OpenSettings) -> None:
        stored = await self._engine.load_settings()
        self.draft = stored or RecommendationSettings()
        self.screen = "settings"

    async def _edit_recommendation_count(self, command: EditRecommendationCount) -> None:
        self.draft = self.draft.model_copy(
            update={"recommendation_count": parse_numeric_field(command.value)}
        )

    async def _edit_refresh_days(self, command: EditRefreshDays) -> None:
        self.draft = self.draft.model_copy(
            update={"refresh_interval_days": parse_numeric_field(command.value)}
        )

    async def _select_provider(self, command: SelectProvider) -> None:
        self.draft = self.draft.model_copy(update={"provider": command.provider})

    async def _save_settings(self, _: SaveSettings) -> None:
        try:
            outcome = await self._engine.save_settings(self.draft)
        except Exception as exc:
            logger.exception("saveSettings failed: %s", exc)
            self.notify("error", GENERIC_SAVE_ERROR)
            return

        self.draft = outcome.settings
        if not outcome.changed:
            self.screen = "recommendations"
            return
        if outcome.rescheduled and outcome.settings.next_refresh_at is not None:
            self.notify(
                "info",
                "Recommendations will be cached until "
                f"{outcome.settings.next_refresh_at.isoformat()}",
            )
        self.notify("success", "Settings saved")
        await self.refresh()

    async def _cancel_settings(self, _: CancelSettings) -> None:
        stored = await self._engine.load_settings()
        self.screen = "recommendations" if stored is not None else "setup"
        self.draft = stored or RecommendationSettings()

    async def _toggle_filters(self, _: ToggleFilters) -> None:
        self.filters_open = not self.filters_open

    async def _select_genre(self, command: SelectGenre) -> None:
        self.page_state.select_genre(command.genre)

    async def _go_to_page(self, command: GoToPage) -> None:
        self.page_state.go_to(command.page, self._total_pages())

    async def _next_page(self, _: NextPage) -> None:
        self.page_state.next(self._total_pages())

    async def _previous_page(self, _: PreviousPage) -> None:
        self.page_state.previous(self._total_pages())

    async def _first_page(self, _: FirstPage) -> None:
        self.page_state.first(self._total_pages())

    async def _last_page(self, _: LastPage) -> None:
        self.page_state.last(self._total_pages())

    async def _change_page_size(self, command: ChangePageSize) -> None:
        self.page_state.set_page_size(command.page_size)
