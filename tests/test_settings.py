"""Configuration settings behaviour tests."""

from __future__ import annotations

import pytest

from app.config import Settings


def test_defaults_point_at_public_services() -> None:
    settings = Settings(_env_file=None)

    assert str(settings.anilist_api_url).startswith("https://graphql.anilist.co")
    assert str(settings.sprout_api_url).startswith("https://anime.ameo.dev")
    assert settings.anilist_username is None


def test_blank_credentials_are_treated_as_missing() -> None:
    settings = Settings(_env_file=None, ANILIST_TOKEN="   ", ANILIST_USERNAME=" kaze ")

    assert settings.anilist_token is None
    assert settings.anilist_username == "kaze"


def test_log_level_is_normalised() -> None:
    settings = Settings(_env_file=None, LOG_LEVEL="debug")

    assert settings.log_level == "DEBUG"


def test_invalid_log_level_raises() -> None:
    with pytest.raises(ValueError, match="LOG_LEVEL"):
        Settings(_env_file=None, LOG_LEVEL="chatty")
