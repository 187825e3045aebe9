"""Exception types raised by the recommendation core."""

from __future__ import annotations


class PickedForYouError(Exception):
    """Base class for recoverable recommendation failures."""


class ProviderError(PickedForYouError):
    """An external catalog or recommendation service could not be queried."""

    def __init__(self, provider: str, message: str):
        super().__init__(f"{provider}: {message}")
        self.provider = provider


class SettingsValidationError(PickedForYouError):
    """Stored or edited settings are missing or out of range."""
