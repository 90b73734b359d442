"""
Exception hierarchy for newsharvest.
"""

from __future__ import annotations


class NewsHarvestError(Exception):
    """Base exception for all newsharvest errors."""


class ConfigurationError(NewsHarvestError):
    """Required configuration is missing or invalid. Fatal at startup."""


class FeedError(NewsHarvestError):
    """The feed request failed or returned an unusable payload."""


class NavigationError(NewsHarvestError):
    """A page could not be loaded or its outbound link could not be followed."""

    def __init__(self, message: str, url: str | None = None) -> None:
        super().__init__(message)
        self.url = url


class DeliveryError(NewsHarvestError):
    """The delivery endpoint rejected or did not acknowledge a result."""

    def __init__(self, message: str, status: int | None = None) -> None:
        super().__init__(message)
        self.status = status
