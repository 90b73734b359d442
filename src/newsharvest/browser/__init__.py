"""Headless browser navigation: session lifecycle, click-through resolution, rendered snapshots."""

from .resolver import RedirectResolver
from .session import BrowserSession
from .snapshot import capture_document

__all__ = ["BrowserSession", "RedirectResolver", "capture_document"]
