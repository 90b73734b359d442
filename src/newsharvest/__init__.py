"""
newsharvest - full-text article harvesting from a ranked news feed.
"""

from __future__ import annotations

__version__ = "0.1.0"

from .config import Config
from .pipeline import Pipeline

__all__ = ["__version__", "Config", "Pipeline"]
