"""
Content extraction: article-body selection and boilerplate removal.
"""

from .cleaner import BoilerplateCleaner, normalize_whitespace
from .selector import ContentSelector, render_text

__all__ = [
    "BoilerplateCleaner",
    "ContentSelector",
    "normalize_whitespace",
    "render_text",
]
