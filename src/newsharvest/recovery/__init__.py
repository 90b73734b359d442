"""
Retry control for navigation and delivery calls.
"""

from .retry import with_retry

__all__ = ["with_retry"]
