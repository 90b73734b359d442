"""Feed retrieval from the news aggregation API."""

from .client import FeedClient, parse_posts

__all__ = ["FeedClient", "parse_posts"]
