"""
News aggregation API client.
"""

from __future__ import annotations

from datetime import datetime
from typing import Any, Dict, List, Optional

import httpx
import structlog

from newsharvest.config.config import FeedConfig
from newsharvest.exceptions import ConfigurationError, FeedError
from newsharvest.models import FeedItem

logger = structlog.get_logger(__name__)


def _parse_timestamp(value: Any) -> Optional[datetime]:
    if not value or not isinstance(value, str):
        return None
    try:
        return datetime.fromisoformat(value.replace("Z", "+00:00"))
    except ValueError:
        logger.debug("Unparseable published_at", value=value)
        return None


def _source_name(post: Dict[str, Any]) -> str:
    source = post.get("source")
    if isinstance(source, dict):
        return str(source.get("title") or source.get("domain") or "").strip()
    if isinstance(source, str):
        return source.strip()
    return ""


def parse_posts(payload: Any, limit: int) -> List[FeedItem]:
    """Turn an API payload (``{"results": [...]}`` or a bare list) into at most ``limit`` FeedItems."""
    if isinstance(payload, dict):
        posts = payload.get("results")
    else:
        posts = payload
    if not isinstance(posts, list):
        raise FeedError("Feed payload has no 'results' array")

    items: List[FeedItem] = []
    for position, post in enumerate(posts):
        if len(items) >= limit:
            break
        if not isinstance(post, dict):
            logger.warning("Skipping malformed feed entry", position=position)
            continue
        title = str(post.get("title") or "").strip()
        url = str(post.get("url") or "").strip()
        if not title or not url:
            logger.warning("Skipping feed entry without title or url", position=position)
            continue
        items.append(
            FeedItem(
                title=title,
                aggregator_url=url,
                published_at=_parse_timestamp(post.get("published_at")),
                source_name=_source_name(post),
            )
        )
    return items


class FeedClient:
    """Single parameterized GET against the posts endpoint."""

    def __init__(self, config: FeedConfig, transport: Optional[httpx.AsyncBaseTransport] = None) -> None:
        self.config = config
        self._transport = transport

    def _params(self) -> Dict[str, str]:
        if self.config.auth_token is None:
            raise ConfigurationError("Feed API credential is not configured")
        return {
            "auth_token": self.config.auth_token.get_secret_value(),
            "filter": self.config.filter,
            "public": str(self.config.public).lower(),
            "kind": self.config.kind,
            "regions": self.config.regions,
            "metadata": str(self.config.metadata).lower(),
        }

    async def fetch_items(self) -> List[FeedItem]:
        params = self._params()
        logger.info("Fetching feed", url=self.config.api_url, filter=self.config.filter, limit=self.config.limit)
        try:
            async with httpx.AsyncClient(timeout=self.config.timeout, transport=self._transport) as client:
                response = await client.get(self.config.api_url, params=params)
                response.raise_for_status()
                payload = response.json()
        except httpx.HTTPStatusError as e:
            raise FeedError(f"Feed request failed with HTTP {e.response.status_code}") from e
        except httpx.HTTPError as e:
            raise FeedError(f"Feed request failed: {e}") from e
        except ValueError as e:
            raise FeedError(f"Feed response is not valid JSON: {e}") from e

        items = parse_posts(payload, self.config.limit)
        logger.info("Feed fetched", items=len(items))
        return items
