"""
Configuration management for newsharvest using Pydantic.
"""

from __future__ import annotations

import logging
import os
from pathlib import Path
from typing import List, Literal, Optional
from urllib.parse import urlparse

import yaml
from pydantic import BaseModel, Field, SecretStr, field_validator, model_validator
from pydantic_settings import BaseSettings, SettingsConfigDict

from newsharvest.exceptions import ConfigurationError

# --- Setup Logging ---
log = logging.getLogger(__name__)


def _bare_host(host: str) -> str:
    host = host.strip().lower()
    return host[4:] if host.startswith("www.") else host


# --- Nested Configuration Models ---


class FeedConfig(BaseModel):
    """News aggregation API settings."""

    api_url: str = Field(default="https://cryptopanic.com/api/v1/posts/", description="Posts endpoint URL.")
    auth_token: Optional[SecretStr] = Field(default=None, description="API credential. Required.")
    filter: str = Field(default="rising", description="Server-side ranking filter.")
    kind: str = Field(default="news", description="Post kind to request.")
    regions: str = Field(default="en", description="Comma-separated region codes.")
    public: bool = Field(default=True, description="Request the public (non-personalised) feed.")
    metadata: bool = Field(default=True, description="Ask the API to include post metadata.")
    limit: int = Field(default=10, gt=0, description="Number of top items to process per run.")
    timeout: float = Field(default=20.0, gt=0, description="HTTP timeout in seconds for the feed request.")


class BrowserConfig(BaseModel):
    """Headless browser settings used for navigation and rendering."""

    headless: bool = True
    navigation_timeout: float = Field(default=45.0, gt=0, description="Hard bound in seconds for every navigation.")
    settle_timeout: float = Field(default=10.0, ge=0, description="Max seconds to wait for network idle.")
    user_agent: str = Field(
        default=(
            "Mozilla/5.0 (Windows NT 10.0; Win64; x64) AppleWebKit/537.36 "
            "(KHTML, like Gecko) Chrome/124.0 Safari/537.36"
        ),
        description="User-Agent string presented by the browser.",
    )
    viewport_width: int = Field(default=1366, gt=0)
    viewport_height: int = Field(default=900, gt=0)
    click_through_patterns: List[str] = Field(
        default_factory=lambda: ["/news/click/", "/click/"],
        description="href fragments identifying the aggregator's outbound click-through link.",
    )
    aggregator_hosts: List[str] = Field(
        default_factory=list,
        description="Hosts whose pages are searched for an outbound link. Defaults to the feed API host.",
    )
    launch_args: List[str] = Field(
        default_factory=lambda: ["--disable-blink-features=AutomationControlled", "--disable-dev-shm-usage"]
    )

    @field_validator("aggregator_hosts")
    @classmethod
    def normalize_hosts(cls, v: List[str]) -> List[str]:
        return [_bare_host(h) for h in v if h.strip()]


class ExtractionRules(BaseModel):
    """Rule table for content block selection."""

    min_block_length: int = Field(default=200, ge=0, description="Minimum text length of a content block.")
    content_selectors: List[str] = Field(
        default_factory=lambda: [
            "article",
            '[role="article"]',
            '[itemprop="articleBody"]',
            ".article-body",
            ".article-content",
            ".article__body",
            ".story-body",
            ".post-content",
            ".entry-content",
            ".post-body",
            ".content-body",
            "main",
            '[role="main"]',
            "#content",
        ],
        description="Ordered selectors; the first qualifying match wins.",
    )
    noise_selectors: List[str] = Field(
        default_factory=lambda: [
            "script",
            "style",
            "noscript",
            "meta",
            "link",
            "template",
            "svg",
            "nav",
            "header",
            "footer",
            "iframe",
            "aside",
            "form",
            '[role="navigation"]',
            '[role="banner"]',
            '[role="contentinfo"]',
            '[class*="advert"]',
            ".ad",
            ".ads",
            '[id^="ad-"]',
            '[class*="social"]',
            '[class*="share"]',
            '[class*="newsletter"]',
            '[class*="subscribe"]',
            '[class*="subscription"]',
            '[class*="sidebar"]',
            '[class*="menu"]',
            '[class*="navigation"]',
            '[class*="author-bio"]',
            '[class*="comments"]',
            '[id*="comments"]',
            '[class*="toolbar"]',
        ],
        description="Elements removed from the working copy before scoring.",
    )


class CleanerRules(BaseModel):
    """Rule table for boilerplate removal."""

    junk_lines: List[str] = Field(
        default_factory=lambda: [
            "RSS",
            "Advertisement",
            "Ad",
            "Sponsored",
            "Home",
            "News",
            "Share",
            "Share this",
            "Print",
            "Menu",
            "Back to all news",
            "Back to top",
            "Skip to content",
        ],
        description="Tokens removed when they are alone on a line (case-insensitive).",
    )
    trailing_markers: List[str] = Field(
        default_factory=lambda: [
            "Related Articles",
            "Related Posts",
            "Related News",
            "Read Next",
            "Share this article",
            "Share this post",
            "Follow us on",
            "Newsletter",
            "Sign up for our newsletter",
            "Originally published at",
            "Tags:",
            "Categories:",
            "About the author",
        ],
        description="Line-leading markers that start a trailing boilerplate section.",
    )
    phrases: List[str] = Field(
        default_factory=lambda: [
            "Read more:",
            "Read more",
            "Continue reading",
            "Click here to read more",
            "Subscribe now",
            "Subscribe to our newsletter",
            "Click here to subscribe",
            "Sign up now",
        ],
        description="Promotional phrases deleted wherever they occur (case-insensitive).",
    )


class QualityConfig(BaseModel):
    """Configuration for the quality gate."""

    min_content_length: int = Field(default=300, ge=0, description="Minimum character count to accept content.")
    min_word_count: int = Field(default=50, ge=0, description="Minimum count of alphabetic words.")
    security_phrases: List[str] = Field(
        default_factory=lambda: [
            "verify you are human",
            "security check",
            "captcha",
            "access denied",
            "cloudflare",
            "ddos protection",
            "please wait",
        ],
        description="Challenge-page phrases; any match rejects the page.",
    )

    @field_validator("security_phrases")
    @classmethod
    def lowercase_phrases(cls, v: List[str]) -> List[str]:
        return [phrase.lower() for phrase in v if phrase.strip()]


class RetryConfig(BaseModel):
    """Retry policy for navigation."""

    max_attempts: int = Field(default=3, ge=1, description="Total attempts including the first one.")
    backoff_base: float = Field(default=2.0, ge=0, description="Seconds; the wait after attempt n is base * n.")


class DeliveryConfig(BaseModel):
    """Outbound delivery settings."""

    webhook_url: Optional[str] = Field(default=None, description="Endpoint receiving accepted articles.")
    timeout: float = Field(default=15.0, gt=0)
    max_attempts: int = Field(default=3, ge=1)
    backoff_base: float = Field(default=2.0, ge=0)


class PipelineSettings(BaseModel):
    """Scheduling settings for a run."""

    inter_item_delay: float = Field(default=2.5, ge=0, description="Seconds between items (or chunks).")
    concurrency: int = Field(
        default=1, ge=1, description="1 = sequential shared context; >1 = chunked isolated contexts."
    )


class MonitoringConfig(BaseModel):
    """Configuration for logging and metrics."""

    log_level: str = Field(default="INFO", description="Logging level (e.g., DEBUG, INFO, WARNING).")
    log_file: str | None = Field(default=None, description="Path to a JSON log file. If None, logs to console.")
    prometheus_port: int | None = Field(default=None, description="Port for the Prometheus exporter. None to disable.")

    @field_validator("log_file", mode="before")
    @classmethod
    def create_parent_dir(cls, v: str | Path | None) -> str | None:
        if v is None:
            return None
        path = Path(v)
        path.parent.mkdir(parents=True, exist_ok=True)
        return str(path)


class DebugConfig(BaseModel):
    screenshot_dir: Optional[Path] = Field(default=None, description="Write a screenshot for every rejected item.")
    screenshot_format: Literal["png", "jpeg"] = "png"


# --- Main Configuration Class ---


class Config(BaseSettings):
    project_name: str = "newsharvest"
    feed: FeedConfig = Field(default_factory=FeedConfig)
    browser: BrowserConfig = Field(default_factory=BrowserConfig)
    extraction: ExtractionRules = Field(default_factory=ExtractionRules)
    cleaner: CleanerRules = Field(default_factory=CleanerRules)
    quality: QualityConfig = Field(default_factory=QualityConfig)
    retry: RetryConfig = Field(default_factory=RetryConfig)
    delivery: DeliveryConfig = Field(default_factory=DeliveryConfig)
    pipeline: PipelineSettings = Field(default_factory=PipelineSettings)
    monitoring: MonitoringConfig = Field(default_factory=MonitoringConfig)
    debug: DebugConfig = Field(default_factory=DebugConfig)

    model_config = SettingsConfigDict(env_prefix="NEWSHARVEST_", env_nested_delimiter="__", case_sensitive=False)

    @model_validator(mode="after")
    def default_aggregator_hosts(self) -> Config:
        if not self.browser.aggregator_hosts:
            host = urlparse(self.feed.api_url).hostname
            if host:
                self.browser.aggregator_hosts = [_bare_host(host)]
        return self

    @classmethod
    def from_yaml(cls, path: Path) -> Config:
        log.debug("Loading configuration from YAML file: %s", path)
        if not path.is_file():
            raise FileNotFoundError(f"Configuration file not found or is not a file: {path}")
        with open(path, "r", encoding="utf-8") as f:
            yaml_data = yaml.safe_load(f)
        if not yaml_data:
            log.warning("Configuration file is empty: %s. Using default settings.", path)
            return cls()
        # Init kwargs take priority over environment variables; unset sections still come from env.
        return cls(**yaml_data)

    def apply_legacy_env(self) -> Config:
        """Fill unset credentials from the historical variable names."""
        if self.feed.auth_token is None and os.getenv("CRYPTOPANIC_API_KEY"):
            self.feed.auth_token = SecretStr(os.environ["CRYPTOPANIC_API_KEY"])
        if self.delivery.webhook_url is None and os.getenv("WEBHOOK_URL"):
            self.delivery.webhook_url = os.environ["WEBHOOK_URL"]
        return self

    def require_credentials(self) -> None:
        """Raise ConfigurationError if the feed credential is missing."""
        token = self.feed.auth_token.get_secret_value() if self.feed.auth_token else ""
        if not token.strip():
            raise ConfigurationError(
                "Feed API credential is not configured "
                "(set NEWSHARVEST_FEED__AUTH_TOKEN or CRYPTOPANIC_API_KEY, or feed.auth_token in config.yaml)"
            )


def find_config_file() -> Path | None:
    current_dir = Path.cwd()
    for path in (current_dir / "config.yaml", current_dir / "config.yml"):
        if path.exists():
            return path
    return None


def load_config(path: Path | None = None) -> Config:
    """Load configuration from an explicit path, a config file in the cwd, or the environment."""
    config_path = path or find_config_file()
    if config_path:
        log.info("Loading configuration from: %s", config_path)
        config = Config.from_yaml(config_path)
    else:
        log.info("No config file found. Using environment and default settings.")
        config = Config()
    return config.apply_legacy_env()
