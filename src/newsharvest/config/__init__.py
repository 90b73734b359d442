"""Configuration models and loaders."""

from .config import (
    BrowserConfig,
    CleanerRules,
    Config,
    DebugConfig,
    DeliveryConfig,
    ExtractionRules,
    FeedConfig,
    MonitoringConfig,
    PipelineSettings,
    QualityConfig,
    RetryConfig,
    find_config_file,
    load_config,
)

__all__ = [
    "BrowserConfig",
    "CleanerRules",
    "Config",
    "DebugConfig",
    "DeliveryConfig",
    "ExtractionRules",
    "FeedConfig",
    "MonitoringConfig",
    "PipelineSettings",
    "QualityConfig",
    "RetryConfig",
    "find_config_file",
    "load_config",
]
