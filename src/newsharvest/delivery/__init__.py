"""Destinations for accepted articles."""

from .sinks import ConsoleSink, DeliverySink, WebhookSink, build_payload, create_sink

__all__ = ["ConsoleSink", "DeliverySink", "WebhookSink", "build_payload", "create_sink"]
