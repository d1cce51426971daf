"""Publishers: the write end of a pipeline."""

from ledgerline.sinks.publish import DryRunPublisher, WebhookPublisher

__all__ = ["DryRunPublisher", "WebhookPublisher"]
