"""Outbound integrations."""

from trendcrawl.integration.webhook import WebhookCrawlLog

__all__ = ["WebhookCrawlLog"]
