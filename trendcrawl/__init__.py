"""trendcrawl — crawl task scheduling and execution-control service."""

__version__ = "1.0.0"
