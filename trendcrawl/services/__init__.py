"""Scheduling, execution and crawl-log services."""

from trendcrawl.services.crawl_log import (
    CompositeCrawlLog,
    CrawlLogEntry,
    CrawlLogSink,
    LoggingCrawlLog,
)
from trendcrawl.services.executor import CrawlExecutor, CrawlTarget, HttpCrawlExecutor
from trendcrawl.services.recurring import RecurringCrawlPlanner
from trendcrawl.services.scheduler import CrawlScheduler

__all__ = [
    "CompositeCrawlLog",
    "CrawlExecutor",
    "CrawlLogEntry",
    "CrawlLogSink",
    "CrawlScheduler",
    "CrawlTarget",
    "HttpCrawlExecutor",
    "LoggingCrawlLog",
    "RecurringCrawlPlanner",
]
