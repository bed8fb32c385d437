"""Configuration module — settings and recurring crawl schedules."""

from trendcrawl.config.schedules import ScheduleConfig, load_crawl_schedules
from trendcrawl.config.settings import CrawlerSettings

__all__ = [
    "CrawlerSettings",
    "ScheduleConfig",
    "load_crawl_schedules",
]
