"""Recurring crawl schedule models and YAML loader.

Provides typed Pydantic models for per-platform recurring crawl plans
and a loader function that parses the YAML config into those models.
"""

from __future__ import annotations

import logging
from pathlib import Path

import yaml
from pydantic import BaseModel, Field

logger = logging.getLogger(__name__)


class ScheduleConfig(BaseModel):
    """Recurring crawl plan for a single platform."""

    platform: str = Field(..., min_length=1)
    categories: list[str] = Field(default_factory=list)
    interval_minutes: int = Field(default=60, ge=1)
    enabled: bool = True
    keywords: list[str] | None = None
    max_pages: int | None = Field(default=None, ge=1)


def load_crawl_schedules(yaml_path: str) -> dict[str, ScheduleConfig]:
    """Parse a crawl schedules YAML file into typed ScheduleConfig objects.

    Args:
        yaml_path: Path to the YAML configuration file.

    Returns:
        A dict mapping platform names to ScheduleConfig instances. If the
        file is missing or malformed, returns an empty dict.
    """
    path = Path(yaml_path)

    if not path.exists():
        logger.warning("Crawl schedules file not found at %s — no recurring crawls", yaml_path)
        return {}

    try:
        raw = yaml.safe_load(path.read_text(encoding="utf-8"))
    except yaml.YAMLError as exc:
        logger.error("Failed to parse crawl schedules YAML at %s: %s", yaml_path, exc)
        return {}

    if not isinstance(raw, dict) or not isinstance(raw.get("schedules"), dict):
        logger.warning("Crawl schedules YAML missing 'schedules' key — no recurring crawls")
        return {}

    schedules: dict[str, ScheduleConfig] = {}
    for platform, config in raw["schedules"].items():
        try:
            schedules[platform] = ScheduleConfig.model_validate(
                {"platform": platform, **(config or {})}
            )
        except Exception as exc:
            logger.error("Invalid schedule for platform '%s': %s — skipping", platform, exc)

    return schedules
