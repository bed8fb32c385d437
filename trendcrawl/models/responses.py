"""Generic API response envelope model.

Every crawl-engine endpoint wraps its payload in this envelope:
{ success: bool, data: T | None, error: str | None, meta: dict | None }
"""

from __future__ import annotations

from typing import Generic, TypeVar

from pydantic import BaseModel

T = TypeVar("T")


class ApiResponse(BaseModel, Generic[T]):
    """JSON envelope shared by the task, scheduler and health routers."""

    success: bool
    data: T | None = None
    error: str | None = None
    meta: dict | None = None
