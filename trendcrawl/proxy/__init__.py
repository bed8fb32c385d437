"""Proxy package — endpoint model and rotation pool."""

from trendcrawl.proxy.pool import ProxyPool
from trendcrawl.proxy.types import ProxyEndpoint

__all__ = ["ProxyEndpoint", "ProxyPool"]
