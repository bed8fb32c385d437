"""Proxy rotation pool with round-robin and random selection.

Endpoints are loaded from configuration (proxy URL strings, optionally with
embedded credentials) or added at runtime. Selection only ever returns
active endpoints. An endpoint marked failed is deactivated for good: there
is no background re-probing.
"""

from __future__ import annotations

import logging
import random

from trendcrawl.proxy.types import ProxyEndpoint

logger = logging.getLogger(__name__)


class ProxyPool:
    """Holds outbound proxy endpoints and hands them out in rotation."""

    def __init__(self, endpoints: list[ProxyEndpoint] | None = None) -> None:
        self._proxies: list[ProxyEndpoint] = []
        self._index: int = 0
        for endpoint in endpoints or []:
            self.add_endpoint(endpoint)

    @classmethod
    def from_urls(cls, urls: list[str]) -> ProxyPool:
        pool = cls([ProxyEndpoint.from_url(url) for url in urls])
        logger.info("Proxy pool initialized with %d endpoints", pool.active_count())
        return pool

    # ------------------------------------------------------------------
    # Membership
    # ------------------------------------------------------------------

    def add_endpoint(self, endpoint: ProxyEndpoint) -> None:
        """Add an endpoint to the pool. Inactive endpoints are ignored."""
        if not endpoint.active:
            logger.debug("Ignoring inactive proxy %s", endpoint.address)
            return
        self._proxies.append(endpoint)

    # ------------------------------------------------------------------
    # Selection
    # ------------------------------------------------------------------

    def next_endpoint(self) -> ProxyEndpoint | None:
        """Next active endpoint in round-robin order, or None if none are active."""
        pool_size = len(self._proxies)
        for _ in range(pool_size):
            proxy = self._proxies[self._index % pool_size]
            self._index = (self._index + 1) % pool_size
            if proxy.active:
                return proxy
        return None

    def random_endpoint(self) -> ProxyEndpoint | None:
        """Uniformly random active endpoint, or None if none are active."""
        active = [p for p in self._proxies if p.active]
        if not active:
            return None
        return random.choice(active)

    # ------------------------------------------------------------------
    # Health tracking
    # ------------------------------------------------------------------

    def mark_failed(self, endpoint: ProxyEndpoint) -> None:
        """Deactivate the pooled endpoint with the same address."""
        for proxy in self._proxies:
            if proxy.address == endpoint.address:
                proxy.active = False
                proxy.failure_count += 1
                logger.warning(
                    "Proxy deactivated: %s (%d active remaining)",
                    proxy.address,
                    self.active_count(),
                    extra={"proxy_used": proxy.address},
                )
                return

    def mark_success(self, endpoint: ProxyEndpoint) -> None:
        """Record a successful request through the proxy."""
        endpoint.success_count += 1

    # ------------------------------------------------------------------
    # Stats
    # ------------------------------------------------------------------

    def active_count(self) -> int:
        return sum(1 for p in self._proxies if p.active)

    def has_any(self) -> bool:
        """True when at least one endpoint is still selectable."""
        return self.active_count() > 0

    def __len__(self) -> int:
        return len(self._proxies)

    def get_stats(self) -> dict:
        """Pool statistics for the metrics endpoint. Credentials are omitted."""
        total = len(self._proxies)
        active = self.active_count()
        return {
            "total": total,
            "active": active,
            "inactive": total - active,
            "proxies": [
                {
                    "address": p.address,
                    "protocol": p.protocol,
                    "active": p.active,
                    "success_count": p.success_count,
                    "failure_count": p.failure_count,
                }
                for p in self._proxies
            ],
        }
