from __future__ import annotations

import asyncio
import logging

from pydantic import TypeAdapter, ValidationError

from supplydesk.cache import Cache
from supplydesk.errors import AllSourcesUnavailable
from supplydesk.providers import coingecko, coinmarketcap
from supplydesk.providers.selector import ProviderFetch, fetch_both
from supplydesk.reconciliation.reconciler import DEFAULT_LIMIT, reconcile
from supplydesk.schemas.asset import ReconciledAsset

logger = logging.getLogger(__name__)

SNAPSHOT_CACHE_KEY = "top_100_cryptos_median"

_SNAPSHOT_ADAPTER = TypeAdapter(list[ReconciledAsset])


class SnapshotService:
    """Serves the reconciled top-N list, recomputing it on a cache miss."""

    def __init__(
        self,
        cache: Cache,
        primary: ProviderFetch = coinmarketcap.fetch_top_assets,
        secondary: ProviderFetch = coingecko.fetch_top_assets,
        ttl_seconds: int | None = None,
        timeout_seconds: float = 10.0,
        limit: int = DEFAULT_LIMIT,
    ) -> None:
        self.cache = cache
        self.primary = primary
        self.secondary = secondary
        self.ttl_seconds = ttl_seconds
        self.timeout_seconds = timeout_seconds
        self.limit = limit
        self._compute_lock = asyncio.Lock()

    def _cached(self) -> list[ReconciledAsset] | None:
        cached = self.cache.get(SNAPSHOT_CACHE_KEY)
        if cached is None:
            return None
        if isinstance(cached, list) and all(isinstance(asset, ReconciledAsset) for asset in cached):
            return cached
        # Redis hands back plain dicts; anything that no longer validates is a miss.
        try:
            return _SNAPSHOT_ADAPTER.validate_python(cached)
        except ValidationError as exc:
            logger.warning("Discarding unreadable cached snapshot: %s", exc)
            self.cache.delete(SNAPSHOT_CACHE_KEY)
            return None

    async def _recompute(self) -> list[ReconciledAsset]:
        logger.info("Fetching top %d assets from both providers", self.limit)
        primary_quotes, secondary_quotes = await fetch_both(
            self.primary, self.secondary, self.timeout_seconds
        )
        try:
            snapshot = reconcile(primary_quotes, secondary_quotes, limit=self.limit)
        except AllSourcesUnavailable:
            logger.error("Both providers failed; snapshot not updated")
            raise

        self.cache.set(SNAPSHOT_CACHE_KEY, snapshot, self.ttl_seconds)
        logger.info("Cached snapshot with %d assets", len(snapshot))
        return snapshot

    async def get_snapshot(self) -> list[ReconciledAsset]:
        cached = self._cached()
        if cached is not None:
            logger.debug("Returning cached top %d snapshot", self.limit)
            return cached

        async with self._compute_lock:
            cached = self._cached()
            if cached is not None:
                return cached
            return await self._recompute()

    async def refresh(self) -> list[ReconciledAsset]:
        # Waits out any fetch in flight, then always fetches again.
        async with self._compute_lock:
            self.cache.delete(SNAPSHOT_CACHE_KEY)
            logger.info("Snapshot cache cleared")
            return await self._recompute()
