from __future__ import annotations

import logging
from dataclasses import dataclass

from supplydesk.cache import Cache, build_cache
from supplydesk.config.settings import Settings
from supplydesk.jobs.publisher import SupplyPublisher
from supplydesk.ledger.client import LedgerClient
from supplydesk.snapshot.service import SnapshotService

logger = logging.getLogger(__name__)


@dataclass
class AppContext:
    """Process-owned services; nothing runs until ``start()``."""

    cache: Cache
    snapshot_service: SnapshotService
    publisher: SupplyPublisher | None = None

    async def start(self) -> None:
        await self.cache.start()
        if self.publisher is not None:
            await self.publisher.start()

    async def stop(self) -> None:
        if self.publisher is not None:
            await self.publisher.stop()
        await self.cache.stop()


def build_publisher(settings: Settings, snapshot_service: SnapshotService) -> SupplyPublisher:
    return SupplyPublisher(
        snapshot_service,
        LedgerClient.from_settings(settings.ledger),
        interval_seconds=settings.publish_interval_seconds,
        confirmation_timeout_seconds=settings.ledger.confirmation_timeout_seconds,
        explorer_tx_url=settings.ledger.explorer_tx_url,
    )


def build_context(settings: Settings, with_publisher: bool | None = None) -> AppContext:
    cache = build_cache(settings)
    snapshot_service = SnapshotService(
        cache,
        ttl_seconds=settings.cache.ttl_seconds,
        timeout_seconds=settings.providers.timeout_seconds,
        limit=settings.snapshot_limit,
    )
    if with_publisher is None:
        with_publisher = settings.publisher_enabled
    publisher = None
    if with_publisher:
        if settings.ledger.is_configured:
            publisher = build_publisher(settings, snapshot_service)
        else:
            logger.warning("Ledger settings incomplete; supply publisher disabled")
    return AppContext(cache=cache, snapshot_service=snapshot_service, publisher=publisher)
