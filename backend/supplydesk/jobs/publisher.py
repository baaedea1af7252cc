from __future__ import annotations

import asyncio
import datetime
import enum
import logging
from dataclasses import dataclass

from supplydesk.errors import (
    AllSourcesUnavailable,
    ConfirmationTimeout,
    LedgerSubmissionFailure,
)
from supplydesk.ledger.client import LedgerWriter, to_uint256
from supplydesk.snapshot.service import SnapshotService

logger = logging.getLogger(__name__)

DEFAULT_INTERVAL_SECONDS = 30 * 60


class PublishState(str, enum.Enum):
    IDLE = "idle"
    PUBLISHING = "publishing"


@dataclass(frozen=True)
class PublishResult:
    tx_hash: str
    block_number: int
    symbols: int
    published_at: datetime.datetime


class SupplyPublisher:
    """Writes the reconciled snapshot to the ledger on a fixed interval.

    One cycle runs at ``start()`` and then every ``interval_seconds``. A tick
    that fires while a cycle is still publishing is skipped, not queued.
    Cycle failures are logged and never leave this class.
    """

    def __init__(
        self,
        snapshot_service: SnapshotService,
        ledger: LedgerWriter,
        interval_seconds: float = DEFAULT_INTERVAL_SECONDS,
        confirmation_timeout_seconds: float = 300.0,
        explorer_tx_url: str | None = None,
    ) -> None:
        self.snapshot_service = snapshot_service
        self.ledger = ledger
        self.interval_seconds = interval_seconds
        self.confirmation_timeout_seconds = confirmation_timeout_seconds
        self.explorer_tx_url = explorer_tx_url
        self.state = PublishState.IDLE
        self.last_result: PublishResult | None = None
        self.last_error: str | None = None
        self.skipped_cycles = 0
        self._publish_lock = asyncio.Lock()
        self._timer_task: asyncio.Task | None = None
        self._cycle_tasks: set[asyncio.Task] = set()

    @property
    def running(self) -> bool:
        return self._timer_task is not None

    async def start(self) -> None:
        if self._timer_task is not None:
            return
        self._timer_task = asyncio.create_task(self._timer_loop())
        logger.info("Supply publisher started (interval %gs)", self.interval_seconds)

    async def stop(self) -> None:
        tasks = list(self._cycle_tasks)
        if self._timer_task is not None:
            tasks.append(self._timer_task)
        self._timer_task = None
        for task in tasks:
            task.cancel()
        for task in tasks:
            try:
                await task
            except asyncio.CancelledError:
                pass
        self._cycle_tasks.clear()
        logger.info("Supply publisher stopped")

    async def _timer_loop(self) -> None:
        loop = asyncio.get_running_loop()
        next_tick = loop.time()
        while True:
            # Fixed-rate ticks: a slow cycle does not push the schedule back.
            task = asyncio.create_task(self.publish_once())
            self._cycle_tasks.add(task)
            task.add_done_callback(self._cycle_tasks.discard)
            next_tick += self.interval_seconds
            await asyncio.sleep(max(0.0, next_tick - loop.time()))

    async def publish_once(self) -> PublishResult | None:
        if self._publish_lock.locked():
            self.skipped_cycles += 1
            logger.warning("Publish cycle still in flight; skipping this trigger")
            return None

        async with self._publish_lock:
            self.state = PublishState.PUBLISHING
            try:
                result = await self._publish()
            except AllSourcesUnavailable as exc:
                self.last_error = str(exc)
                logger.error("Publish aborted, no snapshot available: %s", exc)
            except ConfirmationTimeout as exc:
                self.last_error = str(exc)
                logger.error("Publish unconfirmed: %s", exc)
            except LedgerSubmissionFailure as exc:
                self.last_error = str(exc)
                logger.error("Publish failed: %s", exc)
            except ValueError as exc:
                self.last_error = str(exc)
                logger.error("Publish aborted, supply conversion failed: %s", exc)
            except Exception as exc:
                self.last_error = str(exc)
                logger.exception("Publish failed unexpectedly")
            else:
                self.last_result = result
                self.last_error = None
                return result
            finally:
                self.state = PublishState.IDLE
        return None

    async def _publish(self) -> PublishResult:
        logger.info("Fetching snapshot for publishing")
        snapshot = await self.snapshot_service.get_snapshot()
        symbols = [asset.symbol for asset in snapshot]
        supplies = [to_uint256(asset.circulating_supply_median) for asset in snapshot]
        if not symbols:
            raise LedgerSubmissionFailure("Snapshot is empty; nothing to publish")

        logger.info("Updating %d symbols on-chain", len(symbols))
        handle = await asyncio.to_thread(self.ledger.submit_batch, symbols, supplies)
        if self.explorer_tx_url:
            logger.info("Tx: %s%s", self.explorer_tx_url, handle.tx_hash)
        receipt = await asyncio.to_thread(handle.wait, self.confirmation_timeout_seconds)
        logger.info(
            "Updated %d symbols in tx %s, block %d",
            len(symbols),
            receipt.tx_hash,
            receipt.block_number,
        )
        return PublishResult(
            tx_hash=receipt.tx_hash,
            block_number=receipt.block_number,
            symbols=len(symbols),
            published_at=datetime.datetime.now(datetime.UTC),
        )
