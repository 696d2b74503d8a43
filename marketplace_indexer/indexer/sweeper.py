"""
Cron sweep over the auction table.

Each run refreshes a bounded slice of unsettled (or missing) auctions, starting
where the previous run stopped and wrapping around at the end of the table.
A persisted isRunning flag keeps two runs from overlapping across processes.
"""

import logging
import time
import traceback
from typing import Callable, List

from ..models import CronCheckpoint, CronResult, ScanResult
from ..store.base import AuctionStateStore
from .marketplace import MarketplaceReader
from .reconciler import EventReconciler

logger = logging.getLogger(__name__)


class CronSweeper:
    """Incremental refresh sweep and full-table consistency scan"""

    def __init__(self, reader: MarketplaceReader, reconciler: EventReconciler, store: AuctionStateStore,
                 max_refreshes: int = 10, max_auctions_processed: int = 100, stale_after: int = 60 * 60 * 2,
                 clock: Callable[[], float] = time.time):
        self.reader = reader
        self.reconciler = reconciler
        self.store = store
        self.max_refreshes = max_refreshes
        self.max_auctions_processed = max_auctions_processed
        self.stale_after = stale_after
        self.clock = clock

    async def run(self, max_refreshes: int = None, max_auctions_processed: int = None) -> CronResult:
        max_refreshes = self.max_refreshes if max_refreshes is None else max_refreshes
        max_auctions_processed = self.max_auctions_processed if max_auctions_processed is None else max_auctions_processed
        started = self.clock()

        checkpoint = await self.store.get_cron_checkpoint()
        if checkpoint.is_running:
            elapsed = started - (checkpoint.last_start_time or started)
            logger.info(f"runCron: refresh job already running, started {int(elapsed)} sec ago.")
            if elapsed > self.stale_after:
                logger.error(
                    f"runCron: last start time was over two hours ({int(elapsed)}s) ago! consider a forced reset"
                )
            return CronResult(status="already_running", next_auction_id=checkpoint.next_auction_id,
                              elapsed_seconds=elapsed)

        await self.store.set_cron_checkpoint(CronCheckpoint(
            is_running=True,
            last_start_time=started,
            next_auction_id=checkpoint.next_auction_id,
        ))

        result = CronResult(status="completed")
        last_examined = None
        try:
            total = await self.reader.auctions_length()
            start_id = checkpoint.next_auction_id or 0
            if start_id >= total:
                start_id = 0
            result.start_auction_id = start_id
            result.total_auctions = total
            logger.info(f"runCron: starting processing at: {start_id}, total number of auctions: {total}")

            cursor = start_id
            refreshes = 0
            while total > 0 and refreshes < max_refreshes and result.processed < max_auctions_processed:
                try:
                    stored = await self.store.get(cursor)
                    if stored is None:
                        logger.info(f"auction {cursor} missing in db, refreshing")
                        await self.reconciler.refresh_auction(cursor)
                        refreshes += 1
                        result.refreshed.append(cursor)
                    elif stored.is_settled:
                        logger.debug(f"auction {cursor} is settled, skipping")
                        result.skipped.append(cursor)
                    else:
                        logger.info(f"auction {cursor} is not settled, refreshing")
                        await self.reconciler.refresh_auction(cursor)
                        refreshes += 1
                        result.refreshed.append(cursor)
                except Exception as e:
                    logger.error(f"refreshBatch: refreshing auction {cursor} failed: {e}")
                    logger.debug(traceback.format_exc())
                    result.failed.append(cursor)

                result.processed += 1
                last_examined = cursor
                cursor += 1
                if cursor >= total:
                    cursor = 0
                logger.debug(f"current: {cursor}, numRefreshed: {refreshes}, totalProcessed: {result.processed}")

            await self._retry_failed(result.failed, result.refreshed, result.given_up)
        finally:
            next_auction_id = last_examined + 1 if last_examined is not None else checkpoint.next_auction_id
            await self.store.set_cron_checkpoint(CronCheckpoint(
                is_running=False,
                last_start_time=started,
                next_auction_id=next_auction_id,
            ))
            result.next_auction_id = next_auction_id
            result.elapsed_seconds = self.clock() - started
            logger.info(f"runCron: job took {result.elapsed_seconds:.1f} seconds")

        return result

    async def _retry_failed(self, failed: List[int], fixed: List[int], given_up: List[int]) -> None:
        """Give every failed auction exactly one more refresh"""
        for auction_id in failed:
            try:
                await self.reconciler.refresh_auction(auction_id)
                fixed.append(auction_id)
                logger.info(f"auction {auction_id} refreshed on retry")
            except Exception as e:
                logger.error(f"auction {auction_id} failed again, giving up: {e}")
                given_up.append(auction_id)

    async def force_reset(self) -> CronCheckpoint:
        """Clear a stuck isRunning flag"""
        checkpoint = await self.store.get_cron_checkpoint()
        if checkpoint.is_running:
            logger.warning(f"Forcing cron reset (started at {checkpoint.last_start_time})")
        checkpoint.is_running = False
        await self.store.set_cron_checkpoint(checkpoint)
        return checkpoint

    async def find_missing_auctions(self) -> List[int]:
        total = await self.reader.auctions_length()
        logger.info(f"there are {total} auctions")
        missing = [auction_id for auction_id in range(total) if not await self.store.exists(auction_id)]
        logger.info(f"total auctions missing: {len(missing)}")
        return missing

    async def fix_missing_auctions(self) -> ScanResult:
        """Rebuild every auction id the store does not know about"""
        total = await self.reader.auctions_length()
        result = ScanResult(total_auctions=total)
        for auction_id in range(total):
            if await self.store.exists(auction_id):
                continue
            logger.info(f"auction {auction_id} missing in db, refreshing")
            try:
                await self.reconciler.refresh_auction(auction_id)
                result.fixed.append(auction_id)
            except Exception as e:
                logger.error(f"fixMissingAuctions: refreshing auction {auction_id} failed: {e}")
                result.failed.append(auction_id)

        await self._retry_failed(result.failed, result.fixed, result.given_up)
        logger.info(
            f"fixMissingAuctions: fixed {len(result.fixed)}, gave up on {len(result.given_up)} of {total} auctions"
        )
        return result
