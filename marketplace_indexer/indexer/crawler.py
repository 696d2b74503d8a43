"""
Polling crawler: pulls marketplace events in bounded block ranges and applies
them through the reconciler, checkpointing the last processed block.
"""

import asyncio
import logging
import traceback
from typing import Optional, Set

from ..models import CrawlerCheckpoint
from ..store.base import AuctionStateStore
from .chain import ChainClient
from .reconciler import EventReconciler

logger = logging.getLogger(__name__)


class Crawler:
    """Periodic event crawler with an optional live listener for websocket nodes"""

    def __init__(self, chain: ChainClient, reconciler: EventReconciler, store: AuctionStateStore,
                 interval: float = 5.0, max_batch_size: int = 100, start_block: int = 0,
                 listener_retry_delay: float = 30.0):
        self.chain = chain
        self.reconciler = reconciler
        self.store = store
        self.interval = interval
        self.max_batch_size = max_batch_size
        self.start_block = start_block
        self.listener_retry_delay = listener_retry_delay

        self.last_block_processed = start_block - 1
        self.processing = False

        self._scheduler_task: Optional[asyncio.Task] = None
        self._listener_task: Optional[asyncio.Task] = None
        self._tick_tasks: Set[asyncio.Task] = set()

    async def load_checkpoint(self) -> int:
        checkpoint = await self.store.get_crawler_checkpoint()
        if checkpoint is None:
            self.last_block_processed = self.start_block - 1
            logger.info(f"No crawler checkpoint, starting from block {self.start_block}")
        else:
            self.last_block_processed = checkpoint.last_block_processed
        logger.info(f"startup, last block processed={self.last_block_processed}")
        return self.last_block_processed

    async def start(self) -> None:
        await self.stop()
        await self.load_checkpoint()
        self._scheduler_task = asyncio.create_task(self._schedule_ticks())
        self._listener_task = asyncio.create_task(self._listen())
        logger.info(f"🚀 Crawler started (interval {self.interval}s, batch size {self.max_batch_size})")

    async def stop(self) -> None:
        tasks = [t for t in (self._scheduler_task, self._listener_task) if t is not None]
        tasks.extend(self._tick_tasks)
        for task in tasks:
            task.cancel()
        if tasks:
            await asyncio.gather(*tasks, return_exceptions=True)
        self._scheduler_task = None
        self._listener_task = None
        self._tick_tasks.clear()

    async def wait(self) -> None:
        """Block until the crawler is stopped"""
        if self._scheduler_task is not None:
            await self._scheduler_task

    async def _schedule_ticks(self) -> None:
        # Fire on a fixed period; a tick that finds the previous one still running is dropped
        while True:
            task = asyncio.create_task(self.tick())
            self._tick_tasks.add(task)
            task.add_done_callback(self._tick_tasks.discard)
            await asyncio.sleep(self.interval)

    async def tick(self) -> int:
        """Process the next block range; returns the number of events applied"""
        if self.processing:
            logger.info("already processing")
            return 0

        self.processing = True
        try:
            start_block = self.last_block_processed + 1
            current_block = await self.chain.current_block_height()
            end_block = min(current_block, start_block + self.max_batch_size - 1)
            logger.info(f"[{current_block}, -{max(current_block - start_block, 0)}] blocks behind current")

            if end_block < start_block:
                logger.info(f"waiting for block {start_block}")
                return 0
            return await self._process_batch(start_block, end_block, current_block)

        except asyncio.CancelledError:
            raise
        except Exception as e:
            logger.error(f"Crawler tick failed: {e}")
            logger.debug(traceback.format_exc())
            try:
                await self.chain.reconnect()
            except Exception as reconnect_error:
                logger.error(f"Reconnect failed: {reconnect_error}")
            return 0
        finally:
            self.processing = False

    async def _process_batch(self, start_block: int, end_block: int, current_block: int) -> int:
        logger.info(f"getting events for {end_block - start_block + 1} blocks: {start_block} to {end_block}")
        events = await self.chain.past_events(start_block, end_block)
        if events:
            logger.info(f"[{end_block}] found {len(events)} events")

        applied = 0
        for event in events:
            try:
                await self.reconciler.apply(event)
                applied += 1
            except Exception as e:
                logger.error(f"❌ Failed to apply {event.kind} for auction {event.auction_id} at block {event.block_number}: {e}")
                logger.debug(traceback.format_exc())

        await self.store.set_crawler_checkpoint(CrawlerCheckpoint(last_block_processed=end_block))
        self.last_block_processed = end_block
        logger.info(f"[{end_block}, -{current_block - end_block}] last block processed={end_block}")
        return applied

    async def _listen(self) -> None:
        """Log live events; state is only ever written by the polling path"""
        if not self.chain.supports_subscriptions:
            logger.debug("RPC endpoint does not support subscriptions, live listener disabled")
            return

        while True:
            try:
                async for event in self.chain.subscribe_all_events():
                    logger.info(f"listener got data event {event.kind} for auction {event.auction_id}")
            except asyncio.CancelledError:
                raise
            except Exception as e:
                logger.error(f"contract event listener error: {e}")
            await asyncio.sleep(self.listener_retry_delay)
