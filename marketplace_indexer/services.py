"""
Wires the long-lived service objects together.
"""

import logging
from dataclasses import dataclass

from .config import Settings
from .indexer.chain import ChainClient, load_abi
from .indexer.crawler import Crawler
from .indexer.marketplace import MarketplaceReader
from .indexer.metadata import NftMetadataClient
from .indexer.reconciler import EventReconciler
from .indexer.retry import RetryInvoker
from .indexer.sweeper import CronSweeper
from .store import AuctionStateStore, build_store

logger = logging.getLogger(__name__)


@dataclass
class Services:
    chain: ChainClient
    invoker: RetryInvoker
    reader: MarketplaceReader
    metadata: NftMetadataClient
    store: AuctionStateStore
    reconciler: EventReconciler
    sweeper: CronSweeper
    crawler: Crawler

    @classmethod
    def from_settings(cls, settings: Settings, mock: bool = False) -> "Services":
        chain = ChainClient(
            settings.rpc_url,
            settings.marketplace_address,
            load_abi(settings.abi_path),
            timeout=settings.rpc_timeout,
        )
        invoker = RetryInvoker(chain, max_retries=settings.contract_call_retries)
        reader = MarketplaceReader(invoker)
        metadata = NftMetadataClient(settings.nft_api_url, settings.nft_series(), timeout=settings.nft_api_timeout)
        store = build_store(settings, mock=mock)
        return cls.assemble(settings, chain, invoker, reader, metadata, store)

    @classmethod
    def assemble(cls, settings: Settings, chain, invoker, reader, metadata, store) -> "Services":
        reconciler = EventReconciler(reader, store, metadata)
        sweeper = CronSweeper(
            reader,
            reconciler,
            store,
            max_refreshes=settings.cron_max_refreshes,
            max_auctions_processed=settings.cron_max_auctions_processed,
            stale_after=settings.cron_stale_after,
        )
        crawler = Crawler(
            chain,
            reconciler,
            store,
            interval=settings.crawler_interval,
            max_batch_size=settings.crawler_max_batch_size,
            start_block=settings.crawler_start_block,
            listener_retry_delay=settings.crawler_listener_retry_delay,
        )
        return cls(chain, invoker, reader, metadata, store, reconciler, sweeper, crawler)

    async def startup(self) -> None:
        await self.store.init()

    async def shutdown(self) -> None:
        await self.crawler.stop()
        await self.chain.close()
        await self.store.close()
        logger.info("Services shut down")
