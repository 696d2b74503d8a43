#!/usr/bin/env python3
"""
Tests for the polling crawler
"""

import asyncio
from decimal import Decimal

import pytest

from marketplace_indexer.indexer.crawler import Crawler
from marketplace_indexer.models import BidEvent, CrawlerCheckpoint, ListEvent
from tests.conftest import BIDDER_ABC


@pytest.fixture
def crawler(chain, reconciler, store):
    return Crawler(chain, reconciler, store, interval=0.01, max_batch_size=100, start_block=50)


class TestCrawlerTick:

    async def test_batch_is_clamped_to_max_size(self, chain, store, crawler):
        await store.set_crawler_checkpoint(CrawlerCheckpoint(last_block_processed=99))
        await crawler.load_checkpoint()
        chain.block_height = 1000

        await crawler.tick()

        assert chain.event_queries == [(100, 199)]
        assert crawler.last_block_processed == 199
        assert (await store.get_crawler_checkpoint()).last_block_processed == 199

    async def test_short_range_stops_at_head(self, chain, store, crawler):
        await store.set_crawler_checkpoint(CrawlerCheckpoint(last_block_processed=99))
        await crawler.load_checkpoint()
        chain.block_height = 120

        await crawler.tick()

        assert chain.event_queries == [(100, 120)]
        assert crawler.last_block_processed == 120

    async def test_waits_when_no_new_blocks(self, chain, store, crawler):
        await store.set_crawler_checkpoint(CrawlerCheckpoint(last_block_processed=99))
        await crawler.load_checkpoint()
        chain.block_height = 99

        assert await crawler.tick() == 0
        assert chain.event_queries == []
        assert crawler.last_block_processed == 99

    async def test_tick_is_dropped_while_processing(self, chain, crawler):
        crawler.processing = True
        chain.block_height = 1000

        assert await crawler.tick() == 0
        assert chain.event_queries == []
        assert crawler.processing is True

    async def test_events_are_applied_in_order(self, chain, store, crawler):
        chain.add_auction(1, highest_bidder=BIDDER_ABC)
        chain.set_bid_balance(1, BIDDER_ABC, 2)
        chain.events = [
            ListEvent(auction_id=1, block_number=60, log_index=0),
            BidEvent(auction_id=1, amount=Decimal(2), highest_bidder=BIDDER_ABC, block_number=60, log_index=1),
        ]
        chain.block_height = 70

        assert await crawler.tick() == 2

        record = await store.get(1)
        assert record.highest_bid == Decimal(2)
        assert crawler.last_block_processed == 70

    async def test_failed_event_does_not_stop_the_batch(self, chain, store, metadata, crawler):
        chain.add_auction(1, nft_token_id=1)
        chain.add_auction(2, nft_token_id=2)
        metadata.failing.add(1)
        chain.events = [ListEvent(auction_id=1, block_number=55), ListEvent(auction_id=2, block_number=56)]
        chain.block_height = 60

        assert await crawler.tick() == 1

        assert await store.get(1) is None
        assert await store.get(2) is not None
        assert (await store.get_crawler_checkpoint()).last_block_processed == 60

    async def test_fetch_error_reconnects_without_advancing(self, chain, store, crawler):
        chain.block_height = 80
        chain.always_fail.add("getLogs")

        assert await crawler.tick() == 0

        assert chain.reconnects == 1
        assert crawler.processing is False
        assert crawler.last_block_processed == 49
        assert await store.get_crawler_checkpoint() is None


class TestCrawlerLifecycle:

    async def test_checkpoint_defaults_to_start_block(self, crawler):
        assert await crawler.load_checkpoint() == 49

    async def test_start_and_stop(self, chain, store, crawler):
        chain.block_height = 60

        await crawler.start()
        await asyncio.sleep(0.1)
        await crawler.stop()

        assert (await store.get_crawler_checkpoint()).last_block_processed == 60
        assert crawler.processing is False
