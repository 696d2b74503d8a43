#!/usr/bin/env python3
"""
Shared fixtures: a scriptable in-process chain, a canned metadata client and
the in-memory store, wired together the same way the services container does.
"""

from decimal import Decimal
from typing import Any, Dict, List, Optional

import pytest
from web3 import Web3

from marketplace_indexer.constants import HAMMER_NFT, NULL_ADDRESS
from marketplace_indexer.errors import MetadataFetchError
from marketplace_indexer.indexer.marketplace import MarketplaceReader
from marketplace_indexer.indexer.reconciler import EventReconciler
from marketplace_indexer.indexer.retry import RetryInvoker
from marketplace_indexer.models import AuctionRecord, NftData
from marketplace_indexer.store.memory import InMemoryAuctionStore

OWNER = Web3.to_checksum_address("0x00000000000000000000000000000000000000aa")
BIDDER_ABC = Web3.to_checksum_address("0x0000000000000000000000000000000000000abc")
BIDDER_DEF = Web3.to_checksum_address("0x0000000000000000000000000000000000000def")
BUSD = Web3.to_checksum_address("0xe9e7cea3dedca5984780bafc599bd69add087d56")


def wei(amount) -> int:
    return Web3.to_wei(Decimal(str(amount)), "ether")


class FakeChain:
    """Stands in for ChainClient: contract views answered from plain dicts"""

    def __init__(self):
        self.auctions: Dict[int, Dict[str, Any]] = {}
        self.last_prices: Dict[tuple, int] = {}
        self.last_tokens: Dict[tuple, str] = {}
        self.final_bids: Dict[int, int] = {}
        self.bid_balances: Dict[tuple, int] = {}
        self.user_bid_lists: Dict[str, List[tuple]] = {}

        self.block_height = 0
        self.events: List[Any] = []
        self.event_queries: List[tuple] = []

        self.failures: Dict[str, int] = {}
        self.always_fail: set = set()
        self.calls: List[tuple] = []
        self.reconnects = 0
        self.closed = False
        self.supports_subscriptions = False

    # scripting helpers

    def add_auction(self, auction_id: int, nft_token: str = HAMMER_NFT, nft_token_id: int = 1,
                    owner: str = OWNER, token: str = NULL_ADDRESS, end_time: int = 1700000000,
                    highest_bidder: str = NULL_ADDRESS, is_settled: bool = False, is_sold: bool = False,
                    target_price=10, reserve_price=1, min_increment="0.1", auction_type: int = 0):
        self.auctions[auction_id] = {
            "nftToken": nft_token,
            "nftTokenId": nft_token_id,
            "owner": owner,
            "token": token,
            "targetPrice": wei(target_price),
            "reservePrice": wei(reserve_price),
            "endTime": end_time,
            "minIncrement": wei(min_increment),
            "isSettled": is_settled,
            "highestBidder": highest_bidder,
            "auctionType": auction_type,
            "isSold": is_sold,
        }
        return self.auctions[auction_id]

    def set_bid_balance(self, auction_id: int, address: str, amount) -> None:
        self.bid_balances[(auction_id, address.lower())] = wei(amount)

    def set_last_sale(self, nft_token: str, nft_token_id: int, price, token: str) -> None:
        self.last_prices[(nft_token.lower(), nft_token_id)] = wei(price)
        self.last_tokens[(nft_token.lower(), nft_token_id)] = token

    def fail(self, method: str, times: int = 1) -> None:
        self.failures[method] = self.failures.get(method, 0) + times

    # ChainClient surface

    async def call(self, method: str, *args: Any) -> Any:
        self.calls.append((method, args))
        if method in self.always_fail:
            raise ConnectionError(f"{method} unavailable")
        if self.failures.get(method, 0) > 0:
            self.failures[method] -= 1
            raise ConnectionError(f"{method} timed out")
        return getattr(self, f"_view_{method}")(*args)

    def _view_auctions(self, auction_id):
        if auction_id in self.auctions:
            return dict(self.auctions[auction_id])
        return {
            "nftToken": NULL_ADDRESS, "nftTokenId": 0, "owner": NULL_ADDRESS, "token": NULL_ADDRESS,
            "targetPrice": 0, "reservePrice": 0, "endTime": 0, "minIncrement": 0, "isSettled": False,
            "highestBidder": NULL_ADDRESS, "auctionType": 0, "isSold": False,
        }

    def _view_auctionsLength(self):
        return len(self.auctions)

    def _view_lastPrice(self, nft_token, nft_token_id):
        return self.last_prices.get((nft_token.lower(), nft_token_id), 0)

    def _view_lastToken(self, nft_token, nft_token_id):
        return self.last_tokens.get((nft_token.lower(), nft_token_id), NULL_ADDRESS)

    def _view_finalHighestBid(self, auction_id):
        return self.final_bids.get(auction_id, 0)

    def _view_bidBalance(self, auction_id, address):
        return self.bid_balances.get((auction_id, address.lower()), 0)

    def _view_getUserBidsLength(self, address):
        return len(self.user_bid_lists.get(address.lower(), []))

    def _view_getUserBids(self, address, cursor, size):
        page = self.user_bid_lists.get(address.lower(), [])[cursor:cursor + size]
        return [a for a, _ in page], [wei(amount) for _, amount in page], cursor + len(page)

    async def current_block_height(self) -> int:
        if "blockNumber" in self.always_fail:
            raise ConnectionError("blockNumber unavailable")
        return self.block_height

    async def past_events(self, from_block: int, to_block: int) -> list:
        self.event_queries.append((from_block, to_block))
        if "getLogs" in self.always_fail:
            raise ConnectionError("getLogs unavailable")
        return [e for e in self.events if from_block <= e.block_number <= to_block]

    async def subscribe_all_events(self):
        for event in []:
            yield event

    async def reconnect(self) -> None:
        self.reconnects += 1

    async def close(self) -> None:
        self.closed = True


class FakeMetadata:
    """Canned NFT metadata; tokens listed in `failing` raise MetadataFetchError"""

    def __init__(self):
        self.fetches: List[tuple] = []
        self.failing: set = set()
        self.rarities: Dict[int, int] = {}

    async def fetch(self, nft_token: str, nft_token_id: int) -> NftData:
        self.fetches.append((nft_token, nft_token_id))
        if nft_token_id in self.failing:
            raise MetadataFetchError(f"https://nft.test/{nft_token_id}", "HTTP 502, original server response: bad gateway")
        series = "hammer" if nft_token.lower() == HAMMER_NFT.lower() else "1"
        return NftData(
            id=str(nft_token_id),
            series=series,
            name=f"Test NFT #{nft_token_id}",
            image=f"https://nft.test/images/{nft_token_id}.jpg",
            rarity=self.rarities.get(nft_token_id, 1),
        )


def make_record(auction_id: int, nft_token: str = HAMMER_NFT, nft_token_id: int = 1, **fields) -> AuctionRecord:
    """A stored-looking record with metadata already filled in"""
    values = dict(
        auction_id=auction_id,
        nft_token=nft_token,
        nft_token_id=nft_token_id,
        owner=OWNER,
        target_price=Decimal(10),
        reserve_price=Decimal(1),
        min_increment=Decimal("0.1"),
        end_time=1700000000,
        nft_data=NftData(id=str(nft_token_id), series="hammer", name=f"Test NFT #{nft_token_id}",
                         image=f"https://nft.test/images/{nft_token_id}.jpg", rarity=1),
    )
    values.update(fields)
    return AuctionRecord(**values)


@pytest.fixture
def chain():
    return FakeChain()


@pytest.fixture
def metadata():
    return FakeMetadata()


@pytest.fixture
def store():
    return InMemoryAuctionStore()


@pytest.fixture
def invoker(chain):
    return RetryInvoker(chain, max_retries=2)


@pytest.fixture
def reader(invoker):
    return MarketplaceReader(invoker)


@pytest.fixture
def reconciler(reader, store, metadata):
    return EventReconciler(reader, store, metadata)


def seed(chain: FakeChain, record: AuctionRecord, final_bid: Optional[Any] = None) -> None:
    """Mirror a stored record on the fake chain so a refresh finds nothing new"""
    chain.add_auction(
        record.auction_id,
        nft_token=record.nft_token,
        nft_token_id=record.nft_token_id,
        owner=record.owner,
        token=record.token,
        end_time=record.end_time,
        highest_bidder=record.highest_bidder,
        is_settled=record.is_settled,
        is_sold=record.is_sold,
        target_price=record.target_price,
        reserve_price=record.reserve_price,
        min_increment=record.min_increment,
        auction_type=record.auction_type,
    )
    if final_bid is not None:
        chain.final_bids[record.auction_id] = wei(final_bid)
