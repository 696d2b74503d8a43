"""
In-memory store used in mock mode and by the test suite.
"""

import copy
import logging
from typing import Any, Dict, List, Optional

from web3 import Web3

from ..models import AuctionQuery, AuctionRecord, CrawlerCheckpoint, CronCheckpoint, UserBids
from .base import ORDER_FIELDS, AuctionStateStore, document_value

logger = logging.getLogger(__name__)


def _matches(value: Any, expected: Any) -> bool:
    if isinstance(expected, (list, tuple, set)):
        return any(_matches(value, item) for item in expected)
    if isinstance(value, str) and isinstance(expected, str) and value.startswith("0x"):
        return value.lower() == expected.lower()
    return value == expected


class InMemoryAuctionStore(AuctionStateStore):
    """Keeps JSON documents in dicts, the same shape the database stores"""

    def __init__(self):
        self.auctions: Dict[int, Dict[str, Any]] = {}
        self.user_bids: Dict[str, Dict[str, Any]] = {}
        self.crawler_checkpoint: Optional[Dict[str, Any]] = None
        self.cron_checkpoint: Optional[Dict[str, Any]] = None

    async def get(self, auction_id: int) -> Optional[AuctionRecord]:
        document = self.auctions.get(int(auction_id))
        if document is None:
            return None
        return AuctionRecord.model_validate(copy.deepcopy(document))

    async def put(self, record: AuctionRecord) -> None:
        self.auctions[record.auction_id] = record.to_document()

    async def query_by_nft_identity(self, nft_token: str, nft_token_id: int) -> List[AuctionRecord]:
        matches = [
            AuctionRecord.model_validate(copy.deepcopy(document))
            for document in self.auctions.values()
            if _matches(document["nftToken"], nft_token) and document["nftTokenId"] == int(nft_token_id)
        ]
        return sorted(matches, key=lambda r: r.auction_id)

    async def get_user_bids(self, address: str) -> UserBids:
        address = Web3.to_checksum_address(address)
        document = self.user_bids.get(address)
        if document is None:
            return UserBids(address=address)
        return UserBids.model_validate(copy.deepcopy(document))

    async def put_user_bids(self, user_bids: UserBids) -> None:
        self.user_bids[Web3.to_checksum_address(user_bids.address)] = user_bids.to_document()

    async def get_crawler_checkpoint(self) -> Optional[CrawlerCheckpoint]:
        if self.crawler_checkpoint is None:
            return None
        return CrawlerCheckpoint.model_validate(self.crawler_checkpoint)

    async def set_crawler_checkpoint(self, checkpoint: CrawlerCheckpoint) -> None:
        self.crawler_checkpoint = checkpoint.to_document()

    async def get_cron_checkpoint(self) -> CronCheckpoint:
        if self.cron_checkpoint is None:
            return CronCheckpoint()
        return CronCheckpoint.model_validate(self.cron_checkpoint)

    async def set_cron_checkpoint(self, checkpoint: CronCheckpoint) -> None:
        self.cron_checkpoint = checkpoint.to_document()

    async def list_auctions(self, query: AuctionQuery) -> List[AuctionRecord]:
        documents = list(self.auctions.values())

        for field, expected in query.equals.items():
            documents = [d for d in documents if _matches(d.get(field), expected)]
        for field, expected in query.nft_equals.items():
            documents = [d for d in documents if _matches(document_value(d, ("nftData", field)), expected)]
        if query.ends_before is not None:
            documents = [d for d in documents if d["endTime"] < query.ends_before]
        if query.ends_after is not None:
            documents = [d for d in documents if d["endTime"] > query.ends_after]

        path = ORDER_FIELDS[query.order_by or "auctionId"]
        descending = query.direction == "desc"
        # Documents without the order field (no nftData yet) never match a cursor and sort last
        keyed = [(document_value(d, path), d) for d in documents]
        if query.start_after is not None:
            keyed = [
                (v, d) for v, d in keyed
                if v is not None and (v < query.start_after if descending else v > query.start_after)
            ]
        present = sorted((item for item in keyed if item[0] is not None),
                         key=lambda item: (item[0], item[1]["auctionId"]), reverse=descending)
        missing = [item for item in keyed if item[0] is None]

        return [
            AuctionRecord.model_validate(copy.deepcopy(d))
            for _, d in (present + missing)[:query.limit]
        ]
