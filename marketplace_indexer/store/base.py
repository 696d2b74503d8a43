"""
Abstract auction state store.
"""

from abc import ABC, abstractmethod
from typing import Any, Dict, List, Optional

from ..models import AuctionQuery, AuctionRecord, CrawlerCheckpoint, CronCheckpoint, UserBids

# order_by value -> document path
ORDER_FIELDS = {
    "endTime": ("endTime",),
    "auctionId": ("auctionId",),
    "nftTokenId": ("nftTokenId",),
    "rarity": ("nftData", "rarity"),
    "tier": ("nftData", "tier"),
}

NFT_FILTER_FIELDS = ("series", "rarity", "tier")


def document_value(document: Dict[str, Any], path: tuple) -> Any:
    value: Any = document
    for key in path:
        if not isinstance(value, dict):
            return None
        value = value.get(key)
    return value


class AuctionStateStore(ABC):
    """Persisted auction documents, per-user bid lists and checkpoints"""

    async def init(self) -> None:
        """Prepare the backing storage"""

    async def close(self) -> None:
        """Release connections"""

    async def check_connection(self) -> bool:
        return True

    @abstractmethod
    async def get(self, auction_id: int) -> Optional[AuctionRecord]:
        """Stored record, or None if the auction was never indexed"""
        pass

    @abstractmethod
    async def put(self, record: AuctionRecord) -> None:
        """Full overwrite of the record"""
        pass

    async def exists(self, auction_id: int) -> bool:
        return await self.get(auction_id) is not None

    @abstractmethod
    async def query_by_nft_identity(self, nft_token: str, nft_token_id: int) -> List[AuctionRecord]:
        """Every stored auction of one NFT, ordered by auctionId"""
        pass

    @abstractmethod
    async def get_user_bids(self, address: str) -> UserBids:
        pass

    @abstractmethod
    async def put_user_bids(self, user_bids: UserBids) -> None:
        pass

    @abstractmethod
    async def get_crawler_checkpoint(self) -> Optional[CrawlerCheckpoint]:
        pass

    @abstractmethod
    async def set_crawler_checkpoint(self, checkpoint: CrawlerCheckpoint) -> None:
        pass

    @abstractmethod
    async def get_cron_checkpoint(self) -> CronCheckpoint:
        """The sweep checkpoint; a fresh idle checkpoint if none was stored yet"""
        pass

    @abstractmethod
    async def set_cron_checkpoint(self, checkpoint: CronCheckpoint) -> None:
        pass

    @abstractmethod
    async def list_auctions(self, query: AuctionQuery) -> List[AuctionRecord]:
        pass
