"""
Typed reads of the marketplace contract views.
"""

import logging
from decimal import Decimal
from typing import Optional

from web3 import Web3

from ..constants import NULL_ADDRESS, USER_BIDS_BATCH_SIZE
from ..models import AuctionRecord, UserBid, UserBids
from .chain import AUCTION_FIELDS, parse_auction, wei_to_decimal
from .retry import RetryInvoker

logger = logging.getLogger(__name__)


def _raw_nft_token(raw) -> str:
    if isinstance(raw, dict):
        return raw.get("nftToken", NULL_ADDRESS)
    return raw[AUCTION_FIELDS.index("nftToken")]


def is_valid_auction(raw) -> bool:
    """Rejects the all-zero struct a lagging node returns for an unknown id"""
    nft_token = _raw_nft_token(raw)
    return bool(nft_token) and str(nft_token).lower() != NULL_ADDRESS


class MarketplaceReader:
    """Contract view helpers, every call going through the retry invoker"""

    def __init__(self, invoker: RetryInvoker):
        self.invoker = invoker

    async def auctions_length(self) -> int:
        return int(await self.invoker.invoke("auctionsLength"))

    async def get_auction(self, auction_id: int) -> AuctionRecord:
        """Base auction fields, without bids, last sale or metadata"""
        raw = await self.invoker.invoke("auctions", auction_id, validate=is_valid_auction)
        return parse_auction(auction_id, raw)

    async def last_price(self, nft_token: str, nft_token_id: int) -> Decimal:
        raw = await self.invoker.invoke("lastPrice", Web3.to_checksum_address(nft_token), nft_token_id)
        return wei_to_decimal(raw)

    async def last_token(self, nft_token: str, nft_token_id: int) -> str:
        return await self.invoker.invoke("lastToken", Web3.to_checksum_address(nft_token), nft_token_id)

    async def final_highest_bid(self, auction_id: int) -> Decimal:
        return wei_to_decimal(await self.invoker.invoke("finalHighestBid", auction_id))

    async def bid_balance(self, auction_id: int, address: str) -> Decimal:
        raw = await self.invoker.invoke("bidBalance", auction_id, Web3.to_checksum_address(address))
        return wei_to_decimal(raw)

    async def user_bids_length(self, address: str) -> int:
        return int(await self.invoker.invoke("getUserBidsLength", Web3.to_checksum_address(address)))

    async def user_bids(self, address: str) -> UserBids:
        """Every bid held by address, read in pages of USER_BIDS_BATCH_SIZE"""
        address = Web3.to_checksum_address(address)
        length = await self.user_bids_length(address)
        bids = []
        for cursor in range(0, length, USER_BIDS_BATCH_SIZE):
            size = min(USER_BIDS_BATCH_SIZE, length - cursor)
            result = await self.invoker.invoke("getUserBids", address, cursor, size)
            auction_ids, amounts = result[0], result[1]
            for auction_id, amount in zip(auction_ids, amounts):
                bids.append(UserBid(auction_id=int(auction_id), amount=wei_to_decimal(amount)))
        logger.debug(f"Loaded {len(bids)} bids for {address[:6]}..{address[-4:]}")
        return UserBids(address=address, bids=bids)

    async def highest_bid(self, auction_id: int, record: Optional[AuctionRecord] = None) -> Decimal:
        """Current leading bid; the frozen final bid once the auction is settled"""
        if record is None:
            record = await self.get_auction(auction_id)
        if record.is_settled:
            return await self.final_highest_bid(auction_id)
        if record.highest_bidder.lower() == NULL_ADDRESS:
            return Decimal(0)
        return await self.bid_balance(auction_id, record.highest_bidder)
