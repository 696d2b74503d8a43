"""
Event reconciliation.

Maps a marketplace event plus the stored auction document to the new document.
When a document is missing (we never saw its List event) the auction is rebuilt
from contract reads instead. refresh_auction compares a fresh contract snapshot
with the stored document and only writes when something actually changed.
"""

import logging
from decimal import Decimal
from typing import List, Optional

from ..constants import NULL_ADDRESS
from ..models import (
    AuctionRecord,
    BidEvent,
    CloseAuctionEvent,
    EmergencyWithdrawalEvent,
    ListEvent,
    MarketplaceEvent,
    SoldEvent,
    UserBidInfo,
    UserBids,
    UserBidsInfo,
    WithdrawAllEvent,
)
from ..store.base import AuctionStateStore
from .marketplace import MarketplaceReader
from .metadata import NftMetadataClient

logger = logging.getLogger(__name__)


def is_null_address(address: Optional[str]) -> bool:
    return not address or address.lower() == NULL_ADDRESS


def short(address: str) -> str:
    return f"{address[:6]}..{address[-4:]}"


class EventReconciler:
    """Applies marketplace events to the auction state store"""

    def __init__(self, reader: MarketplaceReader, store: AuctionStateStore, metadata: NftMetadataClient):
        self.reader = reader
        self.store = store
        self.metadata = metadata
        self._handlers = {
            "List": self._on_list,
            "Bid": self._on_bid,
            "Sold": self._on_sold,
            "CloseAuction": self._on_close_auction,
            "WithdrawAll": self._on_withdraw_all,
            "EmergencyWithdrawal": self._on_emergency_withdrawal,
        }

    async def apply(self, event: MarketplaceEvent) -> None:
        """Apply a single event; errors propagate to the caller"""
        handler = self._handlers.get(event.kind)
        if handler is None:
            logger.warning(f"[{event.block_number}] Ignoring unknown event kind {event.kind}")
            return
        await handler(event)

    # Reconstruction

    async def reconstruct(self, auction_id: int, on_list: bool = False) -> AuctionRecord:
        """Build a complete record from contract reads and the metadata API"""
        record = await self.reader.get_auction(auction_id)
        record.last_price = await self.reader.last_price(record.nft_token, record.nft_token_id)
        record.last_token = await self.reader.last_token(record.nft_token, record.nft_token_id)

        # A freshly listed auction has no bids yet
        if on_list:
            record.highest_bid = Decimal(0)
            record.final_highest_bid = Decimal(0)
        else:
            record.highest_bid = await self.reader.highest_bid(auction_id, record)
            record.final_highest_bid = await self.reader.final_highest_bid(auction_id)

        record.nft_data = await self.metadata.fetch(record.nft_token, record.nft_token_id)
        return record

    async def _reconstruct_and_store(self, auction_id: int, on_list: bool = False) -> AuctionRecord:
        record = await self.reconstruct(auction_id, on_list=on_list)
        await self.store.put(record)
        logger.info(f"Rebuilt auction {auction_id} from chain")
        return record

    async def _put_if_changed(self, record: AuctionRecord, stored: Optional[AuctionRecord]) -> bool:
        if stored is not None and record == stored:
            logger.debug(f"Auction {record.auction_id} unchanged, skipping write")
            return False
        await self.store.put(record)
        return True

    # Event handlers

    async def _on_list(self, event: ListEvent) -> None:
        logger.info(f"[{event.block_number}] 📜 List: auction {event.auction_id}")
        await self._reconstruct_and_store(event.auction_id, on_list=True)

    async def _on_bid(self, event: BidEvent) -> None:
        logger.info(
            f"[{event.block_number}] 🔨 Bid: auction {event.auction_id}, "
            f"amount {event.amount}, bidder {short(event.highest_bidder)}"
        )
        stored = await self.store.get(event.auction_id)
        if stored is None:
            record = await self.reconstruct(event.auction_id)
        else:
            record = stored.model_copy(deep=True)
            # Bids can extend the auction
            fresh = await self.reader.get_auction(event.auction_id)
            record.end_time = fresh.end_time

        record.highest_bidder = event.highest_bidder
        # The event amount is the increment, the balance is the bidder's total
        record.highest_bid = await self.reader.bid_balance(event.auction_id, event.highest_bidder)
        await self._put_if_changed(record, stored)

        await self.refresh_user_bids(event.highest_bidder)

    async def _on_sold(self, event: SoldEvent) -> None:
        logger.info(
            f"[{event.block_number}] 💰 Sold: auction {event.auction_id}, price {event.sales_price}, "
            f"token {short(event.token)}, bidder {short(event.highest_bidder)}"
        )
        stored = await self.store.get(event.auction_id)
        if stored is None:
            record = await self._reconstruct_and_store(event.auction_id)
        else:
            record = stored.model_copy(deep=True)
            record.is_settled = True
            record.is_sold = True
            record.highest_bidder = event.highest_bidder
            record.highest_bid = event.sales_price
            record.final_highest_bid = event.sales_price
            record.last_price = event.sales_price
            record.last_token = event.token
            await self._put_if_changed(record, stored)

        await self.propagate_last_sale(record.nft_token, record.nft_token_id, event.sales_price, event.token)
        await self.refresh_user_bids(event.highest_bidder)

    async def _on_close_auction(self, event: CloseAuctionEvent) -> None:
        logger.info(f"[{event.block_number}] 🔒 CloseAuction: auction {event.auction_id}")
        stored = await self.store.get(event.auction_id)
        if stored is None:
            await self._reconstruct_and_store(event.auction_id)
        else:
            record = stored.model_copy(deep=True)
            record.is_settled = True
            record.highest_bidder = NULL_ADDRESS
            record.highest_bid = Decimal(0)
            await self._put_if_changed(record, stored)

        await self.refresh_user_bids(event.highest_bidder)

    async def _on_withdraw_all(self, event: WithdrawAllEvent) -> None:
        logger.info(f"[{event.block_number}] WithdrawAll: auction {event.auction_id}, account {short(event.account)}")
        await self.refresh_user_bids(event.account)

    async def _on_emergency_withdrawal(self, event: EmergencyWithdrawalEvent) -> None:
        logger.info(f"[{event.block_number}] 🚨 EmergencyWithdrawal: auction {event.auction_id}")
        await self.refresh_user_bids(event.highest_bidder)

        stored = await self.store.get(event.auction_id)
        if stored is None:
            await self._reconstruct_and_store(event.auction_id)
            return
        record = stored.model_copy(deep=True)
        record.highest_bidder = NULL_ADDRESS
        await self._put_if_changed(record, stored)

    # Refresh

    async def refresh_auction(self, auction_id: int) -> bool:
        """Bring a stored auction in line with the contract; returns True if it was written"""
        stored = await self.store.get(auction_id)
        if stored is None:
            await self._reconstruct_and_store(auction_id)
            return True

        chain = await self.reader.get_auction(auction_id)
        record = stored.model_copy(deep=True)

        if not stored.is_sold and chain.is_sold:
            logger.info(f"Auction {auction_id}: missed Sold event, settling from chain")
            record.is_settled = True
            record.is_sold = True
            record.highest_bidder = chain.highest_bidder
            highest_bid = await self.reader.highest_bid(auction_id, record)
            record.highest_bid = highest_bid
            record.final_highest_bid = highest_bid
            record.last_price = highest_bid
            record.last_token = await self.reader.last_token(record.nft_token, record.nft_token_id)
        elif not stored.is_settled and chain.is_settled:
            logger.info(f"Auction {auction_id}: missed close, settling from chain")
            record.is_settled = True
            record.highest_bidder = NULL_ADDRESS
            record.highest_bid = Decimal(0)
        else:
            if stored.is_settled and not chain.is_settled:
                logger.warning(f"Auction {auction_id}: chain reports unsettled, keeping stored settlement")
            if record.highest_bidder != chain.highest_bidder:
                record.highest_bidder = chain.highest_bidder
            if record.end_time != chain.end_time:
                record.end_time = chain.end_time

            highest_bid = await self.reader.highest_bid(auction_id, record)
            record.highest_bid = highest_bid
            if record.is_settled:
                record.final_highest_bid = highest_bid

        if record.nft_data is None:
            record.nft_data = await self.metadata.fetch(record.nft_token, record.nft_token_id)

        written = await self._put_if_changed(record, stored)
        if written:
            logger.info(f"Refreshed auction {auction_id}")
        if written and (record.last_price != stored.last_price or record.last_token != stored.last_token):
            await self.propagate_last_sale(record.nft_token, record.nft_token_id, record.last_price, record.last_token)
        return written

    async def propagate_last_sale(self, nft_token: str, nft_token_id: int, price: Decimal, token: str) -> int:
        """Copy the latest sale of an NFT onto every stored auction of that NFT"""
        written = 0
        for record in await self.store.query_by_nft_identity(nft_token, nft_token_id):
            if record.last_price == price and record.last_token == token:
                continue
            record.last_price = price
            record.last_token = token
            await self.store.put(record)
            written += 1
        if written:
            logger.info(f"Propagated last sale {price} of {short(nft_token)} #{nft_token_id} to {written} auctions")
        return written

    async def refresh_last_sale_for_nft(self, nft_token: str, nft_token_id: int) -> int:
        price = await self.reader.last_price(nft_token, nft_token_id)
        token = await self.reader.last_token(nft_token, nft_token_id)
        return await self.propagate_last_sale(nft_token, nft_token_id, price, token)

    async def auctions_for_nft(self, nft_token: str, nft_token_id: int) -> List[AuctionRecord]:
        return await self.store.query_by_nft_identity(nft_token, nft_token_id)

    # User bids

    async def refresh_user_bids(self, address: str) -> Optional[UserBids]:
        """Rebuild a bidder's bid list from the contract"""
        if is_null_address(address):
            logger.debug("Skipping user bids refresh for the null address")
            return None
        user_bids = await self.reader.user_bids(address)
        await self.store.put_user_bids(user_bids)
        return user_bids

    async def user_bids_info(self, address: str) -> UserBidsInfo:
        """Stored bids of a user, each joined with the stored auction"""
        user_bids = await self.store.get_user_bids(address)
        bids = []
        for bid in user_bids.bids:
            auction_data = await self.store.get(bid.auction_id)
            bids.append(UserBidInfo(auction_id=bid.auction_id, amount=bid.amount, auction_data=auction_data))
        return UserBidsInfo(address=user_bids.address, bids=bids)
