"""
Pydantic models for auction documents, checkpoints and marketplace events.

Documents are stored and served with camelCase keys (auctionId, highestBid...),
Python code uses the snake_case attribute names.
"""

from decimal import Decimal
from typing import Annotated, List, Literal, Optional, Union

from pydantic import BaseModel, ConfigDict, Field
from pydantic.alias_generators import to_camel

from .constants import NULL_ADDRESS


class CamelModel(BaseModel):
    """Base model serialised with camelCase keys"""

    model_config = ConfigDict(alias_generator=to_camel, populate_by_name=True)

    def to_document(self) -> dict:
        return self.model_dump(mode="json", by_alias=True)


class NftData(BaseModel):
    """NFT metadata as returned by the metadata API"""

    model_config = ConfigDict(extra="allow", coerce_numbers_to_str=True)

    id: str
    series: str
    name: Optional[str] = None
    description: Optional[str] = None
    external_url: Optional[str] = None
    image: Optional[str] = None
    rarity: Optional[int] = None
    tier: Optional[int] = None


class AuctionRecord(CamelModel):
    """One auction listing, keyed by the contract-assigned auction id"""

    auction_id: int = Field(..., description="Auction id assigned by the marketplace contract")
    nft_token: str = Field(..., description="NFT contract address")
    nft_token_id: int = Field(..., description="Token id within the NFT contract")
    owner: str
    token: str = Field(NULL_ADDRESS, description="Payment currency, null address for the native coin")
    target_price: Decimal = Decimal(0)
    reserve_price: Decimal = Decimal(0)
    min_increment: Decimal = Decimal(0)
    end_time: int = Field(0, description="Unix timestamp, may be extended by late bids")
    auction_type: int = 0
    is_settled: bool = False
    is_sold: bool = False
    highest_bidder: str = NULL_ADDRESS
    highest_bid: Decimal = Decimal(0)
    final_highest_bid: Decimal = Decimal(0)
    last_price: Decimal = Decimal(0)
    last_token: str = NULL_ADDRESS
    nft_data: Optional[NftData] = None


class UserBid(CamelModel):
    auction_id: int
    amount: Decimal


class UserBids(CamelModel):
    """Every bid a user holds, rebuilt wholesale from the contract"""

    address: str
    bids: List[UserBid] = Field(default_factory=list)


class UserBidInfo(UserBid):
    auction_data: Optional[AuctionRecord] = None


class UserBidsInfo(CamelModel):
    address: str
    bids: List[UserBidInfo] = Field(default_factory=list)


class CronCheckpoint(CamelModel):
    is_running: bool = False
    last_start_time: Optional[float] = Field(None, description="Unix timestamp of the last sweep start")
    next_auction_id: Optional[int] = None


class CrawlerCheckpoint(CamelModel):
    last_block_processed: int


class AuctionQuery(BaseModel):
    """Listing filters understood by the auction store"""

    equals: dict = Field(default_factory=dict, description="Top-level field -> value")
    nft_equals: dict = Field(default_factory=dict, description="nftData field -> value or list of values")
    ends_before: Optional[float] = None
    ends_after: Optional[float] = None
    order_by: Optional[str] = None
    direction: Literal["asc", "desc"] = "asc"
    limit: int = 20
    start_after: Optional[int] = None


# Marketplace events


class _EventBase(CamelModel):
    auction_id: int
    block_number: int = 0
    log_index: int = 0


class ListEvent(_EventBase):
    kind: Literal["List"] = "List"


class BidEvent(_EventBase):
    kind: Literal["Bid"] = "Bid"
    amount: Decimal
    highest_bidder: str


class SoldEvent(_EventBase):
    kind: Literal["Sold"] = "Sold"
    sales_price: Decimal
    token: str
    highest_bidder: str


class CloseAuctionEvent(_EventBase):
    kind: Literal["CloseAuction"] = "CloseAuction"
    highest_bidder: str


class WithdrawAllEvent(_EventBase):
    kind: Literal["WithdrawAll"] = "WithdrawAll"
    account: str


class EmergencyWithdrawalEvent(_EventBase):
    kind: Literal["EmergencyWithdrawal"] = "EmergencyWithdrawal"
    highest_bidder: str


MarketplaceEvent = Annotated[
    Union[
        ListEvent,
        BidEvent,
        SoldEvent,
        CloseAuctionEvent,
        WithdrawAllEvent,
        EmergencyWithdrawalEvent,
    ],
    Field(discriminator="kind"),
]


# Sweep results


class CronResult(CamelModel):
    status: Literal["completed", "already_running"]
    start_auction_id: Optional[int] = None
    next_auction_id: Optional[int] = None
    total_auctions: Optional[int] = None
    processed: int = 0
    refreshed: List[int] = Field(default_factory=list)
    skipped: List[int] = Field(default_factory=list)
    failed: List[int] = Field(default_factory=list)
    given_up: List[int] = Field(default_factory=list)
    elapsed_seconds: float = 0.0


class ScanResult(CamelModel):
    total_auctions: int
    fixed: List[int] = Field(default_factory=list)
    failed: List[int] = Field(default_factory=list)
    given_up: List[int] = Field(default_factory=list)
