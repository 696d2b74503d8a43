"""
Web3 connection to the marketplace contract.

Everything that leaves this module is already converted: wei amounts become
Decimal ether values, uint fields become ints, logs become typed events.
"""

import json
import logging
import os
from decimal import Decimal
from typing import Any, AsyncIterator, Dict, List, Optional

from eth_utils import event_abi_to_log_topic
from web3 import AsyncHTTPProvider, AsyncWeb3, Web3, WebSocketProvider

from ..constants import EVENT_KINDS
from ..models import (
    AuctionRecord,
    BidEvent,
    CloseAuctionEvent,
    EmergencyWithdrawalEvent,
    ListEvent,
    MarketplaceEvent,
    SoldEvent,
    WithdrawAllEvent,
)

logger = logging.getLogger(__name__)

DEFAULT_ABI_PATH = os.path.join(os.path.dirname(os.path.dirname(__file__)), "abi", "NftMarketplace.json")

# Field order of the auctions(uint256) getter
AUCTION_FIELDS = (
    "nftToken",
    "nftTokenId",
    "owner",
    "token",
    "targetPrice",
    "reservePrice",
    "endTime",
    "minIncrement",
    "isSettled",
    "highestBidder",
    "auctionType",
    "isSold",
)


def topic_hex(topic: Any) -> str:
    """Normalise a log topic (bytes or hex string) to a lower-case 0x string"""
    if isinstance(topic, str):
        topic = topic.lower()
        return topic if topic.startswith("0x") else f"0x{topic}"
    return Web3.to_hex(topic)


def load_abi(path: Optional[str] = None) -> List[Dict]:
    """Load the marketplace ABI, accepting a bare list or a build artifact with an 'abi' key"""
    full_path = path or DEFAULT_ABI_PATH
    with open(full_path, 'r') as f:
        data = json.load(f)
    if isinstance(data, dict) and 'abi' in data:
        return data['abi']
    if isinstance(data, list):
        return data
    raise ValueError(f"Invalid ABI format in {full_path}")


def wei_to_decimal(value: Any) -> Decimal:
    """Convert an 18-decimal on-chain integer to Decimal ether units"""
    return Decimal(Web3.from_wei(int(value), 'ether'))


def parse_auction(auction_id: int, raw: Any) -> AuctionRecord:
    """Convert the raw auctions() tuple (or mapping) into an AuctionRecord"""
    if isinstance(raw, dict):
        fields = raw
    else:
        fields = dict(zip(AUCTION_FIELDS, raw))
    return AuctionRecord(
        auction_id=auction_id,
        nft_token=fields["nftToken"],
        nft_token_id=int(fields["nftTokenId"]),
        owner=fields["owner"],
        token=fields["token"],
        target_price=wei_to_decimal(fields["targetPrice"]),
        reserve_price=wei_to_decimal(fields["reservePrice"]),
        end_time=int(fields["endTime"]),
        min_increment=wei_to_decimal(fields["minIncrement"]),
        is_settled=bool(fields["isSettled"]),
        highest_bidder=fields["highestBidder"],
        auction_type=int(fields["auctionType"]),
        is_sold=bool(fields["isSold"]),
    )


def event_from_args(name: str, args: Dict[str, Any], block_number: int = 0,
                    log_index: int = 0) -> MarketplaceEvent:
    """Build a typed marketplace event from decoded log arguments"""
    base = {
        "auction_id": int(args["auctionId"]),
        "block_number": int(block_number),
        "log_index": int(log_index),
    }
    if name == "List":
        return ListEvent(**base)
    if name == "Bid":
        return BidEvent(**base, amount=wei_to_decimal(args["amount"]), highest_bidder=args["highestBidder"])
    if name == "Sold":
        return SoldEvent(
            **base,
            sales_price=wei_to_decimal(args["salesPrice"]),
            token=args["token"],
            highest_bidder=args["highestBidder"],
        )
    if name == "CloseAuction":
        return CloseAuctionEvent(**base, highest_bidder=args["highestBidder"])
    if name == "WithdrawAll":
        return WithdrawAllEvent(**base, account=args["account"])
    if name == "EmergencyWithdrawal":
        return EmergencyWithdrawalEvent(**base, highest_bidder=args["highestBidder"])
    raise ValueError(f"Unknown marketplace event: {name}")


class ChainClient:
    """Holds one connection to the node and the marketplace contract handle"""

    def __init__(self, rpc_url: str, contract_address: str, abi: List[Dict], timeout: float = 30.0,
                 min_split_span: int = 10):
        self.rpc_url = rpc_url
        self.contract_address = Web3.to_checksum_address(contract_address)
        self.abi = abi
        self.timeout = timeout
        self.min_split_span = min_split_span
        self.w3: Optional[AsyncWeb3] = None
        self.contract = None

        # topic0 -> event name, for the events we reconcile
        self._topics = {
            topic_hex(event_abi_to_log_topic(entry)): entry["name"]
            for entry in abi
            if entry.get("type") == "event" and entry.get("name") in EVENT_KINDS
        }

    @property
    def supports_subscriptions(self) -> bool:
        return self.rpc_url.startswith(("ws://", "wss://"))

    async def connect(self) -> None:
        """Open the provider and build the contract handle"""
        if self.supports_subscriptions:
            w3 = await AsyncWeb3(WebSocketProvider(self.rpc_url, request_timeout=self.timeout))
        else:
            w3 = AsyncWeb3(AsyncHTTPProvider(self.rpc_url, request_kwargs={"timeout": self.timeout}))
        contract = w3.eth.contract(address=self.contract_address, abi=self.abi)

        # Replace wholesale, never patch the old handle
        self.w3 = w3
        self.contract = contract
        logger.info(f"Connected to {self.rpc_url} (marketplace {self.contract_address[:6]}..{self.contract_address[-4:]})")

    async def close(self) -> None:
        w3 = self.w3
        self.w3 = None
        self.contract = None
        if w3 is None:
            return
        try:
            await w3.provider.disconnect()
        except Exception as e:
            logger.debug(f"Ignoring error while closing provider: {e}")

    async def reconnect(self) -> None:
        logger.info("re-establishing web3 connection")
        await self.close()
        await self.connect()

    async def _ensure_connected(self) -> AsyncWeb3:
        if self.w3 is None:
            await self.connect()
        return self.w3

    async def current_block_height(self) -> int:
        w3 = await self._ensure_connected()
        return int(await w3.eth.block_number)

    async def call(self, method: str, *args: Any) -> Any:
        """Invoke a read-only contract method and return the raw result"""
        await self._ensure_connected()
        fn = getattr(self.contract.functions, method)
        return await fn(*args).call()

    def decode_log(self, log: Dict[str, Any]) -> Optional[MarketplaceEvent]:
        """Decode a raw log into a typed event, or None if it is not one we track"""
        topics = log.get("topics") or []
        if not topics:
            return None
        name = self._topics.get(topic_hex(topics[0]))
        if name is None:
            logger.debug(f"Skipping unknown log topic {topic_hex(topics[0])}")
            return None
        decoded = getattr(self.contract.events, name)().process_log(log)
        return event_from_args(name, decoded["args"], decoded["blockNumber"], decoded["logIndex"])

    async def past_events(self, from_block: int, to_block: int) -> List[MarketplaceEvent]:
        """All marketplace events in [from_block, to_block], in block and log order"""
        await self._ensure_connected()
        logs = await self._get_logs_with_split(from_block, to_block)
        logs = sorted(logs, key=lambda l: (int(l["blockNumber"]), int(l["logIndex"])))
        events = []
        for log in logs:
            event = self.decode_log(log)
            if event is not None:
                events.append(event)
        return events

    async def _get_logs_with_split(self, from_block: int, to_block: int) -> List[Any]:
        """Fetch logs with eth_getLogs, halving the range on provider size/limit errors"""
        try:
            return list(await self.w3.eth.get_logs({
                "address": self.contract_address,
                "fromBlock": from_block,
                "toBlock": to_block,
            }))
        except Exception as e:
            span = to_block - from_block
            msg = str(e).lower()
            should_split = span > self.min_split_span and any(x in msg for x in [
                'too many results',
                'response size',
                'limit',
                'timeout',
                'range',
            ])
            if should_split:
                mid = from_block + span // 2
                logger.debug(f"Splitting getLogs range {from_block}-{to_block} at {mid}: {e}")
                left = await self._get_logs_with_split(from_block, mid)
                right = await self._get_logs_with_split(mid + 1, to_block)
                return left + right
            raise

    async def subscribe_all_events(self) -> AsyncIterator[MarketplaceEvent]:
        """Live marketplace events pushed by a websocket node"""
        w3 = await self._ensure_connected()
        subscription_id = await w3.eth.subscribe("logs", {"address": self.contract_address})
        logger.info(f"connected: {subscription_id}")
        async for payload in w3.socket.process_subscriptions():
            log = payload.get("result") if isinstance(payload, dict) else None
            if not log:
                continue
            event = self.decode_log(log)
            if event is not None:
                yield event
