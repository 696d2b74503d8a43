"""
Raw contract reads, bypassing the store.
"""

from fastapi import APIRouter, Depends

from ...services import Services
from ..dependencies import get_services, normalize_address

router = APIRouter(prefix="/bsc", tags=["chain"])


@router.get("/auctionslength")
async def auctions_length(services: Services = Depends(get_services)):
    return await services.reader.auctions_length()


@router.get("/auction/{auction_id}")
async def auction(auction_id: int, services: Services = Depends(get_services)):
    record = await services.reader.get_auction(auction_id)
    return record.to_document()


@router.get("/highestbid/{auction_id}")
async def highest_bid(auction_id: int, services: Services = Depends(get_services)):
    return str(await services.reader.highest_bid(auction_id))


@router.get("/bidbalance/{auction_id}/{address}")
async def bid_balance(auction_id: int, address: str, services: Services = Depends(get_services)):
    return str(await services.reader.bid_balance(auction_id, normalize_address(address)))


@router.get("/getuserbidslength/{address}")
async def user_bids_length(address: str, services: Services = Depends(get_services)):
    return await services.reader.user_bids_length(normalize_address(address))


@router.get("/getuserbids/{address}")
async def user_bids(address: str, services: Services = Depends(get_services)):
    result = await services.reader.user_bids(normalize_address(address))
    return result.to_document()
