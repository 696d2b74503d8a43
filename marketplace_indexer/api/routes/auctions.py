"""
FastAPI routes for stored auctions: listing, detail, raw rebuild and refresh.
"""

import logging
from typing import Any, Dict, Mapping

from fastapi import APIRouter, Depends, HTTPException, Request
from fastapi.responses import PlainTextResponse

from ...models import AuctionQuery
from ...services import Services
from ..dependencies import get_services, normalize_address

logger = logging.getLogger(__name__)

router = APIRouter(tags=["auctions"])

# Top-level listing filters and how to parse them
EQUALITY_FIELDS = {
    "auctionId": "int",
    "nftToken": "address",
    "nftTokenId": "int",
    "owner": "address",
    "token": "address",
    "isSettled": "bool",
    "highestBidder": "address",
    "auctionType": "int",
    "isSold": "bool",
    "lastToken": "address",
}
NFT_FIELDS = {
    "series": "str",
    "rarity": "intarray",
    "tier": "int",
}
RANGE_FIELDS = ("endsBefore", "endsAfter")
ORDER_FIELDS = ("endTime", "auctionId", "nftTokenId", "rarity", "tier")
EXTRA_PARAMS = ("direction", "limit", "startAfter", "orderby", "orderBy")

VALID_PARAMS = [*EQUALITY_FIELDS, *RANGE_FIELDS, *NFT_FIELDS, *EXTRA_PARAMS]


def _parse_value(field: str, kind: str, raw: str) -> Any:
    try:
        if kind == "int":
            return int(raw)
        if kind == "intarray":
            pieces = [int(piece) for piece in raw.split(",")]
            return pieces[0] if len(pieces) == 1 else pieces
        if kind == "bool":
            return raw.lower() != "false"
        if kind == "address":
            return normalize_address(raw)
        return raw
    except ValueError:
        raise HTTPException(status_code=400, detail=f"invalid value for {field}: {raw}")


def parse_listing_params(params: Mapping[str, str]) -> AuctionQuery:
    """Translate listing query parameters into an AuctionQuery, 400 on anything unknown"""
    for param in params:
        if param not in VALID_PARAMS:
            raise HTTPException(
                status_code=400,
                detail=f"invalid param {param}. valid params are {', '.join(VALID_PARAMS)}",
            )

    equals: Dict[str, Any] = {
        field: _parse_value(field, kind, params[field])
        for field, kind in EQUALITY_FIELDS.items()
        if params.get(field) is not None
    }
    nft_equals: Dict[str, Any] = {
        field: _parse_value(field, kind, params[field])
        for field, kind in NFT_FIELDS.items()
        if params.get(field) is not None
    }

    order_by = params.get("orderby") or params.get("orderBy") or "auctionId"
    if order_by not in ORDER_FIELDS:
        raise HTTPException(status_code=400, detail=f"accepted orderby values are {','.join(ORDER_FIELDS)}")

    direction = params.get("direction") or "asc"
    if direction not in ("asc", "desc"):
        raise HTTPException(status_code=400, detail="accepted direction values are asc, desc")

    try:
        ends_before = float(params["endsBefore"]) if params.get("endsBefore") else None
        ends_after = float(params["endsAfter"]) if params.get("endsAfter") else None
        limit = int(params["limit"]) if params.get("limit") else 20
        start_after = int(params["startAfter"]) if params.get("startAfter") else None
    except ValueError as e:
        raise HTTPException(status_code=400, detail=f"invalid numeric parameter: {e}")

    return AuctionQuery(
        equals=equals,
        nft_equals=nft_equals,
        ends_before=ends_before,
        ends_after=ends_after,
        order_by=order_by,
        direction=direction,
        limit=limit,
        start_after=start_after,
    )


@router.get("/auction")
async def list_auctions(request: Request, services: Services = Depends(get_services)):
    """Filtered, ordered and paginated auction listing"""
    query = parse_listing_params(request.query_params)
    records = await services.store.list_auctions(query)
    return [record.to_document() for record in records]


@router.get("/auction/{auction_id}")
async def get_auction(auction_id: int, services: Services = Depends(get_services)):
    record = await services.store.get(auction_id)
    if record is None:
        raise HTTPException(status_code=404, detail=f"auction {auction_id} not found")
    return record.to_document()


@router.get("/auctionraw/{auction_id}")
async def auction_raw(auction_id: int, services: Services = Depends(get_services)):
    """Auction rebuilt straight from the chain, not stored"""
    record = await services.reconciler.reconstruct(auction_id)
    return record.to_document()


@router.get("/auctionrefresh/{auction_id}", response_class=PlainTextResponse)
async def auction_refresh(auction_id: int, services: Services = Depends(get_services)):
    await services.reconciler.refresh_auction(auction_id)
    return "success"


@router.get("/auctionsfornft/{nft_token_id}/{address}")
async def auctions_for_nft(nft_token_id: int, address: str, services: Services = Depends(get_services)):
    records = await services.reconciler.auctions_for_nft(normalize_address(address), nft_token_id)
    return [record.to_document() for record in records]


@router.get("/nftsalesdatarefresh/{nft_token_id}/{address}", response_class=PlainTextResponse)
async def nft_sales_data_refresh(nft_token_id: int, address: str, services: Services = Depends(get_services)):
    await services.reconciler.refresh_last_sale_for_nft(normalize_address(address), nft_token_id)
    return "success"
