from fastapi import APIRouter, Depends
from fastapi.responses import PlainTextResponse

from ...services import Services
from ..dependencies import get_services, normalize_address

router = APIRouter(tags=["users"])


@router.get("/userbids/{address}")
async def user_bids(address: str, services: Services = Depends(get_services)):
    """Stored bids of a user"""
    result = await services.store.get_user_bids(normalize_address(address))
    return result.to_document()


@router.get("/userbidsinfo/{address}")
async def user_bids_info(address: str, services: Services = Depends(get_services)):
    """Stored bids of a user joined with the auctions they are on"""
    result = await services.reconciler.user_bids_info(normalize_address(address))
    return result.to_document()


@router.get("/userbidsrefresh/{address}", response_class=PlainTextResponse)
async def user_bids_refresh(address: str, services: Services = Depends(get_services)):
    await services.reconciler.refresh_user_bids(normalize_address(address))
    return "success"
