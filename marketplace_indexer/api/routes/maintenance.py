"""
Cron sweep and consistency scan endpoints.
"""

import logging

from fastapi import APIRouter, Depends

from ...services import Services
from ..dependencies import get_services

logger = logging.getLogger(__name__)

router = APIRouter(tags=["maintenance"])


@router.get("/refreshcron")
async def refresh_cron(services: Services = Depends(get_services)):
    """Run one bounded sweep over the auction table"""
    result = await services.sweeper.run()
    return result.to_document()


@router.get("/refreshcron/reset")
async def refresh_cron_reset(services: Services = Depends(get_services)):
    """Clear a stuck sweep lock"""
    checkpoint = await services.sweeper.force_reset()
    return checkpoint.to_document()


@router.get("/missingauctions")
async def missing_auctions(services: Services = Depends(get_services)):
    return await services.sweeper.find_missing_auctions()


@router.get("/fixmissingauctions")
async def fix_missing_auctions(services: Services = Depends(get_services)):
    result = await services.sweeper.fix_missing_auctions()
    logger.info(f"fixmissingauctions: {len(result.fixed)} fixed, {len(result.given_up)} given up")
    return result.to_document()
