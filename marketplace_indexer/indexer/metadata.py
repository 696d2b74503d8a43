"""
Client for the NFT metadata API.
"""

import asyncio
import json
import logging
from typing import Dict, Optional

import aiohttp
from pydantic import ValidationError

from ..errors import MetadataFetchError
from ..models import NftData

logger = logging.getLogger(__name__)


def parse_metadata(url: str, status: int, text: str) -> NftData:
    """Turn a metadata API response into NftData; the API answers with a one-element array"""
    if status < 200 or status >= 300:
        raise MetadataFetchError(url, f"HTTP {status}, original server response: {text}")
    try:
        payload = json.loads(text)
    except ValueError as e:
        raise MetadataFetchError(url, f"error parsing json ({e}), original server response: {text}")

    if isinstance(payload, list):
        if not payload:
            raise MetadataFetchError(url, f"empty result, original server response: {text}")
        payload = payload[0]
    if not isinstance(payload, dict):
        raise MetadataFetchError(url, f"unexpected payload, original server response: {text}")

    try:
        return NftData.model_validate(payload)
    except ValidationError as e:
        raise MetadataFetchError(url, f"invalid metadata ({e}), original server response: {text}")


class NftMetadataClient:
    """Fetches NftData for the NFT contracts the metadata API knows about"""

    def __init__(self, base_url: str, series: Dict[str, str], timeout: float = 10.0):
        self.base_url = base_url.rstrip("/")
        self.series = {address.lower(): slug for address, slug in series.items()}
        self.timeout = timeout

    def url_for(self, nft_token: str, nft_token_id: int) -> Optional[str]:
        slug = self.series.get(nft_token.lower())
        if slug is None:
            return None
        return f"{self.base_url}/nft/{slug}?tokenId={nft_token_id}"

    async def fetch(self, nft_token: str, nft_token_id: int) -> NftData:
        url = self.url_for(nft_token, nft_token_id)
        if url is None:
            raise MetadataFetchError(nft_token, f"unknown nftToken {nft_token}")

        try:
            timeout = aiohttp.ClientTimeout(total=self.timeout)
            async with aiohttp.ClientSession(timeout=timeout) as session:
                async with session.get(url) as response:
                    text = await response.text()
                    status = response.status
        except aiohttp.ClientError as e:
            raise MetadataFetchError(url, f"request failed: {e}") from e
        except asyncio.TimeoutError as e:
            raise MetadataFetchError(url, "request timed out") from e

        nft_data = parse_metadata(url, status, text)
        logger.debug(f"Loaded metadata for {nft_token[:6]}..{nft_token[-4:]} #{nft_token_id}")
        return nft_data
