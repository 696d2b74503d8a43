from fastapi import HTTPException, Request
from web3 import Web3

from ..services import Services


def get_services(request: Request) -> Services:
    """Dependency returning the service container attached to the app"""
    return request.app.state.services


def normalize_address(address: str) -> str:
    """Checksum an address path parameter, 400 if it is not an address"""
    try:
        return Web3.to_checksum_address(address)
    except (ValueError, TypeError):
        raise HTTPException(status_code=400, detail=f"invalid address {address}")
