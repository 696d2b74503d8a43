#!/usr/bin/env python3
"""
Run the API server under uvicorn.

    python -m marketplace_indexer.api [--mock]
"""

import argparse
import logging

import uvicorn
from dotenv import load_dotenv

from ..config import AppMode, configure_logging, get_settings, validate_settings
from ..services import Services
from .app import create_app

logger = logging.getLogger(__name__)


def main():
    parser = argparse.ArgumentParser(description="NFT Marketplace Indexer API Server")
    parser.add_argument('--mock', action='store_true', help='Use the in-memory store instead of the database')
    parser.add_argument('--config', '-c', help='Path to YAML config file', default=None)
    args = parser.parse_args()

    load_dotenv()
    settings = get_settings(args.config)
    if args.mock:
        settings.app_mode = AppMode.MOCK
    configure_logging(settings)
    validate_settings(settings)

    logger.info("=" * 60)
    logger.info(f"🚀 Starting Marketplace API in {settings.app_mode.value.upper()} mode")
    logger.info("=" * 60)
    logger.info(f"API Host: {settings.api_host}:{settings.api_port}")
    logger.info(f"CORS Origins: {settings.cors_origins}")
    logger.info(f"RPC: {settings.rpc_url}")
    if settings.is_mock_mode():
        logger.info("Store: InMemoryAuctionStore (mock mode)")
    else:
        logger.info("Store: PostgresAuctionStore")

    services = Services.from_settings(settings)
    app = create_app(services, settings)

    uvicorn.run(
        app,
        host=settings.api_host,
        port=settings.api_port,
        log_level=settings.log_level.lower(),
    )


if __name__ == "__main__":
    main()
