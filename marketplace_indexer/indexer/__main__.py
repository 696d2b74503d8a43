#!/usr/bin/env python3
"""
Marketplace crawler entry point.

    python -m marketplace_indexer.indexer --config config.yaml
    python -m marketplace_indexer.indexer --once
"""

import argparse
import asyncio
import logging
import sys

from dotenv import load_dotenv

from ..config import configure_logging, get_settings, validate_settings
from ..services import Services

logger = logging.getLogger(__name__)


async def run(config_path: str = None, once: bool = False) -> None:
    settings = get_settings(config_path)
    configure_logging(settings)
    validate_settings(settings)

    services = Services.from_settings(settings)
    await services.startup()
    try:
        if once:
            await services.crawler.load_checkpoint()
            applied = await services.crawler.tick()
            logger.info(f"Single tick applied {applied} events")
            return
        await services.crawler.start()
        await services.crawler.wait()
    finally:
        await services.shutdown()


def main():
    """Main entry point"""
    parser = argparse.ArgumentParser(description='NFT Marketplace Event Crawler')
    parser.add_argument('--config', '-c',
                        help='Path to YAML config file (overrides environment)',
                        default=None)
    parser.add_argument('--once', action='store_true',
                        help='Process a single block batch and exit')
    args = parser.parse_args()

    load_dotenv()

    try:
        asyncio.run(run(args.config, once=args.once))
    except KeyboardInterrupt:
        logger.info("Crawler stopped by user")
    except Exception as e:
        logger.error(f"Failed to start crawler: {e}")
        sys.exit(1)


if __name__ == "__main__":
    main()
