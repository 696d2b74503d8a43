"""
Configuration management for the marketplace indexer.
Supports mock, development, and production modes.

Settings come from the environment (and a .env file). The crawler CLI can
additionally read a YAML file whose values override the environment.
"""

import logging
import os
from enum import Enum
from typing import Any, Dict, Optional

import yaml
from pydantic import field_validator
from pydantic_settings import BaseSettings

from .constants import CRON_STALE_AFTER, HAMMER_NFT, MARKETPLACE_CONTRACT, SHARK_NFT

logger = logging.getLogger(__name__)


class AppMode(str, Enum):
    """Application running modes"""
    MOCK = "mock"
    DEV = "dev"
    DEVELOPMENT = "development"
    PRODUCTION = "production"
    PROD = "prod"  # Alias for production


class Settings(BaseSettings):
    """Application settings with environment-based configuration"""

    app_mode: AppMode = AppMode.DEV
    log_level: str = "INFO"

    # API settings
    api_host: str = "0.0.0.0"
    api_port: int = 8080
    cors_origins: str = "*"

    # Document store (PostgreSQL); not needed in mock mode
    database_url: Optional[str] = None
    sql_debug: bool = False

    # Blockchain settings
    rpc_url: str = "https://bsc-dataseed.binance.org/"
    marketplace_address: str = MARKETPLACE_CONTRACT
    abi_path: Optional[str] = None
    rpc_timeout: float = 30.0
    contract_call_retries: int = 2

    # NFT metadata API
    nft_api_url: str = "https://api.autoshark.finance/api"
    nft_api_timeout: float = 10.0
    hammer_nft_address: str = HAMMER_NFT
    shark_nft_address: str = SHARK_NFT

    # Crawler
    crawler_interval: float = 5.0
    crawler_max_batch_size: int = 100
    crawler_start_block: int = 0
    crawler_listener_retry_delay: float = 30.0

    # Cron sweep
    cron_max_refreshes: int = 10
    cron_max_auctions_processed: int = 100
    cron_stale_after: int = CRON_STALE_AFTER

    @field_validator('crawler_start_block', mode='before')
    @classmethod
    def parse_start_block(cls, v):
        """Handle empty strings for the start block"""
        if v == '' or v is None:
            return 0
        return v

    def is_mock_mode(self) -> bool:
        return self.app_mode == AppMode.MOCK

    def requires_database(self) -> bool:
        return not self.is_mock_mode()

    def get_effective_database_url(self) -> Optional[str]:
        """Get the async SQLAlchemy URL for the document store"""
        url = self.database_url
        if url and url.startswith("postgresql://"):
            return url.replace("postgresql://", "postgresql+asyncpg://", 1)
        return url

    def nft_series(self) -> Dict[str, str]:
        """NFT contract address -> metadata API series slug"""
        return {
            self.hammer_nft_address.lower(): "hammer",
            self.shark_nft_address.lower(): "1",
        }

    def get_cors_origins(self) -> list:
        return [origin.strip() for origin in self.cors_origins.split(",")]

    model_config = {"env_file": ".env", "env_file_encoding": "utf-8", "case_sensitive": False, "extra": "ignore"}


# YAML (section, key) -> Settings field
YAML_FIELDS = {
    ("indexer", "log_level"): "log_level",
    ("indexer", "poll_interval"): "crawler_interval",
    ("indexer", "block_batch_size"): "crawler_max_batch_size",
    ("indexer", "start_block"): "crawler_start_block",
    ("indexer", "listener_retry_delay"): "crawler_listener_retry_delay",
    ("chain", "rpc_url"): "rpc_url",
    ("chain", "marketplace_address"): "marketplace_address",
    ("chain", "abi_path"): "abi_path",
    ("chain", "timeout"): "rpc_timeout",
    ("chain", "call_retries"): "contract_call_retries",
    ("database", "url"): "database_url",
    ("nft_api", "url"): "nft_api_url",
    ("nft_api", "timeout"): "nft_api_timeout",
    ("cron", "max_refreshes"): "cron_max_refreshes",
    ("cron", "max_auctions_processed"): "cron_max_auctions_processed",
    ("cron", "stale_after"): "cron_stale_after",
}


def load_yaml_config(config_path: str) -> Dict[str, Any]:
    """Load a YAML config file, expanding environment variables, into Settings overrides"""
    with open(config_path, 'r') as f:
        config_content = os.path.expandvars(f.read())

    config = yaml.safe_load(config_content) or {}
    overrides = {}
    for (section, key), field in YAML_FIELDS.items():
        value = (config.get(section) or {}).get(key)
        # Unset env vars expand to "" or stay as "$VAR"
        if value is None or value == '' or (isinstance(value, str) and value.startswith('$')):
            continue
        overrides[field] = value
    if 'app_mode' in config:
        overrides['app_mode'] = config['app_mode']

    logger.info(f"Loaded {len(overrides)} settings from {config_path}")
    return overrides


def validate_settings(settings: Settings) -> None:
    """Validate settings based on app mode"""
    if settings.requires_database() and not settings.database_url:
        raise ValueError(f"DATABASE_URL is required for {settings.app_mode.value} mode")
    if settings.crawler_max_batch_size < 1:
        raise ValueError("crawler_max_batch_size must be at least 1")


_settings: Optional[Settings] = None


def get_settings(config_path: Optional[str] = None) -> Settings:
    """Get application settings, optionally overridden by a YAML file"""
    global _settings
    if config_path:
        _settings = Settings(**load_yaml_config(config_path))
    elif _settings is None:
        _settings = Settings()
    return _settings


def configure_logging(settings: Settings) -> None:
    level = getattr(logging, str(settings.log_level).upper(), logging.INFO)
    logging.basicConfig(
        level=level,
        format='%(asctime)s - %(name)s - %(levelname)s - %(message)s'
    )
