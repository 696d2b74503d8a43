#!/usr/bin/env python3
"""
Tests for settings and YAML overrides
"""

import pytest

from marketplace_indexer.config import AppMode, Settings, load_yaml_config, validate_settings
from marketplace_indexer.constants import HAMMER_NFT


CONFIG = """
app_mode: production
indexer:
  log_level: DEBUG
  block_batch_size: 250
  start_block: ${TEST_START_BLOCK}
chain:
  rpc_url: ${TEST_RPC_URL}
  call_retries: 4
database:
  url: ${TEST_UNSET_DATABASE_URL}
"""


def test_yaml_overrides_expand_environment(tmp_path, monkeypatch):
    monkeypatch.setenv("TEST_RPC_URL", "wss://node.test")
    monkeypatch.setenv("TEST_START_BLOCK", "1234")
    monkeypatch.delenv("TEST_UNSET_DATABASE_URL", raising=False)
    path = tmp_path / "config.yaml"
    path.write_text(CONFIG)

    overrides = load_yaml_config(str(path))

    assert overrides["rpc_url"] == "wss://node.test"
    assert overrides["crawler_max_batch_size"] == 250
    assert overrides["crawler_start_block"] == 1234
    assert overrides["contract_call_retries"] == 4
    assert overrides["app_mode"] == "production"
    # Unset variables fall back to the environment
    assert "database_url" not in overrides

    settings = Settings(**overrides)
    assert settings.app_mode == AppMode.PRODUCTION
    assert settings.log_level == "DEBUG"


def test_async_database_url():
    settings = Settings(database_url="postgresql://user@db:5432/marketplace")
    assert settings.get_effective_database_url() == "postgresql+asyncpg://user@db:5432/marketplace"


def test_database_required_outside_mock_mode():
    with pytest.raises(ValueError):
        validate_settings(Settings(app_mode=AppMode.PRODUCTION, database_url=None))

    validate_settings(Settings(app_mode=AppMode.MOCK, database_url=None))


def test_empty_start_block_means_zero():
    assert Settings(crawler_start_block="").crawler_start_block == 0


def test_nft_series_is_keyed_by_lowercase_address():
    series = Settings().nft_series()
    assert series[HAMMER_NFT.lower()] == "hammer"
    assert "1" in series.values()
