"""Unit tests covering the configuration persistence helpers."""

import json

import pytest
from pydantic import ValidationError

from core.config import DEFAULT_BASE_URL, AppConfig, ConfigManager, PollingOptions


def test_config_roundtrip(tmp_path):
    """Persist and reload configuration to ensure encryption round-trip works."""
    config_path = tmp_path / "config.json"
    key_path = tmp_path / "key.key"
    manager = ConfigManager(config_path=config_path, key_path=key_path)

    polling = PollingOptions(interval_ms=1500, request_timeout=10, max_retries=1)
    config = AppConfig(
        base_url="http://etl.internal:8080/api/etl/",
        api_token="secret",
        history_limit=20,
        polling=polling,
    )
    manager.save(config)

    stored = json.loads(config_path.read_text(encoding="utf-8"))
    assert stored["api_token"] != "secret"

    loaded = manager.load()
    assert loaded.api_token == "secret"
    assert loaded.base_url == "http://etl.internal:8080/api/etl"
    assert loaded.history_limit == 20
    assert loaded.polling == polling


def test_config_loads_defaults_when_missing(tmp_path):
    """Verify loading a missing file yields default configuration values."""
    manager = ConfigManager(config_path=tmp_path / "missing.json", key_path=tmp_path / "key.key")
    config = manager.load()
    assert config.base_url == DEFAULT_BASE_URL
    assert config.api_token == ""
    assert config.polling.interval_ms == 2000
    assert config.history_limit == 50


def test_config_loads_plaintext_backward_compatibility(tmp_path):
    """Ensure legacy plaintext configs can still be read successfully."""
    config_path = tmp_path / "config.json"
    key_path = tmp_path / "key.key"
    key_path.write_bytes(b"test-key" * 4)
    payload = {"api_token": "plain-text-token", "base_url": "http://backend/api/etl"}
    config_path.write_text(json.dumps(payload), encoding="utf-8")

    manager = ConfigManager(config_path=config_path, key_path=key_path)
    config = manager.load()
    assert config.api_token == "plain-text-token"
    assert config.base_url == "http://backend/api/etl"
    assert config.version == 0


def test_config_blank_base_url_falls_back_to_default():
    """A blank backend address is replaced by the local default."""
    assert AppConfig(base_url="   ").base_url == DEFAULT_BASE_URL


def test_config_rejects_out_of_range_values():
    """Intervals below the floor and unknown log levels are refused."""
    with pytest.raises(ValidationError):
        PollingOptions(interval_ms=10)
    with pytest.raises(ValidationError):
        AppConfig(log_level="verbose")
