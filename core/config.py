"""Configuration models and encrypted persistence utilities for the ETL monitor."""

import json
import logging
from pathlib import Path
from typing import Any, Dict

from cryptography.fernet import Fernet, InvalidToken
from pydantic import BaseModel, Field, field_validator


CONFIG_FILE_NAME = "config.json"
CONFIG_KEY_FILE = "key.key"
CONFIG_VERSION = 1
DEFAULT_BASE_URL = "http://localhost:8080/api/etl"
DEFAULT_STORAGE_DIR = ".etl_monitor"

logger = logging.getLogger("etlmonitor.config")


class PollingOptions(BaseModel):
    """Timing and retry settings for the status polling loop."""

    interval_ms: int = Field(default=2000, ge=250, le=60000, description="Delay between status requests.")
    request_timeout: int = Field(default=30, ge=1, le=300, description="HTTP timeout in seconds.")
    max_retries: int = Field(default=2, ge=0, le=5, description="Transport-level retries per request.")


class AppConfig(BaseModel):
    """Root persisted configuration for the backend connection and local history."""

    version: int = CONFIG_VERSION
    base_url: str = DEFAULT_BASE_URL
    api_token: str = ""
    storage_dir: str = DEFAULT_STORAGE_DIR
    history_limit: int = Field(default=50, ge=1, le=200, description="How many history entries to persist.")
    log_level: str = "INFO"
    polling: PollingOptions = Field(default_factory=PollingOptions)

    @field_validator("base_url")
    @classmethod
    def validate_base_url(cls, value: str) -> str:
        """Strip trailing slashes and fall back to the local backend when blank."""
        value = (value or "").strip().rstrip("/")
        return value or DEFAULT_BASE_URL

    @field_validator("storage_dir")
    @classmethod
    def validate_storage_dir(cls, value: str) -> str:
        return (value or "").strip() or DEFAULT_STORAGE_DIR

    @field_validator("log_level")
    @classmethod
    def validate_log_level(cls, value: str) -> str:
        level = (value or "INFO").strip().upper()
        if level not in {"DEBUG", "INFO", "WARNING", "ERROR", "CRITICAL"}:
            raise ValueError(f"unknown log level: {value}")
        return level

    def to_dict(self) -> Dict[str, Any]:
        """Serialise the configuration to a plain dictionary."""
        return self.model_dump()

    @classmethod
    def from_dict(cls, payload: Dict[str, Any]) -> "AppConfig":
        """Create a configuration instance while tolerating older payloads."""
        if not payload:
            return cls()
        payload = dict(payload)
        payload.setdefault("polling", {})
        payload.setdefault("version", 0)
        return cls(**payload)


class ConfigManager:
    """Manage configuration persistence with the API token encrypted at rest."""

    def __init__(self, config_path: Path | str | None = None, key_path: Path | str | None = None) -> None:
        """Set up file paths and ensure the encryption key exists."""
        resolved_config = Path(config_path).expanduser() if config_path else None
        base_dir = resolved_config.parent if resolved_config else Path(".")
        self._config_path = resolved_config if resolved_config else base_dir / CONFIG_FILE_NAME
        self._key_path = Path(key_path).expanduser() if key_path else base_dir / CONFIG_KEY_FILE
        self._ensure_key_exists()

    @property
    def config_path(self) -> Path:
        return self._config_path

    @property
    def key_path(self) -> Path:
        return self._key_path

    def _ensure_key_exists(self) -> None:
        if not self._key_path.exists():
            self._key_path.parent.mkdir(parents=True, exist_ok=True)
            self._key_path.write_bytes(Fernet.generate_key())

    def _get_cipher(self) -> Fernet:
        return Fernet(self._key_path.read_bytes())

    def load(self) -> AppConfig:
        """Load configuration, decrypting the API token when necessary."""
        if not self._config_path.exists():
            return AppConfig()

        with self._config_path.open("r", encoding="utf-8") as handle:
            payload = json.load(handle)

        token = payload.get("api_token")
        if token:
            try:
                payload["api_token"] = self._get_cipher().decrypt(token.encode()).decode()
            except (InvalidToken, ValueError):
                # Tokens written before encryption was enabled are stored as-is.
                logger.warning("API token in %s is not encrypted; using it as plain text.", self._config_path)

        return AppConfig.from_dict(payload)

    def save(self, config: AppConfig) -> None:
        """Persist configuration while encrypting the API token on disk."""
        payload = config.to_dict()
        if payload.get("api_token"):
            payload["api_token"] = self._get_cipher().encrypt(payload["api_token"].encode()).decode()

        self._config_path.parent.mkdir(parents=True, exist_ok=True)
        with self._config_path.open("w", encoding="utf-8") as handle:
            json.dump(payload, handle, ensure_ascii=False, indent=2)
