"""Configuration management for reader-sync."""

import logging
from pathlib import Path
from typing import Any, List, Optional

import yaml
from pydantic import BaseModel, ConfigDict, Field, model_validator, validator

from .utils.paths import get_config_file_path


class AccountConfig(BaseModel):
    """Configuration for a single reader account."""

    model_config = ConfigDict(extra="ignore")

    name: str = "inoreader"
    email: str
    password: str = ""
    base_url: str = "https://www.inoreader.com"
    app_id: Optional[str] = None
    app_key: Optional[str] = None
    enabled: bool = True

    @model_validator(mode="before")
    @classmethod
    def _apply_legacy_aliases(cls, data: Any) -> Any:
        """Support ``user``/``username`` as aliases for ``email``."""
        if not isinstance(data, dict):
            return data

        data = data.copy()
        if not data.get("email"):
            for key in ("user", "username"):
                value = data.get(key)
                if isinstance(value, str) and value:
                    data["email"] = value
                    break

        return data

    @validator('base_url')
    def strip_base_url(cls, value: str) -> str:
        value = value.strip().rstrip("/")
        if not value.startswith(("http://", "https://")):
            raise ValueError("base_url must be an http(s) URL")
        return value

    @validator('name')
    def validate_name(cls, value: str) -> str:
        value = value.strip()
        if not value:
            raise ValueError("Account name must not be empty")
        return value


class Config(BaseModel):
    """Main configuration for reader-sync."""

    model_config = ConfigDict(extra="ignore")

    accounts: List[AccountConfig] = Field(default_factory=list)
    poll_interval: int = Field(default=60, description="Seconds between quick update triggers")
    full_update_interval: int = Field(default=3600, description="Seconds between full updates")
    request_timeout: int = Field(default=30, description="HTTP timeout in seconds")
    retry_attempts: int = Field(default=3, description="Retries for failed HTTP requests")
    log_level: str = Field(default="INFO", description="Logging level")

    @validator('log_level')
    def validate_log_level(cls, v):
        allowed = ["DEBUG", "INFO", "WARNING", "ERROR", "CRITICAL"]
        if v.upper() not in allowed:
            raise ValueError(f"Log level must be one of {allowed}")
        return v.upper()

    @validator('poll_interval', 'full_update_interval', 'request_timeout')
    def validate_positive(cls, v):
        if v <= 0:
            raise ValueError("Intervals and timeouts must be positive")
        return v

    @model_validator(mode="after")
    def _check_unique_accounts(self) -> "Config":
        names = [account.name for account in self.accounts]
        duplicates = sorted({name for name in names if names.count(name) > 1})
        if duplicates:
            raise ValueError(f"Duplicate account names: {duplicates}")
        return self

    def get_account(self, name: Optional[str] = None) -> AccountConfig:
        """Return the named account, or the only enabled one."""
        enabled = [account for account in self.accounts if account.enabled]
        if name is None:
            if len(enabled) != 1:
                raise ValueError("Several accounts configured, pass an account name")
            return enabled[0]
        for account in self.accounts:
            if account.name == name:
                return account
        raise ValueError(f"Unknown account: {name}")


def load_config(config_file: Optional[Path] = None) -> Config:
    """
    Load configuration from YAML file.

    Args:
        config_file: Optional path to config file. If None, uses default path.

    Returns:
        Config object
    """
    if config_file is None:
        config_file = get_config_file_path()

    if not config_file.exists():
        # Create default config
        config = Config()
        save_config(config, config_file)
        logging.info(f"Created default config at {config_file}")
        return config

    try:
        with open(config_file, 'r', encoding='utf-8') as f:
            data = yaml.safe_load(f) or {}

        config = Config(**data)
        logging.debug(f"Loaded config from {config_file}")
        return config

    except (yaml.YAMLError, ValueError) as e:
        logging.error(f"Error loading config from {config_file}: {e}")
        raise


def save_config(config: Config, config_file: Optional[Path] = None) -> None:
    """
    Save configuration to YAML file.

    Args:
        config: Config object to save
        config_file: Optional path to config file. If None, uses default path.
    """
    if config_file is None:
        config_file = get_config_file_path()

    config_file.parent.mkdir(parents=True, exist_ok=True)

    try:
        with open(config_file, 'w', encoding='utf-8') as f:
            yaml.dump(config.model_dump(), f, default_flow_style=False, indent=2)

        logging.debug(f"Saved config to {config_file}")

    except (OSError, yaml.YAMLError) as e:
        logging.error(f"Error saving config to {config_file}: {e}")
        raise


def create_example_config() -> str:
    """Create an example configuration YAML string."""
    example_config = Config(
        accounts=[
            AccountConfig(
                name="inoreader",
                email="me@example.com",
                password="secret",
            )
        ],
        poll_interval=60,
        full_update_interval=3600,
        log_level="INFO"
    )

    return yaml.dump(example_config.model_dump(), default_flow_style=False, indent=2)
