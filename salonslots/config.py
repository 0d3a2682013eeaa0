"""
Configuration management using Pydantic models loaded from YAML.
"""

import logging
from pathlib import Path
from typing import Optional

import pendulum
import yaml
from pydantic import BaseModel, Field, ValidationError, field_validator, model_validator

from .adapters.credentials import CredentialStore
from .adapters.memory_store import InMemoryBookingStore
from .adapters.rest_store import RestBookingStore
from .domain.availability import DEFAULT_GRANULARITY, DEFAULT_TIMEZONE
from .domain.exceptions import ConfigurationError

STORE_BACKENDS = ("memory", "rest")


class StoreConfig(BaseModel):
    """Where schedules, services and bookings live."""
    backend: str = "memory"
    data_file: Optional[Path] = None  # memory: JSON seed file, bundled sample if unset
    persist: bool = False  # memory: write changes back to data_file
    base_url: str = ""  # rest: project URL
    api_key: str = ""  # rest: falls back to the keyring
    timeout: int = 30  # rest: request timeout; memory: seconds to wait for the data file lock

    @field_validator("backend")
    @classmethod
    def validate_backend(cls, value: str) -> str:
        value = value.lower()
        if value not in STORE_BACKENDS:
            raise ValueError(f"backend must be one of {', '.join(STORE_BACKENDS)}, got {value!r}")
        return value

    @field_validator("timeout")
    @classmethod
    def validate_timeout(cls, value: int) -> int:
        if value <= 0:
            raise ValueError("timeout must be greater than zero")
        return value

    @model_validator(mode="after")
    def validate_rest_settings(self) -> "StoreConfig":
        """The REST backend cannot work without a URL."""
        if self.backend == "rest" and not self.base_url:
            raise ValueError("base_url is required for the rest backend")
        if self.persist and self.data_file is None:
            raise ValueError("persist requires a data_file")
        return self


class BookingConfig(BaseModel):
    """Slot generation settings."""
    slot_granularity: int = DEFAULT_GRANULARITY

    @field_validator("slot_granularity")
    @classmethod
    def validate_granularity(cls, value: int) -> int:
        """Ensure the slot step is positive."""
        if value <= 0:
            raise ValueError("slot_granularity must be greater than zero")
        return value


class AppConfig(BaseModel):
    """Application configuration."""
    timezone: str = DEFAULT_TIMEZONE
    log_level: str = "WARNING"
    store: StoreConfig = Field(default_factory=StoreConfig)
    booking: BookingConfig = Field(default_factory=BookingConfig)

    @field_validator("timezone")
    @classmethod
    def validate_timezone(cls, value: str) -> str:
        try:
            pendulum.timezone(value)
        except (KeyError, ValueError) as exc:
            raise ValueError(f"Unknown timezone: {value}") from exc
        return value

    @field_validator("log_level")
    @classmethod
    def validate_log_level(cls, value: str) -> str:
        value = value.upper()
        if not isinstance(logging.getLevelName(value), int):
            raise ValueError(f"Unknown log level: {value}")
        return value

    @classmethod
    def load_from_yaml(cls, config_path: Path) -> "AppConfig":
        """
        Load configuration from YAML file.

        Args:
            config_path: Path to the YAML config file

        Returns:
            AppConfig instance

        Raises:
            ConfigurationError: If the file is missing, not YAML or invalid
        """
        if not config_path.exists():
            raise ConfigurationError(
                f"Config file not found: {config_path}\n"
                f"Please create a config.yaml file. See config.example.yaml for reference."
            )

        try:
            with open(config_path, "r", encoding="utf-8") as f:
                data = yaml.safe_load(f) or {}
        except yaml.YAMLError as exc:
            raise ConfigurationError(f"Invalid YAML in {config_path}: {exc}") from exc

        if not isinstance(data, dict):
            raise ConfigurationError("Config file must contain a mapping at the root level.")

        try:
            return cls(**data)
        except ValidationError as exc:
            raise ConfigurationError(f"Invalid configuration in {config_path}:\n{exc}") from exc

    def resolve_api_key(self, credentials: CredentialStore | None = None) -> str:
        """
        Return the API key for the REST backend from config or the keyring.

        Raises:
            ConfigurationError: If no key is configured or stored
        """
        if self.store.api_key:
            return self.store.api_key

        credentials = credentials or CredentialStore(base_url=self.store.base_url)
        api_key = credentials.get_api_key()
        if not api_key:
            raise ConfigurationError(
                f"No API key for {self.store.base_url}. "
                "Set store.api_key or run 'salonslots set-key'."
            )
        return api_key

    def build_store(self, credentials: CredentialStore | None = None):
        """Construct the configured store. Call once per process."""
        if self.store.backend == "rest":
            return RestBookingStore(
                base_url=self.store.base_url,
                api_key=self.resolve_api_key(credentials),
                timeout=self.store.timeout,
            )

        if self.store.data_file is None:
            return InMemoryBookingStore.with_sample_data()
        return InMemoryBookingStore(
            data_file=self.store.data_file,
            persist=self.store.persist,
            lock_timeout=self.store.timeout,
        )


def get_default_config_path() -> Path:
    """Get the default configuration file path."""
    # Look for config.yaml in current directory
    config_path = Path.cwd() / "config.yaml"

    if not config_path.exists():
        # Try in the project root (parent of the package)
        project_root = Path(__file__).parent.parent
        config_path = project_root / "config.yaml"

    return config_path


def load_config(config_path: Path | None = None) -> AppConfig:
    """
    Load an explicit config file, else the default one if present, else defaults.
    """
    if config_path is not None:
        return AppConfig.load_from_yaml(config_path)

    default_path = get_default_config_path()
    if default_path.exists():
        return AppConfig.load_from_yaml(default_path)
    return AppConfig()
