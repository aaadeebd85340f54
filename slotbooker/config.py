"""
Configuration management using Pydantic models loaded from YAML.
"""

from pathlib import Path
from typing import Optional

import pendulum
import yaml
from pydantic import BaseModel, Field, field_validator, model_validator

CONFIG_FILE_NAME = "slotbooker.yaml"


class BookingConfig(BaseModel):
    """Booking engine settings."""
    default_duration_minutes: int = 60
    store_timeout_seconds: float = 5.0
    ledger_write_attempts: int = 2
    notification_timeout_seconds: float = 5.0

    @field_validator("default_duration_minutes")
    @classmethod
    def validate_positive(cls, value: int) -> int:
        """Ensure sizes are positive."""
        if value <= 0:
            raise ValueError("value must be greater than zero")
        return value

    @field_validator("store_timeout_seconds", "notification_timeout_seconds")
    @classmethod
    def validate_timeout(cls, value: float) -> float:
        if value <= 0:
            raise ValueError("timeouts must be greater than zero seconds")
        return value

    @field_validator("ledger_write_attempts")
    @classmethod
    def validate_attempts(cls, value: int) -> int:
        if value < 1:
            raise ValueError("ledger_write_attempts must be at least 1")
        return value

    @model_validator(mode="after")
    def validate_duration_fits_day(self) -> "BookingConfig":
        """A default appointment must fit in a single day."""
        if self.default_duration_minutes >= 24 * 60:
            raise ValueError("default_duration_minutes must be shorter than a day")
        return self


class NotificationConfig(BaseModel):
    """Outbound notification settings."""
    webhook_url: Optional[str] = None
    timeout_seconds: float = 10.0


class AppConfig(BaseModel):
    """Application configuration."""
    timezone: str = "Europe/Berlin"
    booking: BookingConfig = Field(default_factory=BookingConfig)
    notifications: NotificationConfig = Field(default_factory=NotificationConfig)
    data_file: Path = Path("slotbooker_data.json")

    @field_validator("timezone")
    @classmethod
    def validate_timezone(cls, value: str) -> str:
        """Ensure the canonical calendar timezone is a known IANA name."""
        try:
            pendulum.timezone(value)
        except Exception as exc:
            raise ValueError(f"Unknown timezone: {value}") from exc
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
            FileNotFoundError: If config file doesn't exist
            ValueError: If config is invalid
        """
        if not config_path.exists():
            raise FileNotFoundError(
                f"Config file not found: {config_path}\n"
                f"Please create a {CONFIG_FILE_NAME} file. See slotbooker.example.yaml for reference."
            )

        try:
            with open(config_path, "r", encoding="utf-8") as f:
                data = yaml.safe_load(f) or {}
        except yaml.YAMLError as exc:
            raise ValueError(f"Invalid YAML in {config_path}: {exc}") from exc

        if not isinstance(data, dict):
            raise ValueError("Config file must contain a mapping at the root level.")

        config = cls(**data)

        # Relative data files live next to the config file
        if not config.data_file.is_absolute():
            config.data_file = config_path.parent / config.data_file

        return config

    @classmethod
    def load_or_default(cls, config_path: Optional[Path] = None) -> "AppConfig":
        """Load the given or default config file, falling back to built-in defaults."""
        path = config_path or get_default_config_path()
        if config_path is None and not path.exists():
            return cls()
        return cls.load_from_yaml(path)


def get_default_config_path() -> Path:
    """Get the default configuration file path."""
    # Look for the config in the current directory
    config_path = Path.cwd() / CONFIG_FILE_NAME

    if not config_path.exists():
        # Try in the project root (parent of the package)
        project_root = Path(__file__).parent.parent
        config_path = project_root / CONFIG_FILE_NAME

    return config_path
