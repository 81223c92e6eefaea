"""
Configuration management using Pydantic models loaded from YAML.
"""

from datetime import time
from pathlib import Path
from typing import List, Optional

import pendulum
import yaml
from pydantic import BaseModel, Field, field_validator, model_validator

from .domain.models import SearchWindow
from .domain.slot_generator import DEFAULT_GRANULARITY_MINUTES


class DefaultsConfig(BaseModel):
    """Default settings for search."""
    duration_minutes: int = 30
    horizon_days: int = 7
    window_start: time = time(8, 0)
    window_end: time = time(17, 0)
    granularity_minutes: int = DEFAULT_GRANULARITY_MINUTES
    closed_weekdays: List[int] = Field(default_factory=list)  # 0=Monday, 6=Sunday

    @field_validator("duration_minutes", "granularity_minutes")
    @classmethod
    def validate_positive(cls, value: int) -> int:
        """Ensure durations are positive."""
        if value <= 0:
            raise ValueError("value must be greater than zero")
        return value

    @field_validator("horizon_days")
    @classmethod
    def validate_horizon(cls, value: int) -> int:
        if value < 0:
            raise ValueError("horizon_days must not be negative")
        return value

    @field_validator("closed_weekdays")
    @classmethod
    def validate_closed_weekdays(cls, value: List[int]) -> List[int]:
        """Ensure weekdays are in valid range and deduplicated."""
        invalid_days = [day for day in value if day not in range(7)]
        if invalid_days:
            raise ValueError(f"closed_weekdays must be between 0 and 6, got {invalid_days}")
        return list(dict.fromkeys(value))

    @model_validator(mode="after")
    def validate_window_order(self) -> "DefaultsConfig":
        """Ensure the configured window opens before it closes."""
        if self.window_end <= self.window_start:
            raise ValueError("window_end must be later than window_start")
        return self

    def build_window(
        self,
        start: Optional[time] = None,
        end: Optional[time] = None
    ) -> SearchWindow:
        """Build a search window, optionally overriding the configured times."""
        return SearchWindow(
            start_time=start or self.window_start,
            end_time=end or self.window_end,
            closed_weekdays=tuple(self.closed_weekdays)
        )


class EngineConfig(BaseModel):
    """Settings of the search engine itself."""
    max_workers: int = 4
    timeout_seconds: Optional[float] = None

    @field_validator("max_workers")
    @classmethod
    def validate_workers(cls, value: int) -> int:
        if value < 1:
            raise ValueError("max_workers must be at least 1")
        return value

    @field_validator("timeout_seconds")
    @classmethod
    def validate_timeout(cls, value: Optional[float]) -> Optional[float]:
        if value is not None and value <= 0:
            raise ValueError("timeout_seconds must be greater than zero")
        return value


class AppConfig(BaseModel):
    """Application configuration."""
    timezone: str = "Europe/Amsterdam"
    data_file: Path = Path("practice.yaml")
    defaults: DefaultsConfig = Field(default_factory=DefaultsConfig)
    engine: EngineConfig = Field(default_factory=EngineConfig)

    @field_validator("timezone")
    @classmethod
    def validate_timezone(cls, value: str) -> str:
        """Reject unknown IANA timezone names early."""
        try:
            pendulum.timezone(value)
        except Exception as exc:
            raise ValueError(f"Unknown timezone: {value}") from exc
        return value

    @classmethod
    def load_from_yaml(cls, config_path: Path) -> "AppConfig":
        """
        Load configuration from YAML file.

        A relative ``data_file`` is resolved against the config file's folder.

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
                f"Please create a config.yaml file. See config.example.yaml for reference."
            )

        try:
            with open(config_path, "r", encoding="utf-8") as f:
                data = yaml.safe_load(f) or {}
        except yaml.YAMLError as exc:
            raise ValueError(f"Invalid YAML in {config_path}: {exc}") from exc

        if not isinstance(data, dict):
            raise ValueError("Config file must contain a mapping at the root level.")

        config = cls(**data)
        if not config.data_file.is_absolute():
            config = config.model_copy(
                update={"data_file": config_path.parent / config.data_file}
            )
        return config


def get_default_config_path() -> Path:
    """Get the default configuration file path."""
    # Look for config.yaml in current directory
    current_dir = Path.cwd()
    config_path = current_dir / "config.yaml"

    if not config_path.exists():
        # Try in the project root (parent of the package)
        project_root = Path(__file__).parent.parent
        config_path = project_root / "config.yaml"

    return config_path
