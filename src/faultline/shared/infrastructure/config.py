"""
Faultline configuration using Pydantic Settings.

Loads configuration from environment variables (``FAULTLINE_*``), a ``.env``
file, or a YAML document.
"""

from pathlib import Path
from typing import Dict, Literal, Optional

import structlog
import yaml
from pydantic import Field, field_validator
from pydantic_settings import BaseSettings, SettingsConfigDict

DEFAULT_STACKTRACE_HELPER = "faultline.infrastructure.providers:format_call_stack"
DEFAULT_PLATFORM_URL = "https://www.platform.exceptionsjs.com/v0.1/reportWithClientId/"


class FaultlineSettings(BaseSettings):
    """Process-wide error capture settings."""

    model_config = SettingsConfigDict(
        env_prefix="FAULTLINE_",
        env_file=".env",
        env_file_encoding="utf-8",
        case_sensitive=False,
        extra="ignore",
    )

    # Application
    app_env: str = Field(default="development", description="Environment (development/production)")
    log_level: str = Field(default="INFO", description="Logging level")
    log_redaction_enabled: bool = Field(default=True, description="Redact credentials in logs")
    location: Optional[str] = Field(
        default=None,
        description="Application location reported with every exception (defaults to the script URI)",
    )

    # Lazily loaded helpers ("package.module:attribute")
    stacktrace_helper: Optional[str] = Field(
        default=DEFAULT_STACKTRACE_HELPER,
        description="Import location of the stack-trace provider",
    )
    screenshot_helper: Optional[str] = Field(
        default=None,
        description="Import location of the screenshot provider",
    )

    # Delivery
    report_post_url: Optional[str] = Field(default=None, description="Destination for serialized reports")
    report_post_headers: Dict[str, str] = Field(
        default_factory=dict,
        description="Extra HTTP headers sent with every report",
    )
    client_id: Optional[str] = Field(default=None, description="Platform client id")
    to: Optional[str] = Field(default=None, description="Platform report recipient")
    platform_url: str = Field(default=DEFAULT_PLATFORM_URL, description="Platform report endpoint")
    transport_timeout: float = Field(default=5.0, gt=0, description="HTTP timeout in seconds")

    # Uncaught error routing
    scope: Literal["none", "exceptions", "all"] = Field(
        default="all",
        description="Which uncaught errors become managed exceptions",
    )

    # Default guard
    burst_count: int = Field(default=10, ge=0, description="Reports allowed inside the burst window")
    burst_seconds: float = Field(default=10.0, gt=0, description="Burst window in seconds")
    lifetime_count: int = Field(default=20, ge=0, description="Reports allowed for the process lifetime")

    @field_validator("scope", mode="before")
    @classmethod
    def _normalize_scope(cls, value):
        if isinstance(value, str):
            return value.strip().lower()
        return value

    @property
    def is_development(self) -> bool:
        """Check if running in development mode."""
        return self.app_env.lower() == "development"

    @property
    def is_production(self) -> bool:
        """Check if running in production mode."""
        return self.app_env.lower() == "production"

    @classmethod
    def from_yaml(cls, path: Path) -> "FaultlineSettings":
        """
        Load settings from a YAML file.

        Values in the file take precedence over environment variables. An
        empty file yields the defaults.

        Args:
            path: Path to a YAML mapping of setting names to values

        Returns:
            Populated settings

        Raises:
            ValueError: If the document is not a mapping
        """
        raw = yaml.safe_load(Path(path).read_text(encoding="utf-8")) or {}
        if not isinstance(raw, dict):
            raise ValueError(f"Faultline config must be a mapping, got {type(raw).__name__}")

        structlog.get_logger(__name__).debug("settings_loaded", path=str(path), keys=sorted(raw))
        return cls(**raw)


# Global settings instance
settings = FaultlineSettings()
