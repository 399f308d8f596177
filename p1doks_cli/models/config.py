"""
Pydantic models for application settings and saved preferences.
Provides robust validation for all settings.
"""

import os
from datetime import date
from typing import Any

from pydantic import BaseModel, ConfigDict, Field, ValidationError, field_validator

from p1doks_cli.exceptions import ConfigurationError

# P1Doks Cognito user pool
COGNITO_REGION = "ca-central-1"
COGNITO_CLIENT_ID = "6mu7svlaa4q8i1mvkeknhsruo8"

API_BASE_URL = "https://api.p1doks.com"

# Start of Season 4 2025; update at the start of each season
SEASON_REFERENCE_START = date(2025, 9, 10)

# Environment variable -> settings field
ENV_SETTINGS = {
    "P1DOKS_API_URL": "api_base_url",
    "P1DOKS_COGNITO_REGION": "cognito_region",
    "P1DOKS_COGNITO_CLIENT_ID": "cognito_client_id",
    "P1DOKS_DOWNLOAD_DELAY": "download_delay",
    "P1DOKS_SEASON_START": "season_reference_start",
}


class AppSettings(BaseModel):
    """A validated settings model for the application."""

    model_config = ConfigDict(validate_assignment=True, str_strip_whitespace=True)

    # API & Authentication
    api_base_url: str = API_BASE_URL
    cognito_region: str = COGNITO_REGION
    cognito_client_id: str = COGNITO_CLIENT_ID
    request_timeout: float = 60.0

    # Catalog & Pacing
    fetch_limit: int = 100
    download_delay: float = 0.5
    mapping_delay: float = 0.3

    # Season calendar
    season_reference_start: date = SEASON_REFERENCE_START
    weeks_per_season: int = 12

    @field_validator("api_base_url")
    @classmethod
    def validate_api_url(cls, v: str) -> str:
        """Ensures the API URL is absolute and has no trailing slash."""
        if not v.startswith(("http://", "https://")):
            raise ValueError("API URL must start with http:// or https://.")
        return v.rstrip("/")

    @field_validator("fetch_limit")
    @classmethod
    def validate_fetch_limit(cls, v: int) -> int:
        if v < 1 or v > 500:
            raise ValueError("Fetch limit must be between 1 and 500.")
        return v

    @field_validator("download_delay", "mapping_delay")
    @classmethod
    def validate_delay(cls, v: float) -> float:
        if v < 0 or v > 60:
            raise ValueError("Delays must be between 0 and 60 seconds.")
        return v

    @classmethod
    def from_env(cls, environ: dict[str, str] | None = None) -> "AppSettings":
        """
        Builds settings from P1DOKS_* environment variables over the defaults.

        Raises:
            ConfigurationError: If a variable holds an invalid value.
        """
        environ = os.environ if environ is None else environ
        overrides: dict[str, Any] = {
            field_name: environ[var]
            for var, field_name in ENV_SETTINGS.items()
            if environ.get(var)
        }
        try:
            return cls(**overrides)
        except ValidationError as e:
            raise ConfigurationError(f"Settings validation failed:\n{e}") from e


class Preferences(BaseModel):
    """
    What is remembered between runs. The password is never part of it, only
    the latest refresh token.
    """

    model_config = ConfigDict(str_strip_whitespace=True)

    username: str = ""
    refresh_token: str = Field(default="", repr=False)
    setups_path: str = ""

    @property
    def is_complete(self) -> bool:
        return bool(self.username and self.refresh_token and self.setups_path)
