"""
API configuration settings.
"""

from typing import List, Optional

from pydantic import Field, field_validator
from pydantic_settings import BaseSettings, SettingsConfigDict


class APIConfig(BaseSettings):
    """
    API configuration settings.

    Built once at application start-up and handed to the components that need it.
    The instance is frozen, so nothing can mutate it after construction.
    """

    # API Settings
    api_title: str = "Library Catalogue API"
    api_version: str = "1.0.0"
    api_description: str = "REST API for the library catalogue: books, reviews and accounts"

    # Server Settings
    host: str = "0.0.0.0"
    port: int = 8000
    debug: bool = False
    environment: str = Field(default="development")

    # Database Settings
    mongodb_url: str = "mongodb://localhost:27017"
    mongodb_database: str = "library"

    # Security Settings
    jwt_secret: str = "change-me-in-production"
    jwt_algorithm: str = "HS256"
    jwt_expire_minutes: int = 60
    jwt_issuer: str = "library-api"
    jwt_audience: str = "library-app"
    bcrypt_rounds: int = 12

    # Rate Limiting
    global_rate_limit: int = 100
    global_rate_window: int = 900  # 15 minutes in seconds
    auth_rate_limit: int = 5
    auth_rate_window: int = 900

    # CORS Settings
    cors_origins: List[str] = ["http://localhost:5173"]

    # Logging
    log_level: str = "INFO"
    log_format: str = "json"
    log_file: Optional[str] = None

    model_config = SettingsConfigDict(
        env_file=".env",
        env_file_encoding="utf-8",
        case_sensitive=False,
        extra="ignore",
        frozen=True,
    )

    @field_validator("environment")
    @classmethod
    def validate_environment(cls, v):
        """Ensure environment is known."""
        valid_environments = ["development", "production"]
        if v.lower() not in valid_environments:
            raise ValueError(f"environment must be one of: {valid_environments}")
        return v.lower()

    @field_validator("jwt_expire_minutes")
    @classmethod
    def validate_expiry(cls, v):
        """Ensure token expiry is positive."""
        if v < 1:
            raise ValueError("jwt_expire_minutes must be at least 1")
        return v

    @field_validator("bcrypt_rounds")
    @classmethod
    def validate_bcrypt_rounds(cls, v):
        """Ensure bcrypt cost is inside the range bcrypt accepts."""
        if v < 4 or v > 31:
            raise ValueError("bcrypt_rounds must be between 4 and 31")
        return v

    @field_validator("global_rate_limit", "global_rate_window", "auth_rate_limit", "auth_rate_window")
    @classmethod
    def validate_rate_limit(cls, v):
        """Ensure rate limit values are usable."""
        if v < 1:
            raise ValueError("rate limit values must be at least 1")
        return v

    @field_validator("log_level")
    @classmethod
    def validate_log_level(cls, v):
        """Ensure log level is valid."""
        valid_levels = ["DEBUG", "INFO", "WARNING", "ERROR", "CRITICAL"]
        if v.upper() not in valid_levels:
            raise ValueError(f"log_level must be one of: {valid_levels}")
        return v.upper()

    @field_validator("log_format")
    @classmethod
    def validate_log_format(cls, v):
        """Ensure log format is valid."""
        valid_formats = ["json", "console"]
        if v.lower() not in valid_formats:
            raise ValueError(f"log_format must be one of: {valid_formats}")
        return v.lower()

    def is_production(self) -> bool:
        """Check if running in production mode."""
        return self.environment == "production" and not self.debug
