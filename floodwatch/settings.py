from typing import Optional

from pydantic import Field, field_validator
from pydantic_settings import BaseSettings, SettingsConfigDict


DEFAULT_OPENWEATHER_BASE_URL = "https://api.openweathermap.org/data/2.5/weather"


class MissingAPIKeyError(RuntimeError):
    """Raised when ingestion is requested without an OpenWeather API key."""
    pass


class Settings(BaseSettings):
    """
    Centralized configuration.

    Loaded from:
    - environment variables
    - .env file (if present)

    The OpenWeather key is optional at startup so the read-only API keeps
    working without it. Ingestion checks for it up front via
    require_openweather_api_key().
    """
    model_config = SettingsConfigDict(env_file=".env", extra="ignore")

    openweather_api_key: Optional[str] = None
    openweather_base_url: str = DEFAULT_OPENWEATHER_BASE_URL

    # Outbound request timeout per location
    http_timeout_s: float = Field(default=12.0, gt=0)

    # When set, POST /ingest requires a matching X-Ingest-Secret header
    ingest_secret: Optional[str] = None

    app_name: str = "Floodwatch API"
    database_url: str = "sqlite:///floodwatch.sqlite3"
    log_level: str = "INFO"

    @field_validator("log_level")
    @classmethod
    def validate_log_level(cls, v: str) -> str:
        valid_levels = {"DEBUG", "INFO", "WARNING", "ERROR", "CRITICAL"}
        v_upper = v.upper()
        if v_upper not in valid_levels:
            raise ValueError(f"log_level must be one of {sorted(valid_levels)}")
        return v_upper

    def require_openweather_api_key(self) -> str:
        """
        Return the OpenWeather API key or fail before any location is touched.
        """
        if not self.openweather_api_key:
            raise MissingAPIKeyError("OpenWeather API key missing (OPENWEATHER_API_KEY).")
        return self.openweather_api_key


settings = Settings()


def get_settings() -> Settings:
    """FastAPI dependency returning the process-wide settings object."""
    return settings
