"""Application configuration using Pydantic BaseSettings."""

from functools import lru_cache
from typing import Literal

from pydantic import Field
from pydantic_settings import BaseSettings, SettingsConfigDict

from src.constants import (
    DEFAULT_HTTP_TIMEOUT_SECONDS,
    DEFAULT_MAX_SCRAPE_PAGES,
    DEFAULT_ROAST_MAX_TOKENS,
    DEFAULT_ROAST_MODEL,
    DOUBAN_BASE_URL,
    DOUBAN_USER_AGENT,
    POLITE_REQUEST_DELAY_SECONDS,
)


class Settings(BaseSettings):
    """Application settings loaded from environment variables."""

    model_config = SettingsConfigDict(
        # Load .env first, then .env.local (for local/test overrides)
        # Later files override earlier ones, so .env.local takes precedence
        env_file=[".env", ".env.local"],
        env_file_encoding="utf-8",
        case_sensitive=False,
        extra="ignore",
    )

    # Douban Configuration
    douban_cookie: str = Field(
        ...,
        description="Session cookie string forwarded to Douban (bid=...; dbcl2=...; ck=...)",
    )
    douban_base_url: str = Field(
        default=DOUBAN_BASE_URL, description="Douban movie host"
    )
    douban_user_agent: str = Field(
        default=DOUBAN_USER_AGENT, description="User-Agent header for Douban requests"
    )

    # LLM Configuration
    roast_model: str = Field(
        default=DEFAULT_ROAST_MODEL,
        description="pydantic-ai model string used to write the roast",
    )
    roast_fallback_model: str | None = Field(
        default=None,
        description="Model tried when the primary roast model fails (optional)",
    )
    groq_api_key: str | None = Field(
        default=None,
        description="Groq API key; when unset the provider reads GROQ_API_KEY itself",
    )
    roast_max_tokens: int = Field(
        default=DEFAULT_ROAST_MAX_TOKENS,
        gt=0,
        description="Maximum tokens the model may generate for one roast",
    )
    roast_return_movies_on_llm_failure: bool = Field(
        default=True,
        description="Return scraped movies with a 200 when roast generation fails",
    )

    # Environment
    env: Literal["local", "railway", "prod"] = Field(
        default="local", description="Current environment"
    )
    log_level: str = Field(default="INFO", description="Python logging level")

    # Sentry Configuration
    sentry_dsn: str | None = Field(
        default=None, description="Sentry DSN for error tracking (optional)"
    )
    sentry_traces_sample_rate: float = Field(
        default=1.0, description="Sentry traces sample rate (0.0 to 1.0)"
    )

    # Logfire Configuration
    logfire_token: str | None = Field(
        default=None, description="Pydantic Logfire token for observability"
    )

    # ==========================================================================
    # Scraper Configuration
    # ==========================================================================
    # Defaults are sourced from src/constants.py.

    scraper_timeout_seconds: float = Field(
        default=DEFAULT_HTTP_TIMEOUT_SECONDS,
        gt=0,
        description="HTTP timeout for each Douban page request (seconds)",
    )
    scraper_max_pages: int = Field(
        default=DEFAULT_MAX_SCRAPE_PAGES,
        ge=1,
        description="Maximum number of listing pages per scrape",
    )
    scraper_page_delay_seconds: float = Field(
        default=POLITE_REQUEST_DELAY_SECONDS,
        ge=0,
        description="Pause between consecutive page requests (seconds)",
    )


@lru_cache()
def get_settings() -> Settings:
    """Get cached settings instance."""
    return Settings()
