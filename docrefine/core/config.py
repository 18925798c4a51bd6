"""Configuration management for the document refinement engine."""

from functools import lru_cache
from typing import Literal

from dotenv import load_dotenv
from pydantic import Field
from pydantic_settings import BaseSettings, SettingsConfigDict

# Load environment variables from .env file (only if accessible)
try:
    load_dotenv()
except (PermissionError, OSError):
    # In sandboxed environments, .env might not be accessible
    # Environment variables should be set directly
    pass


class Settings(BaseSettings):
    """Application settings loaded from environment variables."""

    model_config = SettingsConfigDict(
        env_file=".env",
        case_sensitive=True,
        extra="ignore",
    )

    # Environment
    DOCREFINE_ENV: str = Field(default="dev", description="Environment: dev, test, prod")

    # Provider selection
    DEFAULT_PROVIDER: Literal["gemini", "openrouter"] = Field(
        default="gemini", description="Provider used when none is selected explicitly"
    )

    # Gemini (schema-constrained provider)
    GEMINI_API_KEY: str | None = Field(default=None, description="Google Gemini API key")
    GEMINI_MODEL: str = Field(default="gemini-2.5-flash", description="Gemini model id")

    # OpenRouter (free-text provider)
    OPENROUTER_API_KEY: str | None = Field(default=None, description="OpenRouter API key")
    OPENROUTER_BASE_URL: str = Field(
        default="https://openrouter.ai/api/v1", description="OpenRouter API base URL"
    )
    # Attribution headers must stay ASCII to avoid header encoding errors
    OPENROUTER_SITE_URL: str = Field(default="https://user-app.com", description="HTTP-Referer header")
    OPENROUTER_APP_NAME: str = Field(default="PDF Design Doc Analyzer", description="X-Title header")
    OPENROUTER_MODEL: str = Field(default="openai/gpt-4o", description="Model for document analysis")
    OPENROUTER_AUX_MODEL: str = Field(
        default="google/gemini-2.5-flash",
        description="Default model for question generation, refinement and diffing",
    )

    # Transport
    HTTP_TIMEOUT_SECONDS: float = Field(default=300.0, description="Primary completion timeout")
    COST_LOOKUP_DELAY_SECONDS: float = Field(
        default=2.0, description="Wait before querying billed generation cost"
    )
    COST_LOOKUP_TIMEOUT_SECONDS: float = Field(
        default=15.0, description="Timeout for the generation cost lookup"
    )

    # Ingestion
    ANALYSIS_MODE: Literal["image-only", "image-with-text", "raw-document"] = Field(
        default="image-with-text", description="Multimodal payload shape sent to providers"
    )
    RENDER_SCALE: float = Field(default=1.5, description="Page rasterization zoom factor")
    MAX_PAGES: int = Field(default=100, description="Max pages rasterized per document")

    THINKING_ENABLED: bool = Field(
        default=True, description="Request reasoning from models that support it"
    )

    # Local persistence
    STATE_DIR: str = Field(default=".docrefine", description="Directory of the JSON key-value store")


@lru_cache
def get_settings() -> Settings:
    """
    Get cached settings instance.

    Returns:
        Settings instance
    """
    return Settings()
