"""
Configuration management for the Study Canvas backend.

Centralizes all configuration using Pydantic settings with environment variable support.
"""

from typing import Literal, Optional
from pydantic_settings import BaseSettings, SettingsConfigDict
from pydantic import Field


class Settings(BaseSettings):
    """Application settings loaded from environment variables."""

    # Database Configuration
    database_url: str = Field(
        default="sqlite:///./study_canvas.db",
        description="SQLAlchemy connection URL (used by the database session store)"
    )
    db_pool_size: int = Field(
        default=5,
        description="Database connection pool size (ignored for SQLite)"
    )
    db_max_overflow: int = Field(
        default=10,
        description="Maximum overflow connections (ignored for SQLite)"
    )
    db_pool_timeout: int = Field(
        default=30,
        description="Connection pool timeout in seconds"
    )

    # API Configuration
    api_host: str = Field(
        default="0.0.0.0",
        description="API server host"
    )
    api_port: int = Field(
        default=8000,
        description="API server port"
    )

    # LLM Configuration
    gemini_api_key: str = Field(
        default="",
        description="Google Gemini API key (required when llm_provider is google)"
    )
    openai_api_key: str = Field(
        default="",
        description="OpenAI API key (required when llm_provider is openai)"
    )
    llm_provider: Literal["google", "openai"] = Field(
        default="google",
        description="Provider used for content generation"
    )
    llm_model: str = Field(
        default="gemini-2.5-flash",
        description="Fast model used for commands, courses, lessons, quizzes and slides"
    )
    plan_model: str = Field(
        default="gemini-3-pro-preview",
        description="Thinking model used to stream the study plan"
    )
    plan_thinking_budget: int = Field(
        default=10000,
        description="Thinking token budget for the study plan model"
    )

    # Session persistence
    session_store_backend: Literal["file", "database", "memory"] = Field(
        default="file",
        description="Where completed study sessions are saved"
    )
    session_store_path: str = Field(
        default="./.study_canvas_storage.json",
        description="JSON file used by the file session store"
    )
    session_storage_key: str = Field(
        default="kleem_sessions",
        description="Key under which the session list is stored"
    )

    # Canvas behaviour
    history_limit: int = Field(
        default=10,
        ge=1,
        description="Maximum number of undo snapshots kept"
    )
    child_x_offset: float = Field(
        default=500.0,
        description="Horizontal offset of a child node from its parent"
    )
    child_y_spacing: float = Field(
        default=650.0,
        description="Vertical spacing between siblings under the same parent"
    )
    focus_x_offset: float = Field(
        default=500.0,
        description="Horizontal offset of a new node placed next to the focused node"
    )

    # Application Settings
    log_level: str = Field(
        default="INFO",
        description="Logging level"
    )
    environment: str = Field(
        default="development",
        description="Environment: development, staging, production"
    )

    model_config = SettingsConfigDict(
        env_file=".env",
        env_file_encoding="utf-8",
        case_sensitive=False,
        extra="ignore"
    )


# Global settings instance
_settings: Optional[Settings] = None


def get_settings() -> Settings:
    """
    Get or create the global settings instance.

    Returns:
        Settings: Application settings
    """
    global _settings
    if _settings is None:
        _settings = Settings()
    return _settings


def reset_settings():
    """Reset the global settings instance (useful for testing)."""
    global _settings
    _settings = None


def validate_required_settings():
    """
    Validate that all required settings are present at runtime.

    Should be called after settings are loaded but before application starts.
    Raises ValueError if required settings are missing.
    """
    settings = get_settings()

    if settings.llm_provider == "google" and not settings.gemini_api_key:
        raise ValueError(
            "GEMINI_API_KEY environment variable is required when LLM_PROVIDER=google. "
            "Please set it in your environment or .env file."
        )

    if settings.llm_provider == "openai" and not settings.openai_api_key:
        raise ValueError(
            "OPENAI_API_KEY environment variable is required when LLM_PROVIDER=openai. "
            "Please set it in your environment or .env file."
        )

    if settings.session_store_backend == "database" and not settings.database_url:
        raise ValueError("DATABASE_URL is required when SESSION_STORE_BACKEND=database")

    return True
