"""
Centralized configuration management with validation.

All environment variables are loaded and validated here.
This ensures consistent configuration across the application.
"""
from pydantic_settings import BaseSettings, SettingsConfigDict
from pydantic import Field
from typing import Optional
from dotenv import load_dotenv

load_dotenv()


class Settings(BaseSettings):
    """Application settings with validation."""

    # Pydantic v2 configuration
    model_config = SettingsConfigDict(
        env_file=".env",
        case_sensitive=True,
        extra="ignore"
    )

    # Database Configuration
    # DATABASE_URL wins when set (e.g. "sqlite://" for local runs and tests).
    DATABASE_URL: Optional[str] = Field(default=None)
    POSTGRES_USER: str = Field(default="postgres")
    POSTGRES_PASSWORD: str = Field(default="postgres")
    POSTGRES_DB: str = Field(default="running_coach")
    POSTGRES_HOST: str = Field(default="postgres")
    POSTGRES_PORT: int = Field(default=5432)

    # Database Pool Configuration
    DB_POOL_SIZE: int = Field(default=20)
    DB_MAX_OVERFLOW: int = Field(default=10)
    DB_POOL_TIMEOUT: int = Field(default=30)
    DB_POOL_RECYCLE: int = Field(default=3600)  # 1 hour

    # Redis Configuration
    REDIS_URL: str = Field(default="redis://redis:6379/0")

    # OpenRouter Configuration
    OPENROUTER_API_KEY: Optional[str] = Field(default=None)
    OPENROUTER_BASE_URL: str = Field(default="https://openrouter.ai/api/v1")
    # Attribution headers sent with every upstream call.
    OPENROUTER_HTTP_REFERER: str = Field(default="http://localhost:3000")
    OPENROUTER_APP_TITLE: str = Field(default="OpenRouter Multimodal App")
    OPENROUTER_COACH_APP_TITLE: str = Field(default="OpenRouter Running Coach")
    OPENROUTER_CONNECT_TIMEOUT_S: float = Field(default=10.0)
    # Max wait for a single chunk of the upstream event stream.
    OPENROUTER_READ_TIMEOUT_S: float = Field(default=60.0)
    # Wall-clock budget for one inbound request (both upstream passes).
    OPENROUTER_REQUEST_DEADLINE_S: float = Field(default=300.0)

    # Model defaults
    DEFAULT_CHAT_MODEL: str = Field(default="openai/gpt-4o")
    DEFAULT_VISION_MODEL: str = Field(default="openai/gpt-4o")
    DEFAULT_IMAGE_MODEL: str = Field(default="google/gemini-3-pro-image-preview")
    CHAT_DEFAULT_TEMPERATURE: float = Field(default=1.0)
    COACH_DEFAULT_TEMPERATURE: float = Field(default=0.7)
    REASONING_EFFORT: str = Field(default="medium")

    # API Configuration
    API_HOST: str = Field(default="0.0.0.0")
    API_PORT: int = Field(default=8000)
    API_RELOAD: bool = Field(default=False)
    EXPOSE_API_DOCS: bool = Field(default=False)

    # Logging Configuration
    LOG_LEVEL: str = Field(default="INFO")
    LOG_FORMAT: str = Field(default="json")  # json or text

    # Rate Limiting
    RATE_LIMIT_ENABLED: bool = Field(default=True)
    RATE_LIMIT_PER_MINUTE: int = Field(default=60)

    # Environment
    ENVIRONMENT: str = Field(default="development")
    DEBUG: bool = Field(default=False)

    # CORS - comma-separated list of allowed origins for production
    CORS_ORIGINS: Optional[str] = Field(default=None)

    # Sentry Error Tracking
    SENTRY_DSN: Optional[str] = Field(default=None)
    SENTRY_TRACES_SAMPLE_RATE: float = Field(default=0.1)  # 10% of transactions
    SENTRY_PROFILES_SAMPLE_RATE: float = Field(default=0.1)


# Global settings instance
settings = Settings()
