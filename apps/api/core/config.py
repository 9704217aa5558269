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
    # DATABASE_URL wins when set (tests and local runs use sqlite).
    DATABASE_URL: Optional[str] = Field(default=None)
    POSTGRES_USER: str = Field(default="postgres")
    POSTGRES_PASSWORD: str = Field(default="postgres")
    POSTGRES_DB: str = Field(default="workout_engine")
    POSTGRES_HOST: str = Field(default="postgres")
    POSTGRES_PORT: int = Field(default=5432)

    # Database Pool Configuration
    DB_POOL_SIZE: int = Field(default=20)
    DB_MAX_OVERFLOW: int = Field(default=10)
    DB_POOL_TIMEOUT: int = Field(default=30)
    DB_POOL_RECYCLE: int = Field(default=3600)  # 1 hour

    # JWT Authentication
    SECRET_KEY: str = Field(
        default="dev-only-secret-key-change-me-in-production-0000",
        description="JWT signing key. Must be cryptographically secure (32+ chars)."
    )
    ACCESS_TOKEN_EXPIRE_MINUTES: int = Field(default=60 * 24 * 7)

    # API Configuration
    API_HOST: str = Field(default="0.0.0.0")
    API_PORT: int = Field(default=8000)

    # Logging Configuration
    LOG_LEVEL: str = Field(default="INFO")
    LOG_FORMAT: str = Field(default="json")  # json or text

    # Exercise Recommendation Oracle (LLM)
    GOOGLE_API_KEY: Optional[str] = Field(default=None)
    ORACLE_MODEL: str = Field(default="gemini-2.5-flash")
    ORACLE_TEMPERATURE: float = Field(default=0.4)
    ORACLE_MAX_TOKENS: int = Field(default=8192)
    # Exercise selection can take minutes on a cold model.
    ORACLE_TIMEOUT_S: int = Field(default=180)
    # Weight estimation / validation calls are short.
    ORACLE_FAST_TIMEOUT_S: int = Field(default=30)

    # Workout generation
    GENERATION_CACHE_TTL_S: int = Field(default=600)  # 10 minutes
    GENERATION_CACHE_ERROR_TTL_S: int = Field(default=300)  # 5 minutes
    TARGET_RESOLUTION_WORKERS: int = Field(default=4)

    # Workout execution
    DEFAULT_REST_SECONDS: int = Field(default=90)
    MAX_USER_ADDED_EXERCISES: int = Field(default=3)

    # Celery Configuration
    CELERY_BROKER_URL: str = Field(default="redis://redis:6379/0")
    CELERY_RESULT_BACKEND: str = Field(default="redis://redis:6379/0")
    CELERY_TASK_ALWAYS_EAGER: bool = Field(default=False)

    # Environment
    ENVIRONMENT: str = Field(default="development")
    DEBUG: bool = Field(default=False)
    EXPOSE_API_DOCS: bool = Field(default=False)

    # CORS - comma-separated list of allowed origins for production
    CORS_ORIGINS: Optional[str] = Field(default=None)


# Global settings instance
settings = Settings()
