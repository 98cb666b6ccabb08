"""
Configuration management for PrintFlow.

Uses pydantic-settings for environment variable management.
"""
from pydantic_settings import BaseSettings, SettingsConfigDict
from typing import Optional


class Settings(BaseSettings):
    """Application settings loaded from environment variables."""
    
    model_config = SettingsConfigDict(
        env_file=".env",
        env_file_encoding="utf-8",
        extra="ignore"
    )

    # Database
    DATABASE_URL: str = "sqlite+aiosqlite:///./printflow.db"
    DEBUG: bool = True

    # App
    APP_NAME: str = "PrintFlow"
    APP_VERSION: str = "1.0.0"
    ENVIRONMENT: str = "development"

    # Security
    JWT_SECRET_KEY: str = "change-me-in-production-use-strong-secret"
    JWT_ALGORITHM: str = "HS256"
    JWT_EXPIRATION_MINUTES: int = 60 * 24

    # Frontend
    FRONTEND_URL: str = "http://localhost:5173"

    # Queue policy
    REQUIRE_PAYMENT_BEFORE_QUEUE: bool = True
    RATE_BLACK_WHITE: int = 2
    RATE_COLOR: int = 5
    TOKEN_NUMBER_START: int = 1000

    # Uploads
    MAX_UPLOAD_BYTES: int = 10 * 1024 * 1024
    MAX_FILES_PER_BATCH: int = 10
    ALLOWED_CONTENT_TYPES: list[str] = [
        "application/pdf",
        "application/msword",
        "application/vnd.openxmlformats-officedocument.wordprocessingml.document",
    ]
    BLOB_STORAGE_PATH: str = "./uploads"

    # SMS (Twilio)
    TWILIO_ACCOUNT_SID: Optional[str] = None
    TWILIO_AUTH_TOKEN: Optional[str] = None
    TWILIO_PHONE_NUMBER: Optional[str] = None
    TWILIO_API_URL: str = "https://api.twilio.com/2010-04-01"
    DEFAULT_COUNTRY_CODE: str = "91"

    # Payments (Razorpay)
    RAZORPAY_KEY_ID: Optional[str] = None
    RAZORPAY_KEY_SECRET: Optional[str] = None
    RAZORPAY_API_URL: str = "https://api.razorpay.com/v1"
    PAYMENT_CURRENCY: str = "INR"

    # Realtime
    BROADCAST_QUEUE_SIZE: int = 256

    # Observability
    SENTRY_DSN: Optional[str] = None


# Global settings instance
settings = Settings()
