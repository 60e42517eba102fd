"""
Application Configuration — Environment & Settings
Centralizes all config from .env with Pydantic Settings for validation.
"""
from pathlib import Path
from functools import lru_cache
from pydantic_settings import BaseSettings

# Resolve paths relative to backend/ directory
BASE_DIR = Path(__file__).resolve().parent.parent


class Settings(BaseSettings):
    """Application settings loaded from environment variables."""

    # --- Core ---
    APP_NAME: str = "Credit Journey API"
    APP_VERSION: str = "1.0.0"
    DEBUG: bool = False
    ENVIRONMENT: str = "development"
    CORS_ORIGINS: list[str] = ["*"]
    ADMIN_API_KEY: str = ""

    # --- Database ---
    DATABASE_URL: str = f"sqlite:///{BASE_DIR / 'data' / 'credit_journey.db'}"

    # --- Security ---
    SECRET_KEY: str = "credit-journey-secret-key-change-in-production"
    TOKEN_BYTES: int = 32

    # --- Journey lifecycle ---
    JOURNEY_TTL_HOURS: int = 24
    OTP_VALIDITY_MINUTES: int = 20

    # --- OTP ---
    OTP_CODE_LENGTH: int = 6
    OTP_CODE_TTL_MINUTES: int = 20
    OTP_MAX_ATTEMPTS: int = 3
    OTP_MAX_SENDS_PER_HOUR: int = 3
    OTP_CHANNEL: str = "whatsapp"   # whatsapp | sms

    # --- Delivery providers ---
    CALLBELL_API_URL: str = "https://api.callbell.eu/v1/messages/send"
    CALLBELL_API_KEY: str = ""
    CALLBELL_CHANNEL_UUID: str = ""
    CLICKSEND_API_URL: str = "https://rest.clicksend.com/v3/sms/send"
    CLICKSEND_USERNAME: str = ""
    CLICKSEND_API_KEY: str = ""
    SMS_SENDER_ID: str = "Cashly"

    # --- Device fingerprinting / address lookup ---
    FIFTY_ONE_DEGREES_URL: str = "https://cloud.51degrees.com/api/v4"
    FIFTY_ONE_DEGREES_KEY: str = ""
    VIACEP_BASE_URL: str = "https://viacep.com.br/ws"
    HTTP_TIMEOUT_SECONDS: float = 10.0

    # --- Credit ---
    DEFAULT_APPROVED_AMOUNT: int = 1500
    OFFER_MONTHLY_RATE: float = 3.99
    OFFER_INSTALLMENTS: int = 12

    # --- Income widget ---
    INCOME_WIDGET_BASE_URL: str = "https://connect.palenca.com"
    INCOME_WIDGET_ID: str = ""
    INCOME_POLL_INTERVAL_SECONDS: float = 3.0
    INCOME_POLL_MAX_ATTEMPTS: int = 40

    # --- Identity cache ---
    LEAD_CACHE_TTL_SECONDS: int = 300
    LEAD_CACHE_MAX_ENTRIES: int = 4096

    # --- Rate limiting ---
    RATE_LIMIT_ENABLED: bool = True
    REDIS_URL: str = ""

    # --- Logging ---
    LOG_DIR: str = str(BASE_DIR / "logs")
    LOG_LEVEL: str = "INFO"

    class Config:
        env_file = str(BASE_DIR / ".env")
        env_file_encoding = "utf-8"
        case_sensitive = True


@lru_cache()
def get_settings() -> Settings:
    """Cached settings singleton."""
    return Settings()
