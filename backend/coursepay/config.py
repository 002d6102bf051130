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
    APP_NAME: str = "CoursePay Checkout API"
    APP_VERSION: str = "1.0.0"
    DEBUG: bool = False
    ENVIRONMENT: str = "development"   # development | staging | production

    # --- Database ---
    DATABASE_URL: str = f"sqlite:///{BASE_DIR / 'data' / 'coursepay.db'}"

    # --- Security ---
    SECRET_KEY: str = "coursepay-secret-key-change-in-production"
    JWT_ALGORITHM: str = "HS256"
    ACCESS_TOKEN_EXPIRE_MINUTES: int = 60 * 24
    CORS_ORIGINS: list[str] = ["*"]
    RATE_LIMIT_INITIATE: int = 5

    # --- Pricing ---
    CURRENCY: str = "INR"
    MIN_PAYMENT_AMOUNT: float = 10
    MAX_PAYMENT_AMOUNT: float = 500000

    # --- Payment gateway ---
    PAYMENT_GATEWAY: str = "stripe"     # stripe | mock
    PAYMENT_MAINTENANCE_MODE: bool = False
    STRIPE_SECRET_KEY: str = ""
    STRIPE_PUBLISHABLE_KEY: str = ""
    STRIPE_WEBHOOK_SECRET: str = ""

    CLIENT_URL: str = "http://localhost:5173"
    API_BASE_URL: str = "http://localhost:8000"

    # --- Transaction lifecycle ---
    PAYMENT_SESSION_MINUTES: int = 15
    MAX_RETRY_COUNT: int = 3
    RETRY_WINDOW_HOURS: int = 24
    RECONCILE_AFTER_MINUTES: int = 10

    # --- Mock gateway ---
    MOCK_GATEWAY_DELAY_SECONDS: float = 2.5
    MOCK_MERCHANT_ID: str = "MOCK_MERCHANT"

    # --- Receipts ---
    COMPANY_NAME: str = "SkillDad"
    COMPANY_ADDRESS: str = "Bangalore, Karnataka, India"
    COMPANY_EMAIL: str = "support@skilldad.com"
    COMPANY_GSTIN: str = "29ABCDE1234F1Z5"

    # --- Logging ---
    LOG_DIR: str = str(BASE_DIR / "logs")

    class Config:
        env_file = str(BASE_DIR / ".env")
        env_file_encoding = "utf-8"
        case_sensitive = True

    @property
    def is_production(self) -> bool:
        return self.ENVIRONMENT.lower() == "production"

    @property
    def mock_gateway_enabled(self) -> bool:
        return self.PAYMENT_GATEWAY == "mock" and not self.is_production


@lru_cache()
def get_settings() -> Settings:
    """Cached settings singleton."""
    return Settings()
