# storefront/core/config.py
from decimal import Decimal
from functools import lru_cache

from pydantic_settings import BaseSettings, SettingsConfigDict


class Settings(BaseSettings):
    """
    Centralized application settings loaded from environment.

    Required env vars (.env):
      - DATABASE_URL (Postgres connection string, or sqlite:// for local runs)
      - JWT_SECRET (HS256 secret used to verify bearer tokens)
      - WEBHOOK_SECRET (shared secret used to sign payment webhooks)

    Everything else has a default suitable for a Bangladesh storefront
    selling in BDT.
    """

    PROJECT_NAME: str = "Storefront Checkout API"
    API_V1_STR: str = "/api/v1"
    LOG_LEVEL: str = "INFO"

    CORS_ORIGINS: list[str] = [
        "http://localhost:3000",
        "http://127.0.0.1:3000",
    ]

    # DB config
    DATABASE_URL: str

    # JWT verification (backend-side)
    JWT_SECRET: str
    JWT_ALG: str = "HS256"

    # Payment provider webhooks
    WEBHOOK_SECRET: str
    WEBHOOK_TOLERANCE_SECONDS: int = 300

    # Reporting currency
    CURRENCY: str = "BDT"

    # VAT (percentage, e.g. 15 => 15%)
    TAX_VAT_RATE: Decimal = Decimal("15")
    TAX_INCLUDED: bool = True
    TAX_LABEL: str = "VAT"

    # Shipping
    SHIPPING_NEAR_DISTRICTS: list[str] = [
        "Dhaka",
        "Gazipur",
        "Narayanganj",
        "Munshiganj",
        "Manikganj",
        "Narsingdi",
    ]
    SHIPPING_NEAR_STANDARD: Decimal = Decimal("60")
    SHIPPING_NEAR_EXPRESS: Decimal = Decimal("120")
    SHIPPING_FAR_STANDARD: Decimal = Decimal("120")
    SHIPPING_FAR_EXPRESS: Decimal = Decimal("200")
    FREE_SHIPPING_THRESHOLD: Decimal = Decimal("2000")

    # Carts
    GUEST_CART_TTL_DAYS: int = 30

    # Orders
    ORDER_NUMBER_TIMEZONE: str = "Asia/Dhaka"
    ORDER_NUMBER_MAX_ATTEMPTS: int = 5

    model_config = SettingsConfigDict(env_file=".env", extra="ignore")


@lru_cache
def get_settings() -> Settings:
    """
    Cached settings loader.
    Ensures we don't re-parse .env on every import / request.
    """
    return Settings()
