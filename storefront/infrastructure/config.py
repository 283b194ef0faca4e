"""Application configuration.

Loads settings from environment variables with sensible defaults.
"""

from functools import lru_cache

from pydantic_settings import BaseSettings, SettingsConfigDict


class Settings(BaseSettings):
    """Application settings loaded from environment variables."""

    model_config = SettingsConfigDict(env_file=".env", env_file_encoding="utf-8", extra="ignore")

    # API
    api_version: str = "0.1.0"
    debug: bool = False

    # Authentication
    admin_api_key: str = "dev-admin-key-change-in-production"

    # Storage
    storage_backend: str = "memory"
    database_url: str = "postgresql+asyncpg://storefront:storefront_dev_password@db:5432/storefront"

    # Xendit (payments)
    xendit_base_url: str = "https://api.xendit.co"
    xendit_secret_key: str = ""
    xendit_callback_token: str = ""
    xendit_refund_api_version: str = "2022-07-31"
    invoice_currency: str = "IDR"
    invoice_payment_methods: list[str] = [
        "BCA",
        "BNI",
        "BRI",
        "MANDIRI",
        "PERMATA",
        "OVO",
        "DANA",
        "LINKAJA",
        "SHOPEEPAY",
        "CREDIT_CARD",
    ]

    # Biteship (shipping)
    biteship_base_url: str = "https://api.biteship.com/v1"
    biteship_api_key: str = ""
    biteship_origin_area_id: str = ""
    priority_couriers: list[str] = ["lion", "jne", "jnt", "sicepat", "anteraja"]
    default_item_weight_grams: int = 1000

    # Store (shipment origin)
    store_name: str = "Kagounga Store"
    store_phone: str = "081234567890"
    store_email: str = "store@kagounga.com"
    store_address: str = "Ternate, Maluku Utara"
    store_postal_code: str = "97711"
    store_city: str = "Ternate"
    store_latitude: float = 0.7893
    store_longitude: float = 127.3774

    # Local delivery
    local_delivery_keywords: list[str] = ["ternate"]
    local_delivery_rate: int = 10000
    free_shipping_threshold: int = 150000

    # Webhooks & guest tracking
    webhook_replay_tolerance_seconds: int = 300
    tracking_access_ttl_seconds: int = 3600

    # Outbound HTTP
    http_timeout_seconds: float = 10.0

    # Behaviour switches
    auto_create_shipment: bool = True
    enable_test_endpoints: bool = False

    # Logging
    log_level: str = "INFO"


@lru_cache
def get_settings() -> Settings:
    """Get the process settings instance."""
    return Settings()
