from pathlib import Path
from typing import Optional

from pydantic_settings import BaseSettings, SettingsConfigDict


def find_env_file() -> str:
    env_file = ".env" if Path("/.dockerenv").exists() else ".env.local"

    current_path = Path.cwd()

    for path in [current_path] + list(current_path.parents):
        env_path = path / env_file
        if env_path.exists():
            return str(env_path)

    return env_file


class Settings(BaseSettings):
    model_config = SettingsConfigDict(
        env_file=find_env_file(),
        env_file_encoding="utf-8",
        extra="ignore",
    )

    # Database
    database_url: str = "postgresql+psycopg2://app:app@db:5432/pawatasty"
    auto_create_schema: bool = False

    # Logging
    log_level: str = "INFO"
    log_json: bool = False

    # Payment gateway (Stripe-compatible API)
    stripe_secret_key: Optional[str] = None
    stripe_api_base: str = "https://api.stripe.com"
    payment_timeout_sec: float = 10.0

    # Auth provider
    auth_base_url: str = "http://auth:9999"
    auth_api_key: Optional[str] = None
    http_timeout_sec: float = 1.5

    # Circuit Breaker settings
    cb_payment_fail_max: int = 3  # Max failures for payment operations
    cb_payment_reset_timeout: int = 60  # Reset timeout in seconds
    cb_auth_fail_max: int = 10
    cb_auth_reset_timeout: int = 15

    # Pricing, amounts in cents
    currency: str = "eur"
    rental_block_minutes: int = 30
    rental_rate_per_block: int = 100
    rental_daily_cap: int = 500
    rental_daily_cap_hours: int = 24
    late_penalty_days: int = 5
    late_rental_fee: int = 2500
    purchase_penalty: int = 2500
    validation_fee: int = 100
