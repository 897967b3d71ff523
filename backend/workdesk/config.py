from pydantic_settings import BaseSettings


class Settings(BaseSettings):
    database_url: str = "sqlite:///workdesk.db"
    secret_key: str = "change-me-in-production"
    access_token_expire_minutes: int = 15
    refresh_token_expire_days: int = 7
    log_level: str = "INFO"

    # Transient database failures are retried this many times before the
    # request fails with 503.
    backend_retry_attempts: int = 3
    backend_retry_delay_seconds: float = 0.2

    min_quote: int = 100
    max_quote: int = 100_000
    min_doer_payout: int = 50

    chat_page_size: int = 50
    max_upload_bytes: int = 10 * 1024 * 1024

    # Seed values for the pricing guide
    default_price_per_word: float = 0.5
    default_price_per_page: float = 150
    default_price_fixed: float = 500
    default_urgency_24h_multiplier: float = 1.5
    default_urgency_48h_multiplier: float = 1.3
    default_urgency_72h_multiplier: float = 1.15
    default_supervisor_percentage: float = 15
    default_platform_percentage: float = 20

    class Config:
        env_prefix = "WORKDESK_"


settings = Settings()
