from pydantic_settings import BaseSettings, SettingsConfigDict


class Settings(BaseSettings):
    """
    Application settings loaded from environment variables.

    Loading priority (highest to lowest):
    1. Environment variables
    2. .env file
    3. Default values below
    """

    # Environment
    environment: str = "development"
    debug: bool = True
    log_level: str = "INFO"

    # Application
    app_name: str = "Creator Marketplace"
    app_version: str = "1.0.0"

    # Server
    host: str = "127.0.0.1"
    port: int = 8000

    # Database
    database_url: str = "sqlite:///./marketplace.db"

    # Tracking links
    base_url: str = "http://127.0.0.1:8000"
    tracking_code_strategy: str = "prefixed"  # Options: "prefixed", "base62"
    tracking_code_max_length: int = 64  # Column width of applications.tracking_code
    tracking_code_salt: int = 1256  # Salt for Base62 strategy

    # Cache settings (tracking code -> destination)
    cache_backend: str = "memory"  # Options: "redis", "memory", "null"
    redis_url: str = "redis://localhost:6379/0"
    cache_ttl: int = 300  # Short TTL: offer product URLs can change

    # Click attribution dispatch
    click_dispatch_backend: str = "task"  # Options: "task", "queue"

    # Queue settings
    queue_backend: str = "memory"  # Options: "redis_streams", "memory"
    queue_name: str = "click_events"
    queue_consumer_group: str = "click_workers"
    queue_batch_size: int = 100  # Number of messages to process at once
    queue_worker_interval: int = 1  # Worker block time in seconds
    queue_reclaim_idle_ms: int = 60000  # Pending clicks idle this long are taken over by a worker

    # Geo-IP lookup
    geo_backend: str = "null"  # Options: "http", "memory", "null"
    geo_http_url: str = "http://ip-api.com/json/{ip}"
    geo_http_timeout: float = 1.5

    # Analytics
    analytics_timezone: str = "UTC"  # Reference timezone for daily buckets

    # Realtime messaging
    typing_timeout_seconds: float = 3.0
    reconnect_delay_seconds: float = 3.0

    # Auto-approval
    auto_approval_delay_minutes: int = 7
    auto_approval_interval_seconds: int = 60

    # Pydantic v2 configuration
    model_config = SettingsConfigDict(
        env_file=".env",
        env_file_encoding="utf-8",
        case_sensitive=False,
        extra="ignore"
    )


# Create settings instance
settings = Settings()
