from pydantic_settings import BaseSettings, SettingsConfigDict


class Settings(BaseSettings):
    """Application settings loaded from environment variables."""

    model_config = SettingsConfigDict(env_file=".env", env_file_encoding="utf-8", extra="ignore")

    # Database
    database_url: str = "sqlite+aiosqlite:///./swipematch.db"
    auto_create_tables: bool = False

    # Redis
    redis_url: str = "redis://localhost:6379/0"
    redis_timeout_seconds: float = 2.0

    # API
    api_port: int = 8000

    # Rate limiting
    rate_limit_backend: str = "redis"  # redis | http
    rate_limit_service_url: str = ""
    rate_limit_timeout_seconds: float = 2.0
    swipe_limit: int = 100
    swipe_window_seconds: int = 86400
    super_like_limit: int = 5
    super_like_window_seconds: int = 86400

    # Background tasks
    background_queue_size: int = 1000
    background_workers: int = 2
    background_task_timeout_seconds: float = 5.0
    event_stream_maxlen: int = 10000

    # Security
    internal_api_secret: str  # HMAC secret for gateway->API authentication

    # Logging
    log_level: str = "INFO"

    # Environment
    environment: str = "development"

    @property
    def is_production(self) -> bool:
        return self.environment == "production"

    @property
    def is_development(self) -> bool:
        return self.environment == "development"


settings = Settings()
