from pydantic_settings import BaseSettings, SettingsConfigDict
from functools import lru_cache


class Settings(BaseSettings):
    # App
    app_name: str = "Heritage Workflow"
    debug: bool = False

    # Database
    database_url: str = "sqlite:///./heritage.db"

    # Security
    secret_key: str = "dev-secret-key-change-in-production"
    algorithm: str = "HS256"
    access_token_expire_minutes: int = 30

    # Logging
    log_level: str = "INFO"
    log_dir: str = "logs"
    file_logging: bool = False

    # Webhooks for workflow notifications
    webhook_urls: str = ""
    webhook_timeout: int = 10
    webhook_max_retries: int = 3

    @property
    def webhook_urls_list(self) -> list[str]:
        return [url.strip() for url in self.webhook_urls.split(",") if url.strip()]

    model_config = SettingsConfigDict(
        env_file=".env",
        env_prefix="HERITAGE_",
        case_sensitive=False,
        extra="ignore"  # Allow extra env vars without raising validation errors
    )


@lru_cache
def get_settings() -> Settings:
    return Settings()
