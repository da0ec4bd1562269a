from pydantic import Field
from pydantic_settings import BaseSettings, SettingsConfigDict


class Settings(BaseSettings):
    model_config = SettingsConfigDict(
        env_prefix="CHORELEDGER_",
        env_file=".env",
        env_file_encoding="utf-8",
        extra="ignore",
    )

    database_url: str
    redis_url: str
    app_env: str = "development"
    log_level: str = "INFO"
    queue_name: str = "choreledger:jobs"
    cors_allowed_origins: str = "http://localhost:3000"
    lock_timeout_ms: int = Field(default=5000, gt=0)
    balance_cas_retries: int = Field(default=3, ge=1)
    ledger_retention_days: int = Field(default=365, gt=0)
    ledger_history_default_limit: int = Field(default=50, gt=0)
    ledger_history_max_limit: int = Field(default=500, gt=0)
    notifications_enabled: bool = True


settings = Settings()
