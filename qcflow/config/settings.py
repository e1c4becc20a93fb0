"""Application Settings - Central Configuration"""
from functools import lru_cache
from typing import List
from pydantic_settings import BaseSettings, SettingsConfigDict


class Settings(BaseSettings):
    """Application settings loaded from environment variables"""

    model_config = SettingsConfigDict(
        env_file=".env",
        env_file_encoding="utf-8",
        case_sensitive=False,
        extra="ignore"
    )

    # Storage - "mongo" or "memory"
    storage_backend: str = "mongo"
    mongo_uri: str = "mongodb://localhost:27017"
    mongo_db: str = "qcflow_dev"

    # Notifications - "outbox", "http" or "memory"
    notification_backend: str = "outbox"
    notification_endpoint_url: str = ""
    notification_timeout_seconds: float = 5.0

    # Post-completion actions
    webhook_timeout_seconds: float = 10.0

    # Timeout sweeper
    sweeper_enabled: bool = True
    sweeper_interval_seconds: int = 60
    reminder_interval_minutes: int = 60  # Min gap between two reminders for one step

    # Execution-scoped lease lock (Mongo backend)
    execution_lock_ttl_seconds: int = 30
    execution_lock_wait_seconds: float = 5.0

    # Logging
    logs_path: str = "./logs"
    log_level: str = "INFO"

    # CORS - set to "*" to allow all origins
    cors_origins: str = "*"

    # Environment
    environment: str = "development"
    debug: bool = True

    @property
    def cors_origins_list(self) -> List[str]:
        """Parse CORS origins string to list"""
        return [origin.strip() for origin in self.cors_origins.split(",")]

    @property
    def is_production(self) -> bool:
        """Check if running in production"""
        return self.environment.lower() == "production"

    @property
    def uses_mongo(self) -> bool:
        """Check if MongoDB is the configured store"""
        return self.storage_backend.lower() == "mongo"


@lru_cache()
def get_settings() -> Settings:
    """Get cached settings instance"""
    return Settings()


settings = get_settings()
