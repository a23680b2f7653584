"""
Core configuration module using Pydantic Settings.
Loads configuration from environment variables with validation.
"""
from typing import List, Optional
from pydantic import Field
from pydantic_settings import BaseSettings, SettingsConfigDict


class Settings(BaseSettings):
    """Application settings loaded from environment variables."""

    # Database Configuration
    database_url: str = "sqlite:///./vidchat.db"
    db_pool_size: int = 20
    db_max_overflow: int = 10
    db_pool_recycle: int = 3600

    # Security Configuration
    jwt_secret_key: str = Field(..., min_length=16)
    jwt_algorithm: str = "HS256"
    access_token_expire_hours: int = 3

    # Google Sign-In
    google_client_id: Optional[str] = None

    # Messaging
    message_max_length: int = 5000

    # WebSocket Configuration
    ws_max_connections_per_user: int = 5
    ws_heartbeat_interval_seconds: int = 30
    ws_heartbeat_timeout_seconds: int = 40

    # Application Configuration
    api_host: str = "0.0.0.0"
    api_port: int = 8000
    log_level: str = "INFO"
    log_json: bool = True
    cors_origins: str = "*"
    seed_categories: bool = True

    model_config = SettingsConfigDict(
        env_file=".env",
        env_file_encoding="utf-8",
        case_sensitive=False,
        extra="ignore"
    )

    @property
    def cors_origin_list(self) -> List[str]:
        """CORS origins parsed from the comma-separated setting."""
        return [origin.strip() for origin in self.cors_origins.split(",") if origin.strip()]


# Global settings instance
settings = Settings()
