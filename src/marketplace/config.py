from typing import Optional

from pydantic import Field
from pydantic_settings import BaseSettings, SettingsConfigDict


class Settings(BaseSettings):
    """Application configuration loaded from environment variables."""

    database_url: str = Field("sqlite:///marketplace.db")
    api_title: str = Field("Service Marketplace API")
    log_level: str = Field("INFO")

    jwt_secret: str = Field("change-me-marketplace-signing-secret-key")
    jwt_algorithm: str = Field("HS256")
    access_token_expire_minutes: int = Field(30)

    auth_rate_limit: str = Field("5/minute")

    # Order status edges are checked unless explicitly disabled
    enforce_status_transitions: bool = Field(True)
    notice_ttl_seconds: int = Field(60)

    admin_username: Optional[str] = Field(None)
    admin_email: Optional[str] = Field(None)
    admin_password: Optional[str] = Field(None)

    model_config = SettingsConfigDict(env_file=".env", env_file_encoding="utf-8", extra="ignore")


settings = Settings()
