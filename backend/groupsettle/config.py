"""Application settings, read from GROUPSETTLE_* environment variables or .env."""
from functools import lru_cache

from pydantic import Field
from pydantic_settings import BaseSettings, SettingsConfigDict


class Settings(BaseSettings):
    model_config = SettingsConfigDict(
        env_prefix="GROUPSETTLE_",
        env_file=".env",
        extra="ignore",
    )

    database_url: str = Field("sqlite:///./groupsettle.db", description="SQLAlchemy database URL")
    secret_key: str = Field(
        "your-secret-key-change-in-production",
        description="Shared HS256 key used to verify bearer tokens",
    )
    jwt_algorithm: str = "HS256"
    access_token_expire_minutes: int = 60 * 24 * 7  # 7 days
    allowed_origins: str = Field("", description="Comma-separated CORS origins; empty allows all")
    log_level: str = "INFO"
    log_json: bool = False

    @property
    def cors_origins(self) -> list[str]:
        origins = [o.strip() for o in self.allowed_origins.split(",") if o.strip()]
        return origins or ["*"]


@lru_cache
def get_settings() -> Settings:
    return Settings()
