"""Application configuration loaded from environment variables."""

from __future__ import annotations

from functools import lru_cache

from pydantic import Field
from pydantic_settings import BaseSettings, SettingsConfigDict


class Settings(BaseSettings):
    database_url: str = Field(default="sqlite:///./curator.db", alias="DATABASE_URL")
    tmdb_api_key: str | None = Field(default=None, alias="TMDB_API_KEY")
    tmdb_base_url: str = Field(default="https://api.themoviedb.org/3")
    tmdb_image_base: str = Field(default="https://image.tmdb.org/t/p/w500")
    tmdb_timeout: float = Field(default=5.0, alias="TMDB_TIMEOUT")
    supabase_url: str | None = Field(default=None, alias="SUPABASE_URL")
    supabase_jwt_secret: str | None = Field(default=None, alias="SUPABASE_JWT_SECRET")
    admin_emails: str = Field(default="", alias="ADMIN_EMAILS")
    site_url: str = Field(default="http://localhost:3000", alias="SITE_URL")
    cache_ttl_seconds: float = Field(default=24 * 60 * 60, alias="CACHE_TTL_SECONDS")
    regeneration_workers: int = Field(default=2, alias="REGENERATION_WORKERS")

    model_config = SettingsConfigDict(env_file=".env", env_file_encoding="utf-8")

    def admin_email_set(self) -> set[str]:
        return {email.strip().lower() for email in self.admin_emails.split(",") if email.strip()}


@lru_cache(maxsize=1)
def get_settings() -> Settings:
    """Return cached settings instance."""

    return Settings()
