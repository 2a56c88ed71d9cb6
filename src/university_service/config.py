"""Application configuration using environment variables."""

from functools import lru_cache
from pathlib import Path

from pydantic import AliasChoices, Field
from pydantic_settings import BaseSettings, SettingsConfigDict

# Resolve the project root once so that `.env` is discovered regardless of CWD
PROJECT_ROOT = Path(__file__).resolve().parent.parent.parent


class Settings(BaseSettings):
    """Load configuration from environment variables and `.env`."""

    model_config = SettingsConfigDict(
        env_file=str(PROJECT_ROOT / ".env"),
        env_file_encoding="utf-8",
        extra="ignore",
    )

    database_path: Path = Field(
        default_factory=lambda: Path("data/universities.db"),
        validation_alias=AliasChoices("UNIVERSITY_DATABASE_PATH", "database_path"),
    )
    uploads_dir: Path = Field(
        default_factory=lambda: Path("uploads"),
        validation_alias=AliasChoices("UPLOADS_DIR", "uploads_dir"),
    )
    university_uploads_subpath: str = Field(
        default="universities",
        validation_alias=AliasChoices(
            "UNIVERSITY_UPLOADS_SUBPATH",
            "university_uploads_subpath",
        ),
    )
    university_static_url: str = Field(
        default="/static/universities",
        validation_alias=AliasChoices(
            "UNIVERSITY_STATIC_URL",
            "university_static_url",
        ),
    )
    photo_max_size_bytes: int = Field(
        default=5 * 1024 * 1024,
        ge=1,
        validation_alias=AliasChoices(
            "PHOTO_MAX_SIZE_BYTES",
            "photo_max_size_bytes",
        ),
    )

    # Bearer tokens accepted by the API, e.g. API_TOKENS='["token-a", "token-b"]'
    api_tokens: list[str] = Field(
        default_factory=list,
        validation_alias=AliasChoices("API_TOKENS", "api_tokens"),
    )

    host: str = Field(
        default="0.0.0.0",
        validation_alias=AliasChoices("HOST", "host"),
    )
    port: int = Field(
        default=8000,
        ge=1,
        le=65535,
        validation_alias=AliasChoices("PORT", "port"),
    )


@lru_cache(maxsize=1)
def get_settings() -> Settings:
    """Return a cached `Settings` instance."""

    return Settings()  # pyright: ignore[reportCallIssue]


__all__ = ["PROJECT_ROOT", "Settings", "get_settings"]
