from functools import lru_cache
from pathlib import PurePath

from pydantic import Field, field_validator
from pydantic_settings import BaseSettings, SettingsConfigDict


class Settings(BaseSettings):
    """Application configuration loaded from environment variables."""

    database_url: str = Field(default="postgresql+psycopg://user:pass@db:5432/postboard")
    upload_path: str = Field(default="uploads")
    session_secret: str = Field(default="change-me")
    keep_partial_uploads: bool = Field(default=False)
    log_level: str = Field(default="INFO")

    model_config = SettingsConfigDict(
        env_file=".env",
        env_file_encoding="utf-8",
        env_prefix="",
        case_sensitive=False,
        extra="ignore",
    )

    @field_validator("upload_path", mode="after")
    @classmethod
    def _validate_upload_path(cls, value: str) -> str:
        value = value.strip()
        if not value:
            raise ValueError("UPLOAD_PATH must not be empty")
        if ".." in PurePath(value).parts:
            raise ValueError("UPLOAD_PATH must not contain '..' segments")
        return value

    @field_validator("log_level", mode="after")
    @classmethod
    def _normalize_log_level(cls, value: str) -> str:
        return value.strip().upper() or "INFO"


@lru_cache
def get_settings() -> Settings:
    return Settings()
