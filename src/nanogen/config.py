"""Application configuration using environment variables."""

from functools import lru_cache
from pathlib import Path
from typing import Optional

from pydantic import AliasChoices, AnyHttpUrl, Field, SecretStr
from pydantic_settings import BaseSettings, SettingsConfigDict

# Resolve the project root once so that `.env` is discovered regardless of CWD
PROJECT_ROOT = Path(__file__).resolve().parent.parent.parent

DEFAULT_ERROR_MARKERS: tuple[str, ...] = ("❌", "生成失败", "违规")


class Settings(BaseSettings):
    """Load configuration from environment variables and `.env`."""

    model_config = SettingsConfigDict(
        env_file=str(PROJECT_ROOT / ".env"),
        env_file_encoding="utf-8",
        extra="ignore",
    )

    generation_api_url: AnyHttpUrl = Field(
        default_factory=lambda: AnyHttpUrl(
            "https://api.yyds168.net/v1/chat/completions"
        ),
        validation_alias=AliasChoices("GENERATION_API_URL", "generation_api_url"),
    )
    default_model: str = Field(
        default="gemini-3.0-pro-image-portrait",
        validation_alias=AliasChoices("DEFAULT_MODEL", "default_model"),
    )
    # Optional server-side key used when a request does not carry its own
    server_api_key: Optional[SecretStr] = Field(
        default=None,
        validation_alias=AliasChoices("GEMINI_API_KEY", "server_api_key"),
    )

    request_timeout_seconds: float = Field(
        default=300.0,
        ge=1,
        validation_alias=AliasChoices("GENERATION_TIMEOUT", "request_timeout_seconds"),
    )
    connect_timeout_seconds: float = Field(
        default=10.0,
        ge=0.1,
        validation_alias=AliasChoices("CONNECT_TIMEOUT", "connect_timeout_seconds"),
    )
    estimated_stream_bytes: int = Field(
        default=5000,
        ge=1,
        validation_alias=AliasChoices(
            "ESTIMATED_STREAM_BYTES", "estimated_stream_bytes"
        ),
    )
    error_markers: list[str] = Field(
        default_factory=lambda: list(DEFAULT_ERROR_MARKERS),
        validation_alias=AliasChoices("ERROR_MARKERS", "error_markers"),
        description="Substrings in reasoning text that flag a failed generation.",
    )

    # Relay (proxy) settings
    relay_base_url: AnyHttpUrl = Field(
        default_factory=lambda: AnyHttpUrl("http://localhost:3000"),
        validation_alias=AliasChoices("RELAY_BASE_URL", "relay_base_url"),
    )
    relay_allowed_hosts: list[str] = Field(
        default_factory=list,
        validation_alias=AliasChoices("RELAY_ALLOWED_HOSTS", "relay_allowed_hosts"),
        description="Hostnames the relay may fetch from. Empty allows all.",
    )
    relay_timeout_seconds: float = Field(
        default=120.0,
        ge=1,
        validation_alias=AliasChoices("RELAY_TIMEOUT", "relay_timeout_seconds"),
    )
    relay_max_bytes: int = Field(
        default=200 * 1024 * 1024,
        ge=1,
        validation_alias=AliasChoices("RELAY_MAX_BYTES", "relay_max_bytes"),
    )

    upload_max_size_bytes: int = Field(
        default=20 * 1024 * 1024,
        ge=1,
        validation_alias=AliasChoices(
            "UPLOAD_MAX_SIZE_BYTES", "upload_max_size_bytes"
        ),
    )
    max_running_tasks: int = Field(
        default=3,
        ge=1,
        validation_alias=AliasChoices("MAX_RUNNING_TASKS", "max_running_tasks"),
    )
    max_finished_tasks: int = Field(
        default=3,
        ge=1,
        validation_alias=AliasChoices("MAX_FINISHED_TASKS", "max_finished_tasks"),
    )

    storage_path: Path = Field(
        default_factory=lambda: Path("data/storage.json"),
        validation_alias=AliasChoices("STORAGE_PATH", "storage_path"),
    )
    storage_quota_bytes: int = Field(
        default=5 * 1024 * 1024,
        ge=1,
        validation_alias=AliasChoices("STORAGE_QUOTA_BYTES", "storage_quota_bytes"),
    )
    history_max_items: int = Field(
        default=30,
        ge=1,
        validation_alias=AliasChoices("HISTORY_MAX_ITEMS", "history_max_items"),
    )

    host: str = Field(
        default="0.0.0.0",
        validation_alias=AliasChoices("HOST", "host"),
    )
    port: int = Field(
        default=3000,
        validation_alias=AliasChoices("PORT", "port"),
    )


@lru_cache(maxsize=1)
def get_settings() -> Settings:
    """Return a cached `Settings` instance."""

    return Settings()  # pyright: ignore[reportCallIssue]


__all__ = ["DEFAULT_ERROR_MARKERS", "Settings", "get_settings"]
