"""Configuration management for the gallery sync service."""
from pathlib import Path
from typing import List

from pydantic import field_validator
from pydantic_settings import BaseSettings, SettingsConfigDict


class Settings(BaseSettings):
    """Application settings loaded from environment variables."""

    model_config = SettingsConfigDict(env_file=".env", env_prefix="GALLERY_", extra="ignore")

    # App settings
    app_name: str = "gallery-sync"
    version: str = "0.1.0"
    host: str = "127.0.0.1"
    port: int = 8080

    # Storage
    data_root: Path = Path("data")  # Directory tree that becomes the album hierarchy
    blob_root: Path = Path(".gallery") / "blobs"
    db_path: Path = Path("gallery.db")

    # Sync settings
    max_workers: int = 2
    photo_extensions: List[str] = [".jpg", ".jpeg", ".png"]
    video_extensions: List[str] = [".mp4", ".mov"]

    # Thumbnails
    thumbnail_max_edge: int = 512
    thumbnail_quality: int = 60

    # Logging
    log_level: str = "INFO"
    log_format: str = "json"

    @field_validator("photo_extensions", "video_extensions")
    @classmethod
    def _normalize_extensions(cls, value: List[str]) -> List[str]:
        normalized = []
        for ext in value:
            cleaned = ext.strip().lower()
            if not cleaned:
                continue
            normalized.append(cleaned if cleaned.startswith(".") else f".{cleaned}")
        return normalized

    @field_validator("max_workers")
    @classmethod
    def _at_least_one_worker(cls, value: int) -> int:
        if value < 1:
            raise ValueError("max_workers must be at least 1.")
        return value

    @field_validator("thumbnail_quality")
    @classmethod
    def _quality_range(cls, value: int) -> int:
        if not 1 <= value <= 95:
            raise ValueError("thumbnail_quality must be between 1 and 95.")
        return value


def get_settings() -> Settings:
    """Build settings from the current environment."""
    return Settings()


# Global settings instance
settings = get_settings()
