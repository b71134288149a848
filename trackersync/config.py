"""
Configuration management for the TrackerSync backend.
Uses pydantic-settings for environment variable handling.
"""

from pathlib import Path
from typing import Literal

from pydantic_settings import BaseSettings, SettingsConfigDict


class Settings(BaseSettings):
    """Application settings loaded from environment variables."""

    model_config = SettingsConfigDict(env_file=".env", env_file_encoding="utf-8", case_sensitive=False, extra="ignore")

    # API Configuration
    api_title: str = "TrackerSync API"
    api_version: str = "1.0.0"
    debug: bool = False

    # SQLite Configuration
    database_path: Path = Path(__file__).parent.parent / "data" / "trackersync.db"

    # Redis Configuration (only used for the run lock)
    redis_host: str = "localhost"
    redis_port: int = 6379
    redis_db: int = 0
    redis_password: str | None = None
    run_lock_backend: Literal["memory", "redis"] = "memory"
    run_lock_name: str = "trackersync:run-lock"
    run_lock_ttl_seconds: int = 900  # a crashed worker releases the lock after 15 minutes

    # Matching Configuration
    auto_apply_threshold: float = 0.95
    ambiguity_margin: float = 0.05
    suggestion_floor: float = 0.6
    fuzzy_floor: float = 0.6
    top_candidates: int = 3
    digits_subset_min_digits: int = 3
    region_tokens: list[str] = [
        "KSA", "SA", "SAU",
        "UAE", "AE",
        "KW", "KWT",
        "QA", "QAT",
        "BH", "BHR",
        "OM", "OMN",
    ]

    # Run Configuration
    max_auto_matches: int | None = None  # None = no cap per automatic run
    discovered_sample_size: int = 20
    feed_timeout_seconds: float = 120.0
    repository_timeout_seconds: float = 10.0

    # Tracking Portal Configuration
    tracking_base_url: str = "http://194.165.139.226"
    tracking_login_path: str = "/Login.aspx"
    tracking_devices_path: str | None = None  # skip page discovery when set
    tracking_username: str | None = None
    tracking_password: str | None = None
    tracking_request_timeout: int = 20
    tracking_retries: int = 1


# Global settings instance
settings = Settings()
