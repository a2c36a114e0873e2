from __future__ import annotations

import secrets
from functools import lru_cache
from pathlib import Path
from typing import List

from pydantic import Field
from pydantic_settings import BaseSettings, SettingsConfigDict


class Settings(BaseSettings):
    model_config = SettingsConfigDict(
        env_prefix="VOTEGATE_",
        env_file=".env",
        env_file_encoding="utf-8",
        extra="ignore",
    )

    app_name: str = "VoteGate Biometric Gate"
    app_env: str = "development"
    api_prefix: str = "/api/v1"
    log_level: str = "INFO"
    log_dir: Path = Path("logs")
    log_json: bool = False

    database_url: str = "sqlite:///./votegate.db"

    jwt_secret: str = Field(default_factory=lambda: secrets.token_urlsafe(48))
    jwt_algorithm: str = "HS256"
    vote_token_minutes: int = 5
    session_token_minutes: int = 60
    session_cookie_name: str = "authToken"
    session_cookie_secure: bool = False

    ballot_cipher_key: str = Field(default_factory=lambda: secrets.token_urlsafe(32))

    embedding_dimension: int = 512
    match_threshold: float = 0.90

    # Liveness challenge thresholds
    ear_threshold: float = 0.30
    mar_threshold: float = 0.60
    head_turn_low: float = 0.35
    head_turn_high: float = 0.65

    camera_index: int = 0
    frame_width: int = 640
    frame_height: int = 480
    frame_fps: int = 30

    liveness_timeout_seconds: float = 60.0
    extraction_timeout_seconds: float = 10.0
    max_attempts: int = 3
    reset_delay_seconds: float = 2.0

    api_base_url: str = "http://127.0.0.1:8000"
    request_timeout_seconds: float = 8.0

    cors_origins_raw: str = "http://localhost:3000"

    @property
    def cors_origins(self) -> List[str]:
        return [origin.strip() for origin in self.cors_origins_raw.split(",") if origin.strip()]


@lru_cache(maxsize=1)
def get_settings() -> Settings:
    return Settings()
