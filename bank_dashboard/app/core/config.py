from __future__ import annotations

from functools import lru_cache
from typing import Optional

from pydantic_settings import BaseSettings, SettingsConfigDict


class Settings(BaseSettings):
    app_name: str = "Bank Dashboard Transfers"
    api_base_url: str = "http://localhost:5000/api"
    request_timeout: float = 10.0
    log_level: str = "INFO"

    otp_display_ms: int = 5000
    otp_tick_ms: int = 50
    feedback_dwell_ms: int = 5000
    # None keeps the challenge open for as long as the authority accepts it.
    otp_max_attempts: Optional[int] = None
    otp_challenge_ttl_ms: Optional[int] = None
    # Least recently used sessions are closed once this many are open.
    max_open_sessions: int = 1000

    model_config = SettingsConfigDict(
        env_file=".env",
        env_prefix="DASHBOARD_",
        extra="ignore",
    )


@lru_cache(maxsize=1)
def get_settings() -> Settings:
    return Settings()
