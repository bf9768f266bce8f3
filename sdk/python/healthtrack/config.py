"""SDK configuration."""

from __future__ import annotations

import logging
from functools import lru_cache
from typing import Optional

from pydantic_settings import BaseSettings, SettingsConfigDict


class Settings(BaseSettings):
    model_config = SettingsConfigDict(env_prefix="HEALTHTRACK_", env_file=".env", extra="ignore")

    # backend project credentials
    api_key: str = ""
    project_id: str = ""

    identity_url: str = "https://identitytoolkit.googleapis.com"
    firestore_url: str = "https://firestore.googleapis.com/v1"
    http_timeout: float = 30.0

    resend_countdown_seconds: int = 60
    new_account_window_seconds: int = 300

    cache_path: Optional[str] = None
    log_level: str = "INFO"

    @property
    def documents_url(self) -> str:
        return f"{self.firestore_url.rstrip('/')}/projects/{self.project_id}/databases/(default)/documents"


@lru_cache
def get_settings() -> Settings:
    return Settings()


def configure_logging(level: Optional[str] = None) -> None:
    """Attach a stream handler to the ``healthtrack`` logger."""
    logger = logging.getLogger("healthtrack")
    logger.setLevel((level or get_settings().log_level).upper())
    if not any(isinstance(h, logging.StreamHandler) for h in logger.handlers):
        handler = logging.StreamHandler()
        handler.setFormatter(logging.Formatter("%(asctime)s %(levelname)s %(name)s: %(message)s"))
        logger.addHandler(handler)
