"""Runtime settings and environment loading utilities."""

from __future__ import annotations

from functools import lru_cache
from pathlib import Path

from pydantic import Field, SecretStr
from pydantic_settings import BaseSettings, SettingsConfigDict

_ENV_PATH = Path(".env")


class ServiceSettings(BaseSettings):
    """Translation service settings loaded from environment variables or .env."""

    model_config = SettingsConfigDict(
        env_file=_ENV_PATH,
        env_file_encoding="utf-8",
        case_sensitive=False,
        extra="ignore",
    )

    service_url: str = Field(
        default="http://localhost:8000", alias="TESSERA_SERVICE_URL"
    )
    api_token: SecretStr | None = Field(default=None, alias="TESSERA_API_TOKEN")
    timeout_s: float = Field(default=300.0, gt=0, alias="TESSERA_TIMEOUT_S")


@lru_cache(maxsize=1)
def get_settings() -> ServiceSettings:
    """Return cached settings loaded from the environment."""
    return ServiceSettings()
