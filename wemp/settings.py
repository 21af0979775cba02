"""Process-wide settings for wemp, loaded once from env / .env."""

from __future__ import annotations

from functools import lru_cache
from pathlib import Path

from pydantic import Field
from pydantic_settings import BaseSettings, SettingsConfigDict


def _default_data_dir() -> Path:
    return Path.home() / ".openclaw" / "data" / "wemp"


class WempSettings(BaseSettings):
    model_config = SettingsConfigDict(
        env_prefix="WEMP_",
        env_file=".env",
        env_file_encoding="utf-8",
        extra="ignore",
    )

    app_name: str = "wemp"

    # --- HTTP (pairing verification endpoint) ---
    host: str = "0.0.0.0"
    port: int = 8787

    # --- file-system paths ---
    data_dir: Path = Field(default_factory=_default_data_dir)
    config_path: Path = Field(default_factory=lambda: Path.home() / ".wemp" / "config.json")

    # --- pairing ---
    # Default token for the verification endpoint; empty disables it unless
    # an account sets its own.
    pairing_api_token: str = ""

    # --- official account API ---
    api_base_url: str = "https://api.weixin.qq.com"


@lru_cache
def get_settings() -> WempSettings:
    return WempSettings()
