"""Configuration loading utilities."""

import json
import os
import re
from pathlib import Path
from typing import Any

from dotenv import load_dotenv
from loguru import logger

from wemp.config.schema import WempAccountConfig, WempConfig
from wemp.settings import get_settings

# Load .env into os.environ (won't overwrite existing env vars)
load_dotenv(override=False)


def get_config_path() -> Path:
    """Get the configuration file path (``WEMP_CONFIG_PATH`` overrides)."""
    return get_settings().config_path


def load_config(config_path: Path | None = None) -> WempConfig:
    """
    Load configuration from file, then apply env-var overrides.

    Priority (highest → lowest):
        1. WEMP_* environment variables / .env (default account only)
        2. the JSON config file
        3. Built-in defaults
    """
    path = config_path or get_config_path()

    if path.exists():
        try:
            data = json.loads(path.read_text(encoding="utf-8"))
            config = WempConfig.model_validate(convert_keys(data))
        except ValueError as e:
            logger.warning(f"Failed to load config from {path}: {e}. Using default configuration.")
            config = WempConfig()
    else:
        config = WempConfig()

    _apply_env_overrides(config)
    return config


# ---------------------------------------------------------------------------
# Flat env-var overrides for single-account deployments
# ---------------------------------------------------------------------------

_ENV_ACCOUNT_FIELDS: dict[str, str] = {
    "WEMP_APP_ID": "app_id",
    "WEMP_APP_SECRET": "app_secret",
    "WEMP_TOKEN": "token",
    "WEMP_ENCODING_AES_KEY": "encoding_aes_key",
    "WEMP_WEBHOOK_PATH": "webhook_path",
}


def _apply_env_overrides(config: WempConfig) -> None:
    """Apply flat WEMP_* env vars on top of the default account."""
    overrides = {
        field: val for env_key, field in _ENV_ACCOUNT_FIELDS.items()
        if (val := os.environ.get(env_key))
    }
    dm_policy = os.environ.get("WEMP_DM_POLICY", "").strip().lower()
    allow_from = os.environ.get("WEMP_ALLOW_FROM", "")
    if not overrides and not dm_policy and not allow_from:
        return

    account = config.accounts.get(config.default_account)
    if account is None:
        account = WempAccountConfig()
        config.accounts[config.default_account] = account

    for field, val in overrides.items():
        setattr(account, field, val)
    if overrides.get("app_id"):
        account.enabled = True
    if dm_policy in ("open", "pairing", "allowlist"):
        account.dm_policy = dm_policy  # type: ignore[assignment]
    elif dm_policy:
        logger.warning(f"Ignoring unknown WEMP_DM_POLICY={dm_policy!r}")
    if allow_from:
        account.allow_from = [v.strip() for v in allow_from.split(",") if v.strip()]


def save_config(config: WempConfig, config_path: Path | None = None) -> None:
    """
    Save configuration to file.

    Args:
        config: Configuration to save.
        config_path: Optional path to save to. Uses default if not provided.
    """
    path = config_path or get_config_path()
    path.parent.mkdir(parents=True, exist_ok=True)

    data = convert_to_camel(config.model_dump())
    path.write_text(json.dumps(data, indent=2, ensure_ascii=False), encoding="utf-8")


def convert_keys(data: Any, _depth: int = 0) -> Any:
    """Convert camelCase keys to snake_case for Pydantic.

    Keys of the ``accounts`` mapping are account ids and are kept verbatim.
    """
    if isinstance(data, dict):
        return {
            (k if _depth == 1 else camel_to_snake(k)): convert_keys(
                v, 1 if (_depth == 0 and k == "accounts") else 2
            )
            for k, v in data.items()
        }
    if isinstance(data, list):
        return [convert_keys(item, 2) for item in data]
    return data


def convert_to_camel(data: Any, _depth: int = 0) -> Any:
    """Convert snake_case keys to camelCase (account ids kept verbatim)."""
    if isinstance(data, dict):
        return {
            (k if _depth == 1 else snake_to_camel(k)): convert_to_camel(
                v, 1 if (_depth == 0 and k == "accounts") else 2
            )
            for k, v in data.items()
        }
    if isinstance(data, list):
        return [convert_to_camel(item, 2) for item in data]
    return data


def camel_to_snake(name: str) -> str:
    """Convert camelCase to snake_case (``encodingAESKey`` -> ``encoding_aes_key``)."""
    name = re.sub(r"([A-Z]+)([A-Z][a-z])", r"\1_\2", name)
    name = re.sub(r"([a-z0-9])([A-Z])", r"\1_\2", name)
    return name.lower()


# Segments written upper-case in camelCase keys
_CAMEL_ACRONYMS = {"aes": "AES"}


def snake_to_camel(name: str) -> str:
    """Convert snake_case to camelCase (``encoding_aes_key`` -> ``encodingAESKey``)."""
    components = name.split("_")
    return components[0] + "".join(_CAMEL_ACRONYMS.get(x, x.title()) for x in components[1:])
