"""Configuration module for wemp."""

from wemp.config.loader import get_config_path, load_config, save_config
from wemp.config.schema import WempAccountConfig, WempConfig

__all__ = ["WempConfig", "WempAccountConfig", "load_config", "save_config", "get_config_path"]
