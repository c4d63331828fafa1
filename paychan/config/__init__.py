"""Configuration module for paychan."""

from paychan.config.loader import get_config_path, load_config, save_config
from paychan.config.schema import DEFAULT_PROVIDER_URI, PluginConfig

__all__ = ["DEFAULT_PROVIDER_URI", "PluginConfig", "get_config_path", "load_config", "save_config"]
