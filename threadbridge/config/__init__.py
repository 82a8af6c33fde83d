"""Configuration module for threadbridge."""

from threadbridge.config.loader import get_config_path, load_config
from threadbridge.config.schema import Config

__all__ = ["Config", "load_config", "get_config_path"]
