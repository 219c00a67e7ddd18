"""Configuration module for svhist.

This module contains configuration classes and the YAML loader.
"""

from svhist.config.config import ConfigError, LayoutConfig, ToolConfig, load_config


__all__ = ["ConfigError", "LayoutConfig", "ToolConfig", "load_config"]
