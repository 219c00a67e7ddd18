#!/usr/bin/env python3
"""Configuration classes for svhist.

This module contains the configuration dataclasses and the YAML loader.
"""

import logging
import os
from dataclasses import asdict, dataclass, field
from pathlib import Path
from typing import Any, Dict, List, Optional

import yaml


logger = logging.getLogger(__name__)

# Constants
DEFAULT_CONFIG_PATH = "svhist.yaml"
DEFAULT_DB_PATH = "~/.svhist/state.db"
SVN_COMMAND_ENV = "SVHIST_SVN"


class ConfigError(Exception):
    """Base exception for configuration errors."""


@dataclass
class LayoutConfig:
    """Repository layout prefixes.

    Attributes:
        trunk: Trunk prefix
        branches: Prefixes under which branches live
        tags: Prefixes under which tags live
    """

    trunk: str = "trunk"
    branches: List[str] = field(default_factory=lambda: ["branches"])
    tags: List[str] = field(default_factory=lambda: ["tags"])


@dataclass
class ToolConfig:
    """Tool configuration.

    Attributes:
        svn_command: Subversion client executable
        svn_timeout: Timeout in seconds for svn invocations (None for no timeout)
        layout: Repository layout prefixes
        page_size: Log entries requested per fetch
        max_workers: Worker pool size for cross-branch queries (None for CPU count)
        db_path: Path to the SQLite database holding bisect sessions
    """

    svn_command: str = "svn"
    svn_timeout: Optional[int] = None
    layout: LayoutConfig = field(default_factory=LayoutConfig)
    page_size: int = 500
    max_workers: Optional[int] = None
    db_path: str = DEFAULT_DB_PATH

    def to_dict(self) -> Dict[str, Any]:
        """Convert to the nested layout used by the YAML file."""
        return {
            "svn": {"command": self.svn_command, "timeout": self.svn_timeout},
            "layout": asdict(self.layout),
            "log": {"page_size": self.page_size},
            "correlation": {"max_workers": self.max_workers},
            "state": {"database": self.db_path},
        }


def _section(config_dict: Dict[str, Any], name: str) -> Dict[str, Any]:
    section = config_dict.get(name) or {}
    if not isinstance(section, dict):
        raise ConfigError(f"Config section '{name}' must be a mapping")
    return section


def _as_list(value: Any, key: str) -> List[str]:
    if isinstance(value, str):
        return [value]
    if not isinstance(value, list) or not all(isinstance(v, str) for v in value):
        raise ConfigError(f"Config key '{key}' must be a string or a list of strings")
    return value


def create_config(config_dict: Dict[str, Any]) -> ToolConfig:
    """Create ToolConfig from a config dict.

    Args:
        config_dict: Configuration dictionary from YAML

    Returns:
        ToolConfig object

    Raises:
        ConfigError: If a section or value has the wrong type
    """
    svn = _section(config_dict, "svn")
    layout = _section(config_dict, "layout")
    log = _section(config_dict, "log")
    correlation = _section(config_dict, "correlation")
    state = _section(config_dict, "state")

    defaults = LayoutConfig()
    layout_config = LayoutConfig(
        trunk=layout.get("trunk", defaults.trunk),
        branches=_as_list(layout.get("branches", defaults.branches), "layout.branches"),
        tags=_as_list(layout.get("tags", defaults.tags), "layout.tags"),
    )

    page_size = log.get("page_size", 500)
    if not isinstance(page_size, int) or page_size < 1:
        raise ConfigError("Config key 'log.page_size' must be a positive integer")

    max_workers = correlation.get("max_workers")
    if max_workers is not None and (not isinstance(max_workers, int) or max_workers < 1):
        raise ConfigError("Config key 'correlation.max_workers' must be a positive integer")

    return ToolConfig(
        svn_command=os.environ.get(SVN_COMMAND_ENV) or svn.get("command", "svn"),
        svn_timeout=svn.get("timeout"),
        layout=layout_config,
        page_size=page_size,
        max_workers=max_workers,
        db_path=state.get("database", DEFAULT_DB_PATH),
    )


def load_config(config_path: str = DEFAULT_CONFIG_PATH) -> ToolConfig:
    """Load configuration from a YAML file.

    A missing file yields the defaults.

    Args:
        config_path: Path to YAML configuration file

    Returns:
        ToolConfig object

    Raises:
        ConfigError: If the file is not valid YAML or not a mapping
    """
    path = Path(config_path)

    if not path.exists():
        logger.debug(f"Config file not found: {config_path}, using defaults")
        return create_config({})

    try:
        with path.open() as f:
            config_dict = yaml.safe_load(f) or {}
    except yaml.YAMLError as exc:
        raise ConfigError(f"Invalid YAML in {config_path}: {exc}") from exc

    if not isinstance(config_dict, dict):
        raise ConfigError(f"Config file {config_path} must contain a mapping")

    # Resolve a relative database path against the config file location
    db_path = _section(config_dict, "state").get("database")
    if db_path and not Path(db_path).expanduser().is_absolute():
        resolved = (path.parent.resolve() / db_path).resolve()
        config_dict["state"]["database"] = str(resolved)
        logger.debug(f"Resolved database path: {db_path} -> {resolved}")

    return create_config(config_dict)


def write_config(config: ToolConfig, output_path: str) -> None:
    """Write a configuration as YAML."""
    with Path(output_path).open("w") as f:
        yaml.safe_dump(config.to_dict(), f, default_flow_style=False, sort_keys=False)
