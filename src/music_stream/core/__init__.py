"""Core infrastructure layer - no business logic dependencies.

This module provides foundation-level services:
- Configuration management (TOML)
- Logging setup (Loguru)

Clean architecture principle: The core layer has no dependencies on
domain or application layers.
"""

# Configuration
from .config import (
    Config,
    LoggingConfig,
    PlayerConfig,
    ServerConfig,
    ShuffleConfig,
    load_config,
    get_config_dir,
    get_config_path,
    get_data_dir,
    create_default_config,
)

# Output
from .output import get_log_file_path, setup_from_config, setup_loguru

__all__ = [
    "Config",
    "LoggingConfig",
    "PlayerConfig",
    "ServerConfig",
    "ShuffleConfig",
    "load_config",
    "get_config_dir",
    "get_config_path",
    "get_data_dir",
    "create_default_config",
    "get_log_file_path",
    "setup_from_config",
    "setup_loguru",
]
