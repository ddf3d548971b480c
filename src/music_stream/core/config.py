"""
Configuration management for Music Stream
"""

import math
import os
import tomllib
from dataclasses import dataclass, field
from pathlib import Path
from typing import Optional

VALID_REPEAT_MODES = ("off", "all", "one")


@dataclass
class ServerConfig:
    """Configuration for the music library backend."""

    api_base: str = "http://localhost:8080"
    api_token: Optional[str] = None  # Basic auth token sent as "Authorization: Basic <token>"
    timeout_seconds: float = 30.0
    page_size: int = 100

    def validate(self) -> None:
        """Validate server configuration values.

        Raises:
            ValueError: If configuration values are invalid
        """
        if not self.api_base.startswith(("http://", "https://")):
            raise ValueError(f"api_base must be an http(s) URL, got: {self.api_base!r}")
        if self.page_size < 1:
            raise ValueError(f"page_size must be >= 1, got: {self.page_size}")
        if self.timeout_seconds <= 0:
            raise ValueError(f"timeout_seconds must be > 0, got: {self.timeout_seconds}")


@dataclass
class PlayerConfig:
    """Configuration for music player settings."""

    mpv_socket_path: Optional[str] = None
    volume: float = 0.8  # 0.0 - 1.0
    restart_threshold_seconds: float = 3.0  # "previous" restarts the track past this point
    repeat: str = "off"  # off, all, one

    def validate(self) -> None:
        """Validate player configuration values.

        Raises:
            ValueError: If configuration values are invalid
        """
        if self.repeat not in VALID_REPEAT_MODES:
            raise ValueError(
                f"Invalid repeat mode: {self.repeat!r}. "
                f"Valid modes are: {VALID_REPEAT_MODES}"
            )
        if not math.isfinite(self.restart_threshold_seconds) or self.restart_threshold_seconds < 0:
            raise ValueError(
                f"restart_threshold_seconds must be >= 0, got: {self.restart_threshold_seconds}"
            )


@dataclass
class ShuffleConfig:
    """Configuration for shuffle batches."""

    batch_size: int = 20
    seed: Optional[int] = None  # Fixed seed makes shuffle order reproducible

    def validate(self) -> None:
        """Validate shuffle configuration values.

        Raises:
            ValueError: If configuration values are invalid
        """
        if self.batch_size < 1:
            raise ValueError(f"batch_size must be >= 1, got: {self.batch_size}")


@dataclass
class LoggingConfig:
    """Configuration for logging."""

    level: str = "INFO"  # DEBUG, INFO, WARNING, ERROR, CRITICAL
    log_file: Optional[str] = (
        None  # Custom log file path (default: ~/.local/share/music-stream/music-stream.log)
    )
    max_file_size_mb: int = 10  # Maximum log file size before rotation
    backup_count: int = 5  # Number of backup files to keep
    console_output: bool = False  # Also output to console (for debugging)


@dataclass
class Config:
    """Main configuration object."""

    server: ServerConfig = field(default_factory=ServerConfig)
    player: PlayerConfig = field(default_factory=PlayerConfig)
    shuffle: ShuffleConfig = field(default_factory=ShuffleConfig)
    logging: LoggingConfig = field(default_factory=LoggingConfig)


def get_config_dir() -> Path:
    """Get the configuration directory path."""
    config_home = os.environ.get("XDG_CONFIG_HOME")
    if config_home:
        return Path(config_home) / "music-stream"
    return Path.home() / ".config" / "music-stream"


def get_config_path() -> Path:
    """Get the main configuration file path.

    Checks for config.toml in the following order:
    1. Current working directory
    2. XDG_CONFIG_HOME/music-stream (or ~/.config/music-stream)
    """
    local_config = Path.cwd() / "config.toml"
    if local_config.exists():
        return local_config

    return get_config_dir() / "config.toml"


def get_data_dir() -> Path:
    """Get the data directory path."""
    data_home = os.environ.get("XDG_DATA_HOME")
    if data_home:
        return Path(data_home) / "music-stream"
    return Path.home() / ".local" / "share" / "music-stream"


def create_default_config() -> str:
    """Create a default configuration TOML content."""
    return """
# Music Stream Configuration

[server]
# Base URL of the music library backend
api_base = "http://localhost:8080"

# Basic auth token (optional, can also be set via MUSIC_STREAM_API_TOKEN)
# api_token = "base64-user-colon-password"

# HTTP timeout for library requests
timeout_seconds = 30

# Tracks requested per page when fetching the whole library
page_size = 100

[player]
# Path for mpv socket (auto-detected if not specified)
# mpv_socket_path = "/tmp/mpv-socket"

# Default volume (0.0 - 1.0)
volume = 0.8

# "Previous" restarts the current track once this many seconds have played
restart_threshold_seconds = 3.0

# Repeat mode on start (off, all, one)
repeat = "off"

[shuffle]
# Tracks per shuffle batch
batch_size = 20

# Fixed random seed for reproducible shuffles (optional)
# seed = 42

[logging]
# Log level (DEBUG, INFO, WARNING, ERROR, CRITICAL)
level = "INFO"

# Custom log file path (default: ~/.local/share/music-stream/music-stream.log)
# log_file = "/path/to/custom/music-stream.log"

# Maximum log file size in MB before rotation
max_file_size_mb = 10

# Number of backup log files to keep
backup_count = 5

# Also output logs to console (useful for debugging)
console_output = false
""".strip()


def _clamp_volume(value: float) -> float:
    if not isinstance(value, (int, float)) or not math.isfinite(value):
        return PlayerConfig.volume
    return max(0.0, min(1.0, float(value)))


def load_config(config_path: Optional[Path] = None) -> Config:
    """Load configuration from file or create default.

    Environment variables override TOML values:
    - MUSIC_STREAM_API_BASE
    - MUSIC_STREAM_API_TOKEN
    """
    # Load .env file from config directory if it exists
    from dotenv import load_dotenv

    env_path = get_config_dir() / ".env"
    if env_path.exists():
        load_dotenv(env_path)

    config_path = config_path or get_config_path()

    if not config_path.exists():
        # Create config directory and default file
        config_path.parent.mkdir(parents=True, exist_ok=True)
        with open(config_path, "w", encoding="utf-8") as f:
            f.write(create_default_config())
        print(f"Created default configuration at: {config_path}")
        return _apply_env_overrides(Config())

    try:
        with open(config_path, "rb") as f:
            toml_data = tomllib.load(f)
    except (OSError, tomllib.TOMLDecodeError) as e:
        print(f"Error loading configuration from {config_path}: {e}")
        print("Using default configuration.")
        return _apply_env_overrides(Config())

    config = Config()

    if "server" in toml_data:
        server_data = toml_data["server"]
        config.server = ServerConfig(
            api_base=str(server_data.get("api_base", config.server.api_base)).rstrip("/"),
            api_token=server_data.get("api_token"),
            timeout_seconds=server_data.get(
                "timeout_seconds", config.server.timeout_seconds
            ),
            page_size=server_data.get("page_size", config.server.page_size),
        )
        try:
            config.server.validate()
        except ValueError as e:
            print(f"Warning: Invalid server configuration: {e}")
            print("Using default server configuration.")
            config.server = ServerConfig()

    if "player" in toml_data:
        player_data = toml_data["player"]
        config.player = PlayerConfig(
            mpv_socket_path=player_data.get("mpv_socket_path"),
            volume=_clamp_volume(player_data.get("volume", config.player.volume)),
            restart_threshold_seconds=player_data.get(
                "restart_threshold_seconds", config.player.restart_threshold_seconds
            ),
            repeat=str(player_data.get("repeat", config.player.repeat)).lower(),
        )
        try:
            config.player.validate()
        except ValueError as e:
            print(f"Warning: Invalid player configuration: {e}")
            print("Using default player configuration.")
            config.player = PlayerConfig()

    if "shuffle" in toml_data:
        shuffle_data = toml_data["shuffle"]
        config.shuffle = ShuffleConfig(
            batch_size=shuffle_data.get("batch_size", config.shuffle.batch_size),
            seed=shuffle_data.get("seed"),
        )
        try:
            config.shuffle.validate()
        except ValueError as e:
            print(f"Warning: Invalid shuffle configuration: {e}")
            print("Using default shuffle configuration.")
            config.shuffle = ShuffleConfig()

    if "logging" in toml_data:
        logging_data = toml_data["logging"]
        log_file = logging_data.get("log_file")
        if log_file:
            log_file = str(Path(log_file).expanduser())
        config.logging = LoggingConfig(
            level=logging_data.get("level", config.logging.level).upper(),
            log_file=log_file,
            max_file_size_mb=logging_data.get(
                "max_file_size_mb", config.logging.max_file_size_mb
            ),
            backup_count=logging_data.get(
                "backup_count", config.logging.backup_count
            ),
            console_output=logging_data.get(
                "console_output", config.logging.console_output
            ),
        )

    return _apply_env_overrides(config)


def _apply_env_overrides(config: Config) -> Config:
    """Override server settings with environment variables if present."""
    api_base = os.environ.get("MUSIC_STREAM_API_BASE")
    api_token = os.environ.get("MUSIC_STREAM_API_TOKEN")

    if api_base:
        config.server.api_base = api_base.rstrip("/")
    if api_token:
        config.server.api_token = api_token

    return config

