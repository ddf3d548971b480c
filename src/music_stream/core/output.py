"""
Unified output system using Loguru.
Routes library logging to a rotating file, with optional console echo.
"""

import sys
from pathlib import Path
from typing import Optional

from loguru import logger

from .config import LoggingConfig, get_data_dir


def get_log_file_path() -> Path:
    """Get the path to the default log file."""
    return get_data_dir() / "music-stream.log"


def setup_loguru(
    log_file: Optional[Path] = None,
    level: str = "INFO",
    max_file_size_mb: int = 10,
    backup_count: int = 5,
    console_output: bool = False,
) -> Path:
    """
    Configure loguru for file logging, optionally mirrored to stderr.

    Args:
        log_file: Path to log file (default: ~/.local/share/music-stream/music-stream.log)
        level: Minimum level for logging (DEBUG, INFO, WARNING, ERROR)
        max_file_size_mb: Maximum size of log file before rotation
        backup_count: Number of rotated files to keep
        console_output: Whether to also write logs to stderr

    Returns:
        The log file path in use
    """
    log_file = log_file or get_log_file_path()
    log_file.parent.mkdir(parents=True, exist_ok=True)

    # Remove default handler
    logger.remove()

    logger.add(
        log_file,
        rotation=f"{max_file_size_mb} MB",
        retention=backup_count,
        level=level,
        format="{time:YYYY-MM-DD HH:mm:ss} | {level: <8} | {name}:{line} | {message}",
        enqueue=False,  # Synchronous writes (single event loop thread)
    )

    if console_output:
        # Simpler format for console
        logger.add(sys.stderr, level=level, format="{level}: {message}")

    logger.info(f"Loguru initialized: {log_file} (level={level})")
    return log_file


def setup_from_config(config: LoggingConfig, level_override: Optional[str] = None) -> Path:
    """Configure loguru from the [logging] config section."""
    return setup_loguru(
        log_file=Path(config.log_file) if config.log_file else None,
        level=(level_override or config.level).upper(),
        max_file_size_mb=config.max_file_size_mb,
        backup_count=config.backup_count,
        console_output=config.console_output,
    )
