"""Logging configuration for the music catalog MCP server.

All output goes to stderr: stdout carries the MCP JSON-RPC stream.
"""

import logging
import os
import sys
from pathlib import Path
from typing import Optional

LOGGER_NAME = "music_catalog_mcp"
LOG_FORMAT = "[%(asctime)s] [%(levelname)s] [%(name)s] %(message)s"
DATE_FORMAT = "%Y-%m-%d %H:%M:%S"


def setup_logging(
    level: Optional[str] = None,
    log_to_file: Optional[bool] = None,
) -> logging.Logger:
    """Configure the package logger.

    Args:
        level: Log level name (DEBUG, INFO, WARNING, ERROR).
               Defaults to MUSIC_CATALOG_MCP_LOG_LEVEL or INFO.
        log_to_file: Also write to ~/.cache/music-catalog-mcp/server.log.
                     Defaults to MUSIC_CATALOG_MCP_LOG_FILE == "true".

    Returns:
        The configured package logger. Calling this twice does not add
        duplicate handlers.
    """
    if level is None:
        level = os.environ.get("MUSIC_CATALOG_MCP_LOG_LEVEL", "INFO")
    if log_to_file is None:
        log_to_file = os.environ.get("MUSIC_CATALOG_MCP_LOG_FILE", "false").lower() == "true"

    log_level = getattr(logging, level.upper(), logging.INFO)

    logger = logging.getLogger(LOGGER_NAME)
    if logger.handlers:
        return logger

    logger.setLevel(log_level)
    formatter = logging.Formatter(LOG_FORMAT, datefmt=DATE_FORMAT)

    stderr_handler = logging.StreamHandler(sys.stderr)
    stderr_handler.setLevel(log_level)
    stderr_handler.setFormatter(formatter)
    logger.addHandler(stderr_handler)

    if log_to_file:
        try:
            log_dir = Path.home() / ".cache" / "music-catalog-mcp"
            log_dir.mkdir(parents=True, exist_ok=True)
            file_handler = logging.FileHandler(log_dir / "server.log", encoding="utf-8")
            file_handler.setLevel(log_level)
            file_handler.setFormatter(formatter)
            logger.addHandler(file_handler)
            logger.info("File logging enabled: %s", log_dir / "server.log")
        except OSError as e:
            logger.warning("Could not enable file logging: %s", e)

    return logger
