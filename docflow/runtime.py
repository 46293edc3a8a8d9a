"""
Runtime configuration for docflow.

Collects the tuning knobs (chunk size, request timeout, database location)
into one object that flows through the CLI, the web server and the pipeline.
Values come from defaults, then DOCFLOW_* environment variables, then
explicit overrides.
"""

from __future__ import annotations

import logging
import os
from dataclasses import dataclass
from pathlib import Path

from docflow.chunk import DEFAULT_MAX_CHUNK_CHARS


DEFAULT_REQUEST_TIMEOUT = 120.0
DEFAULT_DB_PATH = "~/.docflow/docflow.db"

LOG_FORMAT = "%(asctime)s %(levelname)s [%(name)s] %(message)s"


@dataclass
class RuntimeConfig:
    """
    Runtime configuration for pipeline runs.

    Attributes:
        max_chunk_chars: Soft upper bound on the size of one model call's input
        request_timeout: Per-request timeout for model clients, in seconds
        db_path: Location of the SQLite configuration store
        log_level: Logging level name applied by configure_logging()
        verbose: Print progress information
    """

    max_chunk_chars: int = DEFAULT_MAX_CHUNK_CHARS
    request_timeout: float = DEFAULT_REQUEST_TIMEOUT
    db_path: str = DEFAULT_DB_PATH
    log_level: str = "WARNING"
    verbose: bool = False

    def __post_init__(self):
        if self.max_chunk_chars <= 0:
            raise ValueError(f"max_chunk_chars must be positive, got {self.max_chunk_chars}")
        if self.request_timeout <= 0:
            raise ValueError(f"request_timeout must be positive, got {self.request_timeout}")
        if self.verbose and self.log_level == "WARNING":
            self.log_level = "INFO"

    @property
    def resolved_db_path(self) -> Path:
        """Database path with ~ expanded."""
        return Path(self.db_path).expanduser()


def get_runtime_config(
    max_chunk_chars: int | None = None,
    request_timeout: float | None = None,
    db_path: str | None = None,
    verbose: bool = False,
) -> RuntimeConfig:
    """
    Create a runtime configuration from the environment plus overrides.

    Recognised environment variables:
        DOCFLOW_MAX_CHUNK_CHARS, DOCFLOW_REQUEST_TIMEOUT,
        DOCFLOW_DB_PATH, DOCFLOW_LOG_LEVEL

    Args:
        max_chunk_chars: Override chunk size
        request_timeout: Override model request timeout
        db_path: Override database location
        verbose: Enable verbose output

    Returns:
        Configured RuntimeConfig instance
    """
    if max_chunk_chars is None:
        env_chunk = os.environ.get("DOCFLOW_MAX_CHUNK_CHARS")
        max_chunk_chars = int(env_chunk) if env_chunk else DEFAULT_MAX_CHUNK_CHARS
    if request_timeout is None:
        env_timeout = os.environ.get("DOCFLOW_REQUEST_TIMEOUT")
        request_timeout = float(env_timeout) if env_timeout else DEFAULT_REQUEST_TIMEOUT

    return RuntimeConfig(
        max_chunk_chars=max_chunk_chars,
        request_timeout=request_timeout,
        db_path=db_path or os.environ.get("DOCFLOW_DB_PATH", DEFAULT_DB_PATH),
        log_level=os.environ.get("DOCFLOW_LOG_LEVEL", "WARNING").upper(),
        verbose=verbose,
    )


def configure_logging(config: RuntimeConfig) -> None:
    """Configure the root logger from the runtime configuration."""
    logging.basicConfig(
        level=getattr(logging, config.log_level, logging.WARNING),
        format=LOG_FORMAT,
    )


# Global config instance (can be set by CLI/web server)
_global_config: RuntimeConfig | None = None


def set_global_config(config: RuntimeConfig) -> None:
    """Set the global runtime configuration."""
    global _global_config
    _global_config = config


def get_global_config() -> RuntimeConfig:
    """Get the global runtime configuration, creating it from the environment if needed."""
    global _global_config
    if _global_config is None:
        _global_config = get_runtime_config()
    return _global_config
