"""Logging configuration for the agent service and its tools."""

import logging
import os
import sys

from pydantic import BaseModel

# Libraries that log every request or subprocess at INFO
NOISY_LOGGERS = ("anthropic", "httpx", "httpcore", "uvicorn.access", "asyncio")


class LogConfig(BaseModel):
    """Logging configuration.

    Tool handlers prefix their messages with ``[tool-name]`` so one format
    serves both the service and the tool output channel.
    """

    level: str = "INFO"
    format: str = "%(asctime)s %(levelname)-7s [%(name)s] %(message)s"
    date_format: str = "%H:%M:%S"
    library_level: str = "WARNING"

    @classmethod
    def from_env(cls) -> "LogConfig":
        return cls(level=_env_level())


def _env_level(default: str = "INFO") -> str:
    return os.getenv("LOG_LEVEL", default).upper()


def setup_logging(config: LogConfig | None = None) -> None:
    """Configure the root handler once at startup."""
    config = config or LogConfig.from_env()

    logging.basicConfig(
        level=config.level.upper(),
        format=config.format,
        datefmt=config.date_format,
        stream=sys.stdout,
        force=True,
    )
    for name in NOISY_LOGGERS:
        logging.getLogger(name).setLevel(config.library_level.upper())


def get_logger(name: str, level: str | None = None) -> logging.Logger:
    """Module logger honoring ``LOG_LEVEL``.

    Args:
        name: Module name, usually ``__name__``
        level: Explicit level overriding the environment
    """
    logger = logging.getLogger(name)
    logger.setLevel((level or _env_level()).upper())
    return logger
