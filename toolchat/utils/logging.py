"""Logging setup shared by the API, the services and the CLI."""

import logging
import os
import sys

from pydantic import BaseModel

# SDK and transport chatter is only interesting when it goes wrong
QUIET_LOGGERS = ("anthropic", "httpx", "httpcore", "openai", "googleapiclient", "uvicorn.access")


class LogConfig(BaseModel):
    level: str = "INFO"
    format: str = "%(asctime)s - %(name)s - %(levelname)s - %(message)s"
    date_format: str = "%Y-%m-%d %H:%M:%S"


def setup_logging(config: LogConfig | None = None) -> None:
    """Configure the root logger once, writing to stdout."""
    config = config or LogConfig(level=os.getenv("LOG_LEVEL", "INFO"))

    logging.basicConfig(
        level=getattr(logging, config.level.upper(), logging.INFO),
        format=config.format,
        datefmt=config.date_format,
        stream=sys.stdout,
        force=True,
    )
    for name in QUIET_LOGGERS:
        logging.getLogger(name).setLevel(logging.WARNING)


def get_logger(name: str, level: str | None = None) -> logging.Logger:
    """Return the module logger, honouring ``LOG_LEVEL`` unless ``level`` is given."""
    logger = logging.getLogger(name)
    logger.setLevel((level or os.getenv("LOG_LEVEL", "INFO")).upper())
    return logger
