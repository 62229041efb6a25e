"""Logging utilities for the math render service."""
from __future__ import annotations

import logging
import sys
from logging.handlers import RotatingFileHandler
from typing import Any, MutableMapping

from core.config import settings

LOG_FILE = settings.base_dir / "math_render.log"


def init_logging() -> None:
    """Initialize logging with console and rotating file handler."""
    LOG_FILE.parent.mkdir(parents=True, exist_ok=True)
    logger.setLevel(settings.log_level)

    formatter = logging.Formatter(
        "%(asctime)s - %(name)s - %(levelname)s - %(message)s"
    )
    console_handler = logging.StreamHandler()
    # Set encoding to UTF-8 to handle Unicode characters
    if hasattr(sys.stdout, "reconfigure"):
        sys.stdout.reconfigure(encoding="utf-8", errors="replace")
    console_handler.setFormatter(formatter)
    file_handler = RotatingFileHandler(
        LOG_FILE,
        maxBytes=1_000_000,
        backupCount=3,
        encoding="utf-8",
        errors="replace",
    )
    file_handler.setFormatter(formatter)

    if not logger.handlers:
        logger.addHandler(console_handler)
        logger.addHandler(file_handler)


class RequestLogAdapter(logging.LoggerAdapter):
    """Prefix every record with the request's cache key, on a single line."""

    def process(self, msg: Any, kwargs: MutableMapping[str, Any]) -> tuple[Any, MutableMapping[str, Any]]:
        text = str(msg).replace("\r", "").replace("\n", "")
        return f"[{self.extra['cache_key']}] {text}", kwargs


def request_logger(cache_key: str) -> RequestLogAdapter:
    return RequestLogAdapter(logger, {"cache_key": cache_key})


def preview(text: str, limit: int | None = None) -> str:
    """Shorten user input to one bounded line before it is echoed to the log."""
    limit = settings.log_preview if limit is None else limit
    text = text.replace("\r", "").replace("\n", "")
    return text if len(text) <= limit else text[:limit]


logger = logging.getLogger("math_render")
