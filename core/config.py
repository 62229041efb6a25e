"""Configuration management for the math render service."""
from __future__ import annotations

import os
import re
from dataclasses import dataclass
from pathlib import Path

from dotenv import load_dotenv


def _get_base_dir() -> Path:
    """Project root, used for the .env file and the log file."""
    return Path(__file__).resolve().parents[1]


env_path = _get_base_dir() / ".env"
if env_path.exists():
    load_dotenv(env_path)


_DURATION_UNITS = {
    "ms": 0.001,
    "s": 1,
    "sec": 1,
    "second": 1,
    "m": 60,
    "min": 60,
    "minute": 60,
    "h": 3600,
    "hr": 3600,
    "hour": 3600,
    "d": 86400,
    "day": 86400,
}


def parse_duration(value: str) -> int:
    """
    Convert a human duration like "30 min" or "1h 30m" to whole seconds.

    Bare numbers are taken as seconds.
    """
    text = (value or "").strip().lower()
    if not text:
        raise ValueError("Empty duration")
    if re.fullmatch(r"\d+(\.\d+)?", text):
        return int(float(text))

    total = 0.0
    pos = 0
    for match in re.finditer(r"\s*(\d+(?:\.\d+)?)\s*([a-z]+)\s*,?", text):
        if match.start() != pos:
            break
        unit = match.group(2)
        if unit not in _DURATION_UNITS and unit.endswith("s"):
            unit = unit[:-1]
        if unit not in _DURATION_UNITS:
            raise ValueError(f"Unknown duration unit in {value!r}: {match.group(2)}")
        total += float(match.group(1)) * _DURATION_UNITS[unit]
        pos = match.end()
    if pos != len(text):
        raise ValueError(f"Cannot parse duration: {value!r}")
    return int(total)


@dataclass
class Settings:
    """Application settings."""

    base_dir: Path = _get_base_dir()
    host: str = os.getenv("MATHRENDER_HOST", "127.0.0.1")
    port: int = int(os.getenv("MATHRENDER_PORT", "8000"))
    log_level: str = os.getenv("MATHRENDER_LOG_LEVEL", "INFO")
    log_preview: int = int(os.getenv("MATHRENDER_LOG_PREVIEW", "512"))
    redis_url: str = os.getenv("MATHRENDER_REDIS_URL", "")
    cache_lifespan: str = os.getenv("MATHRENDER_CACHE_LIFESPAN", "30 min")
    cache_namespace: str = os.getenv(
        "MATHRENDER_CACHE_NAMESPACE", "27af2f86-6d6c-4254-a6f1-694386ffc921"
    )
    cache_retry_seconds: float = float(os.getenv("MATHRENDER_CACHE_RETRY_SECONDS", "5"))
    fetch_timeout: float = float(os.getenv("MATHRENDER_FETCH_TIMEOUT", "10"))
    mathsize: str = os.getenv("MATHRENDER_MATHSIZE", "16px")
    image_dpi: int = int(os.getenv("MATHRENDER_IMAGE_DPI", "20"))
    wrap_width: int = int(os.getenv("MATHRENDER_WRAP_WIDTH", "80"))

    @property
    def cache_lifespan_seconds(self) -> int:
        return parse_duration(self.cache_lifespan)


settings = Settings()
