from __future__ import annotations

import os
from dataclasses import dataclass, field


def _env_bool(name: str, default: str = "0") -> bool:
    return os.environ.get(name, default) not in ("0", "false", "False", "no", "None", "")


def _env_int(name: str, default: int) -> int:
    try:
        return int(os.environ.get(name, str(default)))
    except ValueError:
        return default


def _env_float(name: str, default: float) -> float:
    try:
        return float(os.environ.get(name, str(default)))
    except ValueError:
        return default


DEFAULT_USER_AGENT = (
    "Mozilla/5.0 (Windows NT 10.0; Win64; x64) "
    "AppleWebKit/537.36 (KHTML, like Gecko) Chrome/116.0.0.0 Safari/537.36"
)


@dataclass
class Settings:
    """Runtime settings, read from the environment when instantiated."""

    page_size: int = field(default_factory=lambda: _env_int("FLIP_PAGE_SIZE", 50))
    lookup_concurrency: int = field(default_factory=lambda: _env_int("FLIP_LOOKUP_CONCURRENCY", 4))
    lookup_timeout_secs: float = field(default_factory=lambda: _env_float("FLIP_LOOKUP_TIMEOUT_SECS", 20.0))
    http_timeout_secs: float = field(default_factory=lambda: _env_float("FLIP_HTTP_TIMEOUT_SECS", 15.0))
    # Serve demo listings when a search page yields nothing (dev only)
    sample_fallback: bool = field(default_factory=lambda: _env_bool("FLIP_SAMPLE_FALLBACK"))
    log_level: str = field(default_factory=lambda: os.environ.get("FLIP_LOG_LEVEL", "INFO"))
    user_agent: str = field(default_factory=lambda: os.environ.get("HTTP_USER_AGENT", DEFAULT_USER_AGENT))
