from __future__ import annotations

import logging
from typing import Optional

LOG_FORMAT = "%(asctime)s %(levelname)-7s %(name)s: %(message)s"


def configure_logging(level: Optional[str] = None) -> None:
    """Configure root logging once for the CLI and the web app.

    ``level`` defaults to ``FLIP_LOG_LEVEL`` from the environment. Chatty
    third-party loggers (urllib3 connection pool, scrapy selectors) are
    pinned to WARNING so per-listing lookups don't flood the console.
    """
    from flip_finder.config import Settings

    name = (level or Settings().log_level or "INFO").upper()
    logging.basicConfig(level=getattr(logging, name, logging.INFO), format=LOG_FORMAT)
    for noisy in ("urllib3", "scrapy", "parsel"):
        logging.getLogger(noisy).setLevel(logging.WARNING)
