from __future__ import annotations

import argparse
import asyncio
import json
import logging
import sys
from typing import List, Optional

from flip_finder.config import Settings
from flip_finder.errors import FlipFinderError
from flip_finder.services.market import make_client
from flip_finder.services.pipeline import value_and_rank
from flip_finder.services.scraper import fetch_listings
from flip_finder.utils.log import configure_logging

logger = logging.getLogger(__name__)


def build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(description="Rank classified listings by flip profit")
    parser.add_argument("query", help="Search term, e.g. 'laptop'")
    parser.add_argument("--zipcode", default="94102", help="US zipcode to search around")
    parser.add_argument("--budget", type=float, default=None, help="Skip listings priced above this")
    parser.add_argument("--page", type=int, default=1)
    parser.add_argument("--page-size", type=int, default=None)
    parser.add_argument("--all", action="store_true", help="Include listings with no profit")
    parser.add_argument("--log-level", default=None)
    return parser


def main(argv: Optional[List[str]] = None) -> int:
    args = build_parser().parse_args(argv)
    settings = Settings()
    configure_logging(args.log_level or settings.log_level)
    try:
        listings = fetch_listings(args.query, args.zipcode, settings)
        ranked = asyncio.run(
            value_and_rank(
                listings,
                make_client(),
                budget=args.budget,
                page=args.page,
                page_size=args.page_size,
                profitable_only=not args.all,
                settings=settings,
            )
        )
    except FlipFinderError as e:
        logger.error(str(e))
        return 1
    print(json.dumps(ranked.to_public(), indent=2))
    return 0


if __name__ == "__main__":
    sys.exit(main())
