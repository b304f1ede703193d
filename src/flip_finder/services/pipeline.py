"""Per-request valuation pipeline.

Each search builds its own coalescer and valuation service; nothing here is
shared between requests. Lookup problems of any kind (exceptions, timeouts,
an exhausted request deadline) degrade a listing to the synthetic estimate
instead of failing the batch.
"""

from __future__ import annotations

import asyncio
import logging
import random
from typing import Dict, List, Optional, Sequence

from flip_finder.config import Settings
from flip_finder.models import Listing, RankedPage, ValuedListing
from flip_finder.ranking import rank, within_budget
from flip_finder.services.market import MarketLookup, MarketQuote
from flip_finder.services.valuation import ValuationService, is_searchable, search_key

logger = logging.getLogger(__name__)


class QuoteCoalescer:
    """At most one in-flight lookup per distinct search key.

    Concurrent callers asking for the same key await the same task. The
    semaphore bounds how many lookups run at once and ``timeout`` is a
    deadline for the whole request, not per call.
    """

    def __init__(self, lookup: MarketLookup, concurrency: int = 4, timeout: Optional[float] = None) -> None:
        self.lookup = lookup
        self._sem = asyncio.Semaphore(max(1, concurrency))
        self._inflight: Dict[str, asyncio.Task[Optional[MarketQuote]]] = {}
        self._deadline: Optional[float] = None
        if timeout is not None and timeout > 0:
            self._deadline = asyncio.get_running_loop().time() + timeout
        self.calls = 0

    def _remaining(self) -> Optional[float]:
        if self._deadline is None:
            return None
        return self._deadline - asyncio.get_running_loop().time()

    async def _fetch(self, key: str) -> Optional[MarketQuote]:
        async with self._sem:
            remaining = self._remaining()
            if remaining is not None and remaining <= 0:
                logger.warning(f"Request deadline passed; skipping lookup for '{key}'")
                return None
            self.calls += 1
            try:
                return await asyncio.wait_for(asyncio.to_thread(self.lookup.get_quote, key), remaining)
            except asyncio.TimeoutError:
                logger.warning(f"Market lookup timed out for '{key}'")
            except Exception as e:
                logger.warning(f"Market lookup failed for '{key}': {e}")
            return None

    async def get(self, key: str) -> Optional[MarketQuote]:
        norm = key.lower()
        task = self._inflight.get(norm)
        if task is None:
            task = asyncio.ensure_future(self._fetch(key))
            self._inflight[norm] = task
        return await task


async def value_listing(
    listing: Listing,
    coalescer: Optional[QuoteCoalescer],
    service: ValuationService,
) -> ValuedListing:
    """Run one listing through lookup, estimate, profit and sale-time steps."""
    quote: Optional[MarketQuote] = None
    key = search_key(listing.title)
    if coalescer is not None:
        if is_searchable(key):
            quote = await coalescer.get(key)
        else:
            logger.debug(f"Skipping market search for too short or generic term: '{key}'")
    return service.value(
        listing,
        market_price=quote.average_price if quote else None,
        market_sale_days=quote.average_sale_days if quote else None,
    )


async def value_listings(
    listings: Sequence[Listing],
    lookup: Optional[MarketLookup],
    rng: Optional[random.Random] = None,
    concurrency: int = 4,
    timeout: Optional[float] = None,
) -> List[ValuedListing]:
    """Value every listing concurrently; output keeps input order."""
    service = ValuationService(rng=rng)
    coalescer = QuoteCoalescer(lookup, concurrency, timeout) if lookup is not None else None
    results = await asyncio.gather(*(value_listing(l, coalescer, service) for l in listings))
    if coalescer is not None:
        logger.info(f"Valued {len(results)} listings with {coalescer.calls} market lookups")
    return list(results)


async def value_and_rank(
    listings: Sequence[Listing],
    lookup: Optional[MarketLookup],
    budget: Optional[float] = None,
    page: int = 1,
    page_size: Optional[int] = None,
    profitable_only: bool = True,
    rng: Optional[random.Random] = None,
    settings: Optional[Settings] = None,
) -> RankedPage:
    settings = settings or Settings()
    # Budget first: no lookups for listings that would be dropped anyway
    affordable = within_budget(listings, budget)
    if budget:
        logger.info(f"Filtered {len(listings)} listings to {len(affordable)} within budget ${budget}")
    valued = await value_listings(
        affordable,
        lookup,
        rng=rng,
        concurrency=settings.lookup_concurrency,
        timeout=settings.lookup_timeout_secs,
    )
    return rank(
        valued,
        page=page,
        page_size=page_size if page_size is not None else settings.page_size,
        profitable_only=profitable_only,
    )
