from __future__ import annotations

import asyncio
import random
import threading
import time

import pytest

from flip_finder.config import Settings
from flip_finder.errors import InvalidRequestError, MarketLookupError
from flip_finder.models import Listing
from flip_finder.services.market import MarketLookup, MarketQuote
from flip_finder.services.pipeline import value_and_rank, value_listings


class FakeLookup(MarketLookup):
    def __init__(self, quotes=None, delay=0.0, fail=False):
        self.quotes = quotes or {}
        self.delay = delay
        self.fail = fail
        self.calls = []
        self._lock = threading.Lock()

    def get_quote(self, search_key):
        with self._lock:
            self.calls.append(search_key)
        if self.delay:
            time.sleep(self.delay)
        if self.fail:
            raise MarketLookupError("service unavailable")
        return self.quotes.get(search_key)


def listing(i, title, price):
    return Listing(id=f"listing-{i}", title=title, asking_price_text=price)


def test_market_quote_overrides_synthetic_value():
    lookup = FakeLookup({"Dell laptop": MarketQuote(average_price=300.0, sample_count=8)})
    [v] = asyncio.run(value_listings([listing(0, "Dell laptop", "$100")], lookup))
    assert v.valuation.resale_value == 300.0
    assert v.valuation.profit == 200.0
    assert v.has_profit
    assert v.valuation.source == "market"


def test_one_lookup_per_distinct_key():
    lookup = FakeLookup(delay=0.05)
    items = [
        listing(0, "iPhone 12 - blue", "$200"),
        listing(1, "iPhone 12 - red", "$210"),
        listing(2, "iphone 12 - cracked screen", "$90"),
        listing(3, "Dell laptop", "$150"),
    ]
    results = asyncio.run(value_listings(items, lookup, rng=random.Random(1), concurrency=4))
    assert sorted(k.lower() for k in lookup.calls) == ["dell laptop", "iphone 12"]
    assert [v.listing.id for v in results] == ["listing-0", "listing-1", "listing-2", "listing-3"]


def test_short_search_key_skips_lookup():
    lookup = FakeLookup()
    [v] = asyncio.run(value_listings([listing(0, "TV - 55 inch", "$100")], lookup))
    assert lookup.calls == []
    assert v.valuation.source == "synthetic"


def test_failing_lookup_degrades_to_synthetic():
    lookup = FakeLookup(fail=True)
    items = [listing(i, f"Gadget {i}", "$100") for i in range(5)]
    results = asyncio.run(value_listings(items, lookup, rng=random.Random(3)))
    assert len(results) == 5
    for v in results:
        assert v.valuation.source == "synthetic"
        assert 70 <= v.valuation.resale_value <= 150
        assert v.valuation.profit >= 0


def test_timed_out_lookup_degrades_to_synthetic():
    lookup = FakeLookup({"Dell laptop": MarketQuote(average_price=300.0)}, delay=0.5)
    [v] = asyncio.run(value_listings([listing(0, "Dell laptop", "$100")], lookup, timeout=0.05))
    assert v.valuation.source == "synthetic"


def test_without_lookup_everything_is_synthetic():
    [v] = asyncio.run(value_listings([listing(0, "Dell laptop", "$100")], None))
    assert v.valuation.source == "synthetic"


def test_value_and_rank_filters_budget_before_lookup():
    lookup = FakeLookup(
        {
            "Dell laptop": MarketQuote(average_price=300.0),
            "ThinkPad X1": MarketQuote(average_price=450.0),
            "Gaming PC": MarketQuote(average_price=1000.0),
        }
    )
    items = [
        listing(0, "Dell laptop", "$100"),
        listing(1, "ThinkPad X1", "$200"),
        listing(2, "Gaming PC", "$1,500"),
    ]
    settings = Settings(page_size=50, lookup_concurrency=2, lookup_timeout_secs=5)
    page = asyncio.run(value_and_rank(items, lookup, budget=500, settings=settings))
    assert "Gaming PC" not in lookup.calls
    assert [v.listing.id for v in page.listings] == ["listing-1", "listing-0"]
    assert [v.profit for v in page.listings] == [250.0, 200.0]
    assert page.total_scanned == 2


def test_value_and_rank_rejects_zero_page_size():
    settings = Settings(page_size=50, lookup_concurrency=1, lookup_timeout_secs=5)
    with pytest.raises(InvalidRequestError):
        asyncio.run(value_and_rank([listing(0, "Dell laptop", "$100")], None, page_size=0, settings=settings))
